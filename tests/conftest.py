"""Shared fixtures: in-memory claim store and Scaleway gateway."""

import copy
import itertools
import threading

import pytest

from nodeclaim_operator.config import OperatorConfig
from nodeclaim_operator.crd import CAPACITY_TYPE_LABEL, INSTANCE_TYPE_LABEL, NodeClaim
from nodeclaim_operator.errors import ClaimNotFoundError, ConflictError, InstanceNotFoundError
from nodeclaim_operator.provider import STATE_RUNNING, Instance
from nodeclaim_operator.reconcile import NodeClaimReconciler

TOKEN = "abcdef.1234567890abcdef"


def make_claim_body(
    name="gpu-claim",
    *,
    uid=None,
    capacity_types=("scaleway-gpu",),
    instance_types=("l4",),
    finalizers=(),
    deletion_timestamp=None,
    labels=None,
):
    requirements = []
    if capacity_types is not None:
        requirements.append(
            {"key": CAPACITY_TYPE_LABEL, "operator": "In", "values": list(capacity_types)}
        )
    if instance_types is not None:
        requirements.append(
            {"key": INSTANCE_TYPE_LABEL, "operator": "In", "values": list(instance_types)}
        )
    metadata = {
        "name": name,
        "uid": uid or f"uid-{name}",
        "resourceVersion": "1",
        "finalizers": list(finalizers),
        "labels": dict(labels or {}),
    }
    if deletion_timestamp:
        metadata["deletionTimestamp"] = deletion_timestamp
    return {
        "apiVersion": "karpenter.sh/v1beta1",
        "kind": "NodeClaim",
        "metadata": metadata,
        "spec": {"requirements": requirements},
    }


class FakeClaimStore:
    """Claim store backed by a dict, with resourceVersion checks."""

    def __init__(self):
        self.bodies = {}
        self.updates = []
        self.conflicts = 0
        self._lock = threading.Lock()

    def add(self, body):
        self.bodies[body["metadata"]["name"]] = copy.deepcopy(body)

    def body(self, name):
        return self.bodies[name]

    def get(self, key):
        with self._lock:
            if key.name not in self.bodies:
                raise ClaimNotFoundError(str(key))
            return NodeClaim.from_body(copy.deepcopy(self.bodies[key.name]))

    def update(self, claim):
        with self._lock:
            if self.conflicts:
                self.conflicts -= 1
                raise ConflictError(f"nodeclaim {claim.key} was modified concurrently")
            current = self.bodies[claim.name]
            if current["metadata"]["resourceVersion"] != claim.resource_version:
                raise ConflictError(f"nodeclaim {claim.key} was modified concurrently")
            body = claim.to_body()
            body["metadata"]["resourceVersion"] = str(int(claim.resource_version) + 1)
            self.bodies[claim.name] = body
            self.updates.append(copy.deepcopy(body))
            return NodeClaim.from_body(copy.deepcopy(body))


class FakeGateway:
    """Records calls and keeps created instances in memory."""

    def __init__(self):
        self.instances = {}
        self.created = []
        self.released = []
        self.started = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def create_instance(self, request):
        with self._lock:
            instance = Instance(
                id=f"srv-{next(self._ids)}",
                name=request.name,
                zone=request.zone,
                state=STATE_RUNNING,
                commercial_type=request.commercial_type,
                tags=tuple(request.tags),
            )
            self.instances[instance.id] = instance
            self.created.append(request)
            return instance

    def find_instances(self, tag, zone=None):
        with self._lock:
            return [i for i in self.instances.values() if tag in i.tags]

    def start_instance(self, instance, user_data):
        self.started.append((instance, user_data))

    def release_instance(self, instance):
        with self._lock:
            self.released.append(instance.id)
            if self.instances.pop(instance.id, None) is None:
                raise InstanceNotFoundError(instance.id)


@pytest.fixture
def config():
    return OperatorConfig()


@pytest.fixture
def store():
    return FakeClaimStore()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def reconciler(config, store, gateway):
    return NodeClaimReconciler(config, claims=store, gateway=gateway, token_provider=lambda: TOKEN)
