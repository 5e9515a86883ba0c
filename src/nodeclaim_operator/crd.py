"""NodeClaim schema constants and helpers."""

import copy
import enum
from dataclasses import dataclass, field
from typing import Optional

from .errors import MissingRequirementError

# Karpenter NodeClaim group, version, and plural
GROUP = "karpenter.sh"
VERSION = "v1beta1"
PLURAL = "nodeclaims"
KIND = "NodeClaim"

API_VERSION = f"{GROUP}/{VERSION}"

# Well-known requirement / label keys
CAPACITY_TYPE_LABEL = "karpenter.sh/capacity-type"
INSTANCE_TYPE_LABEL = "node.kubernetes.io/instance-type"

OPERATOR_IN = "In"

DEFAULT_CAPACITY_TYPE = "scaleway-gpu"
DEFAULT_FINALIZER = "scaleway.com/finalizer"


class ClaimState(enum.Enum):
    """Lifecycle stage derived from a claim's observed fields."""

    IRRELEVANT = "Irrelevant"
    PENDING_PROVISION = "PendingProvision"
    READY_TO_PROVISION = "ReadyToProvision"
    PENDING_TEARDOWN = "PendingTeardown"
    RELEASED = "Released"


@dataclass(frozen=True)
class ClaimKey:
    name: str
    namespace: Optional[str] = None

    def __str__(self):
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name


@dataclass(frozen=True)
class Requirement:
    key: str
    operator: str
    values: tuple = ()

    @classmethod
    def from_dict(cls, data):
        return cls(
            key=data.get("key", ""),
            operator=data.get("operator", ""),
            values=tuple(data.get("values") or ()),
        )


@dataclass
class NodeClaim:
    """Typed view over a NodeClaim custom object body."""

    name: str
    namespace: Optional[str] = None
    uid: Optional[str] = None
    resource_version: Optional[str] = None
    deletion_timestamp: Optional[str] = None
    finalizers: list = field(default_factory=list)
    labels: dict = field(default_factory=dict)
    requirements: list = field(default_factory=list)
    body: dict = field(default_factory=dict, repr=False)

    @classmethod
    def from_body(cls, body):
        metadata = body.get("metadata") or {}
        spec = body.get("spec") or {}
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace"),
            uid=metadata.get("uid"),
            resource_version=metadata.get("resourceVersion"),
            deletion_timestamp=metadata.get("deletionTimestamp"),
            finalizers=list(metadata.get("finalizers") or []),
            labels=dict(metadata.get("labels") or {}),
            requirements=[Requirement.from_dict(r) for r in spec.get("requirements") or []],
            body=body,
        )

    @property
    def key(self):
        return ClaimKey(name=self.name, namespace=self.namespace)

    @property
    def is_deleting(self):
        return bool(self.deletion_timestamp)

    def has_finalizer(self, finalizer):
        return finalizer in self.finalizers

    def add_finalizer(self, finalizer):
        """Add the finalizer; returns False if it was already present."""
        if finalizer in self.finalizers:
            return False
        self.finalizers.append(finalizer)
        return True

    def remove_finalizer(self, finalizer):
        """Remove the finalizer; returns False if it was not present."""
        if finalizer not in self.finalizers:
            return False
        self.finalizers = [f for f in self.finalizers if f != finalizer]
        return True

    def _requirement_values(self, key):
        for requirement in self.requirements:
            if requirement.key == key and requirement.operator == OPERATOR_IN:
                return requirement.values
        return None

    def has_capacity_type(self, capacity_type):
        """Check the capacity-type requirement, falling back to the flat label."""
        values = self._requirement_values(CAPACITY_TYPE_LABEL)
        if values is not None:
            return capacity_type in values
        return self.labels.get(CAPACITY_TYPE_LABEL) == capacity_type

    def resolve_instance_type(self):
        """Return the logical instance type requested by this claim.

        The first value of the instance-type requirement is authoritative.
        Claims without requirements may carry it as a plain label instead.
        """
        values = self._requirement_values(INSTANCE_TYPE_LABEL)
        if values:
            return values[0]
        label = self.labels.get(INSTANCE_TYPE_LABEL)
        if label:
            return label
        raise MissingRequirementError(self.name, INSTANCE_TYPE_LABEL)

    def to_body(self):
        """Return the body to send back to the API server."""
        body = copy.deepcopy(self.body)
        metadata = body.setdefault("metadata", {})
        metadata["finalizers"] = list(self.finalizers)
        if self.resource_version:
            metadata["resourceVersion"] = self.resource_version
        return body


def derive_state(claim, capacity_type, finalizer):
    """Infer the lifecycle stage from finalizer, deletion marker and capacity type."""
    if not claim.has_capacity_type(capacity_type):
        return ClaimState.IRRELEVANT
    if claim.is_deleting:
        if claim.has_finalizer(finalizer):
            return ClaimState.PENDING_TEARDOWN
        return ClaimState.RELEASED
    if claim.has_finalizer(finalizer):
        return ClaimState.READY_TO_PROVISION
    return ClaimState.PENDING_PROVISION
