"""Core reconciliation logic."""

import logging
from dataclasses import dataclass
from typing import Optional

from .crd import ClaimState, derive_state
from .errors import ClaimNotFoundError, InstanceNotFoundError
from .instance_types import InstanceTypeTranslator
from .k8s import read_bootstrap_token
from .provider import STATE_STOPPED, STATE_STOPPED_IN_PLACE, ProvisioningRequest, claim_name_tag, claim_uid_tag
from .templates import create_node_labels, generate_user_data

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Result:
    """Outcome of one reconciliation; requeue_after is None when done."""

    requeue_after: Optional[float] = None

    @property
    def done(self):
        return self.requeue_after is None


class NodeClaimReconciler:
    """Drives a NodeClaim through provisioning and teardown.

    Each call re-reads the claim and performs at most one externally visible
    step: add the finalizer, provision an instance, or release the instance
    and remove the finalizer.
    """

    def __init__(self, config, claims, gateway, translator=None, token_provider=None):
        self.config = config
        self.claims = claims
        self.gateway = gateway
        self.translator = translator or InstanceTypeTranslator(config.instance_types)
        if token_provider is None:
            token_provider = lambda: read_bootstrap_token(None, config.bootstrap)
        self.token_provider = token_provider

    def reconcile(self, key):
        """Reconcile a single claim by key."""
        try:
            claim = self.claims.get(key)
        except ClaimNotFoundError:
            logger.debug(f"NodeClaim {key} not found, nothing to do")
            return Result()

        state = derive_state(claim, self.config.capacity_type, self.config.finalizer)

        if state == ClaimState.IRRELEVANT:
            logger.debug(f"Ignoring nodeclaim {key}, not a {self.config.capacity_type} capacity type")
            return Result()

        if state == ClaimState.RELEASED:
            return Result()

        if state == ClaimState.PENDING_TEARDOWN:
            return self._teardown(claim)

        # Validate before touching the claim so invalid claims never get a finalizer
        instance_type = claim.resolve_instance_type()
        commercial_type = self.translator.translate(instance_type)

        if state == ClaimState.PENDING_PROVISION:
            claim.add_finalizer(self.config.finalizer)
            if not self._persist(claim):
                return Result()
            logger.info(f"Added finalizer to nodeclaim {key}")
            return Result(requeue_after=self.config.requeue_after)

        return self._provision(claim, instance_type, commercial_type)

    def _persist(self, claim):
        """Write the claim back; returns False if it was deleted meanwhile."""
        try:
            self.claims.update(claim)
        except ClaimNotFoundError:
            logger.debug(f"NodeClaim {claim.key} disappeared before it could be updated")
            return False
        return True

    def _owned_instances(self, claim):
        return self.gateway.find_instances(claim_uid_tag(claim.uid))

    def _user_data(self, instance_type):
        bootstrap = self.config.bootstrap
        labels = create_node_labels(self.config.capacity_type, instance_type, bootstrap.node_labels)
        return generate_user_data(
            cluster_name=bootstrap.cluster_name,
            token=self.token_provider(),
            cluster_endpoint=bootstrap.cluster_endpoint,
            ca_cert_hash=bootstrap.ca_cert_hash,
            node_labels=labels,
        )

    def build_request(self, claim, instance_type, commercial_type):
        scaleway = self.config.scaleway
        tags = (claim_uid_tag(claim.uid), claim_name_tag(claim.name)) + tuple(scaleway.extra_tags)
        return ProvisioningRequest(
            zone=scaleway.zone,
            commercial_type=commercial_type,
            image=scaleway.image,
            name=claim.name,
            user_data=self._user_data(instance_type),
            tags=tags,
            project_id=scaleway.project_id,
        )

    def _provision(self, claim, instance_type, commercial_type):
        existing = self._owned_instances(claim)
        if existing:
            instance = existing[0]
            if len(existing) > 1:
                logger.warning(
                    f"NodeClaim {claim.key} owns {len(existing)} instances, adopting {instance.id}"
                )
            if instance.state in (STATE_STOPPED, STATE_STOPPED_IN_PLACE):
                logger.info(f"Starting stopped instance {instance.id} for nodeclaim {claim.key}")
                self.gateway.start_instance(instance, self._user_data(instance_type))
            else:
                logger.debug(f"NodeClaim {claim.key} already has instance {instance.id} ({instance.state})")
            return Result()

        logger.info(f"Creating Scaleway instance for nodeclaim {claim.key} with commercialType {commercial_type}")
        request = self.build_request(claim, instance_type, commercial_type)
        instance = self.gateway.create_instance(request)
        logger.info(f"Scaleway instance created for nodeclaim {claim.key}, serverID {instance.id}")
        return Result()

    def _teardown(self, claim):
        for instance in self._owned_instances(claim):
            try:
                self.gateway.release_instance(instance)
            except InstanceNotFoundError:
                logger.info(f"Instance {instance.id} of nodeclaim {claim.key} already gone")
                continue
            logger.info(f"Released instance {instance.id} of nodeclaim {claim.key}")

        claim.remove_finalizer(self.config.finalizer)
        if not self._persist(claim):
            return Result()
        logger.info(f"Removed finalizer from nodeclaim {claim.key}")
        return Result()
