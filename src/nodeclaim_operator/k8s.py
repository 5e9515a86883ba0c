"""Kubernetes client helpers."""

import base64
import logging
import os

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from .crd import NodeClaim
from .errors import BootstrapTokenError, ClaimNotFoundError, ConflictError

logger = logging.getLogger(__name__)

# Initialize clients
_v1 = None
_custom_api = None


def load_kube_config():
    """Load in-cluster config, falling back to the local kubeconfig."""
    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes config")
    except config.ConfigException:
        config.load_kube_config()
        logger.info("Loaded kubeconfig")


def init_clients():
    """Initialize Kubernetes clients."""
    global _v1, _custom_api

    load_kube_config()

    _v1 = client.CoreV1Api()
    _custom_api = client.CustomObjectsApi()

    return _v1, _custom_api


def get_clients():
    """Get initialized Kubernetes clients."""
    global _v1, _custom_api
    if _v1 is None or _custom_api is None:
        init_clients()
    return _v1, _custom_api


class ClaimStore:
    """Reads and writes NodeClaims through the custom objects API."""

    def __init__(self, custom_api, resource):
        self.custom_api = custom_api
        self.resource = resource

    def _coords(self):
        return {
            "group": self.resource.group,
            "version": self.resource.version,
            "plural": self.resource.plural,
        }

    def get(self, key):
        """Fetch a claim, raising ClaimNotFoundError when it is gone."""
        try:
            if self.resource.namespaced:
                body = self.custom_api.get_namespaced_custom_object(
                    namespace=key.namespace, name=key.name, **self._coords()
                )
            else:
                body = self.custom_api.get_cluster_custom_object(name=key.name, **self._coords())
        except ApiException as e:
            if e.status == 404:
                raise ClaimNotFoundError(str(key)) from e
            logger.error(f"Error getting nodeclaim {key}: {e.reason}")
            raise
        return NodeClaim.from_body(body)

    def list(self):
        """List claims across the cluster (all namespaces for namespaced claims)."""
        result = self.custom_api.list_cluster_custom_object(**self._coords())
        return [NodeClaim.from_body(item) for item in result.get("items", [])]

    def update(self, claim):
        """Replace the claim; a stale resourceVersion raises ConflictError."""
        body = claim.to_body()
        try:
            if self.resource.namespaced:
                updated = self.custom_api.replace_namespaced_custom_object(
                    namespace=claim.namespace, name=claim.name, body=body, **self._coords()
                )
            else:
                updated = self.custom_api.replace_cluster_custom_object(
                    name=claim.name, body=body, **self._coords()
                )
        except ApiException as e:
            if e.status == 409:
                raise ConflictError(f"nodeclaim {claim.key} was modified concurrently") from e
            if e.status == 404:
                raise ClaimNotFoundError(str(claim.key)) from e
            logger.error(f"Error updating nodeclaim {claim.key}: {e.reason}")
            raise
        return NodeClaim.from_body(updated)


def read_bootstrap_token(v1, bootstrap):
    """Resolve the bootstrap token from its Secret, then the environment."""
    ref = bootstrap.token_secret
    if ref is not None and v1 is not None:
        try:
            secret = v1.read_namespaced_secret(name=ref.name, namespace=ref.namespace)
        except ApiException as e:
            if e.status != 404:
                raise
            logger.warning(f"Bootstrap secret {ref.namespace}/{ref.name} not found")
        else:
            encoded = (secret.data or {}).get(ref.key)
            if encoded:
                return base64.b64decode(encoded).decode().strip()
            logger.warning(f"Bootstrap secret {ref.namespace}/{ref.name} has no key {ref.key!r}")

    token = os.environ.get(bootstrap.token_env)
    if token:
        return token
    raise BootstrapTokenError(
        f"no bootstrap token in secret or in environment variable {bootstrap.token_env}"
    )
