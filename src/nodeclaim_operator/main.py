"""Main operator entrypoint using Kopf."""

import logging

import kopf

from .config import load_config_or_default
from .crd import ClaimKey
from .errors import ConflictError, ValidationError
from .k8s import ClaimStore, get_clients, read_bootstrap_token
from .provider import ScalewayGateway
from .reconcile import NodeClaimReconciler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

config = load_config_or_default()
resource = config.claim

_reconciler = None


def get_reconciler():
    """Build the reconciler on first use."""
    global _reconciler
    if _reconciler is None:
        v1, custom_api = get_clients()
        _reconciler = NodeClaimReconciler(
            config,
            claims=ClaimStore(custom_api, config.claim),
            gateway=ScalewayGateway.from_config(config.scaleway),
            token_provider=lambda: read_bootstrap_token(v1, config.bootstrap),
        )
    return _reconciler


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **kwargs):
    """Apply operator settings and connect to the cluster."""
    settings.execution.max_workers = config.max_workers
    settings.posting.level = logging.WARNING
    get_reconciler()
    logger.info(
        f"Watching {resource.plural}.{resource.group}/{resource.version} "
        f"for capacity type {config.capacity_type}"
    )


@kopf.on.resume(resource.group, resource.version, resource.plural)
@kopf.on.create(resource.group, resource.version, resource.plural)
@kopf.on.update(resource.group, resource.version, resource.plural)
@kopf.on.delete(resource.group, resource.version, resource.plural, optional=True)
def nodeclaim_handler(name, namespace, **kwargs):
    """Handle NodeClaim create/update/delete events."""
    key = ClaimKey(name=name, namespace=namespace)
    logger.debug(f"Handling NodeClaim {key}")

    try:
        result = get_reconciler().reconcile(key)
    except ValidationError as e:
        logger.error(f"Validation error: {e}")
        raise kopf.PermanentError(str(e))
    except ConflictError as e:
        logger.info(f"Conflict on nodeclaim {key}, retrying: {e}")
        raise kopf.TemporaryError(str(e), delay=config.conflict_delay)
    except Exception as e:
        logger.error(f"Reconciliation error: {e}", exc_info=True)
        raise kopf.TemporaryError(f"Reconciliation failed: {e}", delay=config.retry_delay)

    if not result.done:
        raise kopf.TemporaryError(f"Requeue nodeclaim {key}", delay=result.requeue_after)


def run():
    """Run the operator against the whole cluster."""
    kopf.run(clusterwide=True)


if __name__ == "__main__":
    run()
