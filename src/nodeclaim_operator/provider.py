"""Scaleway Instance API helpers."""

import logging
from dataclasses import dataclass, field
from typing import Optional

from scaleway import Client
from scaleway.instance.v1 import ServerAction
from scaleway.instance.v1.custom_api import InstanceUtilsV1API
from scaleway_core.api import ScalewayException

from .errors import InstanceBusyError, InstanceNotFoundError

logger = logging.getLogger(__name__)

CLOUD_INIT_KEY = "cloud-init"

# Server states
STATE_RUNNING = "running"
STATE_STOPPED = "stopped"
STATE_STOPPED_IN_PLACE = "stopped in place"


def claim_uid_tag(uid):
    return f"nodeclaim-uid={uid}"


def claim_name_tag(name):
    return f"nodeclaim={name}"


@dataclass(frozen=True)
class ProvisioningRequest:
    zone: str
    commercial_type: str
    image: str
    name: str
    user_data: str = field(repr=False)
    tags: tuple = ()
    project_id: Optional[str] = None


@dataclass(frozen=True)
class Instance:
    id: str
    name: str
    zone: str
    state: str
    commercial_type: str
    tags: tuple = ()
    volume_ids: tuple = ()

    @classmethod
    def from_server(cls, server):
        volumes = server.volumes or {}
        return cls(
            id=server.id,
            name=server.name,
            zone=server.zone,
            state=getattr(server.state, "value", server.state),
            commercial_type=server.commercial_type,
            tags=tuple(server.tags or ()),
            volume_ids=tuple(v.id for v in volumes.values()),
        )


def _is_not_found(e):
    return e.status_code == 404


class ScalewayGateway:
    """Creates, finds and releases Scaleway instances."""

    def __init__(self, api, zone, project_id=None, search_zones=()):
        self.api = api
        self.zone = zone
        self.project_id = project_id
        # Zones scanned for owned instances, so a zone change does not orphan them
        self.search_zones = [zone] + [z for z in search_zones if z != zone]

    @classmethod
    def from_config(cls, scaleway_config, client=None):
        """Build a gateway from SCW_* environment variables or the Scaleway config file."""
        if client is None:
            client = Client.from_config_file_and_env()
        return cls(
            InstanceUtilsV1API(client),
            zone=scaleway_config.zone,
            project_id=scaleway_config.project_id,
            search_zones=scaleway_config.search_zones,
        )

    def create_instance(self, request):
        """Create the server, attach its cloud-init and power it on."""
        kwargs = {
            "zone": request.zone,
            "commercial_type": request.commercial_type,
            "image": request.image,
            "name": request.name,
            "tags": list(request.tags),
            "dynamic_ip_required": True,
        }
        if request.project_id:
            kwargs["project"] = request.project_id

        response = self.api.create_server(**kwargs)
        instance = Instance.from_server(response.server)
        logger.info(f"Created server {instance.id} ({request.commercial_type}) in {request.zone}")

        self._boot(instance, request.user_data)
        return instance

    def start_instance(self, instance, user_data):
        """Re-apply cloud-init and power on a stopped instance."""
        self._boot(instance, user_data)

    def _boot(self, instance, user_data):
        self.api.set_server_user_data(
            server_id=instance.id,
            key=CLOUD_INIT_KEY,
            content=user_data.encode(),
            zone=instance.zone,
        )
        self.api.server_action(server_id=instance.id, action=ServerAction.POWERON, zone=instance.zone)
        logger.info(f"Powered on server {instance.id}")

    def find_instances(self, tag, zone=None):
        """List servers carrying the given tag, across all searched zones."""
        zones = [zone] if zone else self.search_zones
        instances = []
        for z in zones:
            servers = self.api.list_servers_all(zone=z, tags=[tag])
            instances.extend(Instance.from_server(s) for s in servers)
        return instances

    def release_instance(self, instance):
        """Terminate or delete the instance.

        Raises InstanceNotFoundError if the server was already gone.
        """
        try:
            if instance.state == STATE_RUNNING:
                self.api.server_action(
                    server_id=instance.id, action=ServerAction.TERMINATE, zone=instance.zone
                )
                logger.info(f"Terminating server {instance.id}")
            elif instance.state in (STATE_STOPPED, STATE_STOPPED_IN_PLACE):
                self.api.delete_server(server_id=instance.id, zone=instance.zone)
                logger.info(f"Deleted server {instance.id}")
                for volume_id in instance.volume_ids:
                    self._delete_volume(volume_id, instance.zone)
            else:
                raise InstanceBusyError(instance.id, instance.state)
        except ScalewayException as e:
            if _is_not_found(e):
                raise InstanceNotFoundError(instance.id) from e
            raise

    def _delete_volume(self, volume_id, zone):
        try:
            self.api.delete_volume(volume_id=volume_id, zone=zone)
            logger.info(f"Deleted volume {volume_id}")
        except ScalewayException as e:
            if not _is_not_found(e):
                raise
