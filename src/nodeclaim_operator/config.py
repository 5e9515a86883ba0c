"""Operator configuration schema and YAML loader."""

import os
from pathlib import Path
from typing import Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

from . import crd

CONFIG_ENV = "NODECLAIM_OPERATOR_CONFIG"

SCALEWAY_ZONES = [
    "fr-par-1",
    "fr-par-2",
    "fr-par-3",
    "nl-ams-1",
    "nl-ams-2",
    "nl-ams-3",
    "pl-waw-1",
    "pl-waw-2",
    "pl-waw-3",
]

DEFAULT_INSTANCE_TYPES = {
    "l4": "L4-1-24G",
    "l40s": "L40S-1-48G",
}


class ClaimResourceConfig(BaseModel):
    """Where NodeClaims are served by the API server."""
    group: str = Field(default=crd.GROUP, description="API group of the claim resource")
    version: str = Field(default=crd.VERSION, description="API version of the claim resource")
    plural: str = Field(default=crd.PLURAL, description="Plural resource name")
    namespaced: bool = Field(default=False, description="Whether claims are namespaced")


class ScalewayConfig(BaseModel):
    """Scaleway Instance settings used for every provisioned node."""
    zone: str = Field(default="fr-par-1", description="Zone instances are created in")
    image: str = Field(default="ubuntu_jammy_gpu_os_12", description="Image label or ID")
    project_id: Optional[str] = Field(default=None, description="Project owning the instances")
    extra_tags: list[str] = Field(default_factory=list, description="Tags added to every instance")
    search_zones: list[str] = Field(
        default_factory=lambda: list(SCALEWAY_ZONES),
        description="Zones searched for instances owned by a claim",
    )


class SecretRef(BaseModel):
    """Reference to a key inside a Kubernetes Secret."""
    namespace: str = Field(default="kube-system")
    name: str = Field(default="scaleway-bootstrap-token")
    key: str = Field(default="token")


class BootstrapConfig(BaseModel):
    """Cluster join settings rendered into the node's cloud-init script."""
    cluster_name: str = Field(default="my-kubernetes-cluster", description="Cluster name")
    cluster_endpoint: str = Field(default="<cluster-endpoint>", description="API server host:port")
    ca_cert_hash: Optional[str] = Field(
        default=None,
        description="Discovery CA cert hash; CA verification is skipped when unset",
    )
    token_secret: Optional[SecretRef] = Field(
        default_factory=SecretRef,
        description="Secret holding the bootstrap token",
    )
    token_env: str = Field(
        default="NODECLAIM_BOOTSTRAP_TOKEN",
        description="Environment variable read when the secret is unavailable",
    )
    node_labels: dict[str, str] = Field(default_factory=dict, description="Extra kubelet node labels")


class OperatorConfig(BaseModel):
    """Root configuration for the NodeClaim operator."""
    capacity_type: str = Field(default=crd.DEFAULT_CAPACITY_TYPE, description="Capacity-type literal handled")
    finalizer: str = Field(default=crd.DEFAULT_FINALIZER, description="Finalizer token owned by the operator")
    requeue_after: float = Field(default=5, description="Delay before provisioning once the finalizer is set")
    retry_delay: float = Field(default=30, description="Backoff after a transient failure")
    conflict_delay: float = Field(default=1, description="Backoff after a stale write")
    max_workers: int = Field(default=10, description="Concurrent reconciliations")
    claim: ClaimResourceConfig = Field(default_factory=ClaimResourceConfig)
    scaleway: ScalewayConfig = Field(default_factory=ScalewayConfig)
    bootstrap: BootstrapConfig = Field(default_factory=BootstrapConfig)
    instance_types: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_INSTANCE_TYPES),
        description="Logical instance type -> Scaleway commercial type",
    )

    @field_validator("instance_types")
    @classmethod
    def _lowercase_keys(cls, value):
        return {k.lower(): v for k, v in value.items()}


def load_config(path: Optional[Union[str, Path]] = None) -> OperatorConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the config file. If None, checks the
              NODECLAIM_OPERATOR_CONFIG env var, then falls back to ./config.yaml

    Raises:
        FileNotFoundError: If the config file doesn't exist
        yaml.YAMLError: If the file is not valid YAML
        pydantic.ValidationError: If the content doesn't match the schema
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV, "config.yaml")

    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        data = yaml.safe_load(f)

    if data is None:
        data = {}

    return OperatorConfig.model_validate(data)


def load_config_or_default(path: Optional[Union[str, Path]] = None) -> OperatorConfig:
    """Load configuration, returning defaults if the file doesn't exist."""
    try:
        return load_config(path)
    except FileNotFoundError:
        return OperatorConfig()
