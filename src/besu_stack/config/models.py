# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/besu_stack/config/models.py

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ---------------------------------------------------------------------
# Install-time selectors
# ---------------------------------------------------------------------
class Environment(str, Enum):
    devnet = "devnet"
    testnet = "testnet"
    production = "production"
    # tier aliases
    development = "development"
    staging = "staging"

    @property
    def tier(self) -> str:
        return {
            "development": "devnet",
            "staging": "testnet",
        }.get(self.value, self.value)


class CloudProvider(str, Enum):
    aws = "aws"
    gke = "gke"
    azure = "azure"


class PerformanceTier(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class IngressMode(str, Enum):
    auto = "auto"
    contour = "contour"
    nginx = "nginx"
    none = "none"


class SupportComponent(str, Enum):
    contour = "contour"
    cert_manager = "cert-manager"
    prometheus = "prometheus"


class _Values(BaseModel):
    # Helm values are camelCase and may carry keys the renderer does not model.
    model_config = ConfigDict(populate_by_name=True, extra="allow")


# ---------------------------------------------------------------------
# Key material
# ---------------------------------------------------------------------
class SecretKeyRef(_Values):
    secret_name: str = Field(alias="secretName")
    key_name: str = Field("nodekey", alias="keyName")


class SharedSecret(_Values):
    name: str = ""
    key_prefix: str = Field("", alias="keyPrefix")


class InlineKey(_Values):
    private_key: str = Field(alias="privateKey")
    public_key: Optional[str] = Field(None, alias="publicKey")


class RemoteFetchValues(_Values):
    enabled: bool = False
    path_template: str = Field("", alias="pathTemplate")
    field: str = "nodekey"


class KeysValues(_Values):
    existing_secrets: List[SecretKeyRef] = Field(default_factory=list, alias="existingSecrets")
    existing_secret: SharedSecret = Field(default_factory=SharedSecret, alias="existingSecret")
    inline: List[InlineKey] = Field(default_factory=list)
    remote_fetch: RemoteFetchValues = Field(default_factory=RemoteFetchValues, alias="remoteFetch")


# ---------------------------------------------------------------------
# Workloads
# ---------------------------------------------------------------------
class ImageValues(_Values):
    repository: str = "hyperledger/besu"
    tag: str = "24.12.2"
    pull_policy: str = Field("IfNotPresent", alias="pullPolicy")

    @property
    def ref(self) -> str:
        return f"{self.repository}:{self.tag}"


class PersistenceValues(_Values):
    enabled: bool = True
    size: str = "10Gi"
    storage_class: str = Field("", alias="storageClass")


class ServiceValues(_Values):
    type: str = "ClusterIP"
    annotations: Dict[str, str] = Field(default_factory=dict)


class RoleValues(_Values):
    enabled: bool = True
    replica_count: int = Field(1, ge=0, alias="replicaCount")
    keys: KeysValues = Field(default_factory=KeysValues)
    resources: Dict[str, Any] = Field(default_factory=dict)
    persistence: PersistenceValues = Field(default_factory=PersistenceValues)
    service: ServiceValues = Field(default_factory=ServiceValues)
    extra_args: List[str] = Field(default_factory=list, alias="extraArgs")
    node_selector: Dict[str, str] = Field(default_factory=dict, alias="nodeSelector")


class P2PValues(_Values):
    port: int = 30303
    discovery: bool = True
    static_nodes: List[str] = Field(default_factory=list, alias="staticNodes")
    bootnodes: List[str] = Field(default_factory=list)
    bootnode_count: Optional[int] = Field(None, ge=0, alias="bootnodeCount")


class PortValues(_Values):
    http: int = 8545
    ws: int = 8546
    metrics: int = 9545


class GenesisValues(_Values):
    raw: str = ""


# ---------------------------------------------------------------------
# Ingress / TLS / metrics
# ---------------------------------------------------------------------
class CertManagerTls(_Values):
    enabled: bool = False
    issuer: str = "letsencrypt-prod"
    issuer_kind: str = Field("ClusterIssuer", alias="issuerKind")


class TlsValues(_Values):
    cert_manager: CertManagerTls = Field(default_factory=CertManagerTls, alias="certManager")
    secret_name: str = Field("", alias="secretName")


class IngressValues(_Values):
    enabled: bool = False
    auto_detect: bool = Field(True, alias="autoDetect")
    class_name: str = Field("", alias="className")
    host: str = ""
    annotations: Dict[str, str] = Field(default_factory=dict)


class HttpProxyValues(_Values):
    enabled: bool = False
    host: str = ""


class ServiceMonitorValues(_Values):
    enabled: bool = False
    interval: str = "30s"
    labels: Dict[str, str] = Field(default_factory=dict)


class OpenShiftValues(_Values):
    enabled: bool = False


class KeyFetchValues(_Values):
    command: List[str] = Field(default_factory=lambda: ["besu-stack", "fetch-key"])
    key_path: str = Field("/secrets/nodekey", alias="keyPath")
    vault_addr: str = Field("http://vault.vault.svc.cluster.local:8200", alias="vaultAddr")
    vault_role: str = Field("besu", alias="vaultRole")
    service_account: str = Field("", alias="serviceAccount")
    # image that ships besu-stack; when set the fetch runs as an init container
    init_image: str = Field("", alias="initImage")


class ChartValues(_Values):
    """
    Typed view of the merged chart values.

    Unknown keys are kept (``extra="allow"``) so user overlays written for the
    upstream chart do not fail validation.
    """

    name_override: str = Field("", alias="nameOverride")
    fullname_override: str = Field("", alias="fullnameOverride")
    image: ImageValues = Field(default_factory=ImageValues)
    genesis: GenesisValues = Field(default_factory=GenesisValues)
    p2p: P2PValues = Field(default_factory=P2PValues)
    ports: PortValues = Field(default_factory=PortValues)
    validators: RoleValues = Field(default_factory=lambda: RoleValues(replicaCount=4))
    rpc: RoleValues = Field(default_factory=lambda: RoleValues(replicaCount=1))
    ingress: IngressValues = Field(default_factory=IngressValues)
    http_proxy: HttpProxyValues = Field(default_factory=HttpProxyValues, alias="httpProxy")
    tls: TlsValues = Field(default_factory=TlsValues)
    service_monitor: ServiceMonitorValues = Field(default_factory=ServiceMonitorValues, alias="serviceMonitor")
    openshift: OpenShiftValues = Field(default_factory=OpenShiftValues)
    key_fetch: KeyFetchValues = Field(default_factory=KeyFetchValues, alias="keyFetch")

    @model_validator(mode="after")
    def _check_validators(self) -> "ChartValues":
        if self.validators.replica_count < 1:
            raise ValueError("validators.replicaCount must be >= 1")
        return self

    def role(self, name: str) -> RoleValues:
        if name == "validator":
            return self.validators
        if name == "rpc":
            return self.rpc
        raise KeyError(f"Unknown role '{name}'")


# ---------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------
class InstallOptions(BaseModel):
    environment: Environment
    namespace: str = "besu-stack"
    release: str = "besu-stack"
    openshift: bool = False
    cloud: Optional[CloudProvider] = None
    performance: PerformanceTier = PerformanceTier.low
    cert_manager: bool = False
    ingress: IngressMode = IngressMode.auto
    values_file: Optional[Path] = None
    sets: List[str] = Field(default_factory=list)
    dry_run: bool = False
    upgrade: bool = False


class UninstallOptions(BaseModel):
    namespace: str = "besu-stack"
    release: str = "besu-stack"
    all_releases: bool = False
    release_filter: str = "besu-stack"
    force: bool = False
    keep_pvcs: bool = False
    dry_run: bool = False
    parallel: int = Field(1, ge=1)


class SupportOptions(BaseModel):
    cloud: Optional[CloudProvider] = None
    tls: bool = False
    email: Optional[str] = None
    prometheus: bool = False
    dry_run: bool = False
    upgrade: bool = False
    force: bool = False
    only: Optional[SupportComponent] = None
    assume_yes: bool = False
