"""Neo4jEnterpriseCluster CRD models."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from neo4jop.config import GROUP, KIND, PLURAL, VERSION
from neo4jop.crd.base import CRDSpec, CRDStatus
from neo4jop.crd.registry import CRDRegistry


class ImageSpec(CRDSpec):
    """Container image for the Neo4j servers."""

    repo: Optional[str] = Field(default=None, description="Image repository")
    tag: Optional[str] = Field(default=None, description="Image tag, e.g. 5.26.0-enterprise")
    pullPolicy: Optional[str] = Field(default=None, description="Image pull policy")


class TopologySpec(CRDSpec):
    """Member counts. ``servers`` is the unified count used when ``primaries`` is unset."""

    primaries: Optional[int] = Field(default=None, description="Number of primary members")
    secondaries: Optional[int] = Field(default=None, description="Number of secondary members")
    servers: Optional[int] = Field(default=None, description="Unified server count")


class StorageSpec(CRDSpec):
    className: Optional[str] = Field(default=None, description="Storage class name")
    size: Optional[str] = Field(default=None, description="Volume size, e.g. 100Gi")
    retentionPolicy: Optional[str] = Field(
        default=None, description="Delete or Retain the volumes with the cluster"
    )


class IssuerRef(CRDSpec):
    name: Optional[str] = None
    kind: Optional[str] = None
    group: Optional[str] = None


class SecretStoreRef(CRDSpec):
    name: Optional[str] = None
    kind: Optional[str] = None


class RemoteRef(CRDSpec):
    key: Optional[str] = None
    property: Optional[str] = None


class ExternalSecretData(CRDSpec):
    secretKey: Optional[str] = None
    remoteRef: Optional[RemoteRef] = None


class ExternalSecretsSpec(CRDSpec):
    """Source TLS material from an External Secrets Operator store."""

    enabled: bool = False
    secretStoreRef: Optional[SecretStoreRef] = None
    refreshInterval: Optional[str] = None
    data: List[ExternalSecretData] = Field(default_factory=list)


class TLSSpec(CRDSpec):
    mode: Optional[str] = Field(default=None, description="cert-manager or disabled")
    issuerRef: Optional[IssuerRef] = None
    duration: Optional[str] = None
    renewBefore: Optional[str] = None
    usages: List[str] = Field(default_factory=list)
    externalSecrets: Optional[ExternalSecretsSpec] = None


class AuthSpec(CRDSpec):
    provider: Optional[str] = Field(default=None, description="native, ldap, kerberos or jwt")
    secretRef: Optional[str] = Field(
        default=None, description="Secret with provider configuration"
    )
    adminSecret: Optional[str] = Field(
        default=None, description="Secret holding the admin username and password"
    )


class AutoCreateSpec(CRDSpec):
    enabled: bool = False
    annotations: Dict[str, str] = Field(default_factory=dict)


class CloudIdentity(CRDSpec):
    provider: Optional[str] = None
    serviceAccount: Optional[str] = None
    autoCreate: Optional[AutoCreateSpec] = None


class CloudBackupSpec(CRDSpec):
    provider: Optional[str] = Field(default=None, description="aws, gcp or azure")
    identity: Optional[CloudIdentity] = None


class BackupsSpec(CRDSpec):
    cloud: Optional[CloudBackupSpec] = None


class ServiceSpec(CRDSpec):
    type: Optional[str] = Field(default=None, description="Kubernetes Service type")


class UpgradeStrategySpec(CRDSpec):
    """How image changes are rolled out."""

    strategy: str = Field(default="RollingUpgrade", description="RollingUpgrade or Recreate")
    preUpgradeHealthCheck: bool = True
    maxUnavailableDuringUpgrade: int = 1
    upgradeTimeout: str = Field(
        default="30m", description="Budget for one member to become ready"
    )
    healthCheckTimeout: str = Field(
        default="5m", description="Budget for one member to rejoin the cluster"
    )
    stabilizationTimeout: str = Field(
        default="3m", description="Budget for the cluster to settle after the last member"
    )


class UpgradeProgress(BaseModel):
    total: int = 0
    upgraded: int = 0
    inProgress: int = 0
    pending: int = 0


class UpgradeStatus(BaseModel):
    """Progress of the current or last rolling upgrade. Written only by the orchestrator."""

    phase: str = "NotStarted"
    step: Optional[str] = None
    currentOrdinal: Optional[int] = None
    memberStep: Optional[str] = None
    confirmedMembers: List[int] = Field(default_factory=list)
    startTime: Optional[datetime] = None
    stepStartedAt: Optional[datetime] = None
    completionTime: Optional[datetime] = None
    previousVersion: Optional[str] = None
    targetVersion: Optional[str] = None
    targetImage: Optional[str] = None
    progress: UpgradeProgress = Field(default_factory=UpgradeProgress)
    stableObservations: int = 0
    lastObservation: Optional[str] = None
    message: Optional[str] = None
    lastError: Optional[str] = None
    reason: Optional[str] = None

    class Config:
        extra = "allow"


class ClusterStatus(CRDStatus):
    version: Optional[str] = None
    upgradeStatus: Optional[UpgradeStatus] = None


@CRDRegistry.register(
    GROUP,
    VERSION,
    KIND,
    PLURAL,
    status=ClusterStatus,
    short_names=["neo4jcluster"],
    printer_columns=[
        {"name": "Version", "type": "string", "jsonPath": ".status.version"},
        {"name": "Upgrade", "type": "string", "jsonPath": ".status.upgradeStatus.phase"},
        {"name": "Age", "type": "date", "jsonPath": ".metadata.creationTimestamp"},
    ],
)
class ClusterSpec(CRDSpec):
    """Neo4jEnterpriseCluster CRD specification."""

    edition: Optional[str] = Field(default=None, description="Must be enterprise")
    image: ImageSpec = Field(default_factory=ImageSpec)
    topology: TopologySpec = Field(default_factory=TopologySpec)
    storage: StorageSpec = Field(default_factory=StorageSpec)
    tls: Optional[TLSSpec] = None
    auth: Optional[AuthSpec] = None
    backups: Optional[BackupsSpec] = None
    service: Optional[ServiceSpec] = None
    upgradeStrategy: Optional[UpgradeStrategySpec] = None

    @property
    def quorum_field(self):
        """Name of the topology field the quorum rules apply to."""
        if self.topology.primaries is None and self.topology.servers is not None:
            return "servers"
        return "primaries"

    @property
    def quorum_count(self):
        return getattr(self.topology, self.quorum_field) or 0

    @property
    def target_image(self):
        return f"{self.image.repo}:{self.image.tag}"

    @property
    def strategy(self):
        return self.upgradeStrategy or UpgradeStrategySpec()
