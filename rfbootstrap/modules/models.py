"""Data models for cluster bootstrap and runtime deployment."""
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple


class ClusterVariant(str, Enum):
    """Supported single-node Kubernetes distributions."""
    RKE2 = 'rke2'
    UDS = 'uds'


class ProvisionState(str, Enum):
    """Lifecycle of a provisioned cluster."""
    ABSENT = 'absent'
    INSTALLING = 'installing'
    WAITING_READY = 'waiting_ready'
    READY = 'ready'
    FAILED = 'failed'


class ClusterPhase(str, Enum):
    """Observed cluster state as reported by ``status``."""
    NOT_INSTALLED = 'not_installed'
    INSTALLED = 'installed'
    RUNNING = 'running'
    STOPPED = 'stopped'


@dataclass(frozen=True)
class RuntimeProfile:
    """Per-variant settings for the RapidFort Runtime release."""
    namespace: str
    cluster_name: str
    cluster_caption: str
    chart_variant: str
    profiling_namespaces: Tuple[str, ...] = ()


RUNTIME_PROFILES: Dict[ClusterVariant, RuntimeProfile] = {
    ClusterVariant.RKE2: RuntimeProfile(
        namespace='rapidfort',
        cluster_name='rke2',
        cluster_caption='RKE2 Cluster',
        chart_variant='generic',
    ),
    ClusterVariant.UDS: RuntimeProfile(
        namespace='default',
        cluster_name='uds',
        cluster_caption='UDS Cluster',
        chart_variant='k3s',
        profiling_namespaces=('jira',),
    ),
}


@dataclass(frozen=True)
class ClusterTarget:
    """The cluster a command operates on. Immutable once built."""
    variant: ClusterVariant
    name: str
    kubeconfig_path: Path
    registry_ip: Optional[str] = None
    version: str = 'latest'

    @property
    def runtime(self) -> RuntimeProfile:
        return RUNTIME_PROFILES[self.variant]

    @property
    def deploys_registry(self) -> bool:
        return self.variant == ClusterVariant.RKE2

    @property
    def registry_address(self) -> Optional[str]:
        if not self.registry_ip:
            return None
        return f"{self.registry_ip}:5000"


@dataclass
class NodeInfo:
    name: str
    ready: bool
    roles: List[str] = field(default_factory=list)
    version: str = ''


@dataclass
class PodInfo:
    name: str
    phase: str
    ready: bool = False


@dataclass
class ClusterStatus:
    """Live status of a cluster; never cached between calls."""
    phase: ClusterPhase
    version: Optional[str] = None
    nodes: List[NodeInfo] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RegistryStatus:
    ready: bool
    external_ip: Optional[str] = None


@dataclass
class RuntimeStatus:
    namespace: str
    running: int = 0
    pods: List[PodInfo] = field(default_factory=list)


@dataclass
class StatusReport:
    cluster: ClusterStatus
    registry: Optional[RegistryStatus] = None
    runtime: Optional[RuntimeStatus] = None


@dataclass
class StepOutcome:
    """Result of a best-effort step: failures are captured, never raised."""
    name: str
    ok: bool
    error: Optional[str] = None


@dataclass
class PlanStep:
    name: str
    action: Callable[[], Any]
    required: bool = True


@dataclass
class DeploymentPlan:
    """Ordered post-provision steps for one ``install`` invocation."""
    target: ClusterTarget
    steps: List[PlanStep] = field(default_factory=list)

    def add(self, name: str, action: Callable[[], Any], required: bool = True) -> 'DeploymentPlan':
        self.steps.append(PlanStep(name, action, required))
        return self

    @property
    def step_names(self) -> List[str]:
        return [step.name for step in self.steps]


@dataclass
class RuntimeOptions:
    """Options for ``deploy-rapidfort``.

    ``local_registry`` is tri-state: ``None`` defers to ``RF_USE_LOCAL_REGISTRY``.
    """
    registry_ip: Optional[str] = None
    local_registry: Optional[bool] = None
    image_tag: Optional[str] = None


@dataclass
class DeployResult:
    release: str
    namespace: str
    overrides: Dict[str, str]
    pods: List[PodInfo] = field(default_factory=list)
