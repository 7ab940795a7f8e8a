"""Shared lifecycle for single-node cluster provisioners."""
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import requests

from ...config import Settings
from ...utils import best_effort
from ...utils.kube import backup_kubeconfig
from ..errors import BootstrapError, ProvisionError
from ..host import HostEnvironmentProbe
from ..models import ClusterStatus, ClusterTarget, ClusterVariant, ProvisionState, StepOutcome
from ..readiness import ReadinessWaiter
from ..runner import CommandRunner

logger = logging.getLogger("rfbootstrap.cluster")

TeardownStep = Tuple[str, Callable[[], object]]


class ClusterProvisioner(ABC):
    """Brings a single-node cluster to READY and tears it down again.

    ``install`` is idempotent: readiness is re-probed live on every call and a
    ready cluster is left untouched. ``uninstall`` runs each teardown step as
    a best-effort step so one failure never blocks the rest.
    """

    variant: ClusterVariant

    def __init__(
        self,
        settings: Settings,
        runner: CommandRunner,
        probe: HostEnvironmentProbe,
        api,
        waiter: Optional[ReadinessWaiter] = None,
        http: Optional[requests.Session] = None,
    ):
        self.settings = settings
        self.runner = runner
        self.probe = probe
        self.api = api
        self.waiter = waiter or ReadinessWaiter()
        self.http = http or requests.Session()
        self.state = ProvisionState.ABSENT

    def _transition(self, state: ProvisionState) -> None:
        if state != self.state:
            logger.debug(f"{self.variant.value}: {self.state.value} -> {state.value}")
        self.state = state

    @abstractmethod
    def check_requirements(self) -> None:
        """Raise PreconditionError for hard failures; log soft ones."""

    @abstractmethod
    def is_installed(self) -> bool:
        ...

    @abstractmethod
    def is_ready(self) -> bool:
        """Live probe; never answered from cached state."""

    @abstractmethod
    def status(self, target: ClusterTarget) -> ClusterStatus:
        ...

    @abstractmethod
    def kubectl_binary(self) -> str:
        ...

    @abstractmethod
    def _provision(self, target: ClusterTarget) -> None:
        """Install and start the cluster, moving through WAITING_READY."""

    @abstractmethod
    def _teardown_steps(self, target: ClusterTarget) -> List[TeardownStep]:
        """Steps applicable to the current host state; empty when absent."""

    def install(self, target: ClusterTarget) -> ProvisionState:
        if self.is_ready():
            logger.warning(f"⚠️  {self.variant.value.upper()} cluster already running, nothing to install")
            self._transition(ProvisionState.READY)
            return self.state

        self._transition(ProvisionState.INSTALLING)
        try:
            backup_kubeconfig(target.kubeconfig_path)
            self._provision(target)
        except ProvisionError:
            self._transition(ProvisionState.FAILED)
            raise
        except (BootstrapError, requests.RequestException, OSError) as e:
            self._transition(ProvisionState.FAILED)
            raise ProvisionError(f"{self.variant.value.upper()} installation failed: {e}") from e

        self._transition(ProvisionState.READY)
        logger.info(f"✅ {self.variant.value.upper()} cluster is ready")
        return self.state

    def uninstall(self, target: ClusterTarget) -> List[StepOutcome]:
        steps = self._teardown_steps(target)
        if not steps:
            logger.info(f"No {self.variant.value.upper()} cluster found, nothing to remove")
        outcomes = [best_effort(name, action) for name, action in steps]
        self._transition(ProvisionState.ABSENT)
        return outcomes

    def _download(self, url: str) -> str:
        logger.info(f"📥 Downloading {url}")
        response = self.http.get(url, timeout=self.settings.http_timeout)
        response.raise_for_status()
        return response.text

    def _download_file(self, url: str, dest: Path) -> Path:
        logger.info(f"📥 Downloading {url}")
        with self.http.get(url, timeout=self.settings.http_timeout, stream=True) as response:
            response.raise_for_status()
            with open(dest, 'wb') as f:
                for chunk in response.iter_content(chunk_size=1 << 16):
                    f.write(chunk)
        return dest

    def _write_kubeconfig(self, target: ClusterTarget, content: str) -> None:
        path = Path(target.kubeconfig_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        path.chmod(0o600)
        logger.info(f"🔑 Wrote kubeconfig to {path}")
