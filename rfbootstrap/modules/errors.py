"""Exception hierarchy for cluster bootstrap operations."""
from enum import Enum
from typing import List, Optional, Sequence


class BootstrapError(Exception):
    """Base class for every error the CLI turns into exit code 1."""


class PreconditionError(BootstrapError):
    """A required tool, privilege or input is missing. Raised before any mutation."""

    def __init__(self, message: str, missing: Optional[Sequence[str]] = None):
        super().__init__(message)
        self.missing: List[str] = list(missing or [])


class CommandError(BootstrapError):
    """An external command exited non-zero or timed out."""

    def __init__(self, cmd: Sequence[str], returncode: Optional[int], stdout: str = "",
                 stderr: str = "", timed_out: bool = False):
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.timed_out = timed_out
        if timed_out:
            message = f"Command timed out: {' '.join(self.cmd)}"
        else:
            message = f"Command failed: {' '.join(self.cmd)} (exit code: {returncode})"
        if stderr:
            message += f"\n{stderr.strip()}"
        super().__init__(message)


class CredentialsFailure(str, Enum):
    MISSING = "missing"
    INCOMPLETE = "incomplete"


class CredentialsError(BootstrapError):
    def __init__(self, reason: CredentialsFailure, message: str,
                 missing_fields: Optional[Sequence[str]] = None):
        super().__init__(message)
        self.reason = reason
        self.missing_fields: List[str] = list(missing_fields or [])


class ProvisionError(BootstrapError):
    """Cluster provisioning reached the FAILED state."""


class ApplyError(BootstrapError):
    """A manifest could not be applied to the cluster."""

    def __init__(self, kind: str, name: str, message: str):
        super().__init__(f"Failed to apply {kind}/{name}: {message}")
        self.kind = kind
        self.name = name


class ReadinessTimeout(BootstrapError):
    """A readiness wait exhausted its attempts."""


class DeployFailure(str, Enum):
    CLUSTER_UNREACHABLE = "cluster_unreachable"
    NO_HELM = "no_helm"
    NO_CREDENTIALS = "no_credentials"
    NO_HOST_IP = "no_host_ip"
    INSTALL_FAILED = "install_failed"
    NOT_READY = "not_ready"


class DeployError(BootstrapError):
    def __init__(self, reason: DeployFailure, message: str):
        super().__init__(message)
        self.reason = reason
