"""Configuration management for the rfbootstrap application."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()

TRUTHY = {"1", "true", "yes", "on"}
FALSY = {"0", "false", "no", "off"}


def parse_bool(value: Any, default: Optional[bool] = None) -> Optional[bool]:
    """Interpret a boolean-ish environment value.

    Unset or unrecognised values return ``default``.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in TRUTHY:
        return True
    if normalized in FALSY:
        return False
    return default


def _home() -> Path:
    return Path(os.path.expanduser("~"))


@dataclass
class Settings:
    """Application settings with sensible defaults.

    Every path and retry budget can be overridden, which is how the test-suite
    points the provisioners at a temporary directory instead of ``/etc``.
    """

    # Environment driven behaviour
    local_registry_override: Optional[str] = None
    use_local_registry: bool = False
    rke2_version: str = "latest"

    # User state
    kubeconfig_path: Path = field(default_factory=lambda: _home() / ".kube" / "config")
    credentials_path: Path = field(default_factory=lambda: _home() / ".rapidfort" / "credentials")
    registry_secret_path: Path = field(
        default_factory=lambda: _home() / ".rapidfort" / "rapidfort-registry-secret.yaml"
    )
    bashrc_path: Path = field(default_factory=lambda: _home() / ".bashrc")

    # RKE2 host paths
    rke2_config_dir: Path = Path("/etc/rancher/rke2")
    rke2_data_dir: Path = Path("/var/lib/rancher/rke2")
    rke2_binary: Path = Path("/usr/local/bin/rke2")
    rke2_uninstall_script: Path = Path("/usr/local/bin/rke2-uninstall.sh")
    rke2_install_url: str = "https://get.rke2.io"
    sysctl_path: Path = Path("/etc/sysctl.d/k8s.conf")
    fstab_path: Path = Path("/etc/fstab")
    meminfo_path: Path = Path("/proc/meminfo")

    # UDS / k3d
    uds_work_dir: Path = Path("/tmp/uds-work")
    uds_package_repo: str = "https://github.com/defenseunicorns/uds-package-jira"
    uds_cli_url: str = "https://github.com/defenseunicorns/uds-cli/releases/latest/download/uds-cli_{os}_{arch}"
    k3d_install_url: str = "https://raw.githubusercontent.com/k3d-io/k3d/main/install.sh"
    k3d_cluster_name: str = "uds-jira"
    uds_bin_dir: Path = Path("/usr/local/bin")
    exemption_dir: Path = field(default_factory=Path.cwd)

    # Ingress
    ingress_manifest_url: str = (
        "https://raw.githubusercontent.com/kubernetes/ingress-nginx/"
        "controller-v1.8.2/deploy/static/provider/baremetal/deploy.yaml"
    )

    # Retry budgets (attempts = timeout // interval)
    service_ready_timeout: int = 300
    service_ready_interval: int = 5
    node_ready_timeout: int = 300
    ready_interval: int = 5
    ingress_ready_timeout: int = 300
    registry_ready_timeout: int = 300
    runtime_ready_timeout: int = 300
    registry_probe_delay: int = 10
    helm_timeout: str = "5m"

    # Command timeouts (seconds)
    command_timeout: int = 600
    uds_run_timeout: int = 3600
    http_timeout: int = 30

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from the process environment (or a given mapping)."""
        env = os.environ if environ is None else environ
        settings = cls()

        settings.local_registry_override = env.get("RF_LOCAL_REGISTRY") or None
        settings.use_local_registry = bool(parse_bool(env.get("RF_USE_LOCAL_REGISTRY"), False))
        settings.rke2_version = env.get("RKE2_VERSION") or "latest"

        if env.get("KUBECONFIG_PATH"):
            settings.kubeconfig_path = Path(os.path.expanduser(env["KUBECONFIG_PATH"]))
        if env.get("RF_CREDENTIALS_FILE"):
            settings.credentials_path = Path(os.path.expanduser(env["RF_CREDENTIALS_FILE"]))
        if env.get("RF_EXEMPTION_DIR"):
            settings.exemption_dir = Path(os.path.expanduser(env["RF_EXEMPTION_DIR"]))
        if env.get("UDS_WORK_DIR"):
            settings.uds_work_dir = Path(env["UDS_WORK_DIR"])

        for attr, var in (
            ("service_ready_timeout", "RF_SERVICE_READY_TIMEOUT"),
            ("service_ready_interval", "RF_SERVICE_READY_INTERVAL"),
            ("node_ready_timeout", "RF_NODE_READY_TIMEOUT"),
            ("ready_interval", "RF_READY_INTERVAL"),
            ("ingress_ready_timeout", "RF_INGRESS_READY_TIMEOUT"),
            ("registry_ready_timeout", "RF_REGISTRY_READY_TIMEOUT"),
            ("runtime_ready_timeout", "RF_RUNTIME_READY_TIMEOUT"),
            ("command_timeout", "RF_COMMAND_TIMEOUT"),
        ):
            if env.get(var):
                setattr(settings, attr, int(env[var]))

        settings.log_level = env.get("LOG_LEVEL", settings.log_level).upper()
        settings.log_format = env.get("LOG_FORMAT", settings.log_format)
        return settings
