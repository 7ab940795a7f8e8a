"""RKE2 single-node server provisioning."""
import logging
import shutil
from pathlib import Path
from typing import Any, Dict, List

from ...utils import write_yaml_file
from ..errors import PreconditionError, ProvisionError
from ..manifests import render_sysctl_conf
from ..models import ClusterPhase, ClusterStatus, ClusterTarget, ClusterVariant, ProvisionState
from ..readiness import ReadinessCheck, nodes_ready
from .base import ClusterProvisioner, TeardownStep

logger = logging.getLogger("rfbootstrap.cluster.rke2")

SERVICE = 'rke2-server.service'
MIN_MEMORY_KB = 4 * 1024 * 1024
MIN_CPUS = 2
KERNEL_MODULES = ('overlay', 'br_netfilter')


def server_config(registry_ip: str, registries_path: Path) -> Dict[str, Any]:
    """Contents of ``/etc/rancher/rke2/config.yaml``."""
    return {
        'write-kubeconfig-mode': '0644',
        'tls-san': [registry_ip],
        'node-label': ['ingress-ready=true'],
        'disable': ['rke2-ingress-nginx'],
        'private-registry': str(registries_path),
    }


def registries_config(registry_ip: str, port: int = 5000) -> Dict[str, Any]:
    """Plain-HTTP mirror for the in-cluster registry."""
    address = f"{registry_ip}:{port}"
    return {
        'mirrors': {address: {'endpoint': [f"http://{address}"]}},
        'configs': {address: {'tls': {'insecure_skip_verify': True}}},
    }


def comment_out_swap(fstab: str) -> str:
    lines = []
    for line in fstab.splitlines(keepends=True):
        if ' swap ' in line and not line.lstrip().startswith('#'):
            line = '#' + line
        lines.append(line)
    return ''.join(lines)


class RKE2Provisioner(ClusterProvisioner):
    variant = ClusterVariant.RKE2

    @property
    def config_path(self) -> Path:
        return self.settings.rke2_config_dir / 'config.yaml'

    @property
    def registries_path(self) -> Path:
        return self.settings.rke2_config_dir / 'registries.yaml'

    @property
    def generated_kubeconfig(self) -> Path:
        return self.settings.rke2_config_dir / 'rke2.yaml'

    @property
    def bin_dir(self) -> Path:
        return self.settings.rke2_data_dir / 'bin'

    def check_requirements(self) -> None:
        logger.info("Checking system requirements...")
        if self.probe.os_family() != 'linux':
            raise PreconditionError("RKE2 is only supported on Linux")
        if not self.probe.is_root():
            raise PreconditionError("RKE2 installation must be run as root or with sudo")
        memory = self.probe.memory_available_kb()
        cpus = self.probe.cpu_count()
        logger.debug(f"Host resources: {cpus} CPUs, {memory} kB memory available")

        if memory is not None and memory < MIN_MEMORY_KB:
            logger.warning("⚠️  Less than 4GB of available memory. RKE2 may have issues.")
        if cpus < MIN_CPUS:
            logger.warning("⚠️  Less than 2 CPUs detected. RKE2 may run slowly.")
        logger.info("✅ System requirements check passed")

    def is_installed(self) -> bool:
        return bool(self.runner.which('rke2')) or self.settings.rke2_binary.exists()

    def is_running(self) -> bool:
        return self.runner.run(['systemctl', 'is-active', '--quiet', 'rke2-server']).ok

    def is_ready(self) -> bool:
        return self.is_installed() and self.is_running()

    def version(self) -> str:
        binary = self.runner.which('rke2') or str(self.settings.rke2_binary)
        result = self.runner.run([binary, '--version'])
        if result.ok and result.stdout.strip():
            return result.stdout.strip().splitlines()[0]
        return 'unknown'

    def kubectl_binary(self) -> str:
        found = self.runner.which('kubectl')
        if found:
            return found
        return str(self.bin_dir / 'kubectl')

    def status(self, target: ClusterTarget) -> ClusterStatus:
        if not self.is_installed():
            return ClusterStatus(ClusterPhase.NOT_INSTALLED)

        version = self.version()
        if not self.is_running():
            return ClusterStatus(ClusterPhase.STOPPED, version=version)

        if Path(target.kubeconfig_path).exists():
            try:
                return ClusterStatus(ClusterPhase.RUNNING, version=version, nodes=self.api.list_nodes())
            except Exception as e:
                logger.debug(f"Unable to get cluster info: {e}")
        return ClusterStatus(ClusterPhase.INSTALLED, version=version)

    def _provision(self, target: ClusterTarget) -> None:
        if not target.registry_ip:
            raise ProvisionError("A registry IP is required to configure RKE2")

        self._prepare_host()
        self._run_installer(target.version)
        self._write_config(target.registry_ip)

        logger.info("🚀 Starting RKE2 server...")
        self.runner.run(['systemctl', 'enable', SERVICE], check=True)
        self.runner.run(['systemctl', 'start', SERVICE], check=True)

        self._transition(ProvisionState.WAITING_READY)
        self.waiter.require(
            ReadinessCheck(
                'RKE2 server',
                lambda: self.is_running() and self.generated_kubeconfig.exists(),
                timeout=self.settings.service_ready_timeout,
                interval=self.settings.service_ready_interval,
            ),
            "RKE2 failed to start properly",
        )

        logger.info("Setting up kubeconfig...")
        self._write_kubeconfig(target, self.generated_kubeconfig.read_text())
        self._add_bin_dir_to_path()

        self.waiter.require(
            ReadinessCheck(
                'RKE2 nodes',
                nodes_ready(self.api),
                timeout=self.settings.node_ready_timeout,
                interval=self.settings.ready_interval,
            ),
            "RKE2 nodes did not become Ready",
        )

    def _prepare_host(self) -> None:
        logger.info("Preparing host (swap, kernel modules, sysctl)...")
        self.runner.run(['swapoff', '-a'], check=True)
        fstab = self.settings.fstab_path
        if fstab.exists():
            original = fstab.read_text()
            updated = comment_out_swap(original)
            if updated != original:
                fstab.write_text(updated)

        for module in KERNEL_MODULES:
            self.runner.run(['modprobe', module], check=True)

        sysctl = self.settings.sysctl_path
        sysctl.parent.mkdir(parents=True, exist_ok=True)
        sysctl.write_text(render_sysctl_conf())
        self.runner.run(['sysctl', '--system'], check=True)

    def _run_installer(self, version: str) -> None:
        logger.info(f"📦 Installing RKE2 ({version})...")
        script = self._download(self.settings.rke2_install_url)
        env = {}
        if version and version != 'latest':
            env['INSTALL_RKE2_VERSION'] = version
        self.runner.run(['sh', '-'], input=script, env=env, check=True,
                        timeout=self.settings.command_timeout)

    def _write_config(self, registry_ip: str) -> None:
        self.settings.rke2_config_dir.mkdir(parents=True, exist_ok=True)
        write_yaml_file(self.config_path, server_config(registry_ip, self.registries_path))
        write_yaml_file(self.registries_path, registries_config(registry_ip))
        logger.debug(f"Wrote {self.config_path} and {self.registries_path}")

    def _add_bin_dir_to_path(self) -> None:
        line = f'export PATH="{self.bin_dir}:$PATH"'
        bashrc = self.settings.bashrc_path
        existing = bashrc.read_text() if bashrc.exists() else ''
        if line in existing:
            return
        with open(bashrc, 'a') as f:
            if existing and not existing.endswith('\n'):
                f.write('\n')
            f.write(line + '\n')

    def _teardown_steps(self, target: ClusterTarget) -> List[TeardownStep]:
        if not self.is_installed():
            return []
        steps: List[TeardownStep] = [
            ('Stop RKE2', lambda: self.runner.run(['systemctl', 'stop', 'rke2-server'], check=True)),
            ('Disable RKE2', lambda: self.runner.run(['systemctl', 'disable', 'rke2-server'], check=True)),
        ]
        if self.settings.rke2_uninstall_script.exists():
            steps.append((
                'Run RKE2 uninstall script',
                lambda: self.runner.run([str(self.settings.rke2_uninstall_script)], check=True,
                                        timeout=self.settings.command_timeout),
            ))
        steps += [
            ('Remove RKE2 configuration', lambda: _remove(self.settings.rke2_config_dir)),
            ('Remove RKE2 data', lambda: _remove(self.settings.rke2_data_dir)),
            ('Remove RKE2 binary', lambda: _remove(self.settings.rke2_binary)),
        ]
        return steps


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()
    else:
        return
    logger.info(f"🧹 Removed {path}")
