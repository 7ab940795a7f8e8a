"""UDS (k3d) cluster provisioning via ``uds run default``."""
import json
import logging
import os
import re
import shutil
import tempfile
from pathlib import Path
from typing import List

from ..errors import PreconditionError, ProvisionError
from ..models import ClusterPhase, ClusterStatus, ClusterTarget, ClusterVariant, ProvisionState
from ..readiness import ReadinessCheck, WaitOutcome, nodes_ready
from .base import ClusterProvisioner, TeardownStep

logger = logging.getLogger("rfbootstrap.cluster.uds")

UDS_NAMESPACE_PATTERN = re.compile(r'(uds|jira|default)')
STATUS_POD_LIMIT = 5


class UDSProvisioner(ClusterProvisioner):
    variant = ClusterVariant.UDS

    @property
    def repo_dir(self) -> Path:
        name = self.settings.uds_package_repo.rstrip('/').rsplit('/', 1)[-1]
        if name.endswith('.git'):
            name = name[:-4]
        return self.settings.uds_work_dir / name

    def check_requirements(self) -> None:
        logger.info("Checking system requirements...")
        missing = self.probe.check_prerequisites(['docker', 'git'])
        if 'docker' not in missing and not self.probe.docker_running():
            missing.append('docker (daemon not running)')
        if missing:
            raise PreconditionError(
                f"Missing requirements: {', '.join(missing)}", missing=missing
            )
        logger.info("✅ System requirements check passed")

    def is_installed(self) -> bool:
        return bool(self.runner.which('uds'))

    def cluster_exists(self) -> bool:
        if not self.runner.which('k3d'):
            return False
        result = self.runner.run(['k3d', 'cluster', 'list', '-o', 'json'])
        if not result.ok:
            return False
        try:
            clusters = json.loads(result.stdout or '[]')
        except json.JSONDecodeError:
            logger.debug(f"Unexpected k3d output: {result.stdout!r}")
            return False
        return any(c.get('name') == self.settings.k3d_cluster_name for c in clusters)

    def is_ready(self) -> bool:
        return self.cluster_exists()

    def kubectl_binary(self) -> str:
        return self.runner.which('kubectl') or 'kubectl'

    def version(self) -> str:
        result = self.runner.run(['uds', 'version'])
        return result.stdout.strip() if result.ok and result.stdout.strip() else 'unknown'

    def status(self, target: ClusterTarget) -> ClusterStatus:
        if not self.is_installed():
            return ClusterStatus(ClusterPhase.NOT_INSTALLED)

        version = self.version()
        if not self.cluster_exists():
            return ClusterStatus(ClusterPhase.STOPPED, version=version)

        try:
            nodes = self.api.list_nodes()
        except Exception as e:
            logger.debug(f"Unable to get cluster info: {e}")
            return ClusterStatus(ClusterPhase.INSTALLED, version=version)

        details = {}
        try:
            details['namespaces'] = [
                ns for ns in self.api.list_namespaces() if UDS_NAMESPACE_PATTERN.search(ns)
            ]
            if 'jira' in details['namespaces']:
                details['jira_pods'] = self.api.list_pods('jira')[:STATUS_POD_LIMIT]
        except Exception as e:
            logger.debug(f"Unable to list UDS namespaces: {e}")
        return ClusterStatus(ClusterPhase.RUNNING, version=version, nodes=nodes, details=details)

    def _provision(self, target: ClusterTarget) -> None:
        self.ensure_uds_cli()
        self.ensure_k3d()
        self.sync_package_repo()

        logger.info("Running 'uds run default' to create the k3d cluster, install uds-core and JIRA...")
        logger.info("⏳ This may take 10-15 minutes...")
        result = self.runner.run(['uds', 'run', 'default'], capture=False, cwd=self.repo_dir,
                                 timeout=self.settings.uds_run_timeout)
        if not result.ok:
            raise ProvisionError("UDS deployment failed")
        logger.info("✅ UDS deployment completed")

        self._transition(ProvisionState.WAITING_READY)
        logger.info("Setting up kubeconfig...")
        kubeconfig = self.runner.run(
            ['k3d', 'kubeconfig', 'get', self.settings.k3d_cluster_name], check=True
        )
        self._write_kubeconfig(target, kubeconfig.stdout)

        outcome = self.waiter.wait(ReadinessCheck(
            'UDS nodes',
            nodes_ready(self.api),
            timeout=self.settings.node_ready_timeout,
            interval=self.settings.ready_interval,
        ))
        if outcome is WaitOutcome.TIMED_OUT:
            logger.warning("⚠️  Some nodes not ready yet, continuing")

    def ensure_uds_cli(self) -> None:
        if self.runner.which('uds'):
            logger.info("uds-cli already installed")
            return

        logger.info("📦 Installing uds-cli...")
        os_name = 'darwin' if self.probe.os_family() == 'darwin' else 'linux'
        url = self.settings.uds_cli_url.format(os=os_name, arch=self.probe.architecture())
        bin_dir = self.settings.uds_bin_dir
        dest = bin_dir / 'uds'

        with tempfile.TemporaryDirectory() as tmp:
            downloaded = self._download_file(url, Path(tmp) / 'uds')
            downloaded.chmod(0o755)
            if os.access(bin_dir, os.W_OK):
                shutil.move(str(downloaded), str(dest))
            else:
                self.runner.run(['sudo', 'mv', str(downloaded), str(dest)], check=True)
        logger.info("✅ uds-cli installed")

    def ensure_k3d(self) -> None:
        if self.runner.which('k3d'):
            logger.info("k3d already installed")
            return
        logger.info("📦 Installing k3d...")
        script = self._download(self.settings.k3d_install_url)
        self.runner.run(['bash'], input=script, check=True, timeout=self.settings.command_timeout)
        logger.info("✅ k3d installed")

    def sync_package_repo(self) -> None:
        self.settings.uds_work_dir.mkdir(parents=True, exist_ok=True)
        if self.repo_dir.is_dir():
            logger.info("Repository already exists, updating...")
            self.runner.run(['git', 'pull'], cwd=self.repo_dir, check=True)
        else:
            logger.info(f"Cloning {self.settings.uds_package_repo}...")
            self.runner.run(['git', 'clone', self.settings.uds_package_repo, str(self.repo_dir)],
                            cwd=self.settings.uds_work_dir, check=True)

    def _teardown_steps(self, target: ClusterTarget) -> List[TeardownStep]:
        steps: List[TeardownStep] = []
        if self.cluster_exists():
            steps.append((
                'Delete k3d cluster',
                lambda: self.runner.run(['k3d', 'cluster', 'delete', self.settings.k3d_cluster_name],
                                        check=True, timeout=self.settings.command_timeout),
            ))
        if self.settings.uds_work_dir.exists():
            steps.append(('Remove UDS work directory', lambda: shutil.rmtree(self.settings.uds_work_dir)))
        return steps
