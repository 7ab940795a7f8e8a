"""RapidFort Runtime deployment via Helm."""
import logging
from pathlib import Path
from typing import Dict, List, Optional

from ..config import Settings
from ..utils import best_effort
from . import credentials as credential_store
from .credentials import Credentials
from .errors import ApplyError, CredentialsError, DeployError, DeployFailure
from .host import HostEnvironmentProbe
from .manifests import ManifestApplier, namespace_manifest, secret_manifest
from .models import (ClusterTarget, DeployResult, RuntimeOptions, RuntimeStatus,
                     StepOutcome)
from .readiness import ReadinessCheck, ReadinessWaiter, WaitOutcome, pods_ready
from .runner import CommandRunner

logger = logging.getLogger("rfbootstrap.runtime")

RELEASE_NAME = 'rfruntime'
CHART = 'oci://quay.io/rapidfort/runtime'
CREDENTIALS_SECRET = 'rfruntime-credentials'
PULL_SECRET = 'rapidfort-registry-secret'
POD_SELECTOR = 'app=rfruntime'
PROFILE_LABEL = {'rapidfort.io/profile': 'enabled'}


def resolve_use_local_registry(flag: Optional[bool], env_value: bool) -> bool:
    """An explicit flag wins; otherwise fall back to RF_USE_LOCAL_REGISTRY."""
    if flag is not None:
        return flag
    return env_value


def build_overrides(
    target: ClusterTarget,
    registry_ip: Optional[str],
    use_local_registry: bool,
    image_tag: Optional[str] = None,
    pull_secret_present: bool = False,
) -> Dict[str, str]:
    """Helm ``--set`` values for the runtime chart, in command-line order."""
    profile = target.runtime
    overrides = {
        'ClusterName': profile.cluster_name,
        'ClusterCaption': profile.cluster_caption,
        'rapidfort.credentialsSecret': CREDENTIALS_SECRET,
        'variant': profile.chart_variant,
        'scan.enabled': 'true',
        'profile.enabled': 'true',
    }
    if use_local_registry:
        overrides['registry'] = f"{registry_ip}:5000/rapidfort"
        if image_tag:
            overrides['imageTag'] = image_tag
        overrides['imagePullPolicy'] = 'Always'
    elif pull_secret_present:
        overrides['imagePullSecrets.names'] = '{' + PULL_SECRET + '}'
    return overrides


def helm_install_args(namespace: str, overrides: Dict[str, str], timeout: str = '5m') -> List[str]:
    args = ['upgrade', '--install', RELEASE_NAME, CHART, '--namespace', namespace]
    for key, value in overrides.items():
        args += ['--set', f"{key}={value}"]
    args += ['--wait', f'--timeout={timeout}']
    return args


class RuntimeDeployer:
    def __init__(
        self,
        settings: Settings,
        runner: CommandRunner,
        probe: HostEnvironmentProbe,
        api,
        applier: ManifestApplier,
        provisioner,
        waiter: Optional[ReadinessWaiter] = None,
    ):
        self.settings = settings
        self.runner = runner
        self.probe = probe
        self.api = api
        self.applier = applier
        self.provisioner = provisioner
        self.waiter = waiter or ReadinessWaiter()

    @property
    def kubectl(self) -> str:
        return self.provisioner.kubectl_binary()

    def deploy(self, target: ClusterTarget, options: Optional[RuntimeOptions] = None,
               credentials: Optional[Credentials] = None) -> DeployResult:
        """Install or upgrade the runtime release and wait for its pods.

        Preconditions are checked in order (cluster, helm, credentials, host
        IP) and each raises :class:`DeployError` before anything is mutated.
        ``credentials`` are read from the configured file when not given.
        """
        options = options or RuntimeOptions()
        profile = target.runtime
        namespace = profile.namespace
        logger.info(f"🚀 Deploying RapidFort Runtime to {profile.cluster_caption} (namespace {namespace})")

        if not self.provisioner.is_ready() or not self.api.reachable():
            raise DeployError(
                DeployFailure.CLUSTER_UNREACHABLE,
                f"{profile.cluster_caption} is not running. Install it first with: rfbootstrap install",
            )

        if not self.runner.which('helm'):
            raise DeployError(
                DeployFailure.NO_HELM,
                "Helm is not installed. Please install helm first: https://helm.sh/docs/intro/install/",
            )

        creds = credentials
        if creds is None:
            try:
                creds = credential_store.load(self.settings.credentials_path)
            except CredentialsError as e:
                raise DeployError(DeployFailure.NO_CREDENTIALS, str(e)) from e

        registry_ip = options.registry_ip or target.registry_ip or self.probe.detect_host_ip()
        if not registry_ip:
            raise DeployError(
                DeployFailure.NO_HOST_IP,
                "Could not determine host IP address. Please set RF_LOCAL_REGISTRY or use --registry-ip",
            )
        logger.info(f"Using registry IP: {registry_ip}")

        try:
            if namespace != 'default':
                self.applier.apply(namespace_manifest(namespace))
            self.applier.apply(secret_manifest(CREDENTIALS_SECRET, namespace, creds.as_secret_data()), namespace)
            pull_secret = Path(self.settings.registry_secret_path)
            pull_secret_present = pull_secret.is_file()
            if pull_secret_present:
                self.applier.apply_file(pull_secret, namespace=namespace)
        except ApplyError as e:
            raise DeployError(DeployFailure.INSTALL_FAILED, str(e)) from e

        use_local = resolve_use_local_registry(options.local_registry, self.settings.use_local_registry)
        overrides = build_overrides(target, registry_ip, use_local, options.image_tag, pull_secret_present)

        logger.info("📦 Installing RapidFort Runtime with Helm...")
        result = self.runner.run(
            ['helm'] + helm_install_args(namespace, overrides, self.settings.helm_timeout),
            capture=False,
            timeout=self.settings.command_timeout,
        )
        if not result.ok:
            logger.error("❌ Helm installation failed")
            self.dump_diagnostics(namespace)
            raise DeployError(DeployFailure.INSTALL_FAILED, "Helm installation of RapidFort Runtime failed")
        logger.info(f"✅ RapidFort Runtime helm chart installed in namespace {namespace}")

        for profiled in profile.profiling_namespaces:
            logger.info(f"Labeling {profiled} namespace for profiling...")
            best_effort(f"Label namespace {profiled}", self.api.label_namespace, profiled, PROFILE_LABEL)

        outcome = self.waiter.wait(ReadinessCheck(
            'RapidFort Runtime pods',
            pods_ready(self.api, namespace, POD_SELECTOR),
            timeout=self.settings.runtime_ready_timeout,
            interval=self.settings.ready_interval,
        ))
        if outcome is WaitOutcome.TIMED_OUT:
            logger.error("❌ RapidFort Runtime deployment failed")
            self.dump_diagnostics(namespace)
            raise DeployError(DeployFailure.NOT_READY, "RapidFort Runtime pods did not become ready")

        logger.info("✅ RapidFort Runtime deployed successfully")
        pods = self.api.list_pods(namespace, POD_SELECTOR)

        for profiled in profile.profiling_namespaces:
            logger.info(f"Restarting {profiled} pods to enable profiling...")
            best_effort(f"Restart pods in {profiled}", self.api.delete_pods, profiled)

        return DeployResult(release=RELEASE_NAME, namespace=namespace, overrides=overrides, pods=pods)

    def dump_diagnostics(self, namespace: str) -> str:
        result = self.runner.run([self.kubectl, 'describe', 'pods', '-n', namespace, '-l', POD_SELECTOR])
        output = result.stdout or result.stderr
        if output:
            logger.error(f"📜 Pod diagnostics for namespace {namespace}:\n{output}")
        return output

    def release_installed(self, namespace: str) -> bool:
        result = self.runner.run(['helm', 'list', '-n', namespace, '-q'])
        return result.ok and RELEASE_NAME in result.stdout.split()

    def teardown(self, target: ClusterTarget) -> List[StepOutcome]:
        """Remove the runtime release; every step is best effort."""
        namespace = target.runtime.namespace
        if not self.runner.which('helm'):
            logger.debug("helm not found, skipping RapidFort Runtime teardown")
            return []
        if not self.api.reachable():
            logger.debug("Cluster API unreachable, skipping RapidFort Runtime teardown")
            return []
        try:
            present = self.api.namespace_exists(namespace) and self.release_installed(namespace)
        except Exception as e:
            logger.warning(f"⚠️  Could not inspect RapidFort Runtime release: {e}")
            return []
        if not present:
            return []

        logger.info("🧹 Uninstalling RapidFort Runtime...")
        outcomes = [best_effort(
            'Uninstall RapidFort Runtime',
            self.runner.run, ['helm', 'uninstall', RELEASE_NAME, '-n', namespace], check=True,
        )]
        if namespace != 'default':
            outcomes.append(best_effort(f"Delete namespace {namespace}", self.api.delete_namespace, namespace))
        return outcomes

    def status(self, target: ClusterTarget) -> Optional[RuntimeStatus]:
        namespace = target.runtime.namespace
        if not self.api.namespace_exists(namespace):
            return None
        pods = self.api.list_pods(namespace, POD_SELECTOR)
        running = sum(1 for pod in pods if pod.phase == 'Running')
        return RuntimeStatus(namespace=namespace, running=running, pods=pods)
