"""Top-level install / status / uninstall / deploy workflows."""
import dataclasses
import logging
from typing import List, Optional

import requests
import typer

from ..config import Settings
from ..utils import best_effort
from ..utils.kube import ClusterApi, remove_kubeconfig, restore_kubeconfig
from . import credentials as credential_store
from .cluster import ClusterProvisioner, get_provisioner
from .errors import BootstrapError, PreconditionError
from .host import HostEnvironmentProbe
from .manifests import (REGISTRY_NAME, REGISTRY_NAMESPACE, ManifestApplier,
                        namespace_manifest, registry_manifests)
from .models import (ClusterPhase, ClusterTarget, ClusterVariant, DeploymentPlan,
                     DeployResult, RegistryStatus, RuntimeOptions, StatusReport,
                     StepOutcome)
from .readiness import ReadinessCheck, ReadinessWaiter, deployment_available, pods_ready
from .runner import CommandRunner
from .runtime import RuntimeDeployer

logger = logging.getLogger("rfbootstrap.orchestrator")

EXEMPTION_FILES = ('rfruntime-exemption.yaml', 'jira-profiling-exemption.yaml')
INGRESS_NAMESPACE = 'ingress-nginx'
INGRESS_SELECTOR = 'app.kubernetes.io/component=controller'


def build_target(variant: ClusterVariant, settings: Settings, registry_ip: Optional[str] = None,
                 version: Optional[str] = None) -> ClusterTarget:
    """Resolve a target from CLI flags, falling back to the environment."""
    variant = ClusterVariant(variant)
    name = 'rke2' if variant == ClusterVariant.RKE2 else settings.k3d_cluster_name
    return ClusterTarget(
        variant=variant,
        name=name,
        kubeconfig_path=settings.kubeconfig_path,
        registry_ip=registry_ip or settings.local_registry_override,
        version=version or settings.rke2_version,
    )


class Orchestrator:
    """Sequences the provisioner, manifests and runtime deployer.

    Collaborators can be injected; by default they are built from ``settings``
    with ``KUBECONFIG`` pointed at the target's kubeconfig for every command.
    """

    def __init__(
        self,
        target: ClusterTarget,
        settings: Settings,
        runner: Optional[CommandRunner] = None,
        probe: Optional[HostEnvironmentProbe] = None,
        api=None,
        waiter: Optional[ReadinessWaiter] = None,
        provisioner: Optional[ClusterProvisioner] = None,
        applier: Optional[ManifestApplier] = None,
        deployer: Optional[RuntimeDeployer] = None,
        http: Optional[requests.Session] = None,
    ):
        self.target = target
        self.settings = settings
        self.runner = runner or CommandRunner(
            env={'KUBECONFIG': str(target.kubeconfig_path)},
            timeout=settings.command_timeout,
        )
        self.probe = probe or HostEnvironmentProbe(
            self.runner, override_ip=settings.local_registry_override, meminfo_path=settings.meminfo_path,
        )
        self.api = api if api is not None else ClusterApi(target.kubeconfig_path)
        self.waiter = waiter or ReadinessWaiter()
        self.http = http or requests.Session()
        self.provisioner = provisioner or get_provisioner(
            target.variant, settings, self.runner, self.probe, self.api, self.waiter, self.http,
        )
        self.applier = applier or ManifestApplier(self.api)
        self.deployer = deployer or RuntimeDeployer(
            settings, self.runner, self.probe, self.api, self.applier, self.provisioner, self.waiter,
        )

    @property
    def kubectl(self) -> str:
        return self.provisioner.kubectl_binary()

    # ------------------------------------------------------------------ install

    def resolve_registry_ip(self, registry_ip: Optional[str] = None) -> Optional[str]:
        """Registry IP for the target.

        Only fatal when a registry is deployed; UDS leaves a miss to the
        runtime deployer.
        """
        ip = registry_ip or self.target.registry_ip or self.probe.detect_host_ip()
        if not ip and self.target.deploys_registry:
            raise PreconditionError(
                "Could not determine registry IP. Please set RF_LOCAL_REGISTRY or use --registry-ip"
            )
        return ip

    def install(self, registry_ip: Optional[str] = None, version: Optional[str] = None) -> StatusReport:
        ip = self.resolve_registry_ip(registry_ip)
        self.target = dataclasses.replace(
            self.target, registry_ip=ip, version=version or self.target.version,
        )
        caption = self.target.runtime.cluster_caption
        if self.target.deploys_registry:
            logger.info(f"Installing {caption} with registry at {ip}:5000")
        else:
            logger.info(f"Installing {caption}")

        self.provisioner.check_requirements()

        if self.provisioner.is_ready():
            logger.warning(f"⚠️  {caption} already running")
            return self.status()

        self.provisioner.install(self.target)
        self.execute_plan(self.build_plan())
        self.print_usage()

        if credential_store.exists(self.settings.credentials_path) and self.runner.which('helm'):
            logger.info("Found RapidFort credentials and helm, deploying RapidFort Runtime...")
            self.deploy_runtime(RuntimeOptions(registry_ip=ip))
        else:
            self.print_runtime_hints()

        logger.info("✅ Installation completed!")
        return self.status()

    def build_plan(self) -> DeploymentPlan:
        """Post-provision steps for the target variant."""
        plan = DeploymentPlan(self.target)
        if self.target.variant == ClusterVariant.RKE2:
            plan.add('Install ingress controller', self.install_ingress)
            plan.add('Wait for ingress controller', self.wait_for_ingress, required=False)
        if self.target.deploys_registry:
            plan.add('Create registry namespace', lambda: self.applier.apply(namespace_manifest(REGISTRY_NAMESPACE)))
            plan.add('Deploy registry', self.deploy_registry)
            plan.add('Wait for registry', self.wait_for_registry)
            plan.add('Check registry connectivity', self.check_registry, required=False)
        if self.target.variant == ClusterVariant.UDS:
            for filename in EXEMPTION_FILES:
                plan.add(f"Apply {filename}", lambda f=filename: self.apply_exemption(f), required=False)
        return plan

    def execute_plan(self, plan: DeploymentPlan) -> None:
        for step in plan.steps:
            logger.info(f"▶️  {step.name}")
            if step.required:
                step.action()
                continue
            try:
                step.action()
            except BootstrapError as e:
                logger.warning(f"⚠️  {step.name}: {e} (continuing)")

    def install_ingress(self) -> None:
        logger.info("Installing NGINX ingress controller...")
        self.runner.run([self.kubectl, 'apply', '-f', self.settings.ingress_manifest_url], check=True)

    def wait_for_ingress(self) -> None:
        self.waiter.require(
            ReadinessCheck(
                'ingress controller',
                pods_ready(self.api, INGRESS_NAMESPACE, INGRESS_SELECTOR),
                timeout=self.settings.ingress_ready_timeout,
                interval=self.settings.ready_interval,
            ),
            "Ingress taking longer to start",
        )

    def deploy_registry(self) -> None:
        logger.info("Installing registry with HTTP...")
        self.applier.apply_all(registry_manifests(self.target.registry_ip), REGISTRY_NAMESPACE)

    def wait_for_registry(self) -> None:
        self.waiter.require(
            ReadinessCheck(
                'registry deployment',
                deployment_available(self.api, REGISTRY_NAMESPACE, REGISTRY_NAME),
                timeout=self.settings.registry_ready_timeout,
                interval=self.settings.ready_interval,
            ),
            "Registry deployment did not become available",
        )

    def check_registry(self) -> bool:
        logger.info("Testing registry connectivity...")
        url = f"http://{self.target.registry_address}/v2/"
        check = ReadinessCheck(
            'registry endpoint',
            lambda: self.http.get(url, timeout=5).status_code < 500,
            timeout=self.settings.registry_probe_delay * 2,
            interval=self.settings.registry_probe_delay,
        )
        self.waiter.require(check, "Registry may not be fully ready yet")
        logger.info("✅ Registry is accessible")
        return True

    def apply_exemption(self, filename: str) -> None:
        path = self.settings.exemption_dir / filename
        if not path.is_file():
            logger.warning(f"⚠️  {filename} not found in {self.settings.exemption_dir}")
            return
        logger.info(f"Applying {filename}...")
        self.applier.apply_file(path)

    def print_usage(self) -> None:
        if self.target.variant == ClusterVariant.RKE2:
            ip = self.target.registry_address
            typer.echo("")
            typer.echo("Registry Details:")
            typer.echo(f"  • Registry URL: http://{ip}")
            typer.echo("")
            typer.echo("Usage:")
            typer.echo("  # Push with docker:")
            typer.echo(f"  docker tag myimage:latest {ip}/myimage:latest")
            typer.echo(f"  docker push {ip}/myimage:latest")
            typer.echo("")
            typer.echo("  # Use in Kubernetes:")
            typer.echo(f"  image: {ip}/myimage:latest")
            typer.echo("")
            typer.echo("RKE2 Commands:")
            typer.echo("  # Check status: systemctl status rke2-server")
            typer.echo("  # Check logs: journalctl -u rke2-server -f")
            typer.echo(f"  # RKE2 kubectl: {self.kubectl}")
        else:
            typer.echo("")
            typer.echo("UDS Cluster Details:")
            typer.echo(f"  • k3d cluster: {self.settings.k3d_cluster_name}")
            typer.echo("  • UDS Core installed")
            typer.echo("  • JIRA installed")
            typer.echo("  • Exemptions applied")

    def print_runtime_hints(self) -> None:
        if not credential_store.exists(self.settings.credentials_path):
            logger.info(f"RapidFort credentials not found at {self.settings.credentials_path}")
        if not self.runner.which('helm'):
            logger.info("Helm not found. Install helm to deploy RapidFort Runtime")
        typer.echo("To deploy RapidFort Runtime later:")
        typer.echo(f"  1. Ensure credentials are in {self.settings.credentials_path}")
        typer.echo("  2. Install helm if not already installed")
        typer.echo(f"  3. Run: rfbootstrap --cluster {self.target.variant.value} deploy-rapidfort")

    # ------------------------------------------------------------------- status

    def status(self) -> StatusReport:
        cluster = self.provisioner.status(self.target)
        report = StatusReport(cluster=cluster)
        if cluster.phase != ClusterPhase.RUNNING:
            return report

        if self.target.deploys_registry:
            try:
                if self.api.namespace_exists(REGISTRY_NAMESPACE):
                    ready = self.api.deployment_ready_replicas(REGISTRY_NAMESPACE, REGISTRY_NAME) >= 1
                    report.registry = RegistryStatus(
                        ready=ready,
                        external_ip=self.api.service_external_ip(REGISTRY_NAMESPACE, REGISTRY_NAME),
                    )
            except Exception as e:
                logger.debug(f"Unable to read registry status: {e}")

        try:
            report.runtime = self.deployer.status(self.target)
        except Exception as e:
            logger.debug(f"Unable to read RapidFort Runtime status: {e}")
        return report

    # ---------------------------------------------------------------- uninstall

    def uninstall(self) -> List[StepOutcome]:
        logger.info("Uninstalling everything...")
        outcomes: List[StepOutcome] = []
        outcomes += self.deployer.teardown(self.target)
        outcomes += self.provisioner.uninstall(self.target)
        outcomes.append(best_effort('Remove kubeconfig', remove_kubeconfig, self.target.kubeconfig_path))
        outcomes.append(best_effort('Restore kubeconfig backup', restore_kubeconfig, self.target.kubeconfig_path))
        logger.info("✅ Uninstall completed")
        return outcomes

    # ------------------------------------------------------------------- deploy

    def deploy_runtime(self, options: Optional[RuntimeOptions] = None) -> DeployResult:
        return self.deployer.deploy(self.target, options)
