import logging
import os
import shutil
from functools import cached_property
from pathlib import Path
from typing import Dict, List, Optional, Union

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.dynamic import DynamicClient

from ..modules.models import NodeInfo, PodInfo

logger = logging.getLogger("rfbootstrap.kube")

BACKUP_SUFFIX = ".backup"


def load_kubeconfig(path: Union[str, Path]) -> client.ApiClient:
    """
    Build an API client from the kubeconfig at ``path``.

    Unlike ``config.load_kube_config`` this does not touch the global default
    configuration, so several targets can coexist in one process.
    """
    resolved = Path(os.path.expanduser(str(path))).resolve()
    if not resolved.exists():
        raise FileNotFoundError(f"❌ Kubeconfig not found: {resolved}")
    return config.new_client_from_config(config_file=str(resolved))


def backup_kubeconfig(path: Union[str, Path]) -> Optional[Path]:
    """Move an existing kubeconfig aside before a fresh install writes a new one.

    An existing backup is left alone so the user's original config survives
    repeated install attempts.
    """
    path = Path(path)
    backup = path.with_name(path.name + BACKUP_SUFFIX)
    if not path.exists():
        return None
    if backup.exists():
        logger.info(f"Keeping existing kubeconfig backup at {backup}")
        return backup
    logger.warning(f"⚠️  Existing kubeconfig found, backing up to {backup}")
    shutil.move(str(path), str(backup))
    return backup


def remove_kubeconfig(path: Union[str, Path]) -> bool:
    path = Path(path)
    if path.exists():
        path.unlink()
        logger.info(f"🧹 Removed kubeconfig {path}")
        return True
    return False


def restore_kubeconfig(path: Union[str, Path]) -> bool:
    path = Path(path)
    backup = path.with_name(path.name + BACKUP_SUFFIX)
    if not backup.exists():
        return False
    shutil.move(str(backup), str(path))
    logger.info("Restored previous kubeconfig")
    return True


def _pod_ready(pod) -> bool:
    for condition in (pod.status.conditions or []) if pod.status else []:
        if condition.type == 'Ready':
            return condition.status == 'True'
    return False


class ClusterApi:
    """Thin wrapper over the Kubernetes client for the calls bootstrap needs.

    The API client is created lazily: during ``install`` the kubeconfig only
    appears once the distribution has started.
    """

    def __init__(self, kubeconfig_path: Union[str, Path], api_client: Optional[client.ApiClient] = None):
        self.kubeconfig_path = Path(kubeconfig_path)
        self._api_client = api_client

    @property
    def api_client(self) -> client.ApiClient:
        if self._api_client is None:
            self._api_client = load_kubeconfig(self.kubeconfig_path)
        return self._api_client

    @cached_property
    def core(self) -> client.CoreV1Api:
        return client.CoreV1Api(self.api_client)

    @cached_property
    def apps(self) -> client.AppsV1Api:
        return client.AppsV1Api(self.api_client)

    @cached_property
    def dynamic(self) -> DynamicClient:
        return DynamicClient(self.api_client)

    def reachable(self) -> bool:
        try:
            client.VersionApi(self.api_client).get_code()
            return True
        except Exception as e:
            # urllib3 connection errors surface as a variety of types
            logger.debug(f"Cluster API not reachable: {e}")
            return False

    def list_nodes(self) -> List[NodeInfo]:
        nodes = []
        for node in self.core.list_node().items:
            conditions = {c.type: c.status for c in (node.status.conditions or [])}
            labels = node.metadata.labels or {}
            roles = sorted(
                key.split('/', 1)[1] for key in labels
                if key.startswith('node-role.kubernetes.io/')
            )
            nodes.append(NodeInfo(
                name=node.metadata.name,
                ready=conditions.get('Ready') == 'True',
                roles=roles,
                version=node.status.node_info.kubelet_version if node.status.node_info else '',
            ))
        return nodes

    def namespace_exists(self, name: str) -> bool:
        try:
            self.core.read_namespace(name)
            return True
        except ApiException as e:
            if e.status == 404:
                return False
            raise

    def list_namespaces(self) -> List[str]:
        return [ns.metadata.name for ns in self.core.list_namespace().items]

    def deployment_ready_replicas(self, namespace: str, name: str) -> int:
        try:
            deployment = self.apps.read_namespaced_deployment(name, namespace)
        except ApiException as e:
            if e.status == 404:
                return 0
            raise
        return deployment.status.ready_replicas or 0

    def deployment_available(self, namespace: str, name: str) -> bool:
        try:
            deployment = self.apps.read_namespaced_deployment(name, namespace)
        except ApiException as e:
            if e.status == 404:
                return False
            raise
        for condition in deployment.status.conditions or []:
            if condition.type == 'Available':
                return condition.status == 'True'
        return False

    def service_external_ip(self, namespace: str, name: str) -> Optional[str]:
        try:
            service = self.core.read_namespaced_service(name, namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise
        ips = service.spec.external_i_ps or []
        return ips[0] if ips else None

    def list_pods(self, namespace: str, selector: Optional[str] = None) -> List[PodInfo]:
        kwargs = {'label_selector': selector} if selector else {}
        pods = self.core.list_namespaced_pod(namespace, **kwargs).items
        return [
            PodInfo(
                name=pod.metadata.name,
                phase=pod.status.phase if pod.status else 'Unknown',
                ready=_pod_ready(pod),
            )
            for pod in pods
        ]

    def label_namespace(self, name: str, labels: Dict[str, str]) -> None:
        self.core.patch_namespace(name, {'metadata': {'labels': labels}})

    def delete_pods(self, namespace: str) -> None:
        self.core.delete_collection_namespaced_pod(namespace)

    def delete_namespace(self, name: str) -> None:
        try:
            self.core.delete_namespace(name, grace_period_seconds=0, propagation_policy='Background')
        except ApiException as e:
            if e.status != 404:
                raise
