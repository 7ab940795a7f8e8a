"""Manifest builders and idempotent application.

Manifests are built as plain dictionaries and sent through the Kubernetes
dynamic client, so values such as the registry IP are never spliced into YAML
text.
"""
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import yaml
from kubernetes.client.rest import ApiException

from ..utils import redact_sensitive_data
from .errors import ApplyError

logger = logging.getLogger("rfbootstrap.manifests")

REGISTRY_NAMESPACE = 'registry'
REGISTRY_NAME = 'registry'
REGISTRY_PORT = 5000
REGISTRY_IMAGE = 'registry:2'
REGISTRY_STORAGE = '20Gi'

K8S_SYSCTL = {
    'net.bridge.bridge-nf-call-iptables': 1,
    'net.bridge.bridge-nf-call-ip6tables': 1,
    'net.ipv4.ip_forward': 1,
}

Manifest = Dict[str, Any]


class ApplyOutcome(str, Enum):
    CREATED = 'created'
    UPDATED = 'updated'


def namespace_manifest(name: str, labels: Optional[Mapping[str, str]] = None) -> Manifest:
    metadata: Dict[str, Any] = {'name': name}
    if labels:
        metadata['labels'] = dict(labels)
    return {'apiVersion': 'v1', 'kind': 'Namespace', 'metadata': metadata}


def secret_manifest(name: str, namespace: str, string_data: Mapping[str, str]) -> Manifest:
    return {
        'apiVersion': 'v1',
        'kind': 'Secret',
        'type': 'Opaque',
        'metadata': {'name': name, 'namespace': namespace},
        'stringData': dict(string_data),
    }


def registry_pvc(namespace: str = REGISTRY_NAMESPACE, storage: str = REGISTRY_STORAGE) -> Manifest:
    return {
        'apiVersion': 'v1',
        'kind': 'PersistentVolumeClaim',
        'metadata': {'name': 'registry-pvc', 'namespace': namespace},
        'spec': {
            'accessModes': ['ReadWriteOnce'],
            'resources': {'requests': {'storage': storage}},
        },
    }


def registry_deployment(namespace: str = REGISTRY_NAMESPACE, image: str = REGISTRY_IMAGE) -> Manifest:
    labels = {'app': REGISTRY_NAME}
    return {
        'apiVersion': 'apps/v1',
        'kind': 'Deployment',
        'metadata': {'name': REGISTRY_NAME, 'namespace': namespace},
        'spec': {
            'replicas': 1,
            'selector': {'matchLabels': labels},
            'template': {
                'metadata': {'labels': labels},
                'spec': {
                    'containers': [{
                        'name': REGISTRY_NAME,
                        'image': image,
                        'ports': [{'containerPort': REGISTRY_PORT}],
                        'env': [{'name': 'REGISTRY_HTTP_ADDR', 'value': f'0.0.0.0:{REGISTRY_PORT}'}],
                        'volumeMounts': [{'name': 'registry-storage', 'mountPath': '/var/lib/registry'}],
                    }],
                    'volumes': [{
                        'name': 'registry-storage',
                        'persistentVolumeClaim': {'claimName': 'registry-pvc'},
                    }],
                },
            },
        },
    }


def registry_service(external_ip: str, namespace: str = REGISTRY_NAMESPACE) -> Manifest:
    return {
        'apiVersion': 'v1',
        'kind': 'Service',
        'metadata': {'name': REGISTRY_NAME, 'namespace': namespace},
        'spec': {
            'selector': {'app': REGISTRY_NAME},
            'ports': [{'port': REGISTRY_PORT, 'targetPort': REGISTRY_PORT}],
            'externalIPs': [external_ip],
        },
    }


def registry_manifests(external_ip: str, namespace: str = REGISTRY_NAMESPACE) -> List[Manifest]:
    """PVC, Deployment and Service for the in-cluster registry, in apply order."""
    return [
        registry_pvc(namespace),
        registry_deployment(namespace),
        registry_service(external_ip, namespace),
    ]


def render_sysctl_conf(settings: Mapping[str, Any] = K8S_SYSCTL) -> str:
    width = max(len(key) for key in settings)
    return ''.join(f"{key.ljust(width)} = {value}\n" for key, value in settings.items())


def load_manifest_file(path: Union[str, Path]) -> List[Manifest]:
    """Load every non-empty Kubernetes document from a (multi-doc) YAML file."""
    with open(path) as f:
        docs = list(yaml.safe_load_all(f))
    return [
        doc for doc in docs
        if isinstance(doc, dict) and doc.get('kind') and doc.get('apiVersion')
        and isinstance(doc.get('metadata', {}), dict)
    ]


class ManifestApplier:
    """Create-or-update manifests through the dynamic client."""

    def __init__(self, api):
        self.api = api

    def apply(self, manifest: Manifest, namespace: Optional[str] = None) -> ApplyOutcome:
        kind = manifest.get('kind', '?')
        name = manifest.get('metadata', {}).get('name', '?')
        namespace = namespace or manifest.get('metadata', {}).get('namespace')
        logger.debug(f"Manifest: {redact_sensitive_data(manifest)}")

        try:
            resource = self.api.dynamic.resources.get(api_version=manifest['apiVersion'], kind=kind)
            # namespaced kinds fall back to "default", as kubectl does
            target_ns = (namespace or 'default') if getattr(resource, 'namespaced', True) else None
            try:
                logger.info(f"📄 Applying {kind}/{name}" + (f" in namespace {target_ns}" if target_ns else ""))
                resource.create(body=manifest, namespace=target_ns)
                return ApplyOutcome.CREATED
            except ApiException as e:
                if e.status != 409:
                    raise
                logger.info(f"↪️ {kind}/{name} exists. Patching...")
                resource.patch(body=manifest, name=name, namespace=target_ns,
                               content_type='application/merge-patch+json')
                return ApplyOutcome.UPDATED
        except ApiException as e:
            raise ApplyError(kind, name, f"{e.status} {e.reason}") from e
        except ApplyError:
            raise
        except Exception as e:
            raise ApplyError(kind, name, str(e)) from e

    def apply_all(self, manifests: Iterable[Manifest], namespace: Optional[str] = None) -> List[ApplyOutcome]:
        """Apply in order, stopping at the first failure."""
        return [self.apply(manifest, namespace) for manifest in manifests]

    def apply_file(self, path: Union[str, Path], namespace: Optional[str] = None) -> List[ApplyOutcome]:
        """Apply every document in ``path``; ``namespace`` overrides each document's namespace."""
        try:
            docs = load_manifest_file(path)
        except (OSError, yaml.YAMLError) as e:
            raise ApplyError('file', str(path), str(e)) from e
        if namespace:
            for doc in docs:
                doc.setdefault('metadata', {})['namespace'] = namespace
        return self.apply_all(docs, namespace)
