"""In-memory stand-ins for the runner, cluster API, HTTP session and provisioner."""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import requests

from ..modules.errors import ApplyError, CommandError
from ..modules.host import HostEnvironmentProbe
from ..modules.models import (ClusterPhase, ClusterStatus, NodeInfo, ProvisionState,
                              StepOutcome)
from ..modules.runner import CommandResult


@dataclass
class Call:
    cmd: List[str]
    env: Optional[Dict[str, str]] = None
    input: Optional[str] = None
    cwd: Optional[str] = None

    @property
    def line(self) -> str:
        return ' '.join(self.cmd)


class FakeRunner:
    """Records commands; results are looked up by the longest matching prefix."""

    def __init__(self, tools=(), results=None):
        self.tools = set(tools)
        self.results = dict(results or {})
        self.calls: List[Call] = []

    def which(self, tool):
        return f"/usr/bin/{tool}" if tool in self.tools else None

    def run(self, cmd, *, check=False, capture=True, timeout=None, env=None, input=None, cwd=None):
        cmd = [str(part) for part in cmd]
        call = Call(cmd, dict(env) if env else None, input, str(cwd) if cwd else None)
        self.calls.append(call)

        result = CommandResult(cmd, 0)
        for prefix in sorted(self.results, key=len, reverse=True):
            if call.line.startswith(prefix):
                value = self.results[prefix]
                if isinstance(value, CommandResult):
                    result = value
                else:
                    returncode, stdout = value
                    result = CommandResult(cmd, returncode, stdout)
                break

        if check and not result.ok:
            raise CommandError(cmd, result.returncode, result.stdout, result.stderr, result.timed_out)
        return result

    @property
    def lines(self) -> List[str]:
        return [call.line for call in self.calls]

    def ran(self, prefix: str) -> bool:
        return any(line.startswith(prefix) for line in self.lines)


def ready_node(name='node-1'):
    return NodeInfo(name=name, ready=True, roles=['control-plane', 'etcd'], version='v1.28.3+rke2r1')


class FakeClusterApi:
    def __init__(self, nodes=None, namespaces=(), pods=None, reachable=True,
                 available=(), external_ips=None):
        self.nodes = [ready_node()] if nodes is None else list(nodes)
        self.namespaces = set(namespaces)
        self.pods = dict(pods or {})
        self.is_reachable = reachable
        self.available = set(available)
        self.external_ips = dict(external_ips or {})
        self.labeled = []
        self.deleted_pods = []
        self.deleted_namespaces = []

    def reachable(self):
        return self.is_reachable

    def list_nodes(self):
        return list(self.nodes)

    def namespace_exists(self, name):
        return name in self.namespaces

    def list_namespaces(self):
        return sorted(self.namespaces)

    def deployment_available(self, namespace, name):
        return (namespace, name) in self.available

    def deployment_ready_replicas(self, namespace, name):
        return 1 if (namespace, name) in self.available else 0

    def service_external_ip(self, namespace, name):
        return self.external_ips.get((namespace, name))

    def list_pods(self, namespace, selector=None):
        return list(self.pods.get(namespace, []))

    def label_namespace(self, name, labels):
        self.labeled.append((name, dict(labels)))

    def delete_pods(self, namespace):
        self.deleted_pods.append(namespace)

    def delete_namespace(self, name):
        self.deleted_namespaces.append(name)
        self.namespaces.discard(name)


class FakeApplier:
    def __init__(self, fail_on=None):
        self.applied = []
        self.files = []
        self.fail_on = fail_on

    def apply(self, manifest, namespace=None):
        if self.fail_on and manifest.get('kind') == self.fail_on:
            raise ApplyError(manifest['kind'], manifest['metadata']['name'], '500 Internal Server Error')
        self.applied.append((manifest, namespace))

    def apply_all(self, manifests, namespace=None):
        return [self.apply(manifest, namespace) for manifest in manifests]

    def apply_file(self, path, namespace=None):
        self.files.append((str(path), namespace))

    @property
    def kinds(self):
        return [manifest['kind'] for manifest, _ in self.applied]


class FakeResponse:
    def __init__(self, text='#!/bin/sh\necho installing\n', status_code=200, content=b'binary'):
        self.text = text
        self.status_code = status_code
        self.content = content

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")

    def iter_content(self, chunk_size=1):
        yield self.content

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeHttp:
    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.requested = []

    def get(self, url, timeout=None, stream=False):
        self.requested.append(url)
        response = self.responses.get(url, FakeResponse())
        if isinstance(response, Exception):
            raise response
        return response


class FakeProbe(HostEnvironmentProbe):
    def __init__(self, runner=None, host_ip='10.0.0.5', os_name='linux', root=True,
                 memory_kb=8 * 1024 * 1024, cpus=4, docker=True):
        super().__init__(runner or FakeRunner())
        self.host_ip = host_ip
        self.os_name = os_name
        self.root = root
        self.memory_kb = memory_kb
        self.cpus = cpus
        self.docker = docker

    def detect_host_ip(self):
        return self.host_ip

    def os_family(self):
        return self.os_name

    def architecture(self):
        return 'amd64'

    def cpu_count(self):
        return self.cpus

    def memory_available_kb(self):
        return self.memory_kb

    def is_root(self):
        return self.root

    def docker_running(self):
        return self.docker


@dataclass
class FakeProvisioner:
    ready: bool = False
    installed: list = field(default_factory=list)
    uninstalled: list = field(default_factory=list)
    requirements_checked: bool = False

    def check_requirements(self):
        self.requirements_checked = True

    def is_ready(self):
        return self.ready

    def install(self, target):
        self.installed.append(target)
        self.ready = True
        return ProvisionState.READY

    def uninstall(self, target):
        self.uninstalled.append(target)
        return [StepOutcome('Stop cluster', True)]

    def status(self, target):
        if not self.ready:
            return ClusterStatus(ClusterPhase.NOT_INSTALLED)
        return ClusterStatus(ClusterPhase.RUNNING, version='v1.28.3+rke2r1', nodes=[ready_node()])

    def kubectl_binary(self):
        return 'kubectl'
