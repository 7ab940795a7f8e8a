"""Host environment detection: IP address, platform, resources and tools."""
import ipaddress
import logging
import os
import platform
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from .errors import PreconditionError
from .runner import CommandRunner

logger = logging.getLogger("rfbootstrap.host")

ROUTE_PROBE_ADDRESS = "1.1.1.1"

# uname -m -> Kubernetes release naming
K8S_ARCH = {
    'x86_64': 'amd64',
    'amd64': 'amd64',
    'aarch64': 'arm64',
    'arm64': 'arm64',
    'armv7l': 'arm',
    'armhf': 'arm',
    'armv7': 'arm',
    'i386': '386',
    'i686': '386',
    'ppc64le': 'ppc64le',
    's390x': 's390x',
}


@dataclass
class HostResources:
    os_family: str
    arch: str
    cpus: int
    memory_available_kb: Optional[int]


def _usable_ipv4(candidate: Optional[str]) -> Optional[str]:
    if not candidate:
        return None
    try:
        addr = ipaddress.IPv4Address(candidate.strip())
    except ValueError:
        return None
    if addr.is_loopback or addr.is_unspecified:
        return None
    return str(addr)


class HostEnvironmentProbe:
    """Read-only probes of the machine we are bootstrapping."""

    def __init__(self, runner: CommandRunner, override_ip: Optional[str] = None,
                 meminfo_path: Path = Path('/proc/meminfo')):
        self.runner = runner
        self.override_ip = override_ip
        self.meminfo_path = meminfo_path

    def detect_host_ip(self) -> Optional[str]:
        """Best-guess routable IPv4 address of this host, or ``None``.

        An explicit override always wins, then the source address the kernel
        would use to reach the public internet, then the first address
        reported by ``hostname -I``.
        """
        if self.override_ip:
            return self.override_ip.strip()

        ip = self._route_lookup()
        if ip:
            logger.debug(f"Detected host IP via route lookup: {ip}")
            return ip

        ip = self._interface_lookup()
        if ip:
            logger.debug(f"Detected host IP via hostname -I: {ip}")
            return ip

        logger.debug("Could not detect a host IP address")
        return None

    def _route_lookup(self) -> Optional[str]:
        # UDP connect sends nothing; it only asks the kernel for a route.
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.connect((ROUTE_PROBE_ADDRESS, 80))
            return _usable_ipv4(sock.getsockname()[0])
        except OSError as e:
            logger.debug(f"Route lookup failed: {e}")
            return None
        finally:
            sock.close()

    def _interface_lookup(self) -> Optional[str]:
        result = self.runner.run(['hostname', '-I'])
        if not result.ok:
            return None
        for token in result.stdout.split():
            ip = _usable_ipv4(token)
            if ip:
                return ip
        return None

    def check_prerequisites(self, required: Iterable[str]) -> List[str]:
        """Return every required tool that is not on ``PATH``."""
        return [tool for tool in sorted(set(required)) if not self.runner.which(tool)]

    def os_family(self) -> str:
        return platform.system().lower()

    def architecture(self) -> str:
        machine = platform.machine().lower()
        try:
            return K8S_ARCH[machine]
        except KeyError:
            raise PreconditionError(f"Unsupported architecture: {machine}")

    def cpu_count(self) -> int:
        return os.cpu_count() or 1

    def memory_available_kb(self) -> Optional[int]:
        try:
            with open(self.meminfo_path) as f:
                for line in f:
                    if line.startswith('MemAvailable:'):
                        return int(line.split()[1])
        except (OSError, ValueError, IndexError) as e:
            logger.debug(f"Could not read {self.meminfo_path}: {e}")
        return None

    def is_root(self) -> bool:
        return hasattr(os, 'geteuid') and os.geteuid() == 0

    def docker_running(self) -> bool:
        return self.runner.run(['docker', 'info']).ok

    def resources(self) -> HostResources:
        return HostResources(
            os_family=self.os_family(),
            arch=self.architecture(),
            cpus=self.cpu_count(),
            memory_available_kb=self.memory_available_kb(),
        )
