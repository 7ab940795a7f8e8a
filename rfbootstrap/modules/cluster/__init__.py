"""Cluster provisioners.

- base: shared install/uninstall lifecycle and state machine
- rke2: systemd-managed RKE2 server
- uds: k3d cluster created by ``uds run default``
"""

from .base import ClusterProvisioner
from .rke2 import RKE2Provisioner
from .uds import UDSProvisioner
from ..models import ClusterVariant

PROVISIONERS = {
    ClusterVariant.RKE2: RKE2Provisioner,
    ClusterVariant.UDS: UDSProvisioner,
}


def get_provisioner(variant: ClusterVariant, *args, **kwargs) -> ClusterProvisioner:
    return PROVISIONERS[ClusterVariant(variant)](*args, **kwargs)


__all__ = [
    'ClusterProvisioner',
    'RKE2Provisioner',
    'UDSProvisioner',
    'get_provisioner',
]
