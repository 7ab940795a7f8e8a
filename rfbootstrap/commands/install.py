from typing import Optional

import typer

from . import exit_on_error, get_orchestrator
from .status import print_report


def install_cmd(
    ctx: typer.Context,
    registry_ip: Optional[str] = typer.Option(
        None, "--registry-ip", help="IP address for the registry (defaults to RF_LOCAL_REGISTRY or the host IP)"
    ),
    version: Optional[str] = typer.Option(
        None, "--version", help="RKE2 version to install (defaults to RKE2_VERSION or latest)"
    ),
):
    """Install the cluster with a registry and RapidFort Runtime."""
    with exit_on_error(ctx):
        orchestrator = get_orchestrator(ctx, registry_ip=registry_ip, version=version)
        report = orchestrator.install(registry_ip=registry_ip, version=version)
        print_report(orchestrator, report)
