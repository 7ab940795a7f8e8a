from typing import Optional

import typer

from ..modules.models import RuntimeOptions
from . import exit_on_error, get_orchestrator


def deploy_rapidfort_cmd(
    ctx: typer.Context,
    registry_ip: Optional[str] = typer.Option(None, "--registry-ip", help="Registry IP to use for runtime images"),
    local_registry: Optional[bool] = typer.Option(
        None,
        "--local-registry/--no-local-registry",
        help="Pull RapidFort images from the local registry (defaults to RF_USE_LOCAL_REGISTRY)",
        show_default=False,
    ),
    image_tag: Optional[str] = typer.Option(None, "--image-tag", help="Tag for RapidFort images (e.g. 3.1.32-dev6)"),
):
    """Deploy RapidFort Runtime to the existing cluster."""
    with exit_on_error(ctx):
        orchestrator = get_orchestrator(ctx, registry_ip=registry_ip)
        result = orchestrator.deploy_runtime(
            RuntimeOptions(registry_ip=registry_ip, local_registry=local_registry, image_tag=image_tag)
        )
    typer.echo(f"✅ Release {result.release} deployed to namespace {result.namespace}")
    for pod in result.pods:
        typer.echo(f"  {pod.name} {pod.phase}")
