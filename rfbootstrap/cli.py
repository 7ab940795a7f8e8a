import logging
import sys

import typer

from rfbootstrap.commands import default_factory
from rfbootstrap.commands.deploy import deploy_rapidfort_cmd
from rfbootstrap.commands.install import install_cmd
from rfbootstrap.commands.status import status_cmd
from rfbootstrap.commands.uninstall import uninstall_cmd
from rfbootstrap.config import Settings
from rfbootstrap.logging import setup_logger
from rfbootstrap.modules.models import ClusterVariant

app = typer.Typer(no_args_is_help=True, add_completion=False)


def setup_logging(debug_mode: bool = False, settings: Settings = None) -> logging.Logger:
    """Configure logging based on debug mode and LOG_LEVEL/LOG_FORMAT."""
    settings = settings or Settings()
    if debug_mode:
        level = logging.DEBUG
    else:
        level = logging.getLevelName(settings.log_level)
        if not isinstance(level, int):
            level = logging.INFO
    return setup_logger('rfbootstrap', level=level, fmt=settings.log_format)


# Global options callback
@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
    cluster: ClusterVariant = typer.Option(
        ClusterVariant.RKE2,
        "--cluster",
        "-c",
        envvar="RF_CLUSTER_VARIANT",
        case_sensitive=False,
        help="Cluster variant to manage",
    ),
):
    """rfbootstrap - single-node cluster, registry and RapidFort Runtime installer."""
    obj = ctx.ensure_object(dict)
    settings = obj.setdefault('settings', Settings.from_env())
    obj.setdefault('orchestrator_factory', default_factory)
    obj['variant'] = cluster
    obj['debug'] = debug
    logger = setup_logging(debug, settings)
    if debug:
        logger.debug("Debug mode enabled")


app.command("install")(install_cmd)
app.command("status")(status_cmd)
app.command("uninstall")(uninstall_cmd)
app.command("deploy-rapidfort")(deploy_rapidfort_cmd)


@app.command("help")
def help_cmd(ctx: typer.Context):
    """Show this help message."""
    typer.echo(ctx.parent.get_help())


if __name__ == "__main__":
    try:
        app()
    except Exception as e:
        logging.getLogger('rfbootstrap').error(f"Error: {e}")
        sys.exit(1)
