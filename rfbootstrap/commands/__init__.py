"""Command implementations wired into the top-level typer app in ``cli.py``."""
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator

import typer

from ..config import Settings
from ..modules.errors import BootstrapError
from ..modules.models import ClusterVariant
from ..modules.orchestrator import Orchestrator, build_target

logger = logging.getLogger("rfbootstrap.commands")

OrchestratorFactory = Callable[..., Orchestrator]


def default_factory(variant: ClusterVariant, settings: Settings, registry_ip=None, version=None) -> Orchestrator:
    target = build_target(variant, settings, registry_ip=registry_ip, version=version)
    return Orchestrator(target, settings)


def get_orchestrator(ctx: typer.Context, **target_options: Any) -> Orchestrator:
    obj: Dict[str, Any] = ctx.ensure_object(dict)
    factory: OrchestratorFactory = obj.get('orchestrator_factory', default_factory)
    return factory(obj['variant'], obj['settings'], **target_options)


@contextmanager
def exit_on_error(ctx: typer.Context) -> Iterator[None]:
    """Log bootstrap failures and exit with status 1."""
    debug = ctx.ensure_object(dict).get('debug', False)
    try:
        yield
    except BootstrapError as e:
        logger.error(f"❌ {e}", exc_info=debug)
        raise typer.Exit(code=1)
