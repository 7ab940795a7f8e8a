import typer

from ..utils import failed_steps
from . import exit_on_error, get_orchestrator


def uninstall_cmd(ctx: typer.Context):
    """Remove everything completely."""
    with exit_on_error(ctx):
        outcomes = get_orchestrator(ctx).uninstall()
    failures = failed_steps(outcomes)
    if failures:
        typer.echo(f"⚠️  {len(failures)} cleanup step(s) reported errors:")
        for outcome in failures:
            typer.echo(f"  - {outcome.name}: {outcome.error}")
    typer.echo("✅ Uninstall completed")
