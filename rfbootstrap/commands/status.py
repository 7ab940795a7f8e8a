import typer

from ..modules.models import ClusterPhase, StatusReport
from . import exit_on_error, get_orchestrator


def print_report(orchestrator, report: StatusReport) -> None:
    target = orchestrator.target
    cluster = report.cluster
    caption = target.runtime.cluster_caption

    typer.echo(f"📡 {caption} Status Report")
    typer.echo("==================")

    if cluster.phase == ClusterPhase.NOT_INSTALLED:
        typer.echo(f"⚠️  {caption} not installed")
        return
    typer.echo(f"✅ Installed: {cluster.version}")

    if cluster.phase == ClusterPhase.STOPPED:
        typer.echo(f"⚠️  {caption} not running")
        return
    if cluster.phase == ClusterPhase.INSTALLED:
        typer.echo(f"✅ {caption} is running")
        typer.echo("  Unable to get cluster info")
        return

    typer.echo(f"✅ {caption} is running")
    typer.echo("")
    typer.echo("Cluster nodes:")
    for node in cluster.nodes:
        state = "Ready" if node.ready else "NotReady"
        roles = ",".join(node.roles) or "<none>"
        typer.echo(f"  {node.name}  {state}  {roles}  {node.version}")

    namespaces = cluster.details.get('namespaces')
    if namespaces:
        typer.echo("")
        typer.echo("UDS namespaces:")
        for ns in namespaces:
            typer.echo(f"  {ns}")
    jira_pods = cluster.details.get('jira_pods')
    if jira_pods is not None:
        typer.echo("")
        typer.echo("JIRA status:")
        if not jira_pods:
            typer.echo("  No JIRA pods found")
        for pod in jira_pods:
            typer.echo(f"  {pod.name} {pod.phase}")

    if report.registry is not None:
        typer.echo("")
        typer.echo("Registry status:")
        if report.registry.ready:
            typer.echo("✅ Registry: Running")
            typer.echo(f"  External IP: {report.registry.external_ip}:5000")
        else:
            typer.echo("⚠️  Registry: Not ready")

    runtime = report.runtime
    # the runtime section is skipped until its namespace exists; "default" always does
    if runtime is None and target.runtime.namespace != 'default':
        return
    typer.echo("")
    typer.echo(f"RapidFort Runtime (namespace {target.runtime.namespace}):")
    if runtime and runtime.running > 0:
        typer.echo(f"✅ RapidFort: Running ({runtime.running} pods)")
        for pod in runtime.pods:
            typer.echo(f"  {pod.name} {pod.phase}")
    else:
        typer.echo("⚠️  RapidFort: Not running")


def status_cmd(ctx: typer.Context):
    """Show cluster, registry and runtime status."""
    with exit_on_error(ctx):
        orchestrator = get_orchestrator(ctx)
        report = orchestrator.status()
    print_report(orchestrator, report)
