"""Deployment verification command."""
from typing import Optional

import typer

from ..config import Config
from ..modules.errors import VastKmmError
from ..modules.verify import troubleshooting, verify_deployment
from . import aggregator, cluster_client, fail, load_settings


def verify(
    namespace: str = typer.Option(Config.NAMESPACE, "--namespace", "-n", help="Deployment namespace"),
    module: str = typer.Option(Config.MODULE_NAME, "--module", "-m", help="KMM Module name"),
    wait: int = typer.Option(0, "--wait", "-w", help="Seconds to wait for the module to become ready"),
    secure_boot: bool = typer.Option(True, "--secure-boot/--no-secure-boot", help="Inspect module signature"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Settings file"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug output"),
):
    """Verify VAST NFS KMM is deployed and active on every node."""
    settings = load_settings(config)
    try:
        cluster = cluster_client(settings)
    except VastKmmError as e:
        raise fail(e, debug)

    report = verify_deployment(
        cluster,
        namespace,
        module_name=module,
        aggregator=aggregator(cluster, settings),
        wait_timeout=wait or None,
        poll_interval=settings.timeouts.module_ready_poll,
        check_secure_boot_state=secure_boot,
    )

    typer.echo("=== VAST NFS KMM Deployment Verification ===")
    typer.echo(f"Namespace: {namespace}")
    typer.echo(f"Module:    {module} ({'found' if report.module_found else 'NOT FOUND'})")
    if report.module_status:
        typer.echo(
            f"Loader:    {report.module_status.get('availableNumber', 0)}"
            f"/{report.module_status.get('desiredNumber', 0)} available"
        )
    if report.cluster_state is not None:
        state = report.cluster_state
        typer.echo(f"Nodes:     {state.active_count}/{state.total_count} with VAST NFS active")
        for name, node_state in state.nodes.items():
            typer.echo(f"  {name}: {node_state.describe()}")
    for pod in report.pods:
        typer.echo(f"Pod:       {pod.name} ({pod.phase or 'Unknown'})")
    if report.secure_boot is not None:
        typer.echo(f"Secure boot ({report.secure_boot.node}): {report.secure_boot.sb_state or 'unknown'}")
    for error in report.errors:
        typer.echo(f"Error:     {error}")

    if report.passed:
        typer.echo("✅ VAST NFS KMM deployment verified")
        return

    typer.echo("❌ Verification failed")
    typer.echo("")
    typer.echo("Troubleshooting:")
    for line in troubleshooting(namespace, module):
        typer.echo(f"  {line}")
    raise typer.Exit(code=1)
