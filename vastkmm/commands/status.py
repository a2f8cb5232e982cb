"""Module state reporting."""
import json
from typing import Optional

import typer

from ..modules.errors import VastKmmError
from ..modules.models import ClusterModuleState
from . import aggregator, cluster_client, fail, load_settings


def collect_state(config: Optional[str], debug: bool) -> ClusterModuleState:
    settings = load_settings(config)
    try:
        cluster = cluster_client(settings)
        return aggregator(cluster, settings).collect()
    except VastKmmError as e:
        raise fail(e, debug)


def status(
    as_json: bool = typer.Option(False, "--json", help="Print machine-readable output"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Settings file"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug output"),
):
    """Show which nodes have VAST NFS loaded, and which version."""
    state = collect_state(config, debug)
    if as_json:
        typer.echo(json.dumps(state.as_dict(), indent=2))
        return

    typer.echo("=== Checking VAST NFS Status on All Nodes ===")
    for name, node_state in state.nodes.items():
        if node_state.loaded:
            typer.echo(f"✅ {name}: VAST NFS ACTIVE - {node_state.describe()}")
        elif name in state.unreachable:
            typer.echo(f"⚠️  {name}: could not be inspected")
        else:
            typer.echo(f"{name}: VAST NFS NOT ACTIVE - using default kernel NFS")
    typer.echo(f"Summary: {state.active_count}/{state.total_count} nodes have VAST NFS active")


def check_loaded(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Settings file"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug output"),
):
    """Exit 0 if VAST NFS is loaded on any node, 1 otherwise."""
    state = collect_state(config, debug)
    if state.active_count == 0:
        typer.echo("VAST NFS is not loaded on any node")
        raise typer.Exit(code=1)
    typer.echo(f"VAST NFS is loaded on: {', '.join(state.loaded_nodes())}")
