"""Graceful unload of VAST NFS modules from cluster nodes."""
from typing import List, Optional

import typer

from ..modules.errors import VastKmmError
from . import cluster_client, fail, load_settings, sequencer


def unload(
    nodes: Optional[List[str]] = typer.Argument(None, help="Nodes to unload (default: all nodes)"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Settings file"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug output"),
):
    """Unmount NFS, stop RPC services and unload the NFS module stack."""
    settings = load_settings(config)
    try:
        cluster = cluster_client(settings)
        targets = nodes or [node.name for node in cluster.list_nodes()]
    except VastKmmError as e:
        raise fail(e, debug)

    if not targets:
        typer.echo("No nodes found")
        raise typer.Exit(code=1)

    typer.echo(f"Unloading VAST NFS modules from {len(targets)} node(s)...")
    results = sequencer(cluster, settings).unload_all(targets)

    for node, result in results.items():
        if result.skipped:
            typer.echo(f"{node}: not loaded, skipped")
        elif result.clean:
            typer.echo(f"✅ {node}: unloaded")
        else:
            typer.echo(f"⚠️  {node}: unloaded with {len(result.warnings)} warning(s)")
            for warning in result.warnings:
                typer.echo(f"     {warning}")
    typer.echo("Module unload process completed")
