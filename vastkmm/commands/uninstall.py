"""Removal of VAST NFS KMM resources."""
from typing import Optional

import typer

from ..config import Config
from ..modules.errors import VastKmmError
from ..modules.uninstall import Uninstaller
from . import cluster_client, fail, load_settings, sequencer


def uninstall(
    namespace: str = typer.Option(Config.NAMESPACE, "--namespace", "-n", help="Deployment namespace"),
    module: str = typer.Option(Config.MODULE_NAME, "--module", "-m", help="KMM Module name"),
    unload_first: bool = typer.Option(False, "--unload-first", help="Unload modules from every node before removal"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Settings file"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug output"),
):
    """Uninstall VAST NFS KMM from the cluster."""
    settings = load_settings(config)
    try:
        cluster = cluster_client(settings)
        report = Uninstaller(cluster, sequencer(cluster, settings)).run(namespace, module, unload_first)
    except VastKmmError as e:
        raise fail(e, debug)

    for build in report.builds_deleted:
        typer.echo(f"Deleted build: {build}")
    typer.echo(f"Module {module}: {'deleted' if report.module_deleted else 'not present'}")
    for warning in report.warnings:
        typer.echo(f"⚠️  {warning}")
    typer.echo("✅ VAST NFS KMM uninstalled")
