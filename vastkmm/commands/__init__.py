"""CLI commands.

Shared wiring: every command builds its collaborators from the loaded
settings through the helpers below.
"""
import logging
from typing import Optional

import typer

from ..modules.aggregate import ClusterStateAggregator
from ..modules.cluster import ClusterClient
from ..modules.errors import VastKmmError
from ..modules.probe import NodeStateProbe
from ..modules.settings import KmmSettings, get_settings, set_settings
from ..modules.unload import GracefulUnloadSequencer

logger = logging.getLogger("vastkmm.commands")


def load_settings(config: Optional[str] = None) -> KmmSettings:
    """Settings for this invocation; an explicit file replaces the global ones."""
    if config:
        set_settings(KmmSettings.load(config))
    return get_settings()


def cluster_client(settings: KmmSettings) -> ClusterClient:
    c = settings.cluster
    return ClusterClient(
        oc_binary=c.oc_binary,
        kubeconfig=c.kubeconfig,
        exec_timeout=c.exec_timeout,
        apply_timeout=c.apply_timeout,
    )


def aggregator(cluster: ClusterClient, settings: KmmSettings) -> ClusterStateAggregator:
    return ClusterStateAggregator(
        cluster,
        probe=NodeStateProbe(cluster, timeout=settings.cluster.exec_timeout),
        max_workers=settings.cluster.probe_concurrency,
    )


def sequencer(cluster: ClusterClient, settings: KmmSettings) -> GracefulUnloadSequencer:
    return GracefulUnloadSequencer(
        cluster,
        max_workers=settings.cluster.probe_concurrency,
        timeout=settings.cluster.exec_timeout,
    )


def fail(error: VastKmmError, debug: bool = False) -> typer.Exit:
    """Log a command failure and return the exit to raise."""
    logger.error(f"❌ {error}", exc_info=debug)
    return typer.Exit(code=1)
