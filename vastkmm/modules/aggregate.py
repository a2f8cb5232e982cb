"""Cluster-wide module state aggregation."""
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional, Set

from .cluster import ClusterClient
from .errors import TransientProbeFailure
from .models import NOT_LOADED, ClusterModuleState, ModuleState
from .probe import NodeStateProbe

logger = logging.getLogger("vastkmm.aggregate")

DEFAULT_CONCURRENCY = 8


class ClusterStateAggregator:
    """Fans the node probe out across the cluster with bounded concurrency."""

    def __init__(
        self,
        cluster: ClusterClient,
        probe: Optional[NodeStateProbe] = None,
        max_workers: int = DEFAULT_CONCURRENCY,
    ):
        self.cluster = cluster
        self.probe = probe or NodeStateProbe(cluster)
        self.max_workers = max_workers

    def collect(self, node_names: Optional[List[str]] = None) -> ClusterModuleState:
        """Probe every node and merge the results.

        Args:
            node_names: Nodes to probe. Enumerated fresh from the cluster if omitted.

        Raises:
            ClusterAccessError: only if the node list cannot be obtained.
        """
        if node_names is None:
            node_names = [node.name for node in self.cluster.list_nodes()]

        states: Dict[str, ModuleState] = {}
        unreachable: Set[str] = set()
        if not node_names:
            logger.warning("No nodes found in the cluster")
            return ClusterModuleState()

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(node_names))) as executor:
            future_to_node = {
                executor.submit(self.probe.inspect, name): name
                for name in node_names
            }
            for future in as_completed(future_to_node):
                name = future_to_node[future]
                try:
                    states[name] = future.result()
                except TransientProbeFailure as e:
                    logger.warning(f"⚠️  Could not inspect node {e}; treating as not loaded")
                    states[name] = NOT_LOADED
                    unreachable.add(name)
                except Exception as e:
                    logger.error(f"Error probing node {name}: {e}", exc_info=True)
                    states[name] = NOT_LOADED
                    unreachable.add(name)

        state = ClusterModuleState(nodes=dict(sorted(states.items())), unreachable=frozenset(unreachable))
        for name, node_state in state.nodes.items():
            if node_state.loaded:
                logger.info(f"✅ {name}: VAST NFS ACTIVE - {node_state.describe()}")
            else:
                logger.info(f"{name}: VAST NFS NOT ACTIVE - using default kernel NFS")
        logger.info(f"Summary: {state.active_count}/{state.total_count} nodes have VAST NFS active")
        return state
