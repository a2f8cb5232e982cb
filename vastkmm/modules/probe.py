"""Per-node VAST NFS module state detection.

All text scraping of node inspection output lives here. The inspection
script only reads sysfs; it never changes node state.
"""
import logging
from typing import Dict, Optional

from .cluster import ClusterClient
from .errors import CommandError, TransientProbeFailure
from .models import NOT_LOADED, ModuleState

logger = logging.getLogger("vastkmm.probe")

SYSFS_PARAMS = '/sys/module/sunrpc/parameters'
RELEASE_MARKER = 'nfs_bundle_version'
GIT_MARKER = 'nfs_bundle_git_version'
BASE_MARKER = 'nfs_bundle_base_git_version'
DONE_SENTINEL = 'VASTNFS_PROBE_DONE'

PROBE_SCRIPT = f"""
for param in {RELEASE_MARKER} {GIT_MARKER} {BASE_MARKER}; do
    if [[ -e {SYSFS_PARAMS}/${{param}} ]]; then
        echo "${{param}}=$(cat {SYSFS_PARAMS}/${{param}})"
    fi
done
echo "{DONE_SENTINEL}"
"""


def parse_probe_output(output: str) -> ModuleState:
    """Turn captured inspection output into a ModuleState.

    Lines that are not ``marker=value`` pairs (debug pod chatter such as
    "Starting pod/..." or "Removing debug pod ...") are ignored.

    Raises:
        TransientProbeFailure: if the completion sentinel is missing, meaning
            the script never ran to the end.
    """
    markers: Dict[str, str] = {}
    finished = False
    for raw in output.splitlines():
        line = raw.strip()
        if line == DONE_SENTINEL:
            finished = True
            continue
        key, sep, value = line.partition('=')
        if sep and key in (RELEASE_MARKER, GIT_MARKER, BASE_MARKER):
            markers[key] = value.strip()

    if not finished:
        raise TransientProbeFailure("inspection output is incomplete")

    release = markers.get(RELEASE_MARKER) or None
    git_version = markers.get(GIT_MARKER) or None
    base = markers.get(BASE_MARKER) or None

    if release:
        return ModuleState(loaded=True, version=release)
    if git_version:
        build_version = base if base != git_version else None
        return ModuleState(loaded=True, version=git_version, base_version=build_version)
    # an empty marker file still means the module is in the kernel
    if RELEASE_MARKER in markers or GIT_MARKER in markers:
        return ModuleState(loaded=True)
    return NOT_LOADED


class NodeStateProbe:
    """Queries a single node for its VAST NFS module state."""

    def __init__(self, cluster: ClusterClient, timeout: Optional[int] = None):
        self.cluster = cluster
        self.timeout = timeout

    def inspect(self, node: str) -> ModuleState:
        """Return the node's module state.

        Raises:
            TransientProbeFailure: if the node could not be inspected.
        """
        try:
            result = self.cluster.exec_on_node(node, PROBE_SCRIPT, timeout=self.timeout)
        except CommandError as e:
            raise TransientProbeFailure(f"{node}: {e}") from e
        if not result.ok:
            raise TransientProbeFailure(
                f"{node}: inspection exited with status {result.returncode}: {result.output.strip()[-200:]}"
            )
        try:
            return parse_probe_output(result.output)
        except TransientProbeFailure as e:
            raise TransientProbeFailure(f"{node}: {e}") from e

    def probe(self, node: str) -> ModuleState:
        """Like ``inspect`` but an unreachable node reads as not loaded."""
        try:
            return self.inspect(node)
        except TransientProbeFailure as e:
            logger.warning(f"⚠️  Could not inspect node {e}; treating as not loaded")
            return NOT_LOADED
