"""Graceful VAST NFS module unload.

Unload order on a node:

1. Unmount NFS filesystems (nfs4, then nfs)
2. Stop RPC services, leaving rpcbind.socket alone
3. Unmount rpc_pipefs where mounted
4. rmmod the NFS module stack, most dependent first, sunrpc last

Every step runs even when an earlier one failed. Each step prints a
``@@step <id> <ok|fail|skip> <detail>`` line that is parsed back into
StepOutcome records, so a failure surfaces as a warning instead of being
swallowed by ``|| true``.
"""
import logging
import textwrap
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, Iterable, List, Optional, Tuple

from .cluster import ClusterClient
from .errors import CommandError, SequencerStepFailure
from .models import StepOutcome, UnloadResult
from .probe import GIT_MARKER, RELEASE_MARKER, SYSFS_PARAMS

logger = logging.getLogger("vastkmm.unload")

NFS_FSTYPES = ['nfs4', 'nfs']

# (unit, socket that keeps it alive and must never be stopped)
RPC_SERVICES: List[Tuple[str, Optional[str]]] = [
    ('rpc-gssd', None),
    ('rpcbind', 'rpcbind.socket'),
]

PIPEFS_MOUNT_POINTS = ['/var/lib/nfs/rpc_pipefs', '/run/rpc_pipefs']

# Most dependent first, base transport last
MODULE_UNLOAD_ORDER = [
    'nfsv4', 'nfsv3', 'nfs', 'nfsd', 'rpcsec_gss_krb5', 'auth_rpcgss',
    'nfs_acl', 'lockd', 'nfs_ssc', 'compat_nfs_ssc', 'rpcrdma', 'sunrpc',
]
BASE_TRANSPORT_MODULE = 'sunrpc'

STEP_PREFIX = '@@step'
NOT_LOADED_MARKER = '@@not-loaded'
DONE_MARKER = '@@done'

_SCRIPT_HEADER = f"""
report() {{ echo "{STEP_PREFIX} $1 $2 ${{3//$'\\n'/ }}"; }}
if [[ ! -e {SYSFS_PARAMS}/{RELEASE_MARKER} ]] && \\
   [[ ! -e {SYSFS_PARAMS}/{GIT_MARKER} ]]; then
    echo "{NOT_LOADED_MARKER}"
    exit 0
fi
"""


def _umount_fs_step(fstype: str) -> str:
    return f"""
if out=$(umount -a -t {fstype} 2>&1); then
    report umount-{fstype} ok
elif echo "$out" | grep -qi "not mounted"; then
    report umount-{fstype} ok "not mounted"
else
    report umount-{fstype} fail "$out"
fi
"""


def _stop_service_step(unit: str, socket: Optional[str]) -> str:
    stop = f"""if out=$(systemctl stop {unit} 2>&1); then
    report stop-{unit} ok
elif echo "$out" | grep -qiE "not loaded|not found"; then
    report stop-{unit} ok "unit not present"
else
    report stop-{unit} fail "$out"
fi
"""
    if socket is None:
        return "\n" + stop
    return f"""
if systemctl is-active {socket} >/dev/null 2>&1; then
    report stop-{unit} skip "{socket} is active"
else
{textwrap.indent(stop, '    ')}fi
"""


def _pipefs_step(path: str) -> str:
    return f"""
if grep -q "{path} rpc_pipefs" /proc/mounts 2>/dev/null; then
    if out=$(umount {path} 2>&1); then
        report pipefs:{path} ok
    else
        report pipefs:{path} fail "$out"
    fi
else
    report pipefs:{path} skip "not mounted"
fi
"""


def _rmmod_step(module: str) -> str:
    drain = ""
    if module == BASE_TRANSPORT_MODULE:
        drain = """
    echo 2 > /proc/sys/vm/drop_caches
    sleep 1"""
    return f"""
if [[ -d /sys/module/{module} ]]; then{drain}
    if out=$(rmmod {module} 2>&1); then
        report rmmod:{module} ok
    else
        report rmmod:{module} fail "$out"
    fi
else
    report rmmod:{module} skip "not loaded"
fi
"""


def build_unload_script() -> str:
    """Assemble the full, strictly ordered unload script."""
    parts = [_SCRIPT_HEADER]
    parts += [_umount_fs_step(fstype) for fstype in NFS_FSTYPES]
    parts += [_stop_service_step(unit, socket) for unit, socket in RPC_SERVICES]
    parts += [_pipefs_step(path) for path in PIPEFS_MOUNT_POINTS]
    parts += [_rmmod_step(module) for module in MODULE_UNLOAD_ORDER]
    parts.append(f'echo "{DONE_MARKER}"\n')
    return ''.join(parts)


def expected_steps() -> List[str]:
    """Step ids in the order the script runs them."""
    steps = [f'umount-{fstype}' for fstype in NFS_FSTYPES]
    steps += [f'stop-{unit}' for unit, _ in RPC_SERVICES]
    steps += [f'pipefs:{path}' for path in PIPEFS_MOUNT_POINTS]
    steps += [f'rmmod:{module}' for module in MODULE_UNLOAD_ORDER]
    return steps


def parse_unload_output(node: str, output: str) -> UnloadResult:
    """Parse the step report lines of one unload run."""
    result = UnloadResult(node=node)
    finished = False
    for raw in output.splitlines():
        line = raw.strip()
        if line == NOT_LOADED_MARKER:
            result.skipped = True
            return result
        if line == DONE_MARKER:
            finished = True
            continue
        if not line.startswith(STEP_PREFIX + ' '):
            continue
        parts = line.split(None, 3)
        if len(parts) < 3:
            continue
        outcome = StepOutcome(step=parts[1], status=parts[2], detail=parts[3] if len(parts) > 3 else '')
        result.steps.append(outcome)
        if outcome.failed:
            result.warnings.append(f"{outcome.step} failed: {outcome.detail}".rstrip(': '))

    if not finished:
        result.warnings.append("unload sequence did not run to completion")
    return result


class GracefulUnloadSequencer:
    """Runs the ordered teardown on nodes. Never raises for a node failure."""

    def __init__(self, cluster: ClusterClient, max_workers: int = 8, timeout: Optional[int] = None):
        self.cluster = cluster
        self.max_workers = max_workers
        self.timeout = timeout
        self.script = build_unload_script()

    def unload(self, node: str) -> UnloadResult:
        """Unload VAST NFS modules from one node."""
        logger.info(f"Processing node: {node}")
        try:
            exec_result = self.cluster.exec_on_node(node, self.script, timeout=self.timeout)
        except CommandError as e:
            failure = SequencerStepFailure(f"could not run unload sequence: {e}")
            logger.warning(f"⚠️  {node}: {failure}")
            return UnloadResult(node=node, warnings=[str(failure)])

        result = parse_unload_output(node, exec_result.output)
        if not exec_result.ok and not result.skipped:
            result.warnings.append(f"unload script exited with status {exec_result.returncode}")

        if result.skipped:
            logger.info(f"{node}: VAST NFS modules not loaded, nothing to do")
        elif result.clean:
            logger.info(f"✅ Successfully unloaded modules from node: {node}")
        else:
            for warning in result.warnings:
                logger.warning(f"⚠️  {node}: {warning}")
            logger.warning(f"Some errors occurred on node: {node} (may be expected)")
        return result

    def unload_all(self, nodes: Iterable[str]) -> Dict[str, UnloadResult]:
        """Unload on every node in parallel; returns once all nodes are done."""
        nodes = list(nodes)
        results: Dict[str, UnloadResult] = {}
        if not nodes:
            return results

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(nodes))) as executor:
            future_to_node = {executor.submit(self.unload, node): node for node in nodes}
            for future in as_completed(future_to_node):
                node = future_to_node[future]
                try:
                    results[node] = future.result()
                except Exception as e:
                    logger.error(f"Error unloading node {node}: {e}", exc_info=True)
                    results[node] = UnloadResult(node=node, warnings=[f"unload failed: {e}"])
        return dict(sorted(results.items()))
