"""Deployment verification.

Checks the KMM Module object, VAST NFS activity on every node, the pods in
the deployment namespace, and the secure boot state of one node.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .aggregate import ClusterStateAggregator
from .cluster import ClusterClient
from .errors import ClusterAccessError, CommandError
from .models import ClusterModuleState, WaitOutcome, WorkerStatus
from .readiness import ModuleLoaderReady, wait_for

logger = logging.getLogger("vastkmm.verify")

SECURE_BOOT_SCRIPT = """
echo "signature=$(modinfo sunrpc 2>/dev/null | grep -m1 signature | sed 's/^[[:space:]]*signature:[[:space:]]*//')"
echo "sb_state=$(mokutil --sb-state 2>/dev/null | head -1)"
"""


def troubleshooting(namespace: str, module_name: str) -> List[str]:
    return [
        "Check module logs:",
        f"   oc logs -l kmm.node.kubernetes.io/module.name={module_name} -n {namespace}",
        "Check KMM operator logs:",
        f"   oc logs -n openshift-kmm deployment/kmm-operator-controller | grep -i {module_name}",
        "Restart module deployment:",
        f"   oc delete module {module_name} -n {namespace}",
        "   # Then redeploy with 'vastkmm install'",
        "Check node kernel version compatibility:",
        "   oc debug node/<node-name> -- chroot /host uname -r",
    ]


@dataclass
class SecureBootInfo:
    node: str
    signature: Optional[str] = None
    sb_state: Optional[str] = None


@dataclass
class VerificationReport:
    """Everything the verify command found."""
    namespace: str
    module_name: str
    module_found: bool = False
    module_status: Dict[str, Any] = field(default_factory=dict)
    module_wait: Optional[WaitOutcome] = None
    cluster_state: Optional[ClusterModuleState] = None
    pods: List[WorkerStatus] = field(default_factory=list)
    secure_boot: Optional[SecureBootInfo] = None
    errors: List[str] = field(default_factory=list)

    @property
    def all_active(self) -> bool:
        state = self.cluster_state
        return state is not None and state.total_count > 0 and state.active_count == state.total_count

    @property
    def passed(self) -> bool:
        return self.module_found and self.all_active and not self.errors

    def as_dict(self) -> Dict[str, Any]:
        return {
            'namespace': self.namespace,
            'module': self.module_name,
            'module_found': self.module_found,
            'module_status': self.module_status,
            'module_wait': self.module_wait.value if self.module_wait else None,
            'cluster': self.cluster_state.as_dict() if self.cluster_state else None,
            'pods': [{'name': p.name, 'phase': p.phase} for p in self.pods],
            'secure_boot': vars(self.secure_boot) if self.secure_boot else None,
            'errors': self.errors,
            'passed': self.passed,
        }


def parse_secure_boot_output(node: str, output: str) -> SecureBootInfo:
    info = SecureBootInfo(node=node)
    for line in output.splitlines():
        key, sep, value = line.strip().partition('=')
        if not sep or not value.strip():
            continue
        if key == 'signature':
            info.signature = value.strip()
        elif key == 'sb_state':
            info.sb_state = value.strip()
    return info


def check_secure_boot(cluster: ClusterClient, node: str) -> SecureBootInfo:
    """Module signature and secure boot state of one node."""
    try:
        result = cluster.exec_on_node(node, SECURE_BOOT_SCRIPT)
    except CommandError as e:
        logger.warning(f"⚠️  Could not inspect secure boot state on {node}: {e}")
        return SecureBootInfo(node=node)
    return parse_secure_boot_output(node, result.output)


def verify_deployment(
    cluster: ClusterClient,
    namespace: str,
    module_name: str = 'vastnfs',
    aggregator: Optional[ClusterStateAggregator] = None,
    wait_timeout: Optional[int] = None,
    poll_interval: float = 5,
    check_secure_boot_state: bool = True,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> VerificationReport:
    """Run every verification check; failures are recorded, not raised."""
    aggregator = aggregator or ClusterStateAggregator(cluster)
    report = VerificationReport(namespace=namespace, module_name=module_name)

    if wait_timeout:
        logger.info(f"Waiting for module {module_name} to be ready (timeout: {wait_timeout}s)...")
        report.module_wait = wait_for(
            ModuleLoaderReady(cluster, namespace, module_name),
            wait_timeout, poll_interval, sleep=sleep, clock=clock,
        )
        if report.module_wait == WaitOutcome.TIMED_OUT:
            logger.error(f"Module {module_name} did not become ready within {wait_timeout}s")

    logger.info("Checking KMM Module Status")
    try:
        module = cluster.get_module(module_name, namespace)
    except ClusterAccessError as e:
        report.errors.append(str(e))
        module = None
    if module is None:
        logger.error(f"Module '{module_name}' not found in namespace '{namespace}'")
    else:
        report.module_found = True
        report.module_status = module.get('status', {}).get('moduleLoader', {}) or {}
        logger.info(f"Module found: {module_name}")

    logger.info("Verifying VAST NFS is Active on Nodes")
    try:
        report.cluster_state = aggregator.collect()
    except ClusterAccessError as e:
        report.errors.append(str(e))

    state = report.cluster_state
    if state is not None:
        if state.active_count == 0:
            logger.error("VAST NFS is not active on any nodes")
        elif state.active_count < state.total_count:
            logger.warning("⚠️  VAST NFS is not active on all nodes")
        else:
            logger.info("✅ VAST NFS is active on all nodes")

    try:
        report.pods = cluster.list_pods(namespace)
    except ClusterAccessError as e:
        logger.warning(f"⚠️  Could not list pods: {e}")

    if check_secure_boot_state and state is not None and state.nodes:
        node = next(iter(state.nodes))
        logger.info(f"Checking secure boot status on node: {node}")
        report.secure_boot = check_secure_boot(cluster, node)
        if report.secure_boot.signature:
            logger.info(f"✅ Module signature found: {report.secure_boot.signature}")
        else:
            logger.info("No module signature found (not using secure boot or unsigned modules)")

    return report
