"""Bounded polling for eventually-consistent cluster state.

``wait_for`` is the one polling loop; the classes below are the predicates
it is used with. A predicate returns a WaitOutcome to stop, or None to keep
polling.
"""
import logging
import time
from typing import Callable, List, Optional

from .cluster import ClusterClient
from .errors import ClusterAccessError
from .models import WaitOutcome, WorkerStatus

logger = logging.getLogger("vastkmm.readiness")

Predicate = Callable[[], Optional[WaitOutcome]]


def wait_for(
    predicate: Predicate,
    timeout: float,
    poll_interval: float,
    *,
    initial_delay: float = 0,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> WaitOutcome:
    """Poll ``predicate`` until it returns an outcome or ``timeout`` elapses.

    The predicate is always evaluated at least once, and once more at the
    deadline. Cluster access errors inside the predicate count as "not yet".
    """
    if initial_delay:
        sleep(initial_delay)
    deadline = clock() + timeout

    while True:
        try:
            outcome = predicate()
        except ClusterAccessError as e:
            logger.debug(f"Poll failed, will retry: {e}")
            outcome = None
        if outcome is not None:
            return outcome

        remaining = deadline - clock()
        if remaining <= 0:
            return WaitOutcome.TIMED_OUT
        sleep(min(poll_interval, remaining))


class WorkersAppear:
    """At least one worker pod exists in the namespace.

    Workers with pre-built images can finish and vanish before the first
    poll. If ``version_active`` is given it is consulted every
    ``check_every`` seconds: the target version already running on a node
    means the workers completed, reported as RESOURCE_GONE_EARLY.
    """

    def __init__(
        self,
        cluster: ClusterClient,
        namespace: str,
        version_active: Optional[Callable[[], bool]] = None,
        check_every: float = 10,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cluster = cluster
        self.namespace = namespace
        self.version_active = version_active
        self.check_every = check_every
        self.clock = clock
        self.workers: List[WorkerStatus] = []
        self._started = clock()
        self._last_check: Optional[float] = None

    def __call__(self) -> Optional[WaitOutcome]:
        self.workers = self.cluster.list_pods(self.namespace)
        if self.workers:
            logger.info(f"✅ Found pods: {' '.join(w.name for w in self.workers)}")
            return WaitOutcome.READY

        now = self.clock()
        if self._last_check is None or now - self._last_check >= self.check_every:
            self._last_check = now
            logger.info(f"Waiting for pods to start... ({now - self._started:.0f}s elapsed)")
            if self.version_active is not None and self.version_active():
                logger.info("✅ Target version is already active - pods completed successfully")
                return WaitOutcome.RESOURCE_GONE_EARLY
        return None


class WorkerLogReady:
    """A worker pod has output worth streaming.

    Ready means a ready container, phase Running, or a successful tail-1 log
    fetch. A Failed pod is ready too so its logs can be inspected. A pod
    that Succeeded or disappeared after being seen finished before it could
    be observed: RESOURCE_GONE_EARLY.
    """

    def __init__(
        self,
        cluster: ClusterClient,
        namespace: str,
        name: str,
        seen: bool = True,
        report_every: float = 10,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cluster = cluster
        self.namespace = namespace
        self.name = name
        self.seen = seen
        self.report_every = report_every
        self.clock = clock
        self._started = clock()
        self._last_report: Optional[float] = None

    def __call__(self) -> Optional[WaitOutcome]:
        pod = self.cluster.get_pod(self.name, self.namespace)
        if pod is None:
            if self.seen:
                logger.info(f"Pod {self.name} no longer exists - it completed successfully")
                return WaitOutcome.RESOURCE_GONE_EARLY
            return None
        self.seen = True

        if pod.phase == 'Succeeded':
            logger.info(f"✅ Pod {self.name} completed successfully")
            return WaitOutcome.RESOURCE_GONE_EARLY
        if pod.phase == 'Failed':
            logger.warning(f"⚠️  Pod {self.name} failed")
            return WaitOutcome.READY

        if pod.container_ready or pod.phase == 'Running' or \
                self.cluster.fetch_logs(self.name, self.namespace, tail_lines=1) is not None:
            logger.info(f"✅ Pod {self.name} is ready for log streaming")
            return WaitOutcome.READY

        now = self.clock()
        if self._last_report is None or now - self._last_report >= self.report_every:
            self._last_report = now
            logger.info(f"Pod status: {pod.phase or 'Unknown'}, waiting... ({now - self._started:.0f}s)")
        return None


class ModuleLoaderReady:
    """The KMM Module's loader daemon set is fully available."""

    def __init__(self, cluster: ClusterClient, namespace: str, module_name: str):
        self.cluster = cluster
        self.namespace = namespace
        self.module_name = module_name

    def __call__(self) -> Optional[WaitOutcome]:
        status = self.cluster.get_module_status(self.module_name, self.namespace)
        available = int(status.get('availableNumber', 0) or 0)
        desired = int(status.get('desiredNumber', 0) or 0)
        if available > 0 and available == desired:
            logger.info(f"✅ Module {self.module_name} is ready")
            return WaitOutcome.READY
        logger.debug(f"Module {self.module_name}: {available}/{desired} available")
        return None
