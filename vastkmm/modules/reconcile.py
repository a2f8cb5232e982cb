"""Install / upgrade orchestration for the VAST NFS kernel module.

Phases: evaluating -> [unloading] -> applying -> [waiting_for_readiness ->
streaming] -> done, or failed. Only failures before or during apply stop a
run; everything after apply ends up as a warning in the report.
"""
import logging
import time
from typing import Callable, List, Optional, Union

from .aggregate import ClusterStateAggregator
from .cluster import ClusterClient
from .errors import (
    ApplyFailure,
    ClusterAccessError,
    KeyGenerationError,
    PreconditionFailure,
    ReadinessTimeout,
)
from .logstream import LogStreamSupervisor
from .models import (
    ClusterModuleState,
    DeploymentPhase,
    DeploymentReport,
    DeploymentRequest,
    ReconciliationDecision,
    WaitOutcome,
)
from .readiness import WorkerLogReady, WorkersAppear, wait_for
from .secure_boot import check_key_files, provision_secrets, verify_secrets
from .settings import TimeoutSettings
from .unload import GracefulUnloadSequencer

logger = logging.getLogger("vastkmm.reconcile")

ManifestSource = Union[str, Callable[[], str]]


def decide(
    state: ClusterModuleState, target_version: str, allow_noop: bool = False
) -> ReconciliationDecision:
    """Choose install, upgrade or no-op for ``target_version``.

    Any loaded node forces unload-then-install, even when it already runs
    the target version, so the new build is always loaded cleanly. With
    ``allow_noop`` a cluster fully on the target version is left alone.
    """
    if state.active_count == 0:
        return ReconciliationDecision.INSTALL
    if allow_noop and state.all_versions_match(target_version):
        return ReconciliationDecision.NOOP_ALREADY_CURRENT
    return ReconciliationDecision.UPGRADE_VIA_UNLOAD_THEN_INSTALL


class DeploymentReconciler:
    """Drives one install/upgrade run from evaluation to log streaming."""

    def __init__(
        self,
        cluster: ClusterClient,
        aggregator: Optional[ClusterStateAggregator] = None,
        sequencer: Optional[GracefulUnloadSequencer] = None,
        timeouts: Optional[TimeoutSettings] = None,
        allow_noop: bool = False,
        log_sink: Optional[Callable[[str], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cluster = cluster
        self.aggregator = aggregator or ClusterStateAggregator(cluster)
        self.sequencer = sequencer or GracefulUnloadSequencer(cluster)
        self.timeouts = timeouts or TimeoutSettings()
        self.allow_noop = allow_noop
        self.log_sink = log_sink
        self.sleep = sleep
        self.clock = clock

    def check_preconditions(self, request: DeploymentRequest) -> None:
        """Read-only checks that must pass before anything is changed."""
        if request.pull_secret:
            logger.info("Validating pull secret...")
            if not self.cluster.secret_exists(request.pull_secret, request.namespace):
                raise PreconditionFailure(
                    f"Pull secret '{request.pull_secret}' not found in namespace '{request.namespace}'. "
                    f"Create it first (oc create secret docker-registry {request.pull_secret} "
                    f"--docker-server=... --docker-username=... --docker-password=... -n {request.namespace}) "
                    "or unset KMM_PULL_SECRET"
                )
            logger.info(f"✅ Pull secret '{request.pull_secret}' found")
        if request.signing:
            check_key_files(request.signing)

    def run(self, request: DeploymentRequest, manifest: ManifestSource) -> DeploymentReport:
        """Install or upgrade to ``request.target_version``.

        Args:
            request: The deployment request
            manifest: Rendered manifest, or a callable producing it

        Returns:
            DeploymentReport; ``applied`` tells whether the manifest went in.
        """
        report = DeploymentReport()
        logger.info(f"🚀 Deploying VAST NFS {request.target_version} to namespace {request.namespace}")

        try:
            self.check_preconditions(request)
            rendered = manifest() if callable(manifest) else manifest
            state = self.aggregator.collect()
        except PreconditionFailure as e:
            logger.error(f"❌ {e}")
            report.precondition_failed = True
            return self._fail(report, e)
        except ClusterAccessError as e:
            logger.error(f"❌ Could not evaluate cluster state: {e}")
            return self._fail(report, e)

        report.cluster_state = state
        report.decision = decide(state, request.target_version, self.allow_noop)
        logger.info(f"Decision: {report.decision.value} ({state.active_count}/{state.total_count} nodes loaded)")

        if report.decision == ReconciliationDecision.NOOP_ALREADY_CURRENT:
            logger.info(f"✅ VAST NFS {request.target_version} is already active on all nodes")
            report.update_phase(DeploymentPhase.DONE)
            return report

        if report.decision == ReconciliationDecision.UPGRADE_VIA_UNLOAD_THEN_INSTALL:
            report.update_phase(DeploymentPhase.UNLOADING)
            logger.info(f"VAST NFS is loaded on {', '.join(state.loaded_nodes())}; unloading before install")
            report.unload_results = self.sequencer.unload_all(state.nodes.keys())
            for node, result in report.unload_results.items():
                for warning in result.warnings:
                    report.add_warning(f"{node}: {warning}")

        report.update_phase(DeploymentPhase.APPLYING)
        try:
            self._prepare_namespace(request)
            self.cluster.apply_manifest(rendered)
        except (ApplyFailure, ClusterAccessError, KeyGenerationError) as e:
            logger.error(f"❌ Failed to install VAST NFS KMM: {e}")
            return self._fail(report, e)
        report.applied = True
        logger.info("✅ VAST NFS KMM manifests applied")

        if request.follow_logs:
            report.update_phase(DeploymentPhase.WAITING_FOR_READINESS)
            workers = self.wait_for_workers(request, report)
            report.update_phase(DeploymentPhase.STREAMING)
            if workers:
                supervisor = self._supervisor(request)
                report.logs = supervisor.run(workers)
                for name in report.logs.exhausted:
                    report.add_warning(f"{name}: log stream retries exhausted")
            elif WaitOutcome.TIMED_OUT not in report.readiness.values():
                logger.info("✅ All pods completed successfully")

        report.update_phase(DeploymentPhase.DONE)
        logger.info(report.summary())
        return report

    def _fail(self, report: DeploymentReport, error: Exception) -> DeploymentReport:
        report.failure = error
        report.update_phase(DeploymentPhase.FAILED)
        return report

    def _prepare_namespace(self, request: DeploymentRequest) -> None:
        self.cluster.ensure_namespace(request.namespace)
        if request.signing:
            provision_secrets(self.cluster, request.namespace, request.signing)
            verify_secrets(self.cluster, request.namespace, request.signing)

    def _supervisor(self, request: DeploymentRequest) -> LogStreamSupervisor:
        kwargs = {}
        if self.log_sink is not None:
            kwargs['sink'] = self.log_sink
        return LogStreamSupervisor(
            self.cluster,
            request.namespace,
            max_attempts=self.timeouts.log_stream_attempts,
            backoff=self.timeouts.log_stream_backoff,
            tail_lines=self.timeouts.log_tail_lines,
            **kwargs,
        )

    def _version_active(self, target_version: str) -> bool:
        try:
            return self.aggregator.collect().any_version_matches(target_version)
        except ClusterAccessError:
            return False

    def wait_for_workers(self, request: DeploymentRequest, report: DeploymentReport) -> List[str]:
        """Wait for worker pods and return the ones worth streaming logs from."""
        t = self.timeouts
        logger.info("Waiting for pods to start...")
        appear = WorkersAppear(
            self.cluster,
            request.namespace,
            version_active=lambda: self._version_active(request.target_version),
            check_every=t.version_check_every,
            clock=self.clock,
        )
        outcome = wait_for(
            appear, t.pods_appear, t.poll_interval,
            initial_delay=t.pods_appear_initial_delay, sleep=self.sleep, clock=self.clock,
        )
        if outcome == WaitOutcome.TIMED_OUT and self._version_active(request.target_version):
            logger.info(f"✅ VAST NFS version {request.target_version} is active - installation successful")
            outcome = WaitOutcome.RESOURCE_GONE_EARLY
        report.readiness['pods'] = outcome

        if outcome == WaitOutcome.TIMED_OUT:
            timeout = ReadinessTimeout(
                f"Timeout waiting for pods to start after {t.pods_appear}s; "
                "the deployment may still complete, re-check later with 'vastkmm verify'"
            )
            logger.warning(f"⚠️  {timeout}")
            report.add_warning(str(timeout))
            return []
        if outcome == WaitOutcome.RESOURCE_GONE_EARLY:
            return []

        budget = t.pod_ready_prebuilt if request.prebuilt_images else t.pod_ready
        streamable = []
        for worker in appear.workers:
            logger.info(f"=== Preparing to follow logs for {worker.name} ===")
            predicate = WorkerLogReady(self.cluster, request.namespace, worker.name, clock=self.clock)
            worker_outcome = wait_for(predicate, budget, t.poll_interval, sleep=self.sleep, clock=self.clock)
            report.readiness[worker.name] = worker_outcome
            if worker_outcome == WaitOutcome.READY:
                streamable.append(worker.name)
            elif worker_outcome == WaitOutcome.RESOURCE_GONE_EARLY:
                logger.info(
                    f"Pod {worker.name} completed too quickly to stream logs "
                    "(this is normal with pre-built images)"
                )
            else:
                timeout = ReadinessTimeout(
                    f"{worker.name}: not ready for log streaming after {budget}s; "
                    "re-check later with 'vastkmm verify'"
                )
                logger.warning(f"⚠️  {timeout}")
                report.add_warning(str(timeout))
        return streamable
