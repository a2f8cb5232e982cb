"""Data models for VAST NFS module lifecycle management."""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional


class ReconciliationDecision(str, Enum):
    """What the reconciler will do for a requested version."""
    INSTALL = 'install'
    UPGRADE_VIA_UNLOAD_THEN_INSTALL = 'upgrade_via_unload_then_install'
    NOOP_ALREADY_CURRENT = 'noop_already_current'


class WaitOutcome(str, Enum):
    """Result of a bounded poll."""
    READY = 'ready'
    TIMED_OUT = 'timed_out'
    RESOURCE_GONE_EARLY = 'resource_gone_early'


class DeploymentPhase(str, Enum):
    """Phases of a deployment run."""
    EVALUATING = 'evaluating'
    UNLOADING = 'unloading'
    APPLYING = 'applying'
    WAITING_FOR_READINESS = 'waiting_for_readiness'
    STREAMING = 'streaming'
    DONE = 'done'
    FAILED = 'failed'


@dataclass(frozen=True)
class Node:
    """A cluster node as seen during one reconciliation cycle."""
    name: str
    reachable: bool = True


@dataclass(frozen=True)
class ModuleState:
    """Module load state of a single node.

    ``base_version`` is only set for source-control builds whose version
    differs from the base marker (a local or cherry-picked build).
    """
    loaded: bool
    version: Optional[str] = None
    base_version: Optional[str] = None

    def __post_init__(self):
        if not self.loaded and (self.version or self.base_version):
            raise ValueError("A module that is not loaded cannot carry a version")

    def describe(self) -> str:
        if not self.loaded:
            return "patched version not running"
        text = f"version: {self.version or 'unknown'}"
        if self.base_version:
            text += f" (build-version: {self.base_version})"
        return text


NOT_LOADED = ModuleState(loaded=False)


@dataclass(frozen=True)
class ClusterModuleState:
    """Module state of every node, keyed by node name."""
    nodes: Dict[str, ModuleState] = field(default_factory=dict)
    unreachable: FrozenSet[str] = frozenset()

    @property
    def total_count(self) -> int:
        return len(self.nodes)

    @property
    def active_count(self) -> int:
        return sum(1 for state in self.nodes.values() if state.loaded)

    def loaded_nodes(self) -> List[str]:
        return sorted(name for name, state in self.nodes.items() if state.loaded)

    def all_versions_match(self, target: str) -> bool:
        """True when every node runs exactly ``target``."""
        if not self.nodes:
            return False
        return all(s.loaded and s.version == target for s in self.nodes.values())

    def any_version_matches(self, target: str) -> bool:
        return any(s.loaded and s.version == target for s in self.nodes.values())

    def as_dict(self) -> Dict[str, Any]:
        return {
            'active': self.active_count,
            'total': self.total_count,
            'unreachable': sorted(self.unreachable),
            'nodes': {
                name: {
                    'loaded': state.loaded,
                    'version': state.version,
                    'build_version': state.base_version,
                }
                for name, state in sorted(self.nodes.items())
            },
        }


@dataclass(frozen=True)
class SigningMaterial:
    """Key pair and secret names used for secure boot module signing."""
    private_key_file: str
    public_cert_file: str
    key_secret: str = 'vastnfs-signing-key'
    cert_secret: str = 'vastnfs-signing-cert'
    image_repo_secret: str = 'vastnfs-registry-secret'


@dataclass(frozen=True)
class DeploymentRequest:
    """Everything one install/upgrade invocation needs. Built once by the CLI."""
    target_version: str
    namespace: str
    image: str
    pull_secret: Optional[str] = None
    signing: Optional[SigningMaterial] = None
    prebuilt_images: bool = True
    follow_logs: bool = False
    module_name: str = 'vastnfs'

    def template_variables(self) -> Dict[str, str]:
        """Variables substituted into the rendered manifest."""
        variables = {
            'VASTNFS_VERSION': self.target_version,
            'KMM_IMG': self.image,
            'NAMESPACE': self.namespace,
        }
        if self.pull_secret:
            variables['KMM_PULL_SECRET'] = self.pull_secret
        if self.signing:
            variables['SIGNING_KEY_SECRET'] = self.signing.key_secret
            variables['SIGNING_CERT_SECRET'] = self.signing.cert_secret
            variables['IMAGE_REPO_SECRET'] = self.signing.image_repo_secret
        return variables


@dataclass(frozen=True)
class WorkerStatus:
    """A worker pod as listed in the deployment namespace."""
    name: str
    phase: str = ''
    container_ready: bool = False


@dataclass
class StepOutcome:
    """Result of one step of the unload sequence on one node."""
    step: str
    status: str  # 'ok', 'fail' or 'skip'
    detail: str = ''

    @property
    def failed(self) -> bool:
        return self.status == 'fail'


@dataclass
class UnloadResult:
    """Outcome of the graceful unload sequence on a node."""
    node: str
    steps: List[StepOutcome] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    skipped: bool = False

    @property
    def clean(self) -> bool:
        return not self.warnings


@dataclass
class LogSession:
    """Workers being streamed, with per-worker attempts and a shared cancel token."""
    workers: List[str] = field(default_factory=list)
    attempts: Dict[str, int] = field(default_factory=dict)
    cancel_event: threading.Event = field(default_factory=threading.Event)
    open_streams: Dict[str, Any] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


@dataclass
class LogSessionReport:
    """What happened to each log stream."""
    completed: List[str] = field(default_factory=list)
    exhausted: List[str] = field(default_factory=list)
    attempts: Dict[str, int] = field(default_factory=dict)
    cancelled: bool = False


@dataclass
class DeploymentReport:
    """Tracks one reconciliation run and renders its final summary."""
    phase: DeploymentPhase = DeploymentPhase.EVALUATING
    history: List[DeploymentPhase] = field(default_factory=lambda: [DeploymentPhase.EVALUATING])
    decision: Optional[ReconciliationDecision] = None
    cluster_state: Optional[ClusterModuleState] = None
    unload_results: Dict[str, UnloadResult] = field(default_factory=dict)
    readiness: Dict[str, WaitOutcome] = field(default_factory=dict)
    logs: Optional[LogSessionReport] = None
    warnings: List[str] = field(default_factory=list)
    applied: bool = False
    precondition_failed: bool = False
    failure: Optional[Exception] = None

    def update_phase(self, phase: DeploymentPhase) -> None:
        self.phase = phase
        self.history.append(phase)

    def add_warning(self, warning: str) -> None:
        self.warnings.append(warning)

    @property
    def unload_performed(self) -> bool:
        return bool(self.unload_results)

    @property
    def unload_clean(self) -> bool:
        return all(result.clean for result in self.unload_results.values())

    def summary(self) -> str:
        if not self.applied:
            if self.decision == ReconciliationDecision.NOOP_ALREADY_CURRENT:
                return "Deployment not applied: target version already active on all nodes"
            reason = f": {self.failure}" if self.failure else ""
            if self.precondition_failed:
                return f"Deployment not applied due to precondition{reason}"
            return f"Deployment not applied{reason}"
        if not self.unload_performed:
            text = "Deployment applied (fresh install, no unload needed)"
        elif self.unload_clean:
            text = "Deployment applied, unload performed cleanly"
        else:
            text = "Deployment applied, unload reported warnings"
        if self.warnings:
            text += f" ({len(self.warnings)} warning(s))"
        return text
