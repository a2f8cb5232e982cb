"""
VAST NFS Kernel Module Lifecycle Management

This package deploys and manages the VAST NFS kernel module on every node
of a cluster running the Kernel Module Management (KMM) operator.

It's organized into several focused modules:

- probe: per-node module state detection
- aggregate: cluster-wide state collection
- unload: graceful module unload on a node
- reconcile: install/upgrade orchestration
- readiness: bounded polling primitives
- logstream: worker pod log streaming
- secure_boot: signing keys and secrets
- verify / uninstall: verification and removal
- cluster: cluster API and CLI access
- models / errors / settings: data types, exceptions, settings
"""

from .models import (
    Node, ModuleState, ClusterModuleState, DeploymentRequest, SigningMaterial,
    ReconciliationDecision, WaitOutcome, DeploymentPhase, DeploymentReport,
    UnloadResult, StepOutcome, LogSession, LogSessionReport, WorkerStatus,
)
from .errors import (
    VastKmmError, ClusterAccessError, CommandError, TransientProbeFailure,
    SequencerStepFailure, PreconditionFailure, ApplyFailure, ReadinessTimeout,
    StreamRetryExhausted, KeyGenerationError,
)
from .cluster import ClusterClient, ExecResult
from .probe import NodeStateProbe, parse_probe_output
from .aggregate import ClusterStateAggregator
from .unload import GracefulUnloadSequencer
from .readiness import wait_for
from .logstream import LogStreamSupervisor
from .reconcile import DeploymentReconciler, decide
from .settings import KmmSettings, get_settings, set_settings

__all__ = [
    # Data model
    'Node',
    'ModuleState',
    'ClusterModuleState',
    'DeploymentRequest',
    'SigningMaterial',
    'ReconciliationDecision',
    'WaitOutcome',
    'DeploymentPhase',
    'DeploymentReport',
    'UnloadResult',
    'StepOutcome',
    'LogSession',
    'LogSessionReport',
    'WorkerStatus',

    # Errors
    'VastKmmError',
    'ClusterAccessError',
    'CommandError',
    'TransientProbeFailure',
    'SequencerStepFailure',
    'PreconditionFailure',
    'ApplyFailure',
    'ReadinessTimeout',
    'StreamRetryExhausted',
    'KeyGenerationError',

    # Components
    'ClusterClient',
    'ExecResult',
    'NodeStateProbe',
    'parse_probe_output',
    'ClusterStateAggregator',
    'GracefulUnloadSequencer',
    'wait_for',
    'LogStreamSupervisor',
    'DeploymentReconciler',
    'decide',

    # Settings
    'KmmSettings',
    'get_settings',
    'set_settings',
]
