"""Exceptions raised by the module lifecycle orchestrator.

PreconditionFailure and ApplyFailure abort a deployment, as do cluster
access and signing secret failures while applying. The other kinds are
caught where they happen and turned into report warnings.
"""


class VastKmmError(Exception):
    """Base class for all vastkmm errors."""
    pass


class ClusterAccessError(VastKmmError):
    """The cluster API could not be reached (e.g. node list unavailable)."""
    pass


class CommandError(VastKmmError):
    """An external command exited non-zero or could not be started."""

    def __init__(self, cmd, returncode=None, output=''):
        self.cmd = cmd
        self.returncode = returncode
        self.output = output
        cmd_str = cmd if isinstance(cmd, str) else ' '.join(cmd)
        message = f"Command failed: {cmd_str}"
        if returncode is not None:
            message += f" (exit code: {returncode})"
        if output:
            message += f"\n{output.strip()}"
        super().__init__(message)


class TransientProbeFailure(VastKmmError):
    """Inspecting a single node failed. Absorbed as 'not loaded'."""
    pass


class SequencerStepFailure(VastKmmError):
    """One unload step failed on a node. Collected as a warning."""
    pass


class PreconditionFailure(VastKmmError):
    """A required input is missing. Raised before anything is mutated."""
    pass


class ApplyFailure(VastKmmError):
    """The cluster rejected the manifest. Never retried automatically."""
    pass


class ReadinessTimeout(VastKmmError):
    """A resource gave no evidence of readiness within its budget."""
    pass


class StreamRetryExhausted(VastKmmError):
    """A log stream could not be opened within its retry budget."""
    pass


class KeyGenerationError(VastKmmError):
    """Signing key generation or secret verification failed."""
    pass
