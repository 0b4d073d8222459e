"""
Exception hierarchy for the cluster lifecycle orchestrator.

Anything derived from CephStackError is fatal for the current phase. The CLI
turns it into a non-zero exit status; there is no automatic rollback, the
operator reruns the (idempotent) phase instead.
"""

from typing import Sequence


class CephStackError(Exception):
    """Base class for all orchestrator failures"""


class ConfigurationError(CephStackError):
    """Settings could not be resolved into a valid cluster configuration"""


class AdminCommandError(CephStackError):
    """A privileged command exited non-zero"""

    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = (stderr or "").strip()
        message = f"Command {' '.join(self.argv)!r} failed with exit code {returncode}"
        if self.stderr:
            message = f"{message}: {self.stderr}"
        super().__init__(message)


class ReadinessTimeout(CephStackError):
    """The cluster never produced its bootstrap-complete signal"""

    def __init__(self, path: str, attempts: int):
        self.path = path
        self.attempts = attempts
        super().__init__(f"Maximum of {attempts} retries reached waiting for {path}")


class ReadinessCancelled(CephStackError):
    """The readiness wait was cancelled before the signal appeared"""


class UnsupportedPlatformError(CephStackError):
    """OS or cluster release is not supported and no override was given"""


class GatewayEndpointMissing(CephStackError):
    """Remote object gateway selected without an endpoint URL"""


class CleanupNotConfirmed(CephStackError):
    """Destructive cleanup of a remote cluster was not confirmed"""


class InvalidPhaseTransition(CephStackError):
    """A lifecycle phase was requested from a state that does not allow it"""

    def __init__(self, phase: str, current: str):
        self.phase = phase
        self.current = current
        super().__init__(f"Cannot run '{phase}' while the deployment is {current}")


class CatalogError(CephStackError):
    """The identity/catalog service rejected a registration request"""
