"""Error taxonomy surfaced by daemon provisioning."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path


class ProvisionError(RuntimeError):
    """Base class for every provisioning failure returned to callers."""


class NoBuildInfoError(ProvisionError):
    """Desired daemon version cannot be determined from build metadata."""


class BackendUnavailableError(ProvisionError):
    """No container runtime is reachable (or authorized) on this host."""

    def __init__(self, message: str, *, failures: Sequence[str] = ()) -> None:
        details = "\n".join(f"  {failure}" for failure in failures)
        super().__init__(f"{message}\n{details}" if details else message)
        self.failures = tuple(failures)


class LockTimeoutError(ProvisionError):
    """Lock holder did not release within the bounded wait."""

    def __init__(self, path: Path, *, waited_seconds: float) -> None:
        super().__init__(
            f"Timed out after {waited_seconds:.1f}s waiting for daemon lock {path} "
            "(another client is still provisioning the daemon).",
        )
        self.path = path
        self.waited_seconds = waited_seconds


class LockIOError(ProvisionError):
    """Lock file or its parent directory cannot be created or opened."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Unable to create daemon lock file {path}: {reason}")
        self.path = path


class InspectParseError(ProvisionError):
    """Backend inspect output exists but does not match the expected fields."""

    def __init__(self, message: str, *, output: str) -> None:
        super().__init__(f"{message}\noutput:{output}")
        self.output = output


class BackendOperationError(ProvisionError):
    """External backend command failed; carries its combined output verbatim."""

    def __init__(
        self,
        operation: str,
        *,
        command: Sequence[str],
        returncode: int,
        output: str,
    ) -> None:
        super().__init__(f"{operation} error: exit status {returncode}\noutput:{output}")
        self.operation = operation
        self.command = tuple(command)
        self.returncode = returncode
        self.output = output


class BackendConflictError(BackendOperationError):
    """Another client created or started the same resource concurrently."""


class DaemonNotRespondingError(ProvisionError):
    """Daemon did not answer within the readiness budget."""

    def __init__(self, *, attempts: int, last_error: str | None) -> None:
        message = f"buildkitd failed to respond after {attempts} attempts"
        if last_error:
            message = f"{message}: {last_error}"
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class ProvisionCancelledError(ProvisionError):
    """Caller cancelled provisioning while it was blocked."""
