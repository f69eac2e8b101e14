"""Backend interface for daemon provisioning runtimes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(slots=True, frozen=True)
class ObservedState:
    """Point-in-time snapshot of the daemon resource on a backend."""

    exists: bool
    version: str = ""
    running: bool = False
    host_network: bool = False


ABSENT = ObservedState(exists=False)


class BackendDriver(Protocol):
    """Capabilities implemented by each container/orchestration runtime driver."""

    kind: str

    def probe(self) -> None:
        """Raise ``BackendUnavailableError`` if the runtime control plane is unusable."""

    def remove(self) -> None:
        """Remove the daemon resource and its state; absence is not an error."""

    def install(self, version: str) -> None:
        """Build the versioned artifact, then create and start the resource."""

    def start(self) -> None:
        """Start an existing, correctly versioned resource."""

    def inspect(self) -> ObservedState:
        """Observe existence, version and running flag of the resource."""

    def ping(self) -> None:
        """Issue a no-op daemon call; raise ``BackendOperationError`` if it fails."""

    def endpoint(self) -> str:
        """Return the scheme-qualified address of the daemon."""
