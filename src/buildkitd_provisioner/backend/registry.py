"""Static registry of backend drivers and host-usable backend selection."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from functools import cache
from types import MappingProxyType

from buildkitd_provisioner.backend.base import BackendDriver
from buildkitd_provisioner.backend.command import CommandRunner
from buildkitd_provisioner.backend.docker import DockerBackend
from buildkitd_provisioner.backend.podman import PodmanBackend
from buildkitd_provisioner.config import DaemonIdentity
from buildkitd_provisioner.errors import BackendUnavailableError

logger = logging.getLogger(__name__)

BackendFactory = Callable[[DaemonIdentity, CommandRunner], BackendDriver]


@dataclass(slots=True, frozen=True)
class BackendRegistration:
    """Named constructor producing a driver for one runtime kind."""

    kind: str
    factory: BackendFactory


BUILTIN_REGISTRATIONS: tuple[BackendRegistration, ...] = (
    BackendRegistration(kind="docker", factory=DockerBackend),
    BackendRegistration(kind="podman", factory=PodmanBackend),
)


class BackendRegistry:
    """Read-only mapping of backend kinds to constructors, in registration order."""

    def __init__(self, registrations: Iterable[BackendRegistration]) -> None:
        by_kind: dict[str, BackendRegistration] = {}
        for registration in registrations:
            if registration.kind in by_kind:
                raise ValueError(f"Duplicate backend registration: {registration.kind!r}")
            by_kind[registration.kind] = registration
        self._by_kind = MappingProxyType(by_kind)

    @property
    def kinds(self) -> tuple[str, ...]:
        return tuple(self._by_kind)

    def get(self, kind: str) -> BackendRegistration:
        try:
            return self._by_kind[kind]
        except KeyError as error:
            raise ValueError(
                f"Unsupported backend: {kind!r}. Expected one of: {', '.join(self.kinds)}",
            ) from error

    def select(
        self,
        *,
        identity: DaemonIdentity,
        runner: CommandRunner,
        preferred: Sequence[str] | None = None,
    ) -> BackendDriver:
        """Return a driver for the first backend whose control plane answers."""

        kinds = tuple(preferred) if preferred else self.kinds
        failures: list[str] = []
        for kind in kinds:
            driver = self.get(kind).factory(identity, runner)
            try:
                driver.probe()
            except BackendUnavailableError as error:
                failures.extend(error.failures or (f"{kind}: {error}",))
                continue
            logger.debug("Selected %s backend", kind)
            return driver

        raise BackendUnavailableError("no provisioner available", failures=failures)


@cache
def default_registry() -> BackendRegistry:
    """Process-wide registry of built-in backends, populated once."""

    return BackendRegistry(BUILTIN_REGISTRATIONS)
