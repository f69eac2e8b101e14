"""Entry point: make sure a healthy buildkitd is available and return its address."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from buildkitd_provisioner.backend.base import BackendDriver
from buildkitd_provisioner.backend.command import CommandRunner, SubprocessRunner
from buildkitd_provisioner.backend.registry import BackendRegistry, default_registry
from buildkitd_provisioner.config import Settings
from buildkitd_provisioner.lock import LockGuard
from buildkitd_provisioner.reconciler import ReconcileAction, Reconciler
from buildkitd_provisioner.version import VersionResolver

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ConnectionHandle:
    """Address of a ready daemon; owned by the caller once returned."""

    address: str
    backend: str | None = None
    version: str | None = None
    action: ReconcileAction | None = None

    @property
    def provisioned(self) -> bool:
        return self.backend is not None


class ClientFactory:
    """Resolve version, select backend, then inspect and converge under the lock."""

    def __init__(  # noqa: PLR0913
        self,
        settings: Settings,
        *,
        registry: BackendRegistry | None = None,
        runner: CommandRunner | None = None,
        resolver: VersionResolver | None = None,
        cancel_requested: Callable[[], bool] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.registry = registry or default_registry()
        self.runner = runner or SubprocessRunner(cancel_requested=cancel_requested)
        self.resolver = resolver or VersionResolver(
            distribution=settings.distribution,
            host_override=settings.host_override,
            version_override=settings.version_override,
        )
        self.cancel_requested = cancel_requested
        self.sleep = sleep

    def ensure_daemon(self) -> ConnectionHandle:
        resolution = self.resolver.resolve()
        if resolution.host is not None:
            return ConnectionHandle(address=resolution.host)

        self.settings.validate()
        version = resolution.version or ""
        # Backend probe stays outside the lock.
        driver = self.select_backend()

        with self.lock_guard().hold():
            result = Reconciler(
                driver,
                readiness=self.settings.readiness,
                cancel_requested=self.cancel_requested,
                sleep=self.sleep,
            ).converge(version)

        logger.debug(
            "buildkitd ready at %s (action=%s)",
            result.endpoint,
            result.action.value,
        )
        return ConnectionHandle(
            address=result.endpoint,
            backend=driver.kind,
            version=version,
            action=result.action,
        )

    def select_backend(self) -> BackendDriver:
        return self.registry.select(
            identity=self.settings.identity,
            runner=self.runner,
            preferred=self.settings.backends,
        )

    def lock_guard(self) -> LockGuard:
        return LockGuard(
            self.settings.lock.path,
            timeout_seconds=self.settings.lock.timeout_seconds,
            poll_interval_seconds=self.settings.lock.poll_interval_seconds,
            cancel_requested=self.cancel_requested,
            sleep=self.sleep,
        )


def ensure_daemon(
    settings: Settings | None = None,
    *,
    cancel_requested: Callable[[], bool] | None = None,
) -> ConnectionHandle:
    """Return a handle to a ready buildkitd, provisioning it if needed."""

    return ClientFactory(
        settings or Settings.from_env(),
        cancel_requested=cancel_requested,
    ).ensure_daemon()
