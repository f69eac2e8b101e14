"""Controllers for daemon provisioning CLI commands."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from buildkitd_provisioner.backend.command import CommandRunner
from buildkitd_provisioner.backend.registry import BackendRegistry
from buildkitd_provisioner.client import ClientFactory
from buildkitd_provisioner.config import Settings
from buildkitd_provisioner.inspector import StateInspector
from buildkitd_provisioner.reconciler import plan_action


@dataclass(slots=True)
class DaemonEnsureCommand:
    """CLI input for provisioning the daemon."""

    backend: str | None


@dataclass(slots=True)
class DaemonStatusCommand:
    """CLI input for read-only daemon inspection."""

    backend: str | None


@dataclass(slots=True)
class DaemonRemoveCommand:
    """CLI input for removing the daemon resource."""

    backend: str | None


class DaemonCliController:
    """Coordinates provisioning, inspection and removal CLI operations."""

    def __init__(
        self,
        *,
        registry: BackendRegistry | None = None,
        runner: CommandRunner | None = None,
        settings_loader: Callable[[str | None], Settings] = Settings.from_env,
    ) -> None:
        self.registry = registry
        self.runner = runner
        self._settings_loader = settings_loader

    def ensure(self, command: DaemonEnsureCommand) -> list[str]:
        handle = self._factory(command.backend).ensure_daemon()
        if not handle.provisioned:
            return [f"Using externally provided daemon: address={handle.address}"]
        action = handle.action.value if handle.action is not None else "none"
        return [
            "Daemon ready: "
            f"address={handle.address} backend={handle.backend} "
            f"version={handle.version} action={action}",
        ]

    def status(self, command: DaemonStatusCommand) -> list[str]:
        factory = self._factory(command.backend)
        resolution = factory.resolver.resolve()
        if resolution.host is not None:
            return [f"Externally provided daemon: address={resolution.host} (not managed)"]

        factory.settings.validate()
        driver = factory.select_backend()
        observed = StateInspector().inspect(driver)
        desired = resolution.version or ""
        lines = [
            f"Backend: {driver.kind} endpoint={driver.endpoint()}",
            f"Desired version: {desired}",
        ]
        if observed.exists:
            lines.append(
                "Observed: "
                f"version={observed.version} running={_yes_no(observed.running)} "
                f"host_network={_yes_no(observed.host_network)}",
            )
        else:
            lines.append("Observed: absent")
        lines.append(f"Pending action: {plan_action(observed, desired).value}")
        return lines

    def remove(self, command: DaemonRemoveCommand) -> list[str]:
        factory = self._factory(command.backend)
        factory.settings.validate()
        driver = factory.select_backend()
        with factory.lock_guard().hold():
            driver.remove()
        return [f"Daemon removed: backend={driver.kind} endpoint={driver.endpoint()}"]

    def _factory(self, backend: str | None) -> ClientFactory:
        return ClientFactory(
            self._settings_loader(backend),
            registry=self.registry,
            runner=self.runner,
        )


def _yes_no(value: bool) -> str:
    return "yes" if value else "no"
