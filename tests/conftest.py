"""Shared test fixtures."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

from buildkitd_provisioner.backend.base import ABSENT, ObservedState
from buildkitd_provisioner.backend.command import CommandResult
from buildkitd_provisioner.backend.registry import BackendRegistration, BackendRegistry
from buildkitd_provisioner.config import LockSettings, ReadinessSettings, Settings
from buildkitd_provisioner.errors import BackendOperationError, ProvisionError

FAKE_ENDPOINT = "fake-container://dagger-buildkitd"


class RecordingDriver:
    """In-memory backend double that records every capability call."""

    kind = "fake"

    def __init__(  # noqa: PLR0913
        self,
        state: ObservedState = ABSENT,
        *,
        ping_failures: int = 0,
        install_errors: Sequence[ProvisionError] = (),
        start_errors: Sequence[ProvisionError] = (),
        remove_errors: Sequence[ProvisionError] = (),
        probe_error: ProvisionError | None = None,
        install_seconds: float = 0.0,
    ) -> None:
        self.state = state
        self.calls: list[str] = []
        self.ping_failures = ping_failures
        self.install_errors = list(install_errors)
        self.start_errors = list(start_errors)
        self.remove_errors = list(remove_errors)
        self.probe_error = probe_error
        self.install_seconds = install_seconds
        self.active_installs = 0
        self.max_active_installs = 0
        self._guard = threading.Lock()

    def probe(self) -> None:
        self._record("probe")
        if self.probe_error is not None:
            raise self.probe_error

    def remove(self) -> None:
        self._record("remove")
        if self.remove_errors:
            raise self.remove_errors.pop(0)
        self.state = ABSENT

    def install(self, version: str) -> None:
        self._record(f"install:{version}")
        with self._guard:
            self.active_installs += 1
            self.max_active_installs = max(self.max_active_installs, self.active_installs)
        try:
            if self.install_seconds:
                time.sleep(self.install_seconds)
            # A conflicting client still leaves a running daemon behind.
            self.state = ObservedState(exists=True, version=version, running=True)
            if self.install_errors:
                raise self.install_errors.pop(0)
        finally:
            with self._guard:
                self.active_installs -= 1

    def start(self) -> None:
        self._record("start")
        self.state = ObservedState(exists=True, version=self.state.version, running=True)
        if self.start_errors:
            raise self.start_errors.pop(0)

    def inspect(self) -> ObservedState:
        self._record("inspect")
        return self.state

    def ping(self) -> None:
        self._record("ping")
        if self.ping_failures > 0:
            self.ping_failures -= 1
            raise BackendOperationError(
                "ping",
                command=("buildctl", "debug", "workers"),
                returncode=1,
                output="connection refused",
            )

    def endpoint(self) -> str:
        return FAKE_ENDPOINT

    def mutating_calls(self) -> list[str]:
        return [call for call in self.calls if call.split(":")[0] in {"install", "remove", "start"}]

    def _record(self, call: str) -> None:
        with self._guard:
            self.calls.append(call)


class ScriptedRunner:
    """Command runner double answering by subcommand (``argv[1]``)."""

    def __init__(
        self,
        responses: dict[str, list[tuple[int, str]]] | None = None,
        *,
        on_run: Callable[[tuple[str, ...]], None] | None = None,
    ) -> None:
        self.responses = {key: list(value) for key, value in (responses or {}).items()}
        self.calls: list[tuple[str, ...]] = []
        self._on_run = on_run

    def run(self, args: Sequence[str]) -> CommandResult:
        argv = tuple(args)
        self.calls.append(argv)
        if self._on_run is not None:
            self._on_run(argv)
        queue = self.responses.get(argv[1], [])
        returncode, output = queue.pop(0) if queue else (0, "")
        return CommandResult(args=argv, returncode=returncode, output=output)

    def subcommands(self) -> list[str]:
        return [argv[1] for argv in self.calls]


@pytest.fixture()
def make_driver() -> Callable[..., RecordingDriver]:
    return RecordingDriver


@pytest.fixture()
def make_runner() -> Callable[..., ScriptedRunner]:
    return ScriptedRunner


@pytest.fixture()
def registry_for() -> Callable[[RecordingDriver], BackendRegistry]:
    def _registry(driver: RecordingDriver) -> BackendRegistry:
        return BackendRegistry(
            [BackendRegistration(kind="fake", factory=lambda identity, runner: driver)],
        )

    return _registry


@pytest.fixture()
def lock_path(tmp_path: Path) -> Path:
    return tmp_path / "config" / "dagger" / ".dagger-buildkitd.lock"


@pytest.fixture()
def settings(lock_path: Path) -> Settings:
    return Settings(
        version_override="abc123def",
        backends=("fake",),
        lock=LockSettings(path=lock_path, timeout_seconds=10.0, poll_interval_seconds=0.01),
        readiness=ReadinessSettings(attempts=5, interval_seconds=0.0),
    )
