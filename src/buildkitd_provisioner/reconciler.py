"""Convergence of observed daemon state towards the desired version."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from buildkitd_provisioner.backend.base import BackendDriver, ObservedState
from buildkitd_provisioner.config import ReadinessSettings
from buildkitd_provisioner.errors import (
    BackendConflictError,
    BackendOperationError,
    NoBuildInfoError,
)
from buildkitd_provisioner.inspector import StateInspector
from buildkitd_provisioner.readiness import wait_ready

logger = logging.getLogger(__name__)


class ReconcileAction(str, Enum):
    """Transition chosen for one observed state."""

    NONE = "none"
    START = "start"
    INSTALL = "install"
    REINSTALL = "reinstall"


def plan_action(observed: ObservedState, desired: str) -> ReconcileAction:
    """Pure decision table over (exists, version matches, running)."""

    if not observed.exists:
        return ReconcileAction.INSTALL
    if observed.version != desired:
        return ReconcileAction.REINSTALL
    if not observed.running:
        return ReconcileAction.START
    return ReconcileAction.NONE


@dataclass(slots=True, frozen=True)
class ConvergeResult:
    """Endpoint of the ready daemon plus what it took to get there."""

    endpoint: str
    action: ReconcileAction
    observed: ObservedState
    ready_polls: int = 0


@dataclass(slots=True)
class Reconciler:
    """Drive one backend to "present, correct version, running".

    Remove always precedes install. A conflict reported by install or start
    means another client won the race on the same resource and counts as
    success; readiness polling then confirms the daemon either way.
    """

    driver: BackendDriver
    readiness: ReadinessSettings = field(default_factory=ReadinessSettings)
    inspector: StateInspector = field(default_factory=StateInspector)
    cancel_requested: Callable[[], bool] | None = None
    sleep: Callable[[float], None] = time.sleep

    def converge(self, desired: str) -> ConvergeResult:
        if not desired:
            raise NoBuildInfoError("buildkitd version is empty")

        observed = self.inspector.inspect(self.driver)
        action = plan_action(observed, desired)

        if action is ReconcileAction.INSTALL:
            logger.info("No buildkitd container found, creating one...")
            self._remove_leftovers()
            self._install(desired)
        elif action is ReconcileAction.REINSTALL:
            logger.info(
                "Buildkitd container is out of date (%s, want %s), updating it...",
                observed.version,
                desired,
            )
            self.driver.remove()
            self._install(desired)
        elif action is ReconcileAction.START:
            logger.info("Buildkitd container is not running, starting it...")
            self._start()

        ready_polls = 0
        if action is not ReconcileAction.NONE:
            ready_polls = wait_ready(
                self.driver,
                attempts=self.readiness.attempts,
                interval_seconds=self.readiness.interval_seconds,
                cancel_requested=self.cancel_requested,
                sleep=self.sleep,
            )

        return ConvergeResult(
            endpoint=self.driver.endpoint(),
            action=action,
            observed=observed,
            ready_polls=ready_polls,
        )

    def _remove_leftovers(self) -> None:
        # Nothing was observed, so a failed cleanup must not block the install.
        try:
            self.driver.remove()
        except BackendOperationError as error:
            logger.warning("Ignoring cleanup failure before install: %s", error)

    def _install(self, desired: str) -> None:
        try:
            self.driver.install(desired)
        except BackendConflictError as error:
            logger.warning(
                "buildkitd container already created by another client: %s",
                error.output.strip(),
            )

    def _start(self) -> None:
        try:
            self.driver.start()
        except BackendConflictError as error:
            logger.warning(
                "buildkitd container already started by another client: %s",
                error.output.strip(),
            )
