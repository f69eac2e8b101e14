"""Synchronous, cancellable invocation of backend control-plane CLIs."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Protocol

from buildkitd_provisioner.errors import ProvisionCancelledError

logger = logging.getLogger(__name__)

# Shell convention for "command not found".
EXIT_NOT_FOUND = 127


@dataclass(slots=True, frozen=True)
class CommandResult:
    """Exit status and combined stdout+stderr of one external call."""

    args: tuple[str, ...]
    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner(Protocol):
    """Runs an argv and returns its combined output."""

    def run(self, args: Sequence[str]) -> CommandResult:
        """Run ``args`` to completion."""


class SubprocessRunner:
    """Run commands with ``subprocess``, terminating the child on cancellation."""

    def __init__(
        self,
        *,
        cancel_requested: Callable[[], bool] | None = None,
        poll_interval_seconds: float = 0.1,
        graceful_shutdown_seconds: float = 2.0,
    ) -> None:
        self._cancel_requested = cancel_requested
        self.poll_interval_seconds = poll_interval_seconds
        self.graceful_shutdown_seconds = graceful_shutdown_seconds

    def run(self, args: Sequence[str]) -> CommandResult:
        argv = tuple(args)
        logger.debug("Running %s", " ".join(argv))
        try:
            process = subprocess.Popen(  # noqa: S603
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except FileNotFoundError:
            return CommandResult(
                args=argv,
                returncode=EXIT_NOT_FOUND,
                output=f"executable not found: {argv[0]}",
            )
        except OSError as error:
            return CommandResult(
                args=argv,
                returncode=EXIT_NOT_FOUND,
                output=f"failed to start {argv[0]}: {error}",
            )

        while True:
            if self._cancel_requested is not None and self._cancel_requested():
                _terminate_process(process, grace_seconds=self.graceful_shutdown_seconds)
                raise ProvisionCancelledError(f"cancelled while running {' '.join(argv)}")
            try:
                # communicate() may be retried after a timeout without losing output.
                output, _ = process.communicate(timeout=self.poll_interval_seconds)
            except subprocess.TimeoutExpired:
                continue
            return CommandResult(args=argv, returncode=process.returncode, output=output or "")


def _terminate_process(process: subprocess.Popen[str], *, grace_seconds: float) -> None:
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.communicate(timeout=grace_seconds)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.communicate(timeout=grace_seconds)
