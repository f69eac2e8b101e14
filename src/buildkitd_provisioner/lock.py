"""Cross-process lock serializing daemon reconciliation on one host."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

import filelock

from buildkitd_provisioner.errors import LockIOError, LockTimeoutError, ProvisionCancelledError

logger = logging.getLogger(__name__)


class LockHandle:
    """Exclusive possession of the lock file; release is idempotent."""

    def __init__(self, path: Path, lock: filelock.BaseFileLock) -> None:
        self.path = path
        self._lock = lock

    @property
    def held(self) -> bool:
        return self._lock.is_locked

    def release(self) -> None:
        # On POSIX the lock file stays on disk for the next client; filelock's
        # Windows lock deletes it on release.
        if self._lock.is_locked:
            self._lock.release(force=True)
            logger.debug("Released daemon lock %s", self.path)


class LockGuard:
    """Poll a named file lock until acquired, cancelled, or timed out."""

    def __init__(  # noqa: PLR0913
        self,
        path: Path,
        *,
        timeout_seconds: float,
        poll_interval_seconds: float = 0.1,
        cancel_requested: Callable[[], bool] | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.path = path.expanduser()
        self.timeout_seconds = timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self._cancel_requested = cancel_requested
        self._clock = clock
        self._sleep = sleep

    def acquire(self) -> LockHandle:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as error:
            raise LockIOError(self.path, f"cannot create parent directory: {error}") from error

        lock = filelock.FileLock(str(self.path))
        started = self._clock()
        while True:
            if self._cancel_requested is not None and self._cancel_requested():
                raise ProvisionCancelledError(f"cancelled while waiting for lock {self.path}")
            try:
                lock.acquire(blocking=False)
            except filelock.Timeout:
                pass
            except OSError as error:
                raise LockIOError(self.path, str(error)) from error
            else:
                logger.debug("Acquired daemon lock %s", self.path)
                return LockHandle(self.path, lock)

            waited = self._clock() - started
            if waited >= self.timeout_seconds:
                raise LockTimeoutError(self.path, waited_seconds=waited)
            self._sleep(min(self.poll_interval_seconds, self.timeout_seconds - waited))

    @contextmanager
    def hold(self) -> Iterator[LockHandle]:
        """Acquire for the duration of the block; released on every exit path."""

        handle = self.acquire()
        try:
            yield handle
        finally:
            handle.release()
