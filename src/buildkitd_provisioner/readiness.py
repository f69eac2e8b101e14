"""Bounded readiness polling for a freshly installed or started daemon."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from buildkitd_provisioner.backend.base import BackendDriver
from buildkitd_provisioner.errors import (
    BackendOperationError,
    DaemonNotRespondingError,
    ProvisionCancelledError,
)

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 100
DEFAULT_INTERVAL_SECONDS = 0.1


def wait_ready(
    driver: BackendDriver,
    *,
    attempts: int = DEFAULT_ATTEMPTS,
    interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
    cancel_requested: Callable[[], bool] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Ping the daemon until it answers; return the number of polls used."""

    if attempts <= 0:
        raise ValueError("Readiness attempts must be a positive integer.")

    last_error: str | None = None
    for attempt in range(1, attempts + 1):
        if cancel_requested is not None and cancel_requested():
            raise ProvisionCancelledError("cancelled while waiting for buildkitd to respond")
        try:
            driver.ping()
        except BackendOperationError as error:
            last_error = error.output.strip() or str(error)
            if attempt < attempts:
                sleep(interval_seconds)
            continue
        logger.debug("buildkitd responded after %d poll(s)", attempt)
        return attempt

    raise DaemonNotRespondingError(attempts=attempts, last_error=last_error)
