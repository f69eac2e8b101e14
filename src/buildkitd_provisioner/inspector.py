"""Single-shot observation of the daemon resource through a backend."""

from __future__ import annotations

import logging

from buildkitd_provisioner.backend.base import BackendDriver, ObservedState

logger = logging.getLogger(__name__)


class StateInspector:
    """Answer "does the daemon exist, which version, is it running" in one call.

    Absence is a normal observation. Unparseable output propagates as
    ``InspectParseError`` and is never defaulted to absent or running.
    """

    def inspect(self, driver: BackendDriver) -> ObservedState:
        observed = driver.inspect()
        if observed.exists:
            logger.debug(
                "Observed %s daemon: version=%s running=%s host_network=%s",
                driver.kind,
                observed.version,
                observed.running,
                observed.host_network,
            )
        else:
            logger.debug("No %s daemon resource found", driver.kind)
        return observed
