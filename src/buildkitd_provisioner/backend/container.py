"""Daemon driver shared by container engines with a docker-compatible CLI."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import NoReturn

from buildkitd_provisioner.backend.base import ABSENT, ObservedState
from buildkitd_provisioner.backend.command import CommandResult, CommandRunner
from buildkitd_provisioner.build_context import stage_build_context
from buildkitd_provisioner.config import DaemonIdentity
from buildkitd_provisioner.errors import (
    BackendConflictError,
    BackendOperationError,
    BackendUnavailableError,
    InspectParseError,
)

logger = logging.getLogger(__name__)

INSPECT_FIELD_SEPARATOR = ";"
_BOOL_VALUES = {"true": True, "false": False}


class ContainerEngineBackend:
    """Run buildkitd as a privileged, always-restarting container.

    Subclasses only describe their CLI: executable, address scheme, inspect
    template and the output fragments that mean "conflict" or "missing".
    """

    kind: str = ""
    executable: str = ""
    scheme: str = ""
    inspect_format: str = ""
    conflict_markers: tuple[str, ...] = ()
    missing_markers: tuple[str, ...] = ("no such container", "no such object")

    def __init__(self, identity: DaemonIdentity, runner: CommandRunner) -> None:
        self.identity = identity
        self.runner = runner

    def probe(self) -> None:
        result = self.runner.run([self.executable, "info"])
        if not result.ok:
            logger.error(
                "Failed to run %s: exit status %s output=%s",
                self.executable,
                result.returncode,
                result.output.strip(),
            )
            raise BackendUnavailableError(
                f"{self.kind} is not usable",
                failures=(f"{self.kind}: {result.output.strip()}",),
            )

    def remove(self) -> None:
        result = self.runner.run(
            [self.executable, "rm", "-fv", self.identity.container_name],
        )
        if result.ok or self._is_missing(result.output):
            return
        self._fail("remove", result)

    def install(self, version: str) -> None:
        self._build(version)
        self._serve(version)

    def start(self) -> None:
        self._execute(
            "start",
            [self.executable, "start", self.identity.container_name],
            conflict_ok=True,
        )

    def inspect(self) -> ObservedState:
        result = self.runner.run(
            [
                self.executable,
                "inspect",
                "--type",
                "container",
                "--format",
                self.inspect_format,
                self.identity.container_name,
            ],
        )
        if not result.ok:
            if self._is_missing(result.output):
                return ABSENT
            self._fail("inspect", result)
        return parse_inspect_output(result.output)

    def ping(self) -> None:
        # Equivalent of buildkit's ListWorkers call, issued inside the container.
        self._execute(
            "ping",
            [
                self.executable,
                "exec",
                self.identity.container_name,
                "buildctl",
                "debug",
                "workers",
            ],
        )

    def endpoint(self) -> str:
        return f"{self.scheme}://{self.identity.container_name}"

    def _build(self, version: str) -> None:
        image_ref = self.identity.image_ref(version)
        with TemporaryDirectory(prefix="buildkitd-") as temp_dir:
            context_dir = stage_build_context(Path(temp_dir))
            logger.info("Building %s image...", image_ref)
            self._execute(
                "build",
                [self.executable, "build", "-t", image_ref, str(context_dir)],
            )

    def _serve(self, version: str) -> None:
        self._execute(
            "serve",
            [
                self.executable,
                "run",
                "-d",
                "--restart",
                "always",
                "-v",
                f"{self.identity.volume_name}:{self.identity.state_dir}",
                "--name",
                self.identity.container_name,
                "--privileged",
                self.identity.image_ref(version),
            ],
            conflict_ok=True,
        )

    def _execute(
        self,
        operation: str,
        args: Sequence[str],
        *,
        conflict_ok: bool = False,
    ) -> CommandResult:
        result = self.runner.run(args)
        if result.ok:
            return result
        if conflict_ok and self._is_conflict(result.output):
            raise BackendConflictError(
                operation,
                command=result.args,
                returncode=result.returncode,
                output=result.output,
            )
        self._fail(operation, result)

    def _fail(self, operation: str, result: CommandResult) -> NoReturn:
        logger.error(
            "%s %s failed: exit status %s output=%s",
            self.executable,
            operation,
            result.returncode,
            result.output.strip(),
        )
        raise BackendOperationError(
            operation,
            command=result.args,
            returncode=result.returncode,
            output=result.output,
        )

    def _is_conflict(self, output: str) -> bool:
        return any(marker in output for marker in self.conflict_markers)

    def _is_missing(self, output: str) -> bool:
        lowered = output.lower()
        return any(marker in lowered for marker in self.missing_markers)


def parse_inspect_output(output: str) -> ObservedState:
    """Parse ``<image>;<running>;<host-network>`` produced by the inspect template."""

    fields = output.strip().split(INSPECT_FIELD_SEPARATOR)
    if len(fields) != 3:  # noqa: PLR2004
        raise InspectParseError(
            f"expected 3 {INSPECT_FIELD_SEPARATOR!r}-separated fields in inspect output",
            output=output,
        )
    image, running_raw, host_network_raw = (field.strip() for field in fields)

    version = image_tag(image)
    if version is None:
        raise InspectParseError(f"failed to parse image tag: {image!r}", output=output)

    running = _BOOL_VALUES.get(running_raw.lower())
    if running is None:
        raise InspectParseError(f"failed to parse running flag: {running_raw!r}", output=output)
    host_network = _BOOL_VALUES.get(host_network_raw.lower())
    if host_network is None:
        raise InspectParseError(
            f"failed to parse host network flag: {host_network_raw!r}",
            output=output,
        )

    return ObservedState(
        exists=True,
        version=version,
        running=running,
        host_network=host_network,
    )


def image_tag(image: str) -> str | None:
    """Return the tag of an image reference, or None if it is untagged."""

    name = image.split("@", 1)[0]
    last_component = name.rsplit("/", 1)[-1]
    if ":" not in last_component:
        return None
    tag = last_component.rsplit(":", 1)[1]
    return tag or None
