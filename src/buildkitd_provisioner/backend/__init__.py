"""Backend drivers for runtimes that can host the buildkitd daemon."""

from buildkitd_provisioner.backend.base import ABSENT, BackendDriver, ObservedState
from buildkitd_provisioner.backend.command import CommandResult, CommandRunner, SubprocessRunner
from buildkitd_provisioner.backend.docker import DockerBackend
from buildkitd_provisioner.backend.podman import PodmanBackend
from buildkitd_provisioner.backend.registry import (
    BackendRegistration,
    BackendRegistry,
    default_registry,
)

__all__ = [
    "ABSENT",
    "BackendDriver",
    "BackendRegistration",
    "BackendRegistry",
    "CommandResult",
    "CommandRunner",
    "DockerBackend",
    "ObservedState",
    "PodmanBackend",
    "SubprocessRunner",
    "default_registry",
]
