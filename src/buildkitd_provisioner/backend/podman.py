"""Podman driver; podman's CLI mirrors docker's for every call used here."""

from __future__ import annotations

from buildkitd_provisioner.backend.container import ContainerEngineBackend


class PodmanBackend(ContainerEngineBackend):
    kind = "podman"
    executable = "podman"
    scheme = "podman-container"
    inspect_format = '{{.ImageName}};{{.State.Running}};{{eq .HostConfig.NetworkMode "host"}}'
    conflict_markers = ("is already in use",)
