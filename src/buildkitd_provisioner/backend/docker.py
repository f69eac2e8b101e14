"""Docker engine driver."""

from __future__ import annotations

from buildkitd_provisioner.backend.container import ContainerEngineBackend


class DockerBackend(ContainerEngineBackend):
    kind = "docker"
    executable = "docker"
    scheme = "docker-container"
    inspect_format = (
        "{{.Config.Image}};{{.State.Running}};"
        '{{if index .NetworkSettings.Networks "host"}}{{"true"}}{{else}}{{"false"}}{{end}}'
    )
    # Reported by `docker run` when the container name is already taken.
    conflict_markers = ("Error response from daemon: Conflict.",)
