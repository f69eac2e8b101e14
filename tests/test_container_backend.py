from __future__ import annotations

from pathlib import Path

import allure
import pytest

from buildkitd_provisioner.backend.base import ABSENT
from buildkitd_provisioner.backend.container import image_tag, parse_inspect_output
from buildkitd_provisioner.backend.docker import DockerBackend
from buildkitd_provisioner.backend.podman import PodmanBackend
from buildkitd_provisioner.config import DaemonIdentity
from buildkitd_provisioner.errors import (
    BackendConflictError,
    BackendOperationError,
    BackendUnavailableError,
    InspectParseError,
)

pytestmark = [
    allure.epic("Daemon Provisioning"),
    allure.feature("Container Backends"),
]

_DOCKER_CONFLICT = (
    'docker: Error response from daemon: Conflict. The container name "/dagger-buildkitd" '
    "is already in use by container 4f1c.\n"
)


class TestInspectParsing:
    def test_parses_tag_running_and_host_network(self):
        observed = parse_inspect_output("dagger-buildkitd:abc123def;true;false\n")

        assert observed.exists
        assert observed.version == "abc123def"
        assert observed.running
        assert not observed.host_network

    def test_parses_registry_qualified_image(self):
        observed = parse_inspect_output("localhost:5000/dagger-buildkitd:abc123def;false;true")

        assert observed.version == "abc123def"
        assert not observed.running
        assert observed.host_network

    def test_untagged_image_is_a_parse_error(self):
        with pytest.raises(InspectParseError, match="image tag"):
            parse_inspect_output("localhost:5000/dagger-buildkitd;true;false")

    def test_unexpected_running_flag_is_a_parse_error(self):
        with pytest.raises(InspectParseError, match="running flag") as excinfo:
            parse_inspect_output("dagger-buildkitd:v1;maybe;false")
        assert excinfo.value.output == "dagger-buildkitd:v1;maybe;false"

    def test_wrong_field_count_is_a_parse_error(self):
        with pytest.raises(InspectParseError, match="3"):
            parse_inspect_output("dagger-buildkitd:v1;true")

    def test_image_tag_ignores_digest(self):
        assert image_tag("dagger-buildkitd:v1@sha256:0123") == "v1"
        assert image_tag("docker.io/library/dagger-buildkitd") is None


class TestDockerBackend:
    def test_endpoint_uses_driver_scheme(self, make_runner):
        driver = DockerBackend(DaemonIdentity(), make_runner())

        assert driver.endpoint() == "docker-container://dagger-buildkitd"

    def test_probe_failure_reports_backend_unavailable(self, make_runner):
        runner = make_runner({"info": [(1, "permission denied while trying to connect")]})

        with pytest.raises(BackendUnavailableError, match="permission denied") as excinfo:
            DockerBackend(DaemonIdentity(), runner).probe()
        assert excinfo.value.failures == ("docker: permission denied while trying to connect",)

    def test_inspect_missing_container_is_absent(self, make_runner):
        runner = make_runner({"inspect": [(1, "Error: No such object: dagger-buildkitd\n")]})

        assert DockerBackend(DaemonIdentity(), runner).inspect() is ABSENT

    def test_inspect_other_failure_is_fatal(self, make_runner):
        runner = make_runner({"inspect": [(1, "Cannot connect to the Docker daemon")]})

        with pytest.raises(BackendOperationError, match="Cannot connect"):
            DockerBackend(DaemonIdentity(), runner).inspect()

    def test_inspect_queries_all_fields_in_one_call(self, make_runner):
        runner = make_runner({"inspect": [(0, "dagger-buildkitd:abc123def;true;false\n")]})

        observed = DockerBackend(DaemonIdentity(), runner).inspect()

        assert observed.version == "abc123def"
        assert len(runner.calls) == 1
        argv = runner.calls[0]
        assert argv[:2] == ("docker", "inspect")
        assert argv[-1] == "dagger-buildkitd"
        assert "{{.Config.Image}};{{.State.Running}};" in argv[-2]

    def test_remove_force_removes_container_and_volumes(self, make_runner):
        runner = make_runner()

        DockerBackend(DaemonIdentity(), runner).remove()

        assert runner.calls == [("docker", "rm", "-fv", "dagger-buildkitd")]

    def test_remove_of_missing_container_is_not_an_error(self, make_runner):
        runner = make_runner({"rm": [(1, "Error: No such container: dagger-buildkitd")]})

        DockerBackend(DaemonIdentity(), runner).remove()

    def test_remove_failure_carries_output(self, make_runner):
        runner = make_runner({"rm": [(1, "device or resource busy")]})

        with pytest.raises(BackendOperationError, match="device or resource busy") as excinfo:
            DockerBackend(DaemonIdentity(), runner).remove()
        assert excinfo.value.operation == "remove"
        assert excinfo.value.command == ("docker", "rm", "-fv", "dagger-buildkitd")

    def test_install_builds_tagged_image_from_staged_context_then_runs(self, make_runner):
        staged: dict[str, bool] = {}

        def _on_run(argv: tuple[str, ...]) -> None:
            if argv[1] == "build":
                context_dir = Path(argv[-1])
                staged["dockerfile"] = (context_dir / "Dockerfile").is_file()
                staged["bundled"] = (context_dir / "Dockerfile.buildkitd").is_file()
                staged["config"] = (context_dir / "buildkitd.toml").is_file()

        runner = make_runner(on_run=_on_run)

        DockerBackend(DaemonIdentity(), runner).install("abc123def")

        assert runner.subcommands() == ["build", "run"]
        build, run = runner.calls
        assert build[:4] == ("docker", "build", "-t", "dagger-buildkitd:abc123def")
        assert staged == {"dockerfile": True, "bundled": True, "config": True}
        assert not Path(build[-1]).exists()
        assert run == (
            "docker",
            "run",
            "-d",
            "--restart",
            "always",
            "-v",
            "dagger-buildkitd:/var/lib/buildkit",
            "--name",
            "dagger-buildkitd",
            "--privileged",
            "dagger-buildkitd:abc123def",
        )

    def test_install_uses_configured_identity(self, make_runner):
        identity = DaemonIdentity(image="bk", container_name="bk-ctr", volume_name="bk-vol")
        runner = make_runner()

        DockerBackend(identity, runner).install("v2")

        run = runner.calls[-1]
        assert "bk-vol:/var/lib/buildkit" in run
        assert run[run.index("--name") + 1] == "bk-ctr"
        assert run[-1] == "bk:v2"

    def test_build_failure_stops_before_run(self, make_runner):
        runner = make_runner({"build": [(1, "failed to solve: no such image")]})

        with pytest.raises(BackendOperationError, match="build error") as excinfo:
            DockerBackend(DaemonIdentity(), runner).install("v1")

        assert runner.subcommands() == ["build"]
        assert "failed to solve: no such image" in str(excinfo.value)

    def test_run_conflict_is_reported_as_conflict(self, make_runner):
        runner = make_runner({"run": [(125, _DOCKER_CONFLICT)]})

        with pytest.raises(BackendConflictError):
            DockerBackend(DaemonIdentity(), runner).install("v1")

    def test_run_failure_without_conflict_marker_is_plain_error(self, make_runner):
        runner = make_runner({"run": [(125, "docker: invalid reference format.")]})

        with pytest.raises(BackendOperationError) as excinfo:
            DockerBackend(DaemonIdentity(), runner).install("v1")
        assert not isinstance(excinfo.value, BackendConflictError)

    def test_start_runs_docker_start(self, make_runner):
        runner = make_runner()

        DockerBackend(DaemonIdentity(), runner).start()

        assert runner.calls == [("docker", "start", "dagger-buildkitd")]

    def test_ping_lists_workers_inside_container(self, make_runner):
        runner = make_runner({"exec": [(1, "buildkitd not ready"), (0, "ID  PLATFORMS")]})
        driver = DockerBackend(DaemonIdentity(), runner)

        with pytest.raises(BackendOperationError, match="ping error"):
            driver.ping()
        driver.ping()

        assert runner.calls[-1] == (
            "docker",
            "exec",
            "dagger-buildkitd",
            "buildctl",
            "debug",
            "workers",
        )


class TestPodmanBackend:
    def test_endpoint_and_executable(self, make_runner):
        runner = make_runner()
        driver = PodmanBackend(DaemonIdentity(), runner)

        driver.start()

        assert driver.endpoint() == "podman-container://dagger-buildkitd"
        assert runner.calls == [("podman", "start", "dagger-buildkitd")]

    def test_run_name_in_use_is_reported_as_conflict(self, make_runner):
        runner = make_runner(
            {
                "run": [
                    (
                        125,
                        'Error: creating container storage: the container name "dagger-buildkitd" '
                        "is already in use by 9a1b.",
                    ),
                ],
            },
        )

        with pytest.raises(BackendConflictError):
            PodmanBackend(DaemonIdentity(), runner).install("v1")

    def test_inspect_parses_localhost_image_name(self, make_runner):
        runner = make_runner({"inspect": [(0, "localhost/dagger-buildkitd:v1;true;false")]})

        observed = PodmanBackend(DaemonIdentity(), runner).inspect()

        assert observed.version == "v1"
        assert observed.running

    def test_inspect_missing_container_is_absent(self, make_runner):
        runner = make_runner({"inspect": [(125, "Error: no such container dagger-buildkitd")]})

        assert PodmanBackend(DaemonIdentity(), runner).inspect() is ABSENT
