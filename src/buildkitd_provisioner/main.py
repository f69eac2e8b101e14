"""CLI entrypoint for buildkitd-provisioner."""

import logging
from collections.abc import Callable

import rich_click as click

from buildkitd_provisioner import __version__
from buildkitd_provisioner.backend.registry import default_registry
from buildkitd_provisioner.controllers import (
    DaemonCliController,
    DaemonEnsureCommand,
    DaemonRemoveCommand,
    DaemonStatusCommand,
)
from buildkitd_provisioner.errors import ProvisionError

click.rich_click.USE_MARKDOWN = True
DAEMON_CONTROLLER = DaemonCliController()

_backend_option = click.option(
    "--backend",
    type=click.Choice(list(default_registry().kinds), case_sensitive=False),
    default=None,
    help="Force one backend instead of DAGGER_BUILDKITD_BACKENDS detection order.",
)


@click.group()
@click.version_option(version=__version__, prog_name="buildkitd-provisioner")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Enable debug logging.")
def buildkitd_provisioner(verbose: bool) -> None:
    """Provision the local buildkitd daemon used by build clients."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
    )


@buildkitd_provisioner.command("ensure")
@_backend_option
def ensure(backend: str | None) -> None:
    """Make sure the daemon exists, runs the expected version, and responds."""

    _emit_lines(
        _run(lambda: DAEMON_CONTROLLER.ensure(DaemonEnsureCommand(backend=_lower(backend)))),
    )


@buildkitd_provisioner.command("status")
@_backend_option
def status(backend: str | None) -> None:
    """Show observed daemon state and the action `ensure` would take."""

    _emit_lines(
        _run(lambda: DAEMON_CONTROLLER.status(DaemonStatusCommand(backend=_lower(backend)))),
    )


@buildkitd_provisioner.command("remove")
@_backend_option
def remove(backend: str | None) -> None:
    """Remove the daemon container and its state volume."""

    _emit_lines(
        _run(lambda: DAEMON_CONTROLLER.remove(DaemonRemoveCommand(backend=_lower(backend)))),
    )


def _run(action: Callable[[], list[str]]) -> list[str]:
    try:
        return action()
    except (ProvisionError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _lower(value: str | None) -> str | None:
    return value.lower() if value else None


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    buildkitd_provisioner()
