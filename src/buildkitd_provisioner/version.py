"""Desired daemon version resolution from the caller's build metadata."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from importlib import metadata
from pathlib import Path
from urllib.parse import unquote, urlparse

from buildkitd_provisioner.errors import NoBuildInfoError

logger = logging.getLogger(__name__)

# Length of a short git commit hash; the daemon image is tagged with it.
SHORT_REVISION_LENGTH = 9


@dataclass(slots=True, frozen=True)
class VersionResolution:
    """Outcome of version resolution: either a ready host or a version to provision."""

    host: str | None = None
    version: str | None = None

    @property
    def bypass(self) -> bool:
        return self.host is not None


class VersionResolver:
    """Resolve which daemon build should be running.

    Order, first match wins: explicit host override (no provisioning at all),
    pinned version, revision recorded in the installed distribution metadata.
    Never touches the network.
    """

    def __init__(
        self,
        *,
        distribution: str,
        host_override: str | None = None,
        version_override: str | None = None,
        revision_reader: Callable[[str], str | None] | None = None,
    ) -> None:
        self.distribution = distribution
        self.host_override = host_override
        self.version_override = version_override
        self._revision_reader = revision_reader or read_distribution_revision

    def resolve(self) -> VersionResolution:
        if self.host_override:
            logger.debug("Using externally provided buildkitd host %s", self.host_override)
            return VersionResolution(host=self.host_override)

        if self.version_override:
            return VersionResolution(version=self.version_override)

        revision = self._revision_reader(self.distribution)
        if revision is None:
            raise NoBuildInfoError(
                f"no build info available for {self.distribution!r}: "
                "set DAGGER_BUILDKITD_HOST or DAGGER_BUILDKITD_VERSION",
            )
        return VersionResolution(version=short_revision(revision))


def short_revision(revision: str) -> str:
    """Truncate a VCS revision to the short hash used as the image tag."""

    stripped = revision.strip()
    if not stripped:
        raise NoBuildInfoError("buildkitd version is empty")
    if len(stripped) < SHORT_REVISION_LENGTH:
        raise NoBuildInfoError(f"unexpected vcs revision in build info: {stripped!r}")
    return stripped[:SHORT_REVISION_LENGTH]


def read_distribution_revision(distribution: str) -> str | None:
    """Return the VCS revision an installed distribution was built from, if recorded.

    pip writes ``direct_url.json`` (PEP 610) for VCS and local-directory
    installs. VCS installs carry ``vcs_info.commit_id``; local checkouts are
    resolved through their ``.git`` directory.
    """

    try:
        dist = metadata.distribution(distribution)
    except metadata.PackageNotFoundError:
        logger.debug("Distribution %s is not installed", distribution)
        return None

    raw = dist.read_text("direct_url.json")
    if not raw:
        return None
    try:
        direct_url = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed direct_url.json for %s", distribution)
        return None

    vcs_info = direct_url.get("vcs_info")
    if isinstance(vcs_info, dict) and vcs_info.get("commit_id"):
        return str(vcs_info["commit_id"])

    parsed = urlparse(str(direct_url.get("url", "")))
    if parsed.scheme == "file" and "dir_info" in direct_url:
        return read_git_head(Path(unquote(parsed.path)))
    return None


def read_git_head(checkout: Path) -> str | None:
    """Resolve HEAD of a local checkout without invoking git."""

    git_dir = checkout / ".git"
    head_path = git_dir / "HEAD"
    if not head_path.is_file():
        return None

    head = head_path.read_text("utf-8").strip()
    if not head.startswith("ref:"):
        return head or None

    ref = head.removeprefix("ref:").strip()
    loose_ref = git_dir / ref
    if loose_ref.is_file():
        return loose_ref.read_text("utf-8").strip() or None

    packed_refs = git_dir / "packed-refs"
    if not packed_refs.is_file():
        return None
    for line in packed_refs.read_text("utf-8").splitlines():
        if line.startswith(("#", "^")):
            continue
        sha, _, name = line.partition(" ")
        if name.strip() == ref:
            return sha.strip()
    return None
