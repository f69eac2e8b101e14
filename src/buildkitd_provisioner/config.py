"""Runtime configuration for buildkitd provisioning."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

HOST_OVERRIDE_ENV = "DAGGER_BUILDKITD_HOST"
DEFAULT_LOCK_PATH = Path("~/.config/dagger/.dagger-buildkitd.lock")
DEFAULT_BACKENDS: tuple[str, ...] = ("docker", "podman")


@dataclass(slots=True, frozen=True)
class DaemonIdentity:
    """Names that identify the managed daemon on every backend."""

    image: str = "dagger-buildkitd"
    container_name: str = "dagger-buildkitd"
    volume_name: str = "dagger-buildkitd"
    state_dir: str = "/var/lib/buildkit"

    def image_ref(self, version: str) -> str:
        return f"{self.image}:{version}"


@dataclass(slots=True)
class LockSettings:
    """Cross-process lock settings."""

    path: Path = DEFAULT_LOCK_PATH
    # Long enough for a concurrent client to finish a slow first-time image build.
    timeout_seconds: float = 600.0
    poll_interval_seconds: float = 0.1


@dataclass(slots=True)
class ReadinessSettings:
    """Readiness poll budget after install/start."""

    attempts: int = 100
    interval_seconds: float = 0.1


@dataclass(slots=True)
class Settings:
    """Provisioning settings grouped by concern."""

    host_override: str | None = None
    version_override: str | None = None
    backends: tuple[str, ...] = DEFAULT_BACKENDS
    identity: DaemonIdentity = field(default_factory=DaemonIdentity)
    lock: LockSettings = field(default_factory=LockSettings)
    readiness: ReadinessSettings = field(default_factory=ReadinessSettings)
    distribution: str = "buildkitd-provisioner"

    @classmethod
    def from_env(cls, backend: str | None = None) -> Settings:
        """Load settings from environment with defaults matching the dagger CLI."""

        host_override = _env_str(HOST_OVERRIDE_ENV)
        defaults = DaemonIdentity()
        settings = cls(
            host_override=host_override,
            version_override=_env_str("DAGGER_BUILDKITD_VERSION"),
            backends=(backend,) if backend else _collect_backends(),
            identity=DaemonIdentity(
                image=os.getenv("DAGGER_BUILDKITD_IMAGE", defaults.image),
                container_name=os.getenv(
                    "DAGGER_BUILDKITD_CONTAINER_NAME",
                    defaults.container_name,
                ),
                volume_name=os.getenv("DAGGER_BUILDKITD_VOLUME_NAME", defaults.volume_name),
            ),
            lock=LockSettings(
                path=Path(os.getenv("DAGGER_BUILDKITD_LOCK_PATH", str(DEFAULT_LOCK_PATH))),
            ),
        )
        # An external daemon skips provisioning, so its tuning knobs are never parsed.
        if host_override is not None:
            return settings

        settings.lock.timeout_seconds = _env_float(
            "DAGGER_BUILDKITD_LOCK_TIMEOUT_SECONDS",
            settings.lock.timeout_seconds,
        )
        settings.lock.poll_interval_seconds = _env_float(
            "DAGGER_BUILDKITD_LOCK_POLL_SECONDS",
            settings.lock.poll_interval_seconds,
        )
        settings.readiness = ReadinessSettings(
            attempts=_env_int("DAGGER_BUILDKITD_READY_ATTEMPTS", settings.readiness.attempts),
            interval_seconds=_env_float(
                "DAGGER_BUILDKITD_READY_INTERVAL_SECONDS",
                settings.readiness.interval_seconds,
            ),
        )
        return settings

    def validate(self) -> None:
        """Raise configuration error for values the provisioner cannot work with."""

        if not self.backends:
            raise ValueError("DAGGER_BUILDKITD_BACKENDS must name at least one backend.")
        for name, value in (
            ("DAGGER_BUILDKITD_IMAGE", self.identity.image),
            ("DAGGER_BUILDKITD_CONTAINER_NAME", self.identity.container_name),
            ("DAGGER_BUILDKITD_VOLUME_NAME", self.identity.volume_name),
        ):
            if not value.strip():
                raise ValueError(f"{name} must not be empty.")
        if self.lock.timeout_seconds <= 0:
            raise ValueError("DAGGER_BUILDKITD_LOCK_TIMEOUT_SECONDS must be > 0.")
        if self.lock.poll_interval_seconds <= 0:
            raise ValueError("DAGGER_BUILDKITD_LOCK_POLL_SECONDS must be > 0.")
        if self.readiness.attempts <= 0:
            raise ValueError("DAGGER_BUILDKITD_READY_ATTEMPTS must be a positive integer.")
        if self.readiness.interval_seconds < 0:
            raise ValueError("DAGGER_BUILDKITD_READY_INTERVAL_SECONDS must be >= 0.")


def _collect_backends() -> tuple[str, ...]:
    raw = os.getenv("DAGGER_BUILDKITD_BACKENDS", "").strip()
    if not raw:
        return DEFAULT_BACKENDS

    values: list[str] = []
    for part in raw.split(","):
        normalized = part.strip().lower()
        if normalized and normalized not in values:
            values.append(normalized)
    return tuple(values)


def _env_str(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


def _env_int(name: str, default: int) -> int:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as error:
        raise ValueError(f"{name} must be a number.") from error


def _env_float(name: str, default: float) -> float:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as error:
        raise ValueError(f"{name} must be a number.") from error
