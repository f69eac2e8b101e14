"""Staging of the embedded buildkitd image build context."""

from __future__ import annotations

import shutil
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path

BUNDLE_DIR = "bundle"
BUNDLED_DESCRIPTOR = "Dockerfile.buildkitd"
BUILD_DESCRIPTOR = "Dockerfile"


def stage_build_context(destination: Path) -> Path:
    """Copy the bundled build context into ``destination`` and return it.

    The bundled descriptor is shipped under its own name and copied to the
    file name the engines' build command expects.
    """

    bundle = resources.files("buildkitd_provisioner") / BUNDLE_DIR
    destination.mkdir(parents=True, exist_ok=True)
    _copy_tree(bundle, destination)

    descriptor = destination / BUNDLED_DESCRIPTOR
    if not descriptor.is_file():
        raise FileNotFoundError(f"Bundled build descriptor missing: {BUNDLED_DESCRIPTOR}")
    shutil.copyfile(descriptor, destination / BUILD_DESCRIPTOR)
    return destination


def _copy_tree(source: Traversable, destination: Path) -> None:
    for entry in source.iterdir():
        if entry.name == "__pycache__":
            continue
        target = destination / entry.name
        if entry.is_dir():
            target.mkdir(parents=True, exist_ok=True)
            _copy_tree(entry, target)
            continue
        target.write_bytes(entry.read_bytes())
