# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Artifact storage.

Test logs and other artifacts are uploaded by the VMs to an object
store. ``ObjectStore`` hides the transport; ``LocalObjectStore`` keeps
objects as files under a directory, which is also how tests and local
runs use it.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path

from imagetest.exceptions import ArtifactError

logger = logging.getLogger(__name__)

SOURCES_MARKER = "/sources/"


class ObjectStore(ABC):
    """A flat namespace of objects addressed by ``/`` separated paths."""

    @abstractmethod
    def list_objects(self, prefix: str) -> list[str]:
        """Return the paths of every object under ``prefix``.

        The prefix is a folder path: it matches whole path segments only.

        Raises:
            ArtifactError: If the listing fails.
        """

    @abstractmethod
    def read(self, path: str) -> bytes:
        """Return the content of an object.

        Raises:
            ArtifactError: If the object cannot be read.
        """

    @abstractmethod
    def write(self, path: str, data: bytes) -> None:
        """Create or replace an object."""

    def exists(self, path: str) -> bool:
        return path in self.list_objects(path)

    def read_text(self, path: str) -> str:
        return self.read(path).decode("utf-8", errors="replace")


class LocalObjectStore(ObjectStore):
    """Object store backed by a local directory."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def __repr__(self) -> str:
        return f"LocalObjectStore(root={str(self.root)!r})"

    def _resolve(self, path: str) -> Path:
        resolved = (self.root / path.lstrip("/")).resolve()
        root = self.root.resolve()
        if resolved != root and root not in resolved.parents:
            raise ArtifactError(
                f"Object path escapes the store root: {path}",
                object_path=path,
            )
        return resolved

    def list_objects(self, prefix: str) -> list[str]:
        prefix = prefix.lstrip("/")
        if not self.root.is_dir():
            return []
        try:
            paths = [
                p.relative_to(self.root).as_posix()
                for p in self.root.rglob("*")
                if p.is_file()
            ]
        except OSError as e:
            raise ArtifactError(
                f"Failed to list objects under '{prefix}': {e}",
                object_path=prefix,
            ) from e
        if not prefix:
            return sorted(paths)
        # Match whole path segments so "a/b" does not list "a/bc/x"
        folder = prefix.rstrip("/") + "/"
        return sorted(p for p in paths if p == prefix or p.startswith(folder))

    def read(self, path: str) -> bytes:
        try:
            return self._resolve(path).read_bytes()
        except OSError as e:
            raise ArtifactError(
                f"Failed to read object '{path}': {e}",
                object_path=path,
            ) from e

    def write(self, path: str, data: bytes) -> None:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise ArtifactError(
                f"Failed to write object '{path}': {e}",
                object_path=path,
            ) from e


def download_folder(store: ObjectStore, prefix: str, local_dir: str | Path) -> int:
    """Mirror every object under ``prefix`` into a local directory.

    Objects whose path contains ``/sources/`` are skipped. A failure to
    copy one object is logged and does not stop the others.

    Args:
        store: The store to copy from.
        prefix: Path prefix of the objects to copy.
        local_dir: Destination directory. Object paths relative to
            ``prefix`` are kept.

    Returns:
        The number of files copied.

    Raises:
        ArtifactError: If the objects cannot be listed.
    """
    local_dir = Path(local_dir)
    prefix = prefix.strip("/")
    copied = 0

    for path in store.list_objects(prefix):
        if SOURCES_MARKER in f"/{path}":
            logger.debug(f"Skipping source artifact {path}")
            continue
        relative = path[len(prefix):].lstrip("/") if prefix else path
        destination = local_dir / relative
        try:
            data = store.read(path)
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_bytes(data)
        except (ArtifactError, OSError) as e:
            logger.warning(f"Failed to download {path}: {e}")
            continue
        copied += 1

    logger.info(f"Downloaded {copied} artifacts from {prefix or '/'} to {local_dir}")
    return copied
