"""Atomic publication of files into shared output locations.

Content is written to a temporary file inside the destination directory,
flushed to disk, and then moved into place with a single ``os.replace``.
A reader of the published path observes either the previous file or the
complete new one, never a partial write.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import BinaryIO

from provenv.errors import ArtifactPublishError


def publish_bytes(payload: bytes, destination: str | Path, *, mode: int = 0o644) -> Path:
    """Atomically publish *payload* at *destination*."""
    dest = Path(destination)
    return _publish(dest, mode=mode, write=lambda handle: handle.write(payload))


def publish_text(text: str, destination: str | Path, *, mode: int = 0o644) -> Path:
    return publish_bytes(text.encode("utf-8"), destination, mode=mode)


def publish_file(source: str | Path, destination: str | Path, *, mode: int = 0o755) -> Path:
    """Atomically publish a copy of *source* at *destination*."""
    src = Path(source)
    dest = Path(destination)

    def _copy(handle: BinaryIO) -> None:
        with src.open("rb") as reader:
            shutil.copyfileobj(reader, handle)

    return _publish(dest, mode=mode, write=_copy)


def _publish(dest: Path, *, mode: int, write: Callable[[BinaryIO], object]) -> Path:
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(prefix=f".{dest.name}.", suffix=".tmp", dir=dest.parent)
    except OSError as exc:
        raise ArtifactPublishError(
            "Unable to stage artifact for publishing.",
            hint="Check that the output directory is writable and has free space.",
            context={"operation": "publish", "path": str(dest), "error": str(exc)},
        ) from exc

    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            write(handle)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(temp_path, mode)
        os.replace(temp_path, dest)
    except OSError as exc:
        raise ArtifactPublishError(
            "Artifact could not be published atomically.",
            hint="Check that the output directory is writable and has free space.",
            context={"operation": "publish", "path": str(dest), "error": str(exc)},
        ) from exc
    finally:
        if temp_path.exists():
            temp_path.unlink()
    return dest


__all__ = ["publish_bytes", "publish_file", "publish_text"]
