from __future__ import annotations

import logging
import os
import tempfile
from uuid import uuid4

log = logging.getLogger(__name__)


def ensure_directory_exists(path: str) -> bool:
    """Create *path* (and parents) if needed. Returns False on failure."""
    if not path:
        return True
    try:
        os.makedirs(path, exist_ok=True)
    except OSError as e:
        log.error("Could not create directory %s: %s", path, e)
        return False
    return os.path.isdir(path)


def delete_file_if_exists(path: str) -> bool:
    """Remove *path*. Returns True if a file was removed."""
    try:
        os.remove(path)
    except FileNotFoundError:
        return False
    return True


def temporary_file_path(extension: str | None = None) -> str:
    """A fresh, unused path in the system temp directory."""
    name = uuid4().hex
    if extension:
        name = f"{name}.{extension.lstrip('.')}"
    return os.path.join(tempfile.gettempdir(), name)


def atomic_write_bytes(path: str, data: bytes) -> None:
    """
    Write *data* to *path* so readers never see a partial file.
    The bytes go to a temp file next to *path*, which then replaces it.
    """
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(
        prefix=f".{os.path.basename(path)}.", suffix=".tmp", dir=directory,
    )
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        delete_file_if_exists(tmp_path)
        raise
