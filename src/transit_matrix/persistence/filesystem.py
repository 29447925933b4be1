"""File-based persistence helpers for the route matrix and zone catalog."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import msgpack

from ..config import settings

logger = logging.getLogger(__name__)


class FileStorage:
    """Thin wrapper around the data root for reading and atomically writing JSON and msgpack files."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = (root or settings.data_root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, *parts: str) -> Path:
        return self.root.joinpath(*parts)

    def read_json(self, path: Path) -> Any | None:
        """Return the decoded document, or None if the file does not exist."""
        if not path.exists():
            return None
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)

    def write_json(self, path: Path, data: Any, *, indent: int | None = 2) -> None:
        payload = json.dumps(data, ensure_ascii=False, indent=indent)
        self.write_bytes(path, payload.encode("utf-8"))

    def read_msgpack(self, path: Path) -> Any | None:
        if not path.exists():
            return None
        return msgpack.unpackb(path.read_bytes(), raw=False)

    def write_msgpack(self, path: Path, data: Any) -> None:
        self.write_bytes(path, pack(data))

    def write_bytes(self, path: Path, payload: bytes) -> None:
        """Write to a temporary sibling file, then rename it over the target.

        On failure the temporary file is removed and the previous content is left untouched.
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_path, path)
        except BaseException:
            logger.warning(f"Write to {path} failed; discarding temporary file {temp_path.name}")
            temp_path.unlink(missing_ok=True)
            raise


def pack(data: Any) -> bytes:
    return msgpack.packb(data, use_bin_type=True)
