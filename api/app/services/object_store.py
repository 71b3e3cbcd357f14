"""Object storage for advert images.

Keys are flat, filesystem-safe names: ``<epoch-millis>-<sanitised filename>``.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class ObjectStore(Protocol):
    async def put(self, key: str, content: bytes, content_type: str | None = None) -> None: ...

    async def delete(self, key: str) -> None: ...


def _sanitise(name: str, max_len: int = 80) -> str:
    return re.sub(r"[^\w\-.]", "_", name)[:max_len].strip("_.") or "image"


def build_image_key(filename: str | None) -> str:
    return f"{int(time.time() * 1000)}-{_sanitise(filename or 'image')}"


class LocalObjectStore:
    """Filesystem-backed store rooted at one directory."""

    def __init__(self, root: str) -> None:
        self._root = Path(root)

    def _path_for(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if self._root.resolve() not in path.parents:
            raise ValueError(f"object key escapes store root: {key!r}")
        return path

    async def put(self, key: str, content: bytes, content_type: str | None = None) -> None:
        path = self._path_for(key)
        await asyncio.to_thread(_write_bytes, path, content)
        logger.info("stored object key=%s bytes=%d content_type=%s", key, len(content), content_type)

    async def delete(self, key: str) -> None:
        path = self._path_for(key)
        await asyncio.to_thread(path.unlink)
        logger.info("deleted object key=%s", key)


def _write_bytes(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
