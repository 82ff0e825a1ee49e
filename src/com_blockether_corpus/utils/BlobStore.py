"""
Blob storage for uploaded originals and regenerated artifacts.
"""

import logging
from pathlib import Path, PurePosixPath
from typing import Dict, Optional, Protocol, Union, runtime_checkable

import anyio

logger = logging.getLogger(__name__)


@runtime_checkable
class BlobStore(Protocol):
    """Byte blobs addressed by relative, slash-separated paths."""

    async def read(self, path: str) -> bytes:
        """Raises FileNotFoundError when nothing is stored at ``path``."""
        ...

    async def write(self, path: str, data: bytes) -> None: ...

    async def exists(self, path: str) -> bool: ...


def _normalized(path: str) -> str:
    relative = PurePosixPath(path.strip().lstrip("/"))
    if not relative.parts or any(part in ("..", ".") for part in relative.parts):
        raise ValueError(f"Invalid blob path: {path!r}")
    return str(relative)


class InMemoryBlobStore:
    def __init__(self, blobs: Optional[Dict[str, bytes]] = None):
        self._blobs: Dict[str, bytes] = {_normalized(path): data for path, data in (blobs or {}).items()}

    async def read(self, path: str) -> bytes:
        key = _normalized(path)
        if key not in self._blobs:
            raise FileNotFoundError(f"No blob at {key}")
        return self._blobs[key]

    async def write(self, path: str, data: bytes) -> None:
        self._blobs[_normalized(path)] = bytes(data)

    async def exists(self, path: str) -> bool:
        return _normalized(path) in self._blobs


class LocalBlobStore:
    """Blobs stored as files under a root directory."""

    def __init__(self, root: Union[str, Path]):
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, path: str) -> anyio.Path:
        return anyio.Path(self._root / _normalized(path))

    async def read(self, path: str) -> bytes:
        target = self._resolve(path)
        if not await target.is_file():
            raise FileNotFoundError(f"No blob at {path}")
        return await target.read_bytes()

    async def write(self, path: str, data: bytes) -> None:
        target = self._resolve(path)
        await target.parent.mkdir(parents=True, exist_ok=True)
        await target.write_bytes(data)
        logger.debug(f"Wrote {len(data)} bytes to {target}")

    async def exists(self, path: str) -> bool:
        return await self._resolve(path).is_file()
