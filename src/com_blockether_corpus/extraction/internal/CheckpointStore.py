"""
Persistence of batch extraction checkpoints.

A checkpoint is read once at the start of an invocation and written once at
the end. Nothing here locks: the scheduler driving the invocations must keep
at most one extraction in flight per document.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Protocol, Union, runtime_checkable

from .ExtractionTypes import BatchProgress

logger = logging.getLogger(__name__)


@runtime_checkable
class CheckpointStore(Protocol):
    """Durable storage for ``BatchProgress`` keyed by document id."""

    async def load(self, document_id: str) -> Optional[BatchProgress]: ...

    async def save(self, progress: BatchProgress) -> None: ...

    async def delete(self, document_id: str) -> None: ...


class InMemoryCheckpointStore:
    """Process-local checkpoint store; values are copied in and out so callers never share state."""

    def __init__(self) -> None:
        self._checkpoints: Dict[str, BatchProgress] = {}

    async def load(self, document_id: str) -> Optional[BatchProgress]:
        progress = self._checkpoints.get(document_id)
        return progress.model_copy(deep=True) if progress else None

    async def save(self, progress: BatchProgress) -> None:
        self._checkpoints[progress.document_id] = progress.model_copy(deep=True)

    async def delete(self, document_id: str) -> None:
        self._checkpoints.pop(document_id, None)


class FileCheckpointStore:
    """One JSON file per document under a directory, replaced atomically on save."""

    def __init__(self, directory: Union[str, Path]):
        self._directory = Path(directory)
        self._directory.mkdir(parents=True, exist_ok=True)

    def _path(self, document_id: str) -> Path:
        if not document_id or "/" in document_id or document_id.startswith("."):
            raise ValueError(f"Invalid document id for checkpoint: {document_id!r}")
        return self._directory / f"{document_id}.checkpoint.json"

    async def load(self, document_id: str) -> Optional[BatchProgress]:
        path = self._path(document_id)
        if not path.exists():
            return None
        return BatchProgress.model_validate_json(path.read_text(encoding="utf-8"))

    async def save(self, progress: BatchProgress) -> None:
        path = self._path(progress.document_id)
        fd, temp_name = tempfile.mkstemp(dir=self._directory, prefix=".checkpoint-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(progress.model_dump_json())
            os.replace(temp_name, path)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise
        logger.info(
            f"Saved checkpoint for {progress.document_id}: page {progress.last_processed_page}/{progress.total_pages}"
        )

    async def delete(self, document_id: str) -> None:
        self._path(document_id).unlink(missing_ok=True)
