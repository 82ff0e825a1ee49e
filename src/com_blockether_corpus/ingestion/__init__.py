"""Document upload: extraction, indexing and review creation in one call."""

from .IngestionCore import IngestionCore
from .internal.IngestionTypes import UploadProgress, UploadRequest, UploadResult

__all__ = [
    "IngestionCore",
    "UploadRequest",
    "UploadResult",
    "UploadProgress",
]
