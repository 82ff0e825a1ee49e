"""ASGI transport for the corpus cores."""

from .ASGICoreApplication import ASGICoreApplication, HealthResponse
from .ASGICoreModule import ASGICoreModule
from .ASGITypes import ASGIConfig, CORSConfig
from .CorpusASGIModule import CorpusASGIModule
from .CorpusServices import CorpusServices

__all__ = [
    "ASGICoreApplication",
    "ASGICoreModule",
    "ASGIConfig",
    "CORSConfig",
    "CorpusASGIModule",
    "CorpusServices",
    "HealthResponse",
]
