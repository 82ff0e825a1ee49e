"""
ASGI Core Module - Base class for route groups mounted on ASGICoreApplication
"""

from abc import ABC, abstractmethod
from contextlib import nullcontext
from typing import Any, AsyncContextManager, Optional

from fastapi import APIRouter, FastAPI
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr


class ASGICoreModule(BaseModel, ABC):
    """A group of routes sharing a prefix, plus the resources they need while serving."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    prefix: str = Field(default="", description="URL prefix of the module, e.g. '/corpus'")
    title: Optional[str] = None
    description: Optional[str] = None

    _app: Optional[FastAPI] = PrivateAttr(default=None)

    def model_post_init(self, __context: Any) -> None:
        self.title = self.title or self.__class__.__name__
        self.description = self.description or f"{self.title} Module"

    @abstractmethod
    def setup_routes(self, router: APIRouter) -> None:
        """Register the module's endpoints. Paths are relative to the module prefix."""

    def lifespan(self) -> AsyncContextManager[Any]:
        """Entered on startup and exited on shutdown of the hosting application."""
        return nullcontext()

    def router(self) -> APIRouter:
        router = APIRouter(tags=[self.title] if self.title else None)
        self.setup_routes(router)
        return router

    @property
    def app(self) -> FastAPI:
        """This module alone as a FastAPI app, served under its own prefix."""
        if self._app is None:
            app = FastAPI(title=self.title or self.__class__.__name__, lifespan=lambda _: self.lifespan())
            app.include_router(self.router(), prefix=self.prefix)
            self._app = app
        return self._app
