"""
ASGI Core Application - Root FastAPI application hosting corpus modules
"""

import logging
import time
from contextlib import AsyncExitStack, asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncGenerator, Awaitable, Callable, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from pydantic import BaseModel

from ..utils.Timing import elapsed_ms
from .ASGITypes import ASGIConfig

if TYPE_CHECKING:
    from .ASGICoreModule import ASGICoreModule

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    status: str
    version: str
    modules: List[str]


class ASGICoreApplication:
    """
    Root application. Modules are mounted under ``config.prefix + module.prefix``
    and their lifespans are held open while the server runs.
    """

    def __init__(self, config: Optional[ASGIConfig] = None) -> None:
        self.config = config or ASGIConfig()
        self._modules: Dict[str, "ASGICoreModule"] = {}
        self.app: FastAPI = FastAPI(
            title=self.config.title,
            description=self.config.description,
            version=self.config.version,
            docs_url=self.config.prefixed("/docs") if self.config.docs_enabled else None,
            redoc_url=None,
            openapi_url=self.config.prefixed("/openapi.json") if self.config.docs_enabled else None,
            lifespan=self._lifespan,
        )

        self._configure_middleware()
        self.app.add_api_route(self.config.prefixed("/health"), self._health, methods=["GET"], response_model=HealthResponse)

    @property
    def modules(self) -> Dict[str, "ASGICoreModule"]:
        return dict(self._modules)

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info(f"Starting {self.config.title} with {len(self._modules)} modules...")

        async with AsyncExitStack() as stack:
            for module in self._modules.values():
                await stack.enter_async_context(module.lifespan())
            yield

            logger.info(f"Shutting down {self.config.title}...")

    async def _health(self) -> HealthResponse:
        return HealthResponse(status="ok", version=self.config.version, modules=sorted(self._modules))

    async def _time_request(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        start_time = time.time()
        response = await call_next(request)
        took_ms = elapsed_ms(start_time)
        response.headers["X-Process-Time-Ms"] = str(took_ms)
        logger.info(f"{request.method} {request.url.path} -> {response.status_code} in {took_ms}ms")
        return response

    def _configure_middleware(self) -> None:
        self.app.middleware("http")(self._time_request)

        if self.config.gzip_minimum_size is not None:
            self.app.add_middleware(GZipMiddleware, minimum_size=self.config.gzip_minimum_size)

        cors = self.config.cors
        if cors and cors.allow_origins:
            self.app.add_middleware(
                CORSMiddleware,
                allow_origins=cors.allow_origins,
                allow_methods=cors.allow_methods,
                allow_headers=cors.allow_headers,
                expose_headers=cors.expose_headers,
                max_age=cors.max_age,
            )

    def mount_module(self, module: "ASGICoreModule", prefix: Optional[str] = None) -> None:
        """Mount a module's routes and register its lifespan.

        Args:
            module: The ASGICoreModule instance to mount
            prefix: Optional prefix override (uses module's prefix if not provided)
        """
        full_prefix = self.config.prefixed(prefix or module.prefix)
        self.app.include_router(module.router(), prefix=full_prefix)

        module_name = module.__class__.__name__
        self._modules[module_name] = module
        logger.info(f"Mounted {module_name} at {full_prefix or '/'}")

    def run(self, **kwargs: Any) -> None:
        """Serve the application with uvicorn on the configured host and port."""
        uvicorn.run(self.app, host=self.config.host, port=self.config.port, **kwargs)
