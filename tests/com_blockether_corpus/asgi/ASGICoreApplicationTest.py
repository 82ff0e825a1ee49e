"""Tests for ASGICoreApplication and ASGICoreModule."""

from contextlib import asynccontextmanager
from typing import Any, AsyncContextManager, AsyncIterator, List

from fastapi import APIRouter
from fastapi.testclient import TestClient
from pydantic import Field

from com_blockether_corpus.asgi import ASGIConfig, ASGICoreApplication, ASGICoreModule, CORSConfig


class EchoModule(ASGICoreModule):
    events: List[str] = Field(default_factory=list)

    def setup_routes(self, router: APIRouter) -> None:
        @router.get("/echo/{word}")
        async def echo(word: str) -> dict:
            return {"word": word, "events": list(self.events)}

    def lifespan(self) -> AsyncContextManager[Any]:
        @asynccontextmanager
        async def running() -> AsyncIterator[None]:
            self.events.append("started")
            yield
            self.events.append("stopped")

        return running()


class TestASGICoreApplication:
    """Test suite for ASGICoreApplication."""

    def test_module_routes_and_lifespan(self) -> None:
        module = EchoModule(prefix="/echo-module")
        application = ASGICoreApplication(ASGIConfig(prefix="/api"))
        application.mount_module(module)

        with TestClient(application.app) as client:
            response = client.get("/api/echo-module/echo/hello")
            assert response.status_code == 200
            assert response.json() == {"word": "hello", "events": ["started"]}
            assert client.get("/echo-module/echo/hello").status_code == 404

        assert module.events == ["started", "stopped"]
        assert list(application.modules) == ["EchoModule"]

    def test_health(self) -> None:
        application = ASGICoreApplication(ASGIConfig(version="1.2.3"))
        application.mount_module(EchoModule(prefix="/echo-module"))

        with TestClient(application.app) as client:
            response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "version": "1.2.3", "modules": ["EchoModule"]}

    def test_processing_time_header(self) -> None:
        application = ASGICoreApplication()
        application.mount_module(EchoModule(prefix="/m"))

        with TestClient(application.app) as client:
            response = client.get("/m/echo/x")

        assert int(response.headers["X-Process-Time-Ms"]) >= 0

    def test_docs_can_be_disabled(self) -> None:
        with TestClient(ASGICoreApplication(ASGIConfig(docs_enabled=False)).app) as client:
            assert client.get("/docs").status_code == 404
            assert client.get("/openapi.json").status_code == 404

        with TestClient(ASGICoreApplication(ASGIConfig(prefix="/api")).app) as client:
            assert client.get("/api/openapi.json").status_code == 200

    def test_cors_allows_only_listed_origins(self) -> None:
        config = ASGIConfig(cors=CORSConfig(allow_origins=["https://admin.example.org"]))
        application = ASGICoreApplication(config)
        application.mount_module(EchoModule(prefix="/m"))

        with TestClient(application.app) as client:
            allowed = client.options(
                "/m/echo/x",
                headers={"Origin": "https://admin.example.org", "Access-Control-Request-Method": "GET"},
            )
            denied = client.options(
                "/m/echo/x",
                headers={"Origin": "https://elsewhere.example.org", "Access-Control-Request-Method": "GET"},
            )

        assert allowed.status_code == 200
        assert allowed.headers["access-control-allow-origin"] == "https://admin.example.org"
        assert "access-control-allow-origin" not in denied.headers

    def test_standalone_module_app(self) -> None:
        module = EchoModule(prefix="/solo")

        with TestClient(module.app) as client:
            response = client.get("/solo/echo/alone")

        assert response.json()["word"] == "alone"
        assert module.events == ["started", "stopped"]
        assert module.title == "EchoModule"
