"""Tests for runtime/app.py module.

Uses FastAPI's TestClient against an application built from a temporary
asset tree.
"""

from pathlib import Path

import pytest
from fastapi import Request
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.testclient import TestClient

from execpack.builds.framework import PrebuiltFrameworkBuilder
from execpack.errors import ConfigurationError
from execpack.runtime.app import create_app, load_handler, not_found_handler
from execpack.runtime.lifecycle import RequestCounter
from execpack.runtime.router import IMMUTABLE_CACHE_CONTROL, RuntimeRouter


def write_file(path: Path, content: str = "x") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)


@pytest.fixture
def router(tmp_path) -> RuntimeRouter:
    write_file(tmp_path / "client" / "_app" / "immutable" / "app.js", "console.log(1)")
    write_file(tmp_path / "prerendered" / "index.html", "<h1>home</h1>")
    return RuntimeRouter(
        app_dir="_app",
        prerendered_routes=["/"],
        disk_roots=[tmp_path / "client", tmp_path / "prerendered"],
    )


class RecordingHandler:
    """Dynamic handler recording every call."""

    def __init__(self, counter: RequestCounter | None = None) -> None:
        self.calls: list[tuple[str, str, str]] = []
        self.counter = counter
        self.active_during_call: int | None = None

    async def __call__(self, request: Request, client_address: str):
        self.calls.append((request.method, request.url.path, client_address))
        if self.counter is not None:
            self.active_during_call = self.counter.active
        return JSONResponse({"handled": request.url.path})


class TestStaticServing:
    """Tests for static routing through the application."""

    def test_index(self, router):
        """GET / should serve the prerendered index without the handler."""
        handler = RecordingHandler()
        client = TestClient(create_app(router, handler))

        response = client.get("/")

        assert response.status_code == 200
        assert response.text == "<h1>home</h1>"
        assert response.headers["content-type"].startswith("text/html")
        assert response.headers["cache-control"] == "max-age=0, must-revalidate"
        assert handler.calls == []

    def test_immutable_asset(self, router):
        client = TestClient(create_app(router))

        response = client.get("/_app/immutable/app.js")

        assert response.status_code == 200
        assert response.headers["cache-control"] == IMMUTABLE_CACHE_CONTROL

    def test_head(self, router):
        client = TestClient(create_app(router))

        response = client.head("/")

        assert response.status_code == 200
        assert response.content == b""

    def test_post_goes_to_handler(self, router):
        """Only GET and HEAD are served statically."""
        handler = RecordingHandler()
        client = TestClient(create_app(router, handler))

        response = client.post("/_app/immutable/app.js")

        assert response.json() == {"handled": "/_app/immutable/app.js"}
        assert handler.calls[0][0] == "POST"

    def test_routes_derived_from_tree(self, tmp_path):
        """Every route derived from the prerendered tree is served."""
        root = tmp_path / "build"
        write_file(root / "prerendered" / "index.html", "home")
        write_file(root / "prerendered" / "about.html", "about")
        write_file(root / "prerendered" / "blog" / "index.html", "blog")
        manifest = PrebuiltFrameworkBuilder(root).generate_manifest()
        router = RuntimeRouter(
            app_dir=manifest["app_dir"],
            prerendered_routes=manifest["prerendered_routes"],
            disk_roots=[root / "client", root / "prerendered"],
        )
        handler = RecordingHandler()
        client = TestClient(create_app(router, handler))

        for route, body in (("/", "home"), ("/about", "about"), ("/blog", "blog")):
            response = client.get(route)
            assert response.status_code == 200
            assert response.text == body
        assert handler.calls == []


class TestDynamicHandler:
    """Tests for requests delegated to the dynamic handler."""

    def test_client_address(self, router):
        handler = RecordingHandler()
        client = TestClient(create_app(router, handler))

        response = client.get("/api/items?page=2")

        assert response.status_code == 200
        assert handler.calls == [("GET", "/api/items", "testclient")]

    def test_sync_handler(self, router):
        def handler(request, client_address):
            return PlainTextResponse("sync")

        client = TestClient(create_app(router, handler))
        assert client.get("/dynamic").text == "sync"

    def test_default_not_found(self, router):
        client = TestClient(create_app(router))

        response = client.get("/missing")

        assert response.status_code == 404
        assert response.json() == {"code": 404, "message": "Not Found"}

    def test_handler_error(self, router):
        """A failing handler should produce a generic 500."""

        async def handler(request, client_address):
            raise RuntimeError("database unavailable")

        client = TestClient(create_app(router, handler))

        response = client.get("/api/items")

        assert response.status_code == 500
        assert response.json() == {"code": 500, "message": "Something went wrong"}

    def test_request_counted(self, router):
        """Requests are counted while in flight and released afterwards."""
        counter = RequestCounter()
        handler = RecordingHandler(counter)
        client = TestClient(create_app(router, handler, counter))

        client.get("/api/items")

        assert handler.active_during_call == 1
        assert counter.active == 0

    def test_counter_released_on_error(self, router):
        counter = RequestCounter()

        async def handler(request, client_address):
            raise ValueError("boom")

        client = TestClient(create_app(router, handler, counter))
        client.get("/api/items")

        assert counter.active == 0

    def test_state(self, router):
        counter = RequestCounter()
        app = create_app(router, counter=counter)
        assert app.state.router is router
        assert app.state.counter is counter


class TestLoadHandler:
    """Tests for load_handler function."""

    def test_module_with_init(self, tmp_path):
        """Should call init with the environment before returning the handler."""
        server = tmp_path / "server_init"
        write_file(
            server / "app_handler_init.py",
            "ENV = {}\n"
            "def init(env):\n"
            "    ENV.update(env)\n"
            "async def respond(request, client_address):\n"
            "    return ENV\n",
        )

        handler = load_handler(server, "app_handler_init:respond", env={"MODE": "test"})

        assert handler.__module__ == "app_handler_init"
        assert handler.__globals__["ENV"] == {"MODE": "test"}

    def test_package_handler(self, tmp_path):
        server = tmp_path / "server_pkg"
        write_file(
            server / "app_handler_pkg" / "__init__.py",
            "def respond(request, client_address):\n    return None\n",
        )

        handler = load_handler(server, "app_handler_pkg")

        assert handler.__name__ == "respond"

    def test_missing_module(self, tmp_path):
        """Without a module every dynamic request is a 404."""
        assert load_handler(tmp_path, "nothing_here:respond") is not_found_handler

    def test_missing_attribute(self, tmp_path):
        server = tmp_path / "server_attr"
        write_file(server / "app_handler_attr.py", "VALUE = 1\n")

        with pytest.raises(ConfigurationError):
            load_handler(server, "app_handler_attr:respond")
