"""FastAPI application factory for the packaged application.

Every request is counted while in flight. GET and HEAD requests are first
offered to the static router; everything else, and every static miss, is
passed to the dynamic handler loaded from the server bundle.
"""

from __future__ import annotations

import importlib.util
import inspect
import logging
import os
import sys
from collections.abc import Awaitable, Callable, Mapping
from pathlib import Path
from urllib.parse import quote

from fastapi import FastAPI, Request
from fastapi.responses import FileResponse, JSONResponse, Response
from starlette.types import ASGIApp, Receive, Scope, Send

from execpack import __version__
from execpack.errors import ConfigurationError, RuntimeRequestError
from execpack.runtime.lifecycle import RequestCounter
from execpack.runtime.router import STATIC_METHODS, RuntimeRouter

logger = logging.getLogger(__name__)

Handler = Callable[[Request, str], Awaitable[Response]]

FALLBACK_CLIENT_ADDRESS = "127.0.0.1"
ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class RequestTrackingMiddleware:
    """Pure ASGI middleware counting HTTP requests until the response is sent."""

    def __init__(self, app: ASGIApp, counter: RequestCounter) -> None:
        self.app = app
        self.counter = counter

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        with self.counter.track():
            await self.app(scope, receive, send)


async def not_found_handler(request: Request, client_address: str) -> Response:
    """Dynamic handler used when the server bundle has none."""
    return JSONResponse({"code": 404, "message": "Not Found"}, status_code=404)


def load_handler(
    server_dir: Path,
    spec: str,
    env: Mapping[str, str] | None = None,
) -> Handler:
    """Load the dynamic handler from the server bundle.

    Args:
        server_dir: Directory holding the server bundle.
        spec: ``module:attribute`` of the handler inside server_dir.
        env: Environment passed to the module's optional ``init(env)``
            (defaults to ``os.environ``).

    Returns:
        The handler callable, or not_found_handler when the module is absent.

    Raises:
        ConfigurationError: If the module has no such attribute.
    """
    module_name, _, attribute = spec.partition(":")
    attribute = attribute or "respond"
    relative = Path(*module_name.split("."))

    module_path = server_dir / relative.with_suffix(".py")
    if not module_path.is_file():
        module_path = server_dir / relative / "__init__.py"
    if not module_path.is_file():
        logger.warning(
            "No handler module %s in %s; unmatched requests will return 404",
            module_name,
            server_dir,
        )
        return not_found_handler

    # Handler modules import their siblings from the bundle
    if str(server_dir) not in sys.path:
        sys.path.insert(0, str(server_dir))

    module_spec = importlib.util.spec_from_file_location(module_name, module_path)
    if module_spec is None or module_spec.loader is None:
        raise ConfigurationError(f"Cannot load handler module {module_path}")
    module = importlib.util.module_from_spec(module_spec)
    sys.modules[module_name] = module
    module_spec.loader.exec_module(module)

    init = getattr(module, "init", None)
    if callable(init):
        init(dict(os.environ if env is None else env))

    handler = getattr(module, attribute, None)
    if not callable(handler):
        raise ConfigurationError(
            f"Handler module {module_path} has no callable '{attribute}'"
        )
    logger.info("Loaded handler %s from %s", spec, server_dir)
    return handler


def raw_request_path(request: Request) -> str:
    """Return the request path as sent, still percent-encoded."""
    raw = request.scope.get("raw_path")
    if raw:
        return raw.decode("latin-1").split("?", 1)[0]
    return quote(request.url.path)


def create_app(
    router: RuntimeRouter,
    handler: Handler = not_found_handler,
    counter: RequestCounter | None = None,
) -> FastAPI:
    """Create the application serving one packaged build.

    Args:
        router: Static router.
        handler: Dynamic handler ``async (request, client_address) -> Response``.
        counter: In-flight request counter (a new one when omitted).

    Returns:
        Configured FastAPI application.
    """
    if counter is None:
        counter = RequestCounter()

    application = FastAPI(
        title="execpack runtime",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    application.state.router = router
    application.state.counter = counter
    application.add_middleware(RequestTrackingMiddleware, counter=counter)

    @application.exception_handler(RuntimeRequestError)
    async def runtime_error_handler(
        request: Request, exc: RuntimeRequestError
    ) -> JSONResponse:
        logger.error("%s", exc, exc_info=exc.__cause__)
        return JSONResponse(
            {"code": 500, "message": "Something went wrong"},
            status_code=500,
        )

    @application.api_route("/{full_path:path}", methods=ALL_METHODS)
    async def dispatch(request: Request, full_path: str) -> Response:
        if request.method in STATIC_METHODS:
            match = router.match(raw_request_path(request))
            if match is not None:
                return FileResponse(
                    match.path,
                    media_type=match.media_type,
                    headers={"Cache-Control": match.cache_control},
                )

        client_address = (
            request.client.host
            if request.client and request.client.host
            else FALLBACK_CLIENT_ADDRESS
        )
        try:
            response = handler(request, client_address)
            if inspect.isawaitable(response):
                response = await response
        except Exception as e:
            raise RuntimeRequestError(request.method, request.url.path) from e
        return response

    return application


__all__ = [
    "ALL_METHODS",
    "FALLBACK_CLIENT_ADDRESS",
    "Handler",
    "RequestTrackingMiddleware",
    "create_app",
    "load_handler",
    "not_found_handler",
    "raw_request_path",
]
