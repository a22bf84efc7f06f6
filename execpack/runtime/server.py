"""Serving a packaged build with uvicorn.

This module handles:
- Loading the routing manifest and runtime options of a build
- Running uvicorn under the shutdown coordinator's signal handling
- The entry point compiled into the executable (run_bundle)
- Serving a staging directory during development (serve_staging)
"""

from __future__ import annotations

import asyncio
import contextlib
import importlib.util
import json
import logging
import sys
import webbrowser
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path

import uvicorn
from fastapi import FastAPI

from execpack.config import Settings, configure_logging, get_settings
from execpack.errors import ConfigurationError
from execpack.runtime.app import create_app, load_handler
from execpack.runtime.lifecycle import RequestCounter, ShutdownCoordinator
from execpack.runtime.router import RuntimeRouter

logger = logging.getLogger(__name__)

ROUTING_MANIFEST = "manifest.json"
RUNTIME_CONFIG = "runtime_config.json"
ASSET_MODULE = "assets_generated"
ASSET_ROOTS = ("client", "prerendered")

STARTUP_POLL_INTERVAL = 0.05


@dataclass(frozen=True)
class RoutingManifest:
    """Routing manifest written at build time."""

    app_dir: str
    prerendered_routes: tuple[str, ...]
    handler: str

    @classmethod
    def load(cls, path: Path) -> RoutingManifest:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read routing manifest {path}: {e}") from e
        try:
            return cls(
                app_dir=data["app_dir"],
                prerendered_routes=tuple(data["prerendered_routes"]),
                handler=data["handler"],
            )
        except (KeyError, TypeError) as e:
            raise ConfigurationError(f"Invalid routing manifest {path}: {e}") from e


def load_runtime_config(path: Path) -> dict[str, object]:
    if not path.is_file():
        return {}
    return json.loads(path.read_text(encoding="utf-8"))


def build_application(
    bundle_root: Path,
    disk_roots: list[Path],
    asset_map: Mapping[str, str] | None = None,
    payloads: Mapping[str, str] | None = None,
    counter: RequestCounter | None = None,
) -> FastAPI:
    """Create the application for a build laid out under bundle_root.

    Args:
        bundle_root: Directory holding ``manifest.json``, ``server/`` and
            the embedded payloads.
        disk_roots: Directories searched for assets that are not embedded.
        asset_map: Embedded route -> symbolic name.
        payloads: Symbolic name -> location under bundle_root.
        counter: In-flight request counter.

    Returns:
        Configured FastAPI application.
    """
    manifest = RoutingManifest.load(bundle_root / ROUTING_MANIFEST)
    router = RuntimeRouter(
        app_dir=manifest.app_dir,
        prerendered_routes=manifest.prerendered_routes,
        asset_map=asset_map,
        payloads=payloads,
        bundle_root=bundle_root,
        disk_roots=disk_roots,
    )
    handler = load_handler(bundle_root / "server", manifest.handler)
    return create_app(router, handler, counter)


class _ManagedServer(uvicorn.Server):
    """uvicorn server leaving signal handling to the ShutdownCoordinator."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


def _bound_port(server: uvicorn.Server, default: int) -> int:
    for listener in server.servers:
        for sock in listener.sockets:
            return sock.getsockname()[1]
    return default


def open_in_browser(url: str) -> None:
    """Open url in the default browser; failure is only logged."""
    try:
        opened = webbrowser.open(url)
    except webbrowser.Error as e:
        logger.warning("Could not auto-open browser (%s). Please visit %s manually", e, url)
        return
    if opened:
        logger.info("Opening %s in default browser", url)
    else:
        logger.warning("Could not auto-open browser. Please visit %s manually", url)


async def serve_app(
    app: FastAPI,
    settings: Settings,
    counter: RequestCounter,
    open_browser: bool = False,
) -> int:
    """Serve app until a graceful shutdown completes.

    Returns:
        Process exit code from the shutdown coordinator.
    """
    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_config=None,
        lifespan="off",
    )
    server = _ManagedServer(config)

    def stop_accepting() -> None:
        for listener in server.servers:
            listener.close()
        logger.info("Stopped accepting new connections")

    coordinator = ShutdownCoordinator(
        counter,
        grace_period=settings.grace_period,
        poll_interval=settings.poll_interval,
        stop_accepting=stop_accepting,
    )
    loop = asyncio.get_running_loop()
    coordinator.install_signal_handlers(loop)
    loop.set_exception_handler(coordinator.handle_loop_exception)

    serve_task = asyncio.create_task(server.serve())
    while not server.started:
        if serve_task.done():
            serve_task.result()
            logger.error("Server stopped before it started listening")
            return 1
        await asyncio.sleep(STARTUP_POLL_INTERVAL)

    url = f"http://localhost:{_bound_port(server, settings.port)}"
    logger.info("Listening on %s", url)
    if open_browser:
        open_in_browser(url)

    waiter = asyncio.create_task(coordinator.wait())
    done, _ = await asyncio.wait(
        {serve_task, waiter}, return_when=asyncio.FIRST_COMPLETED
    )
    exit_code = waiter.result() if waiter in done else 0
    if not waiter.done():
        waiter.cancel()

    server.should_exit = True
    server.force_exit = True
    await serve_task
    return exit_code


def _serve(
    bundle_root: Path,
    disk_roots: list[Path],
    asset_map: Mapping[str, str] | None,
    payloads: Mapping[str, str] | None,
    settings: Settings,
) -> int:
    counter = RequestCounter()
    app = build_application(bundle_root, disk_roots, asset_map, payloads, counter)
    runtime_config = load_runtime_config(bundle_root / RUNTIME_CONFIG)
    open_browser = settings.open_browser or bool(runtime_config.get("open_browser"))
    return asyncio.run(serve_app(app, settings, counter, open_browser=open_browser))


def run_bundle(
    asset_map: Mapping[str, str],
    payloads: Mapping[str, str],
    settings: Settings | None = None,
) -> int:
    """Entry point of the compiled executable.

    Embedded payloads are read from the bundle's extraction directory;
    external assets from ``client/`` and ``prerendered/`` next to the
    executable.

    Returns:
        Process exit code.
    """
    if settings is None:
        settings = get_settings()
    configure_logging(settings.log_level)

    bundle_root = Path(getattr(sys, "_MEIPASS", Path(sys.argv[0]).resolve().parent))
    executable_dir = Path(sys.executable).resolve().parent
    disk_roots = [executable_dir / name for name in ASSET_ROOTS]
    return _serve(bundle_root, disk_roots, asset_map, payloads, settings)


def load_asset_module(path: Path) -> tuple[dict[str, str], dict[str, str]]:
    """Load ``ASSET_MAP`` and ``PAYLOADS`` from a generated asset module."""
    if not path.is_file():
        return {}, {}
    spec = importlib.util.spec_from_file_location(ASSET_MODULE, path)
    if spec is None or spec.loader is None:
        raise ConfigurationError(f"Cannot load asset module {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return dict(module.ASSET_MAP), dict(module.PAYLOADS)


def serve_staging(staging_dir: Path, settings: Settings) -> int:
    """Serve a staging directory without compiling it.

    Returns:
        Process exit code.
    """
    if not (staging_dir / ROUTING_MANIFEST).is_file():
        raise ConfigurationError(
            f"{staging_dir} is not a build staging directory (no {ROUTING_MANIFEST})"
        )
    asset_map, payloads = load_asset_module(
        staging_dir / "runtime" / f"{ASSET_MODULE}.py"
    )
    disk_roots = [staging_dir / name for name in ASSET_ROOTS]
    return _serve(staging_dir, disk_roots, asset_map, payloads, settings)


__all__ = [
    "RoutingManifest",
    "build_application",
    "load_asset_module",
    "open_in_browser",
    "run_bundle",
    "serve_app",
    "serve_staging",
]
