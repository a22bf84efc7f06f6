"""Framework builder collaborator.

The upstream framework owns compilation of the web application. The build
only consumes its output through four calls: three directory writers and a
routing-manifest call returning a serializable descriptor.
"""

from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from execpack.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_APP_DIR = "_app"
DEFAULT_HANDLER = "handler:respond"
ROUTES_FILE = "routes.json"


@runtime_checkable
class FrameworkBuilder(Protocol):
    """Interface of the framework builder collaborator."""

    def write_client(self, dest: Path) -> None: ...

    def write_prerendered(self, dest: Path) -> None: ...

    def write_server(self, dest: Path) -> None: ...

    def generate_manifest(self) -> dict[str, Any]:
        """Return ``{app_dir, prerendered_routes, handler}``."""
        ...


def _copy_tree(src: Path, dest: Path) -> None:
    if not src.is_dir():
        logger.debug("Framework output %s does not exist; writing empty tree", src)
        dest.mkdir(parents=True, exist_ok=True)
        return
    shutil.copytree(src, dest, dirs_exist_ok=True)


def prerendered_routes_from_tree(prerendered_dir: Path) -> list[str]:
    """Derive prerendered route paths from the HTML documents in a tree.

    ``index.html`` maps to its directory route (``/`` at the root) and
    ``about.html`` to ``/about``.
    """
    if not prerendered_dir.is_dir():
        return []

    routes = []
    for document in sorted(prerendered_dir.rglob("*.html")):
        relative = document.relative_to(prerendered_dir).with_suffix("").as_posix()
        if relative == "index":
            routes.append("/")
        elif relative.endswith("/index"):
            routes.append("/" + relative[: -len("/index")])
        else:
            routes.append("/" + relative)
    return routes


class PrebuiltFrameworkBuilder:
    """Framework builder reading an already-built output tree.

    The tree holds ``client/``, ``prerendered/`` and ``server/`` and may
    carry a ``routes.json`` with the routing manifest.
    """

    def __init__(self, source: Path) -> None:
        self.source = Path(source)
        if not self.source.is_dir():
            raise ConfigurationError(f"Framework output not found: {self.source}")

    def write_client(self, dest: Path) -> None:
        _copy_tree(self.source / "client", dest)

    def write_prerendered(self, dest: Path) -> None:
        _copy_tree(self.source / "prerendered", dest)

    def write_server(self, dest: Path) -> None:
        _copy_tree(self.source / "server", dest)

    def generate_manifest(self) -> dict[str, Any]:
        routes_file = self.source / ROUTES_FILE
        declared: dict[str, Any] = {}
        if routes_file.is_file():
            try:
                declared = json.loads(routes_file.read_text(encoding="utf-8"))
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Invalid {routes_file}: {e}") from e
            if not isinstance(declared, dict):
                raise ConfigurationError(f"Invalid {routes_file}: expected an object")

        routes = declared.get("prerendered_routes")
        if routes is None:
            routes = prerendered_routes_from_tree(self.source / "prerendered")

        return {
            "app_dir": declared.get("app_dir", DEFAULT_APP_DIR),
            "prerendered_routes": sorted(set(routes)),
            "handler": declared.get("handler", DEFAULT_HANDLER),
        }


__all__ = [
    "DEFAULT_APP_DIR",
    "DEFAULT_HANDLER",
    "FrameworkBuilder",
    "PrebuiltFrameworkBuilder",
    "prerendered_routes_from_tree",
]
