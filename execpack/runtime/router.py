"""Static request routing for the packaged application.

Resolution order for a request path:
1. prerendered route -> its HTML document (``/`` -> ``/index.html``,
   ``/about`` -> ``/about.html`` or ``/about/index.html``)
2. embedded asset map
3. on-disk asset roots next to the executable

Anything unresolved is left to the dynamic handler.
"""

from __future__ import annotations

import logging
import mimetypes
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote

logger = logging.getLogger(__name__)

IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"
REVALIDATE_CACHE_CONTROL = "max-age=0, must-revalidate"
DEFAULT_MEDIA_TYPE = "application/octet-stream"

STATIC_METHODS = frozenset({"GET", "HEAD"})

TRAVERSAL_MARKERS = ("../", "..\\")

# A percent sign not followed by two hex digits
MALFORMED_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def decode_path(pathname: str) -> str | None:
    """Percent-decode a request path.

    Returns:
        The decoded path, or None when an escape is malformed, decoding
        fails or the result carries a traversal marker.
    """
    if MALFORMED_ESCAPE.search(pathname):
        return None
    try:
        decoded = unquote(pathname, errors="strict")
    except UnicodeDecodeError:
        return None
    if "\x00" in decoded or any(marker in decoded for marker in TRAVERSAL_MARKERS):
        return None
    return decoded


def prerendered_documents(route: str) -> list[str]:
    """Candidate documents for a prerendered route, in lookup order."""
    if route == "/":
        return ["/index.html"]
    route = route.rstrip("/")
    return [f"{route}.html", f"{route}/index.html"]


def media_type_for(path: Path) -> str:
    media_type, _ = mimetypes.guess_type(path.name)
    return media_type or DEFAULT_MEDIA_TYPE


def confined_file(root: Path, decoded: str) -> Path | None:
    """Resolve a decoded path under root, refusing anything outside it."""
    try:
        root = root.resolve()
        candidate = (root / decoded.lstrip("/")).resolve()
        candidate.relative_to(root)
    except (OSError, ValueError):
        return None
    return candidate if candidate.is_file() else None


@dataclass(frozen=True)
class StaticMatch:
    """A static file answering a request."""

    path: Path
    media_type: str
    cache_control: str


class RuntimeRouter:
    """Maps request paths to prerendered documents and static assets.

    Args:
        app_dir: Application directory; files under ``/<app_dir>/immutable/``
            are cached for a year.
        prerendered_routes: Route paths with a prerendered document.
        asset_map: Embedded route -> symbolic name.
        payloads: Symbolic name -> location inside the bundle.
        bundle_root: Directory the embedded payloads were extracted to.
        disk_roots: Directories searched when a path is not embedded.
    """

    def __init__(
        self,
        app_dir: str,
        prerendered_routes: Iterable[str] = (),
        asset_map: Mapping[str, str] | None = None,
        payloads: Mapping[str, str] | None = None,
        bundle_root: Path | None = None,
        disk_roots: Iterable[Path] = (),
    ) -> None:
        self.app_dir = app_dir.strip("/")
        self.prerendered_routes = frozenset(prerendered_routes)
        self.asset_map = dict(asset_map or {})
        self.payloads = dict(payloads or {})
        self.bundle_root = bundle_root
        self.disk_roots = list(disk_roots)

    @property
    def immutable_prefix(self) -> str:
        return f"/{self.app_dir}/immutable/"

    def _embedded_file(self, decoded: str) -> Path | None:
        if self.bundle_root is None:
            return None
        symbolic = self.asset_map.get(decoded)
        if symbolic is None:
            return None
        locator = self.payloads.get(symbolic)
        if locator is None:
            logger.warning("Asset %s has no payload %s", decoded, symbolic)
            return None
        candidate = self.bundle_root / locator
        return candidate if candidate.is_file() else None

    def resolve_file(self, decoded: str) -> Path | None:
        """Find the file for a decoded path, embedded first, then on disk."""
        found = self._embedded_file(decoded)
        if found is not None:
            return found
        for root in self.disk_roots:
            found = confined_file(root, decoded)
            if found is not None:
                return found
        return None

    def match(self, pathname: str) -> StaticMatch | None:
        """Match a raw (still percent-encoded) request path.

        Returns:
            StaticMatch, or None to delegate to the dynamic handler.
        """
        decoded = decode_path(pathname)
        if decoded is None:
            return None

        if decoded in self.prerendered_routes:
            for document in prerendered_documents(decoded):
                found = self.resolve_file(document)
                if found is not None:
                    return StaticMatch(
                        found, media_type_for(found), REVALIDATE_CACHE_CONTROL
                    )

        found = self.resolve_file(decoded)
        if found is None:
            return None

        cache_control = (
            IMMUTABLE_CACHE_CONTROL
            if decoded.startswith(self.immutable_prefix)
            else REVALIDATE_CACHE_CONTROL
        )
        return StaticMatch(found, media_type_for(found), cache_control)


__all__ = [
    "DEFAULT_MEDIA_TYPE",
    "IMMUTABLE_CACHE_CONTROL",
    "REVALIDATE_CACHE_CONTROL",
    "STATIC_METHODS",
    "RuntimeRouter",
    "StaticMatch",
    "confined_file",
    "decode_path",
    "media_type_for",
    "prerendered_documents",
]
