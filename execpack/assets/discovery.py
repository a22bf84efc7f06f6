"""Asset discovery for client and prerendered output trees.

This module handles:
- Walking the client and prerendered roots concurrently
- Deriving route paths and deterministic symbolic names
- Summarizing discovered assets when validation is skipped

Each directory level is listed on a thread pool; results are merged in
sorted order so discovery output is reproducible across builds.
"""

from __future__ import annotations

import hashlib
import logging
import os
import posixpath
import re
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from execpack.errors import DiscoveryError
from execpack.types import Asset, AssetOrigin

logger = logging.getLogger(__name__)

# Hex characters of the path digest appended to symbolic names
PATH_HASH_LENGTH = 4

# Assets above this size are reported by analyze_assets
LARGE_ASSET_BYTES = 1024 * 1024

_NON_IDENTIFIER = re.compile(r"[^a-zA-Z0-9]")
_UNDERSCORE_RUNS = re.compile(r"_+")


def normalize_path(path: str) -> str:
    """Normalize a path to forward slashes without redundant segments."""
    return posixpath.normpath(path.replace("\\", "/"))


def symbolic_name(path: str) -> str:
    """Derive the symbolic name of an asset from its path.

    The name is the sanitized file stem, the uppercased extension and a
    short digest of the full normalized path, so two files sharing a
    basename in different directories get different names.

    Args:
        path: Asset path (typically the route path).

    Returns:
        Identifier such as ``app_JS_1f3c``.
    """
    normalized = normalize_path(path)
    stem, ext = posixpath.splitext(posixpath.basename(normalized))

    clean = _UNDERSCORE_RUNS.sub("_", _NON_IDENTIFIER.sub("_", stem)).strip("_")
    if clean[:1].isdigit():
        clean = f"asset_{clean}"
    if not clean:
        clean = "asset"

    path_hash = hashlib.md5(normalized.encode("utf-8")).hexdigest()[:PATH_HASH_LENGTH]
    ext_suffix = ext.lstrip(".").upper()

    return f"{clean}_{ext_suffix}_{path_hash}"


def _scan_directory(directory: Path) -> tuple[list[os.DirEntry[str]], list[Path]]:
    """List one directory, splitting entries into files and subdirectories.

    Raises:
        DiscoveryError: If the directory cannot be read.
    """
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as e:
        raise DiscoveryError(str(directory), e.strerror or str(e)) from e

    files: list[os.DirEntry[str]] = []
    subdirs: list[Path] = []
    for entry in entries:
        try:
            if entry.is_dir():
                subdirs.append(Path(entry.path))
            else:
                files.append(entry)
        except OSError as e:
            logger.warning("Skipping unreadable entry %s: %s", entry.path, e)
    return files, subdirs


def _safe_scan(directory: Path) -> tuple[list[os.DirEntry[str]], list[Path]]:
    try:
        return _scan_directory(directory)
    except DiscoveryError as e:
        logger.warning("%s; treating it as empty", e)
        return [], []


def _file_size(entry: os.DirEntry[str]) -> int:
    try:
        return entry.stat().st_size
    except OSError:
        # Validation reports the unreadable file
        return 0


def walk_root(
    root: Path,
    origin: AssetOrigin,
    executor: ThreadPoolExecutor,
) -> list[Asset]:
    """Discover every file under one root directory.

    Directories of the same depth are listed concurrently. A missing root
    yields no assets.

    Args:
        root: Root directory to walk.
        origin: Origin tag recorded on every asset.
        executor: Thread pool used for directory listings.

    Returns:
        Assets in breadth-first, name-sorted order.
    """
    if not root.is_dir():
        logger.debug("Asset root does not exist: %s", root)
        return []

    assets: list[Asset] = []
    frontier = [root]

    while frontier:
        next_frontier: list[Path] = []
        for files, subdirs in executor.map(_safe_scan, frontier):
            for entry in files:
                relative = Path(entry.path).relative_to(root).as_posix()
                route_path = "/" + relative
                assets.append(
                    Asset(
                        file_path=entry.path,
                        route_path=route_path,
                        symbolic_name=symbolic_name(route_path),
                        size_bytes=_file_size(entry),
                        origin=origin,
                    )
                )
            next_frontier.extend(subdirs)
        frontier = next_frontier

    logger.debug("Discovered %d files under %s", len(assets), root)
    return assets


def discover_assets(
    client_dir: Path,
    prerendered_dir: Path,
    max_workers: int | None = None,
) -> list[Asset]:
    """Discover client and prerendered assets.

    Both roots are walked concurrently. Client assets come first, followed
    by prerendered assets. A route present in both roots keeps its client
    copy so route paths stay unique.

    Args:
        client_dir: Root of the client output.
        prerendered_dir: Root of the prerendered documents.
        max_workers: Thread pool size (defaults to the executor default).

    Returns:
        Discovered assets in deterministic order.
    """
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        # Walkers block on listing results, so they must not share the listing pool.
        with ThreadPoolExecutor(max_workers=2) as roots:
            client_future = roots.submit(
                walk_root, client_dir, AssetOrigin.CLIENT, executor
            )
            prerendered_future = roots.submit(
                walk_root, prerendered_dir, AssetOrigin.PRERENDERED, executor
            )
            client_assets = client_future.result()
            prerendered_assets = prerendered_future.result()

    seen = {asset.route_path for asset in client_assets}
    assets = list(client_assets)
    for asset in prerendered_assets:
        if asset.route_path in seen:
            logger.warning(
                "Prerendered file %s shadows a client asset with the same "
                "route; keeping the client asset",
                asset.file_path,
            )
            continue
        seen.add(asset.route_path)
        assets.append(asset)

    logger.info(
        "Discovered %d assets (%d client, %d prerendered)",
        len(assets),
        len(client_assets),
        len(assets) - len(client_assets),
    )
    return assets


@dataclass
class AssetAnalysis:
    """Summary statistics over a list of assets."""

    total_assets: int = 0
    total_size: int = 0
    large_assets: list[tuple[str, int]] = field(default_factory=list)
    assets_by_type: dict[str, tuple[int, int]] = field(default_factory=dict)


def analyze_assets(assets: Iterable[Asset]) -> AssetAnalysis:
    """Summarize assets by size and extension without touching the disk.

    Args:
        assets: Discovered assets.

    Returns:
        AssetAnalysis with counts, sizes, and >1MiB assets.
    """
    analysis = AssetAnalysis()
    for asset in assets:
        analysis.total_assets += 1
        analysis.total_size += asset.size_bytes

        if asset.size_bytes > LARGE_ASSET_BYTES:
            analysis.large_assets.append((asset.route_path, asset.size_bytes))

        ext = posixpath.splitext(asset.route_path)[1].lstrip(".").lower()
        kind = ext or "unknown"
        count, size = analysis.assets_by_type.get(kind, (0, 0))
        analysis.assets_by_type[kind] = (count + 1, size + asset.size_bytes)

    return analysis


__all__ = [
    "LARGE_ASSET_BYTES",
    "PATH_HASH_LENGTH",
    "AssetAnalysis",
    "analyze_assets",
    "discover_assets",
    "normalize_path",
    "symbolic_name",
    "walk_root",
]
