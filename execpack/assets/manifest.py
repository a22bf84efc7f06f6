"""Asset manifest generation.

This module handles:
- Building the ordered route -> symbolic name mapping for accepted assets
- Enumerating every referenced payload so the bundler retains each one
- Emitting the manifest through pluggable, deterministic emitters

The manifest is pure data; emitters translate it into a concrete artifact
(an importable Python module for the runtime entry script, or JSON).
"""

from __future__ import annotations

import json
import logging
import os
import posixpath
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from execpack.errors import ManifestError
from execpack.types import Asset

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ManifestEntry:
    """Association of a route with the payload serving it."""

    route_path: str
    symbolic_name: str


@dataclass(frozen=True)
class Payload:
    """An embedded payload: its name, bundle location, and source file."""

    symbolic_name: str
    locator: str
    source: str


@dataclass(frozen=True)
class AssetManifest:
    """Ordered asset manifest for one build."""

    entries: tuple[ManifestEntry, ...] = ()
    payloads: tuple[Payload, ...] = ()

    @property
    def asset_map(self) -> dict[str, str]:
        """Route -> symbolic name, in discovery order."""
        return {e.route_path: e.symbolic_name for e in self.entries}

    @property
    def payload_map(self) -> dict[str, str]:
        """Symbolic name -> bundle locator, in discovery order."""
        return {p.symbolic_name: p.locator for p in self.payloads}


def generate_asset_manifest(assets: Sequence[Asset]) -> AssetManifest:
    """Generate the manifest for accepted assets.

    Args:
        assets: Assets that passed validation, in discovery order.

    Returns:
        AssetManifest with one entry and one payload per asset.

    Raises:
        ManifestError: If two routes share a route path or symbolic name.
    """
    entries: list[ManifestEntry] = []
    payloads: list[Payload] = []
    routes: set[str] = set()
    names: dict[str, str] = {}

    for asset in assets:
        if asset.route_path in routes:
            raise ManifestError(f"Duplicate route in asset manifest: {asset.route_path}")
        owner = names.get(asset.symbolic_name)
        if owner is not None:
            raise ManifestError(
                f"Symbolic name {asset.symbolic_name} is shared by "
                f"{owner} and {asset.route_path}"
            )
        routes.add(asset.route_path)
        names[asset.symbolic_name] = asset.route_path

        entries.append(ManifestEntry(asset.route_path, asset.symbolic_name))
        payloads.append(Payload(asset.symbolic_name, asset.locator, asset.file_path))

    logger.debug("Generated asset manifest with %d entries", len(entries))
    return AssetManifest(entries=tuple(entries), payloads=tuple(payloads))


def _render_dict(name: str, items: dict[str, str]) -> list[str]:
    if not items:
        return [f"{name}: dict[str, str] = {{}}"]
    lines = [f"{name}: dict[str, str] = {{"]
    lines.extend(f"    {json.dumps(k)}: {json.dumps(v)}," for k, v in items.items())
    lines.append("}")
    return lines


def emit_python_module(manifest: AssetManifest) -> str:
    """Render the manifest as an importable Python module.

    The module exports ``PAYLOADS`` (every referenced payload) and
    ``ASSET_MAP`` (route -> symbolic name).
    """
    lines = [
        '"""Auto-generated asset manifest. Do not edit."""',
        "",
        *_render_dict("PAYLOADS", manifest.payload_map),
        "",
        *_render_dict("ASSET_MAP", manifest.asset_map),
        "",
        '__all__ = ["ASSET_MAP", "PAYLOADS"]',
        "",
    ]
    return "\n".join(lines)


def emit_json(manifest: AssetManifest) -> str:
    """Render the manifest as an ordered JSON document."""
    document = {
        "assets": manifest.asset_map,
        "payloads": manifest.payload_map,
    }
    return json.dumps(document, indent=2) + "\n"


Emitter = Callable[[AssetManifest], str]

EMITTERS: dict[str, Emitter] = {
    "python": emit_python_module,
    "json": emit_json,
}


def write_asset_manifest(
    manifest: AssetManifest,
    output_path: Path,
    fmt: str = "python",
) -> Path:
    """Write the manifest through a registered emitter.

    Args:
        manifest: Manifest to write.
        output_path: Destination file.
        fmt: Emitter name from EMITTERS.

    Returns:
        Path to the written file.

    Raises:
        ManifestError: If no emitter is registered for fmt.
    """
    emitter = EMITTERS.get(fmt)
    if emitter is None:
        raise ManifestError(
            f"Unknown manifest format '{fmt}'. Valid formats: {', '.join(sorted(EMITTERS))}"
        )

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(emitter(manifest), encoding="utf-8")
    logger.info("Wrote asset manifest to %s", output_path)
    return output_path


def embed_arguments(manifest: AssetManifest) -> list[str]:
    """List the ``SRC<sep>DEST`` data pairs that embed every payload.

    Args:
        manifest: Asset manifest.

    Returns:
        One pair per payload, destination being the payload's bundle
        directory.
    """
    pairs = []
    for payload in manifest.payloads:
        dest_dir = posixpath.dirname(payload.locator) or "."
        pairs.append(f"{os.path.abspath(payload.source)}{os.pathsep}{dest_dir}")
    return pairs


__all__ = [
    "EMITTERS",
    "AssetManifest",
    "ManifestEntry",
    "Payload",
    "embed_arguments",
    "emit_json",
    "emit_python_module",
    "generate_asset_manifest",
    "write_asset_manifest",
]
