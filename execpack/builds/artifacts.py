"""Build artifact metadata.

This module handles:
- Computing checksums of produced files
- Describing the produced executable
- Generating and writing build-info metadata for downstream consumers
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from execpack import __version__
from execpack.types import ArtifactInfo

logger = logging.getLogger(__name__)

# Default chunk size for hashing
HASH_CHUNK_SIZE = 64 * 1024  # 64KB

BUILD_INFO_VERSION = "1.0"


def compute_file_hash(
    file_path: Path,
    chunk_size: int = HASH_CHUNK_SIZE,
) -> str:
    """Compute SHA-256 hash of a file.

    Args:
        file_path: Path to the file.
        chunk_size: Size of chunks for streaming hash.

    Returns:
        SHA-256 hex digest.
    """
    sha256 = hashlib.sha256()
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            sha256.update(chunk)
    return sha256.hexdigest()


def describe_artifact(path: Path, root: Path | None = None) -> ArtifactInfo:
    """Describe a produced file.

    Args:
        path: File to describe.
        root: Root for the relative path (defaults to the file's directory).

    Returns:
        ArtifactInfo with size and checksum.
    """
    if root is None:
        root = path.parent
    try:
        relative_path = path.relative_to(root).as_posix()
    except ValueError:
        relative_path = path.name

    return ArtifactInfo(
        filename=path.name,
        relative_path=relative_path,
        size_bytes=path.stat().st_size,
        sha256=compute_file_hash(path),
    )


def generate_build_info(
    binary: ArtifactInfo,
    asset_count: int,
    embed_static: bool,
    target: str | None = None,
    extra_metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Generate build-info metadata for a finished build.

    Args:
        binary: The produced executable.
        asset_count: Number of static assets processed.
        embed_static: Whether assets are embedded in the executable.
        target: Target platform id, if one was requested.
        extra_metadata: Optional additional metadata.

    Returns:
        Dictionary suitable for JSON serialization.
    """
    info: dict[str, Any] = {
        "version": BUILD_INFO_VERSION,
        "generator": f"execpack {__version__}",
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "binary": asdict(binary),
        "asset_count": asset_count,
        "embed_static": embed_static,
        "target": target,
    }
    if extra_metadata:
        info["metadata"] = extra_metadata
    return info


def write_build_info(info: dict[str, Any], output_path: Path) -> Path:
    """Write build-info metadata to a JSON file.

    Args:
        info: Build-info dictionary.
        output_path: Output file path.

    Returns:
        Path to written file.
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with output_path.open("w", encoding="utf-8") as f:
        json.dump(info, f, indent=2, sort_keys=True)

    logger.info("Wrote build info to %s", output_path)
    return output_path


__all__ = [
    "HASH_CHUNK_SIZE",
    "compute_file_hash",
    "describe_artifact",
    "generate_build_info",
    "write_build_info",
]
