"""Shared type definitions for execpack.

This module contains dataclasses and enums shared across subpackages to
avoid circular imports.
"""

from dataclasses import dataclass
from enum import Enum


class AssetOrigin(str, Enum):
    """Root directory an asset was discovered under."""

    CLIENT = "client"
    PRERENDERED = "prerendered"


class StepState(str, Enum):
    """State of a build pipeline step."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class Asset:
    """A static file discovered for embedding.

    Attributes:
        file_path: Path of the file on disk.
        route_path: Request path the file is served under (unique per build).
        symbolic_name: Deterministic identifier of the embedded payload.
        size_bytes: File size at discovery time.
        origin: Root directory the file was found under.
    """

    file_path: str
    route_path: str
    symbolic_name: str
    size_bytes: int
    origin: AssetOrigin

    @property
    def locator(self) -> str:
        """Location of the payload inside the bundle, e.g. ``client/app.js``."""
        return f"{self.origin.value}/{self.route_path.lstrip('/')}"


@dataclass
class ArtifactInfo:
    """Information about a produced build artifact."""

    filename: str
    relative_path: str
    size_bytes: int
    sha256: str


__all__ = [
    "ArtifactInfo",
    "Asset",
    "AssetOrigin",
    "StepState",
]
