"""Static asset handling.

This module handles:
- Asset discovery under the client and prerendered roots
- Asset validation against size, type, and naming policies
- Asset manifest generation for embedding
"""

from execpack.assets.discovery import discover_assets, symbolic_name
from execpack.assets.manifest import AssetManifest, generate_asset_manifest
from execpack.assets.validation import (
    ValidationOptions,
    ValidationResult,
    validate_assets,
)

__all__ = [
    "AssetManifest",
    "ValidationOptions",
    "ValidationResult",
    "discover_assets",
    "generate_asset_manifest",
    "symbolic_name",
    "validate_assets",
]
