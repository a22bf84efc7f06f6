"""Asset validation before embedding.

This module handles:
- Per-asset existence, type, size, extension, and filename checks
- Aggregate size and count checks
- Per-type statistics and human-readable validation reports

Per-asset filesystem checks run on a thread pool; results are merged by
input index so error and warning order is stable for identical input.
"""

from __future__ import annotations

import logging
import os
import posixpath
import re
import stat
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field, field_validator

from execpack.types import Asset

logger = logging.getLogger(__name__)

MIB = 1024 * 1024

DEFAULT_MAX_ASSET_SIZE = 50 * MIB
DEFAULT_MAX_TOTAL_SIZE = 500 * MIB
DEFAULT_WARN_THRESHOLD = 10 * MIB
DEFAULT_BLOCKED_EXTENSIONS = (".exe", ".dll", ".so", ".dylib", ".app", ".deb", ".rpm")
DEFAULT_WARN_EXTENSIONS = (".zip", ".tar", ".gz", ".rar", ".7z", ".iso", ".dmg")

# Fraction of max_total_size above which a non-blocking warning is issued
TOTAL_SIZE_WARN_RATIO = 0.8
MAX_ASSET_COUNT = 1000
MAX_FILENAME_LENGTH = 255

SUSPICIOUS_PATTERNS = [
    re.compile(r"\.(tmp|temp|cache|log)$", re.IGNORECASE),
    re.compile(r"^\.DS_Store$", re.IGNORECASE),
    re.compile(r"^thumbs\.db$", re.IGNORECASE),
    re.compile(r"^desktop\.ini$", re.IGNORECASE),
    re.compile(r"\.(bak|backup|old)$", re.IGNORECASE),
]
PROBLEMATIC_CHARS = re.compile(r'[<>:"|?*\x00-\x1f]')


def _normalize_extension(ext: str) -> str:
    ext = ext.strip().lower()
    if ext and not ext.startswith("."):
        ext = f".{ext}"
    return ext


class ValidationOptions(BaseModel):
    """Thresholds and extension policies for asset validation.

    Attributes:
        max_asset_size: Maximum individual asset size in bytes.
        max_total_size: Maximum total size of accepted assets in bytes.
        warn_threshold: Warn about assets larger than this.
        blocked_extensions: Extensions that produce errors.
        warn_extensions: Extensions that produce warnings.
        allowed_extensions: If set, only these extensions are allowed.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    max_asset_size: int = Field(default=DEFAULT_MAX_ASSET_SIZE, ge=0)
    max_total_size: int = Field(default=DEFAULT_MAX_TOTAL_SIZE, ge=0)
    warn_threshold: int = Field(default=DEFAULT_WARN_THRESHOLD, ge=0)
    blocked_extensions: list[str] = Field(
        default_factory=lambda: list(DEFAULT_BLOCKED_EXTENSIONS)
    )
    warn_extensions: list[str] = Field(
        default_factory=lambda: list(DEFAULT_WARN_EXTENSIONS)
    )
    allowed_extensions: list[str] | None = Field(default=None)

    @field_validator("blocked_extensions", "warn_extensions")
    @classmethod
    def normalize_extensions(cls, v: list[str]) -> list[str]:
        """Lowercase extensions and ensure a leading dot."""
        return [_normalize_extension(ext) for ext in v]

    @field_validator("allowed_extensions")
    @classmethod
    def normalize_allowed(cls, v: list[str] | None) -> list[str] | None:
        """Lowercase allowed extensions and ensure a leading dot."""
        if v is None:
            return v
        return [_normalize_extension(ext) for ext in v]


@dataclass
class TypeStats:
    """Count and total size of accepted assets of one type."""

    count: int = 0
    size: int = 0


@dataclass(frozen=True)
class LargeAsset:
    """An accepted asset above the warning threshold."""

    path: str
    size: int
    type: str


@dataclass(frozen=True)
class ProblematicAsset:
    """A rejected asset with the reasons it was rejected."""

    path: str
    reason: str


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one build's assets.

    ``total_size`` and ``asset_count`` cover accepted assets only; rejected
    assets are listed in ``problematic_assets`` and their sizes summed in
    ``rejected_size``.
    """

    errors: list[str]
    warnings: list[str]
    total_size: int
    asset_count: int
    per_type_stats: dict[str, TypeStats]
    large_assets: list[LargeAsset]
    problematic_assets: list[ProblematicAsset]
    accepted_assets: list[Asset] = field(default_factory=list)
    rejected_size: int = 0

    @property
    def is_valid(self) -> bool:
        """True when no error was produced at any stage."""
        return not self.errors


@dataclass
class _AssetCheck:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    size: int = 0
    type: str = "unknown"
    excluded: bool = False


def format_bytes(num_bytes: float) -> str:
    """Format a byte count as a human-readable string.

    Args:
        num_bytes: Size in bytes.

    Returns:
        String such as ``1.5 MB``.
    """
    units = ["B", "KB", "MB", "GB"]
    size = float(num_bytes)
    unit_index = 0
    while size >= 1024 and unit_index < len(units) - 1:
        size /= 1024
        unit_index += 1
    return f"{size:.1f} {units[unit_index]}"


def _check_file_name(asset: Asset, options: ValidationOptions, check: _AssetCheck) -> None:
    ext = posixpath.splitext(asset.file_path.replace("\\", "/"))[1].lower()
    file_name = os.path.basename(asset.file_path)
    check.type = ext[1:] or "unknown"

    if ext in options.blocked_extensions:
        check.errors.append(f"Blocked file type: {asset.route_path} ({ext})")

    if ext in options.warn_extensions:
        check.warnings.append(
            f"Potentially problematic file type: {asset.route_path} ({ext})"
        )

    if options.allowed_extensions is not None and ext not in options.allowed_extensions:
        check.errors.append(f"File extension not allowed: {asset.route_path} ({ext})")

    if any(pattern.search(file_name) for pattern in SUSPICIOUS_PATTERNS):
        check.warnings.append(
            f"Suspicious file detected: {asset.route_path} "
            "(likely temporary/system file)"
        )

    if len(file_name) > MAX_FILENAME_LENGTH:
        check.errors.append(
            f"File name too long: {asset.route_path} ({len(file_name)} characters)"
        )

    if PROBLEMATIC_CHARS.search(file_name):
        check.warnings.append(
            f"File name contains special characters: {asset.route_path}"
        )


def check_asset(asset: Asset, options: ValidationOptions) -> _AssetCheck:
    """Run every per-asset check for one asset.

    Missing, unreadable, and non-regular files are terminal: the remaining
    checks are skipped. All other checks run regardless of earlier
    findings.

    Args:
        asset: Asset to check.
        options: Validation options.

    Returns:
        Errors, warnings, size, and type of the asset.
    """
    check = _AssetCheck()

    if not os.access(asset.file_path, os.F_OK | os.R_OK):
        check.errors.append(f"Asset file not found: {asset.file_path}")
        check.type = "missing"
        check.excluded = True
        return check

    try:
        st = os.stat(asset.file_path)
    except OSError:
        check.errors.append(f"Cannot read asset file: {asset.file_path}")
        check.type = "unreadable"
        check.excluded = True
        return check

    if not stat.S_ISREG(st.st_mode):
        check.errors.append(f"Asset path is not a file: {asset.file_path}")
        check.type = "notfile"
        check.excluded = True
        return check

    check.size = st.st_size

    if check.size > options.max_asset_size:
        check.errors.append(
            f"Asset too large: {asset.route_path} ({format_bytes(check.size)}, "
            f"max: {format_bytes(options.max_asset_size)})"
        )
    elif check.size > options.warn_threshold:
        check.warnings.append(
            f"Large asset detected: {asset.route_path} ({format_bytes(check.size)})"
        )

    if check.size == 0:
        check.warnings.append(f"Empty file detected: {asset.route_path}")

    _check_file_name(asset, options, check)
    return check


def validate_assets(
    assets: Sequence[Asset],
    options: ValidationOptions | None = None,
    max_workers: int | None = None,
) -> ValidationResult:
    """Validate assets against size, type, and naming policies.

    Every error is collected; validation never stops at the first one.
    Assets with any error are rejected and excluded from the totals.

    Args:
        assets: Assets in discovery order.
        options: Validation options (defaults apply when omitted).
        max_workers: Thread pool size for filesystem checks.

    Returns:
        ValidationResult for the build.
    """
    if options is None:
        options = ValidationOptions()

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        checks = list(executor.map(lambda a: check_asset(a, options), assets))

    errors: list[str] = []
    warnings: list[str] = []
    per_type: dict[str, TypeStats] = {}
    large_assets: list[LargeAsset] = []
    problematic: list[ProblematicAsset] = []
    accepted: list[Asset] = []
    total_size = 0
    rejected_size = 0

    for asset, check in zip(assets, checks):
        errors.extend(check.errors)
        warnings.extend(check.warnings)

        if check.errors:
            problematic.append(
                ProblematicAsset(path=asset.route_path, reason=", ".join(check.errors))
            )
            rejected_size += check.size
            continue

        accepted.append(asset)
        total_size += check.size

        if check.size > options.warn_threshold:
            large_assets.append(
                LargeAsset(path=asset.route_path, size=check.size, type=check.type)
            )

        stats = per_type.setdefault(check.type, TypeStats())
        stats.count += 1
        stats.size += check.size

    if total_size > options.max_total_size:
        errors.append(
            f"Total asset size exceeds limit: {format_bytes(total_size)} "
            f"(max: {format_bytes(options.max_total_size)})"
        )

    if total_size > options.max_total_size * TOTAL_SIZE_WARN_RATIO:
        warnings.append(
            f"Total asset size is approaching the limit: {format_bytes(total_size)} "
            f"(limit: {format_bytes(options.max_total_size)})"
        )

    if len(accepted) > MAX_ASSET_COUNT:
        warnings.append(
            f"Large number of assets detected: {len(accepted)} assets may "
            "increase build time"
        )

    logger.debug(
        "Validated %d assets: %d accepted, %d errors, %d warnings",
        len(assets),
        len(accepted),
        len(errors),
        len(warnings),
    )

    return ValidationResult(
        errors=errors,
        warnings=warnings,
        total_size=total_size,
        asset_count=len(accepted),
        per_type_stats=per_type,
        large_assets=large_assets,
        problematic_assets=problematic,
        accepted_assets=accepted,
        rejected_size=rejected_size,
    )


def generate_validation_report(result: ValidationResult) -> list[str]:
    """Render a human-readable validation report.

    Args:
        result: Validation result.

    Returns:
        Report lines.
    """
    report = [
        "Asset Validation Summary:",
        f"   Status: {'Valid' if result.is_valid else 'Invalid'}",
        f"   Total assets: {result.asset_count}",
        f"   Total size: {format_bytes(result.total_size)}",
    ]
    if result.rejected_size:
        report.append(f"   Rejected size: {format_bytes(result.rejected_size)}")

    if result.errors:
        report.append(f"Errors ({len(result.errors)}):")
        report.extend(f"   - {error}" for error in result.errors)

    if result.warnings:
        report.append(f"Warnings ({len(result.warnings)}):")
        report.extend(f"   - {warning}" for warning in result.warnings)

    if result.large_assets:
        report.append(f"Large Assets ({len(result.large_assets)}):")
        largest = sorted(result.large_assets, key=lambda a: a.size, reverse=True)
        for asset in largest[:10]:
            report.append(f"   - {asset.path}: {format_bytes(asset.size)} ({asset.type})")
        if len(largest) > 10:
            report.append(f"   ... and {len(largest) - 10} more")

    if result.per_type_stats:
        report.append("Assets by Type:")
        by_size = sorted(
            result.per_type_stats.items(), key=lambda item: item[1].size, reverse=True
        )
        for kind, stats in by_size:
            report.append(
                f"   - {kind}: {stats.count} files, {format_bytes(stats.size)}"
            )

    if result.large_assets or result.warnings:
        report.append("Suggestions:")
        if result.large_assets:
            report.append("   - Consider compressing large assets before embedding")
            report.append("   - Use external asset serving for very large files")
        if result.problematic_assets:
            report.append("   - Review and remove problematic assets")
        if result.total_size > 100 * MIB:
            report.append(
                "   - Consider disabling static embedding for development builds"
            )

    return report


__all__ = [
    "DEFAULT_BLOCKED_EXTENSIONS",
    "DEFAULT_MAX_ASSET_SIZE",
    "DEFAULT_MAX_TOTAL_SIZE",
    "DEFAULT_WARN_EXTENSIONS",
    "DEFAULT_WARN_THRESHOLD",
    "LargeAsset",
    "ProblematicAsset",
    "TypeStats",
    "ValidationOptions",
    "ValidationResult",
    "check_asset",
    "format_bytes",
    "generate_validation_report",
    "validate_assets",
]
