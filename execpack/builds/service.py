"""Build service module.

This module provides the high-level packaging API:
- package_application(): Main entry point - run the seven build steps
- Staging of the framework output and the runtime entry script
- Asset processing in embedded or external mode
- Build-info metadata for downstream consumers

Staging layout (under ``settings.staging_dir``)::

    client/                  framework client output
    prerendered/             prerendered documents
    server/                  server bundle with the dynamic handler
    runtime/entry.py         executable entry script
    runtime/assets_generated.py
    manifest.json            routing manifest
    runtime_config.json      options read by the executable at startup
"""

from __future__ import annotations

import json
import logging
import os
import shutil
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from execpack.assets.discovery import analyze_assets, discover_assets
from execpack.assets.manifest import (
    AssetManifest,
    embed_arguments,
    generate_asset_manifest,
    write_asset_manifest,
)
from execpack.assets.validation import (
    format_bytes,
    generate_validation_report,
    validate_assets,
)
from execpack.builds.artifacts import (
    describe_artifact,
    generate_build_info,
    write_build_info,
)
from execpack.builds.compiler import CompileResult, check_compiler, compile_application
from execpack.builds.pipeline import DEFAULT_STEPS, BuildPipeline, PipelineResult
from execpack.builds.reporter import BuildSummary, ProgressReporter
from execpack.errors import AssetValidationError, ConfigurationError, ManifestError
from execpack.types import ArtifactInfo, Asset

if TYPE_CHECKING:
    from execpack.builds.framework import FrameworkBuilder
    from execpack.config import Settings

logger = logging.getLogger(__name__)

ASSET_MODULE = "assets_generated"
ENTRY_SCRIPT = "entry.py"
ROUTING_MANIFEST = "manifest.json"
RUNTIME_CONFIG = "runtime_config.json"
BUILD_INFO = "build-info.json"

# Number of large assets listed after validation
TOP_LARGE_ASSETS = 3

ENTRY_TEMPLATE = '''\
"""Executable entry point. Generated by execpack; do not edit."""

import sys

import {asset_module}
from execpack.runtime.server import run_bundle

if __name__ == "__main__":
    sys.exit(run_bundle({asset_module}.ASSET_MAP, {asset_module}.PAYLOADS))
'''

Compiler = Callable[..., CompileResult]


def default_compiler(compiler: str, **kwargs: Any) -> CompileResult:
    """Check the compiler version, then compile."""
    version = check_compiler(compiler)
    logger.info("Using %s %s", compiler, version)
    return compile_application(compiler=compiler, **kwargs)


@dataclass
class PackageResult:
    """Result of a successful packaging run."""

    binary: ArtifactInfo
    binary_path: Path
    build_info_path: Path
    asset_count: int
    elapsed: float
    pipeline: PipelineResult


@dataclass
class _BuildState:
    routing_manifest: dict[str, Any] = field(default_factory=dict)
    asset_manifest: AssetManifest = field(default_factory=AssetManifest)
    asset_count: int = 0
    compile_result: CompileResult | None = None
    binary: ArtifactInfo | None = None
    build_info_path: Path | None = None


def _reset_directory(path: Path) -> None:
    resolved = path.resolve()
    if resolved == Path.cwd().resolve() or resolved == Path(resolved.anchor):
        raise ConfigurationError(f"Refusing to clean directory {path}")
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True)


def validate_routing_manifest(manifest: dict[str, Any]) -> dict[str, Any]:
    """Check the routing manifest returned by the framework builder.

    Raises:
        ManifestError: If a required key is missing or mistyped.
    """
    app_dir = manifest.get("app_dir")
    routes = manifest.get("prerendered_routes")
    handler = manifest.get("handler")
    if not isinstance(app_dir, str) or not app_dir:
        raise ManifestError("Routing manifest is missing 'app_dir'")
    if not isinstance(routes, list) or not all(isinstance(r, str) for r in routes):
        raise ManifestError("Routing manifest 'prerendered_routes' must be a list of paths")
    if not isinstance(handler, str) or not handler:
        raise ManifestError("Routing manifest is missing 'handler'")
    return {"app_dir": app_dir, "prerendered_routes": routes, "handler": handler}


class ApplicationPackager:
    """Runs the packaging steps for one build."""

    def __init__(
        self,
        builder: FrameworkBuilder,
        settings: Settings,
        compiler: Compiler | None = None,
    ) -> None:
        self.builder = builder
        self.settings = settings
        self.compiler = compiler or default_compiler
        self.staging = settings.staging_dir
        self.out_dir = settings.out_dir
        self.state = _BuildState()

    @property
    def runtime_dir(self) -> Path:
        return self.staging / "runtime"

    def actions(self) -> dict[str, Callable[[], str | None]]:
        return {
            "cleanup": self.cleanup,
            "framework": self.write_framework_output,
            "server": self.write_entry_script,
            "manifest": self.write_routing_manifest,
            "assets": self.process_assets,
            "compile": self.compile,
            "finalize": self.finalize,
        }

    def cleanup(self) -> None:
        _reset_directory(self.staging)
        _reset_directory(self.out_dir)

    def write_framework_output(self) -> None:
        self.builder.write_client(self.staging / "client")
        self.builder.write_prerendered(self.staging / "prerendered")
        self.builder.write_server(self.staging / "server")
        # The server output duplicates the client's application directory
        shutil.rmtree(self.staging / "server" / "_app", ignore_errors=True)

    def write_entry_script(self) -> None:
        self.runtime_dir.mkdir(parents=True, exist_ok=True)
        (self.runtime_dir / ENTRY_SCRIPT).write_text(
            ENTRY_TEMPLATE.format(asset_module=ASSET_MODULE), encoding="utf-8"
        )
        runtime_config = {"open_browser": self.settings.open_browser}
        (self.staging / RUNTIME_CONFIG).write_text(
            json.dumps(runtime_config, indent=2) + "\n", encoding="utf-8"
        )

    def write_routing_manifest(self) -> str:
        manifest = validate_routing_manifest(self.builder.generate_manifest())
        self.state.routing_manifest = manifest
        (self.staging / ROUTING_MANIFEST).write_text(
            json.dumps(manifest, indent=2) + "\n", encoding="utf-8"
        )
        return f"{len(manifest['prerendered_routes'])} prerendered routes"

    def _accepted_assets(self, assets: list[Asset]) -> list[Asset]:
        if self.settings.skip_validation:
            logger.warning("Asset validation skipped")
            analysis = analyze_assets(assets)
            logger.info(
                "Found %d assets (%s)",
                analysis.total_assets,
                format_bytes(analysis.total_size),
            )
            for path, size in analysis.large_assets[:TOP_LARGE_ASSETS]:
                logger.info("   - Large asset: %s (%s)", path, format_bytes(size))
            return assets

        result = validate_assets(assets, self.settings.validation_options())
        for line in generate_validation_report(result):
            logger.info("%s", line)
        if not result.is_valid:
            raise AssetValidationError(result)

        largest = sorted(result.large_assets, key=lambda a: a.size, reverse=True)
        for large in largest[:TOP_LARGE_ASSETS]:
            logger.info("   - Large asset: %s (%s)", large.path, format_bytes(large.size))
        return result.accepted_assets

    def process_assets(self) -> str:
        module_path = self.runtime_dir / f"{ASSET_MODULE}.py"
        client_dir = self.staging / "client"
        prerendered_dir = self.staging / "prerendered"

        if not self.settings.embed_static:
            for name, src in (("client", client_dir), ("prerendered", prerendered_dir)):
                if src.is_dir():
                    shutil.copytree(src, self.out_dir / name, dirs_exist_ok=True)
            write_asset_manifest(AssetManifest(), module_path)
            self.state.asset_count = len(discover_assets(client_dir, prerendered_dir))
            return f"{self.state.asset_count} assets copied to {self.out_dir}"

        accepted = self._accepted_assets(discover_assets(client_dir, prerendered_dir))
        self.state.asset_manifest = generate_asset_manifest(accepted)
        write_asset_manifest(self.state.asset_manifest, module_path)
        self.state.asset_count = len(accepted)
        return f"{self.state.asset_count} assets embedded"

    def _data_arguments(self) -> list[str]:
        data = embed_arguments(self.state.asset_manifest)
        data.append(f"{(self.staging / 'server').resolve()}{os.pathsep}server")
        for name in (ROUTING_MANIFEST, RUNTIME_CONFIG):
            data.append(f"{(self.staging / name).resolve()}{os.pathsep}.")
        return data

    def compile(self) -> str:
        result = self.compiler(
            compiler=self.settings.compiler,
            entry_script=self.runtime_dir / ENTRY_SCRIPT,
            out_dir=self.out_dir,
            binary_name=self.settings.binary_name,
            work_dir=self.staging / "work",
            data=self._data_arguments(),
            target=self.settings.target,
            hide_console=self.settings.windows_hide_console,
            timeout=self.settings.compile_timeout,
        )
        self.state.compile_result = result
        return f"{result.size_mb:.1f}MB"

    def finalize(self) -> None:
        if self.state.compile_result is None:
            raise RuntimeError("Nothing was compiled")
        binary = describe_artifact(self.state.compile_result.binary_path, self.out_dir)
        info = generate_build_info(
            binary,
            asset_count=self.state.asset_count,
            embed_static=self.settings.embed_static,
            target=self.settings.target,
            extra_metadata={"routing": self.state.routing_manifest},
        )
        self.state.binary = binary
        self.state.build_info_path = write_build_info(info, self.out_dir / BUILD_INFO)


def package_application(
    builder: FrameworkBuilder,
    settings: Settings,
    reporter: ProgressReporter | None = None,
    compiler: Compiler | None = None,
) -> PackageResult:
    """Package the framework output into a single executable.

    Args:
        builder: Framework builder collaborator.
        settings: Build settings.
        reporter: Progress reporter (a new one is created when omitted).
        compiler: Compile callable (defaults to checking and running the
            configured compiler).

    Returns:
        PackageResult describing the executable.

    Raises:
        PipelineStepFailure: If any step failed; later steps were not run.
    """
    if reporter is None:
        reporter = ProgressReporter(DEFAULT_STEPS)
    packager = ApplicationPackager(builder, settings, compiler=compiler)
    pipeline = BuildPipeline(DEFAULT_STEPS, reporter)

    result = pipeline.run(packager.actions())
    result.raise_for_failure()

    state = packager.state
    if (
        state.binary is None
        or state.compile_result is None
        or state.build_info_path is None
    ):
        raise RuntimeError("Build finished without an executable")

    elapsed = reporter.complete_build(
        BuildSummary(
            artifact_size_bytes=state.binary.size_bytes,
            asset_count=state.asset_count,
            embed_static=settings.embed_static,
            target=settings.target,
        )
    )

    return PackageResult(
        binary=state.binary,
        binary_path=state.compile_result.binary_path,
        build_info_path=state.build_info_path,
        asset_count=state.asset_count,
        elapsed=elapsed,
        pipeline=result,
    )


__all__ = [
    "ApplicationPackager",
    "PackageResult",
    "default_compiler",
    "package_application",
    "validate_routing_manifest",
]
