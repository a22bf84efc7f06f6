"""Thin CLI wrapper for execpack.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
from dataclasses import asdict
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from execpack import __version__
from execpack.config import (
    Settings,
    configure_logging,
    get_settings,
    print_settings_json,
)
from execpack.errors import ExecPackError

app = typer.Typer(
    name="execpack",
    help="execpack - package a compiled web application into a single executable",
    no_args_is_help=True,
)
console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"execpack version {__version__}")
        raise typer.Exit()


def _load_settings(**overrides: object) -> Settings:
    try:
        settings = get_settings(**overrides)
    except ExecPackError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None
    configure_logging(settings.log_level)
    return settings


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """execpack - package a compiled web application into a single executable."""


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = _load_settings()
    if json_output:
        typer.echo(print_settings_json(settings))
        return

    target_display = settings.target or "(host platform)"
    allowed_display = (
        ", ".join(settings.allowed_extensions)
        if settings.allowed_extensions is not None
        else "(any)"
    )
    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Build:[/bold]")
    console.print(f"  Framework output:    {settings.framework_output}")
    console.print(f"  Staging directory:   {settings.staging_dir}")
    console.print(f"  Output directory:    {settings.out_dir}")
    console.print(f"  Binary name:         {settings.binary_name}")
    console.print(f"  Target:              {target_display}")
    console.print(f"  Embed static:        {settings.embed_static}")
    console.print(f"  Compiler:            {settings.compiler}")
    console.print(f"  Compile timeout:     {settings.compile_timeout}")
    console.print()
    console.print("[bold]Asset validation:[/bold]")
    console.print(f"  Skip validation:     {settings.skip_validation}")
    console.print(f"  Max asset size:      {settings.max_asset_size}")
    console.print(f"  Max total size:      {settings.max_total_size}")
    console.print(f"  Warn threshold:      {settings.warn_threshold}")
    console.print(f"  Blocked extensions:  {', '.join(settings.blocked_extensions)}")
    console.print(f"  Warn extensions:     {', '.join(settings.warn_extensions)}")
    console.print(f"  Allowed extensions:  {allowed_display}")
    console.print()
    console.print("[bold]Runtime:[/bold]")
    console.print(f"  Listen address:      {settings.host}:{settings.port}")
    console.print(f"  Grace period:        {settings.grace_period}")
    console.print(f"  Open browser:        {settings.open_browser}")
    console.print(f"  Log level:           {settings.log_level}")


@app.command()
def validate(
    source: Annotated[
        Path | None,
        typer.Argument(help="Framework output directory (client/, prerendered/)"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Validate the static assets of a framework output directory."""
    from execpack.assets.discovery import discover_assets
    from execpack.assets.validation import generate_validation_report, validate_assets

    settings = _load_settings(framework_output=source)
    root = settings.framework_output
    if not root.is_dir():
        console.print(f"[red]Path not found: {root}[/red]")
        raise typer.Exit(code=1)

    assets = discover_assets(root / "client", root / "prerendered")
    result = validate_assets(assets, settings.validation_options())

    if json_output:
        data = asdict(result)
        data.pop("accepted_assets")
        data["is_valid"] = result.is_valid
        typer.echo(json.dumps(data, indent=2))
    else:
        for line in generate_validation_report(result):
            console.print(line, markup=False, highlight=False)

    if not result.is_valid:
        raise typer.Exit(code=1)


@app.command()
def build(
    source: Annotated[
        Path | None,
        typer.Argument(help="Framework output directory (client/, prerendered/, server/)"),
    ] = None,
    out: Annotated[
        Path | None,
        typer.Option("--out", "-o", help="Output directory"),
    ] = None,
    name: Annotated[
        str | None,
        typer.Option("--name", "-n", help="Executable name"),
    ] = None,
    target: Annotated[
        str | None,
        typer.Option("--target", "-t", help="Target platform id"),
    ] = None,
    external: Annotated[
        bool,
        typer.Option(
            "--external",
            help="Copy static assets next to the executable instead of embedding",
        ),
    ] = False,
    skip_validation: Annotated[
        bool,
        typer.Option("--skip-validation", help="Skip asset validation"),
    ] = False,
) -> None:
    """Package a framework output directory into a single executable."""
    from execpack.builds.framework import PrebuiltFrameworkBuilder
    from execpack.builds.service import package_application

    settings = _load_settings(
        framework_output=source,
        out_dir=out,
        binary_name=name,
        target=target,
        embed_static=False if external else None,
        skip_validation=True if skip_validation else None,
    )

    try:
        builder = PrebuiltFrameworkBuilder(settings.framework_output)
        result = package_application(builder, settings)
    except ExecPackError as e:
        console.print(f"[red]Build failed: {e}[/red]")
        raise typer.Exit(code=1) from None

    console.print(f"[green]Built {result.binary_path}[/green]")
    console.print(f"  Size:    {result.binary.size_bytes / (1024 * 1024):.1f}MB")
    console.print(f"  SHA-256: {result.binary.sha256}")
    console.print(f"  Assets:  {result.asset_count}")
    console.print(f"  Info:    {result.build_info_path}")


@app.command()
def serve(
    staging: Annotated[
        Path | None,
        typer.Argument(help="Build staging directory"),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", "-p", help="Port to listen on"),
    ] = None,
) -> None:
    """Serve a build staging directory without compiling it."""
    from execpack.runtime.server import serve_staging

    settings = _load_settings(staging_dir=staging, port=port)
    try:
        exit_code = serve_staging(settings.staging_dir, settings)
    except ExecPackError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None
    raise typer.Exit(code=exit_code)


if __name__ == "__main__":
    app()
