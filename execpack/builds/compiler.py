"""Compiler runner for producing the executable.

This module handles:
- Resolving target platform ids
- Checking the compiler is installed and recent enough
- Composing the compile command (one-file bundle with embedded data)
- Executing the compiler with output captured to a log file

The compiler is an external collaborator: only its exit status and the
size of the produced file are observed.
"""

from __future__ import annotations

import logging
import platform
import re
import shlex
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from execpack.errors import CompileError, ConfigurationError

logger = logging.getLogger(__name__)

# Oldest compiler release producing reproducible one-file bundles
MINIMUM_COMPILER_VERSION = (6, 0, 0)


@dataclass(frozen=True)
class TargetPlatform:
    """Operating system, CPU architecture, and libc of a target."""

    os: str
    arch: str
    libc: str | None = None


SUPPORTED_TARGETS: dict[str, TargetPlatform] = {
    "linux-x64": TargetPlatform("linux", "x86_64", "glibc"),
    "linux-arm64": TargetPlatform("linux", "arm64", "glibc"),
    "linux-x64-musl": TargetPlatform("linux", "x86_64", "musl"),
    "linux-arm64-musl": TargetPlatform("linux", "arm64", "musl"),
    "macos-arm64": TargetPlatform("darwin", "arm64"),
    "darwin-x64": TargetPlatform("darwin", "x86_64"),
    "darwin-arm64": TargetPlatform("darwin", "arm64"),
    "windows-x64": TargetPlatform("windows", "x86_64"),
}

_ARCH_ALIASES = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "x86_64": "x86_64",
    "aarch64": "arm64",
    "arm64": "arm64",
}


@dataclass
class CompileResult:
    """Result of a compile run.

    Attributes:
        binary_path: Path to the produced executable.
        size_bytes: Size of the executable.
        exit_code: Compiler exit code.
        log_path: Path to the compile log.
        command: The command that was executed.
        started_at: Compile start time.
        finished_at: Compile finish time.
    """

    binary_path: Path
    size_bytes: int
    exit_code: int
    log_path: Path
    command: str
    started_at: datetime
    finished_at: datetime

    @property
    def size_mb(self) -> float:
        """Executable size in MiB."""
        return self.size_bytes / (1024 * 1024)


def resolve_target(target: str) -> TargetPlatform:
    """Resolve a target platform id.

    Args:
        target: Target id such as ``linux-x64``.

    Returns:
        TargetPlatform for the id.

    Raises:
        ConfigurationError: If the id is not supported.
    """
    platform_info = SUPPORTED_TARGETS.get(target)
    if platform_info is None:
        raise ConfigurationError(
            f'Invalid target "{target}". Valid targets: '
            f"{', '.join(SUPPORTED_TARGETS)}"
        )
    return platform_info


def host_platform() -> TargetPlatform:
    """Describe the platform this process runs on."""
    system = platform.system().lower()
    arch = _ARCH_ALIASES.get(platform.machine().lower(), platform.machine().lower())
    libc: str | None = None
    if system == "linux":
        libc = "glibc" if platform.libc_ver()[0] == "glibc" else "musl"
    return TargetPlatform(system, arch, libc)


def binary_filename(binary_name: str, host: TargetPlatform | None = None) -> str:
    """Return the executable file name the compiler produces on the host."""
    if host is None:
        host = host_platform()
    return f"{binary_name}.exe" if host.os == "windows" else binary_name


def _parse_version(text: str) -> tuple[int, int, int] | None:
    match = re.search(r"(\d+)\.(\d+)(?:\.(\d+))?", text)
    if match is None:
        return None
    major, minor, patch = match.groups()
    return int(major), int(minor), int(patch or 0)


def check_compiler(
    compiler: str,
    minimum: tuple[int, int, int] = MINIMUM_COMPILER_VERSION,
    timeout: int = 60,
) -> str:
    """Check the compiler is installed and at least the minimum version.

    Args:
        compiler: Compiler executable.
        minimum: Minimum (major, minor, patch) version.
        timeout: Command timeout in seconds.

    Returns:
        The reported version string.

    Raises:
        CompileError: If the compiler is missing, unparsable, or too old.
    """
    try:
        result = subprocess.run(
            [compiler, "--version"],
            capture_output=True,
            text=True,
            timeout=timeout,
            check=True,
        )
    except (OSError, subprocess.SubprocessError) as e:
        raise CompileError(
            f"{compiler} is not installed. Please install it and try again.",
            code="compiler_not_found",
        ) from e

    reported = result.stdout.strip()
    version = _parse_version(reported)
    if version is None:
        raise CompileError(
            f"Invalid {compiler} version format: {reported}",
            code="compiler_version",
        )
    if version < minimum:
        raise CompileError(
            f"{compiler} version {reported} is too old. Please upgrade to "
            f"{'.'.join(str(part) for part in minimum)} or later.",
            code="compiler_version",
        )
    return reported


def compose_compile_command(
    compiler: str,
    entry_script: Path,
    out_dir: Path,
    binary_name: str,
    work_dir: Path,
    data: Sequence[str] = (),
    target: str | None = None,
    hide_console: bool = False,
    host: TargetPlatform | None = None,
) -> list[str]:
    """Compose the compile command.

    Args:
        compiler: Compiler executable.
        entry_script: Entry script to compile.
        out_dir: Directory for the executable.
        binary_name: Executable name without platform suffix.
        work_dir: Directory for intermediate compiler files.
        data: ``SRC<sep>DEST`` pairs to embed.
        target: Optional target platform id.
        hide_console: Hide the console window (Windows only).
        host: Host platform (detected when omitted).

    Returns:
        Command as list of strings suitable for subprocess.

    Raises:
        ConfigurationError: If the target id is not supported.
        CompileError: If the target cannot be built on this host.
    """
    if host is None:
        host = host_platform()

    cmd = [
        compiler,
        "--onefile",
        "--noconfirm",
        "--clean",
        "--name",
        binary_name,
        "--distpath",
        str(out_dir),
        "--workpath",
        str(work_dir / "build"),
        "--specpath",
        str(work_dir),
    ]

    for pair in data:
        cmd.extend(["--add-data", pair])

    if target is not None:
        wanted = resolve_target(target)
        if wanted.os != host.os or (wanted.os != "darwin" and wanted.arch != host.arch):
            raise CompileError(
                f"Cannot build target {target} on {host.os}-{host.arch}: "
                "the compiler only produces executables for the host platform",
                code="unsupported_target",
            )
        if wanted.libc is not None and wanted.libc != host.libc:
            raise CompileError(
                f"Cannot build target {target} on a {host.libc} host",
                code="unsupported_target",
            )
        if wanted.os == "darwin":
            cmd.extend(["--target-arch", wanted.arch])

    if hide_console and host.os == "windows":
        cmd.append("--noconsole")

    cmd.append(str(entry_script))
    return cmd


def compile_application(
    compiler: str,
    entry_script: Path,
    out_dir: Path,
    binary_name: str,
    work_dir: Path,
    data: Sequence[str] = (),
    target: str | None = None,
    hide_console: bool = False,
    timeout: int | None = None,
) -> CompileResult:
    """Compile the entry script into a single executable.

    Args:
        compiler: Compiler executable.
        entry_script: Entry script to compile.
        out_dir: Directory for the executable.
        binary_name: Executable name without platform suffix.
        work_dir: Directory for intermediate files and the compile log.
        data: ``SRC<sep>DEST`` pairs to embed.
        target: Optional target platform id.
        hide_console: Hide the console window (Windows only).
        timeout: Compile timeout in seconds (None = no timeout).

    Returns:
        CompileResult with the executable path and size.

    Raises:
        CompileError: If compilation fails, times out, or produces no file.
    """
    host = host_platform()
    cmd = compose_compile_command(
        compiler=compiler,
        entry_script=entry_script,
        out_dir=out_dir,
        binary_name=binary_name,
        work_dir=work_dir,
        data=data,
        target=target,
        hide_console=hide_console,
        host=host,
    )

    work_dir.mkdir(parents=True, exist_ok=True)
    out_dir.mkdir(parents=True, exist_ok=True)
    log_path = work_dir / "compile.log"

    cmd_str = shlex.join(cmd)
    logger.info("Executing compile: %s", cmd_str)

    started_at = datetime.now(timezone.utc)

    try:
        with log_path.open("w") as log_file:
            log_file.write(f"# Command: {cmd_str}\n")
            log_file.write(f"# Started: {started_at.isoformat()}\n")
            log_file.write("# " + "=" * 70 + "\n\n")
            log_file.flush()

            result = subprocess.run(
                cmd,
                stdout=log_file,
                stderr=subprocess.STDOUT,
                timeout=timeout,
                check=False,
            )
    except subprocess.TimeoutExpired as e:
        with log_path.open("a") as log_file:
            log_file.write(f"\n# TIMEOUT after {timeout} seconds\n")
        raise CompileError(
            f"Compile timed out after {timeout} seconds. See log: {log_path}",
            exit_code=-1,
            code="compile_timeout",
        ) from e
    except OSError as e:
        raise CompileError(
            f"Failed to execute compiler: {e}",
            code="execution_error",
        ) from e

    finished_at = datetime.now(timezone.utc)

    with log_path.open("a") as log_file:
        log_file.write(f"\n# Finished: {finished_at.isoformat()}\n")
        log_file.write(f"# Exit code: {result.returncode}\n")

    if result.returncode != 0:
        raise CompileError(
            f"Compile failed with exit code {result.returncode}. See log: {log_path}",
            exit_code=result.returncode,
        )

    binary_path = out_dir / binary_filename(binary_name, host)
    if not binary_path.is_file():
        raise CompileError(
            f"Compiler exited successfully but produced no executable at {binary_path}",
            exit_code=result.returncode,
            code="missing_output",
        )

    return CompileResult(
        binary_path=binary_path,
        size_bytes=binary_path.stat().st_size,
        exit_code=result.returncode,
        log_path=log_path,
        command=cmd_str,
        started_at=started_at,
        finished_at=finished_at,
    )


__all__ = [
    "MINIMUM_COMPILER_VERSION",
    "SUPPORTED_TARGETS",
    "CompileResult",
    "TargetPlatform",
    "binary_filename",
    "check_compiler",
    "compile_application",
    "compose_compile_command",
    "host_platform",
    "resolve_target",
]
