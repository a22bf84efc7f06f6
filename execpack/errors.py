"""Error definitions for execpack.

Every error carries a stable ``code`` for programmatic handling. Build-time
errors propagate and abort the build; request-time errors are converted
into responses by the runtime application.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from execpack.assets.validation import ValidationResult

# Error code constants
CONFIGURATION_ERROR = "configuration_error"
DISCOVERY_ERROR = "discovery_error"
ASSET_VALIDATION_ERROR = "asset_validation_failed"
MANIFEST_ERROR = "manifest_error"
COMPILE_ERROR = "compile_error"
PIPELINE_STEP_FAILED = "pipeline_step_failed"
RUNTIME_REQUEST_ERROR = "runtime_request_error"
SHUTDOWN_TIMEOUT = "shutdown_timeout"


class ExecPackError(Exception):
    """Base error for execpack operations."""

    def __init__(self, message: str, code: str = "execpack_error") -> None:
        super().__init__(message)
        self.code = code


class ConfigurationError(ExecPackError, ValueError):
    """Raised for invalid option values, e.g. an unsupported target id."""

    def __init__(self, message: str, code: str = CONFIGURATION_ERROR) -> None:
        super().__init__(message, code=code)


class DiscoveryError(ExecPackError):
    """Raised when an asset directory cannot be read.

    Discovery recovers from this error by treating the directory as empty.
    """

    def __init__(self, directory: str, reason: str) -> None:
        super().__init__(
            f"Cannot read asset directory {directory}: {reason}",
            code=DISCOVERY_ERROR,
        )
        self.directory = directory


class AssetValidationError(ExecPackError):
    """Raised when asset validation produced one or more errors.

    Carries the complete validation result so every error can be reported
    together.
    """

    def __init__(self, result: ValidationResult) -> None:
        super().__init__(
            f"Asset validation failed with {len(result.errors)} error(s). "
            "Check the validation report above for details.",
            code=ASSET_VALIDATION_ERROR,
        )
        self.result = result


class ManifestError(ExecPackError):
    """Raised when an asset manifest cannot be generated."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code=MANIFEST_ERROR)


class CompileError(ExecPackError):
    """Raised when the compiler cannot run or exits unsuccessfully."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        code: str = COMPILE_ERROR,
    ) -> None:
        super().__init__(message, code=code)
        self.exit_code = exit_code


class PipelineStepFailure(ExecPackError):
    """Raised when a build step failed and the pipeline was aborted."""

    def __init__(self, step: str, elapsed: float, cause: BaseException) -> None:
        super().__init__(
            f"Build step '{step}' failed after {elapsed:.2f}s: {cause}",
            code=PIPELINE_STEP_FAILED,
        )
        self.step = step
        self.elapsed = elapsed
        self.cause = cause


class RuntimeRequestError(ExecPackError):
    """Raised when the dynamic handler fails while serving a request."""

    def __init__(self, method: str, path: str) -> None:
        super().__init__(
            f"Unhandled error while serving {method} {path}",
            code=RUNTIME_REQUEST_ERROR,
        )
        self.method = method
        self.path = path


class ShutdownTimeout(ExecPackError):
    """Raised when in-flight requests outlive the shutdown grace period."""

    def __init__(self, grace_period: float, active_requests: int) -> None:
        super().__init__(
            f"Grace period of {grace_period:.1f}s elapsed with "
            f"{active_requests} request(s) still in flight",
            code=SHUTDOWN_TIMEOUT,
        )
        self.grace_period = grace_period
        self.active_requests = active_requests


__all__ = [
    "ASSET_VALIDATION_ERROR",
    "COMPILE_ERROR",
    "CONFIGURATION_ERROR",
    "DISCOVERY_ERROR",
    "MANIFEST_ERROR",
    "PIPELINE_STEP_FAILED",
    "RUNTIME_REQUEST_ERROR",
    "SHUTDOWN_TIMEOUT",
    "AssetValidationError",
    "CompileError",
    "ConfigurationError",
    "DiscoveryError",
    "ExecPackError",
    "ManifestError",
    "PipelineStepFailure",
    "RuntimeRequestError",
    "ShutdownTimeout",
]
