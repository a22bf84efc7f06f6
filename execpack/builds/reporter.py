"""Build progress reporting.

This module handles:
- Tracking per-step start times and durations (BuildMetrics)
- Live weighted progress, recomputed around every step
- The final build summary and per-step timing breakdown

Live progress is weighted by the static step weights. The timing breakdown
in the final summary is computed from measured durations against total
elapsed time; the two numbers are independent.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from execpack.types import StepState

if TYPE_CHECKING:
    from execpack.builds.pipeline import BuildStep

logger = logging.getLogger(__name__)

PROGRESS_BAR_WIDTH = 20


@dataclass
class StepRecord:
    """Runtime record of one step."""

    state: StepState = StepState.NOT_STARTED
    started_at: float | None = None
    duration: float | None = None
    detail: str | None = None


@dataclass
class BuildMetrics:
    """Timing of a single build run."""

    started_at: float
    steps: dict[str, StepRecord] = field(default_factory=dict)
    completed_steps: int = 0


@dataclass(frozen=True)
class StepTiming:
    """Measured duration of a step and its share of total elapsed time."""

    name: str
    description: str
    duration: float
    percentage: float


@dataclass(frozen=True)
class BuildSummary:
    """Statistics reported when a build completes."""

    artifact_size_bytes: int
    asset_count: int
    embed_static: bool
    target: str | None = None


def format_duration(seconds: float) -> str:
    """Format a duration as ``850ms``, ``4.2s``, or ``2m 3.5s``."""
    ms = int(round(seconds * 1000))
    if ms < 1000:
        return f"{ms}ms"
    if ms < 60000:
        return f"{ms / 1000:.1f}s"
    return f"{ms // 60000}m {(ms % 60000) / 1000:.1f}s"


def progress_bar(percentage: int, width: int = PROGRESS_BAR_WIDTH) -> str:
    """Render a progress bar such as ``[#####---------------] 25%``."""
    filled = int(math.floor(percentage / 100 * width + 0.5))
    return f"[{'#' * filled}{'-' * (width - filled)}] {percentage}%"


class ProgressReporter:
    """Reports weighted progress and timings of a build pipeline."""

    def __init__(
        self,
        steps: Sequence[BuildStep],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.steps = list(steps)
        self._clock = clock
        self.metrics = BuildMetrics(
            started_at=clock(),
            steps={step.name: StepRecord() for step in self.steps},
        )

    def _step(self, name: str) -> BuildStep:
        for step in self.steps:
            if step.name == name:
                return step
        raise KeyError(f"Unknown build step: {name}")

    @property
    def total_weight(self) -> int:
        return sum(step.weight for step in self.steps)

    def progress(self) -> int:
        """Percentage of total step weight completed so far, rounded half up."""
        total = self.total_weight
        if total == 0:
            return 0
        completed = sum(
            step.weight
            for step in self.steps
            if self.metrics.steps[step.name].state is StepState.COMPLETED
        )
        return int(math.floor(completed / total * 100 + 0.5))

    def state(self, name: str) -> StepState:
        return self.metrics.steps[name].state

    def start_build(self) -> None:
        self.metrics.started_at = self._clock()
        logger.info("Starting build with %d steps", len(self.steps))

    def start_step(self, name: str) -> None:
        step = self._step(name)
        record = self.metrics.steps[name]
        record.state = StepState.RUNNING
        record.started_at = self._clock()
        logger.info("%s %s...", progress_bar(self.progress()), step.description)

    def complete_step(self, name: str, detail: str | None = None) -> float:
        """Mark a running step completed.

        Returns:
            Step duration in seconds.
        """
        step = self._step(name)
        record = self.metrics.steps[name]
        if record.started_at is None:
            raise RuntimeError(f"Build step '{name}' was never started")

        record.duration = self._clock() - record.started_at
        record.detail = detail
        record.state = StepState.COMPLETED
        self.metrics.completed_steps += 1

        suffix = f" ({detail})" if detail else ""
        logger.info(
            "%s %s completed in %s%s",
            progress_bar(self.progress()),
            step.description,
            format_duration(record.duration),
            suffix,
        )
        return record.duration

    def fail_step(self, name: str, error: BaseException) -> float:
        """Mark a running step failed.

        Returns:
            Elapsed time of the step in seconds.
        """
        step = self._step(name)
        record = self.metrics.steps[name]
        started = record.started_at if record.started_at is not None else self._clock()
        record.duration = self._clock() - started
        record.state = StepState.FAILED
        logger.error(
            "%s %s FAILED after %s: %s",
            progress_bar(self.progress()),
            step.description,
            format_duration(record.duration),
            error,
        )
        return record.duration

    def elapsed(self) -> float:
        return self._clock() - self.metrics.started_at

    def step_timings(self, total: float | None = None) -> list[StepTiming]:
        """Per-step durations as a share of total elapsed build time.

        Args:
            total: Total elapsed time (measured now when omitted).

        Returns:
            Timing of every step that recorded a duration, in step order.
        """
        if total is None:
            total = self.elapsed()
        timings = []
        for step in self.steps:
            record = self.metrics.steps[step.name]
            if record.duration is None:
                continue
            percentage = record.duration / total * 100 if total > 0 else 0.0
            timings.append(
                StepTiming(step.name, step.description, record.duration, percentage)
            )
        return timings

    def complete_build(self, summary: BuildSummary) -> float:
        """Log the final statistics and timing breakdown.

        Returns:
            Total elapsed build time in seconds.
        """
        total = self.elapsed()
        logger.info("Build completed successfully!")
        logger.info("Build Statistics:")
        logger.info("   - Total build time: %s", format_duration(total))
        logger.info(
            "   - Binary size: %.1fMB", summary.artifact_size_bytes / (1024 * 1024)
        )
        logger.info("   - Assets processed: %d", summary.asset_count)
        logger.info(
            "   - Static embedding: %s",
            "Enabled" if summary.embed_static else "Disabled",
        )
        if summary.target:
            logger.info("   - Target platform: %s", summary.target)

        logger.info("Step Timings:")
        for timing in self.step_timings(total):
            logger.info(
                "   - %s: %s (%.1f%%)",
                timing.description,
                format_duration(timing.duration),
                timing.percentage,
            )

        for suggestion in suggest_optimizations(summary, total):
            logger.info("   - Suggestion: %s", suggestion)
        return total


def suggest_optimizations(summary: BuildSummary, total_seconds: float) -> list[str]:
    """Suggest improvements for large or slow builds."""
    suggestions = []
    if summary.artifact_size_bytes > 50 * 1024 * 1024:
        suggestions.append("Consider disabling static embedding for large assets")
    if summary.asset_count > 1000:
        suggestions.append("Large number of assets detected - consider asset bundling")
    if total_seconds > 60:
        suggestions.append("Long build time - consider a faster build machine or cache")
    return suggestions


__all__ = [
    "BuildMetrics",
    "BuildSummary",
    "ProgressReporter",
    "StepRecord",
    "StepTiming",
    "format_duration",
    "progress_bar",
    "suggest_optimizations",
]
