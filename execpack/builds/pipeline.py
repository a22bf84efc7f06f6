"""Staged build pipeline.

A fixed, ordered table of weighted steps is run strictly in sequence.
The first failing step aborts the pipeline; its failure is returned as a
tagged outcome rather than propagated, so callers see which step failed
and after how long.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field

from execpack.builds.reporter import ProgressReporter
from execpack.errors import PipelineStepFailure
from execpack.types import StepState

logger = logging.getLogger(__name__)

StepAction = Callable[[], "str | None"]


@dataclass(frozen=True)
class BuildStep:
    """A named pipeline step with a static relative weight."""

    name: str
    description: str
    weight: int


DEFAULT_STEPS: tuple[BuildStep, ...] = (
    BuildStep("cleanup", "Cleaning up directories", 1),
    BuildStep("framework", "Building framework application", 3),
    BuildStep("server", "Copying server wrapper", 1),
    BuildStep("manifest", "Generating manifest", 1),
    BuildStep("assets", "Processing assets", 2),
    BuildStep("compile", "Compiling to executable", 4),
    BuildStep("finalize", "Finalizing build", 1),
)


@dataclass(frozen=True)
class StepOutcome:
    """Tagged result of running one step."""

    step: str
    state: StepState
    duration: float
    detail: str | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.state is StepState.COMPLETED


@dataclass
class PipelineResult:
    """Outcomes of a pipeline run, in step order."""

    outcomes: list[StepOutcome] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(outcome.ok for outcome in self.outcomes)

    @property
    def failure(self) -> StepOutcome | None:
        for outcome in self.outcomes:
            if not outcome.ok:
                return outcome
        return None

    def raise_for_failure(self) -> None:
        """Raise PipelineStepFailure if a step failed."""
        failure = self.failure
        if failure is not None and failure.error is not None:
            raise PipelineStepFailure(
                failure.step, failure.duration, failure.error
            ) from failure.error


class BuildPipeline:
    """Runs build steps in table order with progress reporting."""

    def __init__(
        self,
        steps: Sequence[BuildStep] = DEFAULT_STEPS,
        reporter: ProgressReporter | None = None,
    ) -> None:
        names = [step.name for step in steps]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate build step names: {names}")
        self.steps = list(steps)
        self.reporter = reporter or ProgressReporter(self.steps)

    def run(self, actions: Mapping[str, StepAction]) -> PipelineResult:
        """Run every step's action in order.

        Args:
            actions: Step name -> callable returning an optional detail.

        Returns:
            PipelineResult; on failure its last outcome is the failed step
            and later steps were never started.

        Raises:
            ValueError: If a step has no action.
        """
        missing = [step.name for step in self.steps if step.name not in actions]
        if missing:
            raise ValueError(f"No action for build step(s): {', '.join(missing)}")

        result = PipelineResult()
        self.reporter.start_build()

        for step in self.steps:
            self.reporter.start_step(step.name)
            try:
                detail = actions[step.name]()
            except Exception as e:
                elapsed = self.reporter.fail_step(step.name, e)
                result.outcomes.append(
                    StepOutcome(step.name, StepState.FAILED, elapsed, error=e)
                )
                skipped = len(self.steps) - len(result.outcomes)
                if skipped:
                    logger.error("Aborting build; %d step(s) not run", skipped)
                return result

            duration = self.reporter.complete_step(step.name, detail)
            result.outcomes.append(
                StepOutcome(step.name, StepState.COMPLETED, duration, detail=detail)
            )

        return result


__all__ = [
    "DEFAULT_STEPS",
    "BuildPipeline",
    "BuildStep",
    "PipelineResult",
    "StepAction",
    "StepOutcome",
]
