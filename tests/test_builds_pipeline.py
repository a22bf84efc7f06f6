"""Tests for builds/pipeline.py module."""

import pytest

from execpack.builds.pipeline import (
    DEFAULT_STEPS,
    BuildPipeline,
    BuildStep,
    PipelineResult,
)
from execpack.builds.reporter import ProgressReporter
from execpack.errors import PipelineStepFailure
from execpack.types import StepState


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestDefaultSteps:
    """Tests for the step table."""

    def test_order_and_weights(self):
        """Should list the seven steps with their weights."""
        assert [(s.name, s.weight) for s in DEFAULT_STEPS] == [
            ("cleanup", 1),
            ("framework", 3),
            ("server", 1),
            ("manifest", 1),
            ("assets", 2),
            ("compile", 4),
            ("finalize", 1),
        ]


class TestBuildPipeline:
    """Tests for BuildPipeline.run."""

    def _actions(self, calls: list[str], **overrides):
        actions = {}
        for step in DEFAULT_STEPS:

            def action(name=step.name):
                calls.append(name)

            actions[step.name] = action
        actions.update(overrides)
        return actions

    def test_runs_steps_in_order(self):
        """Every action should run once, in table order."""
        calls: list[str] = []
        result = BuildPipeline().run(self._actions(calls))

        assert calls == [s.name for s in DEFAULT_STEPS]
        assert result.ok
        assert result.failure is None
        assert all(o.state == StepState.COMPLETED for o in result.outcomes)

    def test_detail_recorded(self):
        """Returned details should be kept on the outcome."""
        calls: list[str] = []
        result = BuildPipeline().run(
            self._actions(calls, assets=lambda: "3 assets embedded")
        )
        assets = next(o for o in result.outcomes if o.step == "assets")
        assert assets.detail == "3 assets embedded"

    def test_failure_aborts_remaining_steps(self):
        """A failing step should stop the pipeline with its elapsed time."""
        clock = FakeClock()
        reporter = ProgressReporter(DEFAULT_STEPS, clock)
        calls: list[str] = []

        def broken():
            clock.now += 1.5
            raise ValueError("framework exploded")

        result = BuildPipeline(DEFAULT_STEPS, reporter).run(
            self._actions(calls, framework=broken)
        )

        assert calls == ["cleanup"]
        assert not result.ok
        assert len(result.outcomes) == 2
        failure = result.failure
        assert failure is not None
        assert failure.step == "framework"
        assert failure.state == StepState.FAILED
        assert failure.duration == 1.5
        assert isinstance(failure.error, ValueError)
        assert reporter.state("server") == StepState.NOT_STARTED
        assert reporter.state("framework") == StepState.FAILED

    def test_raise_for_failure(self):
        """raise_for_failure should raise PipelineStepFailure with the cause."""

        def broken():
            raise RuntimeError("no compiler")

        result = BuildPipeline().run(self._actions([], compile=broken))

        with pytest.raises(PipelineStepFailure) as exc_info:
            result.raise_for_failure()
        assert exc_info.value.step == "compile"
        assert exc_info.value.code == "pipeline_step_failed"
        assert isinstance(exc_info.value.cause, RuntimeError)
        assert exc_info.value.__cause__ is exc_info.value.cause

    def test_raise_for_failure_success(self):
        """A successful result should not raise."""
        PipelineResult().raise_for_failure()

    def test_missing_action(self):
        """Every step needs an action."""
        with pytest.raises(ValueError, match="No action"):
            BuildPipeline().run({"cleanup": lambda: None})

    def test_duplicate_step_names(self):
        """Step names must be unique."""
        with pytest.raises(ValueError, match="Duplicate"):
            BuildPipeline([BuildStep("a", "A", 1), BuildStep("a", "B", 1)])
