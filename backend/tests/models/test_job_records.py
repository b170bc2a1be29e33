"""
Tests for models/jobs, models/status and models/options
"""

import dataclasses

import pytest
from pydantic import ValidationError as PydanticValidationError

from voicedesc.models.jobs import (
    Chapter,
    Job,
    JobError,
    KeyMoment,
    MediaInput,
    SynthesisMetadata,
    SynthesizedDescription,
    Unit,
    UnitAnalysis,
)
from voicedesc.models.options import BatchOptions, JobOptions, SynthesisOptions
from voicedesc.models.status import JobStatus, PipelineStep


def _description():
    return SynthesizedDescription(
        narrative="The video begins with a dog.",
        timestamped="[0:00 - 0:10] A dog.",
        technical="## Technical Analysis Summary",
        accessibility="Audio Description Track",
        key_moments=(KeyMoment(timestamp=0.0, description="A dog.", importance="high"),),
        highlights=("dog",),
        chapters=(Chapter(timestamp=0.0, title="dog", description="A dog...."),),
        metadata=SynthesisMetadata(
            word_count=2,
            sentence_count=1,
            average_confidence=0.9,
            total_provider_cost=12.0,
            unique_elements=1,
            unique_actions=0,
            synthesis_method="rule-based",
            total_duration=10.0,
            unit_count=1,
        ),
    )


class TestJobStatus:
    """Test suite for the job state machine"""

    def test_terminal_states(self):
        assert JobStatus.COMPLETED.is_terminal()
        assert JobStatus.FAILED.is_terminal()
        assert not JobStatus.PROCESSING.is_terminal()

    def test_allowed_transitions(self):
        assert JobStatus.PENDING.can_transition_to(JobStatus.PROCESSING)
        assert JobStatus.PENDING.can_transition_to(JobStatus.FAILED)
        assert JobStatus.PROCESSING.can_transition_to(JobStatus.COMPLETED)

    def test_terminal_states_are_final(self):
        assert not JobStatus.COMPLETED.can_transition_to(JobStatus.PROCESSING)
        assert not JobStatus.FAILED.can_transition_to(JobStatus.COMPLETED)

    def test_pending_cannot_complete_directly(self):
        assert not JobStatus.PENDING.can_transition_to(JobStatus.COMPLETED)


class TestPipelineStep:
    def test_steps_are_ordered(self):
        assert PipelineStep.UPLOAD < PipelineStep.SEGMENTATION < PipelineStep.ANALYSIS
        assert PipelineStep.SYNTHESIS < PipelineStep.COMPLETED
        assert PipelineStep.ANALYSIS <= PipelineStep.ANALYSIS
        assert not PipelineStep.SYNTHESIS < PipelineStep.ANALYSIS


class TestUnitAnalysis:
    def test_elements_and_actions_are_deduplicated(self):
        analysis = UnitAnalysis(
            unit_id="u1",
            description="A dog runs.",
            visual_elements=("dog", "ball", "dog", " "),
            actions=("running", "running"),
        )

        assert analysis.visual_elements == ("dog", "ball")
        assert analysis.actions == ("running",)

    def test_records_are_frozen(self):
        analysis = UnitAnalysis(unit_id="u1", description="x")

        with pytest.raises(dataclasses.FrozenInstanceError):
            analysis.description = "y"


class TestJob:
    """Test suite for the Job record"""

    def test_defaults(self):
        job = Job(id="job1", media=MediaInput(ref="clip.mp4", duration=10.0))

        assert job.status is JobStatus.PENDING
        assert job.step is PipelineStep.UPLOAD
        assert job.progress == 0.0
        assert job.units is None
        assert job.version == 0

    def test_evolve_returns_new_record(self):
        job = Job(id="job1", media=MediaInput(ref="clip.mp4", duration=10.0))

        changed = job.evolve(progress=10.0)

        assert changed.progress == 10.0
        assert job.progress == 0.0

    def test_pending_units(self):
        units = (Unit("u0", 0, 10), Unit("u1", 10, 20), Unit("u2", 20, 30))
        job = Job(
            id="job1",
            media=MediaInput(ref="clip.mp4", duration=30.0),
            units=units,
            analyses=(UnitAnalysis(unit_id="u1", description="x"),),
        )

        assert [u.id for u in job.pending_units()] == ["u0", "u2"]
        assert job.analyzed_count == 1

    def test_serialization_preserves_completed_job(self):
        job = Job(
            id="job1",
            media=MediaInput(ref="clip.mp4", size_bytes=100, duration=10.0, boundaries=(4.0,)),
            options=JobOptions(fail_fast=True),
            status=JobStatus.COMPLETED,
            step=PipelineStep.COMPLETED,
            progress=100.0,
            units=(Unit("u0", 0.0, 10.0),),
            analyses=(UnitAnalysis(unit_id="u0", description="A dog.", visual_elements=("dog",)),),
            result=_description(),
            version=6,
        )

        restored = Job.from_dict(job.to_dict())

        assert restored == job

    def test_serialization_preserves_error(self):
        job = Job(
            id="job1",
            media=MediaInput(ref="clip.mp4", duration=0.0),
            status=JobStatus.FAILED,
            error=JobError(code="EMPTY_INPUT", message="nothing", detail={"ref": "clip.mp4"}),
        )

        restored = Job.from_dict(job.to_dict())

        assert restored.error == job.error
        assert restored.units is None


class TestSynthesizedDescription:
    def test_view_lookup(self):
        description = _description()

        assert description.view("narrative") == description.narrative
        assert description.view("accessibility") == description.accessibility

    def test_unknown_view(self):
        with pytest.raises(KeyError):
            _description().view("braille")


class TestOptions:
    """Test suite for pydantic option models"""

    def test_job_options_defaults(self):
        options = JobOptions()

        assert options.segmentation == "auto"
        assert options.fail_fast is False
        assert options.synthesis == SynthesisOptions()

    def test_job_options_reject_unknown_strategy(self):
        with pytest.raises(PydanticValidationError):
            JobOptions(segmentation="magic")

    def test_overlap_must_be_below_unit_duration(self):
        with pytest.raises(PydanticValidationError):
            JobOptions(max_unit_duration=10.0, overlap=10.0)

    def test_batch_limit_bounds(self):
        with pytest.raises(PydanticValidationError):
            BatchOptions(max_concurrent=0)
        with pytest.raises(PydanticValidationError):
            BatchOptions(max_concurrent=11)

    def test_sequential_batch_has_limit_one(self):
        assert BatchOptions(max_concurrent=5, parallel=False).limit == 1
        assert BatchOptions(max_concurrent=5).limit == 5

    def test_fail_fast_is_inverse_of_continue_on_error(self):
        assert BatchOptions(continue_on_error=False).fail_fast is True
        assert BatchOptions().fail_fast is False
