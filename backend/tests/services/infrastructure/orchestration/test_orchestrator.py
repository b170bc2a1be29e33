"""
Tests for voicedesc.services.infrastructure.orchestration.orchestrator

The pipeline runs end to end against in-memory fakes for the external
capabilities (analysis provider and segmentation service).
"""

import asyncio
import itertools
from dataclasses import dataclass
from unittest.mock import AsyncMock

import pytest

from voicedesc.config.settings import PipelineSettings
from voicedesc.core.exceptions import JobNotFoundError, ProviderError, ValidationError
from voicedesc.models.jobs import MediaInput, UnitAnalysis
from voicedesc.models.status import JobStatus, PipelineStep
from voicedesc.services.infrastructure.orchestration.job_store import JobStore
from voicedesc.services.infrastructure.orchestration.orchestrator import PipelineOrchestrator
from voicedesc.services.infrastructure.polling.poller import PollStatus
from voicedesc.services.infrastructure.storage.job_repository import FileBasedJobRepository
from voicedesc.services.pipeline.analysis.analyzer import UnitAnalyzer
from voicedesc.services.pipeline.analysis.providers import AnalysisProvider
from voicedesc.services.pipeline.analysis.retry import RetryPolicy
from voicedesc.services.pipeline.segmentation.base import DetectedSegment, Segmenter
from voicedesc.services.pipeline.segmentation.managed import ManagedSegmentationStrategy
from voicedesc.services.pipeline.synthesis.synthesizer import DescriptionSynthesizer

SETTINGS = PipelineSettings(
    analysis_units_per_tick=2,
    analysis_concurrency=2,
    chunk_max_duration=10.0,
    chunk_overlap=0.0,
    job_deadline=30.0,
)

VIDEO = MediaInput(ref="clip.mp4", kind="video", size_bytes=0, duration=25.0)


@dataclass
class ServiceProgress:
    percent: int


class FakeProvider(AnalysisProvider):
    """Describes every unit, except the ones listed in ``failing``."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.calls = []

    async def analyze(self, unit, media):
        self.calls.append(unit.id)
        if unit.id in self.failing:
            raise ProviderError("model overloaded")
        return UnitAnalysis(
            unit_id="provider-id",
            description=f"A person walks along a city street in {unit.id}.",
            visual_elements=("person", "street"),
            actions=("walking",),
            context="A busy city street at noon",
            confidence=0.8,
            provider_cost=10.0,
        )


class FakeSegmenter(Segmenter):
    """Reports ``statuses`` in order; the last one repeats forever."""

    def __init__(self, statuses, on_check=None):
        self.statuses = list(statuses)
        self.on_check = on_check
        self.started = 0
        self.checks = 0

    async def start(self, media):
        self.started += 1
        return "op-1"

    async def check_status(self, handle):
        self.checks += 1
        if self.on_check is not None:
            self.on_check(handle)
        if len(self.statuses) > 1:
            return self.statuses.pop(0)
        return self.statuses[0]


def _orchestrator(provider=None, segmenter=None, settings=SETTINGS, poll_deadline=60.0, store=None):
    ids = (f"job{i}" for i in itertools.count(1))
    strategies = {}
    if segmenter is not None:
        strategies["managed"] = ManagedSegmentationStrategy(
            segmenter,
            poll_interval=0.0,
            poll_deadline=poll_deadline,
            max_duration=10.0,
        )
    analyzer = UnitAnalyzer(
        provider or FakeProvider(),
        RetryPolicy(max_attempts=2, base_delay=0.0, max_delay=0.0),
        sleep=AsyncMock(),
    )
    return PipelineOrchestrator(
        store=store or JobStore(),
        analyzer=analyzer,
        synthesizer=DescriptionSynthesizer(),
        strategies=strategies,
        settings=settings,
        id_factory=lambda: next(ids),
    )


class TestCreate:
    """Job creation validates input before anything is persisted"""

    def test_create_persists_pending_job(self):
        orchestrator = _orchestrator()

        job_id = orchestrator.create(VIDEO)

        job = orchestrator.get(job_id)
        assert job.status is JobStatus.PENDING
        assert job.strategy == "local"
        assert job.units is None

    @pytest.mark.parametrize(
        "media",
        [
            MediaInput(ref="", duration=10.0),
            MediaInput(ref="sound.mp3", kind="audio", duration=10.0),
            MediaInput(ref="clip.mp4", kind="video", duration=None),
            MediaInput(ref="clip.mp4", kind="video", duration=-1.0),
            MediaInput(ref="clip.mp4", size_bytes=-5, duration=10.0),
        ],
    )
    def test_invalid_media_rejected(self, media):
        orchestrator = _orchestrator()

        with pytest.raises(ValidationError):
            orchestrator.create(media)

        assert orchestrator.store.list_jobs() == []

    @pytest.mark.parametrize(
        "options",
        [
            {"segmentation": "magic"},
            {"max_unit_duration": 5.0, "overlap": 5.0},
            {"segmentation": "managed"},
        ],
    )
    def test_invalid_options_rejected(self, options):
        orchestrator = _orchestrator()

        with pytest.raises(ValidationError):
            orchestrator.create(VIDEO, options)

        assert orchestrator.store.list_jobs() == []

    def test_overlap_not_below_chunk_duration(self):
        settings = PipelineSettings(chunk_max_duration=10.0, chunk_overlap=10.0)
        orchestrator = _orchestrator(settings=settings)

        with pytest.raises(ValidationError):
            orchestrator.create(VIDEO)

    def test_large_input_prefers_managed_service(self):
        orchestrator = _orchestrator(segmenter=FakeSegmenter([PollStatus.pending()]))
        media = MediaInput(ref="film.mp4", size_bytes=500 * 1024 * 1024, duration=3600.0)

        job_id = orchestrator.create(media)

        assert orchestrator.get(job_id).strategy == "managed"


@pytest.mark.asyncio
class TestAdvance:
    """Test suite for the pull-model advance loop"""

    async def test_full_run_with_local_chunking(self):
        provider = FakeProvider()
        orchestrator = _orchestrator(provider)
        job_id = orchestrator.create(VIDEO)

        snapshots = []
        for _ in range(10):
            job = await orchestrator.advance(job_id)
            snapshots.append(job)
            if job.status.is_terminal():
                break

        job = snapshots[-1]
        assert job.status is JobStatus.COMPLETED
        assert job.step is PipelineStep.COMPLETED
        assert job.progress == 100.0
        assert [u.id for u in job.units] == ["job1_chunk_0", "job1_chunk_1", "job1_chunk_2"]
        assert [a.unit_id for a in job.analyses] == [u.id for u in job.units]
        assert job.result.metadata.unit_count == 3
        assert job.result.metadata.synthesis_method == "rule-based"
        assert job.result.narrative.startswith("The video begins with")
        assert sorted(provider.calls) == sorted(u.id for u in job.units)

    async def test_steps_and_progress_never_decrease(self):
        orchestrator = _orchestrator()
        job_id = orchestrator.create(VIDEO)

        job = orchestrator.get(job_id)
        history = [job]
        while not job.status.is_terminal():
            job = await orchestrator.advance(job_id)
            history.append(job)

        for previous, current in zip(history, history[1:]):
            assert previous.step <= current.step
            assert previous.progress <= current.progress

    async def test_analysis_is_capped_per_call(self):
        orchestrator = _orchestrator()
        job_id = orchestrator.create(VIDEO)

        job = await orchestrator.advance(job_id)
        assert job.step is PipelineStep.ANALYSIS
        assert job.progress == 40.0
        assert job.message == "Segmented into 3 unit(s)"

        job = await orchestrator.advance(job_id)
        assert job.analyzed_count == 2
        assert job.step is PipelineStep.ANALYSIS
        assert job.progress == 66.7

        job = await orchestrator.advance(job_id)
        assert job.analyzed_count == 3
        assert job.step is PipelineStep.SYNTHESIS
        assert job.progress == 85.0

    async def test_concurrent_advance_does_not_duplicate_analyses(self):
        orchestrator = _orchestrator()
        job_id = orchestrator.create(VIDEO)
        await orchestrator.advance(job_id)

        await asyncio.gather(orchestrator.advance(job_id), orchestrator.advance(job_id))

        job = orchestrator.get(job_id)
        unit_ids = [a.unit_id for a in job.analyses]
        assert len(unit_ids) == len(set(unit_ids))

    async def test_image_becomes_single_unit(self):
        orchestrator = _orchestrator()
        job_id = orchestrator.create(MediaInput(ref="photo.jpg", kind="image", size_bytes=2048))

        job = await orchestrator.run_until_complete(job_id)

        assert job.status is JobStatus.COMPLETED
        assert [u.id for u in job.units] == ["job1_image_0"]
        assert job.result.timestamped.startswith("[0:00 - 0:00]")

    async def test_zero_length_video_fails_with_empty_input(self):
        provider = FakeProvider()
        orchestrator = _orchestrator(provider)
        job_id = orchestrator.create(MediaInput(ref="empty.mp4", duration=0.0))

        job = await orchestrator.advance(job_id)

        assert job.status is JobStatus.FAILED
        assert job.error.code == "EMPTY_INPUT"
        assert job.message.startswith("Failed during segmentation")
        assert provider.calls == []

    async def test_degraded_units_do_not_fail_job(self):
        orchestrator = _orchestrator(FakeProvider(failing={"job1_chunk_1"}))
        job_id = orchestrator.create(VIDEO)

        job = await orchestrator.run_until_complete(job_id)

        assert job.status is JobStatus.COMPLETED
        assert [a.degraded for a in job.analyses] == [False, True, False]
        assert job.result.metadata.degraded_units == 1

    async def test_fail_fast_keeps_completed_analyses(self):
        settings = PipelineSettings(analysis_units_per_tick=5, chunk_max_duration=10.0, chunk_overlap=0.0)
        orchestrator = _orchestrator(FakeProvider(failing={"job1_chunk_1"}), settings=settings)
        job_id = orchestrator.create(VIDEO, {"fail_fast": True})

        job = await orchestrator.run_until_complete(job_id)

        assert job.status is JobStatus.FAILED
        assert job.error.code == "ANALYSIS_FAILED"
        assert job.error.detail["unit_id"] == "job1_chunk_1"
        assert [a.unit_id for a in job.analyses] == ["job1_chunk_0", "job1_chunk_2"]
        assert job.step is PipelineStep.ANALYSIS

    async def test_terminal_job_is_returned_unchanged(self):
        orchestrator = _orchestrator()
        job_id = orchestrator.create(VIDEO)
        done = await orchestrator.run_until_complete(job_id)

        again = await orchestrator.advance(job_id)

        assert again.version == done.version

    async def test_unknown_job(self):
        with pytest.raises(JobNotFoundError):
            await _orchestrator().advance("missing")

    async def test_unit_duration_option_changes_chunking(self):
        orchestrator = _orchestrator()
        job_id = orchestrator.create(VIDEO, {"max_unit_duration": 12.5, "overlap": 0.0})

        job = await orchestrator.advance(job_id)

        assert [(u.start_offset, u.end_offset) for u in job.units] == [(0.0, 12.5), (12.5, 25.0)]

    async def test_configured_overlap_shrinks_for_short_units(self):
        settings = PipelineSettings(chunk_max_duration=10.0, chunk_overlap=2.0)
        orchestrator = _orchestrator(settings=settings)
        media = MediaInput(ref="short.mp4", kind="video", duration=3.0)

        job_id = orchestrator.create(media, {"max_unit_duration": 1.5})
        job = await orchestrator.advance(job_id)

        assert [(u.start_offset, u.end_offset) for u in job.units] == [
            (0.0, 1.5),
            (0.75, 2.25),
            (1.5, 3.0),
        ]


@pytest.mark.asyncio
class TestManagedSegmentation:
    """Jobs segmented by an external service"""

    async def test_progress_is_capped_while_waiting(self):
        holder = {}
        seen_progress = []
        segmenter = FakeSegmenter(
            [PollStatus.pending(f"{p}%") for p in (10, 20, 30, 40, 50, 60)]
            + [
                PollStatus.succeeded([
                    DetectedSegment(0.0, 12.0, 0.95),
                    DetectedSegment(12.0, 25.0, 0.9, kind="scene"),
                ])
            ],
            on_check=lambda _h: seen_progress.append(holder["o"].get("job1").progress),
        )
        orchestrator = _orchestrator(segmenter=segmenter)
        holder["o"] = orchestrator
        job_id = orchestrator.create(VIDEO, {"segmentation": "managed"})

        job = await orchestrator.advance(job_id)

        assert seen_progress[0] == 15.0
        assert max(seen_progress) == 35.0
        assert job.segmentation_handle == "op-1"
        assert job.step is PipelineStep.ANALYSIS
        assert [(u.start_offset, u.end_offset) for u in job.units] == [
            (0.0, 10.0), (10.0, 12.0), (12.0, 22.0), (22.0, 25.0),
        ]
        assert job.units[0].id == "job1_segment_0"

    async def test_service_failure_fails_job(self):
        segmenter = FakeSegmenter([PollStatus.pending("5%"), PollStatus.failed("unsupported codec")])
        orchestrator = _orchestrator(segmenter=segmenter)
        job_id = orchestrator.create(VIDEO, {"segmentation": "managed"})

        job = await orchestrator.advance(job_id)

        assert job.status is JobStatus.FAILED
        assert job.error.code == "SEGMENTATION_FAILED"
        assert "unsupported codec" in job.error.message
        assert job.segmentation_handle == "op-1"
        assert job.units is None

    async def test_poll_deadline_fails_job(self):
        segmenter = FakeSegmenter([PollStatus.pending("still running")])
        orchestrator = _orchestrator(segmenter=segmenter, poll_deadline=0.05)
        job_id = orchestrator.create(VIDEO, {"segmentation": "managed"})

        job = await orchestrator.advance(job_id)

        assert job.error.code == "POLL_TIMEOUT"
        assert job.error.detail["last_payload"] == "still running"

    async def test_poll_deadline_with_opaque_payload_is_persisted(self, tmp_path):
        """A progress payload JSON cannot encode still leaves a readable failed record"""
        segmenter = FakeSegmenter([PollStatus.pending(ServiceProgress(percent=40))])
        store = JobStore(FileBasedJobRepository(tmp_path))
        orchestrator = _orchestrator(segmenter=segmenter, poll_deadline=0.05, store=store)
        job_id = orchestrator.create(VIDEO, {"segmentation": "managed"})

        await orchestrator.advance(job_id)

        job = FileBasedJobRepository(tmp_path).get(job_id)
        assert job.status is JobStatus.FAILED
        assert job.error.code == "POLL_TIMEOUT"
        assert job.error.detail["last_payload"] == "ServiceProgress(percent=40)"
        assert not list(tmp_path.glob("*.tmp"))

    async def test_cancel_interrupts_segmentation(self):
        holder = {}
        segmenter = FakeSegmenter(
            [PollStatus.pending("working")],
            on_check=lambda _h: holder["o"].cancel("job1"),
        )
        orchestrator = _orchestrator(segmenter=segmenter)
        holder["o"] = orchestrator
        job_id = orchestrator.create(VIDEO, {"segmentation": "managed"})

        job = await orchestrator.advance(job_id)

        assert job.status is JobStatus.FAILED
        assert job.error.code == "POLL_CANCELLED"

    async def test_cancel_without_running_segmentation(self):
        orchestrator = _orchestrator()
        job_id = orchestrator.create(VIDEO)

        assert orchestrator.cancel(job_id) is False

    async def test_job_deadline(self):
        segmenter = FakeSegmenter([PollStatus.pending("still running")])
        orchestrator = _orchestrator(segmenter=segmenter)
        job_id = orchestrator.create(VIDEO, {"segmentation": "managed"})

        job = await orchestrator.run_until_complete(job_id, deadline=0.1)

        assert job.status is JobStatus.FAILED
        assert job.error.code == "JOB_TIMEOUT"
        assert job.step is PipelineStep.SEGMENTATION
