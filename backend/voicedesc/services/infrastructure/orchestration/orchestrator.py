"""
Pipeline Orchestrator

Drives a job through

    pending -> upload -> segmentation -> analysis -> synthesis -> completed

one ``advance`` call at a time (pull model: whoever owns the job decides
when to advance it; nothing here runs on a timer). Slow work happens
outside the store; its outcome is merged back through ``JobStore.update``
so that concurrent advance calls for the same job cannot interleave into
an inconsistent record.
"""

import asyncio
import contextlib
import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from voicedesc.config import ALLOWED_MEDIA_KINDS
from voicedesc.config.settings import PipelineSettings
from voicedesc.core.exceptions import (
    JobTimeout,
    ValidationError,
    VoiceDescError,
    error_code,
    error_detail,
)
from voicedesc.core.logging import get_logger, reset_job_id, set_job_id
from voicedesc.models.jobs import Job, JobError, MediaInput, Unit, UnitAnalysis
from voicedesc.models.options import JobOptions
from voicedesc.models.status import (
    ANALYSIS_PROGRESS_END,
    SEGMENTATION_PROGRESS_CAP,
    SEGMENTATION_PROGRESS_STEP,
    STEP_PROGRESS,
    JobStatus,
    PipelineStep,
)
from voicedesc.services.infrastructure.orchestration.job_store import JobStore
from voicedesc.services.pipeline.analysis.analyzer import UnitAnalyzer
from voicedesc.services.pipeline.segmentation.base import SegmentationStrategy
from voicedesc.services.pipeline.segmentation.local import LocalChunkingStrategy
from voicedesc.services.pipeline.segmentation.selector import select_strategy
from voicedesc.services.pipeline.synthesis.synthesizer import DescriptionSynthesizer

logger = get_logger(__name__, component="orchestrator")


def _slot(limiter: Optional[asyncio.Semaphore]):
    """Shared in-flight limit for segment/analyze calls, if any."""
    return limiter if limiter is not None else contextlib.nullcontext()


def _is_active(job: Job, step: PipelineStep) -> bool:
    return job.status is JobStatus.PROCESSING and job.step is step


class PipelineOrchestrator:
    def __init__(
        self,
        store: JobStore,
        analyzer: UnitAnalyzer,
        synthesizer: DescriptionSynthesizer,
        strategies: Optional[Mapping[str, SegmentationStrategy]] = None,
        settings: Optional[PipelineSettings] = None,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ):
        self.store = store
        self.analyzer = analyzer
        self.synthesizer = synthesizer
        self.settings = settings or PipelineSettings.from_env()
        self.strategies: Dict[str, SegmentationStrategy] = dict(strategies or {})
        self.strategies.setdefault("local", self._local_strategy())
        self._id_factory = id_factory
        self._cancel_events: Dict[str, asyncio.Event] = {}

    def _local_strategy(self, max_duration: Optional[float] = None, overlap: Optional[float] = None) -> LocalChunkingStrategy:
        return LocalChunkingStrategy(
            target_bytes=self.settings.chunk_target_bytes,
            max_duration=max_duration or self.settings.chunk_max_duration,
            overlap=self._overlap_for(max_duration, overlap),
        )

    def _overlap_for(self, max_duration: Optional[float], overlap: Optional[float]) -> float:
        """Requested overlap, else the configured one.

        When only the unit duration was requested, the configured overlap is
        clamped to half of it.
        """
        if overlap is not None:
            return overlap
        if max_duration:
            return min(self.settings.chunk_overlap, max_duration / 2)
        return self.settings.chunk_overlap

    # ------------------------------------------------------------------
    # Creation and lookup
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_media(media: MediaInput) -> None:
        if not media.ref or not str(media.ref).strip():
            raise ValidationError("Media reference is required")
        if media.kind not in ALLOWED_MEDIA_KINDS:
            raise ValidationError(
                f"Unsupported media kind '{media.kind}'",
                {"allowed": list(ALLOWED_MEDIA_KINDS)},
            )
        if media.size_bytes < 0:
            raise ValidationError("size_bytes cannot be negative")
        if media.kind == "video":
            if media.duration is None:
                raise ValidationError("Video inputs need a duration")
            if media.duration < 0:
                raise ValidationError("duration cannot be negative")

    @staticmethod
    def _coerce_options(options: Union[JobOptions, Dict[str, Any], None]) -> JobOptions:
        if options is None:
            return JobOptions()
        if isinstance(options, JobOptions):
            return options
        try:
            return JobOptions.model_validate(options)
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid job options",
                {"errors": [err["msg"] for err in e.errors()]},
            ) from e

    def create(self, media: MediaInput, options: Union[JobOptions, Dict[str, Any], None] = None) -> str:
        """Validate the request and persist a pending job.

        Raises:
            ValidationError: Bad media or options; nothing is persisted
        """
        self._validate_media(media)
        job_options = self._coerce_options(options)
        strategy = select_strategy(media, job_options, self.strategies)

        max_duration = job_options.max_unit_duration or self.settings.chunk_max_duration
        overlap = self._overlap_for(job_options.max_unit_duration, job_options.overlap)
        if strategy == "local" and media.kind == "video" and overlap >= max_duration:
            raise ValidationError(
                f"overlap ({overlap:g}s) must be smaller than the unit duration ({max_duration:g}s)"
            )

        job = Job(id=self._id_factory(), media=media, options=job_options, strategy=strategy)
        self.store.create(job)
        return job.id

    def get(self, job_id: str) -> Optional[Job]:
        return self.store.get(job_id)

    def cancel(self, job_id: str) -> bool:
        """Interrupt an in-flight segmentation wait; the job then fails with POLL_CANCELLED."""
        event = self._cancel_events.get(job_id)
        if event is None:
            return False
        event.set()
        return True

    # ------------------------------------------------------------------
    # Advancing
    # ------------------------------------------------------------------

    async def advance(self, job_id: str, limiter: Optional[asyncio.Semaphore] = None) -> Job:
        """Run the work for the job's current step and return the new record.

        Raises:
            JobNotFoundError: Unknown job id
        """
        job = self.store.require(job_id)
        if job.status.is_terminal():
            return job

        token = set_job_id(job_id)
        try:
            if job.status is JobStatus.PENDING:
                job = self.store.update(job_id, self._start)
            if _is_active(job, PipelineStep.UPLOAD):
                job = self.store.update(job_id, self._enter_segmentation)

            if _is_active(job, PipelineStep.SEGMENTATION):
                job = await self._run_segmentation(job, limiter)
            elif _is_active(job, PipelineStep.ANALYSIS):
                job = await self._run_analysis(job, limiter)
            elif _is_active(job, PipelineStep.SYNTHESIS):
                job = await self._run_synthesis(job)
            return job
        except Exception as e:
            return self._fail(job_id, e)
        finally:
            reset_job_id(token)

    async def run_until_complete(
        self,
        job_id: str,
        deadline: Optional[float] = None,
        limiter: Optional[asyncio.Semaphore] = None,
    ) -> Job:
        """Advance until the job is terminal or ``deadline`` seconds pass."""
        deadline = deadline or self.settings.job_deadline

        async def _drive() -> Job:
            while True:
                job = await self.advance(job_id, limiter)
                if job.status.is_terminal():
                    return job

        try:
            return await asyncio.wait_for(_drive(), timeout=deadline)
        except asyncio.TimeoutError:
            return self._fail(job_id, JobTimeout(f"Job did not finish within {deadline:g}s"))

    # ------------------------------------------------------------------
    # Transforms (pure: current record -> replacement or None)
    # ------------------------------------------------------------------

    @staticmethod
    def _start(job: Job) -> Optional[Job]:
        if job.status is not JobStatus.PENDING:
            return None
        return job.evolve(
            status=JobStatus.PROCESSING,
            step=PipelineStep.UPLOAD,
            progress=STEP_PROGRESS[PipelineStep.UPLOAD],
            message="Input received",
        )

    @staticmethod
    def _enter_segmentation(job: Job) -> Optional[Job]:
        if not _is_active(job, PipelineStep.UPLOAD):
            return None
        return job.evolve(
            step=PipelineStep.SEGMENTATION,
            progress=STEP_PROGRESS[PipelineStep.SEGMENTATION],
            message=f"Segmenting input ({job.strategy})",
        )

    def _fail(self, job_id: str, exc: BaseException) -> Job:
        message = str(exc) or type(exc).__name__
        error = JobError(code=error_code(exc), message=message, detail=error_detail(exc))

        def _to_failed(job: Job) -> Optional[Job]:
            if job.status.is_terminal():
                return None
            return job.evolve(
                status=JobStatus.FAILED,
                message=f"Failed during {job.step.value}: {message}",
                error=error,
            )

        job = self.store.update(job_id, _to_failed)
        logger.error(
            "Job failed",
            extra={"job": job_id, "code": error.code, "step": job.step.value, "error": message},
            exc_info=None if isinstance(exc, VoiceDescError) else exc,
        )
        return job

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _strategy_for(self, job: Job) -> SegmentationStrategy:
        options = job.options
        if job.strategy == "local" and (options.max_unit_duration or options.overlap is not None):
            return self._local_strategy(options.max_unit_duration, options.overlap)
        strategy = self.strategies.get(job.strategy)
        if strategy is None:
            raise ValidationError(f"Segmentation strategy '{job.strategy}' is not configured")
        return strategy

    async def _run_segmentation(self, job: Job, limiter: Optional[asyncio.Semaphore]) -> Job:
        strategy = self._strategy_for(job)
        cancel = self._cancel_events.setdefault(job.id, asyncio.Event())

        async def on_started(handle: str) -> None:
            self.store.update(
                job.id,
                lambda j: j.evolve(segmentation_handle=handle)
                if _is_active(j, PipelineStep.SEGMENTATION) else None,
            )

        async def on_progress(payload: Any) -> None:
            def _bump(j: Job) -> Optional[Job]:
                if not _is_active(j, PipelineStep.SEGMENTATION):
                    return None
                return j.evolve(
                    progress=min(SEGMENTATION_PROGRESS_CAP, j.progress + SEGMENTATION_PROGRESS_STEP),
                    message=f"Segmenting: {payload}" if payload is not None else "Segmenting",
                )
            self.store.update(job.id, _bump)

        try:
            async with _slot(limiter):
                units = await strategy.segment(
                    job.id,
                    job.media,
                    handle=job.segmentation_handle,
                    on_started=on_started,
                    on_progress=on_progress,
                    cancel=cancel,
                )
        finally:
            self._cancel_events.pop(job.id, None)

        def _store_units(j: Job) -> Optional[Job]:
            if not _is_active(j, PipelineStep.SEGMENTATION):
                return None
            return j.evolve(
                units=tuple(units),
                step=PipelineStep.ANALYSIS,
                progress=STEP_PROGRESS[PipelineStep.ANALYSIS],
                message=f"Segmented into {len(units)} unit(s)",
            )

        job = self.store.update(job.id, _store_units)
        logger.info("Segmentation stored", extra={"units": len(units), "strategy": job.strategy})
        return job

    @staticmethod
    def _merge_analyses(job: Job, new: Sequence[UnitAnalysis]) -> Optional[Job]:
        if not _is_active(job, PipelineStep.ANALYSIS):
            return None
        done = {a.unit_id: a for a in job.analyses}
        added = {a.unit_id: a for a in new if a.unit_id not in done}
        if not added:
            return None
        done.update(added)
        units = job.units or ()
        ordered = tuple(done[unit.id] for unit in units if unit.id in done)
        start = STEP_PROGRESS[PipelineStep.ANALYSIS]
        progress = start + (ANALYSIS_PROGRESS_END - start) * len(ordered) / len(units)
        return job.evolve(
            analyses=ordered,
            progress=max(job.progress, round(progress, 1)),
            message=f"Analyzed {len(ordered)}/{len(units)} unit(s)",
        )

    @staticmethod
    def _enter_synthesis(job: Job) -> Optional[Job]:
        if not _is_active(job, PipelineStep.ANALYSIS) or job.pending_units():
            return None
        return job.evolve(
            step=PipelineStep.SYNTHESIS,
            progress=STEP_PROGRESS[PipelineStep.SYNTHESIS],
            message="Synthesizing description",
        )

    async def _run_analysis(self, job: Job, limiter: Optional[asyncio.Semaphore]) -> Job:
        batch: List[Unit] = job.pending_units()[:self.settings.analysis_units_per_tick]
        if batch:
            local_limit = asyncio.Semaphore(self.settings.analysis_concurrency)

            async def _analyze(unit: Unit) -> UnitAnalysis:
                async with local_limit, _slot(limiter):
                    return await self.analyzer.analyze(unit, job.media, fail_fast=job.options.fail_fast)

            results = await asyncio.gather(*(_analyze(unit) for unit in batch), return_exceptions=True)
            analyses = [r for r in results if isinstance(r, UnitAnalysis)]
            errors = [r for r in results if isinstance(r, BaseException)]

            # Keep whatever succeeded, even if another unit aborts the job
            job = self.store.update(job.id, lambda j: self._merge_analyses(j, analyses))
            logger.info(
                "Analysis tick finished",
                extra={
                    "analyzed": len(analyses),
                    "failed": len(errors),
                    "degraded": sum(1 for a in analyses if a.degraded),
                    "remaining": len(job.pending_units()),
                },
            )
            if errors:
                raise errors[0]

        return self.store.update(job.id, self._enter_synthesis)

    async def _run_synthesis(self, job: Job) -> Job:
        result = await self.synthesizer.synthesize(
            job.analyses,
            job.options.synthesis,
            enhance=job.options.enhance_narrative,
        )

        def _complete(j: Job) -> Optional[Job]:
            if not _is_active(j, PipelineStep.SYNTHESIS):
                return None
            return j.evolve(
                status=JobStatus.COMPLETED,
                step=PipelineStep.COMPLETED,
                progress=STEP_PROGRESS[PipelineStep.COMPLETED],
                message="Description ready",
                result=result,
            )

        job = self.store.update(job.id, _complete)
        logger.info("Job completed", extra={"method": result.metadata.synthesis_method})
        return job
