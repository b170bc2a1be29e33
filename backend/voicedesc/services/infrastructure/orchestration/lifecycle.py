"""
Wiring and startup for the pipeline engine.
Builds the orchestrator from configuration and recovers jobs that were
interrupted by a restart.
"""

from pathlib import Path
from typing import Dict, Optional

from voicedesc.config import JOB_DATA_DIR, JSON_LOGS, LOG_FILE, LOG_LEVEL
from voicedesc.config.settings import PipelineSettings
from voicedesc.core.logging import get_logger, setup_logging
from voicedesc.services.infrastructure.storage.job_repository import FileBasedJobRepository
from voicedesc.services.llm.base import LLMProvider
from voicedesc.services.llm.factory import get_llm_provider
from voicedesc.services.pipeline.analysis.analyzer import UnitAnalyzer
from voicedesc.services.pipeline.analysis.providers import ContentLoader, LLMAnalysisProvider
from voicedesc.services.pipeline.analysis.retry import RetryPolicy
from voicedesc.services.pipeline.segmentation.base import Segmenter, SegmentationStrategy
from voicedesc.services.pipeline.segmentation.managed import ManagedSegmentationStrategy
from voicedesc.services.pipeline.synthesis.narrative import LLMNarrativeEnhancer
from voicedesc.services.pipeline.synthesis.synthesizer import DescriptionSynthesizer

from .job_store import JobStore
from .orchestrator import PipelineOrchestrator

logger = get_logger(__name__, service="lifecycle")


def build_orchestrator(
    settings: Optional[PipelineSettings] = None,
    llm: Optional[LLMProvider] = None,
    segmenter: Optional[Segmenter] = None,
    content_loader: Optional[ContentLoader] = None,
    storage_dir: Optional[Path] = None,
) -> PipelineOrchestrator:
    """Assemble a file-backed orchestrator.

    Args:
        settings: Tuning values; read from the environment when omitted
        llm: Provider for analysis and narrative; resolved from LLM_PROVIDER when omitted
        segmenter: External segmentation service; without one only local chunking is available
        content_loader: Fetches unit bytes for multimodal analysis
        storage_dir: Job record directory, defaults to JOB_DATA_DIR
    """
    settings = settings or PipelineSettings.from_env()
    llm = llm or get_llm_provider()

    store = JobStore(
        FileBasedJobRepository(storage_dir or JOB_DATA_DIR, cache_limit=settings.cache_limit),
        max_retries=settings.cas_retries,
    )
    analyzer = UnitAnalyzer(
        LLMAnalysisProvider(llm, content_loader=content_loader),
        RetryPolicy(
            max_attempts=settings.analysis_max_attempts,
            base_delay=settings.analysis_base_delay,
            max_delay=settings.analysis_max_delay,
        ),
    )
    strategies: Dict[str, SegmentationStrategy] = {}
    if segmenter is not None:
        strategies["managed"] = ManagedSegmentationStrategy(
            segmenter,
            poll_interval=settings.segmentation_poll_interval,
            poll_deadline=settings.segmentation_poll_deadline,
            max_duration=settings.chunk_max_duration,
        )

    return PipelineOrchestrator(
        store=store,
        analyzer=analyzer,
        synthesizer=DescriptionSynthesizer(enhancer=LLMNarrativeEnhancer(llm)),
        strategies=strategies,
        settings=settings,
    )


def startup(orchestrator: PipelineOrchestrator) -> int:
    """Configure logging and fail jobs left mid-pipeline by a previous run.

    Returns:
        Number of interrupted jobs that were marked failed
    """
    setup_logging(level=LOG_LEVEL, log_file=Path(LOG_FILE) if LOG_FILE else None, use_json=JSON_LOGS)
    failed = orchestrator.store.mark_interrupted_jobs_failed()
    logger.info("Startup complete", extra={"interrupted_jobs": len(failed)})
    return len(failed)


_orchestrator_instance: Optional[PipelineOrchestrator] = None


def get_orchestrator() -> PipelineOrchestrator:
    """Get the shared orchestrator (singleton pattern)."""
    global _orchestrator_instance
    if _orchestrator_instance is None:
        _orchestrator_instance = build_orchestrator()
    return _orchestrator_instance
