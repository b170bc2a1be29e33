"""
Pipeline tuning settings

All values can be overridden from the environment (or a .env file).
Malformed values fall back to the default; numeric values are clamped
to a sane minimum.
"""

import os
from dataclasses import dataclass


def _env_int(name: str, default: int, minimum: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return max(int(raw), minimum)
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float, minimum: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return max(float(raw), minimum)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class PipelineSettings:
    # Per-unit analysis retry policy
    analysis_max_attempts: int = 3
    analysis_base_delay: float = 1.0
    analysis_max_delay: float = 10.0
    # Units analyzed per advance() call, and how many of them run at once
    analysis_units_per_tick: int = 5
    analysis_concurrency: int = 3
    # Managed segmentation polling
    segmentation_poll_interval: float = 5.0
    segmentation_poll_deadline: float = 600.0
    # Local chunking
    chunk_target_bytes: int = 5 * 1024 * 1024
    chunk_max_duration: float = 30.0
    chunk_overlap: float = 2.0
    # Overall job deadline for run_until_complete
    job_deadline: float = 1800.0
    # Job store
    cas_retries: int = 10
    cache_limit: int = 200

    @classmethod
    def from_env(cls) -> "PipelineSettings":
        return cls(
            analysis_max_attempts=_env_int("ANALYSIS_MAX_ATTEMPTS", 3, 1),
            analysis_base_delay=_env_float("ANALYSIS_BASE_DELAY", 1.0, 0.0),
            analysis_max_delay=_env_float("ANALYSIS_MAX_DELAY", 10.0, 0.0),
            analysis_units_per_tick=_env_int("ANALYSIS_UNITS_PER_TICK", 5, 1),
            analysis_concurrency=_env_int("ANALYSIS_CONCURRENCY", 3, 1),
            segmentation_poll_interval=_env_float("SEGMENTATION_POLL_INTERVAL", 5.0, 0.1),
            segmentation_poll_deadline=_env_float("SEGMENTATION_POLL_DEADLINE", 600.0, 1.0),
            chunk_target_bytes=_env_int("CHUNK_TARGET_BYTES", 5 * 1024 * 1024, 1024),
            chunk_max_duration=_env_float("CHUNK_MAX_DURATION", 30.0, 1.0),
            chunk_overlap=_env_float("CHUNK_OVERLAP", 2.0, 0.0),
            job_deadline=_env_float("JOB_DEADLINE", 1800.0, 1.0),
            cas_retries=_env_int("JOB_STORE_CAS_RETRIES", 10, 1),
            cache_limit=_env_int("JOB_STORE_CACHE_LIMIT", 200, 25),
        )
