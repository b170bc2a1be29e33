"""
Per-unit analyzer.

Wraps an ``AnalysisProvider`` with retry-with-backoff. When every attempt
fails the unit gets a deterministic degraded analysis instead, so that one
bad unit does not sink the job, unless the caller asked for fail-fast.
"""

import asyncio
from dataclasses import replace
from typing import Awaitable, Callable, Optional

from voicedesc.core.exceptions import AnalysisFailed
from voicedesc.core.logging import get_logger
from voicedesc.models.jobs import MediaInput, Unit, UnitAnalysis
from voicedesc.services.pipeline.synthesis.text_utils import format_timestamp

from .providers import AnalysisProvider
from .retry import AttemptRecord, RetryExhausted, RetryPolicy, retry_with_backoff

logger = get_logger(__name__, component="analyzer")

AttemptListener = Callable[[Unit, AttemptRecord], None]


def fallback_analysis(unit: Unit) -> UnitAnalysis:
    """Degraded analysis used when the provider could not describe a unit."""
    return UnitAnalysis(
        unit_id=unit.id,
        description=(
            f"Visual content between {format_timestamp(unit.start_offset)} and "
            f"{format_timestamp(unit.end_offset)} could not be described."
        ),
        context="",
        confidence=0.0,
        provider_cost=0.0,
        start_offset=unit.start_offset,
        end_offset=unit.end_offset,
        degraded=True,
    )


class UnitAnalyzer:
    def __init__(
        self,
        provider: AnalysisProvider,
        policy: Optional[RetryPolicy] = None,
        on_attempt: Optional[AttemptListener] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.provider = provider
        self.policy = policy or RetryPolicy()
        self.on_attempt = on_attempt
        self._sleep = sleep

    def _record(self, unit: Unit, record: AttemptRecord) -> None:
        if record.succeeded:
            logger.debug("Unit analyzed", extra={"unit": unit.id, "attempt": record.attempt})
        else:
            logger.warning(
                "Unit analysis attempt failed",
                extra={
                    "unit": unit.id,
                    "attempt": record.attempt,
                    "max_attempts": self.policy.max_attempts,
                    "retry_in": record.delay,
                    "error": str(record.error),
                },
            )
        if self.on_attempt is not None:
            self.on_attempt(unit, record)

    async def analyze(self, unit: Unit, media: MediaInput, fail_fast: bool = False) -> UnitAnalysis:
        """Analyze one unit.

        Raises:
            AnalysisFailed: Only with ``fail_fast`` once retries are exhausted
        """
        try:
            analysis = await retry_with_backoff(
                lambda: self.provider.analyze(unit, media),
                self.policy,
                on_attempt=lambda record: self._record(unit, record),
                sleep=self._sleep,
            )
        except RetryExhausted as e:
            if fail_fast:
                raise AnalysisFailed(
                    f"Analysis of unit {unit.id} failed after {e.attempts} attempt(s): {e.last_error}",
                    unit_id=unit.id,
                    attempts=e.attempts,
                ) from e.last_error
            logger.warning(
                "Substituting fallback analysis",
                extra={"unit": unit.id, "attempts": e.attempts, "error": str(e.last_error)},
            )
            return fallback_analysis(unit)

        # The provider does not own identity or placement
        return replace(
            analysis,
            unit_id=unit.id,
            start_offset=unit.start_offset,
            end_offset=unit.end_offset,
        )
