"""
Request options for jobs and batches.

These are validated at the boundary (job creation / batch submission);
pydantic errors are converted into ``ValidationError`` by the callers.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SynthesisOptions(BaseModel):
    """Thresholds used when merging unit analyses into a description.

    The defaults are empirical and can be tuned per job.
    """

    model_config = ConfigDict(frozen=True)

    max_segment_length: int = Field(150, ge=10)
    key_moment_length: int = Field(50, ge=10)
    # Condense the narrative view to this many characters (None = full length)
    target_length: Optional[int] = Field(None, ge=50)

    high_importance_confidence: float = Field(0.9, ge=0.0, le=1.0)
    high_importance_actions: int = Field(3, ge=0)
    medium_importance_confidence: float = Field(0.7, ge=0.0, le=1.0)
    medium_importance_actions: int = Field(1, ge=0)
    key_moment_action_floor: int = Field(2, ge=0)

    max_highlights: int = Field(10, ge=0)
    min_highlight_element_length: int = Field(4, ge=1)
    min_highlight_action_length: int = Field(5, ge=1)

    min_chapter_duration: float = Field(30.0, gt=0)
    chapter_similarity: float = Field(0.5, ge=0.0, le=1.0)
    chapter_description_length: int = Field(200, ge=20)


class JobOptions(BaseModel):
    """Per-job options fixed at creation time."""

    model_config = ConfigDict(frozen=True)

    segmentation: Literal["auto", "managed", "local"] = "auto"
    priority: Literal["low", "normal", "high"] = "normal"
    fail_fast: bool = False
    enhance_narrative: bool = True
    max_unit_duration: Optional[float] = Field(None, gt=0)
    overlap: Optional[float] = Field(None, ge=0)
    synthesis: SynthesisOptions = Field(default_factory=SynthesisOptions)

    @model_validator(mode="after")
    def _overlap_below_unit_duration(self) -> "JobOptions":
        if (
            self.overlap is not None
            and self.max_unit_duration is not None
            and self.overlap >= self.max_unit_duration
        ):
            raise ValueError("overlap must be smaller than max_unit_duration")
        return self


class BatchOptions(BaseModel):
    """Concurrency and failure policy for a batch."""

    model_config = ConfigDict(frozen=True)

    max_concurrent: int = Field(3, ge=1, le=10)
    parallel: bool = True
    continue_on_error: bool = True

    @property
    def limit(self) -> int:
        """Effective number of in-flight items."""
        return self.max_concurrent if self.parallel else 1

    @property
    def fail_fast(self) -> bool:
        return not self.continue_on_error
