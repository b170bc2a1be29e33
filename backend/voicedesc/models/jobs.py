"""
Job record and pipeline data types.

All records are frozen: a stage never edits a record in place, it builds a
replacement (``dataclasses.replace``) and hands it to the job store.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .options import JobOptions
from .status import JobStatus, PipelineStep


def _now() -> str:
    return datetime.now().isoformat()


def _unique(values: Iterable[str]) -> Tuple[str, ...]:
    """Deduplicate while keeping first-seen order."""
    seen: Dict[str, None] = {}
    for value in values:
        value = str(value).strip()
        if value and value not in seen:
            seen[value] = None
    return tuple(seen)


@dataclass(frozen=True)
class MediaInput:
    """Identity and shape of one input item."""
    ref: str
    kind: str = "video"  # "video" or "image"
    size_bytes: int = 0
    duration: Optional[float] = None  # seconds; None for images
    mime_type: Optional[str] = None
    # Optional scene boundary hints (seconds) used by local chunking
    boundaries: Tuple[float, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ref": self.ref,
            "kind": self.kind,
            "size_bytes": self.size_bytes,
            "duration": self.duration,
            "mime_type": self.mime_type,
            "boundaries": list(self.boundaries),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MediaInput":
        return cls(
            ref=data["ref"],
            kind=data.get("kind", "video"),
            size_bytes=data.get("size_bytes", 0),
            duration=data.get("duration"),
            mime_type=data.get("mime_type"),
            boundaries=tuple(data.get("boundaries") or ()),
        )


@dataclass(frozen=True)
class Unit:
    """One independently analyzable slice of the input."""
    id: str
    start_offset: float
    end_offset: float
    confidence: float = 1.0
    size_bytes: int = 0

    @property
    def duration(self) -> float:
        return self.end_offset - self.start_offset

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "start_offset": self.start_offset,
            "end_offset": self.end_offset,
            "confidence": self.confidence,
            "size_bytes": self.size_bytes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Unit":
        return cls(
            id=data["id"],
            start_offset=data["start_offset"],
            end_offset=data["end_offset"],
            confidence=data.get("confidence", 1.0),
            size_bytes=data.get("size_bytes", 0),
        )


@dataclass(frozen=True)
class UnitAnalysis:
    """Semantic result for one unit.

    ``degraded`` marks a fallback substituted after retries ran out; such
    analyses always have confidence 0 and no elements or actions.
    """
    unit_id: str
    description: str
    visual_elements: Tuple[str, ...] = ()
    actions: Tuple[str, ...] = ()
    context: str = ""
    confidence: float = 0.0
    provider_cost: float = 0.0
    start_offset: float = 0.0
    end_offset: float = 0.0
    degraded: bool = False

    def __post_init__(self):
        object.__setattr__(self, "visual_elements", _unique(self.visual_elements))
        object.__setattr__(self, "actions", _unique(self.actions))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "unit_id": self.unit_id,
            "description": self.description,
            "visual_elements": list(self.visual_elements),
            "actions": list(self.actions),
            "context": self.context,
            "confidence": self.confidence,
            "provider_cost": self.provider_cost,
            "start_offset": self.start_offset,
            "end_offset": self.end_offset,
            "degraded": self.degraded,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UnitAnalysis":
        return cls(
            unit_id=data["unit_id"],
            description=data.get("description", ""),
            visual_elements=tuple(data.get("visual_elements") or ()),
            actions=tuple(data.get("actions") or ()),
            context=data.get("context", ""),
            confidence=data.get("confidence", 0.0),
            provider_cost=data.get("provider_cost", 0.0),
            start_offset=data.get("start_offset", 0.0),
            end_offset=data.get("end_offset", 0.0),
            degraded=data.get("degraded", False),
        )


@dataclass(frozen=True)
class KeyMoment:
    timestamp: float
    description: str
    importance: str  # "high" | "medium" | "low"

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "description": self.description, "importance": self.importance}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KeyMoment":
        return cls(timestamp=data["timestamp"], description=data["description"], importance=data["importance"])


@dataclass(frozen=True)
class Chapter:
    timestamp: float
    title: str
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "title": self.title, "description": self.description}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Chapter":
        return cls(timestamp=data["timestamp"], title=data["title"], description=data["description"])


@dataclass(frozen=True)
class SynthesisMetadata:
    word_count: int
    sentence_count: int
    average_confidence: float
    total_provider_cost: float
    unique_elements: int
    unique_actions: int
    synthesis_method: str  # "rule-based" | "ai-enhanced"
    total_duration: float
    unit_count: int = 0
    degraded_units: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "word_count": self.word_count,
            "sentence_count": self.sentence_count,
            "average_confidence": self.average_confidence,
            "total_provider_cost": self.total_provider_cost,
            "unique_elements": self.unique_elements,
            "unique_actions": self.unique_actions,
            "synthesis_method": self.synthesis_method,
            "total_duration": self.total_duration,
            "unit_count": self.unit_count,
            "degraded_units": self.degraded_units,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SynthesisMetadata":
        return cls(**data)


@dataclass(frozen=True)
class SynthesizedDescription:
    narrative: str
    timestamped: str
    technical: str
    accessibility: str
    key_moments: Tuple[KeyMoment, ...]
    highlights: Tuple[str, ...]
    chapters: Tuple[Chapter, ...]
    metadata: SynthesisMetadata

    VIEWS = ("narrative", "timestamped", "technical", "accessibility")

    def view(self, name: str) -> str:
        if name not in self.VIEWS:
            raise KeyError(f"Unknown description view: {name}")
        return getattr(self, name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "narrative": self.narrative,
            "timestamped": self.timestamped,
            "technical": self.technical,
            "accessibility": self.accessibility,
            "key_moments": [moment.to_dict() for moment in self.key_moments],
            "highlights": list(self.highlights),
            "chapters": [chapter.to_dict() for chapter in self.chapters],
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SynthesizedDescription":
        return cls(
            narrative=data["narrative"],
            timestamped=data["timestamped"],
            technical=data["technical"],
            accessibility=data["accessibility"],
            key_moments=tuple(KeyMoment.from_dict(m) for m in data.get("key_moments", [])),
            highlights=tuple(data.get("highlights", [])),
            chapters=tuple(Chapter.from_dict(c) for c in data.get("chapters", [])),
            metadata=SynthesisMetadata.from_dict(data["metadata"]),
        )


@dataclass(frozen=True)
class JobError:
    code: str
    message: str
    detail: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "detail": self.detail}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobError":
        return cls(code=data["code"], message=data.get("message", ""), detail=data.get("detail") or {})


@dataclass(frozen=True)
class Job:
    id: str
    media: MediaInput
    options: JobOptions = field(default_factory=JobOptions)
    strategy: str = "local"
    status: JobStatus = JobStatus.PENDING
    step: PipelineStep = PipelineStep.UPLOAD
    progress: float = 0.0
    message: str = "Job created"
    segmentation_handle: Optional[str] = None
    units: Optional[Tuple[Unit, ...]] = None
    analyses: Tuple[UnitAnalysis, ...] = ()
    result: Optional[SynthesizedDescription] = None
    error: Optional[JobError] = None
    version: int = 0
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    def evolve(self, **changes: Any) -> "Job":
        """Return a copy with ``changes`` applied."""
        return replace(self, **changes)

    def pending_units(self) -> List[Unit]:
        """Units that have no analysis yet, in unit order."""
        done = {analysis.unit_id for analysis in self.analyses}
        return [unit for unit in (self.units or ()) if unit.id not in done]

    @property
    def analyzed_count(self) -> int:
        return len(self.analyses)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "media": self.media.to_dict(),
            "options": self.options.model_dump(),
            "strategy": self.strategy,
            "status": self.status.value,
            "step": self.step.value,
            "progress": self.progress,
            "message": self.message,
            "segmentation_handle": self.segmentation_handle,
            "units": [unit.to_dict() for unit in self.units] if self.units is not None else None,
            "analyses": [analysis.to_dict() for analysis in self.analyses],
            "result": self.result.to_dict() if self.result else None,
            "error": self.error.to_dict() if self.error else None,
            "version": self.version,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Job":
        units = data.get("units")
        return cls(
            id=data["id"],
            media=MediaInput.from_dict(data["media"]),
            options=JobOptions.model_validate(data.get("options") or {}),
            strategy=data.get("strategy", "local"),
            status=JobStatus(data["status"]),
            step=PipelineStep(data.get("step", PipelineStep.UPLOAD.value)),
            progress=data.get("progress", 0.0),
            message=data.get("message", ""),
            segmentation_handle=data.get("segmentation_handle"),
            units=tuple(Unit.from_dict(u) for u in units) if units is not None else None,
            analyses=tuple(UnitAnalysis.from_dict(a) for a in data.get("analyses", [])),
            result=SynthesizedDescription.from_dict(data["result"]) if data.get("result") else None,
            error=JobError.from_dict(data["error"]) if data.get("error") else None,
            version=data.get("version", 0),
            created_at=data.get("created_at", _now()),
            updated_at=data.get("updated_at", _now()),
        )
