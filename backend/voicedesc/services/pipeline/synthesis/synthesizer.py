"""
Description Synthesizer

Merges the ordered per-unit analyses of a job into the final description:
four text views (narrative, timestamped, technical, accessibility) plus
key moments, highlights, chapter markers and metadata.
"""

import math
import re
from collections import Counter
from typing import Dict, List, Optional, Sequence

from voicedesc.core.exceptions import SynthesisFailed
from voicedesc.core.logging import get_logger
from voicedesc.models.jobs import (
    Chapter,
    KeyMoment,
    SynthesisMetadata,
    SynthesizedDescription,
    UnitAnalysis,
)
from voicedesc.models.options import SynthesisOptions

from .narrative import NarrativeEnhancer
from .text_utils import condense, format_timestamp, sentence_count, similarity, word_count

logger = get_logger(__name__, component="synthesizer")

TRANSITIONS = ["Next, ", "Then, ", "Following this, ", "Subsequently, ", "Meanwhile, "]
IMPORTANCE_RANK = {"high": 0, "medium": 1, "low": 2}

ON_SCREEN_TEXT_PATTERN = re.compile(
    r"(?:text|title|caption|label|sign|banner)(?:\s+(?:reads?|says?|shows?))?\s*[:\s]+[\"']([^\"']+)[\"']",
    re.IGNORECASE,
)

METHOD_RULE_BASED = "rule-based"
METHOD_AI_ENHANCED = "ai-enhanced"


def order_analyses(analyses: Sequence[UnitAnalysis]) -> List[UnitAnalysis]:
    """Analyses sorted by start offset (stable for equal offsets)."""
    return sorted(analyses, key=lambda a: (a.start_offset, a.end_offset))


def transition_for(index: int, total: int) -> str:
    if index == 0:
        return "The video begins with "
    if index == total - 1:
        return "Finally, "
    if index == total // 2:
        return "In the middle, "
    return TRANSITIONS[index % len(TRANSITIONS)]


def importance_of(analysis: UnitAnalysis, options: SynthesisOptions) -> str:
    actions = len(analysis.actions)
    if analysis.confidence > options.high_importance_confidence and actions > options.high_importance_actions:
        return "high"
    if analysis.confidence > options.medium_importance_confidence and actions > options.medium_importance_actions:
        return "medium"
    return "low"


def rule_based_narrative(analyses: Sequence[UnitAnalysis]) -> str:
    total = len(analyses)
    return " ".join(
        f"{transition_for(i, total)}{analysis.description.strip()}"
        for i, analysis in enumerate(analyses)
    )


def timestamped_view(analyses: Sequence[UnitAnalysis], options: SynthesisOptions) -> str:
    return "\n\n".join(
        f"[{format_timestamp(a.start_offset)} - {format_timestamp(a.end_offset)}] "
        f"{condense(a.description, options.max_segment_length)}"
        for a in analyses
    )


def _average_confidence(analyses: Sequence[UnitAnalysis]) -> float:
    if not analyses:
        return 0.0
    return sum(a.confidence for a in analyses) / len(analyses)


def _total_duration(analyses: Sequence[UnitAnalysis]) -> float:
    return max((a.end_offset for a in analyses), default=0.0)


def technical_view(analyses: Sequence[UnitAnalysis]) -> str:
    lines = [
        "## Technical Analysis Summary",
        f"Total Segments: {len(analyses)}",
        f"Duration: {format_timestamp(_total_duration(analyses))}",
        f"Average Confidence: {_average_confidence(analyses):.2f}",
        "",
        "## Segment Details",
    ]
    for a in analyses:
        lines.extend([
            f"### Segment {a.unit_id}",
            f"Time: {format_timestamp(a.start_offset)} - {format_timestamp(a.end_offset)}",
            f"Confidence: {a.confidence * 100:.1f}%",
            f"Visual Elements: {', '.join(a.visual_elements) or 'None identified'}",
            f"Actions: {', '.join(a.actions) or 'None identified'}",
            f"Context: {a.context}",
            "",
            f"Description: {a.description}",
            "---",
        ])
    return "\n".join(lines)


def essential_visual_info(analysis: UnitAnalysis) -> str:
    essential = []
    if analysis.visual_elements:
        essential.append(", ".join(analysis.visual_elements[:3]))
    if analysis.actions:
        essential.append(" and ".join(analysis.actions[:2]))
    if analysis.context and len(analysis.context) > 20:
        essential.append(analysis.context)
    return ". ".join(essential)


def on_screen_text(analyses: Sequence[UnitAnalysis]) -> List[str]:
    found: Dict[str, None] = {}
    for a in analyses:
        for match in ON_SCREEN_TEXT_PATTERN.finditer(a.description):
            found.setdefault(match.group(0).strip(), None)
    return list(found)


def accessibility_view(analyses: Sequence[UnitAnalysis]) -> str:
    lines = ["Audio Description Track", ""]
    for a in analyses:
        essential = essential_visual_info(a)
        if essential:
            lines.append(f"{format_timestamp(a.start_offset)}: {essential}")
    texts = on_screen_text(analyses)
    if texts:
        lines.extend(["", "On-screen text and visual cues:"])
        lines.extend(f"- {text}" for text in texts)
    return "\n".join(lines)


def key_moments(analyses: Sequence[UnitAnalysis], options: SynthesisOptions) -> List[KeyMoment]:
    moments = []
    for a in analyses:
        importance = importance_of(a, options)
        if importance != "low" or len(a.actions) > options.key_moment_action_floor:
            moments.append(
                KeyMoment(
                    timestamp=a.start_offset,
                    description=condense(a.description, options.key_moment_length),
                    importance=importance,
                )
            )
    moments.sort(key=lambda m: (IMPORTANCE_RANK[m.importance], m.timestamp))
    return moments


def highlights(analyses: Sequence[UnitAnalysis], options: SynthesisOptions) -> List[str]:
    seen: Dict[str, None] = {}
    for a in analyses:
        for element in a.visual_elements:
            if len(element) >= options.min_highlight_element_length:
                seen.setdefault(element, None)
        for action in a.actions:
            if len(action) >= options.min_highlight_action_length:
                seen.setdefault(action, None)
    return list(seen)[:options.max_highlights]


def _chapter(group: Sequence[UnitAnalysis], options: SynthesisOptions) -> Chapter:
    timestamp = group[0].start_offset
    counts = Counter(term for a in group for term in (*a.visual_elements, *a.actions))
    common = [term for term, _ in counts.most_common(3)]
    title = " & ".join(common) if common else f"Scene {math.floor(timestamp / 60) + 1}"
    text = " ".join(a.description for a in group)
    return Chapter(
        timestamp=timestamp,
        title=title,
        description=text[:options.chapter_description_length] + "...",
    )


def chapters(analyses: Sequence[UnitAnalysis], options: SynthesisOptions) -> List[Chapter]:
    """Group consecutive units by context similarity and elapsed time.

    Only produced when the input lasts at least twice the minimum chapter
    duration.
    """
    max_span = options.min_chapter_duration * 2
    if _total_duration(analyses) < max_span:
        return []

    result: List[Chapter] = []
    group: List[UnitAnalysis] = []
    for a in analyses:
        if not group:
            group = [a]
            continue
        if (
            similarity(group[0].context, a.context) < options.chapter_similarity
            or a.end_offset - group[0].start_offset > max_span
        ):
            result.append(_chapter(group, options))
            group = [a]
        else:
            group.append(a)
    if group:
        result.append(_chapter(group, options))
    return result


def metadata_for(analyses: Sequence[UnitAnalysis], method: str) -> SynthesisMetadata:
    text = " ".join(a.description for a in analyses)
    return SynthesisMetadata(
        word_count=word_count(text),
        sentence_count=sentence_count(text),
        average_confidence=_average_confidence(analyses),
        total_provider_cost=sum(a.provider_cost for a in analyses),
        unique_elements=len({e for a in analyses for e in a.visual_elements}),
        unique_actions=len({act for a in analyses for act in a.actions}),
        synthesis_method=method,
        total_duration=_total_duration(analyses),
        unit_count=len(analyses),
        degraded_units=sum(1 for a in analyses if a.degraded),
    )


class DescriptionSynthesizer:
    def __init__(self, enhancer: Optional[NarrativeEnhancer] = None):
        self.enhancer = enhancer

    async def _narrative(
        self,
        analyses: Sequence[UnitAnalysis],
        options: SynthesisOptions,
        enhance: bool,
    ) -> tuple:
        rule_based = rule_based_narrative(analyses)
        if not (enhance and self.enhancer):
            return rule_based, METHOD_RULE_BASED

        joined = "\n\n".join(a.description for a in analyses)
        try:
            enhanced = await self.enhancer.enhance(joined, options.target_length)
        except Exception as e:
            logger.warning(
                "Narrative enhancement failed, using rule-based narrative",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            return rule_based, METHOD_RULE_BASED
        if not enhanced or not enhanced.strip():
            logger.warning("Narrative enhancement returned no text, using rule-based narrative")
            return rule_based, METHOD_RULE_BASED
        return enhanced.strip(), METHOD_AI_ENHANCED

    async def synthesize(
        self,
        analyses: Sequence[UnitAnalysis],
        options: Optional[SynthesisOptions] = None,
        enhance: bool = True,
    ) -> SynthesizedDescription:
        """Build the description for a complete, non-empty analysis sequence.

        Raises:
            SynthesisFailed: No analyses, or any error while building the views
        """
        options = options or SynthesisOptions()
        if not analyses:
            raise SynthesisFailed("No analyses to synthesize")

        ordered = order_analyses(analyses)
        try:
            narrative, method = await self._narrative(ordered, options, enhance)
            if options.target_length:
                narrative = condense(narrative, options.target_length)
            result = SynthesizedDescription(
                narrative=narrative,
                timestamped=timestamped_view(ordered, options),
                technical=technical_view(ordered),
                accessibility=accessibility_view(ordered),
                key_moments=tuple(key_moments(ordered, options)),
                highlights=tuple(highlights(ordered, options)),
                chapters=tuple(chapters(ordered, options)),
                metadata=metadata_for(ordered, method),
            )
        except SynthesisFailed:
            raise
        except Exception as e:
            raise SynthesisFailed(
                f"Failed to synthesize descriptions: {e}",
                {"type": type(e).__name__},
            ) from e

        logger.info(
            "Synthesized description",
            extra={
                "units": len(ordered),
                "method": method,
                "word_count": result.metadata.word_count,
                "chapters": len(result.chapters),
            },
        )
        return result
