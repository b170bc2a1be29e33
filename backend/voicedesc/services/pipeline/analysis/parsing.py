"""
Parsing of analysis model output.

Models are asked for JSON, but some (notably small local ones) answer in
prose. JSON is tried first; prose falls back to keyword heuristics.
"""

import json
import re
from typing import Any, Dict, List, Optional

# ============================================================================
# JSON extraction
# ============================================================================

def extract_largest_json_object(text: str) -> Optional[str]:
    """Return the largest balanced ``{...}`` block in ``text``.

    Double-quoted string literals (with escapes) are skipped so that braces
    inside strings do not affect balancing.
    """
    if not text:
        return None

    in_string = False
    escape = False
    depth = 0
    start_idx: Optional[int] = None
    best: Optional[str] = None

    for i, ch in enumerate(text):
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == "{":
            if depth == 0:
                start_idx = i
            depth += 1
        elif ch == "}" and depth:
            depth -= 1
            if depth == 0 and start_idx is not None:
                candidate = text[start_idx:i + 1]
                if best is None or len(candidate) > len(best):
                    best = candidate
                start_idx = None
    return best


def parse_json_response(text: str) -> Optional[Dict[str, Any]]:
    """Parse a JSON object from a model response, tolerating code fences and chatter."""
    if not text:
        return None
    cleaned = re.sub(r"^```(?:json)?\s*|\s*```$", "", text.strip())
    try:
        data = json.loads(cleaned)
        return data if isinstance(data, dict) else None
    except ValueError:
        pass
    candidate = extract_largest_json_object(cleaned)
    if candidate is None:
        return None
    try:
        data = json.loads(candidate)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


# ============================================================================
# Prose heuristics
# ============================================================================

VISUAL_ELEMENT_PATTERN = re.compile(r"(?:see|shows|displays|contains|features)\s+([^,.]+)", re.IGNORECASE)
ACTION_PATTERN = re.compile(r"\b(\w+ing)\b", re.IGNORECASE)
NON_ACTION_WORDS = {"showing", "displaying", "containing"}


def prose_confidence(text: str) -> float:
    """Longer answers are treated as more confident, capped at 0.95."""
    return min(0.95, 0.7 + (len(text) / 1000) * 0.25)


def parse_frame_analysis(text: str) -> Dict[str, Any]:
    """Extract elements, actions and context from a prose description."""
    visual_elements = [match.strip() for match in VISUAL_ELEMENT_PATTERN.findall(text)]
    actions = [
        word.lower()
        for word in ACTION_PATTERN.findall(text)
        if word.lower() not in NON_ACTION_WORDS
    ]
    sentences = [s.strip() for s in re.split(r"[.!?]", text) if s.strip()]
    return {
        "description": text.strip(),
        "visual_elements": visual_elements,
        "actions": actions,
        "context": sentences[0] if sentences else "",
        "confidence": prose_confidence(text),
    }


def _string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    return []


def parse_analysis_text(text: str) -> Dict[str, Any]:
    """Normalize a model answer (JSON or prose) into analysis fields."""
    data = parse_json_response(text)
    if not data or not str(data.get("description", "")).strip():
        return parse_frame_analysis(text)

    description = str(data["description"]).strip()
    try:
        confidence = float(data.get("confidence", prose_confidence(description)))
    except (TypeError, ValueError):
        confidence = prose_confidence(description)
    context = str(data.get("context") or "").strip()
    if not context:
        sentences = [s.strip() for s in re.split(r"[.!?]", description) if s.strip()]
        context = sentences[0] if sentences else ""
    return {
        "description": description,
        "visual_elements": _string_list(data.get("visual_elements") or data.get("visualElements")),
        "actions": _string_list(data.get("actions")),
        "context": context,
        "confidence": max(0.0, min(confidence, 1.0)),
    }
