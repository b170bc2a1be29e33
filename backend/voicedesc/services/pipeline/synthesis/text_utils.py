"""Text helpers shared by the synthesis views."""

import re

_SENTENCE_END = re.compile(r"[.!?](?=\s|$)")


def format_timestamp(seconds: float) -> str:
    """``M:SS``, or ``H:MM:SS`` once the offset reaches an hour."""
    total = int(max(seconds, 0))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def condense(text: str, limit: int) -> str:
    """Shorten ``text`` to at most ``limit`` characters.

    Cuts after the last sentence end at or before the limit; if there is
    none, hard-truncates and appends an ellipsis.
    """
    text = text.strip()
    if len(text) <= limit:
        return text
    ends = [m.end() for m in _SENTENCE_END.finditer(text) if m.end() <= limit]
    if ends:
        return text[:ends[-1]].strip()
    return text[:max(limit - 3, 0)].rstrip() + "..."


def word_count(text: str) -> int:
    return len(text.split())


def sentence_count(text: str) -> int:
    """Number of sentence terminators (runs of . ! ? count once)."""
    return len(re.split(r"[.!?]+", text)) - 1


def word_set(text: str) -> set:
    return {word for word in text.lower().split() if word}


def similarity(a: str, b: str) -> float:
    """Jaccard overlap of the two texts' lowercase word sets."""
    words_a, words_b = word_set(a), word_set(b)
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)
