"""
Speech synthesis for finished descriptions, using Microsoft Edge TTS.

Runs after the pipeline: a ``completed`` job is the signal that its
description can be voiced.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import List, Optional

import edge_tts

from voicedesc.core.exceptions import ProviderError, ValidationError
from voicedesc.core.logging import LogTimer, get_logger
from voicedesc.models.jobs import Job
from voicedesc.models.status import JobStatus

logger = get_logger(__name__, component="speech")

MAX_CHUNK_CHARS = 2500


def split_text(text: str, limit: int = MAX_CHUNK_CHARS) -> List[str]:
    """Split ``text`` into chunks of at most ``limit`` characters on sentence boundaries.

    A single sentence longer than ``limit`` is split on whitespace.
    """
    sentences = [s.strip() for s in re.split(r"(?<=[.!?])\s+", text.strip()) if s.strip()]
    chunks: List[str] = []
    current = ""
    for sentence in sentences:
        pieces = [sentence]
        if len(sentence) > limit:
            pieces, piece = [], ""
            for word in sentence.split():
                if piece and len(piece) + 1 + len(word) > limit:
                    pieces.append(piece)
                    piece = word
                else:
                    piece = f"{piece} {word}".strip()
            if piece:
                pieces.append(piece)
        for piece in pieces:
            if current and len(current) + 1 + len(piece) > limit:
                chunks.append(current)
                current = piece
            else:
                current = f"{current} {piece}".strip()
    if current:
        chunks.append(current)
    return chunks


class Speech(ABC):
    @abstractmethod
    async def synthesize(self, text: str) -> bytes:
        """Return encoded audio (MP3) for ``text``."""


class EdgeTTSSpeech(Speech):
    """Text-to-Speech using Microsoft Edge TTS"""

    DEFAULT_VOICE = "en-US-AriaNeural"

    def __init__(self, voice: Optional[str] = None, rate: str = "+0%", pitch: str = "+0Hz"):
        self.voice = voice or self.DEFAULT_VOICE
        self.rate = rate
        self.pitch = pitch

    async def _synthesize_chunk(self, text: str) -> bytes:
        communicate = edge_tts.Communicate(text, self.voice, rate=self.rate, pitch=self.pitch)
        audio = bytearray()
        async for chunk in communicate.stream():
            if chunk["type"] == "audio":
                audio.extend(chunk["data"])
        return bytes(audio)

    async def synthesize(self, text: str) -> bytes:
        if not text or not text.strip():
            raise ValidationError("Nothing to synthesize")
        chunks = split_text(text)
        audio = bytearray()
        with LogTimer(logger, f"speech synthesis ({len(chunks)} chunk(s))", level=logging.DEBUG):
            for index, chunk in enumerate(chunks):
                try:
                    audio.extend(await self._synthesize_chunk(chunk))
                except Exception as e:
                    raise ProviderError(
                        f"Speech synthesis failed: {e}",
                        detail={"chunk": index, "chunks": len(chunks)},
                    ) from e
        logger.info("Synthesized speech", extra={"chunks": len(chunks), "audio_bytes": len(audio)})
        return bytes(audio)


async def narrate_job(job: Job, speech: Speech, view: str = "accessibility") -> bytes:
    """Voice one view of a completed job's description.

    Raises:
        ValidationError: The job is not completed or the view is unknown
    """
    if job.status is not JobStatus.COMPLETED or job.result is None:
        raise ValidationError(
            f"Job {job.id} is not completed (status: {job.status.value})",
            {"job_id": job.id, "status": job.status.value},
        )
    try:
        text = job.result.view(view)
    except KeyError as e:
        raise ValidationError(str(e), {"view": view}) from e
    return await speech.synthesize(text)
