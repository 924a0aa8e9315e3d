"""Speech-to-text via the OpenAI Whisper API."""
import logging
import re
from pathlib import Path
from typing import Any, List, Optional, Sequence

from openai import AsyncOpenAI

from clipcast.config import settings
from clipcast.pipeline.transcript import TranscriptSegment, TranscriptWord

logger = logging.getLogger(__name__)

_TERMINAL_PUNCT_RE = re.compile(r"[.!?]$")

# Segment breaking rules
MAX_PAUSE_SECONDS = 1.0
MAX_SEGMENT_SECONDS = 10.0


class TranscriptionError(Exception):
    """Transcription service failure."""
    pass


def group_words(
    words: Sequence[TranscriptWord],
    max_pause: float = MAX_PAUSE_SECONDS,
    max_segment: float = MAX_SEGMENT_SECONDS,
) -> List[TranscriptSegment]:
    """
    Group timed words into segments.

    A segment ends after a word with terminal punctuation, before a pause
    longer than ``max_pause``, once it spans more than ``max_segment``
    seconds, or at the last word.
    """
    segments: List[TranscriptSegment] = []
    current: List[TranscriptWord] = []

    for i, word in enumerate(words):
        current.append(word)

        next_word = words[i + 1] if i + 1 < len(words) else None
        should_break = (
            next_word is None
            or bool(_TERMINAL_PUNCT_RE.search(word.word.strip()))
            or next_word.start - word.end > max_pause
            or word.end - current[0].start > max_segment
        )

        if should_break:
            segments.append(TranscriptSegment(
                text=" ".join(w.word.strip() for w in current),
                start=current[0].start,
                end=current[-1].end,
                words=list(current),
            ))
            current = []

    return segments


def _word_from_api(item: Any) -> TranscriptWord:
    """Accept either SDK objects or plain dicts."""
    if isinstance(item, dict):
        return TranscriptWord(word=item["word"], start=float(item["start"]), end=float(item["end"]))
    return TranscriptWord(word=item.word, start=float(item.start), end=float(item.end))


class WhisperTranscriber:
    """Transcription collaborator backed by OpenAI's audio API."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: Optional[str] = None):
        self._client = client
        self.model = model or settings.transcription_model

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                timeout=settings.llm_timeout_seconds,
            )
        return self._client

    async def transcribe(self, source_path: Path) -> List[TranscriptSegment]:
        """
        Transcribe a media file into word-timed segments.

        Raises:
            TranscriptionError: If the file is missing or the API call fails
        """
        source_path = Path(source_path)
        if not source_path.exists():
            raise TranscriptionError(f"Media file not found: {source_path}")

        logger.info(f"Transcribing {source_path.name} with {self.model}")
        try:
            with open(source_path, "rb") as media_file:
                response = await self._get_client().audio.transcriptions.create(
                    file=media_file,
                    model=self.model,
                    response_format="verbose_json",
                    timestamp_granularities=["word", "segment"],
                )
        except Exception as e:
            raise TranscriptionError(f"Failed to transcribe audio: {e}") from e

        words = [_word_from_api(w) for w in (getattr(response, "words", None) or [])]
        segments = group_words(words)
        logger.info(f"Transcribed {len(words)} words into {len(segments)} segments")
        return segments
