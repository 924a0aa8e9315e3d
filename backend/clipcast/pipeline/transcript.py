"""Transcript segment types and normalization.

Segments arrive from the transcription service in non-decreasing start
order. They are not guaranteed to be gap-free or non-overlapping.
"""
import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List

_WHITESPACE_RE = re.compile(r"\s+")
_SPACE_BEFORE_PUNCT_RE = re.compile(r"\s([.,!?])")


@dataclass
class TranscriptWord:
    """A single timed word."""
    word: str
    start: float
    end: float

    def to_dict(self) -> Dict[str, Any]:
        return {"word": self.word, "start": self.start, "end": self.end}


@dataclass
class TranscriptSegment:
    """A contiguous, timestamped span of transcript text."""
    text: str
    start: float
    end: float
    words: List[TranscriptWord] = field(default_factory=list)

    @property
    def duration(self) -> float:
        return self.end - self.start

    def __repr__(self):
        return f"TranscriptSegment({self.start:.2f}-{self.end:.2f}, {self.text[:30]!r})"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "start": self.start,
            "end": self.end,
            "words": [w.to_dict() for w in self.words],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TranscriptSegment":
        """Build a segment from a plain dict (JSON transcript files)."""
        start = float(data.get("start", 0.0))
        end = float(data.get("end", start))
        if end < start:
            raise ValueError(f"Segment end {end} is before start {start}")
        words = [
            TranscriptWord(
                word=str(w.get("word", "")),
                start=float(w.get("start", start)),
                end=float(w.get("end", w.get("start", start))),
            )
            for w in data.get("words") or []
        ]
        return cls(text=str(data.get("text", "")), start=start, end=end, words=words)


def clean_text(text: str) -> str:
    """Collapse whitespace and drop spaces before punctuation."""
    text = _WHITESPACE_RE.sub(" ", text)
    text = _SPACE_BEFORE_PUNCT_RE.sub(r"\1", text)
    return text.strip()


def clean_transcript(segments: Iterable[TranscriptSegment]) -> List[TranscriptSegment]:
    """
    Normalize segment text.

    Pure and idempotent: clean_transcript(clean_transcript(x)) == clean_transcript(x).
    Timings and words are left untouched.
    """
    return [replace(seg, text=clean_text(seg.text)) for seg in segments]


def segments_in_range(
    segments: Iterable[TranscriptSegment],
    start: float,
    end: float,
) -> List[TranscriptSegment]:
    """Return the segments that lie fully inside [start, end]."""
    return [seg for seg in segments if seg.start >= start and seg.end <= end]


def segments_from_json(payload: Any) -> List[TranscriptSegment]:
    """
    Parse a transcript JSON payload.

    Accepts either a bare list of segments or an object with a
    ``segments`` key.
    """
    if isinstance(payload, dict):
        payload = payload.get("segments", [])
    if not isinstance(payload, list):
        raise ValueError("Transcript JSON must be a list of segments")
    return [TranscriptSegment.from_dict(item) for item in payload]
