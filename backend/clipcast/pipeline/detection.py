"""Candidate detection.

Scans a time-ordered transcript for the most engaging sub-intervals:
a sliding window over segment indices proposes every window whose
duration fits the clip bounds, a heuristic scores its text, and a greedy
pass keeps the highest-scoring windows that do not overlap.
"""
import logging
import re
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from clipcast.pipeline.transcript import TranscriptSegment
from clipcast.utils.best_effort import BestEffortResult

logger = logging.getLogger(__name__)

_PROPER_NOUN_RE = re.compile(r"\b[A-Z][a-z]+\b")

VIRAL_KEYWORDS: Tuple[str, ...] = (
    "what if", "never", "wait", "actually", "literally", "crazy", "insane",
    "unbelievable", "shocking", "secret", "truth", "nobody", "everyone",
    "always", "finally", "revealed", "exposed", "mind-blowing", "game-changer",
)

ENGAGEMENT_PHRASES: Tuple[str, ...] = (
    "let me tell you", "here's the thing", "you won't believe",
    "i'm telling you", "listen to this", "check this out", "get this",
)


@dataclass
class DetectionConfig:
    """Scoring weights, caps and window bounds for candidate detection."""

    # Window bounds
    min_clip_seconds: float = 15.0
    max_clip_seconds: float = 60.0
    score_threshold: float = 0.3  # Candidates must score strictly above this

    # Phrase lists (matched against lower-cased window text)
    viral_keywords: Tuple[str, ...] = VIRAL_KEYWORDS
    engagement_phrases: Tuple[str, ...] = ENGAGEMENT_PHRASES

    # Per-hit weights and per-signal caps
    keyword_weight: float = 0.05
    keyword_cap: float = 0.3
    phrase_weight: float = 0.1
    phrase_cap: float = 0.2
    question_weight: float = 0.05
    question_cap: float = 0.15
    exclamation_weight: float = 0.05
    exclamation_cap: float = 0.15
    proper_noun_weight: float = 0.02
    proper_noun_cap: float = 0.1

    # Pacing bonus band, words per second
    pacing_min_wps: float = 2.5
    pacing_max_wps: float = 4.0
    pacing_bonus: float = 0.1

    def to_dict(self) -> dict:
        """Convert config to dictionary for serialization."""
        return {
            "min_clip_seconds": self.min_clip_seconds,
            "max_clip_seconds": self.max_clip_seconds,
            "score_threshold": self.score_threshold,
            "viral_keywords": list(self.viral_keywords),
            "engagement_phrases": list(self.engagement_phrases),
            "keyword_weight": self.keyword_weight,
            "keyword_cap": self.keyword_cap,
            "phrase_weight": self.phrase_weight,
            "phrase_cap": self.phrase_cap,
            "question_weight": self.question_weight,
            "question_cap": self.question_cap,
            "exclamation_weight": self.exclamation_weight,
            "exclamation_cap": self.exclamation_cap,
            "proper_noun_weight": self.proper_noun_weight,
            "proper_noun_cap": self.proper_noun_cap,
            "pacing_min_wps": self.pacing_min_wps,
            "pacing_max_wps": self.pacing_max_wps,
            "pacing_bonus": self.pacing_bonus,
        }


# Default configuration instance
DEFAULT_DETECTION_CONFIG = DetectionConfig()


@dataclass
class ClipCandidate:
    """A scored, time-bounded transcript span proposed as a clip."""
    start: float
    end: float
    duration: float
    score: float
    transcript_text: str
    rationale: str

    def overlaps(self, other: "ClipCandidate") -> bool:
        """Half-open [start, end) interval intersection test."""
        return not (self.end <= other.start or self.start >= other.end)

    def to_dict(self) -> dict:
        return {
            "start": self.start,
            "end": self.end,
            "duration": self.duration,
            "score": self.score,
            "transcript_text": self.transcript_text,
            "rationale": self.rationale,
        }


class ClipScorer(Protocol):
    """External collaborator that re-scores a single candidate."""

    async def score(self, candidate: ClipCandidate) -> Optional[float]:
        """Return a score in [0, 1], or None when no number was produced."""


def count_phrase_hits(lower_text: str, phrases: Sequence[str]) -> int:
    """Count occurrences of every phrase in already lower-cased text."""
    return sum(lower_text.count(phrase) for phrase in phrases)


def count_signals(text: str, config: DetectionConfig = DEFAULT_DETECTION_CONFIG) -> Dict[str, int]:
    """Raw signal counts for a window of text."""
    lower_text = text.lower()
    return {
        "keywords": count_phrase_hits(lower_text, config.viral_keywords),
        "phrases": count_phrase_hits(lower_text, config.engagement_phrases),
        "questions": text.count("?"),
        "exclamations": text.count("!"),
        "proper_nouns": len(_PROPER_NOUN_RE.findall(text)),
        "words": len(text.split()),
    }


def compute_engagement_score(
    text: str,
    window: Sequence[TranscriptSegment],
    config: DetectionConfig = DEFAULT_DETECTION_CONFIG,
) -> float:
    """
    Score a window of transcript text.

    Purely additive: each signal is weighted per hit and capped on its
    own, then the total is clamped to [0, 1].

    Args:
        text: Concatenated window text
        window: The segments the text came from (used for pacing)
        config: Detection configuration

    Returns:
        Engagement score in [0, 1]
    """
    signals = count_signals(text, config)

    score = 0.0
    score += min(signals["keywords"] * config.keyword_weight, config.keyword_cap)
    score += min(signals["phrases"] * config.phrase_weight, config.phrase_cap)
    score += min(signals["questions"] * config.question_weight, config.question_cap)
    score += min(signals["exclamations"] * config.exclamation_weight, config.exclamation_cap)
    score += min(signals["proper_nouns"] * config.proper_noun_weight, config.proper_noun_cap)

    if window:
        duration = window[-1].end - window[0].start
        if duration > 0:
            words_per_second = signals["words"] / duration
            if config.pacing_min_wps <= words_per_second <= config.pacing_max_wps:
                score += config.pacing_bonus

    return max(0.0, min(score, 1.0))


def describe_score(text: str, config: DetectionConfig = DEFAULT_DETECTION_CONFIG) -> str:
    """Human-readable list of the signals that fired. Not used for ranking."""
    signals = count_signals(text, config)
    reasons = []

    if signals["keywords"] > 0:
        reasons.append("viral keywords")
    if signals["questions"] > 0:
        reasons.append("engaging question")
    if signals["exclamations"] > 0:
        reasons.append("high energy")
    if signals["proper_nouns"] > 0:
        reasons.append("specific examples")

    return ", ".join(reasons) if reasons else "good pacing"


def generate_candidates(
    segments: Sequence[TranscriptSegment],
    max_duration: float,
    config: DetectionConfig = DEFAULT_DETECTION_CONFIG,
) -> List[ClipCandidate]:
    """
    Propose every window whose duration fits the clip bounds and whose
    score clears the threshold.

    For each start index the end index grows while
    ``segments[end].end - segments[start].start <= max_duration``.
    """
    candidates = []

    for i in range(len(segments)):
        window_start = segments[i].start
        texts: List[str] = []

        for j in range(i, len(segments)):
            duration = segments[j].end - window_start
            if duration > max_duration:
                break

            texts.append(segments[j].text)

            if duration < config.min_clip_seconds:
                continue

            window = segments[i:j + 1]
            text = " ".join(texts)
            score = compute_engagement_score(text, window, config)

            if score > config.score_threshold:
                candidates.append(ClipCandidate(
                    start=window_start,
                    end=segments[j].end,
                    duration=duration,
                    score=score,
                    transcript_text=text.strip(),
                    rationale=describe_score(text, config),
                ))

    return candidates


def remove_overlaps(candidates: Sequence[ClipCandidate]) -> List[ClipCandidate]:
    """
    Keep the highest-scoring candidates that do not overlap.

    Greedy by score: a candidate is accepted only if its [start, end)
    interval does not intersect any already accepted one. Ties keep
    their input order.
    """
    ranked = sorted(candidates, key=lambda c: c.score, reverse=True)
    kept: List[ClipCandidate] = []

    for candidate in ranked:
        if not any(candidate.overlaps(existing) for existing in kept):
            kept.append(candidate)

    return kept


def detect_clips(
    segments: Sequence[TranscriptSegment],
    max_duration: Optional[float] = None,
    top_n: int = 10,
    config: Optional[DetectionConfig] = None,
) -> List[ClipCandidate]:
    """
    Detect the top clip candidates in a transcript.

    Deterministic for identical inputs and configuration.

    Args:
        segments: Time-ordered transcript segments
        max_duration: Longest allowed clip (defaults to config.max_clip_seconds)
        top_n: Maximum number of candidates to return
        config: Detection configuration

    Returns:
        Non-overlapping candidates sorted by score descending, at most top_n
    """
    config = config or DEFAULT_DETECTION_CONFIG
    if max_duration is None:
        max_duration = config.max_clip_seconds

    if top_n <= 0 or not segments:
        return []

    candidates = generate_candidates(segments, max_duration, config)
    kept = remove_overlaps(candidates)

    logger.info(
        f"Detection: {len(segments)} segments -> {len(candidates)} windows "
        f"-> {len(kept)} non-overlapping -> top {min(top_n, len(kept))}"
    )
    return kept[:top_n]


async def refine_candidate(
    candidate: ClipCandidate,
    scorer: ClipScorer,
) -> BestEffortResult[ClipCandidate]:
    """
    Ask an external scorer to re-score a candidate.

    When the scorer returns a number the new score is the mean of the
    heuristic score and the external one. Any failure keeps the original
    candidate; the result's ``value`` is always a usable candidate.
    """
    try:
        external = await scorer.score(candidate)
    except Exception as e:
        logger.debug(f"Refinement failed for {candidate.start:.1f}-{candidate.end:.1f}s: {e}")
        return BestEffortResult.failed(str(e) or type(e).__name__, value=candidate)

    if external is None:
        return BestEffortResult.failed("scorer returned no score", value=candidate)

    external = max(0.0, min(float(external), 1.0))
    refined = replace(candidate, score=(candidate.score + external) / 2)
    return BestEffortResult.ok(refined)
