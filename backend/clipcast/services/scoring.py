"""LLM re-scoring of clip candidates."""
import logging
import re
from typing import Optional

from openai import AsyncOpenAI

from clipcast.config import settings
from clipcast.pipeline.detection import ClipCandidate

logger = logging.getLogger(__name__)

SCORING_SYSTEM_PROMPT = (
    "You are an expert video clip curator. Evaluate if this transcript segment would make "
    "an engaging short-form video clip for YouTube Shorts/TikTok. Respond with a score "
    "from 0-1 and a brief reason."
)

_NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)")


def parse_score(text: str) -> Optional[float]:
    """First number in the reply, clamped to [0, 1]; None if there is none."""
    match = _NUMBER_RE.search(text or "")
    if not match:
        return None
    return max(0.0, min(float(match.group(1)), 1.0))


class OpenAIClipScorer:
    """Refinement collaborator backed by an OpenAI chat model."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: Optional[str] = None):
        self._client = client
        self.model = model or settings.scoring_model

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                timeout=settings.llm_timeout_seconds,
            )
        return self._client

    async def score(self, candidate: ClipCandidate) -> Optional[float]:
        response = await self._get_client().chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SCORING_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": (
                        f'Transcript: "{candidate.transcript_text}"\n\n'
                        f"Current score: {candidate.score}\n\n"
                        "Is this engaging for short-form video? Give a score 0-1 and reason."
                    ),
                },
            ],
            max_tokens=100,
            temperature=0.3,
        )
        return parse_score(response.choices[0].message.content or "")
