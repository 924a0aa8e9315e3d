"""Title, caption and hashtag generation for clips."""
import json
import logging
import random
import re
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from clipcast.config import settings
from clipcast.pipeline.collaborators import CaptionResult

logger = logging.getLogger(__name__)

CAPTION_PROMPT = """You are a viral short-form video content expert specializing in YouTube Shorts, TikTok, and Instagram Reels.

Given the following video clip transcript, create engaging content that maximizes views and engagement:

TRANSCRIPT:
{transcript}

Generate:
1. A punchy, attention-grabbing TITLE (5-10 words max, capitalize key words)
2. A short CAPTION (8-14 words) that creates curiosity or emotion
3. 8-12 relevant HASHTAGS (mix of broad and niche, trending style)
4. A full DESCRIPTION (2-3 sentences) expanding on the clip

Format your response as JSON:
{{
  "title": "...",
  "caption": "...",
  "hashtags": ["tag1", "tag2", ...],
  "description": "..."
}}

Make it viral, concise, and platform-optimized for short-form video."""

DEFAULT_HASHTAGS = ["#shorts", "#viral", "#trending"]
FALLBACK_HASHTAGS = ["#shorts", "#viral", "#trending", "#podcast", "#clips"]
FALLBACK_TITLE_WORDS = 8
FALLBACK_CAPTION_WORDS = 12
UNTITLED = "Untitled Clip"

COMMENT_TEMPLATES = [
    "🔥 What would you have said here? Drop it below 👇",
    "😂 Who else relates? Tell us your story!",
    "💭 Agree or disagree? Explain in one sentence.",
    "🤔 What's your take on this? Comment below!",
    "👀 Would you do the same? Let me know!",
    "💬 Drop your thoughts, I read every comment!",
    "🎯 Tag someone who needs to hear this!",
    "⚡ Your turn: what would YOU do?",
    "🚀 Let's discuss in the comments!",
    "💡 Share your perspective below!",
]

_JSON_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


def normalize_hashtags(tags: Any) -> List[str]:
    """Prefix with '#', drop blanks and duplicates, keep order."""
    if isinstance(tags, str):
        tags = tags.replace(",", " ").split()
    if not isinstance(tags, (list, tuple)):
        return []

    seen = set()
    result = []
    for tag in tags:
        tag = str(tag).strip().replace(" ", "")
        if not tag.strip("#"):
            continue
        tag = f"#{tag.lstrip('#')}"
        if tag.lower() in seen:
            continue
        seen.add(tag.lower())
        result.append(tag)
    return result


def fallback_caption(transcript: str) -> CaptionResult:
    """Deterministic caption derived from the leading words of the transcript."""
    words = transcript.split()
    text = " ".join(words)
    return CaptionResult(
        title=" ".join(words[:FALLBACK_TITLE_WORDS]) or UNTITLED,
        caption=" ".join(words[:FALLBACK_CAPTION_WORDS]) or UNTITLED,
        hashtags=list(FALLBACK_HASHTAGS),
        description=text or UNTITLED,
    )


def parse_caption_response(content: str, transcript: str) -> CaptionResult:
    """
    Parse the model's JSON reply, filling any missing field.

    Raises:
        ValueError: If the reply holds no JSON object
    """
    match = _JSON_BLOCK_RE.search(content)
    if match:
        content = match.group(1)
    else:
        start, end = content.find("{"), content.rfind("}")
        if start == -1 or end <= start:
            raise ValueError("No JSON object in caption response")
        content = content[start:end + 1]

    data = json.loads(content)
    if not isinstance(data, dict):
        raise ValueError("Caption response is not a JSON object")

    fallback = fallback_caption(transcript)
    title = str(data.get("title") or "").strip() or UNTITLED
    caption = str(data.get("caption") or "").strip() or transcript.strip()[:100] or fallback.caption
    hashtags = normalize_hashtags(data.get("hashtags")) or list(DEFAULT_HASHTAGS)
    description = str(data.get("description") or "").strip() or fallback.description

    return CaptionResult(title=title, caption=caption, hashtags=hashtags, description=description)


class OpenAICaptioner:
    """Captioning collaborator backed by an OpenAI chat model."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: Optional[str] = None):
        self._client = client
        self.model = model or settings.caption_model

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                timeout=settings.llm_timeout_seconds,
            )
        return self._client

    async def generate_caption(self, transcript_text: str) -> CaptionResult:
        """
        Generate publish metadata for a clip.

        Never raises: malformed or failed model output falls back to a
        caption built from the first words of the transcript.
        """
        try:
            response = await self._get_client().chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": "You are a viral content expert."},
                    {"role": "user", "content": CAPTION_PROMPT.format(transcript=transcript_text)},
                ],
                temperature=0.8,
                max_tokens=500,
            )
            content = response.choices[0].message.content or "{}"
            return parse_caption_response(content, transcript_text)
        except Exception as e:
            logger.warning(f"Caption generation failed, using fallback: {e}")
            return fallback_caption(transcript_text)


def get_random_comment_template(rng: Optional[random.Random] = None) -> str:
    """Pick an engagement comment for a freshly published video."""
    return (rng or random).choice(COMMENT_TEMPLATES)


def format_timestamp(seconds: float) -> str:
    """Format seconds as m:ss or h:mm:ss."""
    total = max(0, int(seconds))
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_youtube_description(
    caption: CaptionResult,
    episode_url: Optional[str] = None,
    timestamp: Optional[Dict[str, float]] = None,
) -> str:
    """Build the platform description: text, hashtags, episode link and footer."""
    description = f"{caption.description}\n\n"
    description += " ".join(normalize_hashtags(caption.hashtags))

    if episode_url and timestamp:
        description += "\n\n---\n"
        description += f"Full episode: {episode_url}\n"
        description += f"Timestamp: {format_timestamp(timestamp['start'])} - {format_timestamp(timestamp['end'])}"

    description += "\n\n---\n"
    description += "🎙️ Subscribe for more clips!\n"
    description += "🔔 Turn on notifications to never miss a post!"

    return description
