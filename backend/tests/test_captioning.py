"""Tests for caption generation, scoring replies and description formatting."""
import random

import pytest

from clipcast.pipeline.collaborators import CaptionResult
from clipcast.services.captioning import (
    COMMENT_TEMPLATES,
    FALLBACK_HASHTAGS,
    OpenAICaptioner,
    fallback_caption,
    format_timestamp,
    format_youtube_description,
    get_random_comment_template,
    normalize_hashtags,
    parse_caption_response,
)
from clipcast.services.scoring import OpenAIClipScorer, parse_score
from clipcast.pipeline.detection import ClipCandidate

TRANSCRIPT = (
    "so here's the thing nobody tells you about podcasting it is mostly "
    "editing and showing up every single week"
)


class _FakeMessage:
    def __init__(self, content):
        self.content = content


class _FakeChoice:
    def __init__(self, content):
        self.message = _FakeMessage(content)


class _FakeCompletion:
    def __init__(self, content):
        self.choices = [_FakeChoice(content)]


class _FakeCompletions:
    def __init__(self, content=None, error=None):
        self._content = content
        self._error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self._error:
            raise self._error
        return _FakeCompletion(self._content)


class _FakeChat:
    def __init__(self, completions):
        self.completions = completions


class _FakeOpenAI:
    def __init__(self, content=None, error=None):
        self.chat = _FakeChat(_FakeCompletions(content, error))


class TestFallbackCaption:
    def test_derived_from_leading_words(self):
        caption = fallback_caption(TRANSCRIPT)

        assert caption.title == "so here's the thing nobody tells you about"
        assert caption.caption == "so here's the thing nobody tells you about podcasting it is mostly"
        assert caption.hashtags == FALLBACK_HASHTAGS
        assert caption.description == TRANSCRIPT

    def test_empty_transcript_still_has_all_fields(self):
        caption = fallback_caption("   ")

        assert caption.title and caption.caption and caption.description and caption.hashtags


class TestParseCaptionResponse:
    def test_parses_fenced_json(self):
        content = (
            "Here you go:\n```json\n"
            '{"title": "Nobody Tells You This", "caption": "The truth about podcasting", '
            '"hashtags": ["podcast", "#Podcast", "creator"], "description": "Podcasting is editing."}\n'
            "```"
        )

        caption = parse_caption_response(content, TRANSCRIPT)

        assert caption.title == "Nobody Tells You This"
        assert caption.hashtags == ["#podcast", "#creator"]

    def test_fills_missing_fields(self):
        caption = parse_caption_response('{"title": "Only A Title"}', TRANSCRIPT)

        assert caption.title == "Only A Title"
        assert caption.caption == TRANSCRIPT[:100]
        assert caption.hashtags == ["#shorts", "#viral", "#trending"]
        assert caption.description == TRANSCRIPT

    def test_rejects_non_json(self):
        with pytest.raises(ValueError):
            parse_caption_response("I cannot help with that.", TRANSCRIPT)


class TestOpenAICaptioner:
    @pytest.mark.asyncio
    async def test_uses_model_reply(self):
        client = _FakeOpenAI(
            content='{"title": "T", "caption": "C", "hashtags": ["#a"], "description": "D"}'
        )

        caption = await OpenAICaptioner(client=client, model="test-model").generate_caption(TRANSCRIPT)

        assert caption == CaptionResult(title="T", caption="C", hashtags=["#a"], description="D")
        assert client.chat.completions.calls[0]["model"] == "test-model"
        assert TRANSCRIPT in client.chat.completions.calls[0]["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_malformed_reply_falls_back(self):
        client = _FakeOpenAI(content="{not json")

        caption = await OpenAICaptioner(client=client).generate_caption(TRANSCRIPT)

        assert caption == fallback_caption(TRANSCRIPT)

    @pytest.mark.asyncio
    async def test_api_error_falls_back(self):
        client = _FakeOpenAI(error=RuntimeError("503"))

        caption = await OpenAICaptioner(client=client).generate_caption(TRANSCRIPT)

        assert caption == fallback_caption(TRANSCRIPT)


class TestScoring:
    def test_parse_score(self):
        assert parse_score("Score: 0.85 - strong hook") == 0.85
        assert parse_score("8/10, very engaging") == 1.0
        assert parse_score("no idea") is None

    @pytest.mark.asyncio
    async def test_scorer_reads_first_number(self):
        candidate = ClipCandidate(
            start=0.0, end=20.0, duration=20.0, score=0.4, transcript_text=TRANSCRIPT, rationale=""
        )
        client = _FakeOpenAI(content="0.7 because it opens with a hook")

        assert await OpenAIClipScorer(client=client).score(candidate) == 0.7


class TestDescription:
    def test_normalize_hashtags(self):
        assert normalize_hashtags("shorts, #Viral viral") == ["#shorts", "#Viral"]
        assert normalize_hashtags(["#", "", "a b"]) == ["#ab"]
        assert normalize_hashtags(None) == []

    def test_format_timestamp(self):
        assert format_timestamp(75) == "1:15"
        assert format_timestamp(3725) == "1:02:05"

    def test_description_with_episode_link(self):
        caption = CaptionResult(title="T", caption="C", hashtags=["shorts", "#podcast"], description="Body.")

        description = format_youtube_description(
            caption, episode_url="https://example.com/ep1", timestamp={"start": 75, "end": 130}
        )

        assert description.startswith("Body.\n\n#shorts #podcast")
        assert "Full episode: https://example.com/ep1" in description
        assert "Timestamp: 1:15 - 2:10" in description
        assert description.endswith("never miss a post!")

    def test_comment_template_pick(self):
        assert get_random_comment_template(random.Random(3)) in COMMENT_TEMPLATES
