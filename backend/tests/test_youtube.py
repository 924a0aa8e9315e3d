"""Tests for the YouTube publishing client."""
from datetime import datetime, timedelta
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from clipcast.services import youtube
from clipcast.services.youtube import (
    OAuthUpstreamError,
    PublishError,
    PublishMetadata,
    YouTubePublisher,
)


class _FakeResponse:
    def __init__(self, status_code: int, payload=None, text: str = "", headers=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text
        self.headers = headers or {}

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON payload")
        return self._payload


class _FakeClient:
    """Replays queued responses and records every request."""

    def __init__(self, responses=None, error=None, requests=None, **kwargs):
        self._responses = responses if responses is not None else []
        self._error = error
        self.requests = requests if requests is not None else []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def _next(self, method, url, kwargs):
        if self._error:
            raise self._error
        self.requests.append((method, url, kwargs))
        return self._responses.pop(0)

    async def post(self, url, **kwargs):
        return await self._next("POST", url, kwargs)

    async def put(self, url, **kwargs):
        return await self._next("PUT", url, kwargs)


def _patch_client(monkeypatch, responses=None, error=None):
    requests = []
    monkeypatch.setattr(
        youtube.httpx,
        "AsyncClient",
        lambda **kwargs: _FakeClient(responses=responses, error=error, requests=requests),
    )
    return requests


def _publisher(**kwargs):
    defaults = dict(refresh_token="refresh-token", client_id="client-id", client_secret="client-secret")
    defaults.update(kwargs)
    return YouTubePublisher(**defaults)


def _with_token(publisher):
    publisher._access_token = "cached-token"
    publisher._token_expires_at = datetime.utcnow() + timedelta(hours=1)
    return publisher


class TestAccessToken:
    @pytest.mark.asyncio
    async def test_refreshes_and_caches(self, monkeypatch):
        requests = _patch_client(
            monkeypatch,
            responses=[_FakeResponse(200, payload={"access_token": "fresh", "expires_in": 3600})],
        )
        publisher = _publisher()

        assert await publisher.get_access_token() == "fresh"
        assert await publisher.get_access_token() == "fresh"
        assert len(requests) == 1
        assert requests[0][2]["data"]["grant_type"] == "refresh_token"

    @pytest.mark.asyncio
    async def test_rejected_refresh_raises_value_error(self, monkeypatch):
        _patch_client(
            monkeypatch,
            responses=[_FakeResponse(400, payload={"error": "invalid_grant", "error_description": "Token revoked"})],
        )

        with pytest.raises(ValueError, match="invalid_grant: Token revoked"):
            await _publisher().get_access_token()

    @pytest.mark.asyncio
    async def test_timeout_raises_upstream_error(self, monkeypatch):
        _patch_client(monkeypatch, error=httpx.ReadTimeout("timed out"))

        with pytest.raises(OAuthUpstreamError):
            await _publisher().get_access_token()

    @pytest.mark.asyncio
    async def test_missing_refresh_token(self):
        with pytest.raises(ValueError, match="No refresh token"):
            await YouTubePublisher(refresh_token="", client_id="id", client_secret="secret").get_access_token()


class TestOAuth:
    def test_oauth_url(self):
        url = _publisher().get_oauth_url("http://localhost/callback", state="abc")

        query = parse_qs(urlparse(url).query)
        assert query["client_id"] == ["client-id"]
        assert query["redirect_uri"] == ["http://localhost/callback"]
        assert query["access_type"] == ["offline"]
        assert query["state"] == ["abc"]
        assert "youtube.upload" in query["scope"][0]

    def test_oauth_url_requires_credentials(self, monkeypatch):
        monkeypatch.setattr(youtube.settings, "youtube_client_id", None)
        monkeypatch.setattr(youtube.settings, "youtube_client_secret", None)

        with pytest.raises(ValueError, match="credentials not configured"):
            YouTubePublisher().get_oauth_url()

    @pytest.mark.asyncio
    async def test_exchange_code_stores_refresh_token(self, monkeypatch):
        _patch_client(
            monkeypatch,
            responses=[_FakeResponse(200, payload={"access_token": "a", "refresh_token": "new-refresh"})],
        )
        publisher = _publisher(refresh_token="old")

        token_data = await publisher.exchange_code("auth-code", "http://localhost/callback")

        assert token_data["refresh_token"] == "new-refresh"
        assert publisher.refresh_token == "new-refresh"
        assert await publisher.get_access_token() == "a"


class TestPublish:
    @pytest.mark.asyncio
    async def test_resumable_upload(self, monkeypatch, tmp_path):
        media = tmp_path / "clip.mp4"
        media.write_bytes(b"video-bytes")
        requests = _patch_client(
            monkeypatch,
            responses=[
                _FakeResponse(200, headers={"Location": "https://upload.example/session"}),
                _FakeResponse(201, payload={"id": "abc123"}),
            ],
        )
        metadata = PublishMetadata(title="x" * 150, description="desc", tags=["#shorts", "podcast"])

        video_id = await _with_token(_publisher()).publish(media, metadata)

        assert video_id == "abc123"
        (_, _, init), (method, url, upload) = requests
        assert init["headers"]["Authorization"] == "Bearer cached-token"
        assert init["json"]["snippet"]["title"] == "x" * 100
        assert init["json"]["snippet"]["tags"] == ["shorts", "podcast"]
        assert (method, url) == ("PUT", "https://upload.example/session")
        assert upload["content"] == b"video-bytes"

    @pytest.mark.asyncio
    async def test_missing_upload_url(self, monkeypatch, tmp_path):
        media = tmp_path / "clip.mp4"
        media.write_bytes(b"v")
        _patch_client(monkeypatch, responses=[_FakeResponse(200)])

        with pytest.raises(PublishError, match="No upload URL"):
            await _with_token(_publisher()).publish(media, PublishMetadata(title="t", description="d"))

    @pytest.mark.asyncio
    async def test_quota_error_detail(self, monkeypatch, tmp_path):
        media = tmp_path / "clip.mp4"
        media.write_bytes(b"v")
        _patch_client(
            monkeypatch,
            responses=[_FakeResponse(403, payload={"error": {"code": 403, "message": "quotaExceeded"}})],
        )

        with pytest.raises(PublishError, match="quotaExceeded"):
            await _with_token(_publisher()).publish(media, PublishMetadata(title="t", description="d"))

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        with pytest.raises(PublishError, match="not found"):
            await _publisher().publish(tmp_path / "nope.mp4", PublishMetadata(title="t", description="d"))


class TestExtras:
    @pytest.mark.asyncio
    async def test_set_thumbnail(self, monkeypatch, tmp_path):
        thumb = tmp_path / "thumb.jpg"
        thumb.write_bytes(b"jpeg")
        requests = _patch_client(monkeypatch, responses=[_FakeResponse(200, payload={})])

        await _with_token(_publisher()).set_thumbnail("abc123", thumb)

        _, url, kwargs = requests[0]
        assert url == youtube.THUMBNAIL_URL
        assert kwargs["params"] == {"videoId": "abc123"}
        assert kwargs["content"] == b"jpeg"

    @pytest.mark.asyncio
    async def test_post_comment(self, monkeypatch):
        requests = _patch_client(monkeypatch, responses=[_FakeResponse(200, payload={"id": "c1"})])

        comment_id = await _with_token(_publisher()).post_comment("abc123", "Thoughts?")

        assert comment_id == "c1"
        snippet = requests[0][2]["json"]["snippet"]
        assert snippet["videoId"] == "abc123"
        assert snippet["topLevelComment"]["snippet"]["textOriginal"] == "Thoughts?"

    @pytest.mark.asyncio
    async def test_comment_rejected(self, monkeypatch):
        _patch_client(monkeypatch, responses=[_FakeResponse(403, text="commentsDisabled")])

        with pytest.raises(PublishError, match="commentsDisabled"):
            await _with_token(_publisher()).post_comment("abc123", "Thoughts?")

    def test_video_url(self):
        assert YouTubePublisher.video_url("abc123") == "https://youtube.com/shorts/abc123"
