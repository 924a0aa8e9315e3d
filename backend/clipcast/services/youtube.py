"""YouTube Data API publishing client."""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from clipcast.config import settings

logger = logging.getLogger(__name__)
OAUTH_HTTP_TIMEOUT_SECONDS = 15.0
UPLOAD_HTTP_TIMEOUT_SECONDS = 120.0

TOKEN_URL = "https://oauth2.googleapis.com/token"
AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
UPLOAD_URL = "https://www.googleapis.com/upload/youtube/v3/videos"
THUMBNAIL_URL = "https://www.googleapis.com/upload/youtube/v3/thumbnails/set"
COMMENT_THREADS_URL = "https://www.googleapis.com/youtube/v3/commentThreads"

YOUTUBE_UPLOAD_SCOPE = "https://www.googleapis.com/auth/youtube.upload"
YOUTUBE_FORCE_SSL_SCOPE = "https://www.googleapis.com/auth/youtube.force-ssl"


class PublishError(Exception):
    """The platform rejected a publish call."""
    pass


class OAuthUpstreamError(RuntimeError):
    """Raised when OAuth upstream provider is unreachable."""


def _extract_error_detail(response: httpx.Response) -> str:
    """Extract concise error detail from a Google API response."""
    try:
        payload = response.json()
    except ValueError:
        text = response.text.strip()
        return text or f"HTTP {response.status_code}"

    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            # Data API errors: {"error": {"code": ..., "message": ...}}
            message = error.get("message")
            if message:
                return str(message)
        description = payload.get("error_description")

        parts: List[str] = []
        if error and not isinstance(error, dict):
            parts.append(str(error))
        if description:
            parts.append(str(description))
        if parts:
            return ": ".join(parts)

    return f"HTTP {response.status_code}"


@dataclass
class PublishMetadata:
    """Snippet and status fields for a new video."""
    title: str
    description: str
    tags: List[str] = field(default_factory=list)
    privacy_status: str = "public"
    category_id: str = "22"
    made_for_kids: bool = False

    def to_body(self) -> Dict[str, Any]:
        return {
            "snippet": {
                "title": self.title[:100],  # YouTube max title length
                "description": self.description[:5000],
                "tags": [t.lstrip("#") for t in self.tags][:500],
                "categoryId": self.category_id,
            },
            "status": {
                "privacyStatus": self.privacy_status,
                "selfDeclaredMadeForKids": self.made_for_kids,
            },
        }


class YouTubePublisher:
    """
    Publishing collaborator for YouTube Shorts.

    Authenticates with a stored refresh token; the access token is cached
    until shortly before it expires.
    """

    def __init__(
        self,
        refresh_token: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
    ):
        self.refresh_token = refresh_token or settings.youtube_refresh_token
        self.client_id = client_id or settings.youtube_client_id
        self.client_secret = client_secret or settings.youtube_client_secret
        self._access_token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None

    def _require_credentials(self):
        if not self.client_id or not self.client_secret:
            raise ValueError(
                "YouTube API credentials not configured. "
                "Set youtube_client_id and youtube_client_secret in your .env file."
            )

    async def _post_token(self, data: Dict[str, str], action: str) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=OAUTH_HTTP_TIMEOUT_SECONDS) as client:
                response = await client.post(TOKEN_URL, data=data)
        except httpx.TimeoutException as exc:
            logger.warning(f"YouTube {action} timed out")
            raise OAuthUpstreamError(f"Google OAuth {action} timed out. Please try again.") from exc
        except httpx.RequestError as exc:
            logger.warning(f"YouTube {action} network error: {type(exc).__name__}")
            raise OAuthUpstreamError("Unable to reach Google OAuth service. Please try again.") from exc

        if response.status_code != 200:
            detail = _extract_error_detail(response)
            logger.info(f"YouTube {action} rejected status={response.status_code} detail={detail}")
            raise ValueError(f"OAuth {action} failed: {detail}")

        try:
            token_data = response.json()
        except ValueError as exc:
            raise ValueError(f"OAuth {action} failed: invalid provider response") from exc

        if not token_data.get("access_token"):
            raise ValueError(f"OAuth {action} failed: access token missing")
        return token_data

    def _store_token(self, token_data: Dict[str, Any]):
        self._access_token = token_data["access_token"]
        self._token_expires_at = datetime.utcnow() + timedelta(
            seconds=token_data.get("expires_in", 3600)
        )

    async def get_access_token(self) -> str:
        """Return a valid access token, refreshing if expired or about to expire."""
        if (
            self._access_token
            and self._token_expires_at
            and self._token_expires_at > datetime.utcnow() + timedelta(minutes=5)
        ):
            return self._access_token

        if not self.refresh_token:
            raise ValueError("No refresh token available - complete the OAuth flow first")
        self._require_credentials()

        token_data = await self._post_token(
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": self.refresh_token,
                "grant_type": "refresh_token",
            },
            "token refresh",
        )
        self._store_token(token_data)
        return self._access_token

    def get_oauth_url(self, redirect_uri: Optional[str] = None, state: str = "") -> str:
        """URL to send the channel owner to for consent."""
        self._require_credentials()
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri or settings.youtube_redirect_uri,
            "response_type": "code",
            "scope": f"{YOUTUBE_UPLOAD_SCOPE} {YOUTUBE_FORCE_SSL_SCOPE}",
            "access_type": "offline",
            "include_granted_scopes": "true",
            # Force consent so a refresh token is always returned.
            "prompt": "consent",
        }
        if state:
            params["state"] = state
        return f"{AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str, redirect_uri: Optional[str] = None) -> Dict[str, Any]:
        """
        Exchange an authorization code for tokens.

        The refresh token, when returned, replaces the one in use.
        """
        self._require_credentials()
        token_data = await self._post_token(
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": redirect_uri or settings.youtube_redirect_uri,
            },
            "token exchange",
        )
        self._store_token(token_data)
        if token_data.get("refresh_token"):
            self.refresh_token = token_data["refresh_token"]
        return token_data

    async def publish(self, media_path: str | Path, metadata: PublishMetadata) -> str:
        """
        Upload a video with a resumable upload session.

        Returns:
            The platform video id

        Raises:
            PublishError: If the platform rejects the upload
        """
        media_path = Path(media_path)
        if not media_path.exists():
            raise PublishError(f"Video file not found: {media_path}")

        access_token = await self.get_access_token()
        file_size = media_path.stat().st_size

        timeout = httpx.Timeout(UPLOAD_HTTP_TIMEOUT_SECONDS, connect=OAUTH_HTTP_TIMEOUT_SECONDS)
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(
                    f"{UPLOAD_URL}?uploadType=resumable&part=snippet,status",
                    headers={
                        "Authorization": f"Bearer {access_token}",
                        "Content-Type": "application/json",
                        "X-Upload-Content-Length": str(file_size),
                        "X-Upload-Content-Type": "video/mp4",
                    },
                    json=metadata.to_body(),
                )
                if response.status_code != 200:
                    raise PublishError(f"Failed to initiate upload: {_extract_error_detail(response)}")

                upload_url = response.headers.get("Location")
                if not upload_url:
                    raise PublishError("No upload URL received")

                with open(media_path, "rb") as video_file:
                    video_data = video_file.read()

                response = await client.put(
                    upload_url,
                    headers={
                        "Content-Type": "video/mp4",
                        "Content-Length": str(file_size),
                    },
                    content=video_data,
                )
        except httpx.RequestError as exc:
            raise PublishError(f"Upload request failed: {type(exc).__name__}") from exc

        if response.status_code not in (200, 201):
            raise PublishError(f"Failed to upload video: {_extract_error_detail(response)}")

        try:
            video_id = response.json().get("id")
        except ValueError as exc:
            raise PublishError("Failed to upload video: invalid provider response") from exc
        if not video_id:
            raise PublishError("Failed to upload video: no video id returned")

        logger.info(f"Uploaded {media_path.name} as YouTube video {video_id}")
        return video_id

    async def set_thumbnail(self, video_id: str, thumbnail_path: str | Path):
        """Attach a custom thumbnail to an uploaded video."""
        thumbnail_path = Path(thumbnail_path)
        if not thumbnail_path.exists():
            raise PublishError(f"Thumbnail not found: {thumbnail_path}")

        access_token = await self.get_access_token()
        try:
            async with httpx.AsyncClient(timeout=UPLOAD_HTTP_TIMEOUT_SECONDS) as client:
                response = await client.post(
                    THUMBNAIL_URL,
                    params={"videoId": video_id},
                    headers={
                        "Authorization": f"Bearer {access_token}",
                        "Content-Type": "image/jpeg",
                    },
                    content=thumbnail_path.read_bytes(),
                )
        except httpx.RequestError as exc:
            raise PublishError(f"Thumbnail request failed: {type(exc).__name__}") from exc

        if response.status_code != 200:
            raise PublishError(f"Failed to set thumbnail: {_extract_error_detail(response)}")

    async def post_comment(self, video_id: str, text: str) -> str:
        """Post a top-level comment and return the comment thread id."""
        access_token = await self.get_access_token()
        try:
            async with httpx.AsyncClient(timeout=OAUTH_HTTP_TIMEOUT_SECONDS) as client:
                response = await client.post(
                    COMMENT_THREADS_URL,
                    params={"part": "snippet"},
                    headers={"Authorization": f"Bearer {access_token}"},
                    json={
                        "snippet": {
                            "videoId": video_id,
                            "topLevelComment": {"snippet": {"textOriginal": text}},
                        }
                    },
                )
        except httpx.RequestError as exc:
            raise PublishError(f"Comment request failed: {type(exc).__name__}") from exc

        if response.status_code != 200:
            raise PublishError(f"Failed to post comment: {_extract_error_detail(response)}")

        try:
            return response.json().get("id", "")
        except ValueError as exc:
            raise PublishError("Failed to post comment: invalid provider response") from exc

    @staticmethod
    def video_url(video_id: str) -> str:
        return f"https://youtube.com/shorts/{video_id}"
