"""Pydantic schemas for API requests and responses."""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


# =============================================================================
# Health
# =============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    ffmpeg_available: bool
    ffprobe_available: bool
    openai_configured: bool
    youtube_configured: bool
    message: Optional[str] = None


# =============================================================================
# Episodes
# =============================================================================

class ProcessEpisodeRequest(BaseModel):
    """Request to process an episode already on the server."""
    source_path: str = Field(..., description="Path to the episode media file")
    filename: Optional[str] = Field(None, description="Display name (uses file name if not provided)")
    top_n: int = Field(10, ge=1, le=50, description="Maximum clips to produce")
    auto_schedule: bool = Field(False, description="Schedule produced clips into the next publish slots")


class ProcessEpisodeResponse(BaseModel):
    """Outcome of processing one episode."""
    episode_id: int
    clips_generated: int
    clip_ids: List[int]
    errors: List[str]
    upload_ids: List[int] = []


class EpisodeResponse(BaseModel):
    """Episode response."""
    id: int
    filename: str
    source_path: str
    duration: Optional[float]
    status: str
    error_message: Optional[str]
    created_at: datetime
    processed_at: Optional[datetime]

    class Config:
        from_attributes = True


# =============================================================================
# Clips
# =============================================================================

class ClipResponse(BaseModel):
    """Clip response."""
    id: int
    episode_id: int
    start_time: float
    end_time: float
    duration: float
    score: Optional[float]
    rationale: Optional[str]
    transcript_text: Optional[str]
    rendered_file_path: Optional[str]
    thumbnail_path: Optional[str]
    title: Optional[str]
    caption: Optional[str]
    hashtags: List[str] = []
    status: str
    created_at: Optional[str]


# =============================================================================
# Scheduling
# =============================================================================

class ScheduleRequest(BaseModel):
    """Request to schedule clips; pairs are truncated to the shorter list."""
    clip_ids: List[int] = Field(..., description="Clips to schedule, in order")
    scheduled_times: List[datetime] = Field(..., description="Publish times, paired with clip_ids")
    platform: str = Field("youtube", description="Target platform")


class ScheduleResponse(BaseModel):
    """Created uploads."""
    upload_ids: List[int]


class UploadResponse(BaseModel):
    """Scheduled upload response."""
    id: int
    clip_id: int
    platform: str
    scheduled_time: Optional[str]
    status: str
    external_video_id: Optional[str]
    published_url: Optional[str]
    uploaded_at: Optional[str]
    error_message: Optional[str]
    comment_posted: bool = False


class DueUploadResponse(BaseModel):
    """The upload the worker would publish next."""
    upload_id: int
    clip_id: int
    platform: str
    scheduled_time: datetime
    rendered_file_path: Optional[str]
    thumbnail_path: Optional[str]
    title: Optional[str]
    caption: Optional[str]
    description: Optional[str]
    hashtags: List[str] = []


# =============================================================================
# Activity & Stats
# =============================================================================

class ActivityResponse(BaseModel):
    """Activity log entry."""
    id: int
    action: str
    details: Dict[str, Any] = {}
    status: str
    error_message: Optional[str]
    created_at: Optional[str]


class StatsResponse(BaseModel):
    """Dashboard counters."""
    total_episodes: int
    total_clips: int
    scheduled_uploads: int
    uploaded_today: int


# =============================================================================
# YouTube OAuth
# =============================================================================

class OAuthUrlResponse(BaseModel):
    """OAuth consent URL."""
    auth_url: str


class OAuthCallbackResponse(BaseModel):
    """Result of the authorization code exchange."""
    connected: bool
    refresh_token: Optional[str] = None
    message: str
