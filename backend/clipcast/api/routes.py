"""API routes."""
import logging
import shutil
import uuid
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clipcast.config import settings
from clipcast.container import build_episode_processor, build_scheduler, get_publisher
from clipcast.db.database import get_db
from clipcast.models.episode import Episode
from clipcast.pipeline.orchestrator import EpisodeProcessingError, EpisodeProcessor, ProcessingResult
from clipcast.services.activity import get_stats, list_activity
from clipcast.services.scheduler import UploadScheduler, list_clips, list_upcoming
from clipcast.services.youtube import OAuthUpstreamError, YouTubePublisher
from clipcast.utils.ffmpeg import check_ffmpeg_available, check_ffprobe_available
from clipcast.api.schemas import (
    HealthResponse,
    ProcessEpisodeRequest,
    ProcessEpisodeResponse,
    EpisodeResponse,
    ClipResponse,
    ScheduleRequest,
    ScheduleResponse,
    UploadResponse,
    DueUploadResponse,
    ActivityResponse,
    StatsResponse,
    OAuthUrlResponse,
    OAuthCallbackResponse,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def get_processor() -> EpisodeProcessor:
    return build_episode_processor()


def get_scheduler() -> UploadScheduler:
    return build_scheduler()


# =============================================================================
# Health & System
# =============================================================================

@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Check API health and dependencies."""
    ffmpeg_ok = check_ffmpeg_available()
    ffprobe_ok = check_ffprobe_available()
    openai_ok = bool(settings.openai_api_key)
    youtube_ok = bool(settings.youtube_client_id and settings.youtube_client_secret)

    all_ok = ffmpeg_ok and ffprobe_ok and openai_ok

    message = None
    if not all_ok:
        missing = []
        if not ffmpeg_ok:
            missing.append("ffmpeg")
        if not ffprobe_ok:
            missing.append("ffprobe")
        if not openai_ok:
            missing.append("OPENAI_API_KEY")
        message = f"Missing dependencies: {', '.join(missing)}"

    return HealthResponse(
        status="healthy" if all_ok else "degraded",
        ffmpeg_available=ffmpeg_ok,
        ffprobe_available=ffprobe_ok,
        openai_configured=openai_ok,
        youtube_configured=youtube_ok,
        message=message,
    )


# =============================================================================
# Episodes
# =============================================================================

async def _run_processing(
    processor: EpisodeProcessor,
    scheduler: UploadScheduler,
    source_path: Path,
    filename: str,
    top_n: int,
    auto_schedule: bool,
) -> ProcessEpisodeResponse:
    try:
        result: ProcessingResult = await processor.process_episode(source_path, filename, top_n=top_n)
    except EpisodeProcessingError as e:
        raise HTTPException(
            status_code=500,
            detail={"message": str(e), "episode_id": e.episode_id, "stage": e.stage},
        )

    upload_ids: List[int] = []
    if auto_schedule and result.clip_ids:
        upload_ids = await scheduler.auto_schedule(result.clip_ids)

    return ProcessEpisodeResponse(**result.to_dict(), upload_ids=upload_ids)


@router.post("/episodes/process", response_model=ProcessEpisodeResponse)
async def process_episode(
    data: ProcessEpisodeRequest,
    processor: EpisodeProcessor = Depends(get_processor),
    scheduler: UploadScheduler = Depends(get_scheduler),
):
    """Process an episode file that is already on the server."""
    source_path = Path(data.source_path).expanduser()
    if not source_path.is_file():
        raise HTTPException(status_code=400, detail=f"File not found: {source_path}")

    return await _run_processing(
        processor,
        scheduler,
        source_path,
        data.filename or source_path.name,
        data.top_n,
        data.auto_schedule,
    )


@router.post("/episodes/upload", response_model=ProcessEpisodeResponse)
async def upload_episode(
    file: UploadFile = File(...),
    top_n: int = Query(10, ge=1, le=50),
    auto_schedule: bool = Query(False),
    processor: EpisodeProcessor = Depends(get_processor),
    scheduler: UploadScheduler = Depends(get_scheduler),
):
    """Upload an episode file and process it."""
    if not file.filename:
        raise HTTPException(status_code=400, detail="Uploaded file has no name")

    settings.upload_dir.mkdir(parents=True, exist_ok=True)
    saved_path = settings.upload_dir / f"{uuid.uuid4().hex}_{Path(file.filename).name}"
    with open(saved_path, "wb") as f:
        shutil.copyfileobj(file.file, f)

    return await _run_processing(processor, scheduler, saved_path, file.filename, top_n, auto_schedule)


@router.get("/episodes", response_model=List[EpisodeResponse])
async def list_episodes(
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """List episodes, newest first."""
    result = await db.execute(
        select(Episode).order_by(Episode.created_at.desc(), Episode.id.desc()).limit(limit)
    )
    return [EpisodeResponse(**episode.to_dict()) for episode in result.scalars().all()]


# =============================================================================
# Clips
# =============================================================================

@router.get("/clips", response_model=List[ClipResponse])
async def get_clips(
    episode_id: Optional[int] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """List clips, newest first."""
    clips = await list_clips(db, episode_id=episode_id, limit=limit)
    return [ClipResponse(**clip.to_dict()) for clip in clips]


# =============================================================================
# Scheduling
# =============================================================================

@router.post("/schedule", response_model=ScheduleResponse)
async def schedule_clips(
    data: ScheduleRequest,
    scheduler: UploadScheduler = Depends(get_scheduler),
):
    """Schedule clips for upload at the given times."""
    try:
        upload_ids = await scheduler.schedule_for_upload(
            data.clip_ids, data.scheduled_times, platform=data.platform
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ScheduleResponse(upload_ids=upload_ids)


@router.get("/schedule", response_model=List[UploadResponse])
async def get_schedule(
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """Upcoming scheduled uploads, soonest first."""
    uploads = await list_upcoming(db, limit=limit)
    return [UploadResponse(**upload.to_dict()) for upload in uploads]


@router.get("/schedule/next-due", response_model=Optional[DueUploadResponse])
async def get_next_due(scheduler: UploadScheduler = Depends(get_scheduler)):
    """Peek at the upload the worker would publish next."""
    due = await scheduler.next_due()
    if due is None:
        return None
    return DueUploadResponse(**due.to_dict())


# =============================================================================
# Activity & Stats
# =============================================================================

@router.get("/activity", response_model=List[ActivityResponse])
async def get_activity(
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    """Latest activity entries."""
    entries = await list_activity(db, limit=limit)
    return [ActivityResponse(**entry.to_dict()) for entry in entries]


@router.get("/stats", response_model=StatsResponse)
async def stats(db: AsyncSession = Depends(get_db)):
    """Dashboard counters."""
    return StatsResponse(**await get_stats(db))


# =============================================================================
# YouTube OAuth
# =============================================================================

@router.get("/auth/youtube/url", response_model=OAuthUrlResponse)
async def get_oauth_url(publisher: YouTubePublisher = Depends(get_publisher)):
    """
    Get the consent URL for connecting the YouTube channel.

    Redirect the channel owner to this URL.
    """
    try:
        return OAuthUrlResponse(auth_url=publisher.get_oauth_url())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/auth/youtube/callback", response_model=OAuthCallbackResponse)
async def oauth_callback(
    code: str = Query(..., description="Authorization code"),
    publisher: YouTubePublisher = Depends(get_publisher),
):
    """Complete the OAuth flow with the authorization code."""
    try:
        token_data = await publisher.exchange_code(code)
    except OAuthUpstreamError as e:
        logger.warning(f"OAuth callback upstream error: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    refresh_token = token_data.get("refresh_token")
    message = (
        "Connected. Set YOUTUBE_REFRESH_TOKEN to keep the connection across restarts."
        if refresh_token
        else "Connected, but no refresh token was returned."
    )
    return OAuthCallbackResponse(connected=True, refresh_token=refresh_token, message=message)
