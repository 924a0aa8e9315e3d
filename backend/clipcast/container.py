"""Wiring of the production collaborators."""
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from clipcast.config import settings
from clipcast.db.database import async_session_maker
from clipcast.pipeline.detection import DetectionConfig
from clipcast.pipeline.orchestrator import EpisodeProcessor
from clipcast.services.activity import ActivityLogger
from clipcast.services.captioning import OpenAICaptioner
from clipcast.services.scheduler import UploadScheduler
from clipcast.services.scoring import OpenAIClipScorer
from clipcast.services.thumbnails import PillowThumbnailMaker
from clipcast.services.transcription import WhisperTranscriber
from clipcast.services.youtube import YouTubePublisher
from clipcast.utils.ffmpeg import FFmpegRenderer
from clipcast.workers.upload_worker import UploadWorker


def detection_config_from_settings() -> DetectionConfig:
    return DetectionConfig(
        min_clip_seconds=settings.min_clip_seconds,
        max_clip_seconds=settings.max_clip_seconds,
        score_threshold=settings.score_threshold,
    )


def build_episode_processor(session_factory: Optional[async_sessionmaker] = None) -> EpisodeProcessor:
    session_factory = session_factory or async_session_maker
    return EpisodeProcessor(
        session_factory=session_factory,
        transcriber=WhisperTranscriber(),
        renderer=FFmpegRenderer(),
        captioner=OpenAICaptioner(),
        thumbnailer=PillowThumbnailMaker(),
        output_dir=settings.output_dir,
        work_dir=settings.work_dir,
        activity=ActivityLogger(session_factory),
        scorer=OpenAIClipScorer() if settings.refine_with_llm else None,
        detection_config=detection_config_from_settings(),
    )


def build_scheduler(session_factory: Optional[async_sessionmaker] = None) -> UploadScheduler:
    session_factory = session_factory or async_session_maker
    return UploadScheduler(session_factory, ActivityLogger(session_factory))


def build_upload_worker(
    session_factory: Optional[async_sessionmaker] = None,
    publisher: Optional[YouTubePublisher] = None,
) -> UploadWorker:
    session_factory = session_factory or async_session_maker
    return UploadWorker(
        session_factory=session_factory,
        scheduler=build_scheduler(session_factory),
        publisher=publisher or get_publisher(),
        activity=ActivityLogger(session_factory),
    )


_publisher: Optional[YouTubePublisher] = None


def get_publisher() -> YouTubePublisher:
    """Process-wide publisher so a completed OAuth flow reaches the worker."""
    global _publisher
    if _publisher is None:
        _publisher = YouTubePublisher()
    return _publisher
