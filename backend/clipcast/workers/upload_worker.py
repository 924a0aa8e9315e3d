"""Background publish worker draining the upload due-queue."""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from clipcast.config import settings
from clipcast.models.activity_log import ActivityStatus
from clipcast.models.clip import Clip, ClipStatus
from clipcast.models.upload import Upload, UploadStatus
from clipcast.pipeline.collaborators import CaptionResult, Publisher
from clipcast.services.activity import ActivityLogger
from clipcast.services.captioning import (
    UNTITLED,
    format_youtube_description,
    get_random_comment_template,
)
from clipcast.services.scheduler import DueUpload, UploadScheduler, quota_used_today
from clipcast.services.youtube import PublishMetadata
from clipcast.utils.best_effort import run_best_effort

logger = logging.getLogger(__name__)


@dataclass
class UploadOutcome:
    """Result of publishing one due upload."""
    upload_id: int
    succeeded: bool
    video_id: Optional[str] = None
    video_url: Optional[str] = None
    thumbnail_set: bool = False
    comment_posted: bool = False
    error: Optional[str] = None


class UploadWorker:
    """
    Periodic publisher.

    One asyncio task polls the due-queue on a fixed interval and publishes
    at most one upload per tick. A tick that starts while the previous one
    is still running is skipped.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        scheduler: UploadScheduler,
        publisher: Publisher,
        activity: Optional[ActivityLogger] = None,
        poll_interval: Optional[float] = None,
        comment_picker: Callable[[], str] = get_random_comment_template,
    ):
        self.session_factory = session_factory
        self.scheduler = scheduler
        self.publisher = publisher
        self.activity = activity or ActivityLogger(session_factory)
        self.poll_interval = poll_interval or settings.upload_poll_interval_seconds
        self.comment_picker = comment_picker
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_busy(self) -> bool:
        return self._lock.locked()

    async def tick(self, now: Optional[datetime] = None) -> Optional[UploadOutcome]:
        """Run one poll unless another is in progress."""
        if self._lock.locked():
            logger.info("Previous upload tick still running, skipping")
            return None
        async with self._lock:
            return await self.process_next(now)

    async def process_next(self, now: Optional[datetime] = None) -> Optional[UploadOutcome]:
        """Publish the earliest due upload, if any."""
        now = now or datetime.utcnow()

        if not await self._has_quota(now):
            return None

        due = await self.scheduler.next_due(now)
        if due is None:
            return None

        logger.info(f"Publishing upload {due.upload_id} (clip {due.clip_id})")
        await self._set_status(due.upload_id, UploadStatus.UPLOADING)

        try:
            video_id = await self.publisher.publish(due.rendered_file_path, self._metadata_for(due))
        except asyncio.CancelledError:
            # Publish never completed, so the upload goes back to the queue
            logger.warning(f"Upload {due.upload_id} interrupted, returning it to the queue")
            await self._set_status(due.upload_id, UploadStatus.SCHEDULED)
            raise
        except Exception as e:
            return await self._record_failure(due, e)

        try:
            return await self._finish(due, video_id)
        except asyncio.CancelledError:
            logger.warning(f"Upload {due.upload_id} interrupted after publishing {video_id}")
            await self._mark_uploaded(due, video_id, self.publisher.video_url(video_id), False)
            raise
        except Exception as e:
            return await self._record_failure(due, e, video_id=video_id)

    async def _finish(self, due: DueUpload, video_id: str) -> UploadOutcome:
        video_url = self.publisher.video_url(video_id)

        thumbnail_set = False
        if due.thumbnail_path:
            thumbnail = await run_best_effort(
                f"Setting thumbnail for {video_id}",
                self.publisher.set_thumbnail,
                video_id,
                due.thumbnail_path,
            )
            thumbnail_set = thumbnail.succeeded

        comment = await run_best_effort(
            f"Posting comment on {video_id}",
            self.publisher.post_comment,
            video_id,
            self.comment_picker(),
        )

        await self._mark_uploaded(due, video_id, video_url, comment.succeeded)
        await self.activity.log(
            "video_uploaded",
            {
                "upload_id": due.upload_id,
                "clip_id": due.clip_id,
                "video_id": video_id,
                "url": video_url,
                "thumbnail_set": thumbnail_set,
                "comment_posted": comment.succeeded,
            },
        )

        logger.info(f"Upload {due.upload_id} published: {video_url}")
        return UploadOutcome(
            upload_id=due.upload_id,
            succeeded=True,
            video_id=video_id,
            video_url=video_url,
            thumbnail_set=thumbnail_set,
            comment_posted=comment.succeeded,
        )

    async def _record_failure(
        self,
        due: DueUpload,
        exc: Exception,
        video_id: Optional[str] = None,
    ) -> UploadOutcome:
        """Mark the upload failed and release its clip for rescheduling."""
        error = str(exc) or type(exc).__name__
        logger.error(f"Upload {due.upload_id} failed: {error}")

        async with self.session_factory() as session:
            upload = await session.get(Upload, due.upload_id)
            if not upload:
                raise ValueError(f"Upload {due.upload_id} not found")
            upload.status = UploadStatus.FAILED
            upload.error_message = error
            if video_id:
                upload.external_video_id = video_id
            clip = await session.get(Clip, due.clip_id)
            if clip:
                clip.status = ClipStatus.READY
            await session.commit()

        await self.activity.log(
            "upload_error",
            {"upload_id": due.upload_id, "clip_id": due.clip_id, "video_id": video_id, "error": error},
            ActivityStatus.ERROR,
            error,
        )
        return UploadOutcome(upload_id=due.upload_id, succeeded=False, video_id=video_id, error=error)

    def _metadata_for(self, due: DueUpload) -> PublishMetadata:
        caption = CaptionResult(
            title=due.title or UNTITLED,
            caption=due.caption or "",
            hashtags=list(due.hashtags),
            description=due.description or due.caption or due.transcript_text or "",
        )
        return PublishMetadata(
            title=caption.title,
            description=format_youtube_description(caption),
            tags=caption.hashtags,
            privacy_status=settings.youtube_privacy_status,
            category_id=settings.youtube_category_id,
        )

    async def _has_quota(self, now: datetime) -> bool:
        async with self.session_factory() as session:
            used = await quota_used_today(session, now)
        needed = settings.youtube_upload_cost_units + settings.youtube_comment_cost_units
        if used + needed > settings.youtube_daily_quota_units:
            logger.warning(
                f"Daily quota nearly exhausted ({used}/{settings.youtube_daily_quota_units}), "
                "skipping upload"
            )
            return False
        return True

    async def _set_status(self, upload_id: int, status: UploadStatus, error_message: Optional[str] = None):
        async with self.session_factory() as session:
            upload = await session.get(Upload, upload_id)
            if not upload:
                raise ValueError(f"Upload {upload_id} not found")
            upload.status = status
            if error_message is not None:
                upload.error_message = error_message
            await session.commit()

    async def _mark_uploaded(self, due: DueUpload, video_id: str, video_url: str, comment_posted: bool):
        async with self.session_factory() as session:
            upload = await session.get(Upload, due.upload_id)
            if not upload:
                raise ValueError(f"Upload {due.upload_id} not found")
            upload.status = UploadStatus.UPLOADED
            upload.external_video_id = video_id
            upload.published_url = video_url
            upload.uploaded_at = datetime.utcnow()
            upload.comment_posted = comment_posted

            clip = await session.get(Clip, due.clip_id)
            if clip:
                clip.status = ClipStatus.PUBLISHED
            await session.commit()

    async def _run(self):
        logger.info(f"Upload worker started (every {self.poll_interval:.0f}s)")
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Upload tick failed: {e}")
            await asyncio.sleep(self.poll_interval)

    def start(self) -> bool:
        """Start the polling task; returns False if already running."""
        if self.is_running:
            logger.warning("Upload worker is already running")
            return False
        self._task = asyncio.create_task(self._run())
        return True

    async def shutdown(self):
        """Cancel the polling task and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        logger.info("Upload worker stopped")
