"""Upload scheduling and the due-queue."""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from clipcast.config import settings
from clipcast.models.clip import Clip, ClipStatus
from clipcast.models.upload import LIVE_UPLOAD_STATUSES, Upload, UploadStatus
from clipcast.services.activity import ActivityLogger

logger = logging.getLogger(__name__)


@dataclass
class DueUpload:
    """A due upload joined with the clip fields needed to publish it."""
    upload_id: int
    clip_id: int
    platform: str
    scheduled_time: datetime
    rendered_file_path: Optional[str]
    thumbnail_path: Optional[str]
    title: Optional[str]
    caption: Optional[str]
    description: Optional[str]
    transcript_text: Optional[str]
    hashtags: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "upload_id": self.upload_id,
            "clip_id": self.clip_id,
            "platform": self.platform,
            "scheduled_time": self.scheduled_time.isoformat(),
            "rendered_file_path": self.rendered_file_path,
            "thumbnail_path": self.thumbnail_path,
            "title": self.title,
            "caption": self.caption,
            "description": self.description,
            "hashtags": list(self.hashtags),
        }


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an offset-aware time to the naive UTC form stored in the database."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_schedule_time(value: str) -> tuple:
    """Parse an 'HH:MM' slot into (hour, minute)."""
    try:
        hour_str, minute_str = value.strip().split(":")
        hour, minute = int(hour_str), int(minute_str)
    except ValueError as e:
        raise ValueError(f"Invalid schedule time '{value}', expected HH:MM") from e
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"Invalid schedule time '{value}', expected HH:MM")
    return hour, minute


def next_publish_times(
    count: int,
    now: Optional[datetime] = None,
    slots: Optional[Sequence[str]] = None,
) -> List[datetime]:
    """
    The next ``count`` daily publish slots strictly after ``now``.

    A slot that has already passed today rolls over to tomorrow.
    """
    now = now or datetime.utcnow()
    parsed = sorted(parse_schedule_time(s) for s in (slots or settings.schedule_times))
    if count <= 0 or not parsed:
        return []

    times: List[datetime] = []
    day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    while len(times) < count:
        for hour, minute in parsed:
            candidate = day.replace(hour=hour, minute=minute)
            if candidate > now:
                times.append(candidate)
                if len(times) == count:
                    break
        day += timedelta(days=1)
    return times


class UploadScheduler:
    """
    Writes scheduled uploads and serves the due-queue.

    The publish worker is the only consumer of ``next_due``; it drains the
    queue one upload per tick.
    """

    def __init__(self, session_factory: async_sessionmaker, activity: Optional[ActivityLogger] = None):
        self.session_factory = session_factory
        self.activity = activity or ActivityLogger(session_factory)

    async def schedule_for_upload(
        self,
        clip_ids: Sequence[int],
        scheduled_times: Sequence[datetime],
        platform: str = "youtube",
    ) -> List[int]:
        """
        Schedule clips positionally against times.

        The two sequences are paired in order and truncated to the shorter
        one. Past times are accepted and simply make the upload due at once.
        Offset-aware times are stored as naive UTC.
        A clip that already has a scheduled or uploading upload is skipped.

        Returns:
            Ids of the created uploads
        """
        pairs = [(clip_id, to_naive_utc(t)) for clip_id, t in zip(clip_ids, scheduled_times)]
        if len(clip_ids) != len(scheduled_times):
            logger.info(
                f"Scheduling {len(pairs)} of {len(clip_ids)} clips "
                f"({len(scheduled_times)} times given)"
            )

        created: List[tuple] = []
        async with self.session_factory() as session:
            for clip_id, scheduled_time in pairs:
                clip = await session.get(Clip, clip_id)
                if not clip:
                    raise ValueError(f"Clip {clip_id} not found")

                live = await session.scalar(
                    select(func.count(Upload.id)).where(
                        Upload.clip_id == clip_id,
                        Upload.status.in_(LIVE_UPLOAD_STATUSES),
                    )
                )
                if live:
                    logger.warning(f"Clip {clip_id} already has a pending upload, skipping")
                    continue

                upload = Upload(
                    clip_id=clip_id,
                    platform=platform,
                    scheduled_time=scheduled_time,
                    status=UploadStatus.SCHEDULED,
                )
                session.add(upload)
                clip.status = ClipStatus.SCHEDULED
                created.append((upload, clip_id, scheduled_time))

            await session.commit()
            upload_ids = [upload.id for upload, _, _ in created]

        if created:
            await self.activity.log(
                "clips_scheduled",
                {
                    "count": len(created),
                    "uploads": [
                        {"upload_id": upload_id, "clip_id": clip_id, "scheduled_time": t.isoformat()}
                        for upload_id, (_, clip_id, t) in zip(upload_ids, created)
                    ],
                },
            )
        return upload_ids

    async def next_due(self, now: Optional[datetime] = None) -> Optional[DueUpload]:
        """
        The earliest scheduled upload whose time has come, or None.

        Read-only: calling it twice without a status change returns the
        same upload.
        """
        now = to_naive_utc(now or datetime.utcnow())
        async with self.session_factory() as session:
            result = await session.execute(
                select(Upload)
                .options(selectinload(Upload.clip))
                .where(
                    Upload.status == UploadStatus.SCHEDULED,
                    Upload.scheduled_time <= now,
                )
                .order_by(Upload.scheduled_time.asc(), Upload.id.asc())
                .limit(1)
            )
            upload = result.scalar_one_or_none()
            if upload is None:
                return None

            clip = upload.clip
            return DueUpload(
                upload_id=upload.id,
                clip_id=upload.clip_id,
                platform=upload.platform,
                scheduled_time=upload.scheduled_time,
                rendered_file_path=clip.rendered_file_path,
                thumbnail_path=clip.thumbnail_path,
                title=clip.title,
                caption=clip.caption,
                description=clip.description,
                transcript_text=clip.transcript_text,
                hashtags=clip.hashtag_list,
            )

    async def auto_schedule(
        self,
        clip_ids: Sequence[int],
        now: Optional[datetime] = None,
        platform: str = "youtube",
    ) -> List[int]:
        """Schedule clips into the next free daily publish slots."""
        times = next_publish_times(len(clip_ids), now=now)
        return await self.schedule_for_upload(clip_ids, times, platform=platform)


async def list_upcoming(db: AsyncSession, limit: int = 50) -> List[Upload]:
    """Scheduled uploads, soonest first."""
    result = await db.execute(
        select(Upload)
        .where(Upload.status == UploadStatus.SCHEDULED)
        .order_by(Upload.scheduled_time.asc(), Upload.id.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def list_clips(
    db: AsyncSession,
    episode_id: Optional[int] = None,
    limit: int = 100,
) -> List[Clip]:
    """Clips, newest first."""
    query = select(Clip)
    if episode_id is not None:
        query = query.where(Clip.episode_id == episode_id)
    result = await db.execute(query.order_by(Clip.created_at.desc(), Clip.id.desc()).limit(limit))
    return list(result.scalars().all())


async def quota_used_today(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Estimated platform quota units spent since midnight."""
    now = now or datetime.utcnow()
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)

    uploads = await db.scalar(
        select(func.count(Upload.id)).where(
            Upload.status == UploadStatus.UPLOADED,
            Upload.uploaded_at >= day_start,
        )
    )
    comments = await db.scalar(
        select(func.count(Upload.id)).where(
            Upload.comment_posted.is_(True),
            Upload.uploaded_at >= day_start,
        )
    )
    return (
        (uploads or 0) * settings.youtube_upload_cost_units
        + (comments or 0) * settings.youtube_comment_cost_units
    )
