"""Activity log writer and read models."""
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clipcast.models.activity_log import ActivityLogEntry, ActivityStatus
from clipcast.models.clip import Clip
from clipcast.models.episode import Episode
from clipcast.models.upload import Upload, UploadStatus

logger = logging.getLogger(__name__)


class ActivityLogger:
    """
    Appends audit entries to the activity log.

    Each entry is written in its own session and committed immediately so
    progress is visible mid-run. Entries are never updated.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def log(
        self,
        action: str,
        details: Optional[Dict[str, Any]] = None,
        status: ActivityStatus = ActivityStatus.SUCCESS,
        error_message: Optional[str] = None,
    ) -> int:
        """Insert one entry and return its id."""
        async with self.session_factory() as session:
            entry = ActivityLogEntry(
                action=action,
                details=json.dumps(details or {}, default=str),
                status=status,
                error_message=error_message,
            )
            session.add(entry)
            await session.commit()
            entry_id = entry.id

        log_fn = logger.warning if status == ActivityStatus.ERROR else logger.info
        log_fn(f"[activity] {action} ({status.value}) {details or {}}")
        return entry_id


async def list_activity(db: AsyncSession, limit: int = 100) -> List[ActivityLogEntry]:
    """Latest activity entries, newest first."""
    result = await db.execute(
        select(ActivityLogEntry)
        .order_by(ActivityLogEntry.created_at.desc(), ActivityLogEntry.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_stats(db: AsyncSession, now: Optional[datetime] = None) -> Dict[str, int]:
    """Dashboard counters."""
    now = now or datetime.utcnow()
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)

    total_episodes = await db.scalar(select(func.count(Episode.id)))
    total_clips = await db.scalar(select(func.count(Clip.id)))
    scheduled = await db.scalar(
        select(func.count(Upload.id)).where(Upload.status == UploadStatus.SCHEDULED)
    )
    uploaded_today = await db.scalar(
        select(func.count(Upload.id)).where(
            Upload.status == UploadStatus.UPLOADED,
            Upload.uploaded_at >= day_start,
        )
    )

    return {
        "total_episodes": total_episodes or 0,
        "total_clips": total_clips or 0,
        "scheduled_uploads": scheduled or 0,
        "uploaded_today": uploaded_today or 0,
    }
