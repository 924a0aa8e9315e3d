"""Shared fixtures: an in-memory database and row builders."""
from datetime import datetime

import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import clipcast.models  # noqa: F401
from clipcast.db.database import Base, enable_sqlite_foreign_keys
from clipcast.models.clip import Clip, ClipStatus
from clipcast.models.episode import Episode, EpisodeStatus


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    event.listen(engine.sync_engine, "connect", enable_sqlite_foreign_keys)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def make_clip(session_factory):
    """Insert an episode (once) and return a coroutine that inserts clips."""
    async with session_factory() as session:
        episode = Episode(
            filename="episode.mp4",
            source_path="/media/episode.mp4",
            status=EpisodeStatus.COMPLETED,
            processed_at=datetime(2024, 1, 1),
        )
        session.add(episode)
        await session.commit()
        episode_id = episode.id

    async def _make_clip(clip_id=None, **overrides) -> int:
        fields = dict(
            episode_id=episode_id,
            start_time=0.0,
            end_time=30.0,
            duration=30.0,
            score=0.5,
            transcript_text="you won't believe what happened next",
            rationale="viral keywords",
            rendered_file_path="/media/clip.mp4",
            thumbnail_path="/media/thumb.jpg",
            title="What Happened Next",
            caption="You won't believe it",
            hashtags='["#shorts", "#podcast"]',
            description="A story about what happened next.",
            status=ClipStatus.READY,
        )
        fields.update(overrides)
        if clip_id is not None:
            fields["id"] = clip_id
        async with session_factory() as session:
            clip = Clip(**fields)
            session.add(clip)
            await session.commit()
            return clip.id

    return _make_clip
