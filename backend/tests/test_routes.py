"""Tests for API route error mapping and read models."""
from datetime import datetime, timedelta

import pytest
from fastapi import HTTPException

from clipcast.api import routes
from clipcast.api.schemas import ProcessEpisodeRequest, ScheduleRequest
from clipcast.pipeline.orchestrator import EpisodeProcessingError, ProcessingResult
from clipcast.services.scheduler import UploadScheduler
from clipcast.services.youtube import OAuthUpstreamError


class _FakeProcessor:
    def __init__(self, result=None, error=None):
        self._result = result
        self._error = error
        self.calls = []

    async def process_episode(self, source_path, filename, top_n=10):
        self.calls.append((source_path, filename, top_n))
        if self._error:
            raise self._error
        return self._result


class _FakeScheduler:
    def __init__(self):
        self.auto_scheduled = []

    async def auto_schedule(self, clip_ids):
        self.auto_scheduled.append(list(clip_ids))
        return [900 + i for i, _ in enumerate(clip_ids)]


class _RaisingPublisher:
    def get_oauth_url(self):
        raise ValueError("YouTube API credentials not configured.")

    async def exchange_code(self, code):
        raise OAuthUpstreamError("Google OAuth token exchange timed out. Please try again.")


@pytest.mark.asyncio
async def test_process_episode_reports_partial_success(tmp_path):
    media = tmp_path / "episode.mp4"
    media.write_bytes(b"media")
    result = ProcessingResult(episode_id=1, clips_generated=2, clip_ids=[10, 12], errors=["Clip 2 failed: boom"])
    processor = _FakeProcessor(result=result)
    scheduler = _FakeScheduler()

    response = await routes.process_episode(
        ProcessEpisodeRequest(source_path=str(media), top_n=3, auto_schedule=True),
        processor=processor,
        scheduler=scheduler,
    )

    assert response.clips_generated == 2
    assert response.errors == ["Clip 2 failed: boom"]
    assert response.upload_ids == [900, 901]
    assert processor.calls == [(media, "episode.mp4", 3)]
    assert scheduler.auto_scheduled == [[10, 12]]


@pytest.mark.asyncio
async def test_process_episode_missing_file_is_400(tmp_path):
    with pytest.raises(HTTPException) as exc:
        await routes.process_episode(
            ProcessEpisodeRequest(source_path=str(tmp_path / "missing.mp4")),
            processor=_FakeProcessor(),
            scheduler=_FakeScheduler(),
        )

    assert exc.value.status_code == 400


@pytest.mark.asyncio
async def test_process_episode_failure_is_500(tmp_path):
    media = tmp_path / "episode.mp4"
    media.write_bytes(b"media")
    error = EpisodeProcessingError("whisper unreachable", episode_id=4, stage="transcription")

    with pytest.raises(HTTPException) as exc:
        await routes.process_episode(
            ProcessEpisodeRequest(source_path=str(media)),
            processor=_FakeProcessor(error=error),
            scheduler=_FakeScheduler(),
        )

    assert exc.value.status_code == 500
    assert exc.value.detail["stage"] == "transcription"
    assert exc.value.detail["episode_id"] == 4


@pytest.mark.asyncio
async def test_schedule_and_next_due(session_factory, make_clip):
    clip_a = await make_clip()
    clip_b = await make_clip()
    scheduler = UploadScheduler(session_factory)
    now = datetime.utcnow()

    response = await routes.schedule_clips(
        ScheduleRequest(clip_ids=[clip_a, clip_b], scheduled_times=[now - timedelta(minutes=1)]),
        scheduler=scheduler,
    )
    due = await routes.get_next_due(scheduler=scheduler)

    assert len(response.upload_ids) == 1
    assert due.clip_id == clip_a
    assert due.upload_id == response.upload_ids[0]


@pytest.mark.asyncio
async def test_schedule_unknown_clip_is_400(session_factory):
    with pytest.raises(HTTPException) as exc:
        await routes.schedule_clips(
            ScheduleRequest(clip_ids=[404], scheduled_times=[datetime.utcnow()]),
            scheduler=UploadScheduler(session_factory),
        )

    assert exc.value.status_code == 400


@pytest.mark.asyncio
async def test_read_models(session_factory, make_clip):
    clip_id = await make_clip()
    scheduler = UploadScheduler(session_factory)
    await scheduler.schedule_for_upload([clip_id], [datetime.utcnow() + timedelta(hours=1)])

    async with session_factory() as db:
        clips = await routes.get_clips(episode_id=None, limit=10, db=db)
        schedule = await routes.get_schedule(limit=10, db=db)
        activity = await routes.get_activity(limit=10, db=db)
        stats = await routes.stats(db=db)

    assert [c.id for c in clips] == [clip_id]
    assert clips[0].status == "scheduled"
    assert [u.clip_id for u in schedule] == [clip_id]
    assert activity[0].action == "clips_scheduled"
    assert stats.total_clips == 1
    assert stats.scheduled_uploads == 1
    assert stats.uploaded_today == 0


@pytest.mark.asyncio
async def test_oauth_url_without_credentials_is_400():
    with pytest.raises(HTTPException) as exc:
        await routes.get_oauth_url(publisher=_RaisingPublisher())

    assert exc.value.status_code == 400


@pytest.mark.asyncio
async def test_oauth_callback_upstream_error_is_502():
    with pytest.raises(HTTPException) as exc:
        await routes.oauth_callback(code="abc", publisher=_RaisingPublisher())

    assert exc.value.status_code == 502
