"""Tests for the episode processing pipeline."""
import json

import pytest
from sqlalchemy import select

from clipcast.models.activity_log import ActivityLogEntry, ActivityStatus
from clipcast.models.clip import Clip, ClipStatus
from clipcast.models.episode import Episode, EpisodeStatus
from clipcast.pipeline.collaborators import CaptionResult
from clipcast.pipeline.orchestrator import EpisodeProcessingError, EpisodeProcessor
from clipcast.pipeline.transcript import TranscriptSegment


def _keyword_transcript(seconds=60):
    # Every 15 s window scores 0.4, so candidates tile the episode in 15 s steps.
    return [
        TranscriptSegment(text="actually  wait what", start=float(i), end=float(i + 1))
        for i in range(seconds)
    ]


class _FakeTranscriber:
    def __init__(self, segments=None, error=None):
        self._segments = segments if segments is not None else _keyword_transcript()
        self._error = error
        self.calls = []

    async def transcribe(self, source_path):
        self.calls.append(source_path)
        if self._error:
            raise self._error
        return list(self._segments)


class _FakeRenderer:
    def __init__(self, fail_at_start=None, duration=60.0):
        self.fail_at_start = fail_at_start
        self.duration = duration
        self.subtitle_calls = []

    async def get_duration(self, source_path):
        return self.duration

    async def extract_clip(self, source_path, output_path, start, duration):
        if self.fail_at_start is not None and start == self.fail_at_start:
            raise RuntimeError("ffmpeg exited with code 1")
        output_path.write_bytes(b"raw")
        return output_path

    async def add_subtitles(self, media_path, output_path, segments, start, end):
        self.subtitle_calls.append((start, end, len(segments)))
        output_path.write_bytes(b"captioned")
        return output_path

    async def extract_frame(self, media_path, output_path, timestamp):
        output_path.write_bytes(b"frame")
        return output_path


class _FakeCaptioner:
    async def generate_caption(self, transcript_text):
        return CaptionResult(
            title="Wait What",
            caption="Actually, wait",
            hashtags=["#shorts", "#podcast"],
            description=transcript_text,
        )


class _FakeThumbnailMaker:
    async def composite(self, frame_path, output_path, title_text):
        output_path.write_bytes(b"thumb")
        return output_path


class _FailingScorer:
    async def score(self, candidate):
        raise TimeoutError("scoring timed out")


def _processor_kwargs(session_factory, tmp_path, **overrides):
    kwargs = dict(
        session_factory=session_factory,
        transcriber=_FakeTranscriber(),
        renderer=_FakeRenderer(),
        captioner=_FakeCaptioner(),
        thumbnailer=_FakeThumbnailMaker(),
        output_dir=tmp_path / "outputs",
        work_dir=tmp_path / "work",
    )
    kwargs.update(overrides)
    return kwargs


def _processor(session_factory, tmp_path, **overrides):
    return EpisodeProcessor(**_processor_kwargs(session_factory, tmp_path, **overrides))


class _RejectingProcessor(EpisodeProcessor):
    """Fails the clip row insert for one candidate."""

    def __init__(self, reject_start, **kwargs):
        super().__init__(**kwargs)
        self.reject_start = reject_start

    async def _insert_clip(self, episode_id, materialized):
        if materialized.candidate.start == self.reject_start:
            raise RuntimeError("database is locked")
        return await super()._insert_clip(episode_id, materialized)


async def _activity_actions(session_factory):
    async with session_factory() as session:
        result = await session.execute(select(ActivityLogEntry).order_by(ActivityLogEntry.id))
        return [(e.action, e.status) for e in result.scalars().all()]


class TestProcessEpisode:
    @pytest.mark.asyncio
    async def test_produces_clips(self, session_factory, tmp_path):
        processor = _processor(session_factory, tmp_path)

        result = await processor.process_episode(tmp_path / "episode.mp4", "episode.mp4", top_n=3)

        assert result.clips_generated == 3
        assert result.errors == []

        async with session_factory() as session:
            episode = await session.get(Episode, result.episode_id)
            clips = (await session.execute(select(Clip).order_by(Clip.id))).scalars().all()

        assert episode.status == EpisodeStatus.COMPLETED
        assert episode.duration == 60.0
        assert episode.processed_at is not None
        assert [c.start_time for c in clips] == [0.0, 15.0, 30.0]
        assert all(c.status == ClipStatus.READY for c in clips)
        assert json.loads(clips[0].hashtags) == ["#shorts", "#podcast"]
        assert clips[0].transcript_text.startswith("actually wait what")
        assert (tmp_path / "outputs" / f"episode_{result.episode_id}" / "clip_1.mp4").exists()
        assert (tmp_path / "outputs" / f"episode_{result.episode_id}" / "thumb_1.jpg").exists()

    @pytest.mark.asyncio
    async def test_candidate_failure_does_not_stop_siblings(self, session_factory, tmp_path):
        processor = _processor(session_factory, tmp_path, renderer=_FakeRenderer(fail_at_start=15.0))

        result = await processor.process_episode(tmp_path / "episode.mp4", "episode.mp4", top_n=3)

        assert result.clips_generated == 2
        assert len(result.clip_ids) == 2
        assert len(result.errors) == 1
        assert "Clip 2" in result.errors[0]
        assert result.failures[0].clip_number == 2

        async with session_factory() as session:
            clips = (await session.execute(select(Clip).order_by(Clip.id))).scalars().all()
            episode = await session.get(Episode, result.episode_id)

        assert [c.start_time for c in clips] == [0.0, 30.0]
        assert episode.status == EpisodeStatus.COMPLETED

        actions = await _activity_actions(session_factory)
        assert ("clip_processing_error", ActivityStatus.ERROR) in actions
        assert actions[-1] == ("process_episode_complete", ActivityStatus.ERROR)

    @pytest.mark.asyncio
    async def test_failed_candidate_leaves_no_outputs(self, session_factory, tmp_path):
        processor = _processor(session_factory, tmp_path, renderer=_FakeRenderer(fail_at_start=15.0))

        result = await processor.process_episode(tmp_path / "episode.mp4", "episode.mp4", top_n=3)

        output_dir = tmp_path / "outputs" / f"episode_{result.episode_id}"
        assert not (output_dir / "clip_2.mp4").exists()
        assert not (output_dir / "thumb_2.jpg").exists()
        assert list((tmp_path / "work").iterdir()) == []

    @pytest.mark.asyncio
    async def test_failed_insert_removes_rendered_files(self, session_factory, tmp_path):
        processor = _RejectingProcessor(reject_start=15.0, **_processor_kwargs(session_factory, tmp_path))

        result = await processor.process_episode(tmp_path / "episode.mp4", "episode.mp4", top_n=3)

        assert result.clips_generated == 2
        assert result.failures[0].clip_number == 2
        output_dir = tmp_path / "outputs" / f"episode_{result.episode_id}"
        assert (output_dir / "clip_1.mp4").exists()
        assert not (output_dir / "clip_2.mp4").exists()
        assert not (output_dir / "thumb_2.jpg").exists()

    @pytest.mark.asyncio
    async def test_subtitles_get_only_segments_inside_clip(self, session_factory, tmp_path):
        renderer = _FakeRenderer()
        processor = _processor(session_factory, tmp_path, renderer=renderer)

        await processor.process_episode(tmp_path / "episode.mp4", "episode.mp4", top_n=1)

        assert renderer.subtitle_calls == [(0.0, 15.0, 15)]

    @pytest.mark.asyncio
    async def test_transcription_failure_is_episode_scoped(self, session_factory, tmp_path):
        processor = _processor(
            session_factory,
            tmp_path,
            transcriber=_FakeTranscriber(error=ConnectionError("whisper unreachable")),
        )

        with pytest.raises(EpisodeProcessingError) as exc_info:
            await processor.process_episode(tmp_path / "episode.mp4", "episode.mp4")

        assert exc_info.value.stage == "transcription"
        async with session_factory() as session:
            episode = await session.get(Episode, exc_info.value.episode_id)
            clip_count = len((await session.execute(select(Clip))).scalars().all())

        assert episode.status == EpisodeStatus.FAILED
        assert "whisper unreachable" in episode.error_message
        assert clip_count == 0

        actions = await _activity_actions(session_factory)
        assert actions[-1] == ("process_episode_error", ActivityStatus.ERROR)

    @pytest.mark.asyncio
    async def test_empty_transcript_is_episode_scoped(self, session_factory, tmp_path):
        processor = _processor(session_factory, tmp_path, transcriber=_FakeTranscriber(segments=[]))

        with pytest.raises(EpisodeProcessingError) as exc_info:
            await processor.process_episode(tmp_path / "episode.mp4", "episode.mp4")

        assert exc_info.value.stage == "transcription"

    @pytest.mark.asyncio
    async def test_no_candidates_completes_with_zero_clips(self, session_factory, tmp_path):
        segments = [TranscriptSegment(text="hmm", start=0.0, end=5.0)]
        processor = _processor(session_factory, tmp_path, transcriber=_FakeTranscriber(segments=segments))

        result = await processor.process_episode(tmp_path / "episode.mp4", "episode.mp4")

        assert result.clips_generated == 0
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_refinement_failure_keeps_heuristic_scores(self, session_factory, tmp_path):
        processor = _processor(session_factory, tmp_path, scorer=_FailingScorer())

        result = await processor.process_episode(tmp_path / "episode.mp4", "episode.mp4", top_n=2)

        assert result.clips_generated == 2
        async with session_factory() as session:
            scores = [c.score for c in (await session.execute(select(Clip))).scalars().all()]
        assert scores == [pytest.approx(0.4), pytest.approx(0.4)]
