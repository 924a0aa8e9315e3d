"""Episode processing pipeline.

Drives one episode through duration probe, transcription, candidate
detection and per-candidate materialization, persisting the episode
status at every stage boundary.

Failure scopes:
- episode-scoped: the episode row cannot be created, the media cannot be
  probed, or transcription fails or returns nothing. Raised to the
  caller as ``EpisodeProcessingError``.
- candidate-scoped: anything that goes wrong while materializing or
  saving one candidate. Recorded in ``ProcessingResult.errors``; the
  remaining candidates still run.
"""
import json
import logging
import shutil
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from sqlalchemy.ext.asyncio import async_sessionmaker

from clipcast.models.activity_log import ActivityStatus
from clipcast.models.clip import Clip, ClipStatus
from clipcast.models.episode import Episode, EpisodeStatus
from clipcast.pipeline.collaborators import Captioner, Renderer, ThumbnailMaker, Transcriber
from clipcast.pipeline.detection import (
    ClipCandidate,
    ClipScorer,
    DetectionConfig,
    DEFAULT_DETECTION_CONFIG,
    detect_clips,
    refine_candidate,
)
from clipcast.pipeline.materialize import ClipMaterializer, MaterializedClip
from clipcast.pipeline.transcript import TranscriptSegment, clean_transcript
from clipcast.services.activity import ActivityLogger
from clipcast.utils.best_effort import run_best_effort

logger = logging.getLogger(__name__)


class EpisodeProcessingError(Exception):
    """Episode-scoped failure; the run was aborted."""

    def __init__(self, message: str, episode_id: Optional[int] = None, stage: str = ""):
        super().__init__(message)
        self.episode_id = episode_id
        self.stage = stage


class EmptyTranscriptError(Exception):
    """Transcription produced no segments."""


@dataclass
class CandidateFailure:
    """A candidate that could not be materialized."""
    clip_number: int
    message: str

    def __str__(self):
        return f"Clip {self.clip_number} failed: {self.message}"


@dataclass
class ProcessingResult:
    """Outcome of one episode run. Check ``errors`` as well as ``clips_generated``."""
    episode_id: int
    clips_generated: int = 0
    clip_ids: List[int] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    failures: List[CandidateFailure] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> dict:
        return {
            "episode_id": self.episode_id,
            "clips_generated": self.clips_generated,
            "clip_ids": list(self.clip_ids),
            "errors": list(self.errors),
        }


class EpisodeProcessor:
    """
    Processes episodes end to end.

    Collaborators are injected so the processor holds no global state.
    Each run gets its own scratch directory and its own output directory
    keyed by episode id, so different episodes may be processed
    concurrently; candidates within one episode are always handled in order.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        transcriber: Transcriber,
        renderer: Renderer,
        captioner: Captioner,
        thumbnailer: ThumbnailMaker,
        output_dir: Path,
        work_dir: Path,
        activity: Optional[ActivityLogger] = None,
        scorer: Optional[ClipScorer] = None,
        detection_config: Optional[DetectionConfig] = None,
    ):
        self.session_factory = session_factory
        self.transcriber = transcriber
        self.renderer = renderer
        self.materializer = ClipMaterializer(renderer, captioner, thumbnailer)
        self.output_dir = Path(output_dir)
        self.work_dir = Path(work_dir)
        self.activity = activity or ActivityLogger(session_factory)
        self.scorer = scorer
        self.detection_config = detection_config or DEFAULT_DETECTION_CONFIG

    async def process_episode(
        self,
        source_path: str | Path,
        filename: str,
        top_n: int = 10,
    ) -> ProcessingResult:
        """
        Process one episode.

        Args:
            source_path: Path to the episode media
            filename: Display name for the episode
            top_n: Maximum number of clips to produce

        Returns:
            ProcessingResult with generated clip ids and per-candidate errors

        Raises:
            EpisodeProcessingError: On an episode-scoped failure
        """
        source_path = Path(source_path)

        await self.activity.log("process_episode_start", {"filename": filename}, ActivityStatus.PENDING)

        try:
            episode_id = await self._create_episode(source_path, filename)
        except Exception as e:
            await self.activity.log(
                "process_episode_error",
                {"filename": filename, "stage": "create_episode", "error": str(e)},
                ActivityStatus.ERROR,
                str(e),
            )
            raise EpisodeProcessingError(str(e), stage="create_episode") from e

        stage = "duration"
        try:
            duration = await self.renderer.get_duration(source_path)
            await self._update_episode(episode_id, duration=duration)

            stage = "transcription"
            await self.activity.log("transcription_start", {"episode_id": episode_id}, ActivityStatus.PENDING)
            raw_segments = await self.transcriber.transcribe(source_path)
            segments = clean_transcript(raw_segments)
            if not segments:
                raise EmptyTranscriptError("Transcription returned no segments")
            await self.activity.log(
                "transcription_complete",
                {"episode_id": episode_id, "segment_count": len(segments)},
            )

            stage = "detection"
            await self.activity.log("clip_detection_start", {"episode_id": episode_id}, ActivityStatus.PENDING)
            candidates = detect_clips(
                segments,
                max_duration=self.detection_config.max_clip_seconds,
                top_n=top_n,
                config=self.detection_config,
            )
            if self.scorer is not None and candidates:
                candidates = await self._refine(candidates)
            await self.activity.log(
                "clip_detection_complete",
                {"episode_id": episode_id, "candidates_found": len(candidates)},
            )
        except Exception as e:
            logger.exception(f"Episode {episode_id} failed during {stage}: {e}")
            await self.activity.log(
                "process_episode_error",
                {"episode_id": episode_id, "filename": filename, "stage": stage, "error": str(e)},
                ActivityStatus.ERROR,
                str(e),
            )
            await run_best_effort(
                f"Marking episode {episode_id} failed",
                self._update_episode,
                episode_id,
                status=EpisodeStatus.FAILED,
                error_message=str(e),
            )
            raise EpisodeProcessingError(str(e), episode_id=episode_id, stage=stage) from e

        result = ProcessingResult(episode_id=episode_id)
        await self._materialize_all(episode_id, source_path, segments, candidates, result)

        await self._update_episode(
            episode_id,
            status=EpisodeStatus.COMPLETED,
            processed_at=datetime.utcnow(),
        )
        await self.activity.log(
            "process_episode_complete",
            {
                "episode_id": episode_id,
                "clips_generated": result.clips_generated,
                "errors": len(result.errors),
            },
            ActivityStatus.ERROR if result.errors else ActivityStatus.SUCCESS,
        )

        logger.info(
            f"Episode {episode_id} complete: {result.clips_generated} clips, {len(result.errors)} errors"
        )
        return result

    async def _materialize_all(
        self,
        episode_id: int,
        source_path: Path,
        segments: Sequence[TranscriptSegment],
        candidates: Sequence[ClipCandidate],
        result: ProcessingResult,
    ):
        """Materialize candidates in order; a failure never stops the loop."""
        output_dir = self.output_dir / f"episode_{episode_id}"
        output_dir.mkdir(parents=True, exist_ok=True)
        self.work_dir.mkdir(parents=True, exist_ok=True)
        work_dir = Path(tempfile.mkdtemp(prefix=f"episode_{episode_id}_", dir=self.work_dir))

        try:
            for i, candidate in enumerate(candidates):
                clip_number = i + 1
                try:
                    materialized = await self.materializer.materialize(
                        source_path, segments, candidate, clip_number, work_dir, output_dir
                    )
                    try:
                        clip_id = await self._insert_clip(episode_id, materialized)
                    except Exception:
                        materialized.rendered_path.unlink(missing_ok=True)
                        materialized.thumbnail_path.unlink(missing_ok=True)
                        raise
                except Exception as e:
                    failure = CandidateFailure(clip_number=clip_number, message=str(e) or type(e).__name__)
                    result.failures.append(failure)
                    result.errors.append(str(failure))
                    logger.warning(f"Episode {episode_id}: {failure}")
                    await self.activity.log(
                        "clip_processing_error",
                        {"episode_id": episode_id, "clip_number": clip_number, "error": failure.message},
                        ActivityStatus.ERROR,
                        failure.message,
                    )
                    continue

                result.clip_ids.append(clip_id)
                result.clips_generated += 1
                await self.activity.log(
                    "clip_processed",
                    {"episode_id": episode_id, "clip_id": clip_id, "clip_number": clip_number},
                )
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)

    async def _refine(self, candidates: Sequence[ClipCandidate]) -> List[ClipCandidate]:
        """Best-effort external re-scoring; keeps the greedy overlap-free set."""
        refined = []
        for candidate in candidates:
            outcome = await refine_candidate(candidate, self.scorer)
            if not outcome.succeeded:
                logger.info(f"Refinement skipped for {candidate.start:.1f}s: {outcome.error}")
            refined.append(outcome.value)
        return sorted(refined, key=lambda c: c.score, reverse=True)

    async def _create_episode(self, source_path: Path, filename: str) -> int:
        async with self.session_factory() as session:
            episode = Episode(
                filename=filename,
                source_path=str(source_path),
                status=EpisodeStatus.PROCESSING,
            )
            session.add(episode)
            await session.commit()
            return episode.id

    async def _update_episode(self, episode_id: int, **fields):
        async with self.session_factory() as session:
            episode = await session.get(Episode, episode_id)
            if not episode:
                raise ValueError(f"Episode {episode_id} not found")
            for name, value in fields.items():
                setattr(episode, name, value)
            await session.commit()

    async def _insert_clip(self, episode_id: int, materialized: MaterializedClip) -> int:
        candidate = materialized.candidate
        caption = materialized.caption
        async with self.session_factory() as session:
            clip = Clip(
                episode_id=episode_id,
                start_time=candidate.start,
                end_time=candidate.end,
                duration=candidate.duration,
                score=candidate.score,
                transcript_text=candidate.transcript_text,
                rationale=candidate.rationale,
                rendered_file_path=str(materialized.rendered_path),
                thumbnail_path=str(materialized.thumbnail_path),
                title=caption.title,
                caption=caption.caption,
                hashtags=json.dumps(list(caption.hashtags)),
                description=caption.description,
                status=ClipStatus.READY,
            )
            session.add(clip)
            await session.commit()
            return clip.id
