"""Clip materialization.

Turns one candidate into rendered media, a thumbnail and publish
metadata. Each call is an isolated failure domain: it either returns a
complete ``MaterializedClip`` or raises, leaving no output files behind.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from clipcast.pipeline.collaborators import CaptionResult, Captioner, Renderer, ThumbnailMaker
from clipcast.pipeline.detection import ClipCandidate
from clipcast.pipeline.transcript import TranscriptSegment, segments_in_range

logger = logging.getLogger(__name__)


@dataclass
class MaterializedClip:
    """Artifacts produced for one candidate."""
    candidate: ClipCandidate
    rendered_path: Path
    thumbnail_path: Path
    caption: CaptionResult


class ClipMaterializer:
    """Thin sequencing layer over the render, caption and thumbnail services."""

    def __init__(self, renderer: Renderer, captioner: Captioner, thumbnailer: ThumbnailMaker):
        self.renderer = renderer
        self.captioner = captioner
        self.thumbnailer = thumbnailer

    async def materialize(
        self,
        source_path: Path,
        segments: Sequence[TranscriptSegment],
        candidate: ClipCandidate,
        clip_number: int,
        work_dir: Path,
        output_dir: Path,
    ) -> MaterializedClip:
        """
        Render a candidate.

        Args:
            source_path: Episode media
            segments: Normalized transcript for the whole episode
            candidate: Candidate to render
            clip_number: 1-based index of the candidate in this run
            work_dir: Scratch directory owned by the current run
            output_dir: Where the final clip and thumbnail are kept

        Returns:
            MaterializedClip with final artifact paths
        """
        raw_path = work_dir / f"raw_{clip_number}.mp4"
        frame_path = work_dir / f"frame_{clip_number}.jpg"
        clip_path = output_dir / f"clip_{clip_number}.mp4"
        thumbnail_path = output_dir / f"thumb_{clip_number}.jpg"

        try:
            await self.renderer.extract_clip(source_path, raw_path, candidate.start, candidate.duration)

            clip_segments = segments_in_range(segments, candidate.start, candidate.end)
            await self.renderer.add_subtitles(
                raw_path, clip_path, clip_segments, candidate.start, candidate.end
            )
            raw_path.unlink(missing_ok=True)

            await self.renderer.extract_frame(clip_path, frame_path, candidate.duration / 2)

            caption = await self.captioner.generate_caption(candidate.transcript_text)

            await self.thumbnailer.composite(frame_path, thumbnail_path, caption.title)
            frame_path.unlink(missing_ok=True)
        except Exception:
            for path in (clip_path, thumbnail_path):
                path.unlink(missing_ok=True)
            raise

        logger.debug(f"Materialized clip {clip_number}: {clip_path}")
        return MaterializedClip(
            candidate=candidate,
            rendered_path=clip_path,
            thumbnail_path=thumbnail_path,
            caption=caption,
        )
