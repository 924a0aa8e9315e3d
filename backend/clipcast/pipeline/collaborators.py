"""Interfaces of the external services the pipeline calls.

Concrete implementations live in ``clipcast.services`` and
``clipcast.utils.ffmpeg``; tests pass in fakes.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Protocol, Sequence

from clipcast.pipeline.transcript import TranscriptSegment


@dataclass
class CaptionResult:
    """Publish metadata generated for a clip. All fields are non-empty."""
    title: str
    caption: str
    hashtags: List[str] = field(default_factory=list)
    description: str = ""

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "caption": self.caption,
            "hashtags": list(self.hashtags),
            "description": self.description,
        }


class Transcriber(Protocol):
    async def transcribe(self, source_path: Path) -> List[TranscriptSegment]:
        """Return time-ordered transcript segments for the whole recording."""


class Renderer(Protocol):
    async def get_duration(self, source_path: Path) -> float:
        """Return media duration in seconds."""

    async def extract_clip(self, source_path: Path, output_path: Path, start: float, duration: float) -> Path:
        """Cut a sub-clip and return the rendered media path."""

    async def add_subtitles(
        self,
        media_path: Path,
        output_path: Path,
        segments: Sequence[TranscriptSegment],
        start: float,
        end: float,
    ) -> Path:
        """Burn captions in and return the captioned media path."""

    async def extract_frame(self, media_path: Path, output_path: Path, timestamp: float) -> Path:
        """Grab one still frame and return the image path."""


class Captioner(Protocol):
    async def generate_caption(self, transcript_text: str) -> CaptionResult:
        """Generate title, caption, hashtags and description for a clip."""


class ThumbnailMaker(Protocol):
    async def composite(self, frame_path: Path, output_path: Path, title_text: str) -> Path:
        """Overlay the title on a frame and return the thumbnail path."""


class Publisher(Protocol):
    async def publish(self, media_path: Path, metadata: Any) -> str:
        """Upload media and return the platform video id."""

    async def set_thumbnail(self, video_id: str, thumbnail_path: Path) -> None:
        """Attach a thumbnail to a published video."""

    async def post_comment(self, video_id: str, text: str) -> str:
        """Post a comment and return its id."""

    def video_url(self, video_id: str) -> str:
        """Public URL of a published video."""
