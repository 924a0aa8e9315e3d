"""FFmpeg and ffprobe utilities."""
import asyncio
import json
import logging
import shutil
from pathlib import Path
from typing import Iterable, List, Sequence

from clipcast.config import settings
from clipcast.pipeline.transcript import TranscriptSegment, segments_in_range

logger = logging.getLogger(__name__)


class FFmpegError(Exception):
    """FFmpeg related error."""
    pass


def check_ffmpeg_available() -> bool:
    """Check if ffmpeg is available."""
    return shutil.which(settings.ffmpeg_path) is not None


def check_ffprobe_available() -> bool:
    """Check if ffprobe is available."""
    return shutil.which(settings.ffprobe_path) is not None


async def _run(cmd: List[str], error_label: str) -> bytes:
    """Run a command to completion and return stdout, raising FFmpegError on failure."""
    logger.debug("Running: %s", " ".join(cmd))
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE
        )
    except FileNotFoundError as e:
        raise FFmpegError(f"{error_label}: executable not found ({cmd[0]})") from e

    stdout, stderr = await proc.communicate()

    if proc.returncode != 0:
        raise FFmpegError(f"{error_label}: {stderr.decode(errors='ignore').strip()[-2000:]}")

    return stdout


async def get_duration(video_path: str | Path) -> float:
    """
    Get media duration in seconds using ffprobe.

    Raises:
        FFmpegError: If the file is missing or ffprobe fails
    """
    video_path = Path(video_path)
    if not video_path.exists():
        raise FFmpegError(f"Media file not found: {video_path}")

    cmd = [
        settings.ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        str(video_path)
    ]
    stdout = await _run(cmd, "ffprobe failed")

    try:
        data = json.loads(stdout.decode())
        return float(data.get("format", {}).get("duration", 0) or 0)
    except (json.JSONDecodeError, ValueError) as e:
        raise FFmpegError(f"Failed to parse ffprobe output: {e}")


def build_fade_filters(duration: float, fade: float) -> tuple:
    """Video and audio fade in/out filter strings for a clip of ``duration`` seconds."""
    fade_out_start = max(0.0, duration - fade)
    video = f"fade=t=in:st=0:d={fade},fade=t=out:st={fade_out_start:.3f}:d={fade}"
    audio = f"afade=t=in:st=0:d={fade},afade=t=out:st={fade_out_start:.3f}:d={fade}"
    return video, audio


async def extract_clip(
    source_path: str | Path,
    output_path: str | Path,
    start_time: float,
    duration: float,
) -> Path:
    """
    Cut ``duration`` seconds from the source starting at ``start_time``,
    re-encoding with short fades at both ends.

    Returns:
        Path to the extracted clip
    """
    source_path = Path(source_path)
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    video_fade, audio_fade = build_fade_filters(duration, settings.fade_seconds)

    cmd = [
        settings.ffmpeg_path,
        "-y",
        "-ss", str(start_time),
        "-i", str(source_path),
        "-t", str(duration),
        "-vf", video_fade,
        "-af", audio_fade,
        "-c:v", settings.render_video_codec,
        "-preset", settings.render_video_preset,
        "-crf", str(settings.render_video_crf),
        "-c:a", settings.render_audio_codec,
        "-b:a", settings.render_audio_bitrate,
        "-ar", str(settings.render_audio_rate),
        "-movflags", "+faststart",
        str(output_path)
    ]
    await _run(cmd, "Clip extraction failed")
    return output_path


def format_srt_time(seconds: float) -> str:
    """Format seconds as an SRT timestamp (HH:MM:SS,mmm)."""
    total_ms = max(0, int(round(seconds * 1000)))
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, ms = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{ms:03d}"


def build_srt(segments: Iterable[TranscriptSegment], offset_seconds: float) -> str:
    """Render segments as SRT cues, shifted so ``offset_seconds`` becomes 0."""
    cues = []
    for index, seg in enumerate(segments, start=1):
        start = format_srt_time(seg.start - offset_seconds)
        end = format_srt_time(seg.end - offset_seconds)
        cues.append(f"{index}\n{start} --> {end}\n{seg.text}\n")
    return "\n".join(cues)


def _escape_filter_path(path: Path) -> str:
    """Escape a path for use inside an ffmpeg filter argument."""
    return str(path).replace("\\", "/").replace(":", "\\:").replace("'", "\\'")


async def add_subtitles(
    video_path: str | Path,
    output_path: str | Path,
    segments: Sequence[TranscriptSegment],
    start_time: float,
    end_time: float,
) -> Path:
    """
    Burn transcript captions into a clip.

    Only segments fully inside [start_time, end_time] are rendered; cue
    times are relative to ``start_time``.
    """
    video_path = Path(video_path)
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    clip_segments = segments_in_range(segments, start_time, end_time)
    srt_path = video_path.with_suffix(".srt")
    srt_path.write_text(build_srt(clip_segments, start_time), encoding="utf-8")

    subtitle_filter = (
        f"subtitles=filename='{_escape_filter_path(srt_path)}'"
        f":force_style='{settings.subtitle_style}'"
    )
    cmd = [
        settings.ffmpeg_path,
        "-y",
        "-i", str(video_path),
        "-vf", subtitle_filter,
        "-c:v", settings.render_video_codec,
        "-preset", settings.render_video_preset,
        "-crf", str(settings.render_video_crf),
        "-c:a", "copy",
        str(output_path)
    ]
    try:
        await _run(cmd, "Subtitle burn-in failed")
    finally:
        srt_path.unlink(missing_ok=True)

    return output_path


async def extract_frame(
    video_path: str | Path,
    output_path: str | Path,
    timestamp: float,
    width: int = None,
    height: int = None
) -> Path:
    """
    Grab a single still frame at ``timestamp``.

    Returns:
        Path to the extracted image
    """
    video_path = Path(video_path)
    output_path = Path(output_path)

    width = width or settings.frame_width
    height = height or settings.frame_height

    output_path.parent.mkdir(parents=True, exist_ok=True)

    cmd = [
        settings.ffmpeg_path,
        "-y",
        "-ss", str(timestamp),
        "-i", str(video_path),
        "-vframes", "1",
        "-vf", f"scale={width}:{height}:force_original_aspect_ratio=decrease,pad={width}:{height}:(ow-iw)/2:(oh-ih)/2",
        "-q:v", "2",
        str(output_path)
    ]
    await _run(cmd, "Frame extraction failed")
    return output_path


class FFmpegRenderer:
    """Rendering collaborator backed by the local ffmpeg/ffprobe binaries."""

    async def get_duration(self, source_path: Path) -> float:
        return await get_duration(source_path)

    async def extract_clip(self, source_path: Path, output_path: Path, start: float, duration: float) -> Path:
        return await extract_clip(source_path, output_path, start, duration)

    async def add_subtitles(
        self,
        media_path: Path,
        output_path: Path,
        segments: Sequence[TranscriptSegment],
        start: float,
        end: float,
    ) -> Path:
        return await add_subtitles(media_path, output_path, segments, start, end)

    async def extract_frame(self, media_path: Path, output_path: Path, timestamp: float) -> Path:
        return await extract_frame(media_path, output_path, timestamp)
