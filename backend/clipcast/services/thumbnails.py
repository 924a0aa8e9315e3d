"""Thumbnail compositing with Pillow."""
import asyncio
import logging
from pathlib import Path
from typing import List, Optional

from PIL import Image, ImageDraw, ImageFont, ImageOps

from clipcast.config import settings

logger = logging.getLogger(__name__)

MAX_TITLE_CHARS = 50
BAND_OPACITY = 170
TEXT_MARGIN = 48

# Tried in order when no font path is configured
FALLBACK_FONTS = (
    "DejaVuSans-Bold.ttf",
    "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
    "Arial Bold.ttf",
    "arialbd.ttf",
)


class ThumbnailError(Exception):
    """Thumbnail compositing failed."""
    pass


def format_title(title: str, max_chars: int = MAX_TITLE_CHARS) -> str:
    """Upper-case and truncate to ``max_chars`` characters."""
    return " ".join(title.split()).upper()[:max_chars]


def load_font(size: int, font_path: Optional[str] = None) -> ImageFont.ImageFont:
    candidates = [font_path] if font_path else []
    candidates.extend(FALLBACK_FONTS)
    for candidate in candidates:
        try:
            return ImageFont.truetype(candidate, size)
        except OSError:
            continue
    logger.debug("No TrueType font found, using Pillow default")
    return ImageFont.load_default()


def _text_width(font: ImageFont.ImageFont, text: str) -> int:
    left, _, right, _ = font.getbbox(text)
    return right - left


def wrap_text(text: str, font: ImageFont.ImageFont, max_width: int) -> List[str]:
    lines: List[str] = []
    current: List[str] = []
    for word in text.split():
        test = " ".join(current + [word])
        if _text_width(font, test) <= max_width or not current:
            current.append(word)
        else:
            lines.append(" ".join(current))
            current = [word]
    if current:
        lines.append(" ".join(current))
    return lines


def render_thumbnail(
    frame_path: Path,
    output_path: Path,
    title_text: str,
    width: int,
    height: int,
    font_size: int,
    quality: int,
    font_path: Optional[str] = None,
) -> Path:
    """Cover-resize the frame, draw a translucent band and the title, save as JPEG."""
    with Image.open(frame_path) as frame:
        base = ImageOps.fit(frame.convert("RGB"), (width, height), Image.Resampling.LANCZOS)

    font = load_font(font_size, font_path)
    lines = wrap_text(format_title(title_text), font, width - 2 * TEXT_MARGIN)
    line_height = int(font_size * 1.25)
    band_height = max(len(lines), 1) * line_height + TEXT_MARGIN

    overlay = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    band_top = height - band_height
    draw.rectangle([(0, band_top), (width, height)], fill=(0, 0, 0, BAND_OPACITY))

    y = band_top + TEXT_MARGIN // 2
    for line in lines:
        x = (width - _text_width(font, line)) // 2
        draw.text((x, y), line, font=font, fill=(255, 255, 255, 255))
        y += line_height

    composed = Image.alpha_composite(base.convert("RGBA"), overlay).convert("RGB")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    composed.save(output_path, "JPEG", quality=quality)
    return output_path


class PillowThumbnailMaker:
    """Thumbnail collaborator; the drawing runs in a worker thread."""

    def __init__(
        self,
        width: Optional[int] = None,
        height: Optional[int] = None,
        font_size: Optional[int] = None,
        quality: Optional[int] = None,
        font_path: Optional[str] = None,
    ):
        self.width = width or settings.frame_width
        self.height = height or settings.frame_height
        self.font_size = font_size or settings.thumbnail_font_size
        self.quality = quality or settings.thumbnail_quality
        self.font_path = font_path or settings.thumbnail_font_path

    async def composite(self, frame_path: Path, output_path: Path, title_text: str) -> Path:
        frame_path, output_path = Path(frame_path), Path(output_path)
        if not frame_path.exists():
            raise ThumbnailError(f"Frame not found: {frame_path}")
        try:
            return await asyncio.to_thread(
                render_thumbnail,
                frame_path,
                output_path,
                title_text,
                self.width,
                self.height,
                self.font_size,
                self.quality,
                self.font_path,
            )
        except OSError as e:
            raise ThumbnailError(f"Failed to composite thumbnail: {e}") from e
