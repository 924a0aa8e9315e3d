"""Application configuration."""
from pathlib import Path
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8"
    )

    # App settings
    app_name: str = "ClipCast"
    debug: bool = False

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000

    # Database
    database_url: str = "sqlite+aiosqlite:///./data/clipcast.db"

    # Data directories
    data_dir: Path = Path("./data")
    upload_dir: Path = Path("./data/uploads")
    output_dir: Path = Path("./data/outputs")
    work_dir: Path = Path("./data/work")

    # Candidate detection
    min_clip_seconds: float = 15.0
    max_clip_seconds: float = 60.0
    score_threshold: float = 0.3
    top_n: int = 10
    refine_with_llm: bool = False

    # FFmpeg settings
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Render settings
    render_video_codec: str = "libx264"
    render_video_preset: str = "fast"
    render_video_crf: int = 23
    render_audio_codec: str = "aac"
    render_audio_bitrate: str = "128k"
    render_audio_rate: int = 44100
    fade_seconds: float = 0.3
    subtitle_style: str = (
        "FontName=Arial Bold,FontSize=24,PrimaryColour=&HFFFFFF,"
        "OutlineColour=&H000000,BorderStyle=3,Outline=2,Shadow=1,MarginV=45"
    )

    # Thumbnail settings
    frame_width: int = 1280
    frame_height: int = 720
    thumbnail_quality: int = 90
    thumbnail_font_path: Optional[str] = None
    thumbnail_font_size: int = 64

    # OpenAI
    openai_api_key: Optional[str] = None
    transcription_model: str = "whisper-1"
    caption_model: str = "gpt-4"
    scoring_model: str = "gpt-4"
    llm_timeout_seconds: float = 60.0

    # YouTube publishing
    youtube_client_id: Optional[str] = None
    youtube_client_secret: Optional[str] = None
    youtube_redirect_uri: str = "http://localhost:8000/api/auth/youtube/callback"
    youtube_refresh_token: Optional[str] = None
    youtube_privacy_status: str = "public"
    youtube_category_id: str = "22"  # People & Blogs

    # Upload scheduling
    upload_poll_interval_seconds: float = 60.0
    schedule_times: List[str] = ["13:00", "21:00"]
    youtube_daily_quota_units: int = 10000
    youtube_upload_cost_units: int = 1600
    youtube_comment_cost_units: int = 50


settings = Settings()

# Ensure directories exist
settings.data_dir.mkdir(parents=True, exist_ok=True)
settings.upload_dir.mkdir(parents=True, exist_ok=True)
settings.output_dir.mkdir(parents=True, exist_ok=True)
settings.work_dir.mkdir(parents=True, exist_ok=True)
