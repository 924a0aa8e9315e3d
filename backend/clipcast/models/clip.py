"""Clip model."""
import enum
import json
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Enum, Float, ForeignKey, Text
from sqlalchemy.orm import relationship

from clipcast.db.database import Base


class ClipStatus(str, enum.Enum):
    """Clip status enumeration."""
    PENDING = "pending"
    READY = "ready"
    SCHEDULED = "scheduled"
    PUBLISHED = "published"


class Clip(Base):
    """A rendered, captioned short cut from an episode."""

    __tablename__ = "clips"

    id = Column(Integer, primary_key=True, index=True)
    episode_id = Column(Integer, ForeignKey("episodes.id", ondelete="CASCADE"), nullable=False)

    # Time range within the episode
    start_time = Column(Float, nullable=False)
    end_time = Column(Float, nullable=False)
    duration = Column(Float, nullable=False)

    # Detection output
    score = Column(Float, nullable=True)
    transcript_text = Column(Text, nullable=True)
    rationale = Column(String(512), nullable=True)

    # Rendered artifacts
    rendered_file_path = Column(String(4096), nullable=True)
    thumbnail_path = Column(String(4096), nullable=True)

    # Publish metadata
    title = Column(String(255), nullable=True)
    caption = Column(Text, nullable=True)
    hashtags = Column(Text, nullable=True)  # JSON array of strings
    description = Column(Text, nullable=True)

    status = Column(Enum(ClipStatus), default=ClipStatus.PENDING, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    episode = relationship("Episode", back_populates="clips")
    uploads = relationship("Upload", back_populates="clip", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Clip(id={self.id}, episode={self.episode_id}, {self.start_time:.2f}-{self.end_time:.2f})>"

    @property
    def hashtag_list(self):
        """Decode stored hashtags."""
        if not self.hashtags:
            return []
        try:
            return json.loads(self.hashtags)
        except json.JSONDecodeError:
            return []

    def to_dict(self):
        """Convert to dictionary."""
        return {
            "id": self.id,
            "episode_id": self.episode_id,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration": self.duration,
            "score": self.score,
            "rationale": self.rationale,
            "transcript_text": self.transcript_text,
            "rendered_file_path": self.rendered_file_path,
            "thumbnail_path": self.thumbnail_path,
            "title": self.title,
            "caption": self.caption,
            "hashtags": self.hashtag_list,
            "status": self.status.value if self.status else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
