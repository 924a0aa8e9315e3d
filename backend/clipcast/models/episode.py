"""Episode model."""
import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Enum, Float
from sqlalchemy.orm import relationship

from clipcast.db.database import Base


class EpisodeStatus(str, enum.Enum):
    """Episode status enumeration."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Episode(Base):
    """A long-form recording that clips are cut from."""

    __tablename__ = "episodes"

    id = Column(Integer, primary_key=True, index=True)
    filename = Column(String(1024), nullable=False)
    source_path = Column(String(4096), nullable=False)
    duration = Column(Float, nullable=True)

    status = Column(Enum(EpisodeStatus), default=EpisodeStatus.PENDING, nullable=False, index=True)
    error_message = Column(String(4096), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    processed_at = Column(DateTime, nullable=True)

    # Relationships
    clips = relationship("Clip", back_populates="episode", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Episode(id={self.id}, filename='{self.filename}', status={self.status})>"

    def to_dict(self):
        """Convert to dictionary."""
        return {
            "id": self.id,
            "filename": self.filename,
            "source_path": self.source_path,
            "duration": self.duration,
            "status": self.status.value if self.status else None,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
        }
