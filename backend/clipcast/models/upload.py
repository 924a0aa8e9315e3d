"""Upload model for scheduled publishing."""
import enum
from datetime import datetime
from sqlalchemy import Boolean, Column, Integer, String, DateTime, Enum, ForeignKey, Text
from sqlalchemy.orm import relationship

from clipcast.db.database import Base


class UploadStatus(str, enum.Enum):
    """Upload status enumeration."""
    SCHEDULED = "scheduled"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    FAILED = "failed"


# Statuses that count as the clip's one live upload
LIVE_UPLOAD_STATUSES = (UploadStatus.SCHEDULED, UploadStatus.UPLOADING)


class Upload(Base):
    """A clip scheduled for release on the publishing platform."""

    __tablename__ = "uploads"

    id = Column(Integer, primary_key=True, index=True)
    clip_id = Column(Integer, ForeignKey("clips.id", ondelete="CASCADE"), nullable=False)
    platform = Column(String(64), nullable=False, default="youtube")

    scheduled_time = Column(DateTime, nullable=False, index=True)
    status = Column(Enum(UploadStatus), default=UploadStatus.SCHEDULED, nullable=False, index=True)

    # Filled in by the publish worker
    external_video_id = Column(String(255), nullable=True)
    published_url = Column(String(2048), nullable=True)
    uploaded_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)
    comment_posted = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    clip = relationship("Clip", back_populates="uploads")

    def __repr__(self):
        return f"<Upload(id={self.id}, clip={self.clip_id}, status={self.status})>"

    def to_dict(self):
        """Convert to dictionary."""
        return {
            "id": self.id,
            "clip_id": self.clip_id,
            "platform": self.platform,
            "scheduled_time": self.scheduled_time.isoformat() if self.scheduled_time else None,
            "status": self.status.value if self.status else None,
            "external_video_id": self.external_video_id,
            "published_url": self.published_url,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
            "error_message": self.error_message,
            "comment_posted": self.comment_posted,
        }
