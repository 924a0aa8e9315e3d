"""Append-only activity log."""
import enum
import json
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Enum, Text

from clipcast.db.database import Base


class ActivityStatus(str, enum.Enum):
    """Activity entry status."""
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class ActivityLogEntry(Base):
    """Audit record for one pipeline or publish event. Never updated."""

    __tablename__ = "activity_log"

    id = Column(Integer, primary_key=True, index=True)
    action = Column(String(128), nullable=False, index=True)
    details = Column(Text, nullable=True)  # JSON object
    status = Column(Enum(ActivityStatus), default=ActivityStatus.SUCCESS, nullable=False)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<ActivityLogEntry(id={self.id}, action='{self.action}', status={self.status})>"

    @property
    def details_dict(self):
        if not self.details:
            return {}
        try:
            return json.loads(self.details)
        except json.JSONDecodeError:
            return {}

    def to_dict(self):
        """Convert to dictionary."""
        return {
            "id": self.id,
            "action": self.action,
            "details": self.details_dict,
            "status": self.status.value if self.status else None,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
