# Models module
from clipcast.models.episode import Episode, EpisodeStatus
from clipcast.models.clip import Clip, ClipStatus
from clipcast.models.upload import Upload, UploadStatus
from clipcast.models.activity_log import ActivityLogEntry, ActivityStatus

__all__ = [
    "Episode",
    "EpisodeStatus",
    "Clip",
    "ClipStatus",
    "Upload",
    "UploadStatus",
    "ActivityLogEntry",
    "ActivityStatus",
]
