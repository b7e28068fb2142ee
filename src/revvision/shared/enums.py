"""Domain enumerations used across all modules."""

from __future__ import annotations

from enum import Enum, unique


@unique
class EntryStatus(str, Enum):
    """Lifecycle states for a queued video entry."""

    QUEUED = "queued"
    PROCESSING = "processing"
    UPLOADING = "uploading"
    SUCCESS = "success"
    ERROR = "error"


@unique
class SourceKind(str, Enum):
    """Where an entry's bytes come from."""

    LOCAL = "local"
    REMOTE = "remote"


@unique
class PipelineMode(str, Enum):
    """Whether finished entries are persisted to Google Drive."""

    LOCAL = "local"
    PERSIST = "persist"


@unique
class NoticeLevel(str, Enum):
    """Severity of a user-facing notice."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@unique
class SessionState(str, Enum):
    """Token lifecycle as seen by the session manager."""

    UNAUTHENTICATED = "unauthenticated"
    VALID = "valid"
    REFRESHING = "refreshing"
