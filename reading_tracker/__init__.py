"""
Reading Tracker
Reading progress, history, library pointers and engagement analytics
"""

from .errors import (
    ErrorKind,
    TrackerError,
    NotFoundError,
    InvalidArgumentError,
    StorageFailureError,
    ConflictError,
)

from .models import (
    # Enums
    NovelStatus,
    ReadingStatus,
    # Catalog references
    ChapterRef,
    NovelRef,
    # Records
    ProgressRecord,
    HistoryEntry,
    LibraryPointer,
    # Views
    HistoryItem,
    NovelHistoryGroup,
    StatsWindow,
    AggregateStats,
    ProgressResult,
)

from .goals import (
    GoalType,
    GoalRequest,
    ReadingGoal,
)

from .achievements import (
    AchievementType,
    AchievementDefinition,
    Achievement,
    ACHIEVEMENT_DEFINITIONS,
)

from .catalog import (
    Catalog,
    ActivitySource,
    StaticCatalog,
    StaticActivity,
    PostgresCatalog,
    PostgresActivity,
)

from .privacy import (
    PrivacyModeProvider,
    InMemoryPrivacyMode,
)

from .store import (
    ReadingStore,
    ProgressWriter,
    MemoryReadingStore,
)

from .pg_store import PostgresReadingStore
from .database import Database, ensure_tables

from .tracker import (
    ReadingTracker,
    build_postgres_tracker,
)


__all__ = [
    # Errors
    "ErrorKind",
    "TrackerError",
    "NotFoundError",
    "InvalidArgumentError",
    "StorageFailureError",
    "ConflictError",
    # Enums
    "NovelStatus",
    "ReadingStatus",
    "GoalType",
    "AchievementType",
    # Models
    "ChapterRef",
    "NovelRef",
    "ProgressRecord",
    "HistoryEntry",
    "LibraryPointer",
    "HistoryItem",
    "NovelHistoryGroup",
    "StatsWindow",
    "AggregateStats",
    "ProgressResult",
    "GoalRequest",
    "ReadingGoal",
    "AchievementDefinition",
    "Achievement",
    "ACHIEVEMENT_DEFINITIONS",
    # Collaborators
    "Catalog",
    "ActivitySource",
    "StaticCatalog",
    "StaticActivity",
    "PostgresCatalog",
    "PostgresActivity",
    "PrivacyModeProvider",
    "InMemoryPrivacyMode",
    # Storage
    "ReadingStore",
    "ProgressWriter",
    "MemoryReadingStore",
    "PostgresReadingStore",
    "Database",
    "ensure_tables",
    # Facade
    "ReadingTracker",
    "build_postgres_tracker",
]
