"""
Reading Tracker - Pydantic Models (v2 syntax)
"""

from datetime import date, datetime, tzinfo
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import ErrorKind, InvalidArgumentError


# ============================================
# ENUMS
# ============================================

class NovelStatus(str, Enum):
    ONGOING = "ongoing"
    COMPLETED = "completed"
    HIATUS = "hiatus"
    CANCELLED = "cancelled"


class ReadingStatus(str, Enum):
    READING = "reading"
    COMPLETED = "completed"
    PLAN_TO_READ = "plan_to_read"
    PAUSED = "paused"
    DROPPED = "dropped"


# ============================================
# CATALOG REFERENCES
# ============================================

class ChapterRef(BaseModel):
    """What the catalog knows about a chapter."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    chapter_id: int
    novel_id: int
    chapter_number: int = Field(ge=0)
    title: Optional[str] = None


class NovelRef(BaseModel):
    """What the catalog knows about a novel."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    novel_id: int
    title: str
    author: Optional[str] = None
    chapter_count: int = Field(default=0, ge=0)
    genres: List[str] = Field(default_factory=list)
    status: NovelStatus = NovelStatus.ONGOING


# ============================================
# PERSISTED RECORDS
# ============================================

class ProgressRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    chapter_id: int
    percentage: float = Field(ge=0.0, le=100.0)
    cursor_position: int = Field(ge=0)
    completed: bool = False
    last_read_at: datetime

    @model_validator(mode="after")
    def _completed_is_full(self) -> "ProgressRecord":
        if self.completed and self.percentage != 100.0:
            raise ValueError("a completed chapter must be at 100%")
        return self


class HistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    novel_id: int
    chapter_id: int
    completed: bool = False
    read_at: datetime


class LibraryPointer(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    novel_id: int
    last_read_chapter: int = Field(default=0, ge=0)
    reading_status: ReadingStatus = ReadingStatus.READING
    is_favorite: bool = False
    added_at: datetime
    advanced_at: Optional[datetime] = None


# ============================================
# HISTORY VIEWS
# ============================================

class HistoryItem(BaseModel):
    """History entry joined with whatever the catalog knows."""
    novel_id: int
    chapter_id: int
    completed: bool
    read_at: datetime
    percentage: Optional[float] = None
    chapter_number: Optional[int] = None
    novel_title: Optional[str] = None
    novel_author: Optional[str] = None


class NovelHistoryGroup(BaseModel):
    novel_id: int
    novel_title: Optional[str] = None
    last_read: datetime
    chapters_read: int
    chapters_completed: int


# ============================================
# AGGREGATES
# ============================================

def as_aware(moment: datetime, tz: tzinfo) -> datetime:
    """Naive datetimes are read as local time in `tz`."""
    return moment if moment.tzinfo else moment.replace(tzinfo=tz)


class StatsWindow(BaseModel):
    """Half-open [start, end) range over HistoryEntry.read_at."""
    start: datetime
    end: datetime

    @model_validator(mode="after")
    def _ordered(self) -> "StatsWindow":
        # Mixed naive/aware ends cannot be ordered until localized.
        if (self.start.tzinfo is None) == (self.end.tzinfo is None) and self.end <= self.start:
            raise ValueError("window end must be after its start")
        return self

    def localized(self, tz: tzinfo) -> "StatsWindow":
        if self.start.tzinfo and self.end.tzinfo:
            return self
        try:
            return StatsWindow(start=as_aware(self.start, tz), end=as_aware(self.end, tz))
        except ValidationError as e:
            raise InvalidArgumentError("window end must be after its start") from e

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end


class GenreReadingStats(BaseModel):
    genre: str
    chapters_read: int
    novels_read: int
    percentage: float


class AuthorReadingStats(BaseModel):
    author: str
    chapters_read: int
    novels_read: int
    average_rating: float = 0.0


class DailyReadingStats(BaseModel):
    day: date
    chapters_read: int


class MonthlyReadingStats(BaseModel):
    year: int
    month: int
    chapters_read: int
    novels_started: int


class AggregateStats(BaseModel):
    """Derived, recomputable summary of a user's reading."""
    user_id: int
    window: Optional[StatsWindow] = None
    computed_at: datetime

    # Totals
    total_chapters_read: int = 0
    total_chapters_completed: int = 0
    total_novels_read: int = 0
    novels_started: int = 0
    total_reading_seconds: int = 0
    reading_days: int = 0
    first_reading_date: Optional[datetime] = None

    # Streaks
    current_streak: int = 0
    longest_streak: int = 0

    # Library
    total_novels_in_library: int = 0
    novels_completed: int = 0
    novels_reading: int = 0
    novels_plan_to_read: int = 0
    total_favorites: int = 0
    completion_rate: float = 0.0

    # Breakdowns
    genre_stats: List[GenreReadingStats] = Field(default_factory=list)
    author_stats: List[AuthorReadingStats] = Field(default_factory=list)
    genres_explored: int = 0
    favorite_genre: Optional[str] = None
    favorite_author: Optional[str] = None

    # Histograms
    hourly_distribution: Dict[int, int] = Field(default_factory=dict)
    daily_stats: List[DailyReadingStats] = Field(default_factory=list)
    monthly_stats: List[MonthlyReadingStats] = Field(default_factory=list)

    # Pass-through from external collaborators
    total_reviews_written: int = 0
    total_categories: int = 0

    @property
    def average_chapters_per_day(self) -> float:
        if not self.first_reading_date:
            return 0.0
        days = (self.computed_at - self.first_reading_date).total_seconds() / 86400
        return self.total_chapters_read / days if days > 0 else 0.0

    @property
    def formatted_total_time(self) -> str:
        seconds = self.total_reading_seconds
        if seconds < 3600:
            return f"{seconds // 60} min"
        if seconds < 86400:
            return f"{seconds // 3600}h {(seconds % 3600) // 60}m"
        return f"{seconds // 86400}d {(seconds % 86400) // 3600}h"


# ============================================
# API RESPONSE MODELS
# ============================================

class ProgressUpdate(BaseModel):
    """Body of a progress event coming from the reader UI."""
    chapter_id: int
    percentage: float
    cursor_position: int = 0
    completed: bool = False


class ProgressResult(BaseModel):
    success: bool
    error: Optional[ErrorKind] = None
    message: Optional[str] = None
    skipped: bool = False
