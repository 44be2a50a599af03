"""
Reading Tracker - Facade
Every public operation, with the user passed explicitly on each call.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from .achievements import Achievement, AchievementService
from .catalog import ActivitySource, Catalog, PostgresActivity, PostgresCatalog
from .config import TrackerConfig, get_tracker_config
from .database import Database
from .goals import (
    GoalRequest, ReadingGoal, build_goal, evaluate_goal, goal_window, validate_goal
)
from .history import HistoryService
from .library import LibraryService
from .models import (
    AggregateStats, HistoryItem, LibraryPointer, NovelHistoryGroup,
    ProgressRecord, ProgressResult, ReadingStatus, StatsWindow, as_aware
)
from .pg_store import PostgresReadingStore
from .privacy import InMemoryPrivacyMode, PrivacyModeProvider
from .progress import Clock, EventRecorder, utc_now
from .stats import StatsAggregator
from .store import ReadingStore


class ReadingTracker:

    def __init__(
        self,
        store: ReadingStore,
        catalog: Catalog,
        activity: ActivitySource,
        privacy: Optional[PrivacyModeProvider] = None,
        config: Optional[TrackerConfig] = None,
        clock: Optional[Clock] = None
    ):
        self.config = config or get_tracker_config()
        self.clock = clock or utc_now
        self.store = store
        self.catalog = catalog
        self.privacy = privacy or InMemoryPrivacyMode(self.config.privacy_mode_default)

        self.recorder = EventRecorder(store, catalog, self.privacy, self.clock)
        self.history = HistoryService(store, catalog)
        self.library = LibraryService(store, catalog, self.clock)
        self.aggregator = StatsAggregator(store, catalog, activity, self.config, self.clock)
        self.achievements = AchievementService(store, self.aggregator, clock=self.clock)

    # ============================================
    # PROGRESS
    # ============================================

    async def record_progress(
        self,
        user_id: int,
        chapter_id: int,
        percentage: float,
        cursor_position: int,
        completed: bool
    ) -> ProgressResult:
        return await self.recorder.record_progress(
            user_id, chapter_id, percentage, cursor_position, completed
        )

    async def autosave_progress(
        self,
        user_id: int,
        chapter_id: int,
        percentage: float,
        cursor_position: int
    ) -> ProgressResult:
        return await self.recorder.autosave(user_id, chapter_id, percentage, cursor_position)

    def record_progress_in_background(
        self,
        user_id: int,
        chapter_id: int,
        percentage: float,
        cursor_position: int,
        completed: bool
    ) -> asyncio.Task:
        return self.recorder.record_in_background(
            user_id, chapter_id, percentage, cursor_position, completed
        )

    async def drain(self) -> None:
        """Wait for background saves; called on shutdown."""
        await self.recorder.drain()

    async def get_progress(self, user_id: int, chapter_id: int) -> Optional[ProgressRecord]:
        return await self.history.get_progress(user_id, chapter_id)

    # ============================================
    # LIBRARY
    # ============================================

    async def get_last_read_chapter(self, user_id: int, novel_id: int) -> Optional[int]:
        return await self.library.get_last_read_chapter(user_id, novel_id)

    async def get_library(self, user_id: int) -> List[LibraryPointer]:
        return await self.library.get_library(user_id)

    async def add_to_library(self, user_id: int, novel_id: int) -> LibraryPointer:
        return await self.library.add_to_library(user_id, novel_id)

    async def remove_from_library(self, user_id: int, novel_id: int) -> None:
        await self.library.remove_from_library(user_id, novel_id)

    async def is_in_library(self, user_id: int, novel_id: int) -> bool:
        return await self.library.is_in_library(user_id, novel_id)

    async def set_reading_status(
        self,
        user_id: int,
        novel_id: int,
        status: ReadingStatus
    ) -> LibraryPointer:
        return await self.library.set_reading_status(user_id, novel_id, status)

    async def set_favorite(self, user_id: int, novel_id: int, is_favorite: bool) -> LibraryPointer:
        return await self.library.set_favorite(user_id, novel_id, is_favorite)

    async def rebuild_library_pointers(self, user_id: int) -> int:
        return await self.library.rebuild_pointers(user_id)

    # ============================================
    # HISTORY
    # ============================================

    async def get_user_history(self, user_id: int, limit: int = 0) -> List[HistoryItem]:
        return await self.history.get_user_history(user_id, limit)

    async def get_history_by_date_range(
        self,
        user_id: int,
        start: datetime,
        end: datetime
    ) -> List[HistoryItem]:
        tz = self.config.tz()
        return await self.history.get_history_by_date_range(
            user_id, as_aware(start, tz), as_aware(end, tz)
        )

    async def get_history_grouped_by_novel(self, user_id: int) -> List[NovelHistoryGroup]:
        return await self.history.get_history_grouped_by_novel(user_id)

    async def delete_history_entry(self, user_id: int, chapter_id: int) -> None:
        await self.history.delete_entry(user_id, chapter_id)

    async def clear_all_history(self, user_id: int) -> int:
        """
        Irreversible bulk delete of the user's progress, history and library
        pointers. Storage failures are raised, never swallowed.
        """
        return await self.history.clear_all(user_id)

    # ============================================
    # STATS & ACHIEVEMENTS
    # ============================================

    async def get_aggregate_stats(
        self,
        user_id: int,
        window: Optional[StatsWindow] = None
    ) -> AggregateStats:
        return await self.aggregator.get_aggregate_stats(user_id, window)

    async def get_recent_stats(self, user_id: int, days: int = 7) -> AggregateStats:
        return await self.aggregator.get_aggregate_stats(
            user_id, self.aggregator.window_for_last_days(days)
        )

    async def get_achievements(self, user_id: int) -> List[Achievement]:
        return await self.achievements.get_achievements(user_id)

    async def get_achievement_summary(self, user_id: int) -> Dict[str, Any]:
        return await self.achievements.get_summary(user_id)

    # ============================================
    # GOALS
    # ============================================

    async def get_goal(self, user_id: int) -> Optional[ReadingGoal]:
        """The user's goal with current progress measured inside its window."""
        goal = await self.store.get_goal(user_id)
        if goal is None:
            return None
        stats = await self.aggregator.get_aggregate_stats(user_id, goal_window(goal))
        return evaluate_goal(stats, goal, self.clock())

    async def set_goal(
        self,
        user_id: int,
        goal: Union[ReadingGoal, GoalRequest]
    ) -> ReadingGoal:
        """
        Replace the user's goal. A GoalRequest without dates gets the
        current day/week/month as its window. Naive dates are read in the
        configured timezone.

        Raises:
            InvalidArgumentError: non-positive target or end before start
        """
        if isinstance(goal, GoalRequest):
            goal = build_goal(goal, self.clock(), self.config.tz())
        else:
            goal = validate_goal(goal, self.config.tz())
        await self.store.save_goal(user_id, goal)
        return await self.get_goal(user_id)

    async def clear_goal(self, user_id: int) -> bool:
        return await self.store.delete_goal(user_id)


# ============================================
# BUILDERS
# ============================================

def build_postgres_tracker(
    database: Database,
    privacy: Optional[PrivacyModeProvider] = None,
    config: Optional[TrackerConfig] = None
) -> ReadingTracker:
    """Wire Postgres-backed collaborators; the database may connect later."""
    return ReadingTracker(
        store=PostgresReadingStore(database),
        catalog=PostgresCatalog(database),
        activity=PostgresActivity(database),
        privacy=privacy,
        config=config
    )
