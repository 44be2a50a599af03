"""
Reading Tracker - Achievement System
Fixed thresholds evaluated against aggregate stats. Unlock times are
remembered once crossed; the stats remain the source of truth.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from .logger import get_logger
from .models import AggregateStats
from .progress import Clock, utc_now
from .stats import StatsAggregator
from .store import ReadingStore

logger = get_logger("achievements")


# ============================================
# ENUMS
# ============================================

class AchievementType(str, Enum):
    CHAPTERS_READ = "chapters_read"
    NOVELS_COMPLETED = "novels_completed"
    READING_STREAK = "reading_streak"
    GENRE_EXPLORER = "genre_explorer"
    TIME_SPENT = "time_spent"
    REVIEWS = "reviews"
    CATEGORIES = "categories"


# ============================================
# PYDANTIC MODELS
# ============================================

class AchievementDefinition(BaseModel):
    code: str
    name: str
    description: str
    icon: str
    achievement_type: AchievementType
    target: int


class Achievement(AchievementDefinition):
    progress: int = 0
    unlocked: bool = False
    unlocked_at: Optional[datetime] = None
    percentage: float = 0.0


# ============================================
# ACHIEVEMENT DEFINITIONS
# ============================================

ACHIEVEMENT_DEFINITIONS = {
    # Chapter achievements
    "first_chapter": {
        "name": "First Page",
        "description": "Read your first chapter",
        "icon": "📖",
        "achievement_type": "chapters_read",
        "target": 1
    },
    "bookworm": {
        "name": "Bookworm",
        "description": "Read 100 chapters",
        "icon": "📚",
        "achievement_type": "chapters_read",
        "target": 100
    },
    "dedicated_reader": {
        "name": "Dedicated Reader",
        "description": "Read 500 chapters",
        "icon": "🎓",
        "achievement_type": "chapters_read",
        "target": 500
    },
    # Novel achievements
    "first_complete": {
        "name": "First Victory",
        "description": "Finish your first novel",
        "icon": "🏆",
        "achievement_type": "novels_completed",
        "target": 1
    },
    "completionist": {
        "name": "Completionist",
        "description": "Finish 10 novels",
        "icon": "👑",
        "achievement_type": "novels_completed",
        "target": 10
    },
    # Streak achievements
    "week_streak": {
        "name": "Perfect Week",
        "description": "Read 7 days in a row",
        "icon": "🔥",
        "achievement_type": "reading_streak",
        "target": 7
    },
    "month_streak": {
        "name": "Unstoppable Month",
        "description": "Read 30 days in a row",
        "icon": "💎",
        "achievement_type": "reading_streak",
        "target": 30
    },
    # Exploration achievements
    "genre_explorer": {
        "name": "Genre Explorer",
        "description": "Read novels from 5 different genres",
        "icon": "🗺️",
        "achievement_type": "genre_explorer",
        "target": 5
    },
    # Time achievements (hours)
    "marathon_reader": {
        "name": "Marathon Reader",
        "description": "Spend 10 hours reading",
        "icon": "⏱️",
        "achievement_type": "time_spent",
        "target": 10
    },
    "devoted_reader": {
        "name": "Devoted Reader",
        "description": "Spend 100 hours reading",
        "icon": "⌛",
        "achievement_type": "time_spent",
        "target": 100
    },
    # Community achievements
    "organizer": {
        "name": "Organizer",
        "description": "Create 5 custom categories",
        "icon": "📁",
        "achievement_type": "categories",
        "target": 5
    },
    "critic": {
        "name": "Literary Critic",
        "description": "Write 10 reviews",
        "icon": "✍️",
        "achievement_type": "reviews",
        "target": 10
    }
}


def default_definitions() -> List[AchievementDefinition]:
    return [
        AchievementDefinition(code=code, **data)
        for code, data in ACHIEVEMENT_DEFINITIONS.items()
    ]


# ============================================
# EVALUATION
# ============================================

def achievement_progress(stats: AggregateStats, achievement_type: AchievementType) -> int:
    """
    The stat an achievement type measures. Streaks use the longest streak so
    progress never falls back when a current streak breaks.
    """
    if achievement_type == AchievementType.CHAPTERS_READ:
        return stats.total_chapters_read
    if achievement_type == AchievementType.NOVELS_COMPLETED:
        return stats.novels_completed
    if achievement_type == AchievementType.READING_STREAK:
        return max(stats.longest_streak, stats.current_streak)
    if achievement_type == AchievementType.GENRE_EXPLORER:
        return stats.genres_explored
    if achievement_type == AchievementType.TIME_SPENT:
        return stats.total_reading_seconds // 3600
    if achievement_type == AchievementType.REVIEWS:
        return stats.total_reviews_written
    return stats.total_categories


def evaluate(
    stats: AggregateStats,
    definitions: List[AchievementDefinition],
    unlocked_at: Optional[Dict[str, datetime]] = None
) -> List[Achievement]:
    """
    Fill in progress and unlocked state. An achievement whose unlock time is
    remembered stays unlocked whatever the current stats say.
    """
    remembered = unlocked_at or {}
    results = []
    for definition in definitions:
        progress = achievement_progress(stats, definition.achievement_type)
        unlocked = progress >= definition.target or definition.code in remembered
        results.append(Achievement(
            **definition.model_dump(),
            progress=progress,
            unlocked=unlocked,
            unlocked_at=remembered.get(definition.code),
            percentage=min(100.0, round(progress / definition.target * 100, 1))
            if definition.target > 0 else 100.0
        ))
    return results


# ============================================
# SERVICE
# ============================================

class AchievementService:

    def __init__(
        self,
        store: ReadingStore,
        aggregator: StatsAggregator,
        definitions: Optional[List[AchievementDefinition]] = None,
        clock: Optional[Clock] = None
    ):
        self.store = store
        self.aggregator = aggregator
        self.definitions = definitions or default_definitions()
        self.clock = clock or utc_now

    async def get_achievements(
        self,
        user_id: int,
        stats: Optional[AggregateStats] = None
    ) -> List[Achievement]:
        """Evaluate every achievement, remembering the time of new unlocks."""
        if stats is None:
            stats = await self.aggregator.get_aggregate_stats(user_id)
        remembered = await self.store.get_unlocks(user_id)

        achievements = evaluate(stats, self.definitions, remembered)

        now = self.clock()
        new_unlocks = {
            a.code: now for a in achievements if a.unlocked and a.code not in remembered
        }
        if new_unlocks:
            await self.store.record_unlocks(user_id, new_unlocks)
            for achievement in achievements:
                if achievement.code in new_unlocks:
                    achievement.unlocked_at = now
            logger.info(f"User {user_id} unlocked: {', '.join(sorted(new_unlocks))}")

        return achievements

    async def get_unlocked(self, user_id: int) -> List[Achievement]:
        return [a for a in await self.get_achievements(user_id) if a.unlocked]

    async def get_summary(self, user_id: int) -> Dict[str, Any]:
        """Summary statistics for achievements."""
        achievements = await self.get_achievements(user_id)

        by_type: Dict[str, Dict[str, int]] = {}
        for achievement in achievements:
            bucket = by_type.setdefault(
                achievement.achievement_type.value, {"total": 0, "earned": 0}
            )
            bucket["total"] += 1
            bucket["earned"] += int(achievement.unlocked)

        total = len(achievements)
        earned = sum(1 for a in achievements if a.unlocked)
        recent = sorted(
            (a for a in achievements if a.unlocked_at),
            key=lambda a: a.unlocked_at,
            reverse=True
        )

        return {
            "total_achievements": total,
            "earned_achievements": earned,
            "completion_percent": round(earned / total * 100, 1) if total > 0 else 0,
            "by_type": by_type,
            "recent": [a.code for a in recent[:5]]
        }
