"""
Reading Tracker - Statistics Aggregator
Read-only derivation of aggregate reading stats from the history ledger,
library pointers and catalog joins. Nothing here writes to the store.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .catalog import ActivitySource, Catalog
from .config import TrackerConfig, get_tracker_config
from .library import is_novel_completed
from .logger import get_logger
from .models import (
    AggregateStats, AuthorReadingStats, DailyReadingStats, GenreReadingStats,
    HistoryEntry, LibraryPointer, MonthlyReadingStats, NovelRef, ReadingStatus,
    StatsWindow
)
from .progress import Clock, utc_now
from .store import ReadingStore

logger = get_logger("stats")


# ============================================
# TIME BUCKETING
# ============================================

def local_date(moment: datetime, tz: tzinfo) -> date:
    return moment.astimezone(tz).date()


def compute_streaks(days: Iterable[date], today: date, grace_days: int = 1) -> Tuple[int, int]:
    """
    Current and longest runs of consecutive reading days.

    The current streak is the run ending on the latest day not after
    `today`, provided that day is at most `grace_days` before today, so a
    streak survives until the user has had a full day to read.
    """
    ordered = sorted(set(d for d in days if d <= today))
    if not ordered:
        return 0, 0

    longest = run = 1
    for previous, current in zip(ordered, ordered[1:]):
        run = run + 1 if (current - previous).days == 1 else 1
        longest = max(longest, run)

    # `run` now holds the length of the run ending at ordered[-1]
    current_streak = run if (today - ordered[-1]).days <= grace_days else 0
    return current_streak, longest


def hourly_histogram(entries: Iterable[HistoryEntry], tz: tzinfo) -> Dict[int, int]:
    """Chapters per local hour of day, every hour present."""
    hours = {hour: 0 for hour in range(24)}
    for entry in entries:
        hours[entry.read_at.astimezone(tz).hour] += 1
    return hours


def daily_histogram(
    entries: Iterable[HistoryEntry],
    today: date,
    tz: tzinfo,
    days: int = 7
) -> List[DailyReadingStats]:
    """Chapters per day for the `days` days ending today, oldest first."""
    counts: Dict[date, int] = defaultdict(int)
    for entry in entries:
        counts[local_date(entry.read_at, tz)] += 1
    return [
        DailyReadingStats(day=day, chapters_read=counts.get(day, 0))
        for day in (today - timedelta(days=offset) for offset in range(days - 1, -1, -1))
    ]


def _month_back(year: int, month: int, steps: int) -> Tuple[int, int]:
    index = year * 12 + (month - 1) - steps
    return index // 12, index % 12 + 1


def monthly_histogram(
    entries: Sequence[HistoryEntry],
    today: date,
    tz: tzinfo,
    months: int = 12
) -> List[MonthlyReadingStats]:
    """
    Chapters read and novels started per calendar month, oldest first.
    A novel is started in the month of its earliest history entry.
    """
    chapters: Dict[Tuple[int, int], int] = defaultdict(int)
    first_seen: Dict[int, date] = {}
    for entry in entries:
        day = local_date(entry.read_at, tz)
        chapters[(day.year, day.month)] += 1
        if entry.novel_id not in first_seen or day < first_seen[entry.novel_id]:
            first_seen[entry.novel_id] = day

    started: Dict[Tuple[int, int], int] = defaultdict(int)
    for day in first_seen.values():
        started[(day.year, day.month)] += 1

    result = []
    for steps in range(months - 1, -1, -1):
        key = _month_back(today.year, today.month, steps)
        result.append(MonthlyReadingStats(
            year=key[0],
            month=key[1],
            chapters_read=chapters.get(key, 0),
            novels_started=started.get(key, 0)
        ))
    return result


# ============================================
# GROUP BREAKDOWNS
# ============================================

@dataclass
class _Group:
    chapters: int = 0
    novels: Set[int] = field(default_factory=set)
    last_read: Optional[datetime] = None

    def add(self, entry: HistoryEntry) -> None:
        self.chapters += 1
        self.novels.add(entry.novel_id)
        if self.last_read is None or entry.read_at > self.last_read:
            self.last_read = entry.read_at


def _rank(groups: Dict[str, _Group]) -> List[Tuple[str, _Group]]:
    # Chapters first, then most recently read, then name so ties are deterministic.
    return sorted(
        groups.items(),
        key=lambda item: (-item[1].chapters, -item[1].last_read.timestamp(), item[0])
    )


def _percentage(part: int, total: int) -> float:
    return round(part / total * 100, 1) if total > 0 else 0.0


def _group_entries(
    entries: Iterable[HistoryEntry],
    novels: Dict[int, NovelRef],
    keys_for
) -> Dict[str, _Group]:
    groups: Dict[str, _Group] = defaultdict(_Group)
    skipped: Set[int] = set()
    for entry in entries:
        novel = novels.get(entry.novel_id)
        if novel is None:
            skipped.add(entry.novel_id)
            continue
        for key in keys_for(novel):
            groups[key].add(entry)
    if skipped:
        logger.warning(f"Skipped history for novels missing from catalog: {sorted(skipped)}")
    return dict(groups)


def genre_breakdown(
    entries: Sequence[HistoryEntry],
    novels: Dict[int, NovelRef]
) -> List[GenreReadingStats]:
    """
    Every genre the user has read, ranked. A novel with several genres
    counts toward each of them, so shares may add up past 100.
    """
    total = len(entries)
    groups = _group_entries(entries, novels, lambda novel: set(novel.genres))
    return [
        GenreReadingStats(
            genre=genre,
            chapters_read=group.chapters,
            novels_read=len(group.novels),
            percentage=_percentage(group.chapters, total)
        )
        for genre, group in _rank(groups)
    ]


def author_breakdown(
    entries: Sequence[HistoryEntry],
    novels: Dict[int, NovelRef],
    ratings: Dict[int, float]
) -> List[AuthorReadingStats]:
    groups = _group_entries(
        entries, novels, lambda novel: [novel.author] if novel.author else []
    )
    result = []
    for author, group in _rank(groups):
        rated = [ratings[n] for n in group.novels if n in ratings]
        result.append(AuthorReadingStats(
            author=author,
            chapters_read=group.chapters,
            novels_read=len(group.novels),
            average_rating=round(sum(rated) / len(rated), 2) if rated else 0.0
        ))
    return result


def completion_rate(completed: int, total: int) -> float:
    """Completed novels as a percentage of the library; 0 for an empty library."""
    return _percentage(completed, total)


# ============================================
# AGGREGATOR
# ============================================

class StatsAggregator:
    """Computes AggregateStats for a user, optionally scoped to a window."""

    def __init__(
        self,
        store: ReadingStore,
        catalog: Catalog,
        activity: ActivitySource,
        config: Optional[TrackerConfig] = None,
        clock: Optional[Clock] = None
    ):
        self.store = store
        self.catalog = catalog
        self.activity = activity
        self.config = config or get_tracker_config()
        self.clock = clock or utc_now

    def window_for_last_days(self, days: int) -> StatsWindow:
        """Window covering today and the `days - 1` local days before it."""
        tz = self.config.tz()
        now = self.clock()
        today_start = now.astimezone(tz).replace(hour=0, minute=0, second=0, microsecond=0)
        return StatsWindow(
            start=today_start - timedelta(days=days - 1),
            end=today_start + timedelta(days=1)
        )

    def _completed_pointers(
        self,
        pointers: List[LibraryPointer],
        novels: Dict[int, NovelRef]
    ) -> List[LibraryPointer]:
        completed = []
        for pointer in pointers:
            novel = novels.get(pointer.novel_id)
            if novel is None:
                logger.warning(f"Library novel {pointer.novel_id} missing from catalog; not counted")
                continue
            if is_novel_completed(pointer, novel):
                completed.append(pointer)
        return completed

    async def get_aggregate_stats(
        self,
        user_id: int,
        window: Optional[StatsWindow] = None
    ) -> AggregateStats:
        tz = self.config.tz()
        if window:
            window = window.localized(tz)
        now = self.clock()
        today = local_date(now, tz)
        start = window.start if window else None
        end = window.end if window else None

        entries = await self.store.list_history(user_id, start=start, end=end)
        pointers = await self.store.list_pointers(user_id)
        novels = await self.catalog.get_novels(
            [e.novel_id for e in entries] + [p.novel_id for p in pointers]
        )

        # Library (always all-time)
        completed_pointers = self._completed_pointers(pointers, novels)
        novels_completed = len(completed_pointers)
        if window:
            novels_read = sum(
                1 for p in completed_pointers if p.advanced_at and window.contains(p.advanced_at)
            )
        else:
            novels_read = novels_completed

        # Streaks
        days = [local_date(e.read_at, tz) for e in entries]
        current_streak, longest_streak = compute_streaks(
            days, today, self.config.streak_grace_days
        )

        # Breakdowns
        ratings = await self.activity.ratings(user_id)
        genres = genre_breakdown(entries, novels)
        authors = author_breakdown(entries, novels, ratings)
        limit = self.config.breakdown_limit

        return AggregateStats(
            user_id=user_id,
            window=window,
            computed_at=now,
            total_chapters_read=len(entries),
            total_chapters_completed=sum(1 for e in entries if e.completed),
            total_novels_read=novels_read,
            novels_started=len({e.novel_id for e in entries}),
            total_reading_seconds=await self.activity.reading_seconds(user_id, start, end),
            reading_days=len(set(days)),
            first_reading_date=min((e.read_at for e in entries), default=None),
            current_streak=current_streak,
            longest_streak=longest_streak,
            total_novels_in_library=len(pointers),
            novels_completed=novels_completed,
            novels_reading=sum(1 for p in pointers if p.reading_status == ReadingStatus.READING),
            novels_plan_to_read=sum(1 for p in pointers if p.reading_status == ReadingStatus.PLAN_TO_READ),
            total_favorites=sum(1 for p in pointers if p.is_favorite),
            completion_rate=completion_rate(novels_completed, len(pointers)),
            genre_stats=genres[:limit],
            author_stats=authors[:limit],
            genres_explored=len(genres),
            favorite_genre=genres[0].genre if genres else None,
            favorite_author=authors[0].author if authors else None,
            hourly_distribution=hourly_histogram(entries, tz),
            daily_stats=daily_histogram(entries, today, tz, self.config.daily_window_days),
            monthly_stats=monthly_histogram(entries, today, tz, self.config.monthly_window_months),
            total_reviews_written=await self.activity.reviews_written(user_id),
            total_categories=await self.activity.categories_used(user_id),
        )
