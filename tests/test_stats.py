from datetime import date, datetime, timedelta, timezone

import pytest

from conftest import NOW, USER
from reading_tracker.config import TrackerConfig
from reading_tracker.errors import InvalidArgumentError
from reading_tracker.models import StatsWindow
from reading_tracker.stats import compute_streaks
from reading_tracker.tracker import ReadingTracker

D = date(2024, 6, 15)


async def _read_at(tracker, clock, chapter_id, moment, completed=True):
    clock.set(moment)
    await tracker.record_progress(USER, chapter_id, 100.0, 0, completed)
    clock.set(NOW)


# ============================================
# STREAKS
# ============================================

def test_streak_with_gap():
    days = [D, D - timedelta(days=1), D - timedelta(days=2), D - timedelta(days=5)]

    assert compute_streaks(days, today=D) == (3, 3)


def test_streak_ending_yesterday_is_current():
    days = [D - timedelta(days=1), D - timedelta(days=2)]

    assert compute_streaks(days, today=D) == (2, 2)


def test_streak_broken_two_days_ago():
    days = [D - timedelta(days=2), D - timedelta(days=3)]

    assert compute_streaks(days, today=D) == (0, 2)
    assert compute_streaks(days, today=D, grace_days=2) == (2, 2)


def test_longest_streak_in_the_past():
    days = [D - timedelta(days=n) for n in (0, 10, 11, 12, 13)]

    assert compute_streaks(days, today=D) == (1, 4)


def test_duplicate_and_future_days_ignored():
    days = [D, D, D + timedelta(days=1), D - timedelta(days=1)]

    assert compute_streaks(days, today=D) == (2, 2)


def test_no_reading_days():
    assert compute_streaks([], today=D) == (0, 0)


async def test_streak_from_recorded_history(tracker, clock):
    for days_ago, chapter_id in ((0, 101), (1, 102), (2, 103), (5, 201)):
        await _read_at(tracker, clock, chapter_id, NOW - timedelta(days=days_ago))

    stats = await tracker.get_aggregate_stats(USER)

    assert stats.current_streak == 3
    assert stats.longest_streak == 3
    assert stats.reading_days == 4


# ============================================
# TOTALS
# ============================================

async def test_stats_without_history(tracker):
    stats = await tracker.get_aggregate_stats(USER)

    assert stats.total_chapters_read == 0
    assert stats.total_novels_read == 0
    assert stats.current_streak == 0
    assert stats.longest_streak == 0
    assert stats.completion_rate == 0.0
    assert stats.genre_stats == []
    assert stats.favorite_genre is None
    assert stats.favorite_author is None
    assert stats.first_reading_date is None
    assert stats.average_chapters_per_day == 0.0
    assert set(stats.hourly_distribution) == set(range(24))
    assert sum(stats.hourly_distribution.values()) == 0
    assert [d.chapters_read for d in stats.daily_stats] == [0] * 7


async def test_empty_library_completion_rate_is_zero(tracker):
    await tracker.record_progress(USER, 101, 50.0, 0, False)

    stats = await tracker.get_aggregate_stats(USER)

    assert stats.total_novels_in_library == 0
    assert stats.completion_rate == 0.0


async def test_completion_rate_over_library(tracker):
    await tracker.add_to_library(USER, 1)
    for chapter_id in (301, 302):
        await tracker.record_progress(USER, chapter_id, 100.0, 0, True)

    stats = await tracker.get_aggregate_stats(USER)

    assert stats.total_novels_in_library == 2
    assert stats.novels_completed == 1
    assert stats.total_novels_read == 1
    assert stats.completion_rate == 50.0
    assert stats.novels_reading == 2


async def test_totals(tracker, clock, activity):
    await _read_at(tracker, clock, 101, NOW - timedelta(days=2))
    await _read_at(tracker, clock, 102, NOW, completed=False)
    activity.add_session(USER, NOW - timedelta(hours=1), 1800)
    activity.add_review(USER, 1, 4.0)
    activity.set_categories(USER, 3)

    stats = await tracker.get_aggregate_stats(USER)

    assert stats.total_chapters_read == 2
    assert stats.total_chapters_completed == 1
    assert stats.novels_started == 1
    assert stats.first_reading_date == NOW - timedelta(days=2)
    assert stats.average_chapters_per_day == 1.0
    assert stats.total_reading_seconds == 1800
    assert stats.formatted_total_time == "30 min"
    assert stats.total_reviews_written == 1
    assert stats.total_categories == 3


# ============================================
# BREAKDOWNS
# ============================================

async def _read_mixed(tracker, clock):
    await _read_at(tracker, clock, 101, NOW - timedelta(hours=9))
    await _read_at(tracker, clock, 102, NOW - timedelta(hours=8))
    await _read_at(tracker, clock, 103, NOW - timedelta(hours=7))
    await _read_at(tracker, clock, 201, NOW - timedelta(hours=6))
    await _read_at(tracker, clock, 301, NOW - timedelta(hours=5))


async def test_genre_breakdown(tracker, clock):
    await _read_mixed(tracker, clock)

    stats = await tracker.get_aggregate_stats(USER)

    assert [(g.genre, g.chapters_read, g.novels_read, g.percentage) for g in stats.genre_stats] == [
        ("Adventure", 4, 2, 80.0),
        ("Fantasy", 3, 1, 60.0),
        # tied on chapters: most recently read first
        ("Sci-Fi", 1, 1, 20.0),
        ("Romance", 1, 1, 20.0),
    ]
    assert stats.favorite_genre == "Adventure"
    assert stats.genres_explored == 4


async def test_author_breakdown_with_ratings(tracker, clock, activity):
    await _read_mixed(tracker, clock)
    activity.add_review(USER, 1, 4.0)
    activity.add_review(USER, 3, 5.0)

    stats = await tracker.get_aggregate_stats(USER)

    assert [(a.author, a.chapters_read, a.novels_read, a.average_rating) for a in stats.author_stats] == [
        ("A. Writer", 4, 2, 4.5),
        ("B. Author", 1, 1, 0.0),
    ]
    assert stats.favorite_author == "A. Writer"


async def test_breakdown_limit(store, catalog, activity, privacy, clock):
    config = TrackerConfig(_env_file=None, breakdown_limit=2)
    tracker = ReadingTracker(store, catalog, activity, privacy, config, clock)
    await _read_mixed(tracker, clock)

    stats = await tracker.get_aggregate_stats(USER)

    assert [g.genre for g in stats.genre_stats] == ["Adventure", "Fantasy"]
    assert stats.genres_explored == 4


async def test_orphaned_novel_is_left_out_of_breakdowns(tracker, clock, catalog):
    await _read_mixed(tracker, clock)
    catalog.remove_novel(2)

    stats = await tracker.get_aggregate_stats(USER)

    assert "Romance" not in [g.genre for g in stats.genre_stats]
    assert "B. Author" not in [a.author for a in stats.author_stats]
    assert stats.total_chapters_read == 5


# ============================================
# HISTOGRAMS & WINDOWS
# ============================================

async def test_hourly_distribution(tracker, clock):
    await _read_at(tracker, clock, 101, NOW.replace(hour=8, minute=30))
    await _read_at(tracker, clock, 102, NOW.replace(hour=8, minute=59))
    await _read_at(tracker, clock, 103, NOW)

    stats = await tracker.get_aggregate_stats(USER)

    assert stats.hourly_distribution[8] == 2
    assert stats.hourly_distribution[12] == 1
    assert sum(stats.hourly_distribution.values()) == 3


async def test_daily_stats_oldest_first(tracker, clock):
    await _read_at(tracker, clock, 101, NOW - timedelta(days=2))
    await _read_at(tracker, clock, 102, NOW)
    await _read_at(tracker, clock, 103, NOW - timedelta(days=30))

    stats = await tracker.get_aggregate_stats(USER)

    assert [d.day for d in stats.daily_stats] == [D - timedelta(days=n) for n in range(6, -1, -1)]
    assert [d.chapters_read for d in stats.daily_stats] == [0, 0, 0, 0, 1, 0, 1]


async def test_monthly_stats(tracker, clock):
    await _read_at(tracker, clock, 101, NOW - timedelta(days=40))
    await _read_at(tracker, clock, 102, NOW)
    await _read_at(tracker, clock, 201, NOW)

    stats = await tracker.get_aggregate_stats(USER)

    assert len(stats.monthly_stats) == 12
    june, may = stats.monthly_stats[-1], stats.monthly_stats[-2]
    assert (june.year, june.month, june.chapters_read, june.novels_started) == (2024, 6, 2, 1)
    assert (may.year, may.month, may.chapters_read, may.novels_started) == (2024, 5, 1, 1)
    assert (stats.monthly_stats[0].year, stats.monthly_stats[0].month) == (2023, 7)


async def test_recent_window(tracker, clock, activity):
    await _read_at(tracker, clock, 301, NOW - timedelta(days=10))
    await _read_at(tracker, clock, 302, NOW - timedelta(days=10))
    await _read_at(tracker, clock, 101, NOW)
    activity.add_session(USER, NOW - timedelta(days=10), 600)
    activity.add_session(USER, NOW, 300)

    recent = await tracker.get_recent_stats(USER, days=7)
    all_time = await tracker.get_aggregate_stats(USER)

    assert recent.total_chapters_read == 1
    assert recent.total_reading_seconds == 300
    assert recent.total_novels_read == 0
    assert recent.novels_completed == 1
    assert all_time.total_chapters_read == 3
    assert all_time.total_novels_read == 1
    assert all_time.total_reading_seconds == 900


async def test_window_without_timezone_uses_configured_one(tracker, clock):
    await _read_at(tracker, clock, 301, NOW - timedelta(days=10))
    await _read_at(tracker, clock, 101, NOW)

    stats = await tracker.get_aggregate_stats(
        USER, StatsWindow(start=datetime(2024, 6, 10), end=datetime(2024, 6, 16))
    )

    assert stats.total_chapters_read == 1
    assert stats.window.start == datetime(2024, 6, 10, tzinfo=timezone.utc)


async def test_naive_window_is_local_time(store, catalog, activity, privacy, clock):
    config = TrackerConfig(_env_file=None, timezone="Asia/Tokyo")
    tracker = ReadingTracker(store, catalog, activity, privacy, config, clock)
    # 21:00 and 20:30 in Tokyo
    await _read_at(tracker, clock, 101, NOW)
    await _read_at(tracker, clock, 102, NOW - timedelta(minutes=30))

    stats = await tracker.get_aggregate_stats(
        USER, StatsWindow(start=datetime(2024, 6, 15), end=datetime(2024, 6, 15, 21))
    )

    assert stats.total_chapters_read == 1


async def test_mixed_window_ending_before_start_is_rejected(tracker):
    window = StatsWindow(start=NOW, end=datetime(2024, 6, 15, 11))

    with pytest.raises(InvalidArgumentError):
        await tracker.get_aggregate_stats(USER, window)


# ============================================
# FAVOURITES
# ============================================

async def test_favorite_tie_goes_to_most_recent_read(tracker, clock):
    await _read_at(tracker, clock, 201, NOW - timedelta(hours=6))
    await _read_at(tracker, clock, 301, NOW - timedelta(hours=5))

    stats = await tracker.get_aggregate_stats(USER)

    # Romance, Sci-Fi and Adventure all have one chapter; the last two share a read time
    assert [g.genre for g in stats.genre_stats] == ["Adventure", "Sci-Fi", "Romance"]
    assert stats.favorite_genre == "Adventure"
    assert stats.favorite_author == "A. Writer"


async def test_favorite_tie_follows_later_read(tracker, clock):
    await _read_at(tracker, clock, 301, NOW - timedelta(hours=6))
    await _read_at(tracker, clock, 201, NOW - timedelta(hours=5))

    stats = await tracker.get_aggregate_stats(USER)

    assert stats.favorite_genre == "Romance"
    assert stats.favorite_author == "B. Author"
    assert [a.chapters_read for a in stats.author_stats] == [1, 1]
