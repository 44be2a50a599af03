"""
Reading Tracker - Reading Goals
A user-defined target count inside a time window, measured against
aggregate stats restricted to that window.
"""

from datetime import datetime, timedelta, timezone, tzinfo
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel

from .errors import InvalidArgumentError
from .models import AggregateStats, StatsWindow, as_aware


class GoalType(str, Enum):
    CHAPTERS_PER_DAY = "chapters_per_day"
    CHAPTERS_PER_WEEK = "chapters_per_week"
    CHAPTERS_PER_MONTH = "chapters_per_month"
    NOVELS_PER_MONTH = "novels_per_month"
    READING_TIME_PER_DAY = "reading_time_per_day"  # target in minutes


class ReadingGoal(BaseModel):
    goal_type: GoalType
    target: int
    start_date: datetime
    end_date: datetime

    # Filled in by evaluate_goal
    current: int = 0
    progress_percent: float = 0.0
    is_completed: bool = False
    is_active: bool = False
    days_remaining: int = 0


class GoalRequest(BaseModel):
    """Goal as submitted by a client; the window defaults to the current period."""
    goal_type: GoalType
    target: int
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


# ============================================
# VALIDATION & WINDOWS
# ============================================

def validate_goal(goal: ReadingGoal, tz: tzinfo = timezone.utc) -> ReadingGoal:
    """
    Check target and window. Naive window dates are read as local time in
    `tz`, so a stored goal always compares against aware timestamps.
    """
    if goal.target <= 0:
        raise InvalidArgumentError(f"goal target must be positive, got {goal.target}")
    if goal.start_date.tzinfo is None or goal.end_date.tzinfo is None:
        goal = goal.model_copy(update={
            "start_date": as_aware(goal.start_date, tz),
            "end_date": as_aware(goal.end_date, tz),
        })
    if goal.end_date <= goal.start_date:
        raise InvalidArgumentError("goal window must end after it starts")
    return goal


def period_window(goal_type: GoalType, now: datetime, tz: tzinfo) -> Tuple[datetime, datetime]:
    """
    The calendar period containing `now` for a goal type: the local day,
    the ISO week (Monday first) or the calendar month.
    """
    local = now.astimezone(tz)
    day_start = local.replace(hour=0, minute=0, second=0, microsecond=0)

    if goal_type in (GoalType.CHAPTERS_PER_DAY, GoalType.READING_TIME_PER_DAY):
        return day_start, day_start + timedelta(days=1)

    if goal_type == GoalType.CHAPTERS_PER_WEEK:
        week_start = day_start - timedelta(days=day_start.weekday())
        return week_start, week_start + timedelta(days=7)

    month_start = day_start.replace(day=1)
    if month_start.month == 12:
        next_month = month_start.replace(year=month_start.year + 1, month=1)
    else:
        next_month = month_start.replace(month=month_start.month + 1)
    return month_start, next_month


def build_goal(request: GoalRequest, now: datetime, tz: tzinfo) -> ReadingGoal:
    if request.start_date is None or request.end_date is None:
        start, end = period_window(request.goal_type, now, tz)
    else:
        start, end = request.start_date, request.end_date
    return validate_goal(ReadingGoal(
        goal_type=request.goal_type,
        target=request.target,
        start_date=start,
        end_date=end
    ), tz)


# ============================================
# EVALUATION
# ============================================

def goal_metric(stats: AggregateStats, goal_type: GoalType) -> int:
    """Pick the sub-metric of (window-restricted) stats a goal type counts."""
    if goal_type == GoalType.NOVELS_PER_MONTH:
        return stats.total_novels_read
    if goal_type == GoalType.READING_TIME_PER_DAY:
        return stats.total_reading_seconds // 60
    return stats.total_chapters_read


def evaluate_goal(stats: AggregateStats, goal: ReadingGoal, now: datetime) -> ReadingGoal:
    """Fill in current/progress/is_completed/is_active/days_remaining."""
    current = goal_metric(stats, goal.goal_type)
    remaining = goal.end_date - now

    return goal.model_copy(update={
        "current": current,
        "progress_percent": round(current / goal.target * 100, 1) if goal.target > 0 else 0.0,
        "is_completed": current >= goal.target,
        "is_active": goal.start_date <= now <= goal.end_date,
        "days_remaining": max(0, remaining.days),
    })


def goal_window(goal: ReadingGoal) -> StatsWindow:
    return StatsWindow(start=goal.start_date, end=goal.end_date)
