"""
Reading Tracker - HTTP Routes
Thin FastAPI translation layer over ReadingTracker.
"""

from datetime import datetime, tzinfo
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from .achievements import Achievement
from .config import get_config_summary
from .errors import ErrorKind, InvalidArgumentError, TrackerError
from .goals import GoalRequest, ReadingGoal
from .models import (
    AggregateStats, HistoryItem, LibraryPointer, NovelHistoryGroup,
    ProgressRecord, ProgressResult, ProgressUpdate, ReadingStatus, StatsWindow,
    as_aware
)
from .privacy import InMemoryPrivacyMode
from .tracker import ReadingTracker

STATUS_CODES = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_ARGUMENT: 422,
    ErrorKind.STORAGE_FAILURE: 503,
    ErrorKind.CONFLICT: 409,
}


class LibraryUpdate(BaseModel):
    reading_status: Optional[ReadingStatus] = None
    is_favorite: Optional[bool] = None


class PrivacyUpdate(BaseModel):
    enabled: bool


def _window(start: Optional[datetime], end: Optional[datetime], tz: tzinfo) -> Optional[StatsWindow]:
    if start is None and end is None:
        return None
    if start is None or end is None:
        raise InvalidArgumentError("a stats window needs both start and end")
    try:
        return StatsWindow(start=as_aware(start, tz), end=as_aware(end, tz))
    except ValidationError as e:
        raise InvalidArgumentError("window end must be after its start") from e


def create_app(tracker: ReadingTracker, lifespan=None) -> FastAPI:
    """Mount every tracker operation on a new FastAPI app."""
    app = FastAPI(
        title="Reading Tracker",
        description="Reading progress and engagement analytics",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.tracker = tracker

    @app.exception_handler(TrackerError)
    async def tracker_error_handler(request, exc: TrackerError):
        return JSONResponse(
            status_code=STATUS_CODES[exc.kind],
            content={"detail": exc.message, "error": exc.kind.value}
        )

    # ============================================
    # HEALTH & CONFIG
    # ============================================

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "version": "1.0.0"}

    @app.get("/api/config")
    async def config_summary():
        """Current configuration, without credentials."""
        return get_config_summary(tracker.config)

    # ============================================
    # PROGRESS
    # ============================================

    def _progress_response(result: ProgressResult):
        if result.success:
            return result
        return JSONResponse(
            status_code=STATUS_CODES[result.error],
            content=result.model_dump(mode="json")
        )

    @app.post("/api/users/{user_id}/progress", response_model=ProgressResult)
    async def record_progress(user_id: int, update: ProgressUpdate):
        result = await tracker.record_progress(
            user_id, update.chapter_id, update.percentage, update.cursor_position, update.completed
        )
        return _progress_response(result)

    @app.post("/api/users/{user_id}/progress/autosave", response_model=ProgressResult)
    async def autosave_progress(user_id: int, update: ProgressUpdate):
        """Periodic save from an open reader; storage failures are reported as skipped."""
        result = await tracker.autosave_progress(
            user_id, update.chapter_id, update.percentage, update.cursor_position
        )
        return _progress_response(result)

    @app.get("/api/users/{user_id}/progress/{chapter_id}", response_model=ProgressRecord)
    async def get_progress(user_id: int, chapter_id: int):
        record = await tracker.get_progress(user_id, chapter_id)
        if record is None:
            raise HTTPException(status_code=404, detail="No progress for this chapter")
        return record

    # ============================================
    # PRIVACY
    # ============================================

    @app.get("/api/users/{user_id}/privacy")
    async def get_privacy(user_id: int):
        return {"user_id": user_id, "enabled": tracker.privacy.is_enabled(user_id)}

    @app.put("/api/users/{user_id}/privacy")
    async def set_privacy(user_id: int, update: PrivacyUpdate):
        if not isinstance(tracker.privacy, InMemoryPrivacyMode):
            raise HTTPException(status_code=501, detail="Privacy mode is managed by another service")
        if update.enabled:
            tracker.privacy.enable(user_id)
        else:
            tracker.privacy.disable(user_id)
        return {"user_id": user_id, "enabled": tracker.privacy.is_enabled(user_id)}

    # ============================================
    # LIBRARY
    # ============================================

    @app.get("/api/users/{user_id}/library", response_model=List[LibraryPointer])
    async def get_library(user_id: int):
        return await tracker.get_library(user_id)

    @app.post("/api/users/{user_id}/library/rebuild")
    async def rebuild_library(user_id: int):
        """Re-derive pointers from completed history; pointers only move forward."""
        return {"moved": await tracker.rebuild_library_pointers(user_id)}

    @app.post("/api/users/{user_id}/library/{novel_id}", response_model=LibraryPointer)
    async def add_to_library(user_id: int, novel_id: int):
        return await tracker.add_to_library(user_id, novel_id)

    @app.patch("/api/users/{user_id}/library/{novel_id}", response_model=LibraryPointer)
    async def update_library_entry(user_id: int, novel_id: int, update: LibraryUpdate):
        if update.reading_status is None and update.is_favorite is None:
            raise HTTPException(status_code=422, detail="Nothing to update")
        pointer = None
        if update.reading_status is not None:
            pointer = await tracker.set_reading_status(user_id, novel_id, update.reading_status)
        if update.is_favorite is not None:
            pointer = await tracker.set_favorite(user_id, novel_id, update.is_favorite)
        return pointer

    @app.delete("/api/users/{user_id}/library/{novel_id}")
    async def remove_from_library(user_id: int, novel_id: int):
        await tracker.remove_from_library(user_id, novel_id)
        return {"success": True}

    @app.get("/api/users/{user_id}/library/{novel_id}")
    async def get_library_membership(user_id: int, novel_id: int):
        return {
            "novel_id": novel_id,
            "in_library": await tracker.is_in_library(user_id, novel_id)
        }

    @app.get("/api/users/{user_id}/library/{novel_id}/last-read")
    async def get_last_read_chapter(user_id: int, novel_id: int):
        return {
            "novel_id": novel_id,
            "last_read_chapter": await tracker.get_last_read_chapter(user_id, novel_id)
        }

    # ============================================
    # HISTORY
    # ============================================

    @app.get("/api/users/{user_id}/history", response_model=List[HistoryItem])
    async def get_history(user_id: int, limit: int = Query(default=50, ge=0, le=1000)):
        return await tracker.get_user_history(user_id, limit)

    @app.get("/api/users/{user_id}/history/by-novel", response_model=List[NovelHistoryGroup])
    async def get_history_by_novel(user_id: int):
        return await tracker.get_history_grouped_by_novel(user_id)

    @app.get("/api/users/{user_id}/history/range", response_model=List[HistoryItem])
    async def get_history_range(user_id: int, start: datetime, end: datetime):
        window = _window(start, end, tracker.config.tz())
        return await tracker.get_history_by_date_range(user_id, window.start, window.end)

    @app.delete("/api/users/{user_id}/history/{chapter_id}")
    async def delete_history_entry(user_id: int, chapter_id: int):
        await tracker.delete_history_entry(user_id, chapter_id)
        return {"success": True}

    @app.delete("/api/users/{user_id}/history")
    async def clear_all_history(user_id: int):
        """Irreversible. Failures surface as 503."""
        removed = await tracker.clear_all_history(user_id)
        return {"success": True, "removed": removed}

    # ============================================
    # STATS & ACHIEVEMENTS
    # ============================================

    @app.get("/api/users/{user_id}/stats", response_model=AggregateStats)
    async def get_stats(
        user_id: int,
        start: Optional[datetime] = Query(default=None),
        end: Optional[datetime] = Query(default=None)
    ):
        window = _window(start, end, tracker.config.tz())
        return await tracker.get_aggregate_stats(user_id, window)

    @app.get("/api/users/{user_id}/stats/recent", response_model=AggregateStats)
    async def get_recent_stats(user_id: int, days: int = Query(default=7, ge=1, le=365)):
        return await tracker.get_recent_stats(user_id, days)

    @app.get("/api/users/{user_id}/achievements", response_model=List[Achievement])
    async def get_achievements(user_id: int):
        return await tracker.get_achievements(user_id)

    @app.get("/api/users/{user_id}/achievements/summary")
    async def get_achievement_summary(user_id: int):
        return await tracker.get_achievement_summary(user_id)

    # ============================================
    # GOALS
    # ============================================

    @app.get("/api/users/{user_id}/goal", response_model=ReadingGoal)
    async def get_goal(user_id: int):
        goal = await tracker.get_goal(user_id)
        if goal is None:
            raise HTTPException(status_code=404, detail="No reading goal set")
        return goal

    @app.put("/api/users/{user_id}/goal", response_model=ReadingGoal)
    async def set_goal(user_id: int, request: GoalRequest):
        return await tracker.set_goal(user_id, request)

    @app.delete("/api/users/{user_id}/goal")
    async def delete_goal(user_id: int):
        if not await tracker.clear_goal(user_id):
            raise HTTPException(status_code=404, detail="No reading goal set")
        return {"success": True}

    return app
