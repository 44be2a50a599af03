"""
Reading Tracker - Progress Event Recorder
The only write path for progress, history and library pointers.
"""

import asyncio
import math
from datetime import datetime, timezone
from typing import Callable, Optional, Set

from .catalog import Catalog
from .errors import (
    ErrorKind, InvalidArgumentError, NotFoundError, StorageFailureError, TrackerError
)
from .logger import get_logger
from .models import HistoryEntry, ProgressRecord, ProgressResult
from .privacy import PrivacyModeProvider
from .store import ReadingStore

logger = get_logger("progress")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EventRecorder:
    """Records reading-progress events for a user."""

    def __init__(
        self,
        store: ReadingStore,
        catalog: Catalog,
        privacy: PrivacyModeProvider,
        clock: Optional[Clock] = None
    ):
        self.store = store
        self.catalog = catalog
        self.privacy = privacy
        self.clock = clock or utc_now
        self._background: Set[asyncio.Task] = set()

    @staticmethod
    def _validate(percentage: float, cursor_position: int) -> None:
        if isinstance(percentage, bool) or not isinstance(percentage, (int, float)):
            raise InvalidArgumentError(f"percentage must be a number, got {percentage!r}")
        if math.isnan(percentage) or not 0 <= percentage <= 100:
            raise InvalidArgumentError(f"percentage must be within [0, 100], got {percentage}")
        if isinstance(cursor_position, bool) or not isinstance(cursor_position, int):
            raise InvalidArgumentError(f"cursor position must be an integer, got {cursor_position!r}")
        if cursor_position < 0:
            raise InvalidArgumentError(f"cursor position must be non-negative, got {cursor_position}")

    async def record(
        self,
        user_id: int,
        chapter_id: int,
        percentage: float,
        cursor_position: int,
        completed: bool
    ) -> bool:
        """
        Persist one progress event.

        Writes, as one unit of work:
            1. the chapter's ProgressRecord
            2. the chapter's HistoryEntry (novel resolved from the catalog)
            3. when completed, the novel's library pointer if this chapter
               number is further than the stored one

        Returns:
            False when privacy mode swallowed the event, True otherwise.

        Raises:
            InvalidArgumentError, NotFoundError, StorageFailureError
        """
        # Checked before anything else so privacy mode never leaves partial state.
        if self.privacy.is_enabled(user_id):
            logger.debug(f"Privacy mode on for user {user_id}; progress for chapter {chapter_id} not saved")
            return False

        self._validate(percentage, cursor_position)

        chapter = await self.catalog.get_chapter(chapter_id)
        if chapter is None:
            raise NotFoundError(f"chapter {chapter_id} is not in the catalog")

        # Stored at one decimal in every backend.
        percentage = 100.0 if completed else round(float(percentage), 1)
        now = self.clock()

        async with self.store.unit_of_work() as writer:
            await writer.upsert_progress(ProgressRecord(
                user_id=user_id,
                chapter_id=chapter_id,
                percentage=percentage,
                cursor_position=cursor_position,
                completed=completed,
                last_read_at=now
            ))
            await writer.upsert_history(HistoryEntry(
                user_id=user_id,
                novel_id=chapter.novel_id,
                chapter_id=chapter_id,
                completed=completed,
                read_at=now
            ))
            if completed:
                moved = await writer.advance_pointer(
                    user_id, chapter.novel_id, chapter.chapter_number, now
                )
                if moved:
                    logger.debug(
                        f"User {user_id} novel {chapter.novel_id} advanced to chapter {chapter.chapter_number}"
                    )

        return True

    async def record_progress(
        self,
        user_id: int,
        chapter_id: int,
        percentage: float,
        cursor_position: int,
        completed: bool
    ) -> ProgressResult:
        """Like record(), but reports failures as a result instead of raising."""
        try:
            saved = await self.record(user_id, chapter_id, percentage, cursor_position, completed)
        except TrackerError as e:
            if isinstance(e, StorageFailureError):
                logger.error(f"Failed to save progress for user {user_id} chapter {chapter_id}: {e}")
            return ProgressResult(success=False, error=e.kind, message=e.message)

        if not saved:
            return ProgressResult(success=True, skipped=True, message="privacy mode")
        return ProgressResult(success=True)

    async def autosave(
        self,
        user_id: int,
        chapter_id: int,
        percentage: float,
        cursor_position: int,
        completed: bool = False
    ) -> ProgressResult:
        """
        Periodic save while a chapter is open. Storage failures are logged and
        reported as success so reading is never interrupted.
        """
        result = await self.record_progress(user_id, chapter_id, percentage, cursor_position, completed)
        if result.error == ErrorKind.STORAGE_FAILURE:
            logger.warning(f"Auto-save skipped for user {user_id} chapter {chapter_id}: {result.message}")
            return ProgressResult(success=True, skipped=True, message=result.message)
        return result

    def record_in_background(
        self,
        user_id: int,
        chapter_id: int,
        percentage: float,
        cursor_position: int,
        completed: bool
    ) -> asyncio.Task:
        """
        Fire-and-forget save, e.g. when the reader is closed. The task is kept
        referenced until it finishes and is never cancelled by the caller's
        teardown.
        """
        task = asyncio.create_task(
            self.record_progress(user_id, chapter_id, percentage, cursor_position, completed)
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self) -> None:
        """Wait for background saves still in flight."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
