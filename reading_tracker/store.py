"""
Reading Tracker - Repository Contract & In-Memory Store
Three per-user stores (progress, history ledger, library pointers) plus the
user's reading goal and remembered achievement unlocks.
"""

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional, Tuple

from .goals import ReadingGoal
from .models import (
    HistoryEntry, LibraryPointer, ProgressRecord, ReadingStatus
)


# ============================================
# CONTRACTS
# ============================================

class ProgressWriter(ABC):
    """Writes staged inside one unit of work; applied together or not at all."""

    @abstractmethod
    async def upsert_progress(self, record: ProgressRecord) -> None:
        ...

    @abstractmethod
    async def upsert_history(self, entry: HistoryEntry) -> None:
        ...

    @abstractmethod
    async def advance_pointer(
        self,
        user_id: int,
        novel_id: int,
        chapter_number: int,
        at: datetime
    ) -> bool:
        """
        Compare-and-set on chapter number: store `chapter_number` only if it
        is strictly greater than the stored value (a missing entry counts as
        0). Returns whether the pointer moved.
        """


class ReadingStore(ABC):

    @abstractmethod
    def unit_of_work(self) -> "AsyncIterator[ProgressWriter]":
        """Async context manager yielding a ProgressWriter."""

    # Progress / history

    @abstractmethod
    async def get_progress(self, user_id: int, chapter_id: int) -> Optional[ProgressRecord]:
        ...

    @abstractmethod
    async def list_progress(self, user_id: int) -> List[ProgressRecord]:
        ...

    @abstractmethod
    async def list_history(
        self,
        user_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        novel_id: Optional[int] = None
    ) -> List[HistoryEntry]:
        """History entries, most recent first, read_at within [start, end)."""

    @abstractmethod
    async def delete_chapter_history(self, user_id: int, chapter_id: int) -> bool:
        """Remove the HistoryEntry and ProgressRecord of one chapter together."""

    # Library

    @abstractmethod
    async def get_pointer(self, user_id: int, novel_id: int) -> Optional[LibraryPointer]:
        ...

    @abstractmethod
    async def list_pointers(self, user_id: int) -> List[LibraryPointer]:
        ...

    @abstractmethod
    async def add_to_library(self, user_id: int, novel_id: int, at: datetime) -> LibraryPointer:
        """Create a pointer at 0 unless one exists; returns the stored pointer."""

    @abstractmethod
    async def update_library_entry(
        self,
        user_id: int,
        novel_id: int,
        reading_status: Optional[ReadingStatus] = None,
        is_favorite: Optional[bool] = None
    ) -> Optional[LibraryPointer]:
        ...

    @abstractmethod
    async def remove_from_library(self, user_id: int, novel_id: int) -> bool:
        """Delete the pointer; history and progress rows stay."""

    # Bulk

    @abstractmethod
    async def clear_user(self, user_id: int) -> int:
        """Delete every progress, history and library row of a user."""

    # Goals & achievements

    @abstractmethod
    async def get_goal(self, user_id: int) -> Optional[ReadingGoal]:
        ...

    @abstractmethod
    async def save_goal(self, user_id: int, goal: ReadingGoal) -> ReadingGoal:
        ...

    @abstractmethod
    async def delete_goal(self, user_id: int) -> bool:
        ...

    @abstractmethod
    async def get_unlocks(self, user_id: int) -> Dict[str, datetime]:
        ...

    @abstractmethod
    async def record_unlocks(self, user_id: int, unlocks: Dict[str, datetime]) -> None:
        """Remember unlock times; an already remembered code keeps its first time."""


# ============================================
# IN-MEMORY STORE
# ============================================

class _MemoryWriter(ProgressWriter):

    def __init__(self, store: "MemoryReadingStore"):
        self._store = store
        self.progress: Dict[Tuple[int, int], ProgressRecord] = {}
        self.history: Dict[Tuple[int, int], HistoryEntry] = {}
        self.pointers: Dict[Tuple[int, int], Tuple[int, datetime]] = {}

    async def upsert_progress(self, record: ProgressRecord) -> None:
        self.progress[(record.user_id, record.chapter_id)] = record.model_copy()

    async def upsert_history(self, entry: HistoryEntry) -> None:
        self.history[(entry.user_id, entry.chapter_id)] = entry.model_copy()

    async def advance_pointer(self, user_id, novel_id, chapter_number, at) -> bool:
        key = (user_id, novel_id)
        staged = self.pointers.get(key)
        current = staged[0] if staged else self._store._pointer_value(key)
        if chapter_number <= current:
            return False
        self.pointers[key] = (chapter_number, at)
        return True

    def apply(self) -> None:
        # No awaits: the whole batch lands between two event-loop steps.
        store = self._store
        store._progress.update(self.progress)
        store._history.update(self.history)
        for key, (chapter_number, at) in self.pointers.items():
            existing = store._pointers.get(key)
            if existing is None:
                store._pointers[key] = LibraryPointer(
                    user_id=key[0],
                    novel_id=key[1],
                    last_read_chapter=chapter_number,
                    added_at=at,
                    advanced_at=at
                )
            elif chapter_number > existing.last_read_chapter:
                store._pointers[key] = existing.model_copy(
                    update={"last_read_chapter": chapter_number, "advanced_at": at}
                )


class MemoryReadingStore(ReadingStore):
    """Dict-backed store; staged writes are applied on commit."""

    def __init__(self):
        self._progress: Dict[Tuple[int, int], ProgressRecord] = {}
        self._history: Dict[Tuple[int, int], HistoryEntry] = {}
        self._pointers: Dict[Tuple[int, int], LibraryPointer] = {}
        self._goals: Dict[int, ReadingGoal] = {}
        self._unlocks: Dict[int, Dict[str, datetime]] = {}
        self._lock = asyncio.Lock()

    def _pointer_value(self, key: Tuple[int, int]) -> int:
        pointer = self._pointers.get(key)
        return pointer.last_read_chapter if pointer else 0

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[ProgressWriter]:
        async with self._lock:
            writer = _MemoryWriter(self)
            yield writer
            writer.apply()

    async def get_progress(self, user_id, chapter_id):
        record = self._progress.get((user_id, chapter_id))
        return record.model_copy() if record else None

    async def list_progress(self, user_id):
        return [r.model_copy() for (uid, _), r in self._progress.items() if uid == user_id]

    async def list_history(self, user_id, start=None, end=None, novel_id=None):
        entries = [
            e.model_copy()
            for (uid, _), e in self._history.items()
            if uid == user_id
            and (novel_id is None or e.novel_id == novel_id)
            and (start is None or e.read_at >= start)
            and (end is None or e.read_at < end)
        ]
        entries.sort(key=lambda e: e.read_at, reverse=True)
        return entries

    async def delete_chapter_history(self, user_id, chapter_id):
        async with self._lock:
            had_history = self._history.pop((user_id, chapter_id), None) is not None
            had_progress = self._progress.pop((user_id, chapter_id), None) is not None
        return had_history or had_progress

    async def get_pointer(self, user_id, novel_id):
        pointer = self._pointers.get((user_id, novel_id))
        return pointer.model_copy() if pointer else None

    async def list_pointers(self, user_id):
        pointers = [p.model_copy() for (uid, _), p in self._pointers.items() if uid == user_id]
        pointers.sort(key=lambda p: p.added_at, reverse=True)
        return pointers

    async def add_to_library(self, user_id, novel_id, at):
        async with self._lock:
            key = (user_id, novel_id)
            if key not in self._pointers:
                self._pointers[key] = LibraryPointer(user_id=user_id, novel_id=novel_id, added_at=at)
            return self._pointers[key].model_copy()

    async def update_library_entry(self, user_id, novel_id, reading_status=None, is_favorite=None):
        async with self._lock:
            key = (user_id, novel_id)
            pointer = self._pointers.get(key)
            if pointer is None:
                return None
            updates = {}
            if reading_status is not None:
                updates["reading_status"] = reading_status
            if is_favorite is not None:
                updates["is_favorite"] = is_favorite
            self._pointers[key] = pointer.model_copy(update=updates)
            return self._pointers[key].model_copy()

    async def remove_from_library(self, user_id, novel_id):
        async with self._lock:
            return self._pointers.pop((user_id, novel_id), None) is not None

    async def clear_user(self, user_id):
        async with self._lock:
            removed = 0
            for table in (self._progress, self._history, self._pointers):
                keys = [key for key in table if key[0] == user_id]
                for key in keys:
                    del table[key]
                removed += len(keys)
            return removed

    async def get_goal(self, user_id):
        goal = self._goals.get(user_id)
        return goal.model_copy() if goal else None

    async def save_goal(self, user_id, goal):
        self._goals[user_id] = goal.model_copy()
        return goal

    async def delete_goal(self, user_id):
        return self._goals.pop(user_id, None) is not None

    async def get_unlocks(self, user_id):
        return dict(self._unlocks.get(user_id, {}))

    async def record_unlocks(self, user_id, unlocks):
        remembered = self._unlocks.setdefault(user_id, {})
        for code, at in unlocks.items():
            remembered.setdefault(code, at)

    def snapshot(self, user_id: int) -> Dict[str, list]:
        """Plain dump of one user's rows, for comparisons."""
        def dump(table: Dict[Tuple[int, int], object]) -> list:
            return sorted(
                (key, value.model_dump()) for key, value in table.items() if key[0] == user_id
            )
        return {
            "progress": dump(self._progress),
            "history": dump(self._history),
            "pointers": dump(self._pointers),
        }


