"""
Reading Tracker - Postgres Store
asyncpg implementation of ReadingStore; one transaction per unit of work.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

import asyncpg

from .database import Database
from .goals import GoalType, ReadingGoal
from .models import HistoryEntry, LibraryPointer, ProgressRecord, ReadingStatus
from .store import ProgressWriter, ReadingStore


def _progress_from_row(row: dict) -> ProgressRecord:
    return ProgressRecord(
        user_id=row["user_id"],
        chapter_id=row["chapter_id"],
        percentage=float(row["progress"]),
        cursor_position=row["last_position"],
        completed=row["is_completed"],
        last_read_at=row["last_read_at"]
    )


def _history_from_row(row: dict) -> HistoryEntry:
    return HistoryEntry(
        user_id=row["user_id"],
        novel_id=row["novel_id"],
        chapter_id=row["chapter_id"],
        completed=row["is_completed"],
        read_at=row["read_at"]
    )


def _pointer_from_row(row: dict) -> LibraryPointer:
    return LibraryPointer(
        user_id=row["user_id"],
        novel_id=row["novel_id"],
        last_read_chapter=row["last_read_chapter"],
        reading_status=ReadingStatus(row["reading_status"]),
        is_favorite=row["is_favorite"],
        added_at=row["added_at"],
        advanced_at=row["advanced_at"]
    )


class _PostgresWriter(ProgressWriter):

    def __init__(self, conn: asyncpg.Connection):
        self.conn = conn

    async def upsert_progress(self, record: ProgressRecord) -> None:
        await self.conn.execute("""
            INSERT INTO reading_progress
                (user_id, chapter_id, progress, last_position, is_completed, last_read_at)
            VALUES ($1, $2, $3, $4, $5, $6)
            ON CONFLICT (user_id, chapter_id) DO UPDATE SET
                progress = EXCLUDED.progress,
                last_position = EXCLUDED.last_position,
                is_completed = EXCLUDED.is_completed,
                last_read_at = EXCLUDED.last_read_at
        """, record.user_id, record.chapter_id, record.percentage,
            record.cursor_position, record.completed, record.last_read_at)

    async def upsert_history(self, entry: HistoryEntry) -> None:
        await self.conn.execute("""
            INSERT INTO reading_history (user_id, chapter_id, novel_id, is_completed, read_at)
            VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT (user_id, chapter_id) DO UPDATE SET
                is_completed = EXCLUDED.is_completed,
                read_at = EXCLUDED.read_at
        """, entry.user_id, entry.chapter_id, entry.novel_id, entry.completed, entry.read_at)

    async def advance_pointer(self, user_id, novel_id, chapter_number, at) -> bool:
        if chapter_number <= 0:
            return False
        row = await self.conn.fetchrow("""
            INSERT INTO user_library
                (user_id, novel_id, last_read_chapter, added_at, advanced_at)
            VALUES ($1, $2, $3, $4, $4)
            ON CONFLICT (user_id, novel_id) DO UPDATE SET
                last_read_chapter = EXCLUDED.last_read_chapter,
                advanced_at = EXCLUDED.advanced_at
            WHERE user_library.last_read_chapter < EXCLUDED.last_read_chapter
            RETURNING last_read_chapter
        """, user_id, novel_id, chapter_number, at)
        return row is not None


class PostgresReadingStore(ReadingStore):

    def __init__(self, database: Database):
        self.db = database

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[ProgressWriter]:
        async with self.db.transaction() as conn:
            yield _PostgresWriter(conn)

    # ============================================
    # PROGRESS / HISTORY
    # ============================================

    async def get_progress(self, user_id, chapter_id):
        row = await self.db.fetch_one(
            "SELECT * FROM reading_progress WHERE user_id = $1 AND chapter_id = $2",
            user_id, chapter_id
        )
        return _progress_from_row(row) if row else None

    async def list_progress(self, user_id):
        rows = await self.db.fetch(
            "SELECT * FROM reading_progress WHERE user_id = $1 ORDER BY last_read_at DESC",
            user_id
        )
        return [_progress_from_row(row) for row in rows]

    async def list_history(self, user_id, start=None, end=None, novel_id=None):
        rows = await self.db.fetch("""
            SELECT * FROM reading_history
            WHERE user_id = $1
              AND ($2::timestamptz IS NULL OR read_at >= $2)
              AND ($3::timestamptz IS NULL OR read_at < $3)
              AND ($4::int IS NULL OR novel_id = $4)
            ORDER BY read_at DESC
        """, user_id, start, end, novel_id)
        return [_history_from_row(row) for row in rows]

    async def delete_chapter_history(self, user_id, chapter_id):
        async with self.db.transaction() as conn:
            history = await conn.execute(
                "DELETE FROM reading_history WHERE user_id = $1 AND chapter_id = $2",
                user_id, chapter_id
            )
            progress = await conn.execute(
                "DELETE FROM reading_progress WHERE user_id = $1 AND chapter_id = $2",
                user_id, chapter_id
            )
        return history != "DELETE 0" or progress != "DELETE 0"

    # ============================================
    # LIBRARY
    # ============================================

    async def get_pointer(self, user_id, novel_id):
        row = await self.db.fetch_one(
            "SELECT * FROM user_library WHERE user_id = $1 AND novel_id = $2",
            user_id, novel_id
        )
        return _pointer_from_row(row) if row else None

    async def list_pointers(self, user_id):
        rows = await self.db.fetch(
            "SELECT * FROM user_library WHERE user_id = $1 ORDER BY added_at DESC",
            user_id
        )
        return [_pointer_from_row(row) for row in rows]

    async def add_to_library(self, user_id, novel_id, at):
        await self.db.execute("""
            INSERT INTO user_library (user_id, novel_id, added_at)
            VALUES ($1, $2, $3)
            ON CONFLICT (user_id, novel_id) DO NOTHING
        """, user_id, novel_id, at)
        return await self.get_pointer(user_id, novel_id)

    async def update_library_entry(self, user_id, novel_id, reading_status=None, is_favorite=None):
        row = await self.db.fetch_one("""
            UPDATE user_library SET
                reading_status = COALESCE($3, reading_status),
                is_favorite = COALESCE($4, is_favorite)
            WHERE user_id = $1 AND novel_id = $2
            RETURNING *
        """, user_id, novel_id,
            reading_status.value if reading_status else None, is_favorite)
        return _pointer_from_row(row) if row else None

    async def remove_from_library(self, user_id, novel_id):
        result = await self.db.execute(
            "DELETE FROM user_library WHERE user_id = $1 AND novel_id = $2",
            user_id, novel_id
        )
        return result != "DELETE 0"

    # ============================================
    # BULK
    # ============================================

    async def clear_user(self, user_id):
        removed = 0
        async with self.db.transaction() as conn:
            for table in ("reading_progress", "reading_history", "user_library"):
                result = await conn.execute(f"DELETE FROM {table} WHERE user_id = $1", user_id)
                removed += int(result.split()[-1])
        return removed

    # ============================================
    # GOALS & ACHIEVEMENTS
    # ============================================

    async def get_goal(self, user_id) -> Optional[ReadingGoal]:
        row = await self.db.fetch_one("SELECT * FROM reading_goals WHERE user_id = $1", user_id)
        if not row:
            return None
        return ReadingGoal(
            goal_type=GoalType(row["goal_type"]),
            target=row["target"],
            start_date=row["start_date"],
            end_date=row["end_date"]
        )

    async def save_goal(self, user_id, goal):
        await self.db.execute("""
            INSERT INTO reading_goals (user_id, goal_type, target, start_date, end_date)
            VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT (user_id) DO UPDATE SET
                goal_type = EXCLUDED.goal_type,
                target = EXCLUDED.target,
                start_date = EXCLUDED.start_date,
                end_date = EXCLUDED.end_date,
                created_at = NOW()
        """, user_id, goal.goal_type.value, goal.target, goal.start_date, goal.end_date)
        return goal

    async def delete_goal(self, user_id):
        result = await self.db.execute("DELETE FROM reading_goals WHERE user_id = $1", user_id)
        return result != "DELETE 0"

    async def get_unlocks(self, user_id) -> Dict:
        rows = await self.db.fetch(
            "SELECT code, unlocked_at FROM achievement_unlocks WHERE user_id = $1", user_id
        )
        return {row["code"]: row["unlocked_at"] for row in rows}

    async def record_unlocks(self, user_id, unlocks):
        if not unlocks:
            return
        async with self.db.transaction() as conn:
            await conn.executemany("""
                INSERT INTO achievement_unlocks (user_id, code, unlocked_at)
                VALUES ($1, $2, $3)
                ON CONFLICT (user_id, code) DO NOTHING
            """, [(user_id, code, at) for code, at in unlocks.items()])
