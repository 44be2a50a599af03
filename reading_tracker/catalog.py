"""
Reading Tracker - Catalog & Activity Collaborators
Read-only lookups owned by other services: the novel/chapter catalog and
per-user activity that is tracked elsewhere (reading time, reviews, categories).
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from .database import Database
from .models import ChapterRef, NovelRef, NovelStatus


# ============================================
# CONTRACTS
# ============================================

class Catalog(ABC):
    """Novel/chapter lookups."""

    @abstractmethod
    async def get_chapter(self, chapter_id: int) -> Optional[ChapterRef]:
        ...

    @abstractmethod
    async def get_novel(self, novel_id: int) -> Optional[NovelRef]:
        ...

    async def get_novels(self, novel_ids: Iterable[int]) -> Dict[int, NovelRef]:
        """Batch lookup; unknown ids are simply absent from the result."""
        found = {}
        for novel_id in set(novel_ids):
            novel = await self.get_novel(novel_id)
            if novel is not None:
                found[novel_id] = novel
        return found

    async def count_chapters(self, novel_id: int) -> int:
        novel = await self.get_novel(novel_id)
        return novel.chapter_count if novel else 0

    async def get_chapters(self, chapter_ids: Iterable[int]) -> Dict[int, ChapterRef]:
        found = {}
        for chapter_id in set(chapter_ids):
            chapter = await self.get_chapter(chapter_id)
            if chapter is not None:
                found[chapter_id] = chapter
        return found


class ActivitySource(ABC):
    """Per-user counters accumulated outside this package."""

    @abstractmethod
    async def reading_seconds(
        self,
        user_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> int:
        ...

    @abstractmethod
    async def reviews_written(self, user_id: int) -> int:
        ...

    @abstractmethod
    async def categories_used(self, user_id: int) -> int:
        ...

    @abstractmethod
    async def ratings(self, user_id: int) -> Dict[int, float]:
        """novel_id -> the user's rating for that novel."""


# ============================================
# IN-MEMORY IMPLEMENTATIONS
# ============================================

class StaticCatalog(Catalog):
    """Catalog held in memory, for embedding and tests."""

    def __init__(
        self,
        novels: Iterable[NovelRef] = (),
        chapters: Iterable[ChapterRef] = ()
    ):
        self._novels: Dict[int, NovelRef] = {n.novel_id: n for n in novels}
        self._chapters: Dict[int, ChapterRef] = {c.chapter_id: c for c in chapters}

    def add_novel(self, novel: NovelRef, chapter_ids: Optional[List[int]] = None) -> NovelRef:
        """
        Register a novel and, when chapter ids are given, one chapter per id
        numbered 1..n in order.
        """
        self._novels[novel.novel_id] = novel
        for number, chapter_id in enumerate(chapter_ids or [], 1):
            self._chapters[chapter_id] = ChapterRef(
                chapter_id=chapter_id,
                novel_id=novel.novel_id,
                chapter_number=number
            )
        return novel

    def add_chapter(self, chapter: ChapterRef) -> ChapterRef:
        self._chapters[chapter.chapter_id] = chapter
        return chapter

    def remove_novel(self, novel_id: int) -> None:
        self._novels.pop(novel_id, None)

    async def get_chapter(self, chapter_id: int) -> Optional[ChapterRef]:
        return self._chapters.get(chapter_id)

    async def get_novel(self, novel_id: int) -> Optional[NovelRef]:
        return self._novels.get(novel_id)


class StaticActivity(ActivitySource):
    """Activity counters held in memory."""

    def __init__(self):
        self._sessions: Dict[int, List[Tuple[datetime, int]]] = {}
        self._reviews: Dict[int, Dict[int, float]] = {}
        self._categories: Dict[int, int] = {}

    def add_session(self, user_id: int, started_at: datetime, seconds: int) -> None:
        self._sessions.setdefault(user_id, []).append((started_at, seconds))

    def add_review(self, user_id: int, novel_id: int, rating: float) -> None:
        self._reviews.setdefault(user_id, {})[novel_id] = rating

    def set_categories(self, user_id: int, count: int) -> None:
        self._categories[user_id] = count

    async def reading_seconds(self, user_id, start=None, end=None) -> int:
        return sum(
            seconds
            for started_at, seconds in self._sessions.get(user_id, [])
            if (start is None or started_at >= start) and (end is None or started_at < end)
        )

    async def reviews_written(self, user_id: int) -> int:
        return len(self._reviews.get(user_id, {}))

    async def categories_used(self, user_id: int) -> int:
        return self._categories.get(user_id, 0)

    async def ratings(self, user_id: int) -> Dict[int, float]:
        return dict(self._reviews.get(user_id, {}))


# ============================================
# POSTGRES IMPLEMENTATIONS
# ============================================

def _parse_status(raw: Optional[str]) -> NovelStatus:
    # Free-text statuses from the catalog are normalised here and nowhere else.
    try:
        return NovelStatus((raw or "").strip().lower())
    except ValueError:
        return NovelStatus.ONGOING


class PostgresCatalog(Catalog):
    def __init__(self, database: Database):
        self.db = database

    async def get_chapter(self, chapter_id: int) -> Optional[ChapterRef]:
        row = await self.db.fetch_one(
            "SELECT id, novel_id, chapter_number, title FROM chapters WHERE id = $1",
            chapter_id
        )
        if not row:
            return None
        return ChapterRef(
            chapter_id=row["id"],
            novel_id=row["novel_id"],
            chapter_number=row["chapter_number"],
            title=row["title"]
        )

    async def get_novel(self, novel_id: int) -> Optional[NovelRef]:
        novels = await self.get_novels([novel_id])
        return novels.get(novel_id)

    async def get_novels(self, novel_ids: Iterable[int]) -> Dict[int, NovelRef]:
        ids = list(set(novel_ids))
        if not ids:
            return {}
        rows = await self.db.fetch("""
            SELECT
                n.id,
                n.title,
                n.author,
                n.status,
                (SELECT COUNT(*) FROM chapters c WHERE c.novel_id = n.id) as chapter_count,
                COALESCE(
                    ARRAY_AGG(g.name ORDER BY g.name) FILTER (WHERE g.name IS NOT NULL),
                    '{}'
                ) as genres
            FROM novels n
            LEFT JOIN novel_genres ng ON n.id = ng.novel_id
            LEFT JOIN genres g ON ng.genre_id = g.id
            WHERE n.id = ANY($1::int[])
            GROUP BY n.id, n.title, n.author, n.status
        """, ids)
        return {
            row["id"]: NovelRef(
                novel_id=row["id"],
                title=row["title"],
                author=row["author"] or None,
                chapter_count=row["chapter_count"],
                genres=list(row["genres"]),
                status=_parse_status(row["status"])
            )
            for row in rows
        }

    async def get_chapters(self, chapter_ids: Iterable[int]) -> Dict[int, ChapterRef]:
        ids = list(set(chapter_ids))
        if not ids:
            return {}
        rows = await self.db.fetch(
            "SELECT id, novel_id, chapter_number, title FROM chapters WHERE id = ANY($1::int[])",
            ids
        )
        return {
            row["id"]: ChapterRef(
                chapter_id=row["id"],
                novel_id=row["novel_id"],
                chapter_number=row["chapter_number"],
                title=row["title"]
            )
            for row in rows
        }


class PostgresActivity(ActivitySource):
    def __init__(self, database: Database):
        self.db = database

    async def reading_seconds(self, user_id, start=None, end=None) -> int:
        total = await self.db.fetch_value("""
            SELECT COALESCE(SUM(duration_seconds), 0)
            FROM reading_sessions
            WHERE user_id = $1
              AND ($2::timestamptz IS NULL OR started_at >= $2)
              AND ($3::timestamptz IS NULL OR started_at < $3)
        """, user_id, start, end)
        return int(total or 0)

    async def reviews_written(self, user_id: int) -> int:
        count = await self.db.fetch_value(
            "SELECT COUNT(*) FROM reviews WHERE user_id = $1", user_id
        )
        return int(count or 0)

    async def categories_used(self, user_id: int) -> int:
        count = await self.db.fetch_value(
            "SELECT COUNT(*) FROM user_categories WHERE user_id = $1", user_id
        )
        return int(count or 0)

    async def ratings(self, user_id: int) -> Dict[int, float]:
        rows = await self.db.fetch(
            "SELECT novel_id, rating FROM reviews WHERE user_id = $1 AND rating IS NOT NULL",
            user_id
        )
        return {row["novel_id"]: float(row["rating"]) for row in rows}
