"""
Reading Tracker - Reading History Views
Read-side views over the history ledger, plus per-entry and bulk deletion.
"""

from datetime import datetime
from typing import Dict, List, Optional

from .catalog import Catalog
from .errors import NotFoundError
from .logger import get_logger
from .models import HistoryItem, NovelHistoryGroup, ProgressRecord
from .store import ReadingStore

logger = get_logger("history")


class HistoryService:

    def __init__(self, store: ReadingStore, catalog: Catalog):
        self.store = store
        self.catalog = catalog

    async def get_progress(self, user_id: int, chapter_id: int) -> Optional[ProgressRecord]:
        return await self.store.get_progress(user_id, chapter_id)

    async def _items(self, user_id: int, entries) -> List[HistoryItem]:
        chapters = await self.catalog.get_chapters(e.chapter_id for e in entries)
        novels = await self.catalog.get_novels(e.novel_id for e in entries)
        progress = {r.chapter_id: r for r in await self.store.list_progress(user_id)}

        items = []
        for entry in entries:
            chapter = chapters.get(entry.chapter_id)
            novel = novels.get(entry.novel_id)
            record = progress.get(entry.chapter_id)
            items.append(HistoryItem(
                novel_id=entry.novel_id,
                chapter_id=entry.chapter_id,
                completed=entry.completed,
                read_at=entry.read_at,
                percentage=record.percentage if record else None,
                chapter_number=chapter.chapter_number if chapter else None,
                novel_title=novel.title if novel else None,
                novel_author=novel.author if novel else None
            ))
        return items

    async def get_user_history(self, user_id: int, limit: int = 0) -> List[HistoryItem]:
        """Most recent first; limit 0 means no limit."""
        entries = await self.store.list_history(user_id)
        if limit > 0:
            entries = entries[:limit]
        return await self._items(user_id, entries)

    async def get_history_by_date_range(
        self,
        user_id: int,
        start: datetime,
        end: datetime
    ) -> List[HistoryItem]:
        entries = await self.store.list_history(user_id, start=start, end=end)
        return await self._items(user_id, entries)

    async def get_history_grouped_by_novel(self, user_id: int) -> List[NovelHistoryGroup]:
        entries = await self.store.list_history(user_id)
        novels = await self.catalog.get_novels(e.novel_id for e in entries)

        groups: Dict[int, NovelHistoryGroup] = {}
        for entry in entries:
            group = groups.get(entry.novel_id)
            if group is None:
                novel = novels.get(entry.novel_id)
                group = groups[entry.novel_id] = NovelHistoryGroup(
                    novel_id=entry.novel_id,
                    novel_title=novel.title if novel else None,
                    last_read=entry.read_at,
                    chapters_read=0,
                    chapters_completed=0
                )
            group.chapters_read += 1
            group.chapters_completed += int(entry.completed)
            group.last_read = max(group.last_read, entry.read_at)

        return sorted(groups.values(), key=lambda g: g.last_read, reverse=True)

    async def delete_entry(self, user_id: int, chapter_id: int) -> None:
        """
        Forget one chapter. The library pointer is left alone: it records
        furthest progress, not the contents of the ledger.
        """
        if not await self.store.delete_chapter_history(user_id, chapter_id):
            raise NotFoundError(f"user {user_id} has no history for chapter {chapter_id}")

    async def clear_all(self, user_id: int) -> int:
        """Irreversibly delete all progress, history and library pointers of a user."""
        removed = await self.store.clear_user(user_id)
        logger.info(f"Cleared reading history for user {user_id} ({removed} rows)")
        return removed
