"""
Reading Tracker - Library Pointers
Per (user, novel) furthest completed chapter number, plus library membership.
"""

from typing import Dict, List, Optional

from .catalog import Catalog
from .errors import NotFoundError
from .logger import get_logger
from .models import LibraryPointer, NovelRef, ReadingStatus
from .progress import Clock, utc_now
from .store import ReadingStore

logger = get_logger("library")


def is_novel_completed(pointer: LibraryPointer, novel: NovelRef) -> bool:
    """
    A novel counts as completed once the pointer reaches its final chapter
    number, whether or not every earlier chapter was marked complete.
    """
    return novel.chapter_count > 0 and pointer.last_read_chapter >= novel.chapter_count


class LibraryService:

    def __init__(self, store: ReadingStore, catalog: Catalog, clock: Optional[Clock] = None):
        self.store = store
        self.catalog = catalog
        self.clock = clock or utc_now

    async def get_last_read_chapter(self, user_id: int, novel_id: int) -> Optional[int]:
        """Furthest completed chapter number, or None if nothing was completed."""
        pointer = await self.store.get_pointer(user_id, novel_id)
        if pointer is None or pointer.last_read_chapter == 0:
            return None
        return pointer.last_read_chapter

    async def get_library(self, user_id: int) -> List[LibraryPointer]:
        return await self.store.list_pointers(user_id)

    async def add_to_library(self, user_id: int, novel_id: int) -> LibraryPointer:
        if await self.catalog.get_novel(novel_id) is None:
            raise NotFoundError(f"novel {novel_id} is not in the catalog")
        return await self.store.add_to_library(user_id, novel_id, self.clock())

    async def remove_from_library(self, user_id: int, novel_id: int) -> None:
        """Drop the novel from the library. Reading history is kept."""
        if not await self.store.remove_from_library(user_id, novel_id):
            raise NotFoundError(f"novel {novel_id} is not in user {user_id}'s library")
        logger.info(f"User {user_id} removed novel {novel_id} from the library")

    async def is_in_library(self, user_id: int, novel_id: int) -> bool:
        return await self.store.get_pointer(user_id, novel_id) is not None

    async def set_reading_status(
        self,
        user_id: int,
        novel_id: int,
        status: ReadingStatus
    ) -> LibraryPointer:
        pointer = await self.store.update_library_entry(user_id, novel_id, reading_status=status)
        if pointer is None:
            raise NotFoundError(f"novel {novel_id} is not in user {user_id}'s library")
        return pointer

    async def set_favorite(self, user_id: int, novel_id: int, is_favorite: bool) -> LibraryPointer:
        pointer = await self.store.update_library_entry(user_id, novel_id, is_favorite=is_favorite)
        if pointer is None:
            raise NotFoundError(f"novel {novel_id} is not in user {user_id}'s library")
        return pointer

    async def rebuild_pointers(self, user_id: int) -> int:
        """
        Reconstruct pointers from completed history entries. Pointers only
        move forward, so this is safe to run at any time.

        Returns:
            Number of pointers that moved.
        """
        completed = [e for e in await self.store.list_history(user_id) if e.completed]
        chapters = await self.catalog.get_chapters(e.chapter_id for e in completed)

        furthest: Dict[int, int] = {}
        for entry in completed:
            chapter = chapters.get(entry.chapter_id)
            if chapter is None:
                logger.warning(f"Chapter {entry.chapter_id} missing from catalog; skipped in rebuild")
                continue
            furthest[chapter.novel_id] = max(furthest.get(chapter.novel_id, 0), chapter.chapter_number)

        moved = 0
        now = self.clock()
        async with self.store.unit_of_work() as writer:
            for novel_id, chapter_number in furthest.items():
                if await writer.advance_pointer(user_id, novel_id, chapter_number, now):
                    moved += 1

        if moved:
            logger.info(f"Rebuilt {moved} library pointer(s) for user {user_id}")
        return moved
