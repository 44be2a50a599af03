from datetime import timedelta

import pytest

from conftest import NOW, USER
from reading_tracker.errors import NotFoundError
from reading_tracker.models import HistoryEntry, ReadingStatus


@pytest.mark.parametrize("order", [
    [101, 102, 103, 104, 105],
    [105, 104, 103, 102, 101],
    [103, 101, 105, 102, 104],
    [102, 105, 101],
])
async def test_pointer_keeps_furthest_completed_chapter(tracker, order):
    for chapter_id in order:
        await tracker.record_progress(USER, chapter_id, 100.0, 0, True)

    assert await tracker.get_last_read_chapter(USER, 1) == max(order) - 100


async def test_unfinished_chapter_does_not_move_pointer(tracker):
    await tracker.record_progress(USER, 101, 100.0, 0, True)
    await tracker.record_progress(USER, 104, 99.0, 0, False)

    assert await tracker.get_last_read_chapter(USER, 1) == 1


async def test_no_pointer_is_none(tracker):
    assert await tracker.get_last_read_chapter(USER, 1) is None


async def test_skipped_chapter_still_completes_novel(tracker):
    for chapter_id in (101, 102, 103):
        await tracker.record_progress(USER, chapter_id, 100.0, 0, True)
    assert await tracker.get_last_read_chapter(USER, 1) == 3

    await tracker.record_progress(USER, 105, 100.0, 0, True)

    assert await tracker.get_last_read_chapter(USER, 1) == 5
    stats = await tracker.get_aggregate_stats(USER)
    assert stats.novels_completed == 1
    assert stats.completion_rate == 100.0
    assert await tracker.get_progress(USER, 104) is None


async def test_delayed_completion_of_later_chapter_still_advances(tracker, clock):
    await tracker.record_progress(USER, 102, 100.0, 0, True)
    clock.set(NOW - timedelta(hours=3))
    await tracker.record_progress(USER, 104, 100.0, 0, True)

    pointer = (await tracker.get_library(USER))[0]
    assert pointer.last_read_chapter == 4
    assert pointer.advanced_at == NOW - timedelta(hours=3)


async def test_first_completion_creates_library_entry(tracker):
    await tracker.record_progress(USER, 201, 100.0, 0, True)

    library = await tracker.get_library(USER)
    assert [(p.novel_id, p.last_read_chapter, p.reading_status) for p in library] == [
        (2, 1, ReadingStatus.READING)
    ]
    assert library[0].added_at == NOW


# ============================================
# MEMBERSHIP
# ============================================

async def test_add_to_library_starts_at_zero(tracker):
    pointer = await tracker.add_to_library(USER, 2)

    assert pointer.last_read_chapter == 0
    assert await tracker.get_last_read_chapter(USER, 2) is None


async def test_add_to_library_keeps_existing_pointer(tracker):
    await tracker.record_progress(USER, 202, 100.0, 0, True)

    pointer = await tracker.add_to_library(USER, 2)

    assert pointer.last_read_chapter == 2


async def test_add_unknown_novel_to_library(tracker):
    with pytest.raises(NotFoundError):
        await tracker.add_to_library(USER, 42)


async def test_reading_status_never_moves_pointer(tracker):
    await tracker.record_progress(USER, 102, 100.0, 0, True)

    pointer = await tracker.set_reading_status(USER, 1, ReadingStatus.PAUSED)

    assert pointer.reading_status == ReadingStatus.PAUSED
    assert pointer.last_read_chapter == 2


async def test_status_for_novel_outside_library(tracker):
    with pytest.raises(NotFoundError):
        await tracker.set_reading_status(USER, 1, ReadingStatus.DROPPED)


async def test_remove_from_library_keeps_history(tracker):
    await tracker.record_progress(USER, 102, 100.0, 0, True)
    assert await tracker.is_in_library(USER, 1)

    await tracker.remove_from_library(USER, 1)

    assert not await tracker.is_in_library(USER, 1)
    assert await tracker.get_last_read_chapter(USER, 1) is None
    assert len(await tracker.get_user_history(USER)) == 1


async def test_remove_novel_outside_library(tracker):
    with pytest.raises(NotFoundError):
        await tracker.remove_from_library(USER, 2)


async def test_set_favorite(tracker):
    await tracker.add_to_library(USER, 3)

    pointer = await tracker.set_favorite(USER, 3, True)

    assert pointer.is_favorite
    assert (await tracker.get_aggregate_stats(USER)).total_favorites == 1


# ============================================
# REBUILD
# ============================================

async def test_rebuild_pointers_from_history(tracker, store):
    async with store.unit_of_work() as writer:
        for chapter_id, completed in ((101, True), (103, True), (104, False), (202, True)):
            await writer.upsert_history(HistoryEntry(
                user_id=USER,
                novel_id=chapter_id // 100,
                chapter_id=chapter_id,
                completed=completed,
                read_at=NOW
            ))

    moved = await tracker.rebuild_library_pointers(USER)

    assert moved == 2
    assert await tracker.get_last_read_chapter(USER, 1) == 3
    assert await tracker.get_last_read_chapter(USER, 2) == 2
    assert await tracker.rebuild_library_pointers(USER) == 0


async def test_rebuild_never_moves_pointer_back(tracker, store):
    await tracker.record_progress(USER, 105, 100.0, 0, True)
    await store.delete_chapter_history(USER, 105)
    await tracker.record_progress(USER, 102, 100.0, 0, True)

    assert await tracker.rebuild_library_pointers(USER) == 0
    assert await tracker.get_last_read_chapter(USER, 1) == 5


async def test_catalog_chapter_count(catalog):
    assert await catalog.count_chapters(1) == 5
    assert await catalog.count_chapters(42) == 0
