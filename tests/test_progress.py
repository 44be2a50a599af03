import asyncio
from contextlib import asynccontextmanager
from datetime import timedelta

import pytest

from conftest import NOW, USER, OTHER_USER
from reading_tracker.errors import ErrorKind, StorageFailureError
from reading_tracker.store import MemoryReadingStore
from reading_tracker.tracker import ReadingTracker


class PointerFailureStore(MemoryReadingStore):
    """Progress and history are staged, then the pointer write fails."""

    @asynccontextmanager
    async def unit_of_work(self):
        async with super().unit_of_work() as writer:
            async def fail(*args):
                raise StorageFailureError("user_library unavailable")
            writer.advance_pointer = fail
            yield writer


async def test_record_progress_saves_record_and_history(tracker, store):
    result = await tracker.record_progress(USER, 101, 42.5, 120, False)

    assert result.success
    assert not result.skipped
    record = await tracker.get_progress(USER, 101)
    assert record.percentage == 42.5
    assert record.cursor_position == 120
    assert not record.completed
    assert record.last_read_at == NOW

    history = await store.list_history(USER)
    assert [(e.novel_id, e.chapter_id, e.completed) for e in history] == [(1, 101, False)]


async def test_get_progress_unknown_chapter_is_none(tracker):
    assert await tracker.get_progress(USER, 101) is None


async def test_completed_forces_full_percentage(tracker):
    await tracker.record_progress(USER, 102, 37.0, 10, True)

    record = await tracker.get_progress(USER, 102)
    assert record.completed
    assert record.percentage == 100.0


async def test_later_event_overwrites_record(tracker, clock):
    await tracker.record_progress(USER, 101, 20.0, 5, False)
    clock.set(NOW + timedelta(hours=1))
    await tracker.record_progress(USER, 101, 80.0, 40, False)

    record = await tracker.get_progress(USER, 101)
    assert record.percentage == 80.0
    assert record.cursor_position == 40
    assert record.last_read_at == clock.now


@pytest.mark.parametrize("percentage", [-0.1, 100.01, float("nan"), True, "50"])
async def test_invalid_percentage_is_rejected(tracker, store, percentage):
    result = await tracker.record_progress(USER, 101, percentage, 0, False)

    assert not result.success
    assert result.error == ErrorKind.INVALID_ARGUMENT
    assert store.snapshot(USER) == {"progress": [], "history": [], "pointers": []}


@pytest.mark.parametrize("cursor", [-1, 2.5])
async def test_invalid_cursor_is_rejected(tracker, cursor):
    result = await tracker.record_progress(USER, 101, 50.0, cursor, False)

    assert result.error == ErrorKind.INVALID_ARGUMENT


@pytest.mark.parametrize("percentage", [0, 100, 0.0, 99.99])
async def test_percentage_bounds_are_inclusive(tracker, percentage):
    result = await tracker.record_progress(USER, 101, percentage, 0, False)

    assert result.success


async def test_unknown_chapter_is_not_found(tracker, store):
    result = await tracker.record_progress(USER, 999, 50.0, 0, False)

    assert not result.success
    assert result.error == ErrorKind.NOT_FOUND
    assert store.snapshot(USER)["history"] == []


async def test_recording_twice_is_idempotent(tracker, store):
    await tracker.record_progress(USER, 103, 100.0, 300, True)
    once = store.snapshot(USER)

    await tracker.record_progress(USER, 103, 100.0, 300, True)

    assert store.snapshot(USER) == once


async def test_users_are_isolated(tracker):
    await tracker.record_progress(USER, 101, 50.0, 0, True)

    assert await tracker.get_progress(OTHER_USER, 101) is None
    assert await tracker.get_last_read_chapter(OTHER_USER, 1) is None


# ============================================
# PRIVACY MODE
# ============================================

async def test_privacy_mode_writes_nothing(tracker, store, privacy):
    await tracker.record_progress(USER, 101, 100.0, 0, True)
    before = store.snapshot(USER)

    privacy.enable(USER)
    for chapter_id in (102, 103, 104, 105, 201):
        result = await tracker.record_progress(USER, chapter_id, 100.0, 0, True)
        assert result.success
        assert result.skipped

    assert store.snapshot(USER) == before


async def test_privacy_mode_is_checked_before_validation(tracker, store, privacy):
    privacy.enable(USER)

    result = await tracker.record_progress(USER, 999, 500.0, -3, True)

    assert result.success
    assert result.skipped
    assert store.snapshot(USER) == {"progress": [], "history": [], "pointers": []}


async def test_privacy_toggled_mid_session(tracker, privacy):
    privacy.enable(USER)
    await tracker.record_progress(USER, 102, 100.0, 0, True)
    privacy.disable(USER)
    await tracker.record_progress(USER, 103, 60.0, 0, False)

    assert await tracker.get_progress(USER, 102) is None
    assert (await tracker.get_progress(USER, 103)).percentage == 60.0
    assert await tracker.get_last_read_chapter(USER, 1) is None


async def test_privacy_mode_keeps_reads_working(tracker, privacy):
    await tracker.record_progress(USER, 101, 100.0, 0, True)
    privacy.enable(USER)

    stats = await tracker.get_aggregate_stats(USER)

    assert stats.total_chapters_read == 1
    assert await tracker.get_last_read_chapter(USER, 1) == 1


# ============================================
# FAILURES
# ============================================

async def test_storage_failure_is_returned(unavailable_tracker):
    result = await unavailable_tracker.record_progress(USER, 101, 50.0, 0, False)

    assert not result.success
    assert result.error == ErrorKind.STORAGE_FAILURE
    assert "connection refused" in result.message


async def test_failed_unit_of_work_leaves_no_partial_state(catalog, activity, privacy, config, clock):
    store = PointerFailureStore()
    tracker = ReadingTracker(store, catalog, activity, privacy, config, clock)

    result = await tracker.record_progress(USER, 103, 100.0, 0, True)

    assert result.error == ErrorKind.STORAGE_FAILURE
    assert store.snapshot(USER) == {"progress": [], "history": [], "pointers": []}


async def test_autosave_swallows_storage_failure(unavailable_tracker):
    result = await unavailable_tracker.autosave_progress(USER, 101, 50.0, 0)

    assert result.success
    assert result.skipped


async def test_autosave_still_reports_bad_input(tracker):
    result = await tracker.autosave_progress(USER, 999, 50.0, 0)

    assert result.error == ErrorKind.NOT_FOUND


# ============================================
# BACKGROUND SAVES
# ============================================

async def test_background_save_completes(tracker):
    task = tracker.record_progress_in_background(USER, 104, 100.0, 0, True)
    await tracker.drain()

    assert task.done()
    assert task.result().success
    assert (await tracker.get_progress(USER, 104)).completed


async def test_concurrent_completions_keep_furthest_chapter(tracker):
    results = await asyncio.gather(*[
        tracker.record_progress(USER, chapter_id, 100.0, 0, True)
        for chapter_id in (104, 101, 105, 102, 103)
    ])

    assert all(r.success for r in results)
    assert await tracker.get_last_read_chapter(USER, 1) == 5


async def test_percentage_kept_at_one_decimal(tracker):
    await tracker.record_progress(USER, 101, 100 / 3, 0, False)

    assert (await tracker.get_progress(USER, 101)).percentage == 33.3
