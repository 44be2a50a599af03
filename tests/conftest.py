from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import pytest

from reading_tracker.catalog import StaticActivity, StaticCatalog
from reading_tracker.config import TrackerConfig
from reading_tracker.errors import StorageFailureError
from reading_tracker.models import NovelRef
from reading_tracker.privacy import InMemoryPrivacyMode
from reading_tracker.store import MemoryReadingStore
from reading_tracker.tracker import ReadingTracker

# Saturday noon, UTC
NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)
USER = 1
OTHER_USER = 2


class FixedClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, moment: datetime) -> None:
        self.now = moment

    def days_ago(self, days: int, **kwargs) -> None:
        self.now = NOW - timedelta(days=days, **kwargs)


class UnavailableStore(MemoryReadingStore):
    """Every write fails as if the database were down."""

    @asynccontextmanager
    async def unit_of_work(self):
        raise StorageFailureError("connection refused")
        yield

    async def clear_user(self, user_id):
        raise StorageFailureError("connection refused")


def build_catalog() -> StaticCatalog:
    catalog = StaticCatalog()
    catalog.add_novel(
        NovelRef(novel_id=1, title="The Long Road", author="A. Writer",
                 chapter_count=5, genres=["Fantasy", "Adventure"]),
        [101, 102, 103, 104, 105]
    )
    catalog.add_novel(
        NovelRef(novel_id=2, title="Quiet Harbour", author="B. Author",
                 chapter_count=3, genres=["Romance"]),
        [201, 202, 203]
    )
    catalog.add_novel(
        NovelRef(novel_id=3, title="Star Forge", author="A. Writer",
                 chapter_count=2, genres=["Sci-Fi", "Adventure"]),
        [301, 302]
    )
    return catalog


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def config():
    return TrackerConfig(_env_file=None, timezone="UTC", privacy_mode_default=False)


@pytest.fixture
def catalog():
    return build_catalog()


@pytest.fixture
def activity():
    return StaticActivity()


@pytest.fixture
def privacy():
    return InMemoryPrivacyMode(default=False)


@pytest.fixture
def store():
    return MemoryReadingStore()


@pytest.fixture
def tracker(store, catalog, activity, privacy, config, clock):
    return ReadingTracker(
        store=store,
        catalog=catalog,
        activity=activity,
        privacy=privacy,
        config=config,
        clock=clock
    )


@pytest.fixture
def unavailable_tracker(catalog, activity, privacy, config, clock):
    return ReadingTracker(
        store=UnavailableStore(),
        catalog=catalog,
        activity=activity,
        privacy=privacy,
        config=config,
        clock=clock
    )
