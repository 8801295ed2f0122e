"""Shared fixtures for tests."""
from datetime import datetime, timezone

import pytest
import pytest_asyncio

from bkmr import config
from bkmr.models import Bookmark, normalize_tags
from bkmr.store import BookmarkStore


CREATED = datetime(2023, 4, 1, 12, 0, tzinfo=timezone.utc)


def make_bookmark(id, url, title="", tags=(), access_count=0, description=""):
    """Build a Bookmark read view without going through the store."""
    return Bookmark(
        id=id,
        url=url,
        title=title,
        description=description,
        tags=normalize_tags(tags),
        access_count=access_count,
        created_at=CREATED,
        updated_at=CREATED,
    )


@pytest.fixture
def bookmark_factory():
    return make_bookmark


@pytest.fixture
def lang_bookmarks():
    """The two-bookmark store used by the rust/go search scenarios."""
    return [
        make_bookmark(1, "https://rust-lang.org", tags={"rust", "lang"}),
        make_bookmark(2, "https://go.dev", tags={"go", "lang"}),
    ]


@pytest.fixture
def sample_bookmarks():
    return [
        make_bookmark(1, "https://docs.python.org", "Python Docs", {"python", "docs"}),
        make_bookmark(2, "https://jira.example.com/board", "Jira Board", {"work"}, access_count=5),
        make_bookmark(3, "https://confluence.example.com", "Confluence", {"work", "docs"}),
        make_bookmark(4, "https://sqlite.org/guide", "SQLite Guide", {"database", "tutorial"}),
        make_bookmark(5, "https://stackoverflow.com", "Stack Overflow", {"programming"}, access_count=2),
        make_bookmark(6, "shell::vim ~/notes.md", "Notes", {"local"}),
    ]


@pytest.fixture
def db_path(tmp_path):
    """Return path for a temporary bookmark database."""
    return tmp_path / "test_bkmr.db"


@pytest_asyncio.fixture
async def store(db_path):
    """Create and initialize a test bookmark store."""
    s = BookmarkStore(db_path)
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch):
    """Reload the global config from the (test) environment for every test."""
    monkeypatch.delenv("BKMR_NO_WEB", raising=False)
    monkeypatch.setattr(config, "_config", None)
