"""SQLite bookmark store."""
import asyncio
import json
import logging
import sqlite3
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

import aiosqlite

from bkmr.config import get_config
from bkmr.models import (
    Bookmark,
    BookmarkNotFound,
    DuplicateURL,
    normalize_tag,
    normalize_tags,
    normalize_url,
)

logger = logging.getLogger(__name__)

TagsArg = Union[str, Iterable[str], None]

_UNSET = object()


def _now() -> datetime:
    return datetime.now(timezone.utc)


class BookmarkStore:
    """Async SQLite store for bookmarks.

    All mutations are serialized through a single lock, so the store is the
    only writer. Reads through ``snapshot()`` take the same lock and return a
    consistent view of the records and the tags in use.
    """

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize the bookmark store.

        Args:
            db_path: Path to SQLite database. Defaults to the configured path.
        """
        if db_path is None:
            db_path = get_config().resolved_db_path
        self.db_path = db_path
        self._connection: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Initialize the database, creating tables if needed."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(self.db_path)
        self._connection.row_factory = aiosqlite.Row

        # AUTOINCREMENT keeps ids from being reused after deletes
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS bookmarks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                url TEXT NOT NULL UNIQUE,
                title TEXT NOT NULL DEFAULT '',
                description TEXT NOT NULL DEFAULT '',
                tags TEXT NOT NULL DEFAULT '[]',
                access_count INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        await self._connection.commit()
        logger.debug(f"Opened bookmark database at {self.db_path}")

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    def _conn(self) -> aiosqlite.Connection:
        if not self._connection:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._connection

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_all(self) -> List[Bookmark]:
        """Return every bookmark ordered by id."""
        cursor = await self._conn().execute("SELECT * FROM bookmarks ORDER BY id")
        rows = await cursor.fetchall()
        return [self._row_to_bookmark(row) for row in rows]

    async def distinct_tags(self) -> FrozenSet[str]:
        """Return the set of tags used by at least one bookmark."""
        return frozenset((await self.tag_counts()).keys())

    async def snapshot(self) -> Tuple[List[Bookmark], FrozenSet[str]]:
        """Read all bookmarks and their distinct tags at one point in time."""
        async with self._lock:
            bookmarks = await self.list_all()
        tags = frozenset(tag for bm in bookmarks for tag in bm.tags)
        return bookmarks, tags

    async def get(self, bookmark_id: int) -> Bookmark:
        """Get a bookmark by id.

        Raises:
            BookmarkNotFound: If no bookmark has this id
        """
        cursor = await self._conn().execute(
            "SELECT * FROM bookmarks WHERE id = ?", (bookmark_id,)
        )
        row = await cursor.fetchone()
        if row is None:
            raise BookmarkNotFound(bookmark_id)
        return self._row_to_bookmark(row)

    async def get_by_url(self, url: str) -> Optional[Bookmark]:
        """Get a bookmark by URL (normalized before lookup), or None."""
        cursor = await self._conn().execute(
            "SELECT * FROM bookmarks WHERE url = ?", (normalize_url(url),)
        )
        row = await cursor.fetchone()
        return self._row_to_bookmark(row) if row else None

    async def tag_counts(self) -> Dict[str, int]:
        """Count how many bookmarks carry each tag."""
        cursor = await self._conn().execute("SELECT tags FROM bookmarks")
        rows = await cursor.fetchall()
        counts: Counter = Counter()
        for row in rows:
            counts.update(self._parse_tags(row["tags"]))
        return dict(counts)

    async def related_tags(self, tag: str) -> Dict[str, int]:
        """Count the tags that co-occur with ``tag``, excluding the tag itself."""
        tag = normalize_tag(tag)
        counts: Counter = Counter()
        for bookmark in await self.list_all():
            if tag in bookmark.tags:
                counts.update(bookmark.tags - {tag})
        return dict(counts)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(
        self,
        url: str,
        title: str = "",
        description: str = "",
        tags: TagsArg = None,
    ) -> Bookmark:
        """Insert a new bookmark.

        Args:
            url: Bookmark URL, normalized before storing
            title: Optional title
            description: Optional description
            tags: Tags as an iterable or a comma separated string

        Returns:
            The stored bookmark with its assigned id

        Raises:
            DuplicateURL: If the normalized URL is already stored
        """
        url = normalize_url(url)
        now = _now().isoformat()
        tags_json = json.dumps(sorted(normalize_tags(tags)))

        async with self._lock:
            conn = self._conn()
            try:
                cursor = await conn.execute("""
                    INSERT INTO bookmarks (url, title, description, tags, access_count, created_at, updated_at)
                    VALUES (?, ?, ?, ?, 0, ?, ?)
                """, (url, title or "", description or "", tags_json, now, now))
            except sqlite3.IntegrityError as e:
                await conn.rollback()
                raise DuplicateURL(url) from e
            await conn.commit()
            bookmark_id = cursor.lastrowid

        logger.info(f"Added bookmark {bookmark_id}: {url}")
        return await self.get(bookmark_id)

    async def update(
        self,
        bookmark_id: int,
        *,
        url: Any = _UNSET,
        title: Any = _UNSET,
        description: Any = _UNSET,
        tags: Any = _UNSET,
    ) -> Bookmark:
        """Update the given fields of a bookmark.

        Fields left out keep their value. ``updated_at`` is always bumped.

        Raises:
            BookmarkNotFound: If no bookmark has this id
            DuplicateURL: If the new URL belongs to another bookmark
        """
        assignments: Dict[str, Any] = {}
        if url is not _UNSET:
            assignments["url"] = normalize_url(url)
        if title is not _UNSET:
            assignments["title"] = title or ""
        if description is not _UNSET:
            assignments["description"] = description or ""
        if tags is not _UNSET:
            assignments["tags"] = json.dumps(sorted(normalize_tags(tags)))
        assignments["updated_at"] = _now().isoformat()

        columns = ", ".join(f"{name} = ?" for name in assignments)
        params = list(assignments.values()) + [bookmark_id]

        async with self._lock:
            conn = self._conn()
            try:
                cursor = await conn.execute(
                    f"UPDATE bookmarks SET {columns} WHERE id = ?", params
                )
            except sqlite3.IntegrityError as e:
                await conn.rollback()
                raise DuplicateURL(assignments["url"]) from e
            await conn.commit()
            if cursor.rowcount == 0:
                raise BookmarkNotFound(bookmark_id)

        logger.debug(f"Updated bookmark {bookmark_id}: {sorted(assignments)}")
        return await self.get(bookmark_id)

    async def delete(self, bookmark_id: int) -> None:
        """Delete a bookmark.

        Raises:
            BookmarkNotFound: If no bookmark has this id
        """
        async with self._lock:
            conn = self._conn()
            cursor = await conn.execute(
                "DELETE FROM bookmarks WHERE id = ?", (bookmark_id,)
            )
            await conn.commit()
            if cursor.rowcount == 0:
                raise BookmarkNotFound(bookmark_id)

        logger.info(f"Deleted bookmark {bookmark_id}")

    async def record_access(self, bookmark_id: int) -> Bookmark:
        """Increment the access count of a bookmark (the open action).

        Raises:
            BookmarkNotFound: If no bookmark has this id
        """
        async with self._lock:
            conn = self._conn()
            cursor = await conn.execute("""
                UPDATE bookmarks
                SET access_count = access_count + 1, updated_at = ?
                WHERE id = ?
            """, (_now().isoformat(), bookmark_id))
            await conn.commit()
            if cursor.rowcount == 0:
                raise BookmarkNotFound(bookmark_id)

        return await self.get(bookmark_id)

    # ------------------------------------------------------------------
    # Row conversion
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_tags(raw: Optional[str]) -> List[str]:
        if not raw:
            return []
        try:
            return list(json.loads(raw))
        except json.JSONDecodeError:
            return []

    def _row_to_bookmark(self, row: aiosqlite.Row) -> Bookmark:
        """Convert a database row to a Bookmark."""
        return Bookmark(
            id=row["id"],
            url=row["url"],
            title=row["title"] or "",
            description=row["description"] or "",
            tags=normalize_tags(self._parse_tags(row["tags"])),
            access_count=row["access_count"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )


# Global store instance
_store: Optional[BookmarkStore] = None


async def get_store() -> BookmarkStore:
    """Get or create the global bookmark store instance.

    Returns:
        Initialized BookmarkStore
    """
    global _store

    if _store is None:
        _store = BookmarkStore()
        await _store.initialize()

    return _store
