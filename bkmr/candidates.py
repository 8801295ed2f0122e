"""Tag filtering of bookmarks ahead of fuzzy ranking."""
from typing import Iterable, List

from bkmr.models import Bookmark, Query


def matches(query: Query, bookmark: Bookmark) -> bool:
    """True if the bookmark carries every included tag and no excluded one."""
    return query.include_tags <= bookmark.tags and query.exclude_tags.isdisjoint(bookmark.tags)


def select(query: Query, bookmarks: Iterable[Bookmark]) -> List[Bookmark]:
    """Return the bookmarks passing the tag part of the query, in input order."""
    if not query.include_tags and not query.exclude_tags:
        return list(bookmarks)
    return [bookmark for bookmark in bookmarks if matches(query, bookmark)]
