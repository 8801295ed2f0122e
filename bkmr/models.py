"""Bookmark records, query and ranking types, and the error taxonomy."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, Iterable, Optional, Tuple, Union
from urllib.parse import urlsplit, urlunsplit


DEFAULT_PORTS = {"http": 80, "https": 443}


# ============================================================================
# Errors
# ============================================================================

class QueryError(ValueError):
    """Raised when a filter expression cannot be turned into a query."""


class ConflictingTag(QueryError):
    """A tag was both required and excluded in the same query."""

    def __init__(self, tag: str):
        super().__init__(f"Tag '{tag}' is both included and excluded")
        self.tag = tag


class RankingCancelled(Exception):
    """A ranking pass was superseded before it finished."""


class StoreError(Exception):
    """Base class for bookmark store failures."""


class BookmarkNotFound(StoreError):
    def __init__(self, bookmark_id: int):
        super().__init__(f"Bookmark not found: {bookmark_id}")
        self.bookmark_id = bookmark_id


class DuplicateURL(StoreError):
    def __init__(self, url: str):
        super().__init__(f"Bookmark already exists: {url}")
        self.url = url


# ============================================================================
# Normalization
# ============================================================================

def normalize_tag(tag: str) -> str:
    """Trim and lower-case a single tag."""
    return tag.strip().lower()


def normalize_tags(tags: Union[str, Iterable[str], None]) -> FrozenSet[str]:
    """Normalize tags given as a comma separated string or an iterable.

    Empty entries are dropped, duplicates collapse.
    """
    if tags is None:
        return frozenset()
    if isinstance(tags, str):
        tags = tags.split(",")
    return frozenset(t for t in (normalize_tag(tag) for tag in tags) if t)


def normalize_url(url: str) -> str:
    """Normalize a URL for storage and uniqueness checks.

    Lower-cases scheme and host, strips default ports and drops the trailing
    slash of bare-domain URLs. Anything without a scheme and host (shell
    commands, local paths) is only stripped of surrounding whitespace.

    Args:
        url: URL as typed by the user

    Returns:
        Normalized URL string
    """
    url = url.strip()
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return url

    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    if ":" in host:
        host = f"[{host}]"  # IPv6 literal

    netloc = host
    if parts.username:
        userinfo = parts.username
        if parts.password:
            userinfo += f":{parts.password}"
        netloc = f"{userinfo}@{host}"

    port = parts.port
    if port is not None and DEFAULT_PORTS.get(scheme) != port:
        netloc += f":{port}"

    path = parts.path
    if path == "/" and not parts.query and not parts.fragment:
        path = ""

    return urlunsplit((scheme, netloc, path, parts.query, parts.fragment))


# ============================================================================
# Records
# ============================================================================

@dataclass(frozen=True)
class Bookmark:
    """A stored bookmark. Instances are read views handed out by the store."""
    id: int
    url: str
    title: str = ""
    description: str = ""
    tags: FrozenSet[str] = frozenset()
    access_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def sorted_tags(self) -> Tuple[str, ...]:
        return tuple(sorted(self.tags))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "description": self.description,
            "tags": list(self.sorted_tags),
            "access_count": self.access_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class Query:
    """Structured form of a filter expression typed by the user."""
    include_tags: FrozenSet[str] = frozenset()
    exclude_tags: FrozenSet[str] = frozenset()
    free_text: str = ""

    def __post_init__(self):
        conflict = self.include_tags & self.exclude_tags
        if conflict:
            raise ConflictingTag(min(conflict))

    @property
    def is_empty(self) -> bool:
        return not (self.include_tags or self.exclude_tags or self.free_text)


@dataclass(frozen=True)
class ScoredCandidate:
    """A bookmark that matched the free text, with its score and match positions.

    Positions index into the bookmark's searchable text (see
    ``ranking.searchable_text``) and are used for highlighting.
    """
    bookmark: Bookmark
    score: int
    positions: Tuple[int, ...] = field(default=())

    @property
    def id(self) -> int:
        return self.bookmark.id

    def sort_key(self) -> Tuple[int, int, int]:
        """Key for the total order: score desc, access_count desc, id asc."""
        return (-self.score, -self.bookmark.access_count, self.bookmark.id)
