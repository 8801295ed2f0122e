"""Parsing of filter expressions typed into the search prompt.

A filter expression is a whitespace separated list of tokens:

  -tag    exclude bookmarks carrying ``tag``
  tag     require ``tag``, if ``tag`` is a tag currently in use
  word    anything else is free text for fuzzy matching

Whether a bare word is a tag depends on the tags that exist, so the set of
known tags is passed in by the caller.
"""
import logging
import re
from typing import AbstractSet, List, Set

from bkmr.models import ConflictingTag, Query, normalize_tag

logger = logging.getLogger(__name__)

TAG_TOKEN = re.compile(r"^[\w.+#-]+$")
SEPARATORS = re.compile(r"[\s,]+")


def tokenize(raw: str) -> List[str]:
    """Split a raw filter expression into tokens (commas count as spaces)."""
    return [token for token in SEPARATORS.split(raw) if token]


def is_tag_token(token: str) -> bool:
    """True if the token only contains characters allowed in tags."""
    return bool(TAG_TOKEN.match(token))


def parse(raw: str, known_tags: AbstractSet[str]) -> Query:
    """Parse a filter expression into a Query.

    Args:
        raw: Text typed by the user
        known_tags: Normalized tags currently in use, used to tell tag
            filters apart from free text

    Returns:
        Query with include/exclude tag sets and the remaining free text

    Raises:
        ConflictingTag: If a tag is both required and excluded
    """
    include: Set[str] = set()
    exclude: Set[str] = set()
    # Every bare tag-shaped token, known or not, for conflict detection
    mentioned: List[str] = []
    words: List[str] = []

    for token in tokenize(raw):
        if token.startswith("-") and len(token) > 1 and is_tag_token(token[1:]):
            exclude.add(normalize_tag(token[1:]))
            continue

        if is_tag_token(token) and not token.startswith("-"):
            tag = normalize_tag(token)
            mentioned.append(tag)
            if tag in known_tags:
                include.add(tag)
                continue

        words.append(token)

    for tag in mentioned:
        if tag in exclude:
            raise ConflictingTag(tag)

    query = Query(
        include_tags=frozenset(include),
        exclude_tags=frozenset(exclude),
        free_text=" ".join(words),
    )
    logger.debug(f"Parsed {raw!r} into {query}")
    return query
