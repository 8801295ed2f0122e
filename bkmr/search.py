"""Non-interactive search over the bookmark store."""
import logging
from typing import AbstractSet, List, Optional, Sequence

from bkmr import candidates, query
from bkmr.models import Bookmark, ScoredCandidate
from bkmr.ranking import ScoringWeights, rank

logger = logging.getLogger(__name__)


class FuzzySearchEngine:
    """Tag filtering followed by fuzzy ranking of the free text."""

    def __init__(self, weights: Optional[ScoringWeights] = None):
        self.weights = weights

    def search(
        self,
        raw_query: str,
        bookmarks: Sequence[Bookmark],
        known_tags: AbstractSet[str],
        limit: Optional[int] = None,
    ) -> List[ScoredCandidate]:
        """Search bookmarks with a filter expression.

        Args:
            raw_query: Filter expression (tags, -tags and free text)
            bookmarks: Bookmarks to search
            known_tags: Tags in use, for telling tags apart from free text
            limit: Maximum number of results to return, None for all

        Returns:
            Matching bookmarks, best first

        Raises:
            ConflictingTag: If a tag is both included and excluded
        """
        parsed = query.parse(raw_query, known_tags)
        selected = candidates.select(parsed, bookmarks)
        results = rank(selected, parsed.free_text, self.weights)
        logger.debug(
            f"Search {raw_query!r}: {len(selected)} candidates, {len(results)} matches"
        )
        return results[:limit] if limit is not None else results


def search_bookmarks(
    raw_query: str,
    bookmarks: Sequence[Bookmark],
    known_tags: AbstractSet[str],
    weights: Optional[ScoringWeights] = None,
) -> List[ScoredCandidate]:
    """Search a list of bookmarks. See ``FuzzySearchEngine.search``."""
    return FuzzySearchEngine(weights).search(raw_query, bookmarks, known_tags)


async def search(store, raw_query: str, weights: Optional[ScoringWeights] = None) -> List[ScoredCandidate]:
    """Search the store against a consistent snapshot of its records.

    Args:
        store: Initialized BookmarkStore
        raw_query: Filter expression
        weights: Scoring weights, defaults to the built-in policy

    Returns:
        Matching bookmarks, best first
    """
    bookmarks, known_tags = await store.snapshot()
    return search_bookmarks(raw_query, bookmarks, known_tags, weights)
