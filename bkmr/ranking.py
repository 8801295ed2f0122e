"""Fuzzy ranking of candidate bookmarks.

Each bookmark is matched through its searchable text: title, URL and sorted
tags joined by single spaces. The description is left out to keep noise down.

The free text matches when its characters occur in the searchable text in
order, case-insensitively, not necessarily adjacent. Whitespace in the free
text only separates words and is not matched itself. Among all alignments the
best scoring one is chosen:

    score = sum over matched characters of
                match
                + consecutive   if it directly follows the previous match
                + boundary      if it starts the text or follows a non-alphanumeric
            + max(0, proximity_window - first matched position)
            - gap * number of breaks between matched characters
            - len(text) // length_divisor

Candidates without a match are dropped. Results are ordered by score desc,
access count desc, id asc.
"""
import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from bkmr.models import Bookmark, RankingCancelled, ScoredCandidate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoringWeights:
    """Tunable weights of the scoring formula (see module docstring)."""
    match: int = 16
    consecutive: int = 8
    boundary: int = 10
    proximity_window: int = 16
    gap: int = 3
    length_divisor: int = 8


DEFAULT_WEIGHTS = ScoringWeights()


@dataclass(frozen=True)
class Match:
    score: int
    positions: Tuple[int, ...]


class CancelToken:
    """Cooperative cancellation flag shared between the UI and a ranking pass."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class RankedList:
    """Outcome of a ranking pass.

    For a cancelled pass ``items`` holds the ranking of the first
    ``processed`` candidates only and must not be shown as final.
    """
    items: Tuple[ScoredCandidate, ...]
    processed: int
    total: int
    cancelled: bool = False

    @property
    def complete(self) -> bool:
        return not self.cancelled and self.processed == self.total

    def unwrap(self) -> Tuple[ScoredCandidate, ...]:
        """Return the items of a finished pass.

        Raises:
            RankingCancelled: If the pass was cancelled
        """
        if self.cancelled:
            raise RankingCancelled(f"ranking cancelled after {self.processed}/{self.total} candidates")
        return self.items


def searchable_text(bookmark: Bookmark) -> str:
    """Text the free text is matched against."""
    parts = (bookmark.title, bookmark.url, " ".join(bookmark.sorted_tags))
    return " ".join(part for part in parts if part)


def fold_case(text: str) -> str:
    """Lower-case ``text`` one character at a time, keeping its length.

    A character whose lower-case form is longer (``"İ"`` becomes ``"i̇"``)
    folds to the first character of that form, so positions in the result
    index the same characters in ``text``.
    """
    return "".join(c.lower()[:1] for c in text)


def compile_pattern(free_text: str) -> str:
    """Case-fold the free text and drop whitespace."""
    return fold_case("".join(free_text.split()))


def _is_subsequence(pattern: str, text: str) -> bool:
    chars = iter(text)
    return all(c in chars for c in pattern)


def fuzzy_match(pattern: str, text: str, weights: ScoringWeights = DEFAULT_WEIGHTS) -> Optional[Match]:
    """Find the best scoring in-order match of ``pattern`` in ``text``.

    Args:
        pattern: Compiled pattern (see ``compile_pattern``)
        text: Text to search
        weights: Scoring weights

    Returns:
        The best Match, or None if ``pattern`` is not a subsequence of ``text``
    """
    if not pattern:
        return Match(score=0, positions=())
    lowered = fold_case(text)
    if not lowered or not _is_subsequence(pattern, lowered):
        return None

    n = len(lowered)
    boundary = [
        weights.boundary if j == 0 or not lowered[j - 1].isalnum() else 0
        for j in range(n)
    ]

    # best[j]: best score of pattern[:i + 1] with pattern[i] matched at j
    # back[i][j]: position of pattern[i - 1] in that alignment
    best: List[Optional[int]] = [None] * n
    back: List[List[int]] = []

    first = pattern[0]
    for j in range(n):
        if lowered[j] == first:
            best[j] = weights.match + boundary[j] + max(0, weights.proximity_window - j)
    back.append([-1] * n)

    for i in range(1, len(pattern)):
        char = pattern[i]
        row: List[Optional[int]] = [None] * n
        links = [-1] * n
        # Running maximum over best[0 .. j - 2], earliest position on ties
        gapped_score: Optional[int] = None
        gapped_pos = -1
        for j in range(i, n):
            k = j - 2
            if k >= 0 and best[k] is not None and (gapped_score is None or best[k] > gapped_score):
                gapped_score = best[k]
                gapped_pos = k
            if lowered[j] != char:
                continue

            prev_score: Optional[int] = None
            prev_pos = -1
            if best[j - 1] is not None:
                prev_score = best[j - 1] + weights.consecutive
                prev_pos = j - 1
            if gapped_score is not None:
                candidate = gapped_score - weights.gap
                if prev_score is None or candidate > prev_score:
                    prev_score = candidate
                    prev_pos = gapped_pos
            if prev_score is None:
                continue

            row[j] = prev_score + weights.match + boundary[j]
            links[j] = prev_pos
        best = row
        back.append(links)

    end = -1
    for j in range(n):
        if best[j] is not None and (end < 0 or best[j] > best[end]):
            end = j
    if end < 0:
        return None

    score = best[end]
    if weights.length_divisor > 0:
        score -= n // weights.length_divisor

    positions = []
    pos = end
    for i in range(len(pattern) - 1, -1, -1):
        positions.append(pos)
        pos = back[i][pos]
    positions.reverse()

    return Match(score=score, positions=tuple(positions))


def score_candidate(
    bookmark: Bookmark,
    pattern: str,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> Optional[ScoredCandidate]:
    """Score one bookmark against a compiled pattern, or None if it does not match."""
    match = fuzzy_match(pattern, searchable_text(bookmark), weights)
    if match is None:
        return None
    return ScoredCandidate(bookmark=bookmark, score=match.score, positions=match.positions)


def order(scored: Iterable[ScoredCandidate]) -> List[ScoredCandidate]:
    """Sort scored candidates by score desc, access count desc, id asc."""
    return sorted(scored, key=ScoredCandidate.sort_key)


def rank(
    candidates: Iterable[Bookmark],
    free_text: str,
    weights: Optional[ScoringWeights] = None,
) -> List[ScoredCandidate]:
    """Score and order all candidates against the free text.

    With empty free text every candidate scores 0 and the order falls back to
    access count and id.
    """
    weights = weights or DEFAULT_WEIGHTS
    pattern = compile_pattern(free_text)
    scored = (score_candidate(bookmark, pattern, weights) for bookmark in candidates)
    return order(s for s in scored if s is not None)


def iter_scored(
    candidates: Iterable[Bookmark],
    free_text: str,
    token: Optional[CancelToken] = None,
    weights: Optional[ScoringWeights] = None,
) -> Iterator[ScoredCandidate]:
    """Lazily score candidates in input order, skipping non-matches.

    The token is checked before each candidate; once it is cancelled the
    generator ends.
    """
    weights = weights or DEFAULT_WEIGHTS
    pattern = compile_pattern(free_text)
    for bookmark in candidates:
        if token is not None and token.cancelled:
            return
        scored = score_candidate(bookmark, pattern, weights)
        if scored is not None:
            yield scored


def rank_stream(
    candidates: Sequence[Bookmark],
    free_text: str,
    token: CancelToken,
    weights: Optional[ScoringWeights] = None,
) -> RankedList:
    """Rank candidates one at a time, stopping early when the token is cancelled.

    Returns:
        RankedList of the candidates processed so far, marked cancelled if the
        token was cancelled
    """
    weights = weights or DEFAULT_WEIGHTS
    pattern = compile_pattern(free_text)
    items: List[ScoredCandidate] = []
    processed = 0
    cancelled = False

    for bookmark in candidates:
        if token.cancelled:
            cancelled = True
            break
        scored = score_candidate(bookmark, pattern, weights)
        if scored is not None:
            items.append(scored)
        processed += 1

    if cancelled:
        logger.debug(f"Ranking of {free_text!r} cancelled after {processed}/{len(candidates)}")

    return RankedList(
        items=tuple(order(items)),
        processed=processed,
        total=len(candidates),
        cancelled=cancelled,
    )


async def rank_async(
    candidates: Sequence[Bookmark],
    free_text: str,
    token: CancelToken,
    weights: Optional[ScoringWeights] = None,
) -> RankedList:
    """Run ``rank_stream`` in a worker thread so the event loop stays responsive."""
    return await asyncio.to_thread(rank_stream, candidates, free_text, token, weights)
