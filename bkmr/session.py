"""State machine behind the interactive picker.

The session owns everything the picker needs except drawing: it parses each
new input, filters candidates by tag right away, and ranks the free text in a
worker thread. Each keystroke cancels the previous ranking pass. Only the
newest finished pass is kept, in a single-slot register that the picker reads
when it redraws.

    Idle -> Typing -> Ranking -> Rendered -> Typing | Committed | Cancelled
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import AbstractSet, Callable, Dict, Optional, Sequence, Set, Tuple

from bkmr import candidates, query
from bkmr.models import Bookmark, QueryError, RankingCancelled, ScoredCandidate
from bkmr.ranking import CancelToken, RankedList, ScoringWeights, rank_async

logger = logging.getLogger(__name__)


class SessionState(Enum):
    IDLE = "idle"
    TYPING = "typing"
    RANKING = "ranking"
    RENDERED = "rendered"
    COMMITTED = "committed"
    CANCELLED = "cancelled"


TERMINAL_STATES = (SessionState.COMMITTED, SessionState.CANCELLED)


class Action(Enum):
    """What the caller should do with the selected bookmarks."""
    OPEN = "open"
    EDIT = "edit"
    DELETE = "delete"
    COPY = "copy"


@dataclass(frozen=True)
class Selection:
    """Outcome of a picker session.

    An aborted session has ``aborted=True``; a commit with nothing to select
    has ``aborted=False`` and no ids.
    """
    action: Optional[Action]
    ids: Tuple[int, ...] = ()
    aborted: bool = False

    @classmethod
    def cancelled(cls) -> "Selection":
        return cls(action=None, ids=(), aborted=True)


class LatestResult:
    """Single-slot register for the newest finished ranking."""

    def __init__(self):
        self.generation = -1
        self.items: Tuple[ScoredCandidate, ...] = ()

    def offer(self, generation: int, ranked: RankedList) -> bool:
        """Store a ranking unless it is cancelled or older than the current one.

        Returns:
            True if the ranking was stored
        """
        if generation <= self.generation:
            return False
        try:
            items = ranked.unwrap()
        except RankingCancelled:
            return False
        self.generation = generation
        self.items = items
        return True


class SelectorSession:
    """One interactive selection over a snapshot of the store."""

    def __init__(
        self,
        bookmarks: Sequence[Bookmark],
        known_tags: AbstractSet[str],
        weights: Optional[ScoringWeights] = None,
        multi: bool = True,
        on_render: Optional[Callable[["SelectorSession"], None]] = None,
    ):
        self.bookmarks = list(bookmarks)
        self.known_tags = frozenset(known_tags)
        self.weights = weights
        self.multi = multi
        self.on_render = on_render

        self.state = SessionState.IDLE
        self.raw = ""
        self.error: Optional[str] = None
        self.latest = LatestResult()
        self.cursor = 0
        self._marked: Dict[int, None] = {}  # insertion ordered set

        self._generation = 0
        self._token: Optional[CancelToken] = None
        self._tasks: Set[asyncio.Task] = set()

    @classmethod
    async def from_store(cls, store, **kwargs) -> "SelectorSession":
        """Create a session over a consistent snapshot of the store."""
        bookmarks, known_tags = await store.snapshot()
        return cls(bookmarks, known_tags, **kwargs)

    # ------------------------------------------------------------------
    # Read side, used by the picker
    # ------------------------------------------------------------------

    @property
    def results(self) -> Tuple[ScoredCandidate, ...]:
        return self.latest.items

    @property
    def current(self) -> Optional[ScoredCandidate]:
        if 0 <= self.cursor < len(self.results):
            return self.results[self.cursor]
        return None

    @property
    def marked(self) -> Tuple[int, ...]:
        return tuple(self._marked)

    @property
    def is_finished(self) -> bool:
        return self.state in TERMINAL_STATES

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def update(self, raw: str) -> None:
        """Handle a changed input line.

        Must be called from within the running event loop.
        """
        self._ensure_open()
        self.raw = raw

        try:
            parsed = query.parse(raw, self.known_tags)
        except QueryError as e:
            # Keep the previous results on screen and show the error inline
            self.error = str(e)
            self._render()
            return

        self.error = None
        self.state = SessionState.TYPING
        selected = candidates.select(parsed, self.bookmarks)
        self._submit(selected, parsed.free_text)

    def _submit(self, selected: Sequence[Bookmark], free_text: str) -> None:
        if self._token is not None:
            self._token.cancel()

        self._generation += 1
        token = CancelToken()
        self._token = token
        self.state = SessionState.RANKING

        task = asyncio.get_running_loop().create_task(
            self._run(self._generation, token, selected, free_text)
        )
        task.add_done_callback(self._log_failure)
        task.add_done_callback(self._tasks.discard)
        self._tasks.add(task)

    async def _run(
        self,
        generation: int,
        token: CancelToken,
        selected: Sequence[Bookmark],
        free_text: str,
    ) -> None:
        ranked = await rank_async(selected, free_text, token, self.weights)

        if generation != self._generation or self.is_finished:
            logger.debug(f"Discarding stale ranking for generation {generation}")
            return
        if not self.latest.offer(generation, ranked):
            return

        self.cursor = 0
        self.state = SessionState.RENDERED
        self._render()

    @staticmethod
    def _log_failure(task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error("Ranking task failed", exc_info=task.exception())

    async def wait_idle(self) -> None:
        """Wait until no ranking pass is in flight."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Navigation and selection
    # ------------------------------------------------------------------

    def move_cursor(self, delta: int) -> None:
        if not self.results:
            self.cursor = 0
            return
        self.cursor = max(0, min(len(self.results) - 1, self.cursor + delta))
        self._render()

    def toggle_mark(self) -> None:
        """Mark or unmark the bookmark under the cursor (multi-select only)."""
        if not self.multi or self.current is None:
            return
        bookmark_id = self.current.id
        if bookmark_id in self._marked:
            del self._marked[bookmark_id]
        else:
            self._marked[bookmark_id] = None
        self._render()

    def commit(self, action: Action) -> Selection:
        """Finish the session with an action on the marked or current bookmark."""
        self._ensure_open()
        self._cancel_inflight()

        if self._marked:
            ids = self.marked
        elif self.current is not None:
            ids = (self.current.id,)
        else:
            ids = ()

        self.state = SessionState.COMMITTED
        logger.debug(f"Committed {action.value} on {ids}")
        return Selection(action=action, ids=ids)

    def abort(self) -> Selection:
        """Finish the session without a selection."""
        self._ensure_open()
        self._cancel_inflight()
        self.state = SessionState.CANCELLED
        return Selection.cancelled()

    def _cancel_inflight(self) -> None:
        if self._token is not None:
            self._token.cancel()

    def _ensure_open(self) -> None:
        if self.is_finished:
            raise RuntimeError(f"Session already {self.state.value}")

    def _render(self) -> None:
        if self.on_render is not None:
            self.on_render(self)
