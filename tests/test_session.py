"""Tests for session module."""
import pytest

from bkmr.ranking import RankedList
from bkmr.session import Action, LatestResult, Selection, SelectorSession, SessionState


def make_session(bookmarks, **kwargs):
    known = frozenset(t for b in bookmarks for t in b.tags)
    return SelectorSession(bookmarks, known, **kwargs)


def result_ids(session):
    return [r.id for r in session.results]


class TestLatestResult:
    def test_keeps_newest(self):
        latest = LatestResult()
        assert latest.offer(2, RankedList(items=(), processed=0, total=0))
        assert not latest.offer(1, RankedList(items=(), processed=0, total=0))
        assert latest.generation == 2

    def test_rejects_cancelled(self):
        latest = LatestResult()
        assert not latest.offer(1, RankedList(items=(), processed=0, total=3, cancelled=True))
        assert latest.generation == -1


@pytest.mark.asyncio
class TestSelectorSession:
    async def test_initial_state(self, sample_bookmarks):
        session = make_session(sample_bookmarks)
        assert session.state is SessionState.IDLE
        assert session.results == ()
        assert session.current is None

    async def test_update_ranks_and_renders(self, sample_bookmarks):
        rendered = []
        session = make_session(sample_bookmarks, on_render=lambda s: rendered.append(s.state))

        session.update("")
        assert session.state is SessionState.RANKING
        await session.wait_idle()

        assert session.state is SessionState.RENDERED
        assert result_ids(session) == [2, 5, 1, 3, 4, 6]
        assert rendered == [SessionState.RENDERED]

    async def test_tag_filter(self, sample_bookmarks):
        session = make_session(sample_bookmarks)
        session.update("docs")
        await session.wait_idle()
        assert result_ids(session) == [1, 3]
        assert session.current.id == 1

    async def test_newer_input_supersedes_older(self, sample_bookmarks):
        session = make_session(sample_bookmarks)
        session.update("python")
        session.update("sqlite")
        await session.wait_idle()
        assert result_ids(session) == [4]
        assert session.latest.generation == 2
        assert session.raw == "sqlite"

    async def test_query_error_keeps_previous_results(self, sample_bookmarks):
        session = make_session(sample_bookmarks)
        session.update("docs")
        await session.wait_idle()

        session.update("docs -docs")
        await session.wait_idle()

        assert session.error == "Tag 'docs' is both included and excluded"
        assert session.state is SessionState.RENDERED
        assert result_ids(session) == [1, 3]

        session.update("work")
        await session.wait_idle()
        assert session.error is None
        assert result_ids(session) == [2, 3]

    async def test_query_error_before_any_results(self, sample_bookmarks):
        session = make_session(sample_bookmarks)
        session.update("a -a")
        assert session.state is SessionState.IDLE
        assert session.error is not None

    async def test_cursor_moves_and_clamps(self, sample_bookmarks):
        session = make_session(sample_bookmarks)
        session.update("")
        await session.wait_idle()

        session.move_cursor(2)
        assert session.current.id == 1
        session.move_cursor(-10)
        assert session.cursor == 0
        session.move_cursor(100)
        assert session.current.id == 6

    async def test_cursor_resets_on_new_results(self, sample_bookmarks):
        session = make_session(sample_bookmarks)
        session.update("")
        await session.wait_idle()
        session.move_cursor(3)

        session.update("docs")
        await session.wait_idle()
        assert session.cursor == 0

    async def test_commit_current(self, sample_bookmarks):
        session = make_session(sample_bookmarks)
        session.update("docs")
        await session.wait_idle()
        session.move_cursor(1)

        selection = session.commit(Action.EDIT)

        assert selection == Selection(action=Action.EDIT, ids=(3,))
        assert session.state is SessionState.COMMITTED
        assert session.is_finished

    async def test_multi_select(self, sample_bookmarks):
        session = make_session(sample_bookmarks)
        session.update("")
        await session.wait_idle()

        session.toggle_mark()
        session.move_cursor(2)
        session.toggle_mark()
        assert session.marked == (2, 1)

        selection = session.commit(Action.DELETE)
        assert selection.ids == (2, 1)

    async def test_marks_survive_new_input(self, sample_bookmarks):
        session = make_session(sample_bookmarks)
        session.update("")
        await session.wait_idle()
        session.toggle_mark()

        session.update("docs")
        await session.wait_idle()
        assert session.marked == (2,)

    async def test_unmark(self, sample_bookmarks):
        session = make_session(sample_bookmarks)
        session.update("")
        await session.wait_idle()
        session.toggle_mark()
        session.toggle_mark()
        assert session.marked == ()

    async def test_single_select_ignores_marks(self, sample_bookmarks):
        session = make_session(sample_bookmarks, multi=False)
        session.update("")
        await session.wait_idle()
        session.toggle_mark()
        assert session.marked == ()
        assert session.commit(Action.OPEN).ids == (2,)

    async def test_abort_differs_from_empty_commit(self, sample_bookmarks):
        empty = make_session(sample_bookmarks)
        empty.update("xyzzyq")
        await empty.wait_idle()
        committed = empty.commit(Action.OPEN)

        aborted = make_session(sample_bookmarks).abort()

        assert committed.ids == () and not committed.aborted
        assert aborted.ids == () and aborted.aborted
        assert committed != aborted

    async def test_abort_sets_cancelled(self, sample_bookmarks):
        session = make_session(sample_bookmarks)
        session.abort()
        assert session.state is SessionState.CANCELLED

    async def test_finished_session_rejects_input(self, sample_bookmarks):
        session = make_session(sample_bookmarks)
        session.abort()
        with pytest.raises(RuntimeError, match="cancelled"):
            session.update("docs")
        with pytest.raises(RuntimeError):
            session.commit(Action.OPEN)

    async def test_commit_while_ranking_discards_late_result(self, sample_bookmarks):
        session = make_session(sample_bookmarks)
        session.update("docs")
        selection = session.commit(Action.OPEN)
        await session.wait_idle()

        assert selection.ids == ()
        assert session.state is SessionState.COMMITTED
        assert session.results == ()

    async def test_from_store(self, store):
        await store.insert("https://rust-lang.org", tags="rust,lang")
        await store.insert("https://go.dev", tags="go,lang")

        session = await SelectorSession.from_store(store)
        session.update("-go lang")
        await session.wait_idle()

        assert [r.bookmark.url for r in session.results] == ["https://rust-lang.org"]
