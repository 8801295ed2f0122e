"""Tests for search module."""
import pytest

from bkmr.models import ConflictingTag
from bkmr.search import FuzzySearchEngine, search, search_bookmarks


@pytest.fixture
def engine():
    return FuzzySearchEngine()


def known_tags(bookmarks):
    return frozenset(t for b in bookmarks for t in b.tags)


def ids(results):
    return [r.id for r in results]


class TestTagScenarios:
    def test_shared_tag_returns_both(self, engine, lang_bookmarks):
        assert ids(engine.search("lang", lang_bookmarks, known_tags(lang_bookmarks))) == [1, 2]

    def test_single_tag(self, engine, lang_bookmarks):
        assert ids(engine.search("rust", lang_bookmarks, known_tags(lang_bookmarks))) == [1]

    def test_excluded_tag(self, engine, lang_bookmarks):
        assert ids(engine.search("-go lang", lang_bookmarks, known_tags(lang_bookmarks))) == [1]

    def test_conflicting_tag(self, engine, lang_bookmarks):
        with pytest.raises(ConflictingTag):
            engine.search("rust -rust", lang_bookmarks, known_tags(lang_bookmarks))


class TestFuzzySearchEngine:
    def test_empty_query_returns_everything(self, engine, sample_bookmarks):
        results = engine.search("", sample_bookmarks, known_tags(sample_bookmarks))
        assert ids(results) == [2, 5, 1, 3, 4, 6]

    def test_tag_filter_then_free_text(self, engine, sample_bookmarks):
        assert ids(engine.search("work jira", sample_bookmarks, known_tags(sample_bookmarks))) == [2]

    def test_tag_only(self, engine, sample_bookmarks):
        assert ids(engine.search("docs", sample_bookmarks, known_tags(sample_bookmarks))) == [1, 3]

    def test_exclude_only(self, engine, sample_bookmarks):
        assert ids(engine.search("-work", sample_bookmarks, known_tags(sample_bookmarks))) == [5, 1, 4, 6]

    def test_no_match(self, engine, sample_bookmarks):
        assert engine.search("xyzzyq", sample_bookmarks, known_tags(sample_bookmarks)) == []

    def test_respects_limit(self, engine, sample_bookmarks):
        results = engine.search("", sample_bookmarks, known_tags(sample_bookmarks), limit=2)
        assert ids(results) == [2, 5]

    def test_unknown_tag_word_is_fuzzy_text(self, engine, sample_bookmarks):
        # "sqlite" is not a tag but matches title and URL of bookmark 4
        assert ids(engine.search("sqlite", sample_bookmarks, known_tags(sample_bookmarks))) == [4]

    def test_access_count_breaks_score_ties(self, engine, bookmark_factory):
        bookmarks = [
            bookmark_factory(1, "https://a.example.com"),
            bookmark_factory(2, "https://b.example.com", access_count=3),
        ]
        results = engine.search("example", bookmarks, frozenset())
        assert results[0].score == results[1].score
        assert ids(results) == [2, 1]

    def test_search_bookmarks_helper(self, lang_bookmarks):
        assert ids(search_bookmarks("lang", lang_bookmarks, known_tags(lang_bookmarks))) == [1, 2]


@pytest.mark.asyncio
class TestStoreSearch:
    async def test_url_only_bookmark_is_searchable(self, store):
        await store.insert("https://rust-lang.org")
        results = await search(store, "rust")
        assert [r.bookmark.url for r in results] == ["https://rust-lang.org"]

    async def test_uses_store_tags(self, store):
        await store.insert("https://rust-lang.org", tags="rust,lang")
        await store.insert("https://go.dev", tags="go,lang")
        results = await search(store, "-go lang")
        assert [r.bookmark.url for r in results] == ["https://rust-lang.org"]

    async def test_empty_store(self, store):
        assert await search(store, "anything") == []
