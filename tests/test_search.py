"""Tests for ranking and context formatting."""

import pytest

from conftest import StubEmbeddings, add_page
from sitekb.errors import ModelMismatchError, SearchPreconditionError
from sitekb.indexer import Indexer
from sitekb.schemas import Chunk, SearchResult
from sitekb.search import RESULT_SEPARATOR, SearchEngine, format_as_context
from sitekb.utils import TRUNCATION_MARKER

PAGES = {
    "https://example.com/python": "python python crawler",
    "https://example.com/rust": "rust index",
    "https://example.com/search": "python search",
}


def indexed_kb(store, pages, embeddings=None):
    kb = store.create("Docs", 1)
    source = store.add_source(kb.id, "https://example.com")
    for url, text in pages.items():
        add_page(store, kb.id, source.id, url, text, title=url.rsplit("/", 1)[-1])
    assert Indexer(store, embeddings=embeddings).build(kb.id).success
    return kb


def make_result(chunk_id, text, score=0.5):
    chunk = Chunk(
        id=chunk_id,
        page_hash=f"h{chunk_id}",
        page_url=f"https://example.com/{chunk_id}",
        page_title=f"Page {chunk_id}",
        text=text,
        start_idx=0,
        end_idx=len(text),
    )
    return SearchResult(chunk=chunk, score=score)


def test_search_unindexed(store):
    """Test searching before indexing is a precondition failure."""
    kb = store.create("Docs", 1)
    engine = SearchEngine(store)
    assert not engine.is_indexed(kb.id)
    with pytest.raises(SearchPreconditionError):
        engine.search(kb.id, "python")


def test_semantic_ranking(store):
    """Test results are ordered by cosine similarity to the query."""
    embeddings = StubEmbeddings()
    kb = indexed_kb(store, PAGES, embeddings)
    results = SearchEngine(store, embeddings).search(kb.id, "python", top_k=5)

    assert [result.chunk.page_url for result in results] == [
        "https://example.com/python",
        "https://example.com/search",
        "https://example.com/rust",
    ]
    scores = [result.score for result in results]
    assert scores == sorted(scores, reverse=True)
    assert scores[0] == pytest.approx(2 / 5 ** 0.5, abs=1e-3)


def test_search_top_k(store):
    """Test at most top_k results are returned."""
    embeddings = StubEmbeddings()
    kb = indexed_kb(store, PAGES, embeddings)
    engine = SearchEngine(store, embeddings)
    assert len(engine.search(kb.id, "python", top_k=2)) == 2
    assert engine.search(kb.id, "python", top_k=0) == []


def test_ties_break_by_chunk_id(store):
    """Test equal scores are ordered by ascending chunk id."""
    embeddings = StubEmbeddings()
    pages = {f"https://example.com/{name}": "rust index" for name in ("a", "b", "c")}
    kb = indexed_kb(store, pages, embeddings)
    results = SearchEngine(store, embeddings).search(kb.id, "rust", top_k=3)

    assert len({round(result.score, 6) for result in results}) == 1
    assert [result.chunk.id for result in results] == [0, 1, 2]


def test_model_mismatch(store):
    """Test a semantic index refuses queries embedded with another model."""
    kb = indexed_kb(store, PAGES, StubEmbeddings())
    with pytest.raises(ModelMismatchError):
        SearchEngine(store, StubEmbeddings(model="other-model")).search(kb.id, "python")
    with pytest.raises(ModelMismatchError):
        SearchEngine(store).search(kb.id, "python")


def test_keyword_ranking(store):
    """Test keyword indexes rank pages sharing the query terms first."""
    kb = indexed_kb(store, PAGES)
    engine = SearchEngine(store)
    results = engine.search(kb.id, "rust", top_k=3)

    assert results[0].chunk.page_url == "https://example.com/rust"
    assert results[0].score > 0
    assert all(result.score == 0 for result in results[1:])

    results = engine.search(kb.id, "nothing matches", top_k=3)
    assert [result.chunk.id for result in results] == [0, 1, 2]
    assert all(result.score == 0 for result in results)


def test_format_as_context_empty():
    """Test no results format to an empty string."""
    assert format_as_context([]) == ""


def test_format_as_context_blocks():
    """Test each result becomes a titled block with its source URL."""
    text = format_as_context([make_result(1, "first"), make_result(2, "second")])
    assert text == (
        "## Page 1\nSource: https://example.com/1\n\nfirst"
        + RESULT_SEPARATOR
        + "## Page 2\nSource: https://example.com/2\n\nsecond"
    )


def test_format_as_context_truncates():
    """Test oversized context is capped with a single marker."""
    results = [make_result(position, "x" * 500) for position in range(5)]
    text = format_as_context(results, limit=1000)
    assert len(text) <= 1000
    assert text.endswith(TRUNCATION_MARKER)
    assert text.count(TRUNCATION_MARKER) == 1
