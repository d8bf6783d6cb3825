"""Tests for knowledge base schemas."""

import pytest

from sitekb.schemas import (
    Chunk,
    ChunkRecord,
    CrawlOptions,
    IndexManifest,
    KnowledgeBase,
    KnowledgeBaseSource,
    StoredPage,
    clamp_depth,
)


@pytest.mark.parametrize("depth, expected", [(-5, 1), (0, 1), (1, 1), (2, 2), (3, 3), (4, 3), (100, 3)])
def test_clamp_depth(depth, expected):
    """Test crawl depth is clamped into [1, 3]."""
    assert clamp_depth(depth) == expected


def test_knowledge_base_camel_case_json():
    """Test KnowledgeBase serializes with camelCase keys and reads them back."""
    kb = KnowledgeBase(
        id="abc123",
        name="Docs",
        created_at="2024-01-01T12:00:00Z",
        crawl_depth=7,
        sources=[
            KnowledgeBaseSource(id="s1", url="https://example.com", added_at="2024-01-01T12:00:00Z", page_count=4),
        ],
    )
    data = kb.to_json_dict()

    assert data["createdAt"] == "2024-01-01T12:00:00Z"
    assert data["crawlDepth"] == 3
    assert data["sources"][0]["pageCount"] == 4
    assert "lastCrawledAt" not in data["sources"][0]

    restored = KnowledgeBase.model_validate(data)
    assert restored == kb


def test_recompute_total_pages():
    """Test totalPages is the sum of source page counts."""
    kb = KnowledgeBase(id="k", name="n", created_at="2024-01-01T00:00:00Z")
    kb.sources = [
        KnowledgeBaseSource(id="a", url="https://a.com", added_at="x", page_count=3),
        KnowledgeBaseSource(id="b", url="https://b.com", added_at="x", page_count=5),
    ]
    kb.recompute_total_pages()
    assert kb.total_pages == 8
    assert kb.find_source("b").url == "https://b.com"
    assert kb.find_source("missing") is None


def test_source_defaults():
    """Test a new source starts pending with no pages."""
    source = KnowledgeBaseSource(id="s", url="https://example.com", added_at="2024-01-01T00:00:00Z")
    assert source.status == "pending"
    assert source.page_count == 0
    assert source.error is None


def test_stored_page_aliases():
    """Test StoredPage carries sourceId and savedAt on disk."""
    page = StoredPage(url="https://e.com/a", title="A", text="hello", source_id="s1", saved_at="t")
    data = page.to_json_dict()
    assert data["sourceId"] == "s1"
    assert data["savedAt"] == "t"
    assert data["links"] == []


def test_chunk_record_creation():
    """Test creating ChunkRecord."""
    record = ChunkRecord(
        id=0,
        vector_id=0,
        page_hash="def456",
        page_url="https://example.com/docs",
        page_title="Docs",
        text="Sample text",
        start_idx=10,
        end_idx=21,
    )
    assert record.to_json_dict()["vectorId"] == 0
    assert Chunk(**record.model_dump(exclude={"vector_id"})).end_idx == 21


def test_index_manifest_rejects_unknown_mode():
    """Test IndexManifest only accepts semantic or keyword mode."""
    with pytest.raises(ValueError):
        IndexManifest(
            index_version="v1",
            model="m",
            dimensions=3,
            mode="fuzzy",
            chunk_count=0,
            page_count=0,
            indexed_at="t",
        )


def test_crawl_options_defaults():
    """Test CrawlOptions defaults and validation."""
    options = CrawlOptions()
    assert options.max_depth == 2
    assert options.max_pages == 50
    with pytest.raises(ValueError):
        CrawlOptions(max_pages=0)
