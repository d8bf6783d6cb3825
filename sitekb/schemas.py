"""Data schemas for the knowledge base."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

MIN_CRAWL_DEPTH = 1
MAX_CRAWL_DEPTH = 3

SourceStatus = Literal["pending", "crawling", "complete", "error"]
IndexMode = Literal["semantic", "keyword"]
IndexPhase = Literal["chunking", "embedding", "saving"]


def clamp_depth(depth: int) -> int:
    """Clamp a crawl depth into the supported range."""
    return min(max(int(depth), MIN_CRAWL_DEPTH), MAX_CRAWL_DEPTH)


class _Record(BaseModel):
    """Base for records persisted as camelCase JSON."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class KnowledgeBaseSource(_Record):
    """One seed URL registered in a knowledge base."""
    id: str
    url: str
    added_at: str
    last_crawled_at: Optional[str] = None
    page_count: int = 0
    status: SourceStatus = "pending"
    error: Optional[str] = None


class KnowledgeBase(_Record):
    """Knowledge base manifest."""
    id: str
    name: str
    created_at: str
    sources: List[KnowledgeBaseSource] = Field(default_factory=list)
    crawl_depth: int = MIN_CRAWL_DEPTH
    total_pages: int = 0

    @field_validator("crawl_depth")
    @classmethod
    def _clamp_crawl_depth(cls, value: int) -> int:
        return clamp_depth(value)

    def recompute_total_pages(self) -> None:
        self.total_pages = sum(source.page_count for source in self.sources)

    def find_source(self, source_id: str) -> Optional[KnowledgeBaseSource]:
        for source in self.sources:
            if source.id == source_id:
                return source
        return None


class PageContent(_Record):
    """One harvested page."""
    url: str
    title: str = ""
    text: str = ""
    links: List[str] = Field(default_factory=list)


class StoredPage(PageContent):
    """A page as persisted under pages/, attributed to the source that harvested it."""
    source_id: str
    saved_at: str


class Chunk(_Record):
    """A span of page text, the unit of retrieval."""
    id: int
    page_hash: str
    page_url: str
    page_title: str
    text: str
    start_idx: int
    end_idx: int


class ChunkRecord(Chunk):
    """Chunk plus its row in the vector index."""
    vector_id: int


class IndexManifest(_Record):
    """Header of one index version; pins the embedding model."""
    index_version: str
    model: str
    dimensions: int
    mode: IndexMode
    chunk_count: int
    page_count: int
    indexed_at: str


class SearchResult(_Record):
    chunk: Chunk
    score: float


class CrawlOptions(BaseModel):
    """Crawl bounds. timeout is the overall budget in seconds."""
    max_depth: int = Field(default=2, ge=0)
    max_pages: int = Field(default=50, ge=1)
    timeout: float = Field(default=60.0, gt=0)


class CrawlProgress(BaseModel):
    crawled: int
    total: int
    current_url: str


class CrawlPageError(BaseModel):
    url: str
    error: str


class CrawlResult(BaseModel):
    pages: List[PageContent] = Field(default_factory=list)
    errors: List[CrawlPageError] = Field(default_factory=list)


class IndexProgress(BaseModel):
    phase: IndexPhase
    current: int
    total: int


class IndexStats(BaseModel):
    indexed: bool
    chunk_count: int = 0
    indexed_at: Optional[str] = None
    mode: Optional[IndexMode] = None
    model: Optional[str] = None


class SourceResult(BaseModel):
    success: bool
    source: Optional[KnowledgeBaseSource] = None
    error: Optional[str] = None


class CrawlOutcome(BaseModel):
    success: bool
    page_count: int = 0
    error: Optional[str] = None


class IndexOutcome(BaseModel):
    success: bool
    chunk_count: int = 0
    mode: Optional[IndexMode] = None
    error: Optional[str] = None


class SearchResponse(BaseModel):
    success: bool
    results: List[SearchResult] = Field(default_factory=list)
    error: Optional[str] = None
