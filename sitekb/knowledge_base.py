"""Public knowledge base operations."""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional, Sequence

from .chunker import Chunker
from .config import Settings
from .crawler import Crawler
from .embeddings import EmbeddingProvider
from .errors import CrawlError, KnowledgeBaseError, NotFoundError
from .indexer import Indexer
from .loader import read_index_manifest
from .schemas import (
    CrawlOptions,
    CrawlOutcome,
    CrawlProgress,
    IndexOutcome,
    IndexProgress,
    IndexStats,
    KnowledgeBase,
    KnowledgeBaseSource,
    SearchResponse,
    SearchResult,
    SourceResult,
)
from .search import SearchEngine, format_as_context
from .store import Store
from .utils import join_capped, utc_now

LOGGER = logging.getLogger(__name__)

PAGE_SEPARATOR = "\n---\n"


class KnowledgeBaseService:
    """
    Operations consumed by the surrounding application.

    Mutating and long-running operations return result objects with a
    human-readable error instead of raising. Reading a knowledge base whose
    manifest is corrupt raises CorruptDataError.
    """

    def __init__(
        self,
        store: Store,
        settings: Optional[Settings] = None,
        embeddings: Optional[EmbeddingProvider] = None,
        crawler: Optional[Crawler] = None,
    ) -> None:
        self.store = store
        self.settings = settings or Settings(home=store.root)
        self.embeddings = embeddings
        self.crawler = crawler or Crawler(
            user_agent=self.settings.user_agent,
            request_timeout=self.settings.request_timeout,
            concurrency=self.settings.crawl_concurrency,
            delay=self.settings.crawl_delay,
        )
        self.indexer = Indexer(
            store,
            embeddings=embeddings,
            chunker=Chunker(self.settings.chunk_size, self.settings.chunk_overlap),
            batch_size=self.settings.batch_size,
        )
        self.search_engine = SearchEngine(store, embeddings=embeddings)

    @classmethod
    def from_settings(cls, settings: Settings, embeddings: Optional[EmbeddingProvider] = None) -> "KnowledgeBaseService":
        return cls(Store(settings.home), settings=settings, embeddings=embeddings)

    # -- knowledge bases -----------------------------------------------------

    def list_knowledge_bases(self) -> List[KnowledgeBase]:
        return self.store.list()

    def get_knowledge_base(self, kb_id: str) -> Optional[KnowledgeBase]:
        return self.store.get(kb_id)

    def create_knowledge_base(self, name: str, depth: int) -> KnowledgeBase:
        return self.store.create(name, depth)

    def delete_knowledge_base(self, kb_id: str) -> bool:
        return self.store.delete(kb_id)

    # -- sources -------------------------------------------------------------

    def add_source(self, kb_id: str, url: str) -> SourceResult:
        try:
            source = self.store.add_source(kb_id, url.strip())
        except KnowledgeBaseError as exc:
            return SourceResult(success=False, error=str(exc))
        return SourceResult(success=True, source=source)

    def remove_source(self, kb_id: str, source_id: str) -> bool:
        try:
            return self.store.remove_source(kb_id, source_id)
        except KnowledgeBaseError as exc:
            LOGGER.warning("Could not remove source %s from %s: %s", source_id, kb_id, exc)
            return False

    def crawl_source(
        self,
        kb_id: str,
        source_id: str,
        on_progress: Optional[Callable[[CrawlProgress], None]] = None,
        cancel: Optional[threading.Event] = None,
    ) -> CrawlOutcome:
        """Crawl one source and store its pages; per-page failures are reported on the source."""
        try:
            kb = self.store.require(kb_id)
        except KnowledgeBaseError as exc:
            return CrawlOutcome(success=False, error=str(exc))

        source = kb.find_source(source_id)
        if source is None:
            return CrawlOutcome(success=False, error="Source not found")

        source.status = "crawling"
        self.store.save(kb)

        options = CrawlOptions(
            max_depth=kb.crawl_depth,
            max_pages=self.settings.max_pages,
            timeout=self.settings.crawl_timeout,
        )
        try:
            result = self.crawler.crawl(source.url, options, on_progress=on_progress, cancel=cancel)
            saved = [self.store.save_page(kb_id, source_id, page) for page in result.pages]
            self.store.delete_source_pages(kb_id, source_id, keep=saved)
        except (CrawlError, OSError) as exc:
            source.status = "error"
            source.error = str(exc)
            self._save_source(kb_id, source)
            return CrawlOutcome(success=False, error=str(exc))
        except Exception as exc:
            LOGGER.exception("Crawl of source %s in %s failed", source_id, kb_id)
            source.status = "error"
            source.error = f"Crawl failed: {exc}"
            self._save_source(kb_id, source)
            return CrawlOutcome(success=False, error=source.error)

        source.status = "complete"
        source.last_crawled_at = utc_now()
        source.page_count = len(result.pages)
        source.error = f"{len(result.errors)} page(s) failed to crawl" if result.errors else None
        self._save_source(kb_id, source)
        return CrawlOutcome(success=True, page_count=len(result.pages))

    def _save_source(self, kb_id: str, source: KnowledgeBaseSource) -> None:
        try:
            self.store.update_source(kb_id, source)
        except NotFoundError:
            LOGGER.warning("Source %s of %s was removed while crawling", source.id, kb_id)

    # -- content -------------------------------------------------------------

    def load_knowledge_base_content(self, kb_id: str) -> str:
        """All pages concatenated, capped at settings.max_content_size."""
        try:
            if self.store.get(kb_id) is None:
                return ""
        except KnowledgeBaseError as exc:
            LOGGER.warning("Cannot load content of %s: %s", kb_id, exc)
            return ""

        parts = [
            f"## {page.title or page.url}\nSource: {page.url}\n\n{page.text}\n"
            for _, page in self.store.iter_pages(kb_id)
        ]
        return join_capped(parts, PAGE_SEPARATOR, self.settings.max_content_size)

    # -- index ---------------------------------------------------------------

    def index_knowledge_base(
        self,
        kb_id: str,
        on_progress: Optional[Callable[[IndexProgress], None]] = None,
        cancel: Optional[threading.Event] = None,
    ) -> IndexOutcome:
        return self.indexer.build(kb_id, on_progress=on_progress, cancel=cancel)

    def search_knowledge_base(self, kb_id: str, query: str, top_k: int = 5) -> SearchResponse:
        try:
            if self.store.get(kb_id) is None:
                return SearchResponse(success=False, error=f"Knowledge base not found: {kb_id}")
            results = self.search_engine.search(kb_id, query, top_k)
        except (KnowledgeBaseError, FileNotFoundError) as exc:
            return SearchResponse(success=False, error=str(exc))
        return SearchResponse(success=True, results=results)

    def is_knowledge_base_indexed(self, kb_id: str) -> bool:
        try:
            return self.search_engine.is_indexed(kb_id)
        except NotFoundError:
            return False

    def get_knowledge_base_index_stats(self, kb_id: str) -> Optional[IndexStats]:
        """Index statistics, or None when the knowledge base does not exist."""
        if self.store.get(kb_id) is None:
            return None
        index_dir = self.store.current_index_dir(kb_id)
        if index_dir is None:
            return IndexStats(indexed=False)
        try:
            manifest = read_index_manifest(index_dir)
        except (KnowledgeBaseError, FileNotFoundError) as exc:
            LOGGER.warning("Unreadable index for %s: %s", kb_id, exc)
            return IndexStats(indexed=False)
        return IndexStats(
            indexed=True,
            chunk_count=manifest.chunk_count,
            indexed_at=manifest.indexed_at,
            mode=manifest.mode,
            model=manifest.model,
        )

    def clear_knowledge_base_index(self, kb_id: str) -> None:
        if self.store.get(kb_id) is not None:
            self.store.clear_index(kb_id)

    def format_search_results_as_context(self, results: Sequence[SearchResult]) -> str:
        return format_as_context(results, self.settings.max_content_size)
