"""sitekb - local-first website knowledge base for RAG applications."""

from .chunker import Chunker
from .config import Settings
from .crawler import Crawler
from .embeddings import EmbeddingProvider, LangChainEmbeddingProvider, build_embedding_provider
from .indexer import Indexer
from .knowledge_base import KnowledgeBaseService
from .schemas import (
    Chunk,
    CrawlOptions,
    KnowledgeBase,
    KnowledgeBaseSource,
    PageContent,
    SearchResult,
)
from .search import SearchEngine, format_as_context
from .store import Store

__version__ = "0.1.0"

__all__ = [
    "Chunk",
    "Chunker",
    "CrawlOptions",
    "Crawler",
    "EmbeddingProvider",
    "Indexer",
    "KnowledgeBase",
    "KnowledgeBaseService",
    "KnowledgeBaseSource",
    "LangChainEmbeddingProvider",
    "PageContent",
    "SearchEngine",
    "SearchResult",
    "Settings",
    "Store",
    "build_embedding_provider",
    "format_as_context",
]
