"""Exceptions raised by knowledge base components."""

from __future__ import annotations


class KnowledgeBaseError(Exception):
    """Base class for all knowledge base errors."""


class NotFoundError(KnowledgeBaseError):
    """Requested knowledge base or source does not exist."""


class InvalidSourceError(KnowledgeBaseError):
    """Source URL is malformed or not http(s)."""


class DuplicateSourceError(KnowledgeBaseError):
    """Source URL is already registered in the knowledge base."""


class CorruptDataError(KnowledgeBaseError):
    """A manifest, page or index file exists but cannot be parsed."""


class PermissionDeniedError(KnowledgeBaseError):
    """A knowledge base file exists but cannot be read."""


class FetchError(KnowledgeBaseError):
    """A single page could not be fetched or parsed."""


class CrawlError(KnowledgeBaseError):
    """Raised when a crawl cannot produce any result."""


class IndexBuildError(KnowledgeBaseError):
    """Raised when chunking, embedding or saving an index fails."""


class SearchPreconditionError(KnowledgeBaseError):
    """Search was attempted against a knowledge base that is not indexed."""


class ModelMismatchError(SearchPreconditionError):
    """Query embedding model does not match the one the index was built with."""


class EmbeddingError(KnowledgeBaseError):
    """The embedding provider failed to embed a query."""
