"""Rank indexed chunks against a query."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import faiss
import numpy as np

from .config import MAX_CONTENT_SIZE
from .embeddings import EmbeddingProvider
from .errors import EmbeddingError, ModelMismatchError, SearchPreconditionError
from .loader import LoadedIndex, load_index
from .schemas import Chunk, SearchResult
from .store import Store
from .utils import join_capped

LOGGER = logging.getLogger(__name__)

RESULT_SEPARATOR = "\n\n---\n\n"


class SearchEngine:
    """Exhaustive cosine-similarity search over one knowledge base index."""

    def __init__(self, store: Store, embeddings: Optional[EmbeddingProvider] = None) -> None:
        self.store = store
        self.embeddings = embeddings

    def is_indexed(self, kb_id: str) -> bool:
        return self.store.current_index_dir(kb_id) is not None

    def load(self, kb_id: str) -> LoadedIndex:
        index_dir = self.store.current_index_dir(kb_id)
        if index_dir is None:
            raise SearchPreconditionError(f"Knowledge base {kb_id} is not indexed")
        return load_index(index_dir)

    def search(self, kb_id: str, query: str, top_k: int = 5) -> List[SearchResult]:
        """
        Return up to top_k chunks ordered by descending score.

        Ties break by ascending chunk id.

        Raises:
            SearchPreconditionError: the knowledge base has no index
            ModelMismatchError: the query cannot be embedded with the index's model
        """
        loaded = self.load(kb_id)
        if top_k <= 0 or not loaded.chunks:
            return []

        scores = self._score(loaded, query)
        results = [
            SearchResult(chunk=Chunk(**record.model_dump(exclude={"vector_id"})), score=float(scores[vector_id]))
            for vector_id, record in loaded.chunks.items()
        ]
        results.sort(key=lambda result: (-result.score, result.chunk.id))
        LOGGER.debug("Searched %s (%s): %d chunk(s) scored", kb_id, loaded.manifest.mode, len(results))
        return results[:top_k]

    def _score(self, loaded: LoadedIndex, query: str) -> np.ndarray:
        """Cosine similarity of the query against every vector, indexed by vector id."""
        manifest = loaded.manifest
        query_vector = self._embed_query(loaded, query)
        if query_vector.shape[1] != manifest.dimensions:
            raise ModelMismatchError(
                f"Query vector has {query_vector.shape[1]} dimensions, index has {manifest.dimensions}"
            )

        scores = np.zeros(manifest.chunk_count, dtype="float32")
        if loaded.index is None:
            return scores

        faiss.normalize_L2(query_vector)
        distances, ids = loaded.index.search(query_vector, loaded.index.ntotal)
        for vector_id, score in zip(ids[0], distances[0]):
            if vector_id >= 0:
                scores[vector_id] = score
        return scores

    def _embed_query(self, loaded: LoadedIndex, query: str) -> np.ndarray:
        manifest = loaded.manifest
        if manifest.mode == "keyword":
            vector = loaded.vectorizer.transform([query])
            return np.ascontiguousarray(vector, dtype="float32")

        if self.embeddings is None:
            raise ModelMismatchError(
                f"Index was built with embedding model {manifest.model} but no embedding provider is configured"
            )
        if self.embeddings.model != manifest.model:
            raise ModelMismatchError(
                f"Index was built with embedding model {manifest.model}, "
                f"query would use {self.embeddings.model}; rebuild the index"
            )
        try:
            vector = self.embeddings.embed_query(query)
        except Exception as exc:
            raise EmbeddingError(f"Failed to embed query: {exc}") from exc
        return np.array([vector], dtype="float32")


def format_as_context(results: Sequence[SearchResult], limit: int = MAX_CONTENT_SIZE) -> str:
    """Citation-tagged text blocks for prompt injection, capped at limit characters."""
    if not results:
        return ""
    blocks = [
        f"## {result.chunk.page_title}\nSource: {result.chunk.page_url}\n\n{result.chunk.text}"
        for result in results
    ]
    return join_capped(blocks, RESULT_SEPARATOR, limit)
