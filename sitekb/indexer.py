"""Build a knowledge base's chunk index from its crawled pages."""

from __future__ import annotations

import logging
import os
import threading
import time
from typing import Callable, List, Optional

import numpy as np

from .chunker import Chunker
from .embeddings import EmbeddingProvider, TfidfVectorizer
from .errors import IndexBuildError, KnowledgeBaseError
from .loader import write_index
from .schemas import Chunk, ChunkRecord, IndexManifest, IndexOutcome, IndexProgress
from .store import Store
from .utils import iter_batches, utc_now

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[IndexProgress], None]


def _embed_documents_with_retry(
    provider: EmbeddingProvider,
    texts: List[str],
    max_retries: int = 3,
    delay: float = 0.5,
) -> List[List[float]]:
    """Embed documents with exponential backoff retry."""
    last_exc: Optional[BaseException] = None

    for attempt in range(max_retries + 1):
        try:
            return provider.embed_documents(texts)
        except Exception as exc:
            last_exc = exc
            if attempt >= max_retries:
                break
            LOGGER.warning("Embedding batch failed (attempt %d): %s", attempt + 1, exc)
            time.sleep(delay)
            delay *= 2

    raise IndexBuildError(f"Embedding failed after retries: {last_exc}") from last_exc


class Indexer:
    """
    Full rebuild of a knowledge base index.

    Semantic mode embeds chunks with the configured provider; without a
    provider the index is built in keyword mode from TF-IDF vectors.
    """

    def __init__(
        self,
        store: Store,
        embeddings: Optional[EmbeddingProvider] = None,
        chunker: Optional[Chunker] = None,
        batch_size: int = 32,
        max_retries: int = 3,
        retry_delay: float = 0.5,
    ) -> None:
        self.store = store
        self.embeddings = embeddings
        self.chunker = chunker or Chunker()
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    @property
    def mode(self) -> str:
        return "semantic" if self.embeddings is not None else "keyword"

    def build(
        self,
        kb_id: str,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[threading.Event] = None,
    ) -> IndexOutcome:
        """
        Chunk, embed and save every page of the knowledge base.

        The new index is written to a fresh version directory and only
        activated once complete; on failure the previous index stays active.
        """
        def report(phase: str, current: int, total: int) -> None:
            if on_progress is not None:
                on_progress(IndexProgress(phase=phase, current=current, total=total))

        def check_cancelled() -> None:
            if cancel is not None and cancel.is_set():
                raise IndexBuildError("Indexing cancelled")

        start_time = time.perf_counter()
        try:
            self.store.require(kb_id)
            pages = list(self.store.iter_pages(kb_id))

            report("chunking", 0, len(pages))
            chunks: List[Chunk] = []
            for position, (page_hash, page) in enumerate(pages, start=1):
                check_cancelled()
                chunks.extend(self.chunker.chunk_page(page_hash, page, start_id=len(chunks)))
                report("chunking", position, len(pages))

            report("embedding", 0, len(chunks))
            texts = [chunk.text for chunk in chunks]
            vectorizer: Optional[TfidfVectorizer] = None
            if self.embeddings is not None:
                vectors = self._embed_semantic(texts, report, check_cancelled)
                model = self.embeddings.model
            else:
                vectorizer = TfidfVectorizer.fit(texts)
                vectors = self._embed_keyword(vectorizer, texts, report, check_cancelled)
                model = vectorizer.model

            check_cancelled()
            report("saving", 0, 1)
            dimensions = int(vectors.shape[1]) if len(chunks) else 0
            self._save(kb_id, chunks, vectors, model, dimensions, len(pages), vectorizer)
            report("saving", 1, 1)
        except KnowledgeBaseError as exc:
            LOGGER.warning("Indexing %s failed: %s", kb_id, exc)
            return IndexOutcome(success=False, error=str(exc))
        except OSError as exc:
            LOGGER.warning("Indexing %s failed writing artifacts: %s", kb_id, exc)
            return IndexOutcome(success=False, error=f"Failed to write index: {exc}")

        elapsed = time.perf_counter() - start_time
        LOGGER.info(
            "Indexed %s: pages=%d, chunks=%d, mode=%s, duration=%.1fs",
            kb_id, len(pages), len(chunks), self.mode, elapsed,
        )
        return IndexOutcome(success=True, chunk_count=len(chunks), mode=self.mode)

    def _embed_semantic(self, texts: List[str], report, check_cancelled) -> np.ndarray:
        vectors: List[List[float]] = []
        for batch_texts in iter_batches(texts, self.batch_size):
            check_cancelled()
            batch_vectors = _embed_documents_with_retry(
                self.embeddings, batch_texts, self.max_retries, self.retry_delay
            )
            if len(batch_vectors) != len(batch_texts):
                raise IndexBuildError("Embedding batch returned mismatched vector count.")
            vectors.extend(batch_vectors)
            report("embedding", len(vectors), len(texts))

        if not vectors:
            return np.zeros((0, 0), dtype="float32")
        dimensions = {len(vector) for vector in vectors}
        if len(dimensions) != 1 or 0 in dimensions:
            raise IndexBuildError(f"Embedding provider returned inconsistent dimensions: {sorted(dimensions)}")
        return np.array(vectors, dtype="float32")

    def _embed_keyword(self, vectorizer: TfidfVectorizer, texts: List[str], report, check_cancelled) -> np.ndarray:
        matrix = np.zeros((len(texts), vectorizer.dimensions), dtype="float32")
        done = 0
        for batch_texts in iter_batches(texts, max(self.batch_size, 100)):
            check_cancelled()
            matrix[done : done + len(batch_texts)] = vectorizer.transform(batch_texts)
            done += len(batch_texts)
            report("embedding", done, len(texts))
        return matrix

    def _save(
        self,
        kb_id: str,
        chunks: List[Chunk],
        vectors: np.ndarray,
        model: str,
        dimensions: int,
        page_count: int,
        vectorizer: Optional[TfidfVectorizer],
    ) -> None:
        records = [ChunkRecord(**chunk.model_dump(), vector_id=idx) for idx, chunk in enumerate(chunks)]

        version_dir = self.store.new_index_version(kb_id)
        manifest = IndexManifest(
            index_version=os.path.basename(version_dir),
            model=model,
            dimensions=dimensions,
            mode=self.mode,
            chunk_count=len(records),
            page_count=page_count,
            indexed_at=utc_now(),
        )
        try:
            write_index(version_dir, manifest, records, vectors, vectorizer)
            self.store.activate_index_version(kb_id, version_dir)
        except BaseException:
            self.store.discard_index_version(version_dir)
            raise
