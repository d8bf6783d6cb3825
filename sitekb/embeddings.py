"""Embedding providers: LangChain-backed semantic embeddings and a TF-IDF keyword fallback."""

from __future__ import annotations

import math
import re
from abc import ABC, abstractmethod
from collections import Counter
from typing import Dict, List, Optional, Sequence

import numpy as np
from langchain_core.embeddings import Embeddings

from .config import Settings

KEYWORD_MODEL = "tfidf-simple"
MAX_VOCABULARY = 5000

STOP_WORDS = frozenset(
    """
    a an and are as at be by for from has he in is it its of on that the to was
    were will with this but they have had what when where who which why how all
    each every both few more most other some such no nor not only own same so
    than too very can just should now i you your we our their them his her she
    him my me
    """.split()
)

_NON_WORD_RE = re.compile(r"[^\w\s]")


class EmbeddingProvider(ABC):
    """A model that turns text into a fixed-size vector."""

    model: str

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        """Embed a single text."""

    def embed_documents(self, texts: Sequence[str]) -> List[List[float]]:
        return [self.embed(text) for text in texts]

    def embed_query(self, text: str) -> List[float]:
        return self.embed(text)


class LangChainEmbeddingProvider(EmbeddingProvider):
    """Adapter around a LangChain embeddings client (e.g. OllamaEmbeddings)."""

    def __init__(self, client: Embeddings, model: str) -> None:
        self.client = client
        self.model = model

    def embed(self, text: str) -> List[float]:
        return self.client.embed_query(text)

    def embed_documents(self, texts: Sequence[str]) -> List[List[float]]:
        return self.client.embed_documents(list(texts))

    def embed_query(self, text: str) -> List[float]:
        return self.client.embed_query(text)


def build_embedding_provider(settings: Settings) -> Optional[EmbeddingProvider]:
    """Provider configured by settings, or None for keyword mode."""
    if settings.embed_provider == "none":
        return None
    from langchain_community.embeddings import OllamaEmbeddings

    client = OllamaEmbeddings(model=settings.embed_model, base_url=settings.ollama_base_url)
    return LangChainEmbeddingProvider(client, settings.embed_model)


def tokenize(text: str) -> List[str]:
    """Lower-case words longer than two characters, stop words removed."""
    words = _NON_WORD_RE.sub(" ", text.lower()).split()
    return [word for word in words if len(word) > 2 and word not in STOP_WORDS]


class TfidfVectorizer:
    """
    Term-frequency / inverse-document-frequency vectors for keyword search.

    The vocabulary holds the MAX_VOCABULARY terms with the highest document
    frequency (ties by term). IDF is smoothed: log((N + 1) / (df + 1)) + 1.
    Term frequency is count / token count. Vectors are L2-normalised, so
    inner products are cosine similarities.
    """

    model = KEYWORD_MODEL

    def __init__(self, vocabulary: Dict[str, int], idf: Sequence[float]) -> None:
        if len(vocabulary) != len(idf):
            raise ValueError("vocabulary and idf sizes differ")
        self.vocabulary = vocabulary
        self.idf = np.asarray(idf, dtype="float32")

    @property
    def dimensions(self) -> int:
        return len(self.vocabulary)

    @classmethod
    def fit(cls, documents: Sequence[str], max_vocabulary: int = MAX_VOCABULARY) -> "TfidfVectorizer":
        doc_freq: Counter = Counter()
        for doc in documents:
            doc_freq.update(set(tokenize(doc)))

        ranked = sorted(doc_freq.items(), key=lambda item: (-item[1], item[0]))[:max_vocabulary]
        total = len(documents)
        vocabulary = {word: position for position, (word, _) in enumerate(ranked)}
        idf = [math.log((total + 1) / (count + 1)) + 1 for _, count in ranked]
        return cls(vocabulary, idf)

    def transform(self, texts: Sequence[str]) -> np.ndarray:
        matrix = np.zeros((len(texts), self.dimensions), dtype="float32")
        for row, text in enumerate(texts):
            words = tokenize(text)
            if not words:
                continue
            counts = Counter(word for word in words if word in self.vocabulary)
            for word, count in counts.items():
                column = self.vocabulary[word]
                matrix[row, column] = (count / len(words)) * self.idf[column]
            norm = float(np.linalg.norm(matrix[row]))
            if norm > 0:
                matrix[row] /= norm
        return matrix

    def to_dict(self) -> dict:
        words = sorted(self.vocabulary, key=self.vocabulary.__getitem__)
        return {"words": words, "idf": [float(value) for value in self.idf]}

    @classmethod
    def from_dict(cls, data: dict) -> "TfidfVectorizer":
        words = data["words"]
        return cls({word: position for position, word in enumerate(words)}, data["idf"])
