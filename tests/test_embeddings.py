"""Tests for embedding providers and the keyword vectorizer."""

from typing import List

import numpy as np
import pytest
from langchain_core.embeddings import Embeddings

from sitekb.config import Settings
from sitekb.embeddings import (
    KEYWORD_MODEL,
    LangChainEmbeddingProvider,
    TfidfVectorizer,
    build_embedding_provider,
    tokenize,
)


class LengthEmbeddings(Embeddings):
    """LangChain embeddings returning [len(text), 1.0]."""

    def __init__(self):
        self.document_batches = []

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        self.document_batches.append(list(texts))
        return [[float(len(text)), 1.0] for text in texts]

    def embed_query(self, text: str) -> List[float]:
        return [float(len(text)), 1.0]


def test_tokenize():
    """Test tokenization lower-cases, strips punctuation and drops short or stop words."""
    assert tokenize("The Crawler, and THE index!") == ["crawler", "index"]
    assert tokenize("an is of") == []
    assert tokenize("") == []


def test_tfidf_fit_vocabulary():
    """Test the vocabulary is ranked by document frequency then term."""
    vectorizer = TfidfVectorizer.fit(["python crawler", "python index", "rust crawler python"])
    assert list(vectorizer.vocabulary) == ["python", "crawler", "index", "rust"]
    assert vectorizer.dimensions == 4
    assert vectorizer.model == KEYWORD_MODEL


def test_tfidf_vocabulary_cap():
    """Test the vocabulary keeps only the most frequent terms."""
    docs = ["alpha beta gamma", "alpha beta", "alpha"]
    vectorizer = TfidfVectorizer.fit(docs, max_vocabulary=2)
    assert set(vectorizer.vocabulary) == {"alpha", "beta"}


def test_tfidf_rare_terms_weigh_more():
    """Test smoothed IDF gives rarer terms a larger weight."""
    vectorizer = TfidfVectorizer.fit(["python crawler", "python index", "python search"])
    idf = dict(zip(vectorizer.vocabulary, vectorizer.idf))
    assert idf["crawler"] > idf["python"]
    assert idf["python"] == pytest.approx(1.0)


def test_tfidf_transform_normalized():
    """Test transformed vectors are unit length, or zero without known terms."""
    vectorizer = TfidfVectorizer.fit(["python crawler", "rust index"])
    matrix = vectorizer.transform(["python python crawler", "unknown words only", ""])
    assert matrix.shape == (3, vectorizer.dimensions)
    assert matrix.dtype == np.float32
    assert np.linalg.norm(matrix[0]) == pytest.approx(1.0, rel=1e-5)
    assert not matrix[1].any()
    assert not matrix[2].any()


def test_tfidf_serialization():
    """Test the vectorizer survives its JSON form."""
    vectorizer = TfidfVectorizer.fit(["python crawler", "rust index", "python search"])
    restored = TfidfVectorizer.from_dict(vectorizer.to_dict())
    assert restored.vocabulary == vectorizer.vocabulary
    np.testing.assert_allclose(
        restored.transform(["python search"]), vectorizer.transform(["python search"])
    )


def test_tfidf_rejects_mismatched_sizes():
    """Test vocabulary and idf must line up."""
    with pytest.raises(ValueError):
        TfidfVectorizer({"a": 0, "b": 1}, [1.0])


def test_langchain_provider_delegates():
    """Test the LangChain adapter forwards documents and queries."""
    client = LengthEmbeddings()
    provider = LangChainEmbeddingProvider(client, "length-model")

    assert provider.model == "length-model"
    assert provider.embed_documents(("ab", "abcd")) == [[2.0, 1.0], [4.0, 1.0]]
    assert client.document_batches == [["ab", "abcd"]]
    assert provider.embed_query("abc") == [3.0, 1.0]
    assert provider.embed("a") == [1.0, 1.0]


def test_build_embedding_provider_none():
    """Test keyword mode is selected when no provider is configured."""
    assert build_embedding_provider(Settings(embed_provider="none")) is None
