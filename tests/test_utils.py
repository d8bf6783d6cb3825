"""Tests for knowledge base utilities."""

import json
import os

import pytest

from sitekb.utils import (
    TRUNCATION_MARKER,
    atomic_write_json,
    generate_id,
    hash_url,
    iter_batches,
    join_capped,
    normalize_text,
    sha1_text,
)


def test_normalize_text():
    """Test text normalization."""
    assert normalize_text("  hello   world  ") == "hello world"
    assert normalize_text("hello\u00a0world") == "hello world"
    assert normalize_text("line1\nline2") == "line1 line2"


def test_sha1_text():
    """Test SHA1 hash generation."""
    text = "hello world"
    hash1 = sha1_text(text)
    hash2 = sha1_text(text)
    assert hash1 == hash2
    assert len(hash1) == 40  # SHA1 hex length
    assert hash1 != sha1_text("different text")


def test_hash_url_is_md5_hex():
    """Test page keys are stable MD5 hex digests of the URL."""
    assert hash_url("https://example.com/") == hash_url("https://example.com/")
    assert len(hash_url("https://example.com/")) == 32
    assert hash_url("https://example.com/a") != hash_url("https://example.com/b")


def test_generate_id_unique():
    """Test generated ids are opaque 16-character hex strings."""
    ids = {generate_id() for _ in range(50)}
    assert len(ids) == 50
    assert all(len(value) == 16 for value in ids)


def test_iter_batches():
    """Test batching keeps order and the final partial batch."""
    assert list(iter_batches([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]
    assert list(iter_batches([], 3)) == []


def test_atomic_write_json_replaces_file(tmp_path):
    """Test atomic writes replace content and leave no temp files behind."""
    path = str(tmp_path / "manifest.json")
    atomic_write_json(path, {"a": 1})
    atomic_write_json(path, {"a": 2})

    with open(path, encoding="utf-8") as handle:
        assert json.load(handle) == {"a": 2}
    assert os.listdir(tmp_path) == ["manifest.json"]


def test_join_capped_under_limit():
    """Test content under the cap is joined without a marker."""
    text = join_capped(["one", "two"], "|", 100)
    assert text == "one|two"
    assert TRUNCATION_MARKER not in text


def test_join_capped_truncates_once():
    """Test content over the cap is cut to the limit with exactly one marker."""
    parts = ["x" * 60, "y" * 60, "z" * 60]
    text = join_capped(parts, "\n", 100)
    assert len(text) <= 100
    assert text.endswith(TRUNCATION_MARKER)
    assert text.count(TRUNCATION_MARKER) == 1
    assert "z" not in text[: -len(TRUNCATION_MARKER)]


def test_join_capped_exact_fit():
    """Test content exactly at the cap is not truncated."""
    text = join_capped(["a" * 50, "b" * 49], "-", 100)
    assert len(text) == 100
    assert TRUNCATION_MARKER not in text


def test_join_capped_rejects_tiny_limit():
    """Test a limit smaller than the marker is rejected."""
    with pytest.raises(ValueError):
        join_capped(["abc"], "", 5)
