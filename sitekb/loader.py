"""Write and load index versions on disk."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import faiss
import numpy as np
from pydantic import ValidationError

from .embeddings import TfidfVectorizer
from .errors import CorruptDataError
from .schemas import ChunkRecord, IndexManifest
from .utils import atomic_write_json

INDEX_FILE = "index.faiss"
CHUNKS_FILE = "chunks.jsonl"
MANIFEST_FILE = "index.json"
VOCABULARY_FILE = "vocabulary.json"


@dataclass
class LoadedIndex:
    """In-memory index version."""
    manifest: IndexManifest
    chunks: Dict[int, ChunkRecord]
    index: Optional[faiss.Index] = None
    vectorizer: Optional[TfidfVectorizer] = None


def build_faiss_index(vectors: np.ndarray) -> faiss.Index:
    """Inner-product index over L2-normalised copies of vectors (cosine)."""
    vector_array = np.ascontiguousarray(vectors, dtype="float32").copy()
    faiss.normalize_L2(vector_array)
    index = faiss.IndexFlatIP(vector_array.shape[1])
    index.add(vector_array)
    return index


def write_index(
    version_dir: str,
    manifest: IndexManifest,
    records: List[ChunkRecord],
    vectors: Optional[np.ndarray],
    vectorizer: Optional[TfidfVectorizer] = None,
) -> None:
    """Write all artifacts of one index version into version_dir."""
    if vectors is not None and manifest.chunk_count and manifest.dimensions:
        faiss.write_index(build_faiss_index(vectors), os.path.join(version_dir, INDEX_FILE))

    with open(os.path.join(version_dir, CHUNKS_FILE), "w", encoding="utf-8") as handle:
        for record in records:
            handle.write(json.dumps(record.to_json_dict(), ensure_ascii=True))
            handle.write("\n")

    if vectorizer is not None:
        atomic_write_json(os.path.join(version_dir, VOCABULARY_FILE), vectorizer.to_dict())

    # Written last: its presence marks the version complete
    atomic_write_json(os.path.join(version_dir, MANIFEST_FILE), manifest.to_json_dict())


def read_index_manifest(index_path: str) -> IndexManifest:
    manifest_file = Path(index_path) / MANIFEST_FILE
    if not manifest_file.exists():
        raise FileNotFoundError(f"Index manifest not found: {manifest_file}")
    try:
        return IndexManifest.model_validate_json(manifest_file.read_text(encoding="utf-8"))
    except ValidationError as exc:
        raise CorruptDataError(f"Invalid index manifest {manifest_file}: {exc}") from exc


def load_index(index_path: str) -> LoadedIndex:
    """
    Load an index version from disk.

    Args:
        index_path: Path to the index version (e.g., "<kb>/index/current")

    Returns:
        LoadedIndex with manifest, chunks and vectors

    Raises:
        FileNotFoundError: If required files are missing
        CorruptDataError: If data format is invalid
    """
    kb_dir = Path(index_path)
    manifest = read_index_manifest(index_path)

    chunks_file = kb_dir / CHUNKS_FILE
    if not chunks_file.exists():
        raise FileNotFoundError(f"Chunks file not found: {chunks_file}")

    chunks: Dict[int, ChunkRecord] = {}
    try:
        with open(chunks_file, "r", encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    record = ChunkRecord.model_validate_json(line)
                    chunks[record.vector_id] = record
    except ValidationError as exc:
        raise CorruptDataError(f"Invalid chunk record in {chunks_file}: {exc}") from exc

    if len(chunks) != manifest.chunk_count:
        raise CorruptDataError(
            f"Index {index_path} lists {manifest.chunk_count} chunks but {len(chunks)} were found"
        )

    index = None
    index_file = kb_dir / INDEX_FILE
    if manifest.chunk_count and manifest.dimensions:
        if not index_file.exists():
            raise FileNotFoundError(f"Index file not found: {index_file}")
        index = faiss.read_index(str(index_file))
        if index.ntotal != manifest.chunk_count or index.d != manifest.dimensions:
            raise CorruptDataError(f"Vector index {index_file} does not match its manifest")

    vectorizer = None
    if manifest.mode == "keyword":
        vocabulary_file = kb_dir / VOCABULARY_FILE
        if not vocabulary_file.exists():
            raise FileNotFoundError(f"Vocabulary file not found: {vocabulary_file}")
        try:
            vectorizer = TfidfVectorizer.from_dict(json.loads(vocabulary_file.read_text(encoding="utf-8")))
        except (json.JSONDecodeError, KeyError, ValueError) as exc:
            raise CorruptDataError(f"Invalid vocabulary {vocabulary_file}: {exc}") from exc

    return LoadedIndex(manifest=manifest, chunks=chunks, index=index, vectorizer=vectorizer)
