"""Filesystem-backed storage for knowledge bases."""

from __future__ import annotations

import enum
import json
import logging
import os
import shutil
from dataclasses import dataclass
from datetime import datetime
from typing import Generic, Iterable, Iterator, List, Optional, Tuple, Type, TypeVar
from urllib.parse import urlparse

from pydantic import BaseModel, ValidationError

from .errors import (
    CorruptDataError,
    DuplicateSourceError,
    InvalidSourceError,
    NotFoundError,
    PermissionDeniedError,
)
from .schemas import KnowledgeBase, KnowledgeBaseSource, PageContent, StoredPage, clamp_depth
from .utils import atomic_write_json, generate_id, hash_url, utc_now

LOGGER = logging.getLogger(__name__)

MANIFEST_FILE = "manifest.json"
PAGES_DIR = "pages"
INDEX_DIR = "index"

M = TypeVar("M", bound=BaseModel)


class ReadStatus(str, enum.Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    CORRUPT = "corrupt"
    PERMISSION_DENIED = "permission_denied"


@dataclass
class ReadResult(Generic[M]):
    """Outcome of reading one JSON record from disk."""
    status: ReadStatus
    value: Optional[M] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is ReadStatus.OK


def read_json_model(path: str, model: Type[M]) -> ReadResult[M]:
    """Read and validate a JSON file, classifying the failure kind."""
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except FileNotFoundError:
        return ReadResult(ReadStatus.NOT_FOUND, error=f"File not found: {path}")
    except PermissionError as exc:
        return ReadResult(ReadStatus.PERMISSION_DENIED, error=str(exc))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        return ReadResult(ReadStatus.CORRUPT, error=f"Invalid JSON in {path}: {exc}")
    except IsADirectoryError as exc:
        return ReadResult(ReadStatus.CORRUPT, error=str(exc))

    try:
        return ReadResult(ReadStatus.OK, value=model.model_validate(data))
    except ValidationError as exc:
        return ReadResult(ReadStatus.CORRUPT, error=f"Invalid record in {path}: {exc}")


def is_valid_url(url: str) -> bool:
    """Accept absolute http(s) URLs with a host."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class Store:
    """
    Repository for the knowledge bases under one root directory.

    Layout per knowledge base:
        <root>/<kb_id>/manifest.json
        <root>/<kb_id>/pages/<md5(url)>.json
        <root>/<kb_id>/index/versions/<version>/...
        <root>/<kb_id>/index/current -> versions/<version>
    """

    def __init__(self, root: str) -> None:
        self.root = os.path.abspath(os.path.expanduser(root))

    # -- paths ---------------------------------------------------------------

    def kb_path(self, kb_id: str) -> str:
        if not kb_id or os.sep in kb_id or kb_id in (".", ".."):
            raise NotFoundError(f"Invalid knowledge base id: {kb_id!r}")
        return os.path.join(self.root, kb_id)

    def manifest_path(self, kb_id: str) -> str:
        return os.path.join(self.kb_path(kb_id), MANIFEST_FILE)

    def pages_dir(self, kb_id: str) -> str:
        return os.path.join(self.kb_path(kb_id), PAGES_DIR)

    def page_path(self, kb_id: str, page_hash: str) -> str:
        return os.path.join(self.pages_dir(kb_id), f"{page_hash}.json")

    def index_dir(self, kb_id: str) -> str:
        return os.path.join(self.kb_path(kb_id), INDEX_DIR)

    # -- manifests -----------------------------------------------------------

    def read_manifest(self, kb_id: str) -> ReadResult[KnowledgeBase]:
        return read_json_model(self.manifest_path(kb_id), KnowledgeBase)

    def _write_manifest(self, kb: KnowledgeBase) -> None:
        atomic_write_json(self.manifest_path(kb.id), kb.to_json_dict())

    def save(self, kb: KnowledgeBase) -> None:
        """Recompute derived totals and rewrite the whole manifest."""
        kb.recompute_total_pages()
        self._write_manifest(kb)

    def create(self, name: str, depth: int) -> KnowledgeBase:
        kb = KnowledgeBase(
            id=generate_id(),
            name=name,
            created_at=utc_now(),
            crawl_depth=clamp_depth(depth),
        )
        os.makedirs(self.pages_dir(kb.id), exist_ok=True)
        self._write_manifest(kb)
        LOGGER.info("Created knowledge base %s (%s)", kb.id, name)
        return kb

    def list(self) -> List[KnowledgeBase]:
        """All readable knowledge bases, newest first; corrupt ones are skipped."""
        if not os.path.isdir(self.root):
            return []

        kbs: List[KnowledgeBase] = []
        for entry in sorted(os.listdir(self.root)):
            if not os.path.isdir(os.path.join(self.root, entry)):
                continue
            result = self.read_manifest(entry)
            if result.ok:
                kbs.append(result.value)
            elif result.status is not ReadStatus.NOT_FOUND:
                LOGGER.warning("Skipping knowledge base %s: %s", entry, result.error)

        # ISO-8601 UTC timestamps sort chronologically as text
        kbs.sort(key=lambda kb: kb.created_at, reverse=True)
        return kbs

    def get(self, kb_id: str) -> Optional[KnowledgeBase]:
        """
        Return the knowledge base, or None when it does not exist.

        Raises:
            CorruptDataError: manifest exists but is not a valid knowledge base
            PermissionDeniedError: manifest exists but cannot be read
        """
        try:
            result = self.read_manifest(kb_id)
        except NotFoundError:
            return None
        if result.ok:
            return result.value
        if result.status is ReadStatus.NOT_FOUND:
            return None
        if result.status is ReadStatus.PERMISSION_DENIED:
            raise PermissionDeniedError(result.error)
        raise CorruptDataError(result.error)

    def require(self, kb_id: str) -> KnowledgeBase:
        kb = self.get(kb_id)
        if kb is None:
            raise NotFoundError(f"Knowledge base not found: {kb_id}")
        return kb

    def delete(self, kb_id: str) -> bool:
        try:
            path = self.kb_path(kb_id)
        except NotFoundError:
            return False
        if not os.path.isdir(path):
            return False
        shutil.rmtree(path, ignore_errors=True)
        LOGGER.info("Deleted knowledge base %s", kb_id)
        return not os.path.exists(path)

    # -- sources -------------------------------------------------------------

    def add_source(self, kb_id: str, url: str) -> KnowledgeBaseSource:
        if not is_valid_url(url):
            raise InvalidSourceError(f"Invalid URL: {url}")

        kb = self.require(kb_id)
        if any(source.url == url for source in kb.sources):
            raise DuplicateSourceError(f"Source already exists: {url}")

        source = KnowledgeBaseSource(id=generate_id(), url=url, added_at=utc_now())
        kb.sources.append(source)
        self.save(kb)
        return source

    def update_source(self, kb_id: str, source: KnowledgeBaseSource) -> KnowledgeBase:
        kb = self.require(kb_id)
        for position, existing in enumerate(kb.sources):
            if existing.id == source.id:
                kb.sources[position] = source
                break
        else:
            raise NotFoundError(f"Source not found: {source.id}")
        self.save(kb)
        return kb

    def remove_source(self, kb_id: str, source_id: str) -> bool:
        kb = self.get(kb_id)
        if kb is None or kb.find_source(source_id) is None:
            return False

        removed = self.delete_source_pages(kb_id, source_id)
        kb.sources = [source for source in kb.sources if source.id != source_id]
        self.save(kb)
        # The active index still holds the removed pages' chunks
        if removed:
            self.clear_index(kb_id)
        LOGGER.info("Removed source %s from %s (%d page(s))", source_id, kb_id, removed)
        return True

    # -- pages ---------------------------------------------------------------

    def save_page(self, kb_id: str, source_id: str, page: PageContent) -> str:
        """Write or overwrite the page keyed by the hash of its URL."""
        page_hash = hash_url(page.url)
        stored = StoredPage(
            **page.model_dump(include={"url", "title", "text", "links"}),
            source_id=source_id,
            saved_at=utc_now(),
        )
        os.makedirs(self.pages_dir(kb_id), exist_ok=True)
        atomic_write_json(self.page_path(kb_id, page_hash), stored.to_json_dict())
        return page_hash

    def read_page(self, kb_id: str, page_hash: str) -> ReadResult[StoredPage]:
        return read_json_model(self.page_path(kb_id, page_hash), StoredPage)

    def iter_pages(self, kb_id: str) -> Iterator[Tuple[str, StoredPage]]:
        """Yield (page_hash, StoredPage) in file-name order, skipping unreadable pages."""
        pages_dir = self.pages_dir(kb_id)
        if not os.path.isdir(pages_dir):
            return
        for filename in sorted(os.listdir(pages_dir)):
            if not filename.endswith(".json") or filename.startswith("."):
                continue
            page_hash = filename[: -len(".json")]
            result = self.read_page(kb_id, page_hash)
            if result.ok:
                yield page_hash, result.value
            else:
                LOGGER.warning("Skipping page %s in %s: %s", filename, kb_id, result.error)

    def delete_source_pages(self, kb_id: str, source_id: str, keep: Iterable[str] = ()) -> int:
        """Delete pages attributed to source_id except the hashes in keep."""
        keep_set = set(keep)
        removed = 0
        for page_hash, page in list(self.iter_pages(kb_id)):
            if page.source_id != source_id or page_hash in keep_set:
                continue
            try:
                os.unlink(self.page_path(kb_id, page_hash))
                removed += 1
            except FileNotFoundError:
                continue
        return removed

    # -- index versions ------------------------------------------------------

    def current_index_dir(self, kb_id: str) -> Optional[str]:
        current = os.path.join(self.index_dir(kb_id), "current")
        if os.path.isdir(current):
            return current
        return None

    def new_index_version(self, kb_id: str) -> str:
        versions_dir = os.path.join(self.index_dir(kb_id), "versions")
        os.makedirs(versions_dir, exist_ok=True)
        version = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
        version_dir = os.path.join(versions_dir, version)
        os.makedirs(version_dir)
        return version_dir

    def discard_index_version(self, version_dir: str) -> None:
        shutil.rmtree(version_dir, ignore_errors=True)

    def activate_index_version(self, kb_id: str, version_dir: str) -> None:
        """Switch index/current to version_dir and prune older versions."""
        index_dir = self.index_dir(kb_id)
        _activate_version(index_dir, version_dir)

        versions_dir = os.path.join(index_dir, "versions")
        active = os.path.basename(version_dir)
        for name in os.listdir(versions_dir):
            if name != active:
                shutil.rmtree(os.path.join(versions_dir, name), ignore_errors=True)

    def clear_index(self, kb_id: str) -> None:
        shutil.rmtree(self.index_dir(kb_id), ignore_errors=True)


def _activate_version(out_dir: str, version_dir: str) -> None:
    """
    Atomically switch 'current' symlink to new version.

    Falls back to copying on systems that don't support atomic symlink replacement.
    """
    current_path = os.path.join(out_dir, "current")
    tmp_link = os.path.join(out_dir, "current_tmp")
    relative_target = os.path.relpath(version_dir, out_dir)

    if os.path.islink(tmp_link) or os.path.exists(tmp_link):
        if os.path.isdir(tmp_link) and not os.path.islink(tmp_link):
            shutil.rmtree(tmp_link)
        else:
            os.unlink(tmp_link)

    try:
        os.symlink(relative_target, tmp_link)
        os.replace(tmp_link, current_path)
    except OSError:
        if os.path.lexists(tmp_link):
            os.unlink(tmp_link)
        if os.path.islink(current_path):
            os.unlink(current_path)
        elif os.path.exists(current_path):
            shutil.rmtree(current_path)
        shutil.copytree(version_dir, current_path)
