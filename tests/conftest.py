"""Shared fixtures: temporary stores, an in-memory website and stub embeddings."""

import threading
import time
from typing import Dict, List, Optional

import pytest

from sitekb.config import Settings
from sitekb.crawler import Crawler
from sitekb.embeddings import EmbeddingProvider
from sitekb.knowledge_base import KnowledgeBaseService
from sitekb.schemas import PageContent
from sitekb.store import Store

BASE = "https://docs.example.com"


def page_html(title: str, body: str, links: List[str] = ()) -> str:
    anchors = "".join(f'<a href="{href}">link</a>' for href in links)
    return (
        f"<html><head><title>{title}</title><script>var x = 1;</script></head>"
        f"<body><nav>Menu</nav><p>{body}</p>{anchors}</body></html>"
    )


class FakeResponse:
    def __init__(self, url: str, status_code: int = 200, text: str = "", content_type: str = "text/html"):
        self.url = url
        self.status_code = status_code
        self.reason = "OK" if status_code < 400 else "Error"
        self.text = text
        self.headers = {"Content-Type": content_type}


class FakeSession:
    """Serves a dict of url -> FakeResponse; unknown URLs are 404."""

    def __init__(self, site: Dict[str, FakeResponse], latency: float = 0.0):
        self.site = site
        self.latency = latency
        self.headers: Dict[str, str] = {}
        self.requested: List[str] = []
        self._lock = threading.Lock()

    def get(self, url, timeout=None, allow_redirects=True):
        with self._lock:
            self.requested.append(url)
        if self.latency:
            time.sleep(self.latency)
        response = self.site.get(url)
        if response is None:
            return FakeResponse(url, status_code=404)
        if isinstance(response, Exception):
            raise response
        return response

    def close(self):
        pass


def build_site(page_count: int, failing: int = 0, body: Optional[str] = None) -> Dict[str, FakeResponse]:
    """Seed page linking to page_count children; the last `failing` children return 500."""
    children = [f"{BASE}/p{i}" for i in range(page_count)]
    site = {f"{BASE}/": FakeResponse(f"{BASE}/", text=page_html("Home", "Welcome home", children))}
    for position, url in enumerate(children):
        if position >= page_count - failing:
            site[url] = FakeResponse(url, status_code=500)
        else:
            text = body or f"Page {position} talks about topic{position}"
            site[url] = FakeResponse(url, text=page_html(f"Page {position}", text, [f"{BASE}/"]))
    return site


class StubEmbeddings(EmbeddingProvider):
    """Deterministic term-count embeddings over a fixed vocabulary."""

    TERMS = ("python", "rust", "crawler", "index", "search")

    def __init__(self, model: str = "stub-embed"):
        self.model = model
        self.calls = 0

    def embed(self, text: str) -> List[float]:
        words = [word.strip(".,!?").lower() for word in text.split()]
        return [float(words.count(term)) for term in self.TERMS] + [0.01]

    def embed_documents(self, texts):
        self.calls += 1
        return super().embed_documents(texts)


class FailingEmbeddings(StubEmbeddings):
    def embed_documents(self, texts):
        raise RuntimeError("embedding service unavailable")


@pytest.fixture
def store(tmp_path):
    return Store(str(tmp_path / "knowledge"))


@pytest.fixture
def settings(tmp_path):
    return Settings(home=str(tmp_path / "knowledge"), crawl_delay=0.0, chunk_size=200, chunk_overlap=20)


def make_service(store, settings, site=None, embeddings=None) -> KnowledgeBaseService:
    crawler = Crawler(session=FakeSession(site or {}), delay=0.0)
    service = KnowledgeBaseService(store, settings=settings, embeddings=embeddings, crawler=crawler)
    service.indexer.retry_delay = 0.0
    return service


def add_page(store: Store, kb_id: str, source_id: str, url: str, text: str, title: str = ""):
    return store.save_page(kb_id, source_id, PageContent(url=url, title=title, text=text))
