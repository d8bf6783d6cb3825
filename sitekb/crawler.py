"""Bounded breadth-first website crawler."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Deque, List, Optional, Set, Tuple
from urllib.parse import urljoin, urlparse, urlunparse

import requests
from bs4 import BeautifulSoup

from .config import DEFAULT_USER_AGENT
from .errors import CrawlError, FetchError
from .schemas import CrawlOptions, CrawlPageError, CrawlProgress, CrawlResult, PageContent
from .utils import normalize_text

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[CrawlProgress], None]

HTML_CONTENT_TYPES = ("text/html", "application/xhtml")
SKIPPED_SCHEMES = ("javascript:", "mailto:", "tel:", "data:")
STRIPPED_TAGS = ["script", "style", "noscript", "nav", "footer", "header", "img", "svg"]
DEFAULT_PORTS = {"http": "80", "https": "443"}


def normalize_url(url: str) -> str:
    """Visited-set key: lower-case scheme/host, no fragment, default port or trailing slash."""
    parsed = urlparse(url.strip())
    scheme = parsed.scheme.lower()
    netloc = parsed.netloc.lower()
    if ":" in netloc:
        host, _, port = netloc.rpartition(":")
        if DEFAULT_PORTS.get(scheme) == port:
            netloc = host
    path = parsed.path.rstrip("/")
    return urlunparse((scheme, netloc, path, parsed.params, parsed.query, ""))


def resolve_link(href: str, base_url: str) -> Optional[str]:
    """Resolve href against base_url; None for non-http(s) or fragment-only links."""
    href = href.strip()
    if not href or href.startswith("#") or href.lower().startswith(SKIPPED_SCHEMES):
        return None
    try:
        resolved = urljoin(base_url, href)
        parsed = urlparse(resolved)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return urlunparse(parsed._replace(fragment=""))


def is_same_site(url: str, base_url: str) -> bool:
    return urlparse(url).hostname == urlparse(base_url).hostname


def extract_content(html: str, url: str) -> PageContent:
    """Extract title, readable text and same-site links from an HTML document."""
    soup = BeautifulSoup(html, "html.parser")

    title_tag = soup.find("title")
    title = normalize_text(title_tag.get_text()) if title_tag else ""

    links: List[str] = []
    seen: Set[str] = set()
    for anchor in soup.find_all("a", href=True):
        link = resolve_link(anchor["href"], url)
        if link is None or not is_same_site(link, url) or link in seen:
            continue
        seen.add(link)
        links.append(link)

    for tag in soup(STRIPPED_TAGS):
        tag.decompose()
    if soup.title is not None:
        soup.title.decompose()
    lines = (line.strip() for line in soup.get_text("\n").splitlines())
    text = "\n".join(line for line in lines if line)

    return PageContent(url=url, title=title, text=text, links=links)


class Crawler:
    """Same-site crawler fetching up to `concurrency` pages at a time."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        request_timeout: float = 10.0,
        concurrency: int = 4,
        delay: float = 0.5,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.concurrency = concurrency
        self.delay = delay
        self._session = session or requests.Session()
        self._session.headers.update(self._default_headers())

    def _default_headers(self) -> dict:
        return {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        }

    def close(self) -> None:
        self._session.close()

    def fetch(self, url: str) -> str:
        """Fetch one HTML document; raises FetchError on any failure."""
        try:
            response = self._session.get(url, timeout=self.request_timeout, allow_redirects=True)
        except requests.RequestException as exc:
            raise FetchError(str(exc)) from exc

        if response.status_code >= 400:
            raise FetchError(f"HTTP {response.status_code}: {response.reason or ''}".rstrip())

        content_type = response.headers.get("Content-Type", "").lower()
        if not any(kind in content_type for kind in HTML_CONTENT_TYPES):
            raise FetchError(f"Invalid content type: {content_type or 'unknown'}")
        return response.text or ""

    def fetch_page(self, url: str) -> PageContent:
        html = self.fetch(url)
        try:
            return extract_content(html, url)
        except Exception as exc:
            raise FetchError(f"Failed to parse page: {exc}") from exc

    def crawl(
        self,
        seed_url: str,
        options: Optional[CrawlOptions] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[threading.Event] = None,
    ) -> CrawlResult:
        """
        Breadth-first crawl from seed_url.

        Pages are fetched in batches of up to `concurrency`; results are
        handled in frontier order so progress counts only grow.

        Raises:
            CrawlError: the seed could not be fetched, or the crawl timed out
                or was cancelled before any page was harvested
        """
        opts = options or CrawlOptions()
        started = time.monotonic()

        frontier: Deque[Tuple[str, int]] = deque([(seed_url, 0)])
        queued: Set[str] = {normalize_url(seed_url)}
        visited: Set[str] = set()
        pages: List[PageContent] = []
        errors: List[CrawlPageError] = []
        stop_reason = ""

        def report(current_url: str) -> None:
            if on_progress is None:
                return
            total = min(len(pages) + len(frontier), opts.max_pages)
            on_progress(CrawlProgress(crawled=len(pages), total=max(total, len(pages)), current_url=current_url))

        with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="crawl") as pool:
            while frontier and len(pages) < opts.max_pages:
                if cancel is not None and cancel.is_set():
                    stop_reason = "cancelled"
                    break
                if time.monotonic() - started > opts.timeout:
                    stop_reason = "timed out"
                    break

                batch = self._next_batch(frontier, visited, opts, opts.max_pages - len(pages))
                if not batch:
                    continue

                futures = [(url, depth, pool.submit(self.fetch_page, url)) for url, depth in batch]
                for url, depth, future in futures:
                    try:
                        page = future.result()
                    except Exception as exc:
                        if depth == 0:
                            raise CrawlError(f"Failed to fetch {url}: {exc}") from exc
                        LOGGER.warning("Crawl failed for %s: %s", url, exc)
                        errors.append(CrawlPageError(url=url, error=str(exc)))
                        report(url)
                        continue

                    if len(pages) >= opts.max_pages:
                        break
                    pages.append(page)
                    if depth < opts.max_depth:
                        for link in page.links:
                            key = normalize_url(link)
                            if key not in queued:
                                queued.add(key)
                                frontier.append((link, depth + 1))
                    report(url)

                if self.delay and frontier:
                    time.sleep(self.delay)

        if not pages and stop_reason:
            raise CrawlError(f"Crawl {stop_reason} before any page was harvested")
        if stop_reason:
            LOGGER.info("Crawl of %s %s after %d page(s)", seed_url, stop_reason, len(pages))

        if on_progress is not None:
            on_progress(CrawlProgress(crawled=len(pages), total=len(pages), current_url=""))

        LOGGER.info("Crawled %s: pages=%d, errors=%d", seed_url, len(pages), len(errors))
        return CrawlResult(pages=pages, errors=errors)

    def _next_batch(
        self,
        frontier: Deque[Tuple[str, int]],
        visited: Set[str],
        opts: CrawlOptions,
        room: int,
    ) -> List[Tuple[str, int]]:
        batch: List[Tuple[str, int]] = []
        while frontier and len(batch) < min(self.concurrency, room):
            url, depth = frontier.popleft()
            key = normalize_url(url)
            if key in visited or depth > opts.max_depth:
                continue
            visited.add(key)
            batch.append((url, depth))
        return batch
