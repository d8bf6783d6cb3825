"""tqdm progress bars driven by crawl and index progress callbacks."""

from __future__ import annotations

from typing import Dict, Optional

from tqdm import tqdm

from .schemas import CrawlProgress, IndexProgress

PHASE_LABELS = {
    "chunking": "Chunking pages",
    "embedding": "Embedding chunks",
    "saving": "Saving index",
}


class CrawlProgressBar:
    """Callable crawl progress callback rendering a single tqdm bar."""

    def __init__(self, desc: str = "Crawling pages", **tqdm_kwargs) -> None:
        self.bar = tqdm(total=0, desc=desc, unit="page", **tqdm_kwargs)

    def __call__(self, progress: CrawlProgress) -> None:
        if progress.total != self.bar.total:
            self.bar.total = progress.total
        self.bar.update(progress.crawled - self.bar.n)
        self.bar.set_postfix_str(progress.current_url)

    def close(self) -> None:
        self.bar.close()

    def __enter__(self) -> "CrawlProgressBar":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class IndexProgressBar:
    """Callable index progress callback; one tqdm bar per phase."""

    def __init__(self, **tqdm_kwargs) -> None:
        self._tqdm_kwargs = tqdm_kwargs
        self._phase: Optional[str] = None
        self.bar: Optional[tqdm] = None
        self.finished: Dict[str, int] = {}

    def __call__(self, progress: IndexProgress) -> None:
        if progress.phase != self._phase:
            self.close()
            self._phase = progress.phase
            self.bar = tqdm(
                total=progress.total,
                desc=PHASE_LABELS.get(progress.phase, progress.phase),
                **self._tqdm_kwargs,
            )
        if progress.total != self.bar.total:
            self.bar.total = progress.total
        self.bar.update(progress.current - self.bar.n)

    def close(self) -> None:
        if self.bar is not None:
            self.finished[self._phase] = self.bar.n
            self.bar.close()
            self.bar = None

    def __enter__(self) -> "IndexProgressBar":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
