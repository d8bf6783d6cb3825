"""Runtime configuration read from the environment."""

from __future__ import annotations

import os
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from .utils import TRUNCATION_MARKER

DEFAULT_HOME = os.path.join(os.path.expanduser("~"), ".sitekb", "knowledge")
DEFAULT_USER_AGENT = "sitekb/0.1 (Knowledge Base Crawler)"
MAX_CONTENT_SIZE = 100 * 1024


class Settings(BaseModel):
    """Knowledge base settings; see from_env() for the variable names."""
    home: str = DEFAULT_HOME
    embed_provider: Literal["none", "ollama"] = "none"
    embed_model: str = "mxbai-embed-large"
    ollama_base_url: str = "http://localhost:11434"

    chunk_size: int = Field(default=500, gt=0)
    chunk_overlap: int = Field(default=50, ge=0)
    batch_size: int = Field(default=32, gt=0)

    max_pages: int = Field(default=50, gt=0)
    crawl_timeout: float = Field(default=60.0, gt=0)
    request_timeout: float = Field(default=10.0, gt=0)
    crawl_concurrency: int = Field(default=4, ge=1, le=8)
    crawl_delay: float = Field(default=0.5, ge=0)
    user_agent: str = DEFAULT_USER_AGENT

    max_content_size: int = Field(default=MAX_CONTENT_SIZE, ge=len(TRUNCATION_MARKER))

    @model_validator(mode="after")
    def _check_overlap(self) -> "Settings":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        return self

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            home=os.getenv("SITEKB_HOME", DEFAULT_HOME),
            embed_provider=os.getenv("EMBED_PROVIDER", "none").lower(),
            embed_model=os.getenv("EMBED_MODEL", "mxbai-embed-large"),
            ollama_base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434"),
            chunk_size=int(os.getenv("MAX_LEN", "500")),
            chunk_overlap=int(os.getenv("OVERLAP", "50")),
            batch_size=int(os.getenv("BATCH_SIZE", "32")),
            max_pages=int(os.getenv("CRAWL_MAX_PAGES", "50")),
            crawl_timeout=float(os.getenv("CRAWL_TIMEOUT", "60")),
            request_timeout=float(os.getenv("REQUEST_TIMEOUT", "10")),
            crawl_concurrency=int(os.getenv("CRAWL_CONCURRENCY", "4")),
            crawl_delay=float(os.getenv("CRAWL_DELAY", "0.5")),
            max_content_size=int(os.getenv("MAX_CONTENT_SIZE", str(MAX_CONTENT_SIZE))),
        )
