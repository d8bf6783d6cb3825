#!/usr/bin/env python3
"""Example: Crawl a website into a knowledge base and index it."""

import logging
import os
import sys

from sitekb import KnowledgeBaseService, Settings, build_embedding_provider
from sitekb.progress import CrawlProgressBar, IndexProgressBar


def main():
    if len(sys.argv) < 2:
        print("Usage: example_build.py <seed-url> [name]")
        sys.exit(1)

    seed_url = sys.argv[1]
    name = sys.argv[2] if len(sys.argv) > 2 else seed_url
    depth = int(os.getenv("CRAWL_DEPTH", "2"))

    logging.basicConfig(level=os.getenv("LOG_LEVEL", "WARNING"))
    settings = Settings.from_env()

    print("=" * 60)
    print("Website Knowledge Base Builder")
    print("=" * 60)
    print(f"Seed URL:         {seed_url}")
    print(f"Store directory:  {settings.home}")
    print(f"Embeddings:       {settings.embed_provider} ({settings.embed_model})")
    print(f"Crawl depth:      {depth}")
    print(f"Max pages:        {settings.max_pages}")
    print(f"Max chunk length: {settings.chunk_size}")
    print(f"Chunk overlap:    {settings.chunk_overlap}")
    print("=" * 60)
    print()

    service = KnowledgeBaseService.from_settings(settings, embeddings=build_embedding_provider(settings))

    kb = service.create_knowledge_base(name, depth)
    added = service.add_source(kb.id, seed_url)
    if not added.success:
        print(f"Error: {added.error}", file=sys.stderr)
        service.delete_knowledge_base(kb.id)
        sys.exit(1)

    with CrawlProgressBar() as bar:
        crawl = service.crawl_source(kb.id, added.source.id, on_progress=bar)
    if not crawl.success:
        print(f"\nError during crawl: {crawl.error}", file=sys.stderr)
        sys.exit(1)

    with IndexProgressBar() as bar:
        outcome = service.index_knowledge_base(kb.id, on_progress=bar)
    if not outcome.success:
        print(f"\nError during indexing: {outcome.error}", file=sys.stderr)
        sys.exit(1)

    kb = service.get_knowledge_base(kb.id)
    source = kb.sources[0]
    print()
    print("=" * 60)
    print("Build completed successfully!")
    print("=" * 60)
    print(f"KB id:        {kb.id}")
    print(f"Page count:   {kb.total_pages}")
    print(f"Chunk count:  {outcome.chunk_count}")
    print(f"Index mode:   {outcome.mode}")
    if source.error:
        print(f"Warnings:     {source.error}")
    print("=" * 60)


if __name__ == "__main__":
    main()
