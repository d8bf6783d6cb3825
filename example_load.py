#!/usr/bin/env python3
"""Example: Query an indexed knowledge base."""

import os
import sys

from sitekb import KnowledgeBaseService, Settings, build_embedding_provider


def main():
    settings = Settings.from_env()
    service = KnowledgeBaseService.from_settings(settings, embeddings=build_embedding_provider(settings))

    kbs = service.list_knowledge_bases()
    if not kbs:
        print(f"Error: No knowledge bases found in {settings.home}")
        print("Run example_build.py first or set SITEKB_HOME environment variable")
        sys.exit(1)

    kb_id = os.getenv("KB_ID", kbs[0].id)
    kb = service.get_knowledge_base(kb_id)
    if kb is None:
        print(f"Error: Knowledge base not found: {kb_id}")
        sys.exit(1)

    stats = service.get_knowledge_base_index_stats(kb.id)
    print("=" * 60)
    print("Knowledge Base Query Example")
    print("=" * 60)
    print(f"KB:          {kb.name} ({kb.id})")
    print(f"Pages:       {kb.total_pages}")
    print(f"Chunks:      {stats.chunk_count}")
    print(f"Index mode:  {stats.mode or 'not indexed'}")
    print(f"Indexed at:  {stats.indexed_at or '-'}")
    print()

    print("=" * 60)
    print("Enter queries (or 'quit' to exit)")
    print("=" * 60)
    print()

    while True:
        query = input("Query: ").strip()
        if not query or query.lower() in ("quit", "exit", "q"):
            break

        print()
        response = service.search_knowledge_base(kb.id, query, top_k=5)
        if not response.success:
            print(f"Error: {response.error}", file=sys.stderr)
            print()
            continue

        print(f"Top {len(response.results)} results:")
        print()
        for rank, result in enumerate(response.results, start=1):
            chunk = result.chunk
            print(f"[{rank}] Score: {result.score:.4f}")
            print(f"    Page:  {chunk.page_title}")
            print(f"    URL:   {chunk.page_url}")
            excerpt = chunk.text
            if len(excerpt) > 150:
                excerpt = excerpt[:150].rstrip() + "..."
            print(f"    Text:  {excerpt}")
            print()

    print("Goodbye!")


if __name__ == "__main__":
    main()
