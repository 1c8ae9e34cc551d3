"""
Retrieval Aggregator - single- and multi-source similarity search

Search flow (multi-source):
    query ──► embed once ──┬─► unfiltered query (n) ──► keep knowledge-base sources
                           └─► owner query (n, userId=owner)   [owner non-blank]
                 ──► merge: dedupe ids, stable sort by distance, truncate to factor * n

Retrieval is best-effort: embedding or store failures produce an empty list,
never an exception.

Usage:
    aggregator = RetrievalAggregator(client, embedder, cache=SearchCache())
    results = aggregator.search_multi_source("banner fix", owner_id="u-1", n_results=5)
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable, Mapping, Optional

from vector_store.client import VectorStoreClient
from vector_store.embedder import Embedder
from vector_store.models import KNOWLEDGE_BASE_SOURCES, SearchResult

from .cache import SearchCache

logger = logging.getLogger(__name__)

DEFAULT_MERGE_FACTOR = 2


def merge_ranked(result_lists: Iterable[list[SearchResult]], limit: int) -> list[SearchResult]:
    """
    Merge ranked lists into one list ordered by ascending distance.

    A record returned by several queries is kept once, at its best distance.
    Ties keep input order.
    """
    combined = [result for results in result_lists for result in results]
    combined.sort(key=lambda r: r.distance)

    seen: set[str] = set()
    merged: list[SearchResult] = []
    for result in combined:
        if result.id in seen:
            continue
        seen.add(result.id)
        merged.append(result)
        if len(merged) >= limit:
            break
    return merged


class RetrievalAggregator:
    """Issues and merges similarity queries against one collection."""

    def __init__(
        self,
        client: VectorStoreClient,
        embedder: Embedder,
        cache: Optional[SearchCache] = None,
        merge_factor: int = DEFAULT_MERGE_FACTOR,
        knowledge_sources: Iterable[str] = KNOWLEDGE_BASE_SOURCES,
        parallel_queries: bool = False,
    ):
        """
        Args:
            client: Vector store client.
            embedder: Anything with embed(text) -> list[float].
            cache: Optional multi-source search cache.
            merge_factor: Multi-source output is capped at merge_factor * n_results.
            knowledge_sources: `source` values kept from the broad query.
            parallel_queries: Run the two multi-source queries concurrently.
        """
        if merge_factor < 1:
            raise ValueError("merge_factor must be at least 1")
        self.client = client
        self.embedder = embedder
        self.cache = cache
        self.merge_factor = merge_factor
        self.knowledge_sources = frozenset(knowledge_sources)
        self.parallel_queries = parallel_queries

    def _embed(self, query: str) -> Optional[list[float]]:
        if not query or not query.strip():
            return None
        try:
            return self.embedder.embed(query)
        except Exception as e:
            logger.error("Query embedding failed, returning no results: %s", e)
            return None

    def search_single_source(
        self,
        query: str,
        n_results: int,
        where: Optional[Mapping[str, Any]] = None,
    ) -> list[SearchResult]:
        """One embed, one query; backend order is passed through."""
        if n_results <= 0:
            return []
        embedding = self._embed(query)
        if embedding is None:
            return []
        return self.client.query(embedding, n_results, where)

    def search_relevant_context(self, query: str, owner_id: str, n_results: int) -> list[SearchResult]:
        """Search only the given owner's records."""
        if not owner_id or not owner_id.strip():
            logger.warning("Owner-scoped search without owner id, returning no results")
            return []
        return self.search_single_source(query, n_results, where={"userId": owner_id})

    def search_knowledge_base(
        self,
        query: str,
        n_results: int,
        source_filter: Optional[str] = None,
    ) -> list[SearchResult]:
        """
        Search the curated knowledge base.

        With a source filter this is a single filtered query. Without one,
        each knowledge-base source is queried and the hits merged, so owner
        documents and conversation turns never appear.
        """
        if source_filter:
            return self.search_single_source(query, n_results, where={"source": source_filter})

        if n_results <= 0:
            return []
        embedding = self._embed(query)
        if embedding is None:
            return []

        per_source = [
            self.client.query(embedding, n_results, {"source": source})
            for source in sorted(self.knowledge_sources)
        ]
        return merge_ranked(per_source, n_results)

    def search_multi_source(self, query: str, owner_id: Optional[str], n_results: int) -> list[SearchResult]:
        """
        Knowledge-base hits plus the owner's own records, merged and ranked.

        Returns at most merge_factor * n_results results in ascending
        distance order.
        """
        if n_results <= 0:
            return []

        key = ("multi", query, owner_id or "", n_results)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Search cache hit: %r", key)
                return cached
            generation = self.cache.generation

        embedding = self._embed(query)
        if embedding is None:
            return []

        kb_hits, owner_hits = self._run_queries(embedding, owner_id, n_results)
        merged = merge_ranked([kb_hits, owner_hits], self.merge_factor * n_results)

        logger.info(
            "Multi-source search: %d knowledge-base + %d owner hits -> %d results",
            len(kb_hits), len(owner_hits), len(merged),
        )

        # Empty lists are not cached: they may come from a degraded store.
        if self.cache is not None and merged:
            self.cache.put(key, merged, generation)
        return merged

    def _run_queries(
        self,
        embedding: list[float],
        owner_id: Optional[str],
        n_results: int,
    ) -> tuple[list[SearchResult], list[SearchResult]]:
        has_owner = bool(owner_id and owner_id.strip())

        def broad() -> list[SearchResult]:
            hits = self.client.query(embedding, n_results)
            return [r for r in hits if r.source in self.knowledge_sources]

        def owned() -> list[SearchResult]:
            if not has_owner:
                return []
            return self.client.query(embedding, n_results, {"userId": owner_id})

        if self.parallel_queries and has_owner:
            with ThreadPoolExecutor(max_workers=2, thread_name_prefix="search") as pool:
                broad_future = pool.submit(broad)
                owned_future = pool.submit(owned)
                return broad_future.result(), owned_future.result()

        return broad(), owned()
