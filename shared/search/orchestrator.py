"""
Opportunity search orchestration.

One search runs through these steps:
1. Consult the search rate limiter for the caller
2. Look up the canonical filter key in the result cache
3. On a miss, fetch from SAM.gov and cache the full upstream record list
4. If a semantic query is present, embed it and every record, rank by
   cosine similarity, keep positive scores only and truncate to top N.
   Each distinct record text is embedded once; the first embedding
   failure cancels the rest.

The cache always holds the pre-ranking list, so a hit skips the upstream
fetch but still honours the caller's semantic query. Embedding failures
during ranking degrade to the unranked list instead of failing the search.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from shared.contracts.search import SearchFilters, SearchResult
from shared.errors import GatewayError, ValidationError
from shared.llm_adapter.embeddings import EmbeddingClient
from shared.llm_adapter.models import EmbeddingBackend
from shared.observability.metrics import search_cache_lookups, semantic_fallbacks
from shared.ranking.similarity import rank
from shared.sam.opportunities import SamOpportunitySource
from shared.utils.rate_limiter import FixedWindowRateLimiter
from shared.utils.ttl_cache import ResultCache, canonical_key

logger = logging.getLogger(__name__)

DEFAULT_TOP_N = 25


def opportunity_text(record: dict[str, Any]) -> str:
    parts = (record.get("title"), record.get("description"), record.get("synopsis"))
    return " ".join(str(p or "") for p in parts)


class SearchOrchestrator:
    def __init__(
        self,
        source: SamOpportunitySource,
        embeddings: EmbeddingClient,
        rate_limiter: FixedWindowRateLimiter | None = None,
        cache: ResultCache[list[dict[str, Any]]] | None = None,
        top_n: int = DEFAULT_TOP_N,
    ) -> None:
        self._source = source
        self._embeddings = embeddings
        self._rate_limiter = rate_limiter
        self._cache = cache if cache is not None else ResultCache()
        self.top_n = top_n

    @property
    def cache(self) -> ResultCache[list[dict[str, Any]]]:
        return self._cache

    async def search(
        self,
        filters: SearchFilters,
        sam_api_key: str | None,
        semantic_query: str | None = None,
        embedding_backend: EmbeddingBackend | str | None = None,
        embedding_api_key: str | None = None,
        caller: str | None = None,
    ) -> SearchResult:
        if self._rate_limiter is not None:
            self._rate_limiter.check(caller)
        if not sam_api_key:
            raise ValidationError("SAM API key is required")

        key = canonical_key(filters.cache_fields())
        records = self._cache.get(key)
        cached = records is not None

        if records is None:
            search_cache_lookups.labels(result="miss").inc()
            records = await self._source.search(filters, sam_api_key)
            self._cache.put(key, records)
            logger.info("Fetched %d opportunities from SAM.gov", len(records))
        else:
            search_cache_lookups.labels(result="hit").inc()
            logger.debug("Search cache HIT for key %s", key[:24])

        opportunities = [dict(r) for r in records]
        ranked = False
        if semantic_query and semantic_query.strip() and opportunities:
            ranked_list = await self._rank_or_fallback(
                opportunities,
                semantic_query.strip(),
                embedding_backend or EmbeddingBackend.OPENAI,
                embedding_api_key,
            )
            if ranked_list is not None:
                opportunities = ranked_list
                ranked = True

        return SearchResult(
            opportunities=opportunities,
            total_count=len(records),
            limit=filters.limit,
            offset=filters.offset,
            cached=cached,
            ranked=ranked,
        )

    async def _rank_or_fallback(
        self,
        opportunities: list[dict[str, Any]],
        query: str,
        backend: EmbeddingBackend | str,
        api_key: str | None,
    ) -> list[dict[str, Any]] | None:
        try:
            return await self.rank_opportunities(opportunities, query, backend, api_key)
        except GatewayError as exc:
            semantic_fallbacks.inc()
            logger.warning("Semantic ranking failed (%s), returning upstream order", exc.kind)
            return None

    async def rank_opportunities(
        self,
        opportunities: list[dict[str, Any]],
        query: str,
        backend: EmbeddingBackend | str,
        api_key: str | None,
    ) -> list[dict[str, Any]]:
        """Rank by similarity to ``query``; drops non-positive scores, keeps top N."""
        query_vector = await self._embeddings.embed(query, backend, api_key)

        texts = [opportunity_text(o) for o in opportunities]
        unique = list(dict.fromkeys(texts))
        tasks = [
            asyncio.ensure_future(self._embeddings.embed(text, backend, api_key))
            for text in unique
        ]
        try:
            vectors = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise
        by_text = dict(zip(unique, vectors))

        scored = rank(query_vector, [(o, by_text[t]) for o, t in zip(opportunities, texts)])

        ranked: list[dict[str, Any]] = []
        for record, score in scored:
            if score <= 0:
                continue
            ranked.append({**record, "relevanceScore": score})
            if len(ranked) >= self.top_n:
                break
        return ranked
