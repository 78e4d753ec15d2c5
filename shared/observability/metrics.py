from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
)
from fastapi import Response


gateway_requests = Counter(
    "gateway_requests_total",
    "Inbound gateway operations by outcome",
    ["operation", "outcome"],
)

rate_limit_rejections = Counter(
    "rate_limit_rejections_total",
    "Calls rejected by a fixed-window limiter",
    ["limiter"],
)

search_cache_lookups = Counter(
    "search_cache_lookups_total",
    "Opportunity search cache lookups",
    ["result"],
)

embedding_cache_lookups = Counter(
    "embedding_cache_lookups_total",
    "Embedding cache lookups",
    ["backend", "result"],
)

upstream_latency = Histogram(
    "upstream_latency_seconds",
    "Latency of calls to external HTTP dependencies",
    ["upstream"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

llm_tokens = Counter(
    "llm_tokens_total",
    "Total LLM tokens consumed",
    ["provider", "direction"],
)

semantic_fallbacks = Counter(
    "semantic_ranking_fallbacks_total",
    "Searches that fell back to upstream order after an embedding failure",
)


def metrics_response() -> Response:
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
