"""
SAM.gov opportunity source.

Thin client for ``GET /opportunities/v2/search``. Records are passed
through as returned by SAM.gov apart from a stable ``id``, empty-string
defaults for the text fields used by semantic ranking, and a neutral
``relevanceScore`` of 0.
"""

from __future__ import annotations

import logging
from time import perf_counter
from typing import Any

import httpx

from shared.contracts.search import SearchFilters
from shared.errors import TransportError, UpstreamError, ValidationError
from shared.llm_adapter.base import extract_error_message
from shared.observability.metrics import upstream_latency

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.sam.gov"
OPPORTUNITIES_ENDPOINT = "/opportunities/v2/search"
UPSTREAM = "sam.gov"


def build_query_params(filters: SearchFilters) -> dict[str, str]:
    params: dict[str, str] = {}
    optional = {
        "q": filters.keyword,
        "postedFrom": filters.start_date,
        "postedTo": filters.end_date,
        "naicsCode": filters.naics_code,
        "state": filters.state,
        "agency": filters.agency,
        "noticeType": filters.notice_type,
        "setAside": filters.set_aside,
    }
    for name, value in optional.items():
        if value:
            params[name] = value
    if filters.active is not None:
        params["active"] = "true" if filters.active else "false"
    params["limit"] = str(filters.upstream_limit)
    params["offset"] = str(filters.offset)
    params["includeCount"] = "true"
    params["format"] = "json"
    return params


def normalize_record(record: dict[str, Any]) -> dict[str, Any]:
    return {
        **record,
        "id": record.get("noticeId") or record.get("solicitationNumber"),
        "description": record.get("description") or "",
        "synopsis": record.get("synopsis") or "",
        "relevanceScore": 0.0,
    }


class SamOpportunitySource:
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str = DEFAULT_BASE_URL,
    ) -> None:
        self._http = http_client
        self._base_url = base_url.rstrip("/")

    async def search(
        self, filters: SearchFilters, sam_api_key: str | None
    ) -> list[dict[str, Any]]:
        if not sam_api_key:
            raise ValidationError("SAM API key is required")

        started = perf_counter()
        try:
            resp = await self._http.get(
                f"{self._base_url}{OPPORTUNITIES_ENDPOINT}",
                params=build_query_params(filters),
                headers={"X-API-Key": sam_api_key, "Accept": "application/json"},
            )
        except httpx.TransportError as exc:
            logger.warning("SAM.gov transport failure: %s", type(exc).__name__)
            raise TransportError(UPSTREAM, str(exc) or type(exc).__name__) from exc
        finally:
            upstream_latency.labels(upstream=UPSTREAM).observe(perf_counter() - started)

        if not resp.is_success:
            message = extract_error_message(resp)
            logger.warning("SAM.gov returned HTTP %d", resp.status_code)
            raise UpstreamError(UPSTREAM, resp.status_code, message, body=resp.text[:2000])

        try:
            data = resp.json()
        except ValueError as exc:
            raise UpstreamError(UPSTREAM, resp.status_code, "Invalid JSON in response") from exc

        records = data.get("opportunitiesData") if isinstance(data, dict) else None
        if not records:
            return []
        return [normalize_record(r) for r in records if isinstance(r, dict)]
