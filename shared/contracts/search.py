"""
Contracts for the opportunity search path.

SearchFilters is the canonical filter set: it feeds the SAM.gov query
string and the result-cache key, so two requests with equal filters
address the same cache entry. SearchResult is what the orchestrator hands
back to the HTTP layer.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_LIMIT = 50
MAX_UPSTREAM_LIMIT = 100


class SearchFilters(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    keyword: str | None = None
    start_date: str | None = Field(default=None, alias="startDate")
    end_date: str | None = Field(default=None, alias="endDate")
    naics_code: str | None = Field(default=None, alias="naicsCode")
    state: str | None = None
    agency: str | None = None
    notice_type: str | None = Field(default=None, alias="type")
    set_aside: str | None = Field(default=None, alias="setAside")
    active: bool | None = None
    limit: int = Field(default=DEFAULT_LIMIT, ge=1)
    offset: int = Field(default=0, ge=0)

    @property
    def upstream_limit(self) -> int:
        return min(self.limit, MAX_UPSTREAM_LIMIT)

    def cache_fields(self) -> dict[str, Any]:
        """Field values for key construction; unset filters are omitted."""
        return self.model_dump(exclude_none=True)


class SearchResult(BaseModel):
    opportunities: list[dict[str, Any]] = Field(default_factory=list)
    total_count: int = 0
    limit: int = DEFAULT_LIMIT
    offset: int = 0
    cached: bool = False
    ranked: bool = False

    def envelope_data(self) -> dict[str, Any]:
        return {
            "opportunities": self.opportunities,
            "totalRecords": self.total_count,
            "limit": self.limit,
            "offset": self.offset,
            "facets": {"naicsCodes": [], "states": [], "agencies": [], "types": []},
        }
