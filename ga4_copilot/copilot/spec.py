"""
QueryRequest -- the structured representation shared by the direct API path
and the language-model path.
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class QueryRequest(BaseModel):
    """One validated GA4 report query."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    metrics: list[str] = Field(..., min_length=1, description="Ordered metric names, e.g. ['activeUsers']")
    dimensions: list[str] = Field(default_factory=list, description="Ordered dimension names, e.g. ['city']")
    start_date: str = Field(..., alias="startDate", description="YYYY-MM-DD or a GA4 relative date")
    end_date: str = Field(..., alias="endDate", description="YYYY-MM-DD or a GA4 relative date")
    filters: dict[str, str] = Field(
        default_factory=dict,
        description="Dimension -> match value, e.g. {'city': 'madrid'}",
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump with the camelCase names used by the HTTP API and the tool schema."""
        return self.model_dump(by_alias=True)
