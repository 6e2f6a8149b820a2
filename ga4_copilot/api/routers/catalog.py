"""
GET /metrics, GET /dimensions, GET /catalog -- allow-list endpoints.
"""
from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from ga4_copilot.copilot.tool import tool_schema
from ga4_copilot.governance.schema_registry import load_registry

router = APIRouter()



class FieldItem(BaseModel):
    name: str
    description: str


class CatalogResponse(BaseModel):
    metrics: list[FieldItem]
    dimensions: list[FieldItem]
    filter_keys: list[str]
    tool: dict



@router.get("/metrics")
def list_metrics() -> dict:
    """Return the metric allow-list (names only)."""
    return {"metrics": load_registry().get_metric_names()}


@router.get("/dimensions")
def list_dimensions() -> dict:
    """Return the dimension allow-list (names only)."""
    return {"dimensions": load_registry().get_dimension_names()}


@router.get("/catalog", response_model=CatalogResponse)
def full_catalog() -> CatalogResponse:
    """Return everything a client needs to build a valid request."""
    registry = load_registry()
    return CatalogResponse(
        metrics=[FieldItem(**m) for m in registry.get_metrics_list()],
        dimensions=[FieldItem(**d) for d in registry.get_dimensions_list()],
        filter_keys=registry.get_dimension_names(),
        tool=tool_schema(registry),
    )
