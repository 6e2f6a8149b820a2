"""POST /ga4 -- structured report query or free-text question."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from fastapi import APIRouter, HTTPException

from ga4_copilot.copilot.service import AskResult, handle
from ga4_copilot.core.errors import CopilotError
from ga4_copilot.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()



class Ga4Request(BaseModel):
    """Either the structured fields or ``message``.  Single-value ``metric`` /
    ``dimension`` are accepted for older clients."""

    model_config = ConfigDict(populate_by_name=True)

    message: str | None = Field(None, max_length=2000, description="Free-text analytics question")
    metrics: list[str] | str | None = Field(None, description="GA4 metric names, e.g. ['activeUsers']")
    dimensions: list[str] | str | None = Field(None, description="GA4 dimension names, e.g. ['city']")
    metric: str | None = Field(None, description="Single metric (legacy shape)")
    dimension: str | None = Field(None, description="Single dimension (legacy shape)")
    start_date: str | None = Field(None, alias="startDate", description="YYYY-MM-DD")
    end_date: str | None = Field(None, alias="endDate", description="YYYY-MM-DD")
    filters: dict[str, str] | None = Field(None, description="Dimension -> match value (case-insensitive)")


class QueryResponse(BaseModel):
    rows: list[dict[str, str]]
    insights: list[str]


class AskResponse(BaseModel):
    result: str



@router.post("", response_model=QueryResponse | AskResponse)
def ga4_endpoint(req: Ga4Request):
    """Structured fields -> {rows, insights}; message -> {result}."""
    payload = req.model_dump(by_alias=True, exclude_none=True)
    try:
        outcome = handle(payload)
    except CopilotError as exc:
        logger.info("GA4 request rejected | category=%s stage=%s | %s",
                    exc.category, exc.stage.value if exc.stage else "-", exc.message)
        raise
    except Exception as exc:
        logger.exception("GA4 pipeline failed")
        raise HTTPException(status_code=500, detail=str(exc))

    if isinstance(outcome, AskResult):
        return AskResponse(result=outcome.result)
    return QueryResponse(rows=outcome.rows, insights=outcome.insights)
