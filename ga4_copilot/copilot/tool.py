"""
The ``getGa4Report`` tool declaration and the prompts around it.

The schema is provider-neutral (JSON Schema ``parameters``); llm_client wraps
it in whatever envelope each provider expects.
"""
from __future__ import annotations

import datetime
from typing import Any

from ga4_copilot.governance.schema_registry import load_registry, SchemaRegistry

TOOL_NAME = "getGa4Report"

_TOOL_DESCRIPTION = (
    "Query Google Analytics 4 data broken down by one or more metrics and "
    "dimensions over a date range, optionally filtered by dimension values."
)

_SYSTEM_PROMPT = """\
You are an analytics assistant with access to a Google Analytics 4 property. \
When the user asks about traffic, users, sessions, engagement or revenue, call \
{tool} with exact GA4 API names.

Allowed metrics: {metrics}
Allowed dimensions: {dimensions}

Today is {today}. Resolve relative periods ("last week", "June 2024") to \
YYYY-MM-DD dates. Only add filters the user asked for. If the request is not \
an analytics question, answer without calling the tool."""

_SUMMARY_INSTRUCTIONS = (
    "Answer the user's question using only the report data returned by the tool. "
    "Mention the insights when there are any. Reply in the user's language."
)


def tool_schema(registry: SchemaRegistry | None = None) -> dict[str, Any]:
    """Return ``{name, description, parameters}`` for the report tool."""
    if registry is None:
        registry = load_registry()

    metrics = ", ".join(registry.get_metric_names())
    dimensions = ", ".join(registry.get_dimension_names())
    return {
        "name": TOOL_NAME,
        "description": _TOOL_DESCRIPTION,
        "parameters": {
            "type": "object",
            "properties": {
                "metrics": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": f"GA4 metric names, in display order. One or more of: {metrics}",
                },
                "dimensions": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": f"GA4 dimension names, in display order. Zero or more of: {dimensions}",
                },
                "startDate": {"type": "string", "description": "Start date, YYYY-MM-DD"},
                "endDate": {"type": "string", "description": "End date, YYYY-MM-DD"},
                "filters": {
                    "type": "object",
                    "additionalProperties": {"type": "string"},
                    "description": "Optional dimension name -> value to match (case-insensitive).",
                },
            },
            "required": ["metrics", "dimensions", "startDate", "endDate"],
        },
    }


def system_prompt(registry: SchemaRegistry | None = None, today: datetime.date | None = None) -> str:
    if registry is None:
        registry = load_registry()
    return _SYSTEM_PROMPT.format(
        tool=TOOL_NAME,
        metrics=", ".join(registry.get_metric_names()),
        dimensions=", ".join(registry.get_dimension_names()),
        today=(today or datetime.date.today()).isoformat(),
    )


def summary_instructions() -> str:
    return _SUMMARY_INSTRUCTIONS
