"""
Copilot service -- orchestrates validate -> build -> execute -> normalize -> insight,
with a language-model round trip on each side for free-text questions.

Two paths, chosen by ``handle``:

  structured      metrics / dimensions / startDate / endDate (/ filters)
                  -> {rows, insights}
  conversational  message
                  -> tool call -> corrections -> validate -> structured pipeline
                  -> summary -> {result}

Complete structured fields take precedence over a message.  Every step runs
once; nothing is retried here.  Failures raise a ``CopilotError`` subclass
tagged with the stage that failed.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from ga4_copilot.backend.executor import run_report
from ga4_copilot.copilot.corrections import apply_corrections, normalize_shape
from ga4_copilot.copilot.insights import generate_insights
from ga4_copilot.copilot.llm_client import ToolCall, request_tool_call, summarize_tool_result
from ga4_copilot.copilot.normalizer import normalize_rows
from ga4_copilot.copilot.report_builder import build_report_spec
from ga4_copilot.copilot.spec import QueryRequest
from ga4_copilot.copilot.tool import TOOL_NAME
from ga4_copilot.core.errors import (
    BackendError,
    ExtractionError,
    QueryValidationError,
    Stage,
    SummarizationError,
)
from ga4_copilot.core.logging import get_logger
from ga4_copilot.core.utils import timer
from ga4_copilot.governance.validator import ValidationResult, validate_spec

logger = get_logger(__name__)

_STRUCTURED_KEYS = ("metrics", "metric", "dimensions", "dimension", "startDate", "endDate", "start_date", "end_date")


@dataclass
class QueryResult:
    query: QueryRequest
    rows: list[dict[str, str]] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)
    latency_ms: int = 0


@dataclass
class AskResult:
    message: str
    result: str
    query: QueryRequest
    rows: list[dict[str, str]] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)
    latency_ms: int = 0


# ── Structured pipeline ─────────────────────────────────

def _validated_query(fields: dict[str, Any]) -> QueryRequest:
    result = validate_spec(fields)
    if not result.is_valid:
        logger.info("Validation failed: %s", result.as_dict())
        raise QueryValidationError(result)
    return QueryRequest(
        metrics=fields["metrics"],
        dimensions=fields.get("dimensions") or [],
        start_date=fields["start_date"],
        end_date=fields["end_date"],
        filters=fields.get("filters") or {},
    )


def _execute(query: QueryRequest, backend: str | None) -> tuple[list[dict[str, str]], list[str]]:
    """Build -> Execute -> Normalize -> Insight for a validated query."""
    logger.debug("stage=%s", Stage.BUILDING.value)
    spec = build_report_spec(query)

    logger.debug("stage=%s", Stage.EXECUTING.value)
    try:
        report_rows = run_report(spec, backend=backend)
    except BackendError:
        raise
    except Exception as exc:
        logger.exception("Report backend call failed")
        raise BackendError(f"Report backend failed: {exc}") from exc

    logger.debug("stage=%s", Stage.NORMALIZING.value)
    rows = normalize_rows(report_rows, query.metrics, query.dimensions)

    logger.debug("stage=%s", Stage.INSIGHTING.value)
    insights = generate_insights(rows, query.metrics)
    return rows, insights


def run_query(query: QueryRequest, backend: str | None = None) -> QueryResult:
    """Validate and run an already-built QueryRequest."""
    with timer() as t:
        query = _validated_query(query.model_dump())
        rows, insights = _execute(query, backend)
    logger.info("Query done | rows=%d insights=%d | %d ms", len(rows), len(insights), t["elapsed_ms"])
    return QueryResult(query=query, rows=rows, insights=insights, latency_ms=t["elapsed_ms"])


def run_structured(payload: dict[str, Any], backend: str | None = None) -> QueryResult:
    """Structured entry point: raw request fields, list or single-value shape."""
    try:
        fields = normalize_shape(payload)
    except ValueError as exc:
        raise QueryValidationError(ValidationResult(invalid_fields=["filters"])) from exc

    with timer() as t:
        query = _validated_query(fields)
        rows, insights = _execute(query, backend)
    logger.info("Structured query done | rows=%d insights=%d | %d ms", len(rows), len(insights), t["elapsed_ms"])
    return QueryResult(query=query, rows=rows, insights=insights, latency_ms=t["elapsed_ms"])


# ── Conversational pipeline ─────────────────────────────

def parse_tool_arguments(tool_call: ToolCall) -> dict[str, Any]:
    """Decode the model's JSON arguments.  They are untrusted until validated."""
    if tool_call.name != TOOL_NAME:
        raise ExtractionError(f"Language model called unknown tool '{tool_call.name}'.")
    try:
        args = json.loads(tool_call.arguments or "")
    except json.JSONDecodeError as exc:
        raise ExtractionError(f"Tool arguments are not valid JSON: {exc}") from exc
    if not isinstance(args, dict):
        raise ExtractionError("Tool arguments must be a JSON object.")
    return args


def _extract_query(message: str, provider: str | None) -> tuple[ToolCall, QueryRequest]:
    """Extracting -> Validating(2): text -> tool call -> corrected, validated query."""
    try:
        reply = request_tool_call(message, provider=provider)
    except Exception as exc:
        logger.exception("Language model extraction call failed")
        raise ExtractionError(f"Language model request failed: {exc}", status_code=502) from exc

    if reply.tool_call is None:
        detail = f" Model replied: {reply.text.strip()}" if reply.text.strip() else ""
        raise ExtractionError("The language model did not produce an actionable query." + detail)

    args = parse_tool_arguments(reply.tool_call)
    logger.info("Tool call %s args=%s", reply.tool_call.name, args)
    try:
        fields = apply_corrections(normalize_shape(args))
    except ValueError as exc:
        raise ExtractionError(f"Tool arguments do not match {TOOL_NAME}: {exc}") from exc

    return reply.tool_call, _validated_query(fields)


def ask(message: str, provider: str | None = None, backend: str | None = None) -> AskResult:
    """End-to-end: free-text question -> natural-language answer.

    Parameters
    ----------
    message : str
        The user's question, in any language the model understands.
    provider : str, optional
        LLM provider override -- "mock", "openai" or "anthropic".
    backend : str, optional
        Report backend override -- "mock" or "ga4".
    """
    message = (message or "").strip()
    if not message:
        raise QueryValidationError(ValidationResult(missing_fields=["message"]), stage=Stage.RECEIVED)

    logger.info("Copilot.ask | message=%s | provider=%s", message[:120], provider)
    with timer() as t:
        tool_call, query = _extract_query(message, provider)
        rows, insights = _execute(query, backend)

        logger.debug("stage=%s", Stage.SUMMARIZING.value)
        try:
            answer = summarize_tool_result(
                message, tool_call, {"rows": rows, "insights": insights}, provider=provider,
            )
        except Exception as exc:
            logger.exception("Language model summarization call failed")
            raise SummarizationError(
                f"Summarization failed: {exc}", rows=rows, insights=insights,
            ) from exc

    logger.info("Copilot.ask done | rows=%d | %d ms", len(rows), t["elapsed_ms"])
    return AskResult(
        message=message,
        result=answer,
        query=query,
        rows=rows,
        insights=insights,
        latency_ms=t["elapsed_ms"],
    )


# ── Entry point ─────────────────────────────────────────

def _has_complete_structured(payload: dict[str, Any]) -> bool:
    def present(*keys: str) -> bool:
        return any(payload.get(k) not in (None, "") for k in keys)

    return (
        present("metrics", "metric")
        and any(k in payload and payload[k] is not None for k in ("dimensions", "dimension"))
        and present("startDate", "start_date")
        and present("endDate", "end_date")
    )


def handle(
    payload: dict[str, Any],
    provider: str | None = None,
    backend: str | None = None,
) -> QueryResult | AskResult:
    """Route one request body to the structured or conversational path."""
    logger.debug("stage=%s", Stage.RECEIVED.value)
    message = payload.get("message")
    outcome: QueryResult | AskResult | None = None
    if _has_complete_structured(payload):
        if message:
            logger.info("Both structured fields and message given -- structured wins")
        outcome = run_structured(payload, backend=backend)
    elif isinstance(message, str) and message.strip():
        outcome = ask(message, provider=provider, backend=backend)

    if outcome is not None:
        logger.info("stage=%s | query=%s", Stage.DONE.value, outcome.query.to_wire())
        return outcome

    if any(k in payload for k in _STRUCTURED_KEYS):
        try:
            fields = normalize_shape(payload)
        except ValueError:
            fields = {}
        missing = validate_spec(fields).missing_fields
        if not any(payload.get(k) is not None for k in ("dimensions", "dimension")):
            missing = missing + ["dimensions"]
        raise QueryValidationError(ValidationResult(missing_fields=missing), stage=Stage.RECEIVED)

    raise QueryValidationError(ValidationResult(missing_fields=["message"]), stage=Stage.RECEIVED)
