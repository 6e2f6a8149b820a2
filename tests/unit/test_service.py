"""
Unit tests -- copilot service: routing, structured pipeline, conversational round trip.
The report backend is replaced by a recorder; the LLM runs in mock mode.
"""
import logging

import pytest

from ga4_copilot.copilot import service
from ga4_copilot.copilot.llm_client import LLMReply, ToolCall
from ga4_copilot.copilot.normalizer import ReportRow
from ga4_copilot.copilot.service import AskResult, QueryResult, handle, parse_tool_arguments, run_query
from ga4_copilot.copilot.spec import QueryRequest
from ga4_copilot.copilot.tool import TOOL_NAME
from ga4_copilot.core.errors import (
    BackendError,
    ExtractionError,
    QueryValidationError,
    Stage,
    SummarizationError,
)

BOUNCE_BY_CITY = {
    "metrics": ["bounceRate"],
    "dimensions": ["city"],
    "startDate": "2024-06-01",
    "endDate": "2024-06-07",
}

MADRID_BILBAO = [ReportRow(["Madrid"], ["85"]), ReportRow(["Bilbao"], ["10"])]


def _model_replies(monkeypatch, reply, summary="Summary."):
    """Stub both LLM phases and record how often each ran."""
    seen = {"extract": 0, "summarize": []}

    def fake_extract(message, provider=None):
        seen["extract"] += 1
        return reply

    def fake_summarize(message, tool_call, result, provider=None):
        seen["summarize"].append(result)
        if isinstance(summary, Exception):
            raise summary
        return summary

    monkeypatch.setattr(service, "request_tool_call", fake_extract)
    monkeypatch.setattr(service, "summarize_tool_result", fake_summarize)
    return seen


# ── structured path ──────────────────────────────────────

def test_structured_rows_and_insights(fake_backend):
    calls = fake_backend(MADRID_BILBAO)
    result = handle(BOUNCE_BY_CITY)

    assert isinstance(result, QueryResult)
    assert result.rows == [
        {"city": "Madrid", "bounceRate": "85"},
        {"city": "Bilbao", "bounceRate": "10"},
    ]
    assert result.insights == ["1 segments have bounce rate above 80%."]
    assert len(calls) == 1
    assert calls[0].metrics == ("bounceRate",)
    assert calls[0].dimensions == ("city",)
    assert calls[0].dimension_filter is None


def test_structured_single_value_shape(fake_backend):
    calls = fake_backend([ReportRow(["Madrid"], ["2"])])
    result = handle({
        "metric": "activeUsers",
        "dimension": "city",
        "startDate": "2024-06-01",
        "endDate": "2024-06-07",
    })
    assert result.rows == [{"city": "Madrid", "activeUsers": "2"}]
    assert result.insights == ["1 segments have fewer than 3 active users."]
    assert calls[0].metrics == ("activeUsers",)


def test_structured_filters_reach_backend(fake_backend):
    calls = fake_backend([])
    handle({**BOUNCE_BY_CITY, "filters": {"city": "madrid"}})
    exprs = calls[0].dimension_filter.expressions
    assert [(e.field_name, e.value) for e in exprs] == [("city", "madrid")]


def test_zero_rows_is_success(fake_backend):
    fake_backend([])
    result = handle(BOUNCE_BY_CITY)
    assert result.rows == []
    assert result.insights == []


def test_unknown_metric_never_reaches_backend(fake_backend):
    calls = fake_backend(MADRID_BILBAO)
    with pytest.raises(QueryValidationError) as info:
        handle({**BOUNCE_BY_CITY, "metrics": ["fakeMetric"]})
    assert info.value.result.invalid_metrics == ["fakeMetric"]
    assert info.value.stage is Stage.VALIDATING
    assert calls == []


def test_unknown_filter_key_rejected(fake_backend):
    calls = fake_backend([])
    with pytest.raises(QueryValidationError) as info:
        handle({**BOUNCE_BY_CITY, "filters": {"bounceRate": "90"}})
    assert info.value.result.invalid_filter_keys == ["bounceRate"]
    assert calls == []


def test_blank_metric_entry_rejected(fake_backend):
    calls = fake_backend(MADRID_BILBAO)
    with pytest.raises(QueryValidationError) as info:
        handle({**BOUNCE_BY_CITY, "metrics": ["bounceRate", ""]})
    assert info.value.result.invalid_metrics == [""]
    assert calls == []


@pytest.mark.parametrize("value", ["", "  ", None])
def test_blank_filter_value_rejected(fake_backend, value):
    calls = fake_backend([])
    with pytest.raises(QueryValidationError) as info:
        handle({**BOUNCE_BY_CITY, "filters": {"city": value}})
    assert info.value.result.invalid_filter_values == ["city"]
    assert calls == []


def test_reversed_dates_rejected(fake_backend):
    calls = fake_backend([])
    with pytest.raises(QueryValidationError, match="after endDate"):
        handle({**BOUNCE_BY_CITY, "startDate": "2024-06-07", "endDate": "2024-06-01"})
    assert calls == []


def test_non_object_filters_rejected(fake_backend):
    fake_backend([])
    with pytest.raises(QueryValidationError) as info:
        handle({**BOUNCE_BY_CITY, "filters": ["city"]})
    assert info.value.result.invalid_fields == ["filters"]


def test_backend_exception_wrapped(monkeypatch):
    def boom(spec, backend=None):
        raise ConnectionError("socket closed")

    monkeypatch.setattr(service, "run_report", boom)
    with pytest.raises(BackendError, match="socket closed") as info:
        handle(BOUNCE_BY_CITY)
    assert info.value.stage is Stage.EXECUTING


def test_extra_row_values_surface_as_backend_error(fake_backend):
    fake_backend([ReportRow(["Madrid", "ES"], ["85"])])
    with pytest.raises(BackendError) as info:
        handle(BOUNCE_BY_CITY)
    assert info.value.stage is Stage.NORMALIZING


def test_done_stage_logged_with_wire_query(fake_backend, caplog):
    fake_backend(MADRID_BILBAO)
    with caplog.at_level(logging.INFO):
        handle(BOUNCE_BY_CITY)
    assert "stage=done" in caplog.text
    assert "'startDate': '2024-06-01'" in caplog.text


def test_run_query_accepts_built_request(fake_backend):
    fake_backend(MADRID_BILBAO)
    query = QueryRequest(**BOUNCE_BY_CITY)
    result = run_query(query)
    assert result.query == query
    assert result.latency_ms >= 0


# ── routing ──────────────────────────────────────────────

def test_structured_wins_over_message(fake_backend, monkeypatch):
    seen = _model_replies(monkeypatch, LLMReply(text="unused"))
    fake_backend(MADRID_BILBAO)
    result = handle({**BOUNCE_BY_CITY, "message": "sessions by country"})
    assert isinstance(result, QueryResult)
    assert seen["extract"] == 0


def test_partial_fields_with_message_go_conversational(fake_backend):
    fake_backend(MADRID_BILBAO)
    result = handle({"metrics": ["sessions"], "message": "bounce rate by city last 7 days"})
    assert isinstance(result, AskResult)
    assert result.query.metrics == ["bounceRate"]


def test_partial_fields_without_message_lists_missing(fake_backend):
    calls = fake_backend([])
    with pytest.raises(QueryValidationError) as info:
        handle({"metrics": ["bounceRate"]})
    assert info.value.result.missing_fields == ["startDate", "endDate", "dimensions"]
    assert calls == []


def test_empty_body_needs_message():
    with pytest.raises(QueryValidationError) as info:
        handle({})
    assert info.value.result.missing_fields == ["message"]
    assert info.value.stage is Stage.RECEIVED


def test_blank_message_needs_message():
    with pytest.raises(QueryValidationError):
        handle({"message": "   "})


# ── conversational path ──────────────────────────────────

def test_mock_round_trip(fake_backend):
    calls = fake_backend(MADRID_BILBAO)
    result = handle({"message": "bounce rate by city from 2024-06-01 to 2024-06-07"})

    assert isinstance(result, AskResult)
    assert result.result.startswith("[MOCK] 2 rows for bounceRate by city")
    assert "1 segments have bounce rate above 80%." in result.result
    assert result.rows[0] == {"city": "Madrid", "bounceRate": "85"}
    assert calls[0].date_range.start_date == "2024-06-01"


def test_model_misspelling_corrected(fake_backend, monkeypatch):
    call = ToolCall(
        id="c1",
        name=TOOL_NAME,
        arguments='{"metric": "active users", "dimension": "City", '
                  '"startDate": "2024-06-01", "endDate": "2024-06-07"}',
    )
    _model_replies(monkeypatch, LLMReply(tool_call=call))
    calls = fake_backend([])

    result = handle({"message": "usuarios activos por ciudad"})

    assert result.query.metrics == ["activeUsers"]
    assert result.query.dimensions == ["city"]
    assert calls[0].metrics == ("activeUsers",)


def test_model_invented_metric_rejected(fake_backend, monkeypatch):
    call = ToolCall("c1", TOOL_NAME, '{"metrics": ["happiness"], "dimensions": [], '
                                     '"startDate": "7daysAgo", "endDate": "today"}')
    seen = _model_replies(monkeypatch, LLMReply(tool_call=call))
    calls = fake_backend([])

    with pytest.raises(QueryValidationError) as info:
        handle({"message": "how happy are users?"})

    assert info.value.result.invalid_metrics == ["happiness"]
    assert calls == []
    assert seen["summarize"] == []


def test_no_tool_call_is_extraction_error(fake_backend, monkeypatch):
    seen = _model_replies(monkeypatch, LLMReply(text="Hello! How can I help?"))
    calls = fake_backend([])

    with pytest.raises(ExtractionError, match="Hello! How can I help?") as info:
        handle({"message": "hi"})

    assert info.value.status_code == 422
    assert calls == []
    assert seen["summarize"] == []


def test_model_service_failure_is_502(monkeypatch):
    def down(message, provider=None):
        raise TimeoutError("read timed out")

    monkeypatch.setattr(service, "request_tool_call", down)
    with pytest.raises(ExtractionError) as info:
        handle({"message": "sessions by city"})
    assert info.value.status_code == 502


def test_summarization_failure_keeps_rows(fake_backend, monkeypatch):
    call = ToolCall("c1", TOOL_NAME, '{"metrics": ["bounceRate"], "dimensions": ["city"], '
                                     '"startDate": "2024-06-01", "endDate": "2024-06-07"}')
    _model_replies(monkeypatch, LLMReply(tool_call=call), summary=TimeoutError("slow"))
    fake_backend(MADRID_BILBAO)

    with pytest.raises(SummarizationError) as info:
        handle({"message": "bounce rate by city"})

    err = info.value
    assert err.rows == [{"city": "Madrid", "bounceRate": "85"}, {"city": "Bilbao", "bounceRate": "10"}]
    assert err.insights == ["1 segments have bounce rate above 80%."]
    assert err.payload()["category"] == "summarization"


def test_summary_receives_rows_and_insights(fake_backend, monkeypatch):
    call = ToolCall("c1", TOOL_NAME, '{"metrics": ["bounceRate"], "dimensions": ["city"], '
                                     '"startDate": "2024-06-01", "endDate": "2024-06-07"}')
    seen = _model_replies(monkeypatch, LLMReply(tool_call=call), summary="Madrid bounces a lot.")
    fake_backend(MADRID_BILBAO)

    result = handle({"message": "bounce rate by city"})

    assert result.result == "Madrid bounces a lot."
    assert seen["summarize"] == [{
        "rows": [{"city": "Madrid", "bounceRate": "85"}, {"city": "Bilbao", "bounceRate": "10"}],
        "insights": ["1 segments have bounce rate above 80%."],
    }]


# ── parse_tool_arguments ─────────────────────────────────

def test_bad_json_arguments():
    with pytest.raises(ExtractionError, match="not valid JSON"):
        parse_tool_arguments(ToolCall("c1", TOOL_NAME, "{metrics: oops"))


def test_non_object_arguments():
    with pytest.raises(ExtractionError, match="JSON object"):
        parse_tool_arguments(ToolCall("c1", TOOL_NAME, '["sessions"]'))


def test_unknown_tool_name():
    with pytest.raises(ExtractionError, match="unknown tool"):
        parse_tool_arguments(ToolCall("c1", "deleteProperty", "{}"))
