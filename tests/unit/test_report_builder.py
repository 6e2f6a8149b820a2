"""
Unit tests -- report builder: ordering, filter conjunction, filter absence.
"""
from ga4_copilot.copilot.normalizer import ReportRow, normalize_rows
from ga4_copilot.copilot.report_builder import (
    AndGroup,
    MATCH_TYPE,
    ReportSpec,
    build_report_spec,
)
from ga4_copilot.copilot.spec import QueryRequest


def _query(**overrides) -> QueryRequest:
    base = {
        "metrics": ["activeUsers"],
        "dimensions": ["city"],
        "start_date": "2024-06-01",
        "end_date": "2024-06-07",
    }
    base.update(overrides)
    return QueryRequest(**base)


def test_returns_report_spec():
    assert isinstance(build_report_spec(_query()), ReportSpec)


def test_preserves_metric_and_dimension_order():
    spec = build_report_spec(_query(
        metrics=["sessions", "activeUsers", "bounceRate"],
        dimensions=["date", "city", "deviceCategory"],
    ))
    assert spec.metrics == ("sessions", "activeUsers", "bounceRate")
    assert spec.dimensions == ("date", "city", "deviceCategory")


def test_date_range():
    spec = build_report_spec(_query(start_date="7daysAgo", end_date="today"))
    assert spec.date_range.start_date == "7daysAgo"
    assert spec.date_range.end_date == "today"



def test_no_filters_means_no_filter():
    assert build_report_spec(_query()).dimension_filter is None


def test_empty_filters_means_no_filter_not_empty_group():
    spec = build_report_spec(_query(filters={}))
    assert spec.dimension_filter is None
    assert "dimensionFilter" not in spec.as_dict()


def test_filters_become_and_group():
    spec = build_report_spec(_query(filters={"city": "madrid", "deviceCategory": "mobile"}))
    group = spec.dimension_filter
    assert isinstance(group, AndGroup)
    assert len(group.expressions) == 2
    by_field = {e.field_name: e for e in group.expressions}
    assert by_field["city"].value == "madrid"
    assert by_field["deviceCategory"].value == "mobile"


def test_filters_are_case_insensitive_loose_match():
    spec = build_report_spec(_query(filters={"city": "Madrid"}))
    match = spec.dimension_filter.expressions[0]
    assert match.case_sensitive is False
    assert match.match_type == MATCH_TYPE == "MATCH_TYPE_UNSPECIFIED"



def test_as_dict_rest_shape():
    body = build_report_spec(_query(filters={"city": "Madrid"})).as_dict()
    assert body["metrics"] == [{"name": "activeUsers"}]
    assert body["dimensions"] == [{"name": "city"}]
    assert body["dateRanges"] == [{"startDate": "2024-06-01", "endDate": "2024-06-07"}]
    expr = body["dimensionFilter"]["andGroup"]["expressions"][0]["filter"]
    assert expr["fieldName"] == "city"
    assert expr["stringFilter"] == {
        "matchType": "MATCH_TYPE_UNSPECIFIED",
        "value": "Madrid",
        "caseSensitive": False,
    }



def test_build_then_normalize_recovers_positions():
    spec = build_report_spec(_query(metrics=["activeUsers"], dimensions=["city"]))
    rows = normalize_rows(
        [ReportRow(dimension_values=["Madrid"], metric_values=["42"])],
        spec.metrics,
        spec.dimensions,
    )
    assert rows == [{"city": "Madrid", "activeUsers": "42"}]


def test_build_then_normalize_multi_field():
    spec = build_report_spec(_query(
        metrics=["sessions", "bounceRate"],
        dimensions=["country", "city"],
    ))
    rows = normalize_rows(
        [
            ReportRow(["Spain", "Madrid"], ["120", "35.5"]),
            ReportRow(["Spain", "Bilbao"], ["8", "90.1"]),
        ],
        spec.metrics,
        spec.dimensions,
    )
    assert rows[0] == {"country": "Spain", "city": "Madrid", "sessions": "120", "bounceRate": "35.5"}
    assert rows[1]["city"] == "Bilbao"
    assert rows[1]["bounceRate"] == "90.1"
