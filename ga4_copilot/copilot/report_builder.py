"""
Report builder -- QueryRequest -> ReportSpec.

The ReportSpec is backend-facing: ordered name lists, one date range and an
optional AND group of per-dimension string matches.  The metric and
dimension order here is the order the backend answers in, and the row
normalizer relies on it, so nothing in this module may reorder them.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ga4_copilot.copilot.spec import QueryRequest

# Loose match; the backend decides substring vs exact.
MATCH_TYPE = "MATCH_TYPE_UNSPECIFIED"


@dataclass(frozen=True)
class DateRange:
    start_date: str
    end_date: str


@dataclass(frozen=True)
class StringMatch:
    field_name: str
    value: str
    match_type: str = MATCH_TYPE
    case_sensitive: bool = False


@dataclass(frozen=True)
class AndGroup:
    expressions: tuple[StringMatch, ...]


@dataclass(frozen=True)
class ReportSpec:
    metrics: tuple[str, ...]
    dimensions: tuple[str, ...]
    date_range: DateRange
    # None means "no filter". An empty AndGroup is never built.
    dimension_filter: AndGroup | None = None

    def as_dict(self) -> dict[str, Any]:
        """Render in the GA4 Data API REST shape (for logs and debugging)."""
        body: dict[str, Any] = {
            "dimensions": [{"name": d} for d in self.dimensions],
            "metrics": [{"name": m} for m in self.metrics],
            "dateRanges": [{
                "startDate": self.date_range.start_date,
                "endDate": self.date_range.end_date,
            }],
        }
        if self.dimension_filter is not None:
            body["dimensionFilter"] = {
                "andGroup": {
                    "expressions": [
                        {
                            "filter": {
                                "fieldName": e.field_name,
                                "stringFilter": {
                                    "matchType": e.match_type,
                                    "value": e.value,
                                    "caseSensitive": e.case_sensitive,
                                },
                            }
                        }
                        for e in self.dimension_filter.expressions
                    ]
                }
            }
        return body


def _build_filter(filters: dict[str, str]) -> AndGroup | None:
    if not filters:
        return None
    return AndGroup(
        expressions=tuple(StringMatch(field_name=k, value=v) for k, v in filters.items())
    )


def build_report_spec(query: QueryRequest) -> ReportSpec:
    """Map a validated query onto the backend report shape."""
    return ReportSpec(
        metrics=tuple(query.metrics),
        dimensions=tuple(query.dimensions),
        date_range=DateRange(start_date=query.start_date, end_date=query.end_date),
        dimension_filter=_build_filter(query.filters),
    )
