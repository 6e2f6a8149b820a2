"""
Row normalizer -- positional backend rows -> flat records keyed by field name.

A backend row carries one value per requested dimension and one per
requested metric, in request order.  ``zip_fields`` makes that pairing
explicit:

  - fewer values than names  -> the trailing names are left out of the record
  - more values than names   -> RowShapeError (the response does not line up
    with the request, so any record built from it would be misaligned)
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from ga4_copilot.core.errors import RowShapeError


@dataclass(frozen=True)
class ReportRow:
    """One backend row: parallel value lists in ReportSpec order."""

    dimension_values: list[str] = field(default_factory=list)
    metric_values: list[str] = field(default_factory=list)


def zip_fields(names: Sequence[str], values: Sequence[str], kind: str = "field") -> dict[str, str]:
    """Pair *names* with *values* by position.

    Precondition: ``len(values) <= len(names)``.
    """
    if len(values) > len(names):
        raise RowShapeError(
            f"Backend returned {len(values)} {kind} values for {len(names)} requested "
            f"{kind}s ({', '.join(names) or 'none'})."
        )
    return {name: value for name, value in zip(names, values)}


def normalize_rows(
    rows: Sequence[ReportRow],
    metrics: Sequence[str],
    dimensions: Sequence[str],
) -> list[dict[str, str]]:
    """Return one flat record per backend row, in backend order.

    Dimension values are written first and metric values second, so a metric
    overwrites a dimension that has the same name.
    """
    records: list[dict[str, str]] = []
    for row in rows:
        record = zip_fields(dimensions, row.dimension_values, "dimension")
        record.update(zip_fields(metrics, row.metric_values, "metric"))
        records.append(record)
    return records
