"""
Validates query parameters against the GA4 allow-list.

Checks performed:
  1. Every requested metric exists in the registry
  2. Every requested dimension exists
  3. Every filter key is a valid dimension name, with a non-blank value
  4. Required fields are present (metrics, startDate, endDate)
  5. Dates are ISO ``YYYY-MM-DD`` or a GA4 relative token, and an ISO
     start date is not after an ISO end date

Checks 1-3 on names are ``validate``; ``validate_spec`` runs all five and
also rejects blank filter values.  Invalid names
are reported in input order, each once.
"""
from __future__ import annotations

import datetime
import re
from dataclasses import dataclass, field
from typing import Any, Iterable

from ga4_copilot.core.utils import dedupe
from ga4_copilot.governance.schema_registry import load_registry, SchemaRegistry

_RELATIVE_DATE_RE = re.compile(r"^(today|yesterday|\d+daysAgo)$")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# internal key -> name the caller used on the wire
_REQUIRED_FIELDS: dict[str, str] = {
    "metrics": "metrics",
    "start_date": "startDate",
    "end_date": "endDate",
}


@dataclass(frozen=True)
class ValidationResult:
    invalid_metrics: list[str] = field(default_factory=list)
    invalid_dimensions: list[str] = field(default_factory=list)
    invalid_filter_keys: list[str] = field(default_factory=list)
    invalid_filter_values: list[str] = field(default_factory=list)
    missing_fields: list[str] = field(default_factory=list)
    invalid_fields: list[str] = field(default_factory=list)
    invalid_dates: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not (
            self.invalid_metrics
            or self.invalid_dimensions
            or self.invalid_filter_keys
            or self.invalid_filter_values
            or self.missing_fields
            or self.invalid_fields
            or self.invalid_dates
        )

    def messages(self) -> list[str]:
        """Human-readable error lines, one per problem."""
        out: list[str] = []
        for name in self.missing_fields:
            out.append(f"Missing required field '{name}'.")
        for name in self.invalid_fields:
            out.append(f"Field '{name}' has the wrong type.")
        for name in self.invalid_metrics:
            out.append(f"Unknown metric '{name}'.")
        for name in self.invalid_dimensions:
            out.append(f"Unknown dimension '{name}'.")
        for name in self.invalid_filter_keys:
            out.append(f"Filter key '{name}' is not a recognized dimension.")
        for name in self.invalid_filter_values:
            out.append(f"Filter '{name}' has an invalid/empty value.")
        out.extend(self.invalid_dates)
        return out

    def as_dict(self) -> dict[str, list[str]]:
        return {
            "invalid_metrics": list(self.invalid_metrics),
            "invalid_dimensions": list(self.invalid_dimensions),
            "invalid_filter_keys": list(self.invalid_filter_keys),
            "invalid_filter_values": list(self.invalid_filter_values),
            "missing_fields": list(self.missing_fields),
            "invalid_fields": list(self.invalid_fields),
            "invalid_dates": list(self.invalid_dates),
        }


def validate(
    metrics: Iterable[str],
    dimensions: Iterable[str],
    filter_keys: Iterable[str],
    registry: SchemaRegistry | None = None,
) -> ValidationResult:
    """Return every name that is outside the allow-list.

    Filter keys are checked against the dimension allow-list, never against
    metrics.
    """
    if registry is None:
        registry = load_registry()

    return ValidationResult(
        invalid_metrics=dedupe([m for m in metrics if not registry.is_valid_metric(m)]),
        invalid_dimensions=dedupe([d for d in dimensions if not registry.is_valid_dimension(d)]),
        invalid_filter_keys=dedupe([k for k in filter_keys if not registry.is_valid_dimension(k)]),
    )


def _is_iso_date(value: str) -> bool:
    if not _ISO_DATE_RE.match(value):
        return False
    try:
        datetime.date.fromisoformat(value)
    except ValueError:
        return False
    return True


def _check_dates(start: Any, end: Any) -> list[str]:
    errors: list[str] = []
    for label, value in (("startDate", start), ("endDate", end)):
        if value is None:
            continue
        if not isinstance(value, str) or not (_is_iso_date(value) or _RELATIVE_DATE_RE.match(value)):
            errors.append(
                f"Invalid {label} {value!r}. "
                "Use YYYY-MM-DD, 'today', 'yesterday' or 'NdaysAgo'."
            )
    if not errors and isinstance(start, str) and isinstance(end, str):
        if _is_iso_date(start) and _is_iso_date(end) and start > end:
            errors.append(f"startDate {start} is after endDate {end}.")
    return errors


def _check_filter_values(filters: dict[str, Any]) -> list[str]:
    return [k for k, v in filters.items() if not isinstance(v, str) or not v.strip()]


def validate_spec(spec: dict[str, Any], registry: SchemaRegistry | None = None) -> ValidationResult:
    """Validate a dict with keys metrics, dimensions, start_date, end_date, filters.

    Parameters
    ----------
    spec : dict
        Candidate query parameters.  Values may be missing or ``None``.
    registry : SchemaRegistry, optional
        If None, loads the default allow-list from disk.
    """
    missing = [wire for key, wire in _REQUIRED_FIELDS.items() if not spec.get(key)]

    names = validate(
        spec.get("metrics") or [],
        spec.get("dimensions") or [],
        (spec.get("filters") or {}).keys(),
        registry,
    )
    return ValidationResult(
        invalid_metrics=names.invalid_metrics,
        invalid_dimensions=names.invalid_dimensions,
        invalid_filter_keys=names.invalid_filter_keys,
        invalid_filter_values=_check_filter_values(spec.get("filters") or {}),
        missing_fields=missing,
        invalid_dates=_check_dates(spec.get("start_date"), spec.get("end_date")),
    )
