"""
Request-shape normalization and the fixed correction table for model output.

Two separate passes:

``normalize_shape``
    Accepts both the list shape (``metrics``/``dimensions``) and the older
    single-value shape (``metric``/``dimension``), camelCase or snake_case
    date keys, and returns one internal dict with list-valued fields.

``apply_corrections``
    Maps cosmetic misspellings produced by the language model (case and
    whitespace only, plus a few well-known GA4 aliases) onto canonical
    allow-listed names.  Only the entries below are corrected; anything else
    is passed through untouched and left for the validator to reject.
"""
from __future__ import annotations

import re
from typing import Any

_WS_RE = re.compile(r"\s+")

# squashed form -> canonical metric name
METRIC_CORRECTIONS: dict[str, str] = {
    "activeusers": "activeUsers",
    "newusers": "newUsers",
    "totalusers": "totalUsers",
    "users": "totalUsers",
    "sessions": "sessions",
    "engagedsessions": "engagedSessions",
    "engagementrate": "engagementRate",
    "bouncerate": "bounceRate",
    "averagesessionduration": "averageSessionDuration",
    "sessionsperuser": "sessionsPerUser",
    "screenpageviews": "screenPageViews",
    "pageviews": "screenPageViews",
    "eventcount": "eventCount",
    "conversions": "conversions",
    "totalrevenue": "totalRevenue",
    "revenue": "totalRevenue",
    "userengagementduration": "userEngagementDuration",
}

# squashed form -> canonical dimension name
DIMENSION_CORRECTIONS: dict[str, str] = {
    "city": "city",
    "country": "country",
    "region": "region",
    "date": "date",
    "devicecategory": "deviceCategory",
    "device": "deviceCategory",
    "browser": "browser",
    "operatingsystem": "operatingSystem",
    "os": "operatingSystem",
    "language": "language",
    "pagepath": "pagePath",
    "pagetitle": "pageTitle",
    "landingpage": "landingPage",
    "sessionsource": "sessionSource",
    "source": "sessionSource",
    "sessionmedium": "sessionMedium",
    "medium": "sessionMedium",
    "sessiondefaultchannelgroup": "sessionDefaultChannelGroup",
    "channel": "sessionDefaultChannelGroup",
    "eventname": "eventName",
}


def _squash(name: str) -> str:
    return _WS_RE.sub("", name).lower()


def correct_metric(name: str) -> str:
    return METRIC_CORRECTIONS.get(_squash(name), name)


def correct_dimension(name: str) -> str:
    return DIMENSION_CORRECTIONS.get(_squash(name), name)


def _as_list(value: Any) -> list[str]:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return ["" if v is None else str(v) for v in value]
    return [str(value)]


def _first(raw: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if raw.get(key) not in (None, "", []):
            return raw[key]
    return None


def normalize_shape(raw: dict[str, Any]) -> dict[str, Any]:
    """Collapse the accepted request shapes into one internal dict.

    Raises
    ------
    ValueError
        If ``filters`` is present but is not an object.
    """
    filters = raw.get("filters")
    if filters in (None, "", []):
        filters = {}
    if not isinstance(filters, dict):
        raise ValueError("'filters' must be an object mapping dimension name to match value.")

    start = _first(raw, "startDate", "start_date")
    end = _first(raw, "endDate", "end_date")
    return {
        "metrics": _as_list(_first(raw, "metrics", "metric")),
        "dimensions": _as_list(_first(raw, "dimensions", "dimension")),
        "start_date": str(start) if start is not None else None,
        "end_date": str(end) if end is not None else None,
        "filters": {str(k): "" if v is None else str(v) for k, v in filters.items()},
    }


def apply_corrections(fields: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of normalized *fields* with the correction table applied."""
    corrected = dict(fields)
    corrected["metrics"] = [correct_metric(m) for m in fields.get("metrics", [])]
    corrected["dimensions"] = [correct_dimension(d) for d in fields.get("dimensions", [])]
    corrected["filters"] = {
        correct_dimension(k): v for k, v in (fields.get("filters") or {}).items()
    }
    return corrected
