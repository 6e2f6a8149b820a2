"""
Report executor -- runs a ReportSpec against the configured backend.

Backends:
  mock -- deterministic synthetic rows (offline dev, demos)
  ga4  -- Google Analytics Data API ``runReport``

Every call returns ``ReportRow`` objects whose value lists follow the
ReportSpec's dimension / metric order.  Failures are raised as
``BackendError`` carrying the backend's message.
"""
from __future__ import annotations

import datetime
import hashlib
import itertools
import random
from typing import Any, Callable

from faker import Faker
from google.analytics.data_v1beta import types as ga4
from google.api_core import exceptions as core_exceptions
from google.api_core import retry as retries
from google.auth import exceptions as auth_exceptions

from ga4_copilot.backend.credentials import get_client
from ga4_copilot.copilot.normalizer import ReportRow
from ga4_copilot.copilot.report_builder import ReportSpec
from ga4_copilot.core.config import get_settings
from ga4_copilot.core.errors import BackendError
from ga4_copilot.core.logging import get_logger

logger = get_logger(__name__)

_MAX_MOCK_ROWS = 25


# ── GA4 ──────────────────────────────────────────────────

def to_run_report_request(spec: ReportSpec, property_name: str) -> ga4.RunReportRequest:
    """Translate a ReportSpec into the Data API request message."""
    request = ga4.RunReportRequest(
        property=property_name,
        dimensions=[ga4.Dimension(name=d) for d in spec.dimensions],
        metrics=[ga4.Metric(name=m) for m in spec.metrics],
        date_ranges=[ga4.DateRange(
            start_date=spec.date_range.start_date,
            end_date=spec.date_range.end_date,
        )],
    )
    if spec.dimension_filter is not None:
        request.dimension_filter = ga4.FilterExpression(
            and_group=ga4.FilterExpressionList(
                expressions=[
                    ga4.FilterExpression(
                        filter=ga4.Filter(
                            field_name=e.field_name,
                            string_filter=ga4.Filter.StringFilter(
                                value=e.value,
                                match_type=ga4.Filter.StringFilter.MatchType[e.match_type],
                                case_sensitive=e.case_sensitive,
                            ),
                        )
                    )
                    for e in spec.dimension_filter.expressions
                ]
            )
        )
    return request


def _transient_retry(timeout: float) -> retries.Retry:
    """Backoff on transient errors only (429/500/503 class), within the call timeout."""
    return retries.Retry(
        predicate=retries.if_transient_error,
        initial=0.5,
        maximum=4.0,
        multiplier=2.0,
        timeout=timeout,
    )


def _run_ga4(spec: ReportSpec) -> list[ReportRow]:
    settings = get_settings()
    request = to_run_report_request(spec, settings.ga4_property)
    timeout = settings.report_timeout_seconds

    try:
        response = get_client().run_report(
            request=request,
            retry=_transient_retry(timeout),
            timeout=timeout,
        )
    except core_exceptions.GoogleAPIError as exc:
        raise BackendError(f"GA4 report failed: {getattr(exc, 'message', None) or exc}") from exc
    except auth_exceptions.GoogleAuthError as exc:
        raise BackendError(f"GA4 authentication failed: {exc}") from exc

    return [
        ReportRow(
            dimension_values=[v.value for v in row.dimension_values],
            metric_values=[v.value for v in row.metric_values],
        )
        for row in response.rows
    ]


# ── mock ─────────────────────────────────────────────────

_DIMENSION_POOLS: dict[str, list[str]] = {
    "city": ["Madrid", "Barcelona", "Bilbao", "Valencia", "Sevilla"],
    "country": ["Spain", "Mexico", "Argentina", "United States", "France"],
    "region": ["Community of Madrid", "Catalonia", "Basque Country", "Andalusia"],
    "deviceCategory": ["desktop", "mobile", "tablet"],
    "browser": ["Chrome", "Safari", "Firefox", "Edge"],
    "operatingSystem": ["Windows", "iOS", "Android", "Macintosh"],
    "language": ["Spanish", "English", "French"],
    "sessionSource": ["google", "(direct)", "newsletter", "facebook.com"],
    "sessionMedium": ["organic", "(none)", "email", "referral"],
    "sessionDefaultChannelGroup": ["Organic Search", "Direct", "Email", "Referral"],
    "eventName": ["page_view", "session_start", "scroll", "click"],
}

_RATE_METRICS = {"bounceRate", "engagementRate"}


def _seed_for(spec: ReportSpec) -> int:
    digest = hashlib.sha256(repr(spec).encode("utf-8")).hexdigest()
    return int(digest[:12], 16)


def _mock_dates(spec: ReportSpec) -> list[str]:
    try:
        start = datetime.date.fromisoformat(spec.date_range.start_date)
        end = datetime.date.fromisoformat(spec.date_range.end_date)
    except ValueError:
        end = datetime.date.today()
        start = end - datetime.timedelta(days=6)
    days = max((end - start).days, 0) + 1
    return [(start + datetime.timedelta(days=i)).strftime("%Y%m%d") for i in range(min(days, 31))]


def _mock_pool(name: str, spec: ReportSpec, fake: Faker) -> list[str]:
    if name == "date":
        return _mock_dates(spec)
    if name in _DIMENSION_POOLS:
        return _DIMENSION_POOLS[name]
    if name in ("pagePath", "landingPage"):
        return [fake.uri_path() for _ in range(4)]
    return [fake.sentence(nb_words=3).rstrip(".") for _ in range(4)]


def _mock_metric_value(name: str, rng: random.Random) -> str:
    if name in _RATE_METRICS:
        return f"{rng.uniform(5, 95):.2f}"
    if name == "averageSessionDuration":
        return f"{rng.uniform(10, 400):.1f}"
    if name == "sessionsPerUser":
        return f"{rng.uniform(1, 3):.2f}"
    if name == "totalRevenue":
        return f"{rng.uniform(0, 5000):.2f}"
    return str(rng.randint(0, 500))


def _matches(value: str, needle: str) -> bool:
    return needle.lower() in value.lower()


def _run_mock(spec: ReportSpec) -> list[ReportRow]:
    logger.info("Report mock mode -- synthetic rows")
    seed = _seed_for(spec)
    rng = random.Random(seed)
    fake = Faker()
    fake.seed_instance(seed)

    pools = [_mock_pool(d, spec, fake) for d in spec.dimensions]
    combos: Any = itertools.product(*pools) if pools else [()]

    rows: list[ReportRow] = []
    for combo in combos:
        if spec.dimension_filter is not None:
            by_name = dict(zip(spec.dimensions, combo))
            if not all(
                e.field_name in by_name and _matches(by_name[e.field_name], e.value)
                for e in spec.dimension_filter.expressions
            ):
                continue
        rows.append(ReportRow(
            dimension_values=list(combo),
            metric_values=[_mock_metric_value(m, rng) for m in spec.metrics],
        ))
        if len(rows) >= _MAX_MOCK_ROWS:
            break
    return rows


_BACKENDS: dict[str, Callable[[ReportSpec], list[ReportRow]]] = {
    "mock": _run_mock,
    "ga4": _run_ga4,
}


def run_report(spec: ReportSpec, backend: str | None = None) -> list[ReportRow]:
    """Execute *spec* and return the backend rows.

    Raises
    ------
    BackendError
        If the backend call fails for any reason.
    """
    if backend is None:
        backend = get_settings().report_backend.lower()

    fn = _BACKENDS.get(backend)
    if fn is None:
        raise BackendError(
            f"Report backend '{backend}' is not supported.  "
            f"Choose from: {', '.join(_BACKENDS)}"
        )

    logger.info("Running report backend=%s spec=%s", backend, spec.as_dict())
    rows = fn(spec)
    logger.info("Returned %d rows", len(rows))
    return rows
