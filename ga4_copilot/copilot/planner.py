"""
Planner -- deterministic keyword extraction of ``getGa4Report`` arguments.

Backs the ``mock`` LLM provider so the conversational path works offline and
in tests.  Understands a small set of English and Spanish phrasings; when no
metric is recognised it declines, exactly like a model that answers without
calling the tool.
"""
from __future__ import annotations

import datetime
import re
from typing import Any

from ga4_copilot.core.logging import get_logger

logger = get_logger(__name__)

# ── Keyword maps ─────────────────────────────────────────

_METRIC_KEYWORDS: dict[str, list[str]] = {
    "activeUsers":            ["active users", "usuarios activos", "activeusers"],
    "newUsers":               ["new users", "usuarios nuevos", "nuevos usuarios"],
    "totalUsers":             ["total users", "usuarios totales", "users", "usuarios"],
    "sessions":               ["sessions", "sesiones", "visits", "visitas"],
    "bounceRate":             ["bounce rate", "tasa de rebote", "rebote", "bounce"],
    "engagementRate":         ["engagement rate", "tasa de interacción", "engagement", "interacción"],
    "averageSessionDuration": ["session duration", "duración media", "time on site"],
    "screenPageViews":        ["page views", "pageviews", "páginas vistas", "vistas de página"],
    "conversions":            ["conversions", "conversiones", "key events"],
    "totalRevenue":           ["revenue", "ingresos", "sales", "ventas"],
}

_DIMENSION_KEYWORDS: dict[str, list[str]] = {
    "city":                       ["by city", "per city", "por ciudad", "cities", "ciudades"],
    "country":                    ["by country", "per country", "por país", "por pais", "countries", "países"],
    "deviceCategory":             ["by device", "per device", "por dispositivo", "devices", "dispositivos"],
    "browser":                    ["by browser", "por navegador", "browsers"],
    "date":                       ["by day", "per day", "daily", "por día", "por dia", "diario", "over time"],
    "pagePath":                   ["by page", "per page", "por página", "por pagina"],
    "sessionSource":              ["by source", "por fuente", "por origen"],
    "sessionDefaultChannelGroup": ["by channel", "por canal"],
}

_FILTER_PATTERNS: dict[str, re.Pattern[str]] = {
    # "city is Madrid", "ciudad: Bilbao"
    "city": re.compile(
        r"\b(?:city|ciudad)(?:\s*[=:]\s*|\s+(?:is|es)\s+)['\"]?([^\W\d_][^,.?;'\"]*?)['\"]?\s*(?=$|[,.?;])",
        re.IGNORECASE,
    ),
    "country": re.compile(
        r"\b(?:country|pa[ií]s)(?:\s*[=:]\s*|\s+(?:is|es)\s+)['\"]?([^\W\d_][^,.?;'\"]*?)['\"]?\s*(?=$|[,.?;])",
        re.IGNORECASE,
    ),
    "deviceCategory": re.compile(r"\b(?:on|en)\s+(mobile|desktop|tablet)\b", re.IGNORECASE),
}

_SPANISH_MONTHS: dict[str, int] = {
    "enero": 1, "febrero": 2, "marzo": 3, "abril": 4, "mayo": 5, "junio": 6,
    "julio": 7, "agosto": 8, "septiembre": 9, "setiembre": 9, "octubre": 10,
    "noviembre": 11, "diciembre": 12,
}

_ISO_DATE_RE = re.compile(r"\b(\d{4}-\d{2}-\d{2})\b")
# "del 1 al 7 de junio de 2024"
_SPANISH_RANGE_RE = re.compile(
    r"\bdel?\s+(\d{1,2})\s+al\s+(\d{1,2})\s+de\s+([a-záéíóú]+)\s+(?:de|del)\s+(\d{4})\b",
    re.IGNORECASE,
)
_LAST_N_DAYS_RE = re.compile(r"\b(?:last|past|[uú]ltimos)\s+(\d+)\s+(?:days|d[ií]as)\b", re.IGNORECASE)


def _detect_metrics(q: str) -> list[str]:
    """Metrics in the order they appear in the question; one keyword per metric."""
    found: list[tuple[int, str]] = []
    taken: list[tuple[int, int]] = []
    for name, keywords in _METRIC_KEYWORDS.items():
        for kw in keywords:
            pos = q.find(kw)
            if pos == -1:
                continue
            span = (pos, pos + len(kw))
            # "users" must not re-match inside "active users"
            if any(s <= span[0] < e for s, e in taken):
                continue
            found.append((pos, name))
            taken.append(span)
            break
    return [name for _, name in sorted(found)]


def _detect_dimensions(q: str) -> list[str]:
    dims: list[str] = []
    for name, keywords in _DIMENSION_KEYWORDS.items():
        if any(kw in q for kw in keywords) and name not in dims:
            dims.append(name)
    return dims


def _detect_dates(question: str, today: datetime.date) -> tuple[str, str]:
    iso = _ISO_DATE_RE.findall(question)
    if len(iso) >= 2:
        return iso[0], iso[1]
    if len(iso) == 1:
        return iso[0], iso[0]

    m = _SPANISH_RANGE_RE.search(question)
    if m and m.group(3).lower() in _SPANISH_MONTHS:
        month = _SPANISH_MONTHS[m.group(3).lower()]
        year = int(m.group(4))
        try:
            start = datetime.date(year, month, int(m.group(1)))
            end = datetime.date(year, month, int(m.group(2)))
        except ValueError:
            logger.warning("Planner ignored impossible date range: %s", m.group(0))
        else:
            return start.isoformat(), end.isoformat()

    m = _LAST_N_DAYS_RE.search(question)
    if m:
        return f"{int(m.group(1))}daysAgo", "today"

    q = question.lower()
    if "yesterday" in q or "ayer" in q:
        return "yesterday", "yesterday"
    if "today" in q or "hoy" in q:
        return "today", "today"

    # default window
    return (today - datetime.timedelta(days=7)).isoformat(), today.isoformat()


def _detect_filters(question: str) -> dict[str, str]:
    filters: dict[str, str] = {}
    for dim, pattern in _FILTER_PATTERNS.items():
        m = pattern.search(question)
        if m:
            value = m.group(1).strip()
            if value:
                filters[dim] = value
    return filters


def extract_tool_arguments(question: str, today: datetime.date | None = None) -> dict[str, Any] | None:
    """Return ``getGa4Report`` arguments for *question*, or None to decline."""
    q = question.lower().strip()
    metrics = _detect_metrics(q)
    if not metrics:
        logger.info("Planner found no metric -- declining tool call")
        return None

    start, end = _detect_dates(question, today or datetime.date.today())
    args: dict[str, Any] = {
        "metrics": metrics,
        "dimensions": _detect_dimensions(q),
        "startDate": start,
        "endDate": end,
    }
    filters = _detect_filters(question)
    if filters:
        args["filters"] = filters

    logger.info("Planner[mock] -> %s", args)
    return args
