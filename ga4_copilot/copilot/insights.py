"""
Rule-based insights over a normalized result set.

Each rule looks at one metric across all rows and fires at most once, only
when that metric was requested and at least one row matches.  Values that do
not parse as numbers never match.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Sequence

from ga4_copilot.core.utils import parse_float, parse_int


@dataclass(frozen=True)
class InsightRule:
    metric: str
    parse: Callable[[Any], float | int | None]
    matches: Callable[[float | int], bool]
    template: str  # formatted with n=<count>


INSIGHT_RULES: tuple[InsightRule, ...] = (
    InsightRule(
        metric="bounceRate",
        parse=parse_float,
        matches=lambda v: v > 80,
        template="{n} segments have bounce rate above 80%.",
    ),
    InsightRule(
        metric="activeUsers",
        parse=parse_int,
        matches=lambda v: v < 3,
        template="{n} segments have fewer than 3 active users.",
    ),
    InsightRule(
        metric="engagementRate",
        parse=parse_float,
        matches=lambda v: v >= 70,
        template="{n} segments have engagement rate ≥ 70%.",
    ),
)


def _count_matches(rule: InsightRule, rows: Sequence[dict[str, str]]) -> int:
    count = 0
    for row in rows:
        if rule.metric not in row:
            continue
        value = rule.parse(row[rule.metric])
        if value is not None and rule.matches(value):
            count += 1
    return count


def generate_insights(rows: Sequence[dict[str, str]], metrics: Sequence[str]) -> list[str]:
    """Return zero or more observations about *rows*, in rule-table order."""
    insights: list[str] = []
    for rule in INSIGHT_RULES:
        if rule.metric not in metrics:
            continue
        n = _count_matches(rule, rows)
        if n:
            insights.append(rule.template.format(n=n))
    return insights
