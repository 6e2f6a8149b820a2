"""
Loads, parses, and caches the GA4 allow-list YAML into strongly-typed objects.

The schema registry is the single source of truth for:
  - queryable metrics
  - queryable dimensions (which are also the only valid filter keys)

It is read once per process and never mutated afterwards.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from functools import lru_cache
from typing import Any

import yaml

_SCHEMA_PATH = Path(__file__).resolve().parents[2] / "semantic_layer" / "ga4_schema.yml"


# ── Typed domain objects ─────────────────────────────────

@dataclass(frozen=True)
class MetricDef:
    name: str
    description: str = ""


@dataclass(frozen=True)
class DimensionDef:
    name: str
    description: str = ""


@dataclass(frozen=True)
class SchemaRegistry:
    """Fully parsed allow-list."""

    version: int
    metrics: dict[str, MetricDef]        # keyed by name, YAML order
    dimensions: dict[str, DimensionDef]  # keyed by name, YAML order

    def is_valid_metric(self, name: str) -> bool:
        return name in self.metrics

    def is_valid_dimension(self, name: str) -> bool:
        return name in self.dimensions

    def get_metric_names(self) -> list[str]:
        return list(self.metrics.keys())

    def get_dimension_names(self) -> list[str]:
        return list(self.dimensions.keys())

    def get_metrics_list(self) -> list[dict[str, Any]]:
        """Return metrics as a list of dicts (for API responses)."""
        return [{"name": m.name, "description": m.description} for m in self.metrics.values()]

    def get_dimensions_list(self) -> list[dict[str, Any]]:
        """Return dimensions as a list of dicts (for API responses)."""
        return [{"name": d.name, "description": d.description} for d in self.dimensions.values()]


# ── Parsing ──────────────────────────────────────────────

def _parse_registry(raw_yaml: dict[str, Any]) -> SchemaRegistry:
    metrics = {
        m["name"]: MetricDef(name=m["name"], description=m.get("description", ""))
        for m in raw_yaml.get("metrics", [])
    }
    dimensions = {
        d["name"]: DimensionDef(name=d["name"], description=d.get("description", ""))
        for d in raw_yaml.get("dimensions", [])
    }
    return SchemaRegistry(
        version=raw_yaml.get("version", 1),
        metrics=metrics,
        dimensions=dimensions,
    )


# ── Public API ───────────────────────────────────────────

@lru_cache
def load_registry() -> SchemaRegistry:
    """Load and cache the allow-list from YAML."""
    with open(_SCHEMA_PATH, encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    return _parse_registry(raw)


def is_valid_metric(name: str) -> bool:
    return load_registry().is_valid_metric(name)


def is_valid_dimension(name: str) -> bool:
    return load_registry().is_valid_dimension(name)
