"""
Small shared utilities.
"""
from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Generator


@contextmanager
def timer() -> Generator[dict, None, None]:
    """Context manager that records elapsed wall-clock milliseconds."""
    result: dict = {}
    start = time.perf_counter()
    try:
        yield result
    finally:
        result["elapsed_ms"] = int((time.perf_counter() - start) * 1000)


def parse_float(value: Any) -> float | None:
    """Parse a backend value as float; ``None`` when it is not numeric."""
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return None


def parse_int(value: Any) -> int | None:
    """Parse a backend value as int; ``None`` when it is not an integer literal."""
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def dedupe(items: list[str]) -> list[str]:
    """Drop repeats, keeping first-seen order."""
    return list(dict.fromkeys(items))
