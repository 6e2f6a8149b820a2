"""
Shared fixtures -- every test runs offline against the mock LLM and mock backend.
"""
import pytest

from ga4_copilot.core.config import get_settings


@pytest.fixture(autouse=True)
def offline_settings(monkeypatch):
    monkeypatch.setenv("REPORT_BACKEND", "mock")
    monkeypatch.setenv("LLM_PROVIDER", "mock")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_backend(monkeypatch):
    """Replace the report backend with a recorder returning canned rows.

    Usage: ``calls = fake_backend(rows)``; ``calls`` collects every ReportSpec.
    """
    def install(rows):
        calls = []

        def _run_report(spec, backend=None):
            calls.append(spec)
            return rows

        monkeypatch.setattr("ga4_copilot.copilot.service.run_report", _run_report)
        return calls

    return install
