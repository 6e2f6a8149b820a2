"""Service-account credentials and the GA4 Data API client.

Both are created lazily on first use and cached for the life of the
process; they are read-only afterwards and safe to share between
concurrent requests.
"""
from __future__ import annotations

import json
from functools import lru_cache
from typing import Any

from google.analytics.data_v1beta import BetaAnalyticsDataClient
from google.oauth2 import service_account

from ga4_copilot.core.config import get_settings
from ga4_copilot.core.errors import ConfigurationError
from ga4_copilot.core.logging import get_logger

logger = get_logger(__name__)

SCOPES = ["https://www.googleapis.com/auth/analytics.readonly"]


def parse_service_account_info(raw: str) -> dict[str, Any]:
    """Parse key JSON from an env var.

    Keys pasted into env vars often carry literal ``\\n`` sequences in the
    private key; those are turned back into newlines.
    """
    try:
        info = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"GA4_CREDENTIALS_JSON is not valid JSON: {exc}") from exc
    if not isinstance(info, dict) or "client_email" not in info or "private_key" not in info:
        raise ConfigurationError(
            "GA4_CREDENTIALS_JSON must be a service-account key with client_email and private_key."
        )
    info["private_key"] = info["private_key"].replace("\\n", "\n")
    return info


@lru_cache
def get_credentials() -> service_account.Credentials:
    """Return the shared service-account credentials (parsed once)."""
    settings = get_settings()
    if settings.ga4_credentials_json.strip():
        info = parse_service_account_info(settings.ga4_credentials_json)
        creds = service_account.Credentials.from_service_account_info(info, scopes=SCOPES)
    elif settings.google_application_credentials.strip():
        creds = service_account.Credentials.from_service_account_file(
            settings.google_application_credentials, scopes=SCOPES,
        )
    else:
        raise ConfigurationError(
            "No GA4 credentials configured.  "
            "Set GA4_CREDENTIALS_JSON or GOOGLE_APPLICATION_CREDENTIALS."
        )
    logger.info("GA4 credentials loaded  account=%s", creds.service_account_email)
    return creds


@lru_cache
def get_client() -> BetaAnalyticsDataClient:
    """Return the shared GA4 Data API client (lazy-created, cached)."""
    client = BetaAnalyticsDataClient(credentials=get_credentials())
    logger.info("GA4 client created  property=%s", get_settings().ga4_property)
    return client
