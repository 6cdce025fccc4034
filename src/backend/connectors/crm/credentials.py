from __future__ import annotations

from typing import Any, Mapping

REQUIRED_CREDENTIALS: dict[str, tuple[str, ...]] = {
    "salesforce": ("clientId", "clientSecret", "refreshToken"),
    "hubspot": ("apiKey",),
    "zoho": ("clientId", "clientSecret", "refreshToken"),
    "pipedrive": ("apiToken",),
}


def missing_credentials(provider: str, credentials: Mapping[str, Any] | None) -> list[str]:
    """Return the required credential keys that are absent or blank."""
    required = REQUIRED_CREDENTIALS.get((provider or "").strip().lower())
    if required is None:
        raise ValueError(f"Unsupported CRM provider: {provider}")
    creds = credentials or {}
    return [key for key in required if not str(creds.get(key) or "").strip()]


def validate_credentials(provider: str, credentials: Mapping[str, Any] | None) -> bool:
    try:
        return not missing_credentials(provider, credentials)
    except ValueError:
        return False
