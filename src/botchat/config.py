"""Provider configuration resolution.

Stored settings take precedence over the environment for the API key, base
URL and custom headers. Resolution happens per request so settings edits
apply to the next message.
"""

import json
import os
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import structlog

from .domain.exceptions import ConfigError
from .domain.models import Settings

logger = structlog.get_logger()

DEFAULT_API_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o"

API_KEY_ENV = "OPENAI_API_KEY"
API_URL_ENV = "OPENAI_API_URL"
API_HEADERS_ENV = "OPENAI_API_HEADERS"


@dataclass(frozen=True)
class ProviderConfig:
    """Effective settings for one upstream completion request."""

    api_key: Optional[str]
    base_url: str = DEFAULT_API_URL
    token_limit: int = 4000
    temperature: float = 0.7
    top_p: float = 0.5
    streaming: bool = True
    headers: Dict[str, str] = field(default_factory=dict)

    def fingerprint(self) -> Tuple[str, str, str]:
        """Identity of the SDK client this config needs."""
        return (
            self.api_key or "",
            self.base_url,
            json.dumps(self.headers, sort_keys=True),
        )


def parse_headers(raw) -> Dict[str, str]:
    """Parse a custom header set given as a JSON object string or a dict."""
    if raw is None or raw == "":
        return {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise ConfigError(f"Custom API headers are not valid JSON: {e}")
    if not isinstance(raw, dict):
        raise ConfigError("Custom API headers must be a JSON object")
    headers = {}
    for name, value in raw.items():
        if not isinstance(value, str):
            raise ConfigError(f"Custom API header {name!r} must have a string value")
        headers[str(name)] = value
    return headers


def env_api_key() -> Optional[str]:
    return os.getenv(API_KEY_ENV) or None


def env_headers() -> Dict[str, str]:
    """Headers from the environment; malformed values are ignored."""
    try:
        return parse_headers(os.getenv(API_HEADERS_ENV))
    except ConfigError as e:
        logger.warning("env_headers_ignored", variable=API_HEADERS_ENV, error=e.message)
        return {}


def resolve_api_key(explicit: Optional[str]) -> Optional[str]:
    return explicit or env_api_key()


def resolve_provider_config(settings: Settings) -> ProviderConfig:
    """Build the effective provider config from stored settings and the environment.

    Raises ConfigError when no API key can be resolved or the stored custom
    headers are malformed.
    """
    api_key = resolve_api_key(settings.api_key)
    if not api_key:
        raise ConfigError("API key not configured in settings or environment variables (.env)")

    headers = env_headers()
    headers.update(parse_headers(settings.custom_api_headers))

    return ProviderConfig(
        api_key=api_key,
        base_url=settings.api_url or os.getenv(API_URL_ENV) or DEFAULT_API_URL,
        token_limit=settings.token_limit,
        temperature=settings.temperature,
        top_p=settings.top_k,
        streaming=settings.use_streaming_api,
        headers=headers,
    )
