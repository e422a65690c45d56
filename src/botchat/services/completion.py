"""Completion client for OpenAI-compatible chat completion APIs."""

from dataclasses import replace
from typing import AsyncIterator, Callable, List, Optional, Tuple

import openai
import structlog

from ..config import DEFAULT_MODEL, ProviderConfig, parse_headers, resolve_api_key
from ..domain.exceptions import AuthError, UpstreamError
from ..domain.models import PromptMessage

logger = structlog.get_logger()

KNOWN_ROLES = ("user", "assistant", "system")

ClientFactory = Callable[..., openai.AsyncOpenAI]


def to_chat_messages(messages: List[PromptMessage]) -> List[dict]:
    """Convert prompt messages to the API format, coercing unknown roles to user."""
    return [
        {
            "role": m.role if m.role in KNOWN_ROLES else "user",
            "content": m.content,
        }
        for m in messages
    ]


class CompletionClient:
    """Streams text deltas from the upstream provider.

    ``complete`` returns an async iterator of deltas. Running out normally
    means the response is done; any failure is raised as AuthError,
    UpstreamError or ConfigError.

    The SDK client is built lazily and cached under the config fingerprint.
    A config change replaces the cached client instead of mutating it.
    """

    def __init__(self, client_factory: Optional[ClientFactory] = None) -> None:
        self._client_factory = client_factory or openai.AsyncOpenAI
        self._client: Optional[openai.AsyncOpenAI] = None
        self._fingerprint: Optional[Tuple[str, str, str]] = None

    def _get_client(self, config: ProviderConfig) -> openai.AsyncOpenAI:
        api_key = resolve_api_key(config.api_key)
        if not api_key:
            raise AuthError("API key is required. Set OPENAI_API_KEY or configure it in settings.")

        headers = parse_headers(config.headers)
        fingerprint = replace(config, api_key=api_key, headers=headers).fingerprint()
        if self._client is None or fingerprint != self._fingerprint:
            self._client = self._client_factory(
                api_key=api_key,
                base_url=config.base_url,
                default_headers=headers or None,
            )
            self._fingerprint = fingerprint
            logger.info("completion_client_initialized", base_url=config.base_url, custom_headers=sorted(headers))
        return self._client

    async def complete(
        self,
        config: ProviderConfig,
        messages: List[PromptMessage],
        model: str = DEFAULT_MODEL,
    ) -> AsyncIterator[str]:
        """Yield incremental text deltas for a chat completion."""
        client = self._get_client(config)
        request = dict(
            model=model or DEFAULT_MODEL,
            messages=to_chat_messages(messages),
            temperature=config.temperature,
            max_tokens=config.token_limit,
            top_p=config.top_p,
        )
        try:
            if config.streaming:
                stream = await client.chat.completions.create(stream=True, **request)
                async for chunk in stream:
                    if not chunk.choices:
                        continue
                    delta = chunk.choices[0].delta.content
                    if delta:
                        yield delta
            else:
                response = await client.chat.completions.create(stream=False, **request)
                text = response.choices[0].message.content if response.choices else None
                if text:
                    yield text
        except openai.AuthenticationError as e:
            logger.error("completion_auth_failed", base_url=config.base_url, error=str(e))
            raise AuthError(f"Provider rejected the API key: {e}", status_code=e.status_code)
        except openai.APIStatusError as e:
            logger.error("completion_upstream_status", base_url=config.base_url, status_code=e.status_code)
            raise UpstreamError(f"Provider returned HTTP {e.status_code}", status_code=e.status_code)
        except openai.APIError as e:
            logger.error("completion_upstream_failed", base_url=config.base_url, error=str(e))
            raise UpstreamError(f"Provider request failed: {e}")
