# agentloop/services/llm_connector.py
# The transport that delivers encoded chat-completions requests to the LLM backend.
# Author: Shibo Li
# Date: 2025-07-04
# Version: 0.2.0

from typing import Any, Dict, Optional, Protocol

import httpx
from openai import APIError, APITimeoutError, AsyncOpenAI

from agentloop.core.config import Settings, get_settings
from agentloop.core.errors import ConfigurationError, TransportError
from agentloop.utils.logger import console


class ChatTransport(Protocol):
    """Anything that can deliver a wire request and hand back the raw response body."""

    async def send(self, request: Dict[str, Any]) -> bytes:
        ...


class LLMConnector:
    """
    Sends requests to an OpenAI-compatible chat-completions endpoint.

    The raw response body is returned untouched so that the codec, not the SDK,
    decides how to read it; local inference servers add fields the SDK does not model.
    """
    def __init__(self, api_key: str, base_url: str, timeout: float = 120.0, client: Optional[AsyncOpenAI] = None):
        if not api_key:
            raise ConfigurationError("API Key is not set. Please configure LLM_API_KEY.")
        self._client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=httpx.Timeout(timeout),
            max_retries=0,
        )
        self.base_url = base_url

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "LLMConnector":
        """
        Acts as a factory to build the connector from the application settings.

        Raises:
            ConfigurationError: If no API key is configured.
        """
        settings = settings or get_settings()
        return cls(
            api_key=settings.LLM_API_KEY or "",
            base_url=settings.LLM_BASE_URL,
            timeout=settings.LLM_REQUEST_TIMEOUT,
        )

    async def send(self, request: Dict[str, Any]) -> bytes:
        console.debug(f"Sending request to {self.base_url}: {request}")
        try:
            raw = await self._client.chat.completions.with_raw_response.create(**request)
        except APITimeoutError as e:
            console.error(f"Request to the LLM provider timed out: {e}")
            raise TransportError(f"Request timed out: {e}") from e
        except APIError as e:
            message = str(e.body) if e.body is not None else "Unknown API Error"
            if isinstance(e.body, dict):
                message = e.body.get("message", message)
            console.error(f"An API error occurred: {message}")
            raise TransportError(f"Request failed: {message}") from e

        body = raw.content
        console.debug(f"Received response: {body!r}")
        return body
