"""
Tests for the OpenAI-compatible transport.
"""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from openai import APIStatusError, APITimeoutError

from agentloop.core.config import Settings
from agentloop.core.errors import ConfigurationError, ProtocolError, TransportError
from agentloop.services.llm_connector import LLMConnector


def _client(create: AsyncMock) -> MagicMock:
    client = MagicMock()
    client.chat.completions.with_raw_response.create = create
    return client


def test_missing_api_key_is_configuration_error():
    with pytest.raises(ConfigurationError):
        LLMConnector(api_key="", base_url="https://api.openai.com/v1")


def test_from_settings_without_key():
    settings = Settings(LLM_API_KEY=None, _env_file=None)

    with pytest.raises(ConfigurationError):
        LLMConnector.from_settings(settings)


async def test_send_returns_raw_body():
    raw = MagicMock(content=b'{"choices": []}')
    create = AsyncMock(return_value=raw)
    connector = LLMConnector(api_key="sk-test", base_url="http://localhost:8080/v1", client=_client(create))

    body = await connector.send({"model": "gpt-4", "messages": []})

    assert body == b'{"choices": []}'
    create.assert_awaited_once_with(model="gpt-4", messages=[])


async def test_status_error_becomes_transport_error():
    request = httpx.Request("POST", "http://localhost:8080/v1/chat/completions")
    response = httpx.Response(500, request=request)
    error = APIStatusError("server exploded", response=response, body={"message": "model not loaded"})
    connector = LLMConnector(api_key="sk-test", base_url="http://localhost:8080/v1", client=_client(AsyncMock(side_effect=error)))

    with pytest.raises(TransportError) as excinfo:
        await connector.send({"model": "gpt-4", "messages": []})

    assert "model not loaded" in str(excinfo.value)
    assert isinstance(excinfo.value, ProtocolError)


async def test_timeout_becomes_transport_error():
    request = httpx.Request("POST", "http://localhost:8080/v1/chat/completions")
    connector = LLMConnector(
        api_key="sk-test",
        base_url="http://localhost:8080/v1",
        client=_client(AsyncMock(side_effect=APITimeoutError(request=request))),
    )

    with pytest.raises(TransportError):
        await connector.send({"model": "gpt-4", "messages": []})
