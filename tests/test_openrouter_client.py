import asyncio

import aiohttp
import pytest

from config import LLMConfig
from src.clients.openrouter_client import OpenRouterClient
from src.utils.error_handlers import GatewayError, MalformedResponseError, _is_transient


def test_chat_requires_api_key():
    client = OpenRouterClient(LLMConfig(api_key=""))
    with pytest.raises(GatewayError):
        asyncio.run(client.chat([{"role": "user", "content": "hi"}]))
    assert client.session is None


def test_headers_carry_key_and_attribution():
    client = OpenRouterClient(LLMConfig(api_key="secret", app_title="Crisp Test"))
    headers = client._headers()
    assert headers["Authorization"] == "Bearer secret"
    assert headers["X-Title"] == "Crisp Test"


@pytest.mark.parametrize("error, transient", [
    (GatewayError("rate limited", status=429), True),
    (GatewayError("upstream", status=503), True),
    (GatewayError("bad request", status=400), False),
    (GatewayError("no status"), False),
    (MalformedResponseError("not json"), False),
    (asyncio.TimeoutError(), True),
    (aiohttp.ClientConnectionError(), True),
    (ValueError("other"), False),
])
def test_only_transport_failures_are_retried(error, transient):
    assert _is_transient(error) is transient
