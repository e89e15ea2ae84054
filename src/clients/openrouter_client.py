"""
OpenRouter API Client - chat completions for the interview service

Sends chat-completion requests to an OpenAI compatible endpoint
(OpenRouter by default) and returns the text of the first choice.
"""

import asyncio
from typing import Dict, List, Optional

import aiohttp
from loguru import logger

from config import config, LLMConfig
from src.utils.error_handlers import GatewayError, api_retry_handler


class OpenRouterClient:
    """
    Client for the OpenRouter chat completions API.

    One aiohttp session is opened lazily and reused for every request.
    """

    def __init__(self, settings: Optional[LLMConfig] = None):
        """Start the client"""
        self.settings = settings or config.llm
        self.base_url = self.settings.base_url
        self.model = self.settings.model

        # Async HTTP client
        self.session: Optional[aiohttp.ClientSession] = None

        # Statistics
        self.total_requests = 0

        logger.info(f"OpenRouter client started. Model: {self.model}")

    async def _ensure_session(self):
        """Make sure an HTTP session is open"""
        if self.session is None or self.session.closed:
            timeout = aiohttp.ClientTimeout(total=self.settings.timeout)
            self.session = aiohttp.ClientSession(timeout=timeout)

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.settings.api_key}",
            "HTTP-Referer": self.settings.referer,
            "X-Title": self.settings.app_title,
        }

    async def chat(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int = 600,
        temperature: float = 0.7,
        model: Optional[str] = None,
    ) -> str:
        """
        Send a chat completion request.

        Args:
            messages: Conversation [{"role": "system/user/assistant", "content": "..."}]
            max_tokens: Maximum length of the reply
            temperature: Sampling temperature (0-2)
            model: Override of the configured model

        Returns:
            Content of the first choice
        """
        if not self.settings.api_key:
            raise GatewayError("LLM_API_KEY is required for LLM interactions")
        return await self._post_with_retry(messages, max_tokens, temperature, model or self.model)

    async def _post_with_retry(self, messages, max_tokens, temperature, model) -> str:
        retrying = api_retry_handler(self.settings.max_retries)(self._post)
        try:
            return await retrying(messages, max_tokens, temperature, model)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise GatewayError(f"OpenRouter transport failed: {e!r}") from e

    async def _post(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int,
        temperature: float,
        model: str,
    ) -> str:
        await self._ensure_session()

        payload = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        logger.debug(f"Sending request to OpenRouter. Messages: {len(messages)}, model: {model}")

        async with self.session.post(self.base_url, json=payload, headers=self._headers()) as response:
            if response.status != 200:
                error_text = await response.text()
                raise GatewayError(
                    f"OpenRouter request failed: {response.status} {error_text}",
                    status=response.status,
                )

            try:
                data = await response.json(content_type=None)
            except ValueError as e:
                raise GatewayError("OpenRouter payload was not JSON") from e

        self.total_requests += 1
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None
        if not content:
            raise GatewayError("OpenRouter returned no content")

        logger.debug("OpenRouter reply received")
        return content

    async def test_connection(self) -> bool:
        """Check that the service answers with the configured key and model."""
        try:
            logger.info("Testing the OpenRouter connection...")
            reply = await self.chat(
                messages=[{"role": "user", "content": "Reply with the single word: ok"}],
                max_tokens=5,
                temperature=0,
            )
            if reply and reply.strip():
                logger.info("✅ OpenRouter connection works!")
                return True
            logger.warning(f"Empty reply from OpenRouter: {reply}")
            return False

        except (GatewayError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"❌ OpenRouter connection error: {e}")
            return False

    def get_statistics(self) -> Dict:
        """Return API usage statistics"""
        return {
            "total_requests": self.total_requests,
            "model": self.model,
            "base_url": self.base_url,
        }

    async def close(self):
        """Close the session"""
        if self.session and not self.session.closed:
            await self.session.close()
