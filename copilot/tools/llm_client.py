"""Enrichment client for an OpenAI-compatible chat completion endpoint (OpenRouter by default)."""

import time
from typing import Optional
from openai import AsyncOpenAI, RateLimitError
from copilot.orchestrator.retry_handler import retry_with_exponential_backoff
from copilot.utils.config_loader import LLMSettings
from copilot.utils.metrics import llm_tokens_counter, llm_api_latency, llm_rate_limit_hits
from copilot.utils.errors import LLMError
from copilot.utils.logging import get_logger

logger = get_logger(__name__)


class LLMClient:
    """Text generation with a bounded HTTP timeout, rate-limit backoff and usage metrics"""

    def __init__(self, settings: LLMSettings, client: Optional[AsyncOpenAI] = None):
        self.settings = settings
        self._client = client

    def get_client(self) -> AsyncOpenAI:
        """Get or create the API client (lazy initialization)"""
        if self._client is None:
            if not self.settings.api_key:
                raise LLMError("OPENROUTER_API_KEY environment variable is not set")
            # Retries are handled here, not inside the SDK
            self._client = AsyncOpenAI(
                api_key=self.settings.api_key,
                base_url=self.settings.base_url,
                timeout=self.settings.timeout_seconds,
                max_retries=0
            )
        return self._client

    async def generate(self, user_prompt: str, system_prompt: Optional[str] = None) -> str:
        """
        Generate a single complete text response.

        Args:
            user_prompt: User message
            system_prompt: Optional system instruction

        Returns:
            Response text

        Raises:
            LLMError: On missing credentials, transport errors, timeouts,
                exhausted rate-limit retries or a response without text
        """
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        try:
            return await retry_with_exponential_backoff(
                self._complete,
                messages,
                max_retries=self.settings.max_retries,
                retry_on=(RateLimitError,)
            )
        except LLMError:
            raise
        except RateLimitError as e:
            raise LLMError(f"Rate limit exceeded after {self.settings.max_retries} attempts: {e}")
        except Exception as e:
            logger.error(f"LLM API error: {e}", model=self.settings.model)
            raise LLMError(f"LLM API call failed: {e}")

    async def _complete(self, messages: list) -> str:
        model = self.settings.model
        start_time = time.time()

        try:
            response = await self.get_client().chat.completions.create(
                model=model,
                messages=messages,
                temperature=self.settings.temperature
            )
        except RateLimitError:
            llm_rate_limit_hits.labels(model_name=model).inc()
            raise

        latency = time.time() - start_time
        llm_api_latency.labels(model_name=model).observe(latency)

        tokens = response.usage.total_tokens if response.usage else 0
        llm_tokens_counter.labels(model_name=model).inc(tokens)

        if not response.choices:
            raise LLMError("LLM response contained no choices")

        text = response.choices[0].message.content
        if not text or not text.strip():
            raise LLMError("LLM response was missing expected text content")

        logger.info("LLM call successful", model=model, tokens=tokens, latency=round(latency, 3))
        return text.strip()
