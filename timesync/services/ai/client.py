# timesync/services/ai/client.py
"""
Language-model client used by the duplicate classifier, task matcher and meeting analysis.
Wraps Azure OpenAI (or OpenAI) chat completions behind a single complete() call with
rate budgeting and retry on transient failures.
"""

import asyncio
from typing import Any

import openai
from openai import AsyncAzureOpenAI, AsyncOpenAI

from timesync.config import Settings, settings as default_settings
from timesync.infrastructure.observability.logging import get_logger
from timesync.services.ai.rate_limiter import MinuteBudget

logger = get_logger(__name__)


class AIClientError(Exception):
    """Raised when a completion cannot be obtained."""

    def __init__(self, message: str, api_error: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.api_error = api_error
        self.recoverable = recoverable


def estimate_tokens(prompt: str) -> int:
    """Rough token estimate: four characters per token."""
    return max(len(prompt) // 4 + (1 if len(prompt) % 4 else 0), 1)


class AIClient:
    """
    Chat-completion client returning the raw text of the first choice.

    Callers are responsible for pulling JSON out of the text; the model is asked
    for JSON but is not forced into JSON mode because prompts mix prose and data.
    """

    def __init__(self, config: Settings | None = None, client: Any = None, budget: MinuteBudget | None = None):
        self.config = config or default_settings
        self.client = client
        self.budget = budget or MinuteBudget(
            requests_per_minute=self.config.OPENAI_REQUESTS_PER_MINUTE,
            tokens_per_minute=self.config.OPENAI_TOKENS_PER_MINUTE,
        )
        if self.client is None and self.config.ai_configured():
            self._initialize_client()

    def _initialize_client(self):
        """Initialize the async SDK client from configuration."""
        try:
            if self.config.AZURE_OPENAI_ENDPOINT:
                self.client = AsyncAzureOpenAI(
                    azure_endpoint=self.config.AZURE_OPENAI_ENDPOINT,
                    api_key=self.config.AZURE_OPENAI_API_KEY,
                    api_version=self.config.AZURE_OPENAI_API_VERSION,
                    timeout=self.config.OPENAI_TIMEOUT_SECONDS,
                    max_retries=0,
                )
                provider = "azure"
            else:
                self.client = AsyncOpenAI(
                    api_key=self.config.OPENAI_API_KEY,
                    timeout=self.config.OPENAI_TIMEOUT_SECONDS,
                    max_retries=0,
                )
                provider = "openai"

            logger.info(
                "AI client initialized",
                provider=provider,
                model=self.config.ai_model(),
                timeout=self.config.OPENAI_TIMEOUT_SECONDS,
            )

        except Exception as e:
            logger.error("Failed to initialize AI client", error=str(e))
            raise AIClientError(f"AI client initialization failed: {e}", recoverable=False) from e

    @property
    def configured(self) -> bool:
        return self.client is not None

    async def complete(
        self,
        prompt: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """
        Send a single-message prompt and return the completion text.

        Raises:
            AIClientError: When the client is not configured or all retries fail
        """
        if not self.client:
            raise AIClientError("AI client not configured", recoverable=False)

        await self.budget.acquire(estimate_tokens(prompt))

        return await self._call_with_retry(
            prompt,
            temperature=self.config.OPENAI_TEMPERATURE if temperature is None else temperature,
            max_tokens=max_tokens or self.config.OPENAI_MAX_TOKENS,
        )

    async def _call_with_retry(self, prompt: str, temperature: float, max_tokens: int) -> str:
        """Call the chat completion API with retry logic for transient failures."""

        last_error = None
        max_retries = self.config.OPENAI_MAX_RETRIES + 1

        for attempt in range(max_retries):
            try:
                logger.debug(
                    "Calling chat completion",
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    model=self.config.ai_model(),
                    prompt_length=len(prompt),
                )

                response = await self.client.chat.completions.create(
                    model=self.config.ai_model(),
                    messages=[{"role": "user", "content": prompt}],
                    temperature=temperature,
                    max_tokens=max_tokens,
                )

                if not response.choices or not response.choices[0].message.content:
                    raise AIClientError("Empty response from chat completion API")

                result = response.choices[0].message.content.strip()

                logger.info(
                    "Chat completion successful",
                    attempt=attempt + 1,
                    response_length=len(result),
                    usage_tokens=response.usage.total_tokens if response.usage else 0,
                )

                return result

            except openai.RateLimitError as e:
                last_error = e
                logger.warning("AI rate limit hit, retrying", attempt=attempt + 1, error=str(e))

            except openai.APITimeoutError as e:
                last_error = e
                logger.warning(
                    "AI request timeout, retrying",
                    attempt=attempt + 1,
                    timeout=self.config.OPENAI_TIMEOUT_SECONDS,
                )

            except openai.APIStatusError as e:
                last_error = e
                # Don't retry on client errors (4xx)
                if 400 <= e.status_code < 500:
                    logger.error("AI client error (not retrying)", status_code=e.status_code, error=str(e))
                    break
                logger.warning("AI API error, retrying", attempt=attempt + 1, error=str(e))

            except openai.APIError as e:
                last_error = e
                logger.warning("AI API error, retrying", attempt=attempt + 1, error=str(e))

            except AIClientError as e:
                last_error = e
                logger.warning("Empty AI response, retrying", attempt=attempt + 1)

            if attempt < max_retries - 1:
                wait_time = min(self.config.OPENAI_RETRY_DELAY_SECONDS * (2**attempt), 30)
                await asyncio.sleep(wait_time)

        logger.error(
            "Chat completion failed after all retries",
            max_retries=max_retries,
            final_error=str(last_error),
        )

        raise AIClientError(
            f"Chat completion failed after {max_retries} attempts",
            api_error=str(last_error),
            recoverable=True,
        ) from last_error

    async def health_check(self) -> dict[str, Any]:
        """
        Health check for the AI client.

        Returns:
            dict: Configuration summary; no request is sent
        """
        return {
            "healthy": self.configured,
            "service": "ai_client",
            "client_initialized": self.configured,
            "configuration": {
                "provider": "azure" if self.config.AZURE_OPENAI_ENDPOINT else "openai",
                "model": self.config.ai_model(),
                "temperature": self.config.OPENAI_TEMPERATURE,
                "max_tokens": self.config.OPENAI_MAX_TOKENS,
                "timeout_seconds": self.config.OPENAI_TIMEOUT_SECONDS,
                "max_retries": self.config.OPENAI_MAX_RETRIES,
                "requests_per_minute": self.config.OPENAI_REQUESTS_PER_MINUTE,
                "tokens_per_minute": self.config.OPENAI_TOKENS_PER_MINUTE,
            },
        }
