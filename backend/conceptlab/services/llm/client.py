"""
LLM Client

Thin async wrapper over LiteLLM. Models use the "provider/model-name" format
(e.g. "openai/gpt-4o", "anthropic/claude-3-5-haiku-latest"); the provider key
is read from the environment by LiteLLM.

One call to complete() is exactly one provider request. Timeouts, retries and
JSON parsing belong to the caller (see resilience.py and response_parsing.py).

See: https://docs.litellm.ai/

Usage:
    from conceptlab.enums import LLMOperation
    from conceptlab.services.llm import build_messages, get_llm_client

    client = get_llm_client()
    text, usage = await client.complete(
        operation=LLMOperation.CONCEPT_EXTRACTION,
        messages=build_messages("Extract...", system_prompt="You are..."),
        json_mode=True,
    )
"""

import logging
import os
import time
from typing import Optional, Union

import litellm
from litellm import acompletion

from conceptlab.config.extraction import extraction_settings
from conceptlab.config.settings import settings
from conceptlab.enums import LLMOperation
from conceptlab.services.llm.usage import LLMUsage, UsageTotals, usage_from_response

logger = logging.getLogger(__name__)

litellm.drop_params = True  # Unsupported params are dropped per provider
if settings.DEBUG:
    os.environ["LITELLM_LOG"] = "DEBUG"

PROVIDER_KEYS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
}


def get_default_model() -> str:
    return extraction_settings.MODEL


def build_messages(prompt: str, system_prompt: Optional[str] = None) -> list[dict[str, str]]:
    """Chat messages in OpenAI format: optional system message, then the prompt."""
    messages = [{"role": "system", "content": system_prompt}] if system_prompt else []
    messages.append({"role": "user", "content": prompt})
    return messages


def configured_providers() -> list[str]:
    """Providers with an API key in the environment or settings."""
    return [
        provider
        for provider, key in PROVIDER_KEYS.items()
        if os.getenv(key) or getattr(settings, key, "")
    ]


class LLMClient:
    """
    Completion client with per-operation model overrides and usage totals.

    Args:
        model_overrides: Operation -> model; other operations use the
            configured extraction model
    """

    def __init__(self, model_overrides: Optional[dict[LLMOperation, str]] = None):
        self.model_overrides = dict(model_overrides or {})
        self.totals = UsageTotals()

    def model_for(self, operation: Union[LLMOperation, str]) -> str:
        try:
            operation = LLMOperation(operation)
        except ValueError:
            logger.warning(f"Unknown LLM operation '{operation}', using the default model")
            return get_default_model()
        return self.model_overrides.get(operation, get_default_model())

    async def complete(
        self,
        operation: Union[LLMOperation, str],
        messages: list[dict],
        temperature: float = 0.3,
        max_tokens: int = 2000,
        json_mode: bool = False,
        model: Optional[str] = None,
    ) -> tuple[str, LLMUsage]:
        """
        Send one completion request.

        Args:
            operation: What the call is for; selects the model and labels usage
            messages: Chat messages in OpenAI format
            temperature: Sampling temperature
            max_tokens: Response token limit
            json_mode: Ask the provider for a JSON object response. The raw
                text is still returned unparsed.
            model: Explicit model, bypassing the operation lookup

        Returns:
            Tuple of (response text, LLMUsage)

        Raises:
            Exception: Whatever LiteLLM raised
        """
        model = model or self.model_for(operation)
        label = operation.value if isinstance(operation, LLMOperation) else str(operation)

        request = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            request["response_format"] = {"type": "json_object"}

        started = time.perf_counter()
        try:
            response = await acompletion(**request)
        except Exception as e:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            logger.error(f"LLM request for {label} failed after {elapsed_ms}ms ({model}): {e}")
            self.totals.add(
                LLMUsage(model=model, operation=label, latency_ms=elapsed_ms, success=False, error_message=str(e))
            )
            raise

        usage = usage_from_response(
            response, model, operation=label, latency_ms=int((time.perf_counter() - started) * 1000)
        )
        self.totals.add(usage)
        logger.debug(f"LLM {usage}")

        return response.choices[0].message.content or "", usage


_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Shared LLMClient, created on first use."""
    global _client
    if _client is None:
        providers = configured_providers()
        if providers:
            logger.info(f"LLM client ready; provider keys found for: {', '.join(providers)}")
        else:
            logger.warning(
                "No LLM API keys configured. Set one of: " + ", ".join(PROVIDER_KEYS.values())
            )
        _client = LLMClient()
    return _client


def reset_llm_client() -> None:
    global _client
    _client = None
