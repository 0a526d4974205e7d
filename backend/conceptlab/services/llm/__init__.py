"""
LLM Service Module

Provides a unified interface to multiple LLM providers via LiteLLM, plus the
timeout/retry combinators and tolerant JSON parsing applied around each call.

Key Components:
- client.py: LLMClient with operation-based model selection (one request per call)
- usage.py: LLMUsage per-call records and UsageTotals per operation
- resilience.py: with_timeout and with_retry combinators
- response_parsing.py: parse_json_response, falling back to json_repair

Usage:
    from conceptlab.enums import LLMOperation
    from conceptlab.services.llm import get_llm_client, build_messages

    client = get_llm_client()
    text, usage = await client.complete(
        operation=LLMOperation.FREE_TEXT,
        messages=build_messages("Explain the locative case"),
    )
    print(f"Tokens: {usage.total_tokens}")
"""

from conceptlab.services.llm.client import (
    LLMClient,
    build_messages,
    get_default_model,
    get_llm_client,
    reset_llm_client,
)
from conceptlab.services.llm.response_parsing import parse_json_response
from conceptlab.services.llm.resilience import with_retry, with_timeout
from conceptlab.services.llm.usage import LLMUsage, UsageTotals

__all__ = [
    "LLMClient",
    "LLMUsage",
    "UsageTotals",
    "build_messages",
    "get_default_model",
    "get_llm_client",
    "reset_llm_client",
    "parse_json_response",
    "with_retry",
    "with_timeout",
]
