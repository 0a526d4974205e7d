"""
LLM Usage Records

Per-call token, cost and latency records built from LiteLLM responses, and
running totals per operation so a CLI run can report what an extraction
cost.

Usage:
    usage = usage_from_response(response, "openai/gpt-4o", operation="concept_extraction", latency_ms=812)
    totals = UsageTotals()
    totals.add(usage)
    print(totals.summary())
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Optional

import litellm

logger = logging.getLogger(__name__)


@dataclass
class LLMUsage:
    """
    One completion call.

    cost_usd stays None when LiteLLM has no price for the model.
    """

    model: str = ""
    operation: Optional[str] = None
    prompt_tokens: int = 0
    completion_tokens: int = 0
    cost_usd: Optional[float] = None
    latency_ms: Optional[int] = None
    success: bool = True
    error_message: Optional[str] = None

    @property
    def provider(self) -> str:
        provider, sep, _ = self.model.partition("/")
        return provider if sep else "unknown"

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def __str__(self) -> str:
        cost = f"${self.cost_usd:.4f}" if self.cost_usd is not None else "n/a"
        return (
            f"[{self.model}] {self.operation}: {self.total_tokens} tokens, "
            f"cost {cost}, {self.latency_ms}ms"
        )


def usage_from_response(
    response,
    model: str,
    operation: Optional[str] = None,
    latency_ms: Optional[int] = None,
) -> LLMUsage:
    """Read token counts and cost from a LiteLLM response."""
    counts = getattr(response, "usage", None)
    usage = LLMUsage(
        model=model,
        operation=operation,
        prompt_tokens=getattr(counts, "prompt_tokens", 0) or 0,
        completion_tokens=getattr(counts, "completion_tokens", 0) or 0,
        latency_ms=latency_ms,
    )

    # LiteLLM puts its own price calculation in the hidden params
    hidden = getattr(response, "_hidden_params", None) or {}
    usage.cost_usd = hidden.get("response_cost")
    if usage.cost_usd is None and usage.total_tokens:
        try:
            usage.cost_usd = litellm.completion_cost(completion_response=response)
        except Exception as e:
            logger.debug(f"No price available for {model}: {e}")

    return usage


@dataclass
class OperationTotals:
    calls: int = 0
    failures: int = 0
    tokens: int = 0
    cost_usd: float = 0.0


@dataclass
class UsageTotals:
    """Running totals keyed by operation."""

    by_operation: dict[str, OperationTotals] = field(
        default_factory=lambda: defaultdict(OperationTotals)
    )

    def add(self, usage: LLMUsage) -> None:
        totals = self.by_operation[usage.operation or "unknown"]
        totals.calls += 1
        totals.tokens += usage.total_tokens
        totals.cost_usd += usage.cost_usd or 0.0
        if not usage.success:
            totals.failures += 1

    @property
    def calls(self) -> int:
        return sum(t.calls for t in self.by_operation.values())

    @property
    def cost_usd(self) -> float:
        return sum(t.cost_usd for t in self.by_operation.values())

    def summary(self) -> str:
        if not self.by_operation:
            return "no LLM calls"
        parts = [
            f"{operation}: {t.calls} calls ({t.failures} failed), {t.tokens} tokens, ${t.cost_usd:.4f}"
            for operation, t in sorted(self.by_operation.items())
        ]
        return "; ".join(parts)
