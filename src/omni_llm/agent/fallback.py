"""Immediate retry across an ordered list of substitute backends."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from omni_llm.errors import FallbackExhausted
from omni_llm.providers.base import CompletionCapability

logger = logging.getLogger(__name__)

S = TypeVar("S")
T = TypeVar("T")


async def run_with_fallback(
    work: Callable[[S | None], Awaitable[T]],
    substitutes: Sequence[S],
    *,
    stage: str,
) -> T:
    """Run `work(None)`, then `work(substitutes[0])`, ... until one succeeds.

    There is no delay between attempts and later substitutes are never touched
    once an attempt succeeds. When every attempt fails, `FallbackExhausted`
    is raised from the last error.
    """

    candidates: list[S | None] = [None, *substitutes]
    last_error: Exception | None = None

    for attempt, substitute in enumerate(candidates):
        try:
            return await work(substitute)
        except Exception as exc:
            last_error = exc
            logger.warning(
                "fallback_attempt_failed",
                extra={
                    "stage": stage,
                    "attempt": attempt,
                    "remaining": len(candidates) - attempt - 1,
                    "error": str(exc)[:200],
                },
            )

    assert last_error is not None
    raise FallbackExhausted(stage, len(candidates), last_error) from last_error


async def run_chain(
    chain: Sequence[CompletionCapability],
    call: Callable[[CompletionCapability], Awaitable[T]],
    *,
    stage: str,
) -> T:
    """Fallback over capabilities: the first element is primary."""
    if not chain:
        raise ValueError(f"Empty model chain for stage '{stage}'")

    primary, *rest = chain

    async def _work(substitute: CompletionCapability | None) -> T:
        return await call(substitute or primary)

    return await run_with_fallback(_work, rest, stage=stage)
