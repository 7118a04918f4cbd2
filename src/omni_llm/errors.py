"""Exception hierarchy for the orchestration layer.

Every error that leaves `OmniAI.generate` carries the pipeline stage that
produced it (`planning`, `web_search`, `tool_use`, `reasoning`,
`cross_check`, `final`) so failures can be attributed without a traceback.
"""

from __future__ import annotations

from typing import Any


class OmniError(Exception):
    """Base class for all orchestration errors."""

    def __init__(
        self,
        message: str,
        *,
        stage: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.stage = stage
        self.details = details or {}

    def __str__(self) -> str:
        message = super().__str__()
        if self.stage:
            return f"[{self.stage}] {message}"
        return message


class UnknownModel(OmniError):
    """Raised when a model id is not present in the registry."""

    def __init__(self, model_id: str, *, stage: str | None = None) -> None:
        super().__init__(f"Unknown model: {model_id}", stage=stage)
        self.model_id = model_id


class PlanningFailed(OmniError):
    """Every planner candidate failed or returned no usable decision."""


class FallbackExhausted(OmniError):
    """All candidates of a fallback chain failed.

    `last_error` is the exception raised by the final attempt; it is also
    chained as `__cause__`.
    """

    def __init__(self, stage: str, attempts: int, last_error: BaseException) -> None:
        super().__init__(
            f"All {attempts} candidate(s) failed: {last_error}",
            stage=stage,
            details={"attempts": attempts},
        )
        self.attempts = attempts
        self.last_error = last_error


class SchemaValidationFailed(OmniError):
    """Structured output could not be coerced into the caller's schema."""

    def __init__(
        self,
        message: str,
        *,
        errors: list[dict[str, Any]] | None = None,
        stage: str | None = None,
    ) -> None:
        super().__init__(message, stage=stage, details={"errors": errors or []})
        self.errors = errors or []


class ToolExecutionFailed(OmniError):
    """A tool executor raised."""

    def __init__(self, tool_name: str, cause: BaseException) -> None:
        super().__init__(f"Tool '{tool_name}' failed: {cause}", details={"tool": tool_name})
        self.tool_name = tool_name


class StageFailed(OmniError):
    """Wraps a non-orchestration exception raised inside a pipeline stage."""

    def __init__(self, stage: str, cause: BaseException) -> None:
        super().__init__(f"{type(cause).__name__}: {cause}", stage=stage)
