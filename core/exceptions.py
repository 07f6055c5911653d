"""
Pipeline Exceptions
===================
Errors raised by the curation pipeline, each tagged with the component
that raised it and whether the resilience layer may retry it.

Handling categories:
- expected-empty states are never raised, callers return defaults
- transient external failures carry ``retryable=True``
- malformed model output is absorbed at the parse boundary
- invariant violations raise ValidationError immediately
"""

from typing import Any, Optional


class CurationException(Exception):
    """
    Root of the pipeline's exceptions.

    Attributes:
        component: Pipeline component that raised the error
        context: Structured details for log lines
        retryable: Whether the resilience layer should try again
    """

    component: str = "pipeline"

    def __init__(
        self,
        message: str,
        *,
        context: Optional[dict[str, Any]] = None,
        retryable: bool = False,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}
        self.retryable = retryable
        if cause:
            self.__cause__ = cause

    def __str__(self) -> str:
        if not self.context:
            return f"[{self.component}] {self.message}"
        details = ", ".join(f"{k}={v}" for k, v in self.context.items() if v is not None)
        return f"[{self.component}] {self.message} ({details})"


# =============================================================================
# TEXT GENERATION
# =============================================================================


class LLMException(CurationException):
    """A text-generation backend call failed."""

    component = "llm"


LLMProviderError = LLMException


class LLMRateLimitError(LLMException):
    """Provider throttled the request; always worth another attempt."""

    def __init__(self, message: str = "LLM API rate limit exceeded", **kwargs):
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)


class LLMTimeoutError(LLMException):
    def __init__(self, message: str = "LLM API request timed out", *, timeout_seconds: Optional[float] = None, **kwargs):
        kwargs.setdefault("retryable", True)
        super().__init__(message, context={"timeout_seconds": timeout_seconds}, **kwargs)


class LLMNotConfiguredError(LLMException):
    """No usable backend: generation cannot start at all."""

    def __init__(self, provider: str, **kwargs):
        super().__init__(
            f"No API key configured for provider '{provider}'",
            context={"provider": provider},
            **kwargs,
        )


# =============================================================================
# DOCUMENTS & STORE
# =============================================================================


class DocumentSourceError(CurationException):
    """The document source could not list or read documents."""

    component = "document_source"

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)


class DatabaseConnectionError(CurationException):
    """The article/activity store is unreachable."""

    component = "store"

    def __init__(self, message: str = "Database connection failed", **kwargs):
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)


class DatabaseQueryError(CurationException):
    component = "store"

    def __init__(self, message: str = "Database query failed", *, query_preview: str = "", **kwargs):
        super().__init__(message, context={"query": query_preview[:200]}, **kwargs)


# =============================================================================
# GENERATION & SELECTION
# =============================================================================


class GenerationError(CurationException):
    """A single article could not be produced; the batch skips it."""

    component = "generator"

    def __init__(self, message: str, *, topic: Optional[str] = None, **kwargs):
        super().__init__(message, context={"topic": topic}, **kwargs)


class ModelSelectionError(CurationException):
    component = "model_selector"

    def __init__(self, message: str = "No model available for requirement", **kwargs):
        super().__init__(message, **kwargs)


class ValidationError(CurationException):
    """Caller input breaks an invariant (negative counts, bad catalog entries). Never retried."""

    component = "validation"

    def __init__(self, message: str, *, field: Optional[str] = None, value: Any = None, **kwargs):
        kwargs["retryable"] = False
        super().__init__(message, context={"field": field, "value": repr(value)}, **kwargs)
        self.field = field


def is_retryable(exc: BaseException) -> bool:
    """
    Whether the resilience layer should attempt ``exc`` again.

    Pipeline exceptions carry their own flag. ValueError, TypeError and
    KeyError are programming or data errors and fail at once. Any other
    exception comes from an external client (connection resets, timeouts,
    SDK errors) and is treated as transient.
    """
    if isinstance(exc, CurationException):
        return exc.retryable

    if isinstance(exc, (ValueError, TypeError, KeyError)):
        return False

    return isinstance(exc, Exception)


__all__ = [
    "CurationException",
    "LLMException",
    "LLMProviderError",
    "LLMRateLimitError",
    "LLMTimeoutError",
    "LLMNotConfiguredError",
    "DocumentSourceError",
    "DatabaseConnectionError",
    "DatabaseQueryError",
    "GenerationError",
    "ModelSelectionError",
    "ValidationError",
    "is_retryable",
]
