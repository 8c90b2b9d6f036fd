"""
Exception Hierarchy & Error Handling Framework
===============================================
Type-safe exception taxonomy with structured context propagation,
retry metadata, and observability integration.

Three families mirror the engine's layers:
- ProviderError: raised by vendor adapters
- GenerationError: raised by the generation orchestrator and surfaced to callers
- StorageError: opaque pass-through from the record store

Architecture: Railway-Oriented Programming + Error Algebra
"""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

from core.enums import ErrorSeverity

# =============================================================================
# BASE EXCEPTION CLASSES
# =============================================================================


class ReviewEngineException(Exception):
    """
    Root exception for all engine errors.

    Implements structured error context with:
    - Unique error ID for log correlation
    - Severity classification for alerting
    - Structured context dictionary
    - Retry metadata
    - Timestamp for temporal analysis
    """

    def __init__(
        self,
        message: str,
        *,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: Optional[dict[str, Any]] = None,
        error_code: Optional[str] = None,
        retryable: bool = False,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.error_id: UUID = uuid4()
        self.message: str = message
        self.severity: ErrorSeverity = severity
        self.context: dict[str, Any] = context or {}
        self.error_code: Optional[str] = error_code
        self.retryable: bool = retryable
        self.timestamp: datetime = datetime.utcnow()

        # Exception chaining for causal analysis
        if cause:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception for logging/telemetry."""
        return {
            "error_id": str(self.error_id),
            "error_type": self.__class__.__name__,
            "message": self.message,
            "severity": self.severity.name,
            "error_code": self.error_code,
            "retryable": self.retryable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.__cause__) if self.__cause__ else None,
        }

    def __str__(self) -> str:
        """Human-readable error representation."""
        parts = [f"[{self.severity.name}] {self.message}"]
        if self.error_code:
            parts.append(f"Code: {self.error_code}")
        if self.context:
            parts.append(f"Context: {self.context}")
        return " | ".join(parts)


def _merge_context(base: dict[str, Any], extra: Optional[dict[str, Any]]) -> dict[str, Any]:
    merged = dict(base)
    if extra:
        merged.update(extra)
    return merged


# =============================================================================
# PROVIDER ADAPTER EXCEPTIONS
# =============================================================================


class ProviderError(ReviewEngineException):
    """Base exception for vendor adapter failures."""

    def __init__(self, message: str, *, provider: Optional[str] = None, **kwargs):
        kwargs["context"] = _merge_context({"provider": provider}, kwargs.get("context"))
        kwargs.setdefault("severity", ErrorSeverity.ERROR)
        super().__init__(message, **kwargs)
        self.provider = provider

    @property
    def vendor_message(self) -> Optional[str]:
        """Vendor-supplied error text, when the failure carried one."""
        return None


class MissingProviderCredentialsError(ProviderError):
    """Adapter invoked without a usable API key; no network call was made."""

    def __init__(self, message: Optional[str] = None, *, provider: Optional[str] = None, **kwargs):
        super().__init__(
            message or f"API key missing for provider {provider}",
            provider=provider,
            retryable=False,
            error_code="PROVIDER_MISSING_CREDENTIALS",
            **kwargs,
        )


class MalformedProviderResponseError(ProviderError):
    """Vendor returned content that could not be parsed into reviews."""

    def __init__(
        self,
        message: str = "Provider returned a malformed response",
        *,
        provider: Optional[str] = None,
        raw_text: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            provider=provider,
            retryable=False,
            context={"response_preview": raw_text[:500] if raw_text else None},
            error_code="PROVIDER_MALFORMED_RESPONSE",
            **kwargs,
        )
        self.raw_text = raw_text


class ProviderUpstreamError(ProviderError):
    """Network, HTTP or timeout failure talking to the vendor."""

    def __init__(
        self,
        message: str = "Provider request failed",
        *,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        vendor_message: Optional[str] = None,
        retryable: bool = False,
        **kwargs,
    ):
        super().__init__(
            message,
            provider=provider,
            retryable=retryable,
            context={"status_code": status_code, "vendor_message": vendor_message},
            error_code="PROVIDER_UPSTREAM_FAILURE",
            **kwargs,
        )
        self.status_code = status_code
        self._vendor_message = vendor_message

    @property
    def vendor_message(self) -> Optional[str]:
        return self._vendor_message


# =============================================================================
# GENERATION EXCEPTIONS
# =============================================================================


class GenerationError(ReviewEngineException):
    """Base exception for orchestrator-level generation errors."""

    def __init__(self, message: str = "Review generation failed", **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.ERROR)
        super().__init__(message, **kwargs)


class UnsupportedProviderError(GenerationError):
    """No adapter is registered for the requested provider."""

    def __init__(self, provider: str, *, supported: Optional[list[str]] = None, **kwargs):
        super().__init__(
            f"AI provider {provider} not supported",
            retryable=False,
            context={"provider": provider, "supported_providers": supported},
            error_code="UNSUPPORTED_PROVIDER",
            **kwargs,
        )
        self.provider = provider


class MissingCredentialsError(GenerationError):
    """No usable API key could be resolved for the (business, provider) pair."""

    def __init__(
        self,
        provider: str,
        *,
        business_id: Optional[str] = None,
        message: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message or f"API key missing for {provider}. Please configure an AI model.",
            retryable=False,
            context={"provider": provider, "business_id": business_id},
            error_code="MISSING_CREDENTIALS",
            **kwargs,
        )
        self.provider = provider
        self.business_id = business_id


class GenerationFailedError(GenerationError):
    """Provider call failed; wraps the underlying ProviderError."""

    def __init__(
        self,
        summary: str,
        *,
        provider: str,
        model_id: Optional[str] = None,
        cause: Optional[ProviderError] = None,
        **kwargs,
    ):
        super().__init__(
            f"Failed to generate reviews: {summary}",
            retryable=bool(cause and cause.retryable),
            context={"provider": provider, "model_id": model_id},
            error_code="GENERATION_FAILED",
            cause=cause,
            **kwargs,
        )
        self.summary = summary
        self.provider = provider
        self.model_id = model_id
        self.provider_error = cause


class NoTemplatesAvailableError(ReviewEngineException):
    """A fallback path needed an active template and the pool was empty."""

    def __init__(self, business_id: str, **kwargs):
        super().__init__(
            "No active templates found. Please create review templates first.",
            severity=ErrorSeverity.WARNING,
            retryable=False,
            context={"business_id": business_id},
            error_code="NO_ACTIVE_TEMPLATES",
            **kwargs,
        )


# =============================================================================
# STORAGE EXCEPTIONS
# =============================================================================


class StorageError(ReviewEngineException):
    """Opaque failure reported by the record store."""

    def __init__(self, message: str = "Storage operation failed", **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.CRITICAL)
        kwargs.setdefault("error_code", "STORAGE_ERROR")
        super().__init__(message, **kwargs)


class EntityNotFoundError(StorageError):
    """Requested entity does not exist."""

    def __init__(self, entity_type: str, entity_id: Any, message: Optional[str] = None, **kwargs):
        message = message or f"{entity_type} with ID {entity_id} not found"
        super().__init__(
            message,
            severity=ErrorSeverity.WARNING,
            retryable=False,
            context={"entity_type": entity_type, "entity_id": str(entity_id)},
            error_code="ENTITY_NOT_FOUND",
            **kwargs,
        )


class ReferenceViolationError(StorageError):
    """Write referenced a parent record that no longer exists."""

    def __init__(self, entity_type: str, reference: str, reference_id: Any, **kwargs):
        super().__init__(
            f"{entity_type} references missing {reference} {reference_id}",
            retryable=False,
            context={"entity_type": entity_type, reference: str(reference_id)},
            error_code="REFERENCE_VIOLATION",
            **kwargs,
        )
