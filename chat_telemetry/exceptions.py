"""
Custom exceptions for CHAT_TELEMETRY.

These exceptions provide more specific error types while maintaining
backward compatibility with RuntimeError.
"""

from typing import Any, Dict, Optional


class ChatTelemetryError(RuntimeError):
    """
    Base exception for chat telemetry errors.

    Attributes:
        message: Error message
        context: Optional dictionary with additional context (session_id,
                 span_id, etc.)
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize the exception.

        Args:
            message: Error message
            context: Optional dictionary with additional context information
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """Return formatted error message with context if available."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} (context: {context_str})"
        return self.message


class EventValidationError(ChatTelemetryError):
    """
    Raised when a message event is malformed and cannot be stored.

    The event is rejected and nothing is written.

    Attributes:
        message: Error message
        field_name: Name of the offending field (if available)
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if field_name:
            context["field_name"] = field_name
        super().__init__(message, context=context)
        self.field_name = field_name


class EventStoreError(ChatTelemetryError):
    """
    Raised when the underlying event storage fails.

    Attributes:
        message: Error message
        operation: Store operation that failed (append, query, ...)
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if operation:
            context["operation"] = operation
        super().__init__(message, context=context)
        self.operation = operation


class SpanStateError(ChatTelemetryError):
    """
    Raised on misuse of the span API.

    Covers closing a span twice, writing an attribute to a closed span and
    starting a child from a missing or closed parent. The span tree is left
    untouched when this is raised.

    Attributes:
        message: Error message
        span_id: Span involved (if available)
        span_name: Name of the span involved (if available)
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        span_id: Optional[str] = None,
        span_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if span_id:
            context["span_id"] = span_id
        if span_name:
            context["span_name"] = span_name
        super().__init__(message, context=context)
        self.span_id = span_id
        self.span_name = span_name


class FieldPolicyError(ChatTelemetryError):
    """
    Raised when a log field or span attribute violates the field policy.

    Values must be scalars (str, int, float, bool or None) and strings must
    not exceed the configured maximum length.

    Attributes:
        message: Error message
        field_name: Offending key (if available)
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if field_name:
            context["field_name"] = field_name
        super().__init__(message, context=context)
        self.field_name = field_name


class ExportError(ChatTelemetryError):
    """
    Raised by a sink when it cannot deliver a batch.

    Never propagated to the request path; the buffered exporter retries and
    eventually drops the batch.

    Attributes:
        message: Error message
        attempts: Number of delivery attempts made (if known)
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        attempts: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if attempts is not None:
            context["attempts"] = attempts
        super().__init__(message, context=context)
        self.attempts = attempts


class ConfigurationError(ChatTelemetryError):
    """
    Raised when configuration is invalid or missing.

    Attributes:
        message: Error message
        config_key: Configuration key that caused the error (if available)
        config_value: Configuration value that caused the error (if available)
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if config_key:
            context["config_key"] = config_key
        if config_value is not None:
            context["config_value"] = config_value
        super().__init__(message, context=context)
        self.config_key = config_key
        self.config_value = config_value
