"""
Custom error classes for the DEX pipeline.

Provides structured error handling with error codes,
context information, and proper exception chaining.
"""

from typing import Optional, Dict, Any
from dataclasses import dataclass


@dataclass
class ErrorContext:
    """Error context information."""
    service: str
    operation: str
    stream: Optional[str] = None
    pair_contract: Optional[str] = None
    record_id: Optional[str] = None
    metadata: Dict[str, Any] = None

    def __post_init__(self):
        if self.metadata is None:
            self.metadata = {}


class DataProcessingError(Exception):
    """Base exception for pipeline errors."""

    def __init__(
        self,
        message: str,
        error_code: str,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary."""
        result = {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }

        if self.context:
            result["context"] = {
                "service": self.context.service,
                "operation": self.context.operation,
                "stream": self.context.stream,
                "pair_contract": self.context.pair_contract,
                "record_id": self.context.record_id,
                "metadata": self.context.metadata,
            }

        return result


class ValidationError(DataProcessingError):
    """Error raised when an event payload is malformed or incomplete."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            context=context,
            details=details or {}
        )
        self.field = field
        self.value = value

        if field:
            self.details["field"] = field
        if value is not None:
            self.details["value"] = str(value)


class ResolutionError(DataProcessingError):
    """Error raised when a shared-store key is still absent after all retries."""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        attempts: Optional[int] = None,
        waited_seconds: Optional[float] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="RESOLUTION_ERROR",
            context=context,
            details=details or {}
        )
        self.key = key
        self.attempts = attempts
        self.waited_seconds = waited_seconds

        if key:
            self.details["key"] = key
        if attempts is not None:
            self.details["attempts"] = attempts
        if waited_seconds is not None:
            self.details["waited_seconds"] = waited_seconds


class StorageError(DataProcessingError):
    """Error raised when storage operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="STORAGE_ERROR",
            context=context,
            details=details or {}
        )
        self.operation = operation
        self.table = table

        if operation:
            self.details["operation"] = operation
        if table:
            self.details["table"] = table


class StreamError(DataProcessingError):
    """Error raised when stream broker operations fail."""

    def __init__(
        self,
        message: str,
        stream: Optional[str] = None,
        group: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="STREAM_ERROR",
            context=context,
            details=details or {}
        )
        self.stream = stream
        self.group = group
        self.operation = operation

        if stream:
            self.details["stream"] = stream
        if group:
            self.details["group"] = group
        if operation:
            self.details["operation"] = operation


class ConfigurationError(DataProcessingError):
    """Error raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            context=context,
            details=details or {}
        )
        self.config_key = config_key
        self.config_value = config_value

        if config_key:
            self.details["config_key"] = config_key
        if config_value is not None:
            self.details["config_value"] = str(config_value)


def create_error_context(
    service: str,
    operation: str,
    stream: Optional[str] = None,
    pair_contract: Optional[str] = None,
    record_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> ErrorContext:
    """Create error context."""
    return ErrorContext(
        service=service,
        operation=operation,
        stream=stream,
        pair_contract=pair_contract,
        record_id=record_id,
        metadata=metadata or {}
    )
