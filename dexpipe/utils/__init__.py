"""
Utility modules for pipeline services.

Provides common utilities for:
- Structured logging
- Error handling
"""

from .logging import setup_logging
from .errors import (
    DataProcessingError,
    ValidationError,
    ResolutionError,
    StorageError,
    StreamError,
    ConfigurationError,
)

__all__ = [
    "setup_logging",
    "DataProcessingError",
    "ValidationError",
    "ResolutionError",
    "StorageError",
    "StreamError",
    "ConfigurationError",
]
