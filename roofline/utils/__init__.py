"""Utility modules."""

from .logging_config import (
    get_logger,
    setup_logging,
    ensure_logging,
    RooflineFormatter,
    FileFormatter,
)
from .retry import (
    retry_with_backoff,
    RetryConfig,
    RetryableRequest,
    DEFAULT_RETRY_CONFIG,
)
from .validation import (
    validate_address,
    validate_coordinates,
    validate_positive,
    ValidationError,
)

__all__ = [
    # Logging
    "get_logger",
    "setup_logging",
    "ensure_logging",
    "RooflineFormatter",
    "FileFormatter",
    # Retry
    "retry_with_backoff",
    "RetryConfig",
    "RetryableRequest",
    "DEFAULT_RETRY_CONFIG",
    # Validation
    "validate_address",
    "validate_coordinates",
    "validate_positive",
    "ValidationError",
]
