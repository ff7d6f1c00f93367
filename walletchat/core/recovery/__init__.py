"""
Error Recovery Module

Upstream error classification and the retry policy used around RPC and
wallet data calls.
"""

from .errors import (
    ConfirmationTimeoutError,
    ErrorCategory,
    ErrorContext,
    NetworkError,
    RateLimitError,
    RecoverableError,
    RpcError,
    SigningRejectedError,
    TransactionExpiredError,
    TransactionFailedError,
    UnrecoverableError,
    classify_error,
    classify_message,
    is_confirmation_ambiguous,
    is_rate_limited,
)
from .strategies import RetryConfig, RetryStrategy

__all__ = [
    # Errors
    "ConfirmationTimeoutError",
    "ErrorCategory",
    "ErrorContext",
    "NetworkError",
    "RateLimitError",
    "RecoverableError",
    "RpcError",
    "SigningRejectedError",
    "TransactionExpiredError",
    "TransactionFailedError",
    "UnrecoverableError",
    "classify_error",
    "classify_message",
    "is_confirmation_ambiguous",
    "is_rate_limited",
    # Strategies
    "RetryConfig",
    "RetryStrategy",
]
