"""
Error Classification

Upstream failures (RPC nodes, wallet adapters, HTTP APIs) are mapped onto a
small closed set of categories. Matching on provider error text happens here
and nowhere else; services branch on ``ErrorCategory``.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

import httpx


class ErrorCategory(str, Enum):
    """Categories of upstream errors."""

    NETWORK = "network"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    CONFIRMATION_UNAVAILABLE = "confirmation_unavailable"
    SIGNATURE_EXPIRED = "signature_expired"
    USER_REJECTED = "user_rejected"
    INSUFFICIENT_RENT = "insufficient_rent"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    TRANSACTION_FAILED = "transaction_failed"
    UNKNOWN = "unknown"


# Categories where a broadcast transaction may still have landed.
_CONFIRMATION_AMBIGUOUS = frozenset(
    {
        ErrorCategory.NETWORK,
        ErrorCategory.RATE_LIMIT,
        ErrorCategory.TIMEOUT,
        ErrorCategory.CONFIRMATION_UNAVAILABLE,
    }
)


@dataclass
class ErrorContext:
    """Additional context about an error."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    recoverable: bool = True
    provider: Optional[str] = None
    signature: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class RecoverableError(Exception):
    """Transient failure; another attempt or another endpoint may succeed."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.context = context or ErrorContext(category=category, recoverable=True)


class UnrecoverableError(Exception):
    """Terminal failure; retrying cannot change the outcome."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.context = context or ErrorContext(category=category, recoverable=False)


class RpcError(RecoverableError):
    """JSON-RPC error object returned by a node."""

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        endpoint: Optional[str] = None,
        data: Any = None,
    ):
        category = classify_message(message)
        super().__init__(
            message,
            category=category,
            context=ErrorContext(
                category=category,
                recoverable=True,
                provider=endpoint,
                details={"code": code, "data": data},
            ),
        )
        self.code = code
        self.endpoint = endpoint
        self.data = data


class RateLimitError(RecoverableError):
    """Upstream answered 429 or an equivalent throttling error."""

    def __init__(self, message: str = "Rate limit exceeded", provider: Optional[str] = None):
        super().__init__(
            message,
            category=ErrorCategory.RATE_LIMIT,
            context=ErrorContext(category=ErrorCategory.RATE_LIMIT, provider=provider),
        )


class NetworkError(RecoverableError):
    """Upstream unreachable or the transport failed."""

    def __init__(self, message: str = "Network error", provider: Optional[str] = None):
        super().__init__(
            message,
            category=ErrorCategory.NETWORK,
            context=ErrorContext(category=ErrorCategory.NETWORK, provider=provider),
        )


class ConfirmationTimeoutError(RecoverableError):
    """Confirmation polling gave up before the signature reached a final state."""

    def __init__(self, signature: str, timeout_s: float):
        super().__init__(
            f"Transaction {signature} was not confirmed in {timeout_s:.2f} seconds",
            category=ErrorCategory.TIMEOUT,
            context=ErrorContext(category=ErrorCategory.TIMEOUT, signature=signature),
        )
        self.signature = signature


class TransactionExpiredError(UnrecoverableError):
    """The blockhash expired before the transaction was confirmed."""

    def __init__(self, signature: str, last_valid_block_height: Optional[int] = None):
        super().__init__(
            f"Signature {signature} has expired: block height exceeded",
            category=ErrorCategory.SIGNATURE_EXPIRED,
            context=ErrorContext(
                category=ErrorCategory.SIGNATURE_EXPIRED,
                recoverable=False,
                signature=signature,
                details={"last_valid_block_height": last_valid_block_height},
            ),
        )
        self.signature = signature


class TransactionFailedError(UnrecoverableError):
    """The chain executed the transaction and reported an error."""

    def __init__(self, signature: str, err: Any):
        super().__init__(
            f"Transaction {signature} failed on-chain: {err}",
            category=ErrorCategory.TRANSACTION_FAILED,
            context=ErrorContext(
                category=ErrorCategory.TRANSACTION_FAILED,
                recoverable=False,
                signature=signature,
                details={"err": err},
            ),
        )
        self.signature = signature
        self.err = err


class SigningRejectedError(UnrecoverableError):
    """The wallet holder declined to sign."""

    def __init__(self, message: str = "User rejected the request"):
        super().__init__(
            message,
            category=ErrorCategory.USER_REJECTED,
            context=ErrorContext(category=ErrorCategory.USER_REJECTED, recoverable=False),
        )


# Pattern lists are checked in order; the first list with a hit wins.
_PATTERNS = (
    (ErrorCategory.USER_REJECTED, ("user rejected", "user denied", "rejected the request")),
    (
        ErrorCategory.SIGNATURE_EXPIRED,
        (
            "block height exceeded",
            "blockheightexceeded",
            "signature has expired",
            "blockhash not found",
        ),
    ),
    (
        ErrorCategory.CONFIRMATION_UNAVAILABLE,
        (
            "api key is not allowed to access blockchain",
            "failed to get recent blockhash",
            "failed to fetch",
        ),
    ),
    (ErrorCategory.INSUFFICIENT_RENT, ("insufficient funds for rent", "insufficientfundsforrent")),
    (ErrorCategory.INSUFFICIENT_FUNDS, ("insufficient funds", "insufficient lamports")),
    (ErrorCategory.RATE_LIMIT, ("429", "rate limit", "too many requests")),
    (ErrorCategory.TIMEOUT, ("timed out", "timeout", "was not confirmed")),
    (
        ErrorCategory.NETWORK,
        ("network", "connection", "econnreset", "fetch failed", "unreachable", "refused", "socket"),
    ),
)


def classify_message(message: str) -> ErrorCategory:
    """Classify raw provider error text."""

    text = (message or "").lower()
    for category, patterns in _PATTERNS:
        if any(p in text for p in patterns):
            return category
    return ErrorCategory.UNKNOWN


def classify_error(error: BaseException) -> ErrorCategory:
    """Map an exception raised by any upstream onto an ``ErrorCategory``."""

    if isinstance(error, (RecoverableError, UnrecoverableError)):
        return error.category

    if isinstance(error, httpx.HTTPStatusError):
        if error.response.status_code == 429:
            return ErrorCategory.RATE_LIMIT
        return classify_message(str(error))
    if isinstance(error, httpx.TimeoutException):
        return ErrorCategory.TIMEOUT
    if isinstance(error, httpx.TransportError):
        return ErrorCategory.NETWORK

    return classify_message(str(error))


def is_confirmation_ambiguous(error: Union[BaseException, ErrorCategory]) -> bool:
    """True when a failed confirmation call says nothing about the transaction itself."""

    category = error if isinstance(error, ErrorCategory) else classify_error(error)
    return category in _CONFIRMATION_AMBIGUOUS


def is_rate_limited(error: BaseException) -> bool:
    return classify_error(error) == ErrorCategory.RATE_LIMIT
