"""
Error Classification

Error types shared by the chain gateway, the attestation client and the
bridge orchestrator. Errors are classified as recoverable (the operation
may be retried) or unrecoverable (retrying the same call cannot help).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    """Categories of errors for recovery decisions."""

    NETWORK = "network"           # Network/connectivity issues
    RATE_LIMIT = "rate_limit"     # API rate limits
    TIMEOUT = "timeout"           # Operation timed out
    INSUFFICIENT_FUNDS = "insufficient_funds"  # Not enough balance
    TRANSACTION_REVERTED = "transaction_reverted"  # On-chain revert
    CONTRACT = "contract"         # Unexpected contract output (missing events, bad data)
    PROVIDER = "provider"         # External provider error
    VALIDATION = "validation"     # Input validation error
    AUTHENTICATION = "authentication"  # Signer missing or unusable
    UNKNOWN = "unknown"           # Unclassified error


@dataclass
class ErrorContext:
    """Additional context about an error."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    recoverable: bool = True
    retry_after_seconds: Optional[float] = None
    suggested_action: Optional[str] = None
    provider: Optional[str] = None
    chain: Optional[str] = None
    tx_hash: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class RecoverableError(Exception):
    """
    Base class for errors that can be retried.

    These errors are typically transient:
    - RPC connectivity issues
    - Rate limits
    - Timeouts
    - Attestation service outages
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        retry_after: Optional[float] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.retry_after = retry_after
        self.context = context or ErrorContext(category=category, recoverable=True)


class UnrecoverableError(Exception):
    """
    Base class for errors that cannot be retried as-is.

    These errors require a different input or a human decision:
    - Invalid requests
    - Transaction reverts
    - Missing signer
    """

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


class RateLimitError(RecoverableError):
    """API rate limit exceeded."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[float] = None,
        provider: Optional[str] = None,
    ):
        super().__init__(
            message,
            category=ErrorCategory.RATE_LIMIT,
            retry_after=retry_after,
            context=ErrorContext(
                category=ErrorCategory.RATE_LIMIT,
                recoverable=True,
                retry_after_seconds=retry_after,
                provider=provider,
                suggested_action="Wait before retrying",
            ),
        )


class NetworkError(RecoverableError):
    """Network connectivity error."""

    def __init__(
        self,
        message: str = "Network error",
        provider: Optional[str] = None,
    ):
        super().__init__(
            message,
            category=ErrorCategory.NETWORK,
            context=ErrorContext(
                category=ErrorCategory.NETWORK,
                recoverable=True,
                provider=provider,
                suggested_action="Retry with exponential backoff",
            ),
        )


class TimeoutError(RecoverableError):
    """Operation timed out."""

    def __init__(
        self,
        message: str = "Operation timed out",
        operation: Optional[str] = None,
    ):
        super().__init__(
            message,
            category=ErrorCategory.TIMEOUT,
            context=ErrorContext(
                category=ErrorCategory.TIMEOUT,
                recoverable=True,
                suggested_action="Retry with longer timeout",
                details={"operation": operation} if operation else {},
            ),
        )


class TransactionRevertedError(UnrecoverableError):
    """Transaction reverted on-chain (or would revert when simulated)."""

    def __init__(
        self,
        message: str = "Transaction reverted",
        tx_hash: Optional[str] = None,
        reason: Optional[str] = None,
        chain: Optional[str] = None,
    ):
        super().__init__(
            message,
            category=ErrorCategory.TRANSACTION_REVERTED,
            context=ErrorContext(
                category=ErrorCategory.TRANSACTION_REVERTED,
                recoverable=False,
                tx_hash=tx_hash,
                chain=chain,
                suggested_action="Review transaction parameters",
                details={"revert_reason": reason} if reason else {},
            ),
        )
        self.tx_hash = tx_hash
        self.reason = reason


def classify_error(error: Exception) -> ErrorContext:
    """
    Classify an exception and return its error context.

    Already-classified errors keep their own context; anything else is
    matched on its message.
    """
    if isinstance(error, (RecoverableError, UnrecoverableError)):
        return error.context

    message = str(error).lower()

    rate_limit_patterns = [
        "rate limit",
        "too many requests",
        "429",
        "throttl",
        "quota exceeded",
    ]
    if any(p in message for p in rate_limit_patterns):
        return ErrorContext(
            category=ErrorCategory.RATE_LIMIT,
            recoverable=True,
            suggested_action="Wait before retrying",
        )

    network_patterns = [
        "connection",
        "network",
        "unreachable",
        "refused",
        "dns",
        "socket",
        "ssl",
    ]
    if any(p in message for p in network_patterns):
        return ErrorContext(
            category=ErrorCategory.NETWORK,
            recoverable=True,
            suggested_action="Check network connectivity",
        )

    timeout_patterns = ["timeout", "timed out", "deadline"]
    if any(p in message for p in timeout_patterns):
        return ErrorContext(
            category=ErrorCategory.TIMEOUT,
            recoverable=True,
            suggested_action="Retry with longer timeout",
        )

    funds_patterns = [
        "insufficient",
        "not enough",
        "exceeds balance",
        "transfer amount exceeds",
    ]
    if any(p in message for p in funds_patterns):
        return ErrorContext(
            category=ErrorCategory.INSUFFICIENT_FUNDS,
            recoverable=False,
            suggested_action="Add USDC or gas funds to the signer",
        )

    revert_patterns = [
        "revert",
        "execution reverted",
        "transaction failed",
        "out of gas",
        "nonce already used",
    ]
    if any(p in message for p in revert_patterns):
        return ErrorContext(
            category=ErrorCategory.TRANSACTION_REVERTED,
            recoverable=False,
            suggested_action="Review transaction parameters",
        )

    # Unknown errors default to recoverable; read paths still cap attempts
    return ErrorContext(
        category=ErrorCategory.UNKNOWN,
        recoverable=True,
        suggested_action="Retry operation",
    )
