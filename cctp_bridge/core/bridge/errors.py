"""
Bridge error types.

Every error exposes a stable ``code`` so API and CLI callers can tell kinds
apart without importing the classes. Validation errors are raised before any
network call; protocol errors end the current call; on-chain claim failures
are never raised (see ``ClaimResult``).
"""

from typing import Any, Dict, Optional

from ..recovery.errors import (
    ErrorCategory,
    ErrorContext,
    RecoverableError,
    UnrecoverableError,
)


class BridgeError(UnrecoverableError):
    """Base class for bridge failures that need a new input or a caller decision."""

    code = "BRIDGE_ERROR"

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        tx_hash: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message,
            category=category,
            context=ErrorContext(
                category=category,
                recoverable=False,
                tx_hash=tx_hash,
                details=details or {},
            ),
        )
        self.tx_hash = tx_hash


class BridgeValidationError(BridgeError):
    """Request rejected before any network call."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message,
            category=ErrorCategory.VALIDATION,
            details={"field": field} if field else None,
        )
        self.field = field


class InvalidAmountError(BridgeValidationError):
    code = "INVALID_AMOUNT"

    def __init__(self, message: str = "Amount must be greater than 0"):
        super().__init__(message, field="amount")


class InvalidAddressError(BridgeValidationError):
    code = "INVALID_ADDRESS"

    def __init__(self, message: str = "Invalid recipient address"):
        super().__init__(message, field="recipient")


class UnsupportedChainError(BridgeValidationError):
    code = "UNSUPPORTED_CHAIN"

    def __init__(self, chain: Any, message: Optional[str] = None):
        super().__init__(message or f"Unsupported destination chain: {chain}", field="destinationChain")
        self.chain = chain


class InvalidMessageFormatError(BridgeValidationError):
    code = "INVALID_MESSAGE_FORMAT"

    def __init__(self, message: str = "Invalid message format"):
        super().__init__(message, field="message")


class InvalidAttestationFormatError(BridgeValidationError):
    code = "INVALID_ATTESTATION_FORMAT"

    def __init__(self, message: str = "Invalid attestation format"):
        super().__init__(message, field="attestation")


class WalletNotInitializedError(BridgeError):
    code = "WALLET_NOT_INITIALIZED"

    def __init__(self, message: str = "Wallet not initialized. Configure a signing key first."):
        super().__init__(message, category=ErrorCategory.AUTHENTICATION)


class ApprovalFailedError(BridgeError):
    code = "APPROVAL_FAILED"

    def __init__(self, tx_hash: Optional[str] = None, message: str = "Approval transaction failed"):
        super().__init__(message, category=ErrorCategory.TRANSACTION_REVERTED, tx_hash=tx_hash)


class BurnFailedError(BridgeError):
    code = "BURN_FAILED"

    def __init__(self, tx_hash: Optional[str] = None, message: str = "Bridge transaction failed"):
        super().__init__(message, category=ErrorCategory.TRANSACTION_REVERTED, tx_hash=tx_hash)


class MessageExtractionFailedError(BridgeError):
    code = "MESSAGE_EXTRACTION_FAILED"

    def __init__(
        self,
        tx_hash: Optional[str] = None,
        message: str = "Failed to extract message from transaction logs",
    ):
        super().__init__(message, category=ErrorCategory.CONTRACT, tx_hash=tx_hash)


class AttestationFetchFailedError(RecoverableError):
    """The attestation service could not be reached or answered with an error."""

    code = "ATTESTATION_FETCH_FAILED"

    def __init__(self, reason: str, message_hash: Optional[str] = None, attempts: int = 0):
        super().__init__(
            f"Failed to get attestation: {reason}",
            category=ErrorCategory.NETWORK,
            context=ErrorContext(
                category=ErrorCategory.NETWORK,
                recoverable=True,
                provider="attestation",
                suggested_action="Call wait_for_attestation again once the service is reachable",
                details={"message_hash": message_hash, "attempts": attempts},
            ),
        )
        self.reason = reason
        self.message_hash = message_hash
        self.attempts = attempts


class AttestationTimeoutError(RecoverableError):
    """Polling budget spent while the attestation was still pending."""

    code = "ATTESTATION_TIMEOUT"

    def __init__(self, message_hash: Optional[str] = None, attempts: int = 0):
        super().__init__(
            "Attestation timeout: max attempts reached",
            category=ErrorCategory.TIMEOUT,
            context=ErrorContext(
                category=ErrorCategory.TIMEOUT,
                recoverable=True,
                provider="attestation",
                suggested_action="Poll again later; the burn cannot be cancelled",
                details={"message_hash": message_hash, "attempts": attempts},
            ),
        )
        self.message_hash = message_hash
        self.attempts = attempts


class InvalidTransitionError(BridgeError):
    code = "INVALID_TRANSITION"

    def __init__(self, from_phase: Any, to_phase: Any, message: Optional[str] = None):
        from_value = getattr(from_phase, "value", from_phase)
        to_value = getattr(to_phase, "value", to_phase)
        super().__init__(
            message or f"Invalid transition from {from_value} to {to_value}",
            category=ErrorCategory.VALIDATION,
        )
        self.from_phase = from_phase
        self.to_phase = to_phase


class TransferNotFoundError(BridgeError):
    code = "TRANSFER_NOT_FOUND"

    def __init__(self, tracking_id: str):
        super().__init__(f"Unknown tracking id: {tracking_id}", category=ErrorCategory.VALIDATION)
        self.tracking_id = tracking_id


class DuplicateTrackingIdError(BridgeError):
    code = "DUPLICATE_TRACKING_ID"

    def __init__(self, tracking_id: str):
        super().__init__(f"Tracking id already in use: {tracking_id}", category=ErrorCategory.VALIDATION)
        self.tracking_id = tracking_id


class RpcError(UnrecoverableError):
    """JSON-RPC error object returned by a chain endpoint."""

    code = "RPC_ERROR"

    def __init__(self, message: str, rpc_code: Optional[int] = None, data: Any = None, chain: Optional[str] = None):
        super().__init__(
            message,
            category=ErrorCategory.PROVIDER,
            context=ErrorContext(
                category=ErrorCategory.PROVIDER,
                recoverable=False,
                chain=chain,
                details={"rpc_code": rpc_code, "data": data},
            ),
        )
        self.rpc_code = rpc_code
        self.data = data
