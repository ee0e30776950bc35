"""Typed models used by the bridge subsystem."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from .constants import SupportedChain


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class BridgePhase(str, Enum):
    """Position of a transfer within the burn -> attest -> mint lifecycle."""

    PENDING_INITIATION = "pending_initiation"
    INITIATED = "initiated"
    PENDING_ATTESTATION = "pending_attestation"
    ATTESTED = "attested"
    CLAIMING = "claiming"
    COMPLETED = "completed"
    FAILED = "failed"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self in (BridgePhase.COMPLETED, BridgePhase.ABANDONED)

    @property
    def is_active(self) -> bool:
        return self not in INACTIVE_PHASES


INACTIVE_PHASES: FrozenSet[BridgePhase] = frozenset({
    BridgePhase.COMPLETED,
    BridgePhase.FAILED,
    BridgePhase.ABANDONED,
})

# Self-transitions (retry of the same phase) are allowed for every
# non-terminal phase and are not listed here.
PHASE_TRANSITIONS: Dict[BridgePhase, FrozenSet[BridgePhase]] = {
    BridgePhase.PENDING_INITIATION: frozenset({
        BridgePhase.INITIATED,
        BridgePhase.FAILED,
        BridgePhase.ABANDONED,
    }),
    BridgePhase.INITIATED: frozenset({
        BridgePhase.PENDING_ATTESTATION,
        BridgePhase.FAILED,
        BridgePhase.ABANDONED,
    }),
    BridgePhase.PENDING_ATTESTATION: frozenset({
        BridgePhase.ATTESTED,
        BridgePhase.FAILED,
        BridgePhase.ABANDONED,
    }),
    BridgePhase.ATTESTED: frozenset({
        BridgePhase.CLAIMING,
        BridgePhase.FAILED,
        BridgePhase.ABANDONED,
    }),
    BridgePhase.CLAIMING: frozenset({
        BridgePhase.COMPLETED,
        BridgePhase.FAILED,
        BridgePhase.ABANDONED,
    }),
    BridgePhase.FAILED: frozenset({
        BridgePhase.PENDING_ATTESTATION,  # Re-poll after an attestation problem
        BridgePhase.CLAIMING,             # Retry the claim alone
        BridgePhase.ABANDONED,
    }),
    BridgePhase.COMPLETED: frozenset(),
    BridgePhase.ABANDONED: frozenset(),
}


def can_transition(from_phase: BridgePhase, to_phase: BridgePhase) -> bool:
    if from_phase == to_phase:
        return not from_phase.is_terminal
    return to_phase in PHASE_TRANSITIONS.get(from_phase, frozenset())


@dataclass(frozen=True)
class FeeBreakdown:
    bridge_fee: int
    total_fee: int
    net_amount: int

    def to_dict(self) -> Dict[str, str]:
        return {
            "bridgeFee": str(self.bridge_fee),
            "totalFee": str(self.total_fee),
            "netAmount": str(self.net_amount),
        }


@dataclass
class BridgeRequest:
    """Caller input for ``initiate`` / ``execute_bridge``.

    ``amount`` is in USDC smallest units (6 decimals). ``recipient`` defaults
    to the signer's own address on the destination chain.
    """

    amount: int
    destination_chain: Any
    recipient: Optional[str] = None


@dataclass
class PhaseTransition:
    from_phase: Optional[BridgePhase]
    to_phase: BridgePhase
    timestamp: datetime = field(default_factory=utcnow)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.from_phase.value if self.from_phase else None,
            "to": self.to_phase.value,
            "timestamp": self.timestamp.isoformat(),
            "error": self.error,
        }


@dataclass
class BridgeTransfer:
    """Registry record for one transfer, keyed by ``tracking_id``."""

    tracking_id: str
    phase: BridgePhase
    source_chain: SupportedChain
    destination_chain: SupportedChain
    amount: int
    net_amount: int
    fee_breakdown: FeeBreakdown
    recipient: Optional[str] = None
    sender: Optional[str] = None

    approval_tx_hash: Optional[str] = None
    source_tx_hash: Optional[str] = None
    dest_tx_hash: Optional[str] = None
    message_hash: Optional[str] = None
    raw_message: Optional[str] = None
    attestation: Optional[str] = None

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    estimated_completion_time: Optional[datetime] = None
    error: Optional[str] = None
    history: List[PhaseTransition] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.phase.is_active

    @property
    def last_successful_phase(self) -> BridgePhase:
        """Most recent non-failure phase, i.e. where a retry should resume."""
        for transition in reversed(self.history):
            if transition.to_phase not in (BridgePhase.FAILED, BridgePhase.ABANDONED):
                return transition.to_phase
        return self.phase

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trackingId": self.tracking_id,
            "phase": self.phase.value,
            "sourceChain": self.source_chain.value,
            "destinationChain": self.destination_chain.value,
            "amount": str(self.amount),
            "netAmount": str(self.net_amount),
            "feeBreakdown": self.fee_breakdown.to_dict(),
            "recipient": self.recipient,
            "sender": self.sender,
            "approvalTxHash": self.approval_tx_hash,
            "sourceTxHash": self.source_tx_hash,
            "destTxHash": self.dest_tx_hash,
            "messageHash": self.message_hash,
            "message": self.raw_message,
            "attestation": self.attestation,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
            "estimatedCompletionTime": _iso(self.estimated_completion_time),
            "error": self.error,
            "history": [t.to_dict() for t in self.history],
        }


@dataclass
class InitiateResult:
    """Outcome of a successful burn on the source chain."""

    tracking_id: str
    tx_hash: str
    phase: BridgePhase
    source_chain: SupportedChain
    destination_chain: SupportedChain
    recipient: str
    amount: int
    net_amount: int
    fee_breakdown: FeeBreakdown
    message_hash: str
    message: str
    approval_tx_hash: Optional[str] = None
    success: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "trackingId": self.tracking_id,
            "txHash": self.tx_hash,
            "status": self.phase.value,
            "sourceChain": self.source_chain.value,
            "destinationChain": self.destination_chain.value,
            "recipient": self.recipient,
            "amount": str(self.amount),
            "netAmount": str(self.net_amount),
            "feeBreakdown": self.fee_breakdown.to_dict(),
            "messageHash": self.message_hash,
            "message": self.message,
            "approvalTxHash": self.approval_tx_hash,
        }


class AttestationState(str, Enum):
    PENDING = "pending"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class AttestationPoll:
    """Single answer from the attestation service."""

    state: AttestationState
    attestation: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def pending(cls) -> "AttestationPoll":
        return cls(state=AttestationState.PENDING)

    @classmethod
    def complete(cls, attestation: str) -> "AttestationPoll":
        return cls(state=AttestationState.COMPLETE, attestation=attestation)

    @classmethod
    def failed(cls, error: str) -> "AttestationPoll":
        return cls(state=AttestationState.ERROR, error=error)


@dataclass
class AttestationResult:
    message_hash: str
    attestation: str
    attempts: int
    tracking_id: Optional[str] = None
    status: str = "attested"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "messageHash": self.message_hash,
            "attestation": self.attestation,
            "attempts": self.attempts,
            "trackingId": self.tracking_id,
        }


@dataclass
class ClaimResult:
    """Outcome of ``receiveMessage`` on the destination chain.

    A reverted claim is reported with ``success=False`` so the caller can
    retry the claim alone.
    """

    success: bool
    dest_tx_hash: Optional[str] = None
    error: Optional[str] = None
    tracking_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "txHash": self.dest_tx_hash,
            "error": self.error,
            "trackingId": self.tracking_id,
        }


@dataclass
class BridgeExecution:
    success: bool
    tracking_id: str
    source_tx_hash: Optional[str] = None
    dest_tx_hash: Optional[str] = None
    phase: BridgePhase = BridgePhase.COMPLETED
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "trackingId": self.tracking_id,
            "sourceTxHash": self.source_tx_hash,
            "destTxHash": self.dest_tx_hash,
            "phase": self.phase.value,
            "error": self.error,
        }


@dataclass(frozen=True)
class BridgeTimeEstimate:
    min_seconds: int
    max_seconds: int
    average_seconds: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "minSeconds": self.min_seconds,
            "maxSeconds": self.max_seconds,
            "averageSeconds": self.average_seconds,
        }


@dataclass(frozen=True)
class BridgeProgressEvent:
    tracking_id: str
    phase: BridgePhase
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trackingId": self.tracking_id,
            "phase": self.phase.value,
            "txHash": self.tx_hash,
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class LogEntry:
    address: str
    topics: List[str]
    data: str


@dataclass
class TransactionReceipt:
    tx_hash: str
    success: bool
    logs: List[LogEntry] = field(default_factory=list)
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
