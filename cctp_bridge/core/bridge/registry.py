"""
Bridge Registry

Concurrent-safe in-memory store of transfer status keyed by tracking id.
Writers of one record are serialised by that record's lock; different
records never share a lock. Records are never deleted.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from dataclasses import fields as dataclass_fields
from typing import Any, Dict, List, Optional

from .errors import (
    BridgeValidationError,
    DuplicateTrackingIdError,
    InvalidTransitionError,
    TransferNotFoundError,
)
from .models import (
    BridgePhase,
    BridgeTransfer,
    PhaseTransition,
    can_transition,
    utcnow,
)
from .timing import estimated_completion

# Fields callers may set through ``update``; identity and bookkeeping fields
# (tracking_id, phase, timestamps, history) are managed here.
UPDATABLE_FIELDS = frozenset(
    f.name for f in dataclass_fields(BridgeTransfer)
) - {"tracking_id", "phase", "created_at", "updated_at", "estimated_completion_time", "history"}

# Entry guards: a phase cannot be entered while these fields are unset
REQUIRED_FIELDS: Dict[BridgePhase, tuple] = {
    BridgePhase.PENDING_ATTESTATION: ("message_hash",),
    BridgePhase.ATTESTED: ("message_hash", "attestation"),
    BridgePhase.CLAIMING: ("raw_message", "attestation"),
}


class BridgeRegistry(ABC):
    """Storage interface the orchestrator depends on."""

    @abstractmethod
    async def create(self, transfer: BridgeTransfer) -> BridgeTransfer:
        """Register a new transfer. Tracking ids are never reused."""

    @abstractmethod
    async def update(self, tracking_id: str, phase: BridgePhase, **fields: Any) -> BridgeTransfer:
        """Move a transfer to ``phase`` and merge ``fields`` into its record."""

    @abstractmethod
    def get(self, tracking_id: str) -> Optional[BridgeTransfer]:
        """Return a snapshot of the transfer, or ``None`` when unknown."""

    @abstractmethod
    def find_by_message_hash(self, message_hash: str) -> Optional[BridgeTransfer]:
        """Return the transfer whose burn produced ``message_hash``."""

    @abstractmethod
    def list_active(self) -> List[BridgeTransfer]:
        """Transfers not yet completed, failed or abandoned."""


class InMemoryBridgeRegistry(BridgeRegistry):

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self._records: Dict[str, BridgeTransfer] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._by_message_hash: Dict[str, str] = {}

    def _get_lock(self, tracking_id: str) -> asyncio.Lock:
        lock = self._locks.get(tracking_id)
        if lock is None:
            lock = self._locks[tracking_id] = asyncio.Lock()
        return lock

    async def create(self, transfer: BridgeTransfer) -> BridgeTransfer:
        tracking_id = transfer.tracking_id
        async with self._get_lock(tracking_id):
            if tracking_id in self._records:
                raise DuplicateTrackingIdError(tracking_id)

            record = copy.deepcopy(transfer)
            if record.message_hash:
                self._check_message_hash(record, record.message_hash)
            now = utcnow()
            record.created_at = now
            record.updated_at = now
            record.estimated_completion_time = estimated_completion(
                record.phase, record.destination_chain, now
            )
            record.history = [PhaseTransition(from_phase=None, to_phase=record.phase, timestamp=now)]
            self._records[tracking_id] = record
            self._index(record)

            self.logger.debug("Registered transfer %s at %s", tracking_id, record.phase.value)
            return copy.deepcopy(record)

    async def update(self, tracking_id: str, phase: BridgePhase, **fields: Any) -> BridgeTransfer:
        phase = BridgePhase(phase)
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")

        async with self._get_lock(tracking_id):
            record = self._records.get(tracking_id)
            if record is None:
                raise TransferNotFoundError(tracking_id)

            from_phase = record.phase
            if not can_transition(from_phase, phase):
                raise InvalidTransitionError(from_phase, phase)

            merged = {name: value for name, value in fields.items() if value is not None}
            for name in REQUIRED_FIELDS.get(phase, ()):
                if merged.get(name) is None and getattr(record, name) is None:
                    raise InvalidTransitionError(
                        from_phase,
                        phase,
                        message=f"Cannot enter {phase.value} without {name}",
                    )

            message_hash = merged.get("message_hash")
            if message_hash is not None:
                self._check_message_hash(record, message_hash)

            for name, value in merged.items():
                setattr(record, name, value)

            now = utcnow()
            record.phase = phase
            record.updated_at = now
            record.estimated_completion_time = estimated_completion(
                phase, record.destination_chain, now
            )
            if phase != from_phase:
                record.history.append(
                    PhaseTransition(
                        from_phase=from_phase,
                        to_phase=phase,
                        timestamp=now,
                        error=merged.get("error"),
                    )
                )
            self._index(record)

            return copy.deepcopy(record)

    def get(self, tracking_id: str) -> Optional[BridgeTransfer]:
        record = self._records.get(tracking_id)
        return copy.deepcopy(record) if record is not None else None

    def find_by_message_hash(self, message_hash: str) -> Optional[BridgeTransfer]:
        tracking_id = self._by_message_hash.get(message_hash.lower())
        return self.get(tracking_id) if tracking_id else None

    def list_active(self) -> List[BridgeTransfer]:
        return [copy.deepcopy(r) for r in self._records.values() if r.is_active]

    def __len__(self) -> int:
        return len(self._records)

    def _check_message_hash(self, record: BridgeTransfer, message_hash: str) -> None:
        """A transfer's message hash is set once and belongs to that transfer alone."""
        key = message_hash.lower()
        if record.message_hash and record.message_hash.lower() != key:
            raise BridgeValidationError(
                f"Transfer {record.tracking_id} already has message hash {record.message_hash}",
                field="message_hash",
            )
        owner = self._by_message_hash.get(key)
        if owner is not None and owner != record.tracking_id:
            raise BridgeValidationError(
                f"Message hash {message_hash} belongs to transfer {owner}",
                field="message_hash",
            )

    def _index(self, record: BridgeTransfer) -> None:
        if record.message_hash:
            self._by_message_hash.setdefault(record.message_hash.lower(), record.tracking_id)
