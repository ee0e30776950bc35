"""
Tests for the in-memory bridge registry.
"""

import asyncio

import pytest

from cctp_bridge.core.bridge.constants import SupportedChain
from cctp_bridge.core.bridge.errors import (
    BridgeValidationError,
    DuplicateTrackingIdError,
    InvalidTransitionError,
    TransferNotFoundError,
)
from cctp_bridge.core.bridge.models import BridgePhase, BridgeTransfer, FeeBreakdown
from cctp_bridge.core.bridge.registry import InMemoryBridgeRegistry

MESSAGE_HASH = "0x" + "cd" * 32


def make_transfer(tracking_id: str = "bridge_1") -> BridgeTransfer:
    return BridgeTransfer(
        tracking_id=tracking_id,
        phase=BridgePhase.PENDING_INITIATION,
        source_chain=SupportedChain.BASE,
        destination_chain=SupportedChain.POLYGON,
        amount=1_000_000,
        net_amount=900_000,
        fee_breakdown=FeeBreakdown(bridge_fee=100_000, total_fee=100_000, net_amount=900_000),
    )


@pytest.fixture
def registry():
    return InMemoryBridgeRegistry()


# =============================================================================
# Create / get
# =============================================================================

class TestCreateAndGet:
    """Registration and snapshot reads."""

    @pytest.mark.asyncio
    async def test_create_then_get(self, registry):
        created = await registry.create(make_transfer())

        fetched = registry.get("bridge_1")
        assert fetched is not None
        assert fetched.phase == BridgePhase.PENDING_INITIATION
        assert fetched.created_at == created.created_at
        assert fetched.estimated_completion_time is not None
        assert len(fetched.history) == 1

    def test_get_unknown_returns_none(self, registry):
        assert registry.get("bridge_missing") is None

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, registry):
        await registry.create(make_transfer())

        with pytest.raises(DuplicateTrackingIdError):
            await registry.create(make_transfer())

    @pytest.mark.asyncio
    async def test_snapshots_are_copies(self, registry):
        await registry.create(make_transfer())

        snapshot = registry.get("bridge_1")
        snapshot.phase = BridgePhase.COMPLETED
        snapshot.history.clear()

        fresh = registry.get("bridge_1")
        assert fresh.phase == BridgePhase.PENDING_INITIATION
        assert len(fresh.history) == 1


# =============================================================================
# Update
# =============================================================================

class TestUpdate:
    """Transitions, merges and guards."""

    @pytest.mark.asyncio
    async def test_update_merges_without_discarding(self, registry):
        await registry.create(make_transfer())

        await registry.update("bridge_1", BridgePhase.PENDING_INITIATION, source_tx_hash="0xburn")
        await registry.update(
            "bridge_1",
            BridgePhase.INITIATED,
            message_hash=MESSAGE_HASH,
            raw_message="0x01",
        )
        updated = await registry.update("bridge_1", BridgePhase.PENDING_ATTESTATION, source_tx_hash=None)

        assert updated.source_tx_hash == "0xburn"
        assert updated.message_hash == MESSAGE_HASH
        assert updated.raw_message == "0x01"

    @pytest.mark.asyncio
    async def test_update_sets_updated_at_and_history(self, registry):
        created = await registry.create(make_transfer())

        updated = await registry.update("bridge_1", BridgePhase.INITIATED, message_hash=MESSAGE_HASH)

        assert updated.updated_at >= created.updated_at
        assert [t.to_phase for t in updated.history] == [
            BridgePhase.PENDING_INITIATION,
            BridgePhase.INITIATED,
        ]

    @pytest.mark.asyncio
    async def test_same_phase_update_does_not_grow_history(self, registry):
        await registry.create(make_transfer())

        updated = await registry.update("bridge_1", BridgePhase.PENDING_INITIATION, approval_tx_hash="0xapprove")

        assert len(updated.history) == 1
        assert updated.approval_tx_hash == "0xapprove"

    @pytest.mark.asyncio
    async def test_unknown_id_raises(self, registry):
        with pytest.raises(TransferNotFoundError):
            await registry.update("bridge_missing", BridgePhase.INITIATED)

    @pytest.mark.asyncio
    async def test_invalid_transition_raises(self, registry):
        await registry.create(make_transfer())

        with pytest.raises(InvalidTransitionError):
            await registry.update("bridge_1", BridgePhase.COMPLETED)

        assert registry.get("bridge_1").phase == BridgePhase.PENDING_INITIATION

    @pytest.mark.asyncio
    async def test_pending_attestation_requires_message_hash(self, registry):
        await registry.create(make_transfer())
        await registry.update("bridge_1", BridgePhase.INITIATED)

        with pytest.raises(InvalidTransitionError):
            await registry.update("bridge_1", BridgePhase.PENDING_ATTESTATION)

    @pytest.mark.asyncio
    async def test_claiming_requires_attestation(self, registry):
        await registry.create(make_transfer())
        await registry.update("bridge_1", BridgePhase.INITIATED, message_hash=MESSAGE_HASH, raw_message="0x01")
        await registry.update("bridge_1", BridgePhase.PENDING_ATTESTATION)

        with pytest.raises(InvalidTransitionError):
            await registry.update("bridge_1", BridgePhase.ATTESTED)

        await registry.update("bridge_1", BridgePhase.ATTESTED, attestation="0x02")
        claiming = await registry.update("bridge_1", BridgePhase.CLAIMING)
        assert claiming.phase == BridgePhase.CLAIMING

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, registry):
        await registry.create(make_transfer())

        with pytest.raises(ValueError):
            await registry.update("bridge_1", BridgePhase.INITIATED, tracking_id="other")

    @pytest.mark.asyncio
    async def test_find_by_message_hash_is_case_insensitive(self, registry):
        await registry.create(make_transfer())
        await registry.update("bridge_1", BridgePhase.INITIATED, message_hash=MESSAGE_HASH.upper().replace("0X", "0x"))

        found = registry.find_by_message_hash(MESSAGE_HASH)
        assert found is not None
        assert found.tracking_id == "bridge_1"
        assert registry.find_by_message_hash("0x" + "00" * 32) is None

    @pytest.mark.asyncio
    async def test_message_hash_cannot_be_replaced(self, registry):
        await registry.create(make_transfer())
        await registry.update("bridge_1", BridgePhase.INITIATED, message_hash=MESSAGE_HASH)

        with pytest.raises(BridgeValidationError):
            await registry.update("bridge_1", BridgePhase.PENDING_ATTESTATION, message_hash="0x" + "ef" * 32)

        # Same hash in another case is not a change
        await registry.update("bridge_1", BridgePhase.PENDING_ATTESTATION, message_hash=MESSAGE_HASH.upper())
        assert registry.find_by_message_hash("0x" + "ef" * 32) is None

    @pytest.mark.asyncio
    async def test_message_hash_cannot_be_claimed_by_another_transfer(self, registry):
        await registry.create(make_transfer("bridge_a"))
        await registry.create(make_transfer("bridge_b"))
        await registry.update("bridge_a", BridgePhase.INITIATED, message_hash=MESSAGE_HASH)

        with pytest.raises(BridgeValidationError):
            await registry.update("bridge_b", BridgePhase.INITIATED, message_hash=MESSAGE_HASH)

        assert registry.find_by_message_hash(MESSAGE_HASH).tracking_id == "bridge_a"
        assert registry.get("bridge_b").phase == BridgePhase.PENDING_INITIATION
        assert registry.get("bridge_b").message_hash is None


# =============================================================================
# Active listing and concurrency
# =============================================================================

class TestListActive:
    """Inactive phases are excluded; records are never deleted."""

    @pytest.mark.asyncio
    async def test_excludes_completed_failed_abandoned(self, registry):
        for tracking_id in ("active", "failed", "abandoned", "completed"):
            await registry.create(make_transfer(tracking_id))

        await registry.update("failed", BridgePhase.FAILED, error="boom")
        await registry.update("abandoned", BridgePhase.ABANDONED)
        await registry.update("completed", BridgePhase.INITIATED, message_hash=MESSAGE_HASH, raw_message="0x01")
        await registry.update("completed", BridgePhase.PENDING_ATTESTATION)
        await registry.update("completed", BridgePhase.ATTESTED, attestation="0x02")
        await registry.update("completed", BridgePhase.CLAIMING)
        await registry.update("completed", BridgePhase.COMPLETED, dest_tx_hash="0xmint")

        active_ids = {t.tracking_id for t in registry.list_active()}

        assert active_ids == {"active"}
        assert len(registry) == 4
        assert registry.get("completed").phase == BridgePhase.COMPLETED

    @pytest.mark.asyncio
    async def test_concurrent_updates_to_different_ids(self, registry):
        ids = [f"bridge_{i}" for i in range(20)]
        await asyncio.gather(*(registry.create(make_transfer(i)) for i in ids))

        await asyncio.gather(*(
            registry.update(i, BridgePhase.INITIATED, source_tx_hash=f"0x{n:064x}")
            for n, i in enumerate(ids)
        ))

        for n, tracking_id in enumerate(ids):
            transfer = registry.get(tracking_id)
            assert transfer.phase == BridgePhase.INITIATED
            assert transfer.source_tx_hash == f"0x{n:064x}"

    @pytest.mark.asyncio
    async def test_concurrent_conflicting_updates_are_serialised(self, registry):
        await registry.create(make_transfer())

        results = await asyncio.gather(
            registry.update("bridge_1", BridgePhase.INITIATED),
            registry.update("bridge_1", BridgePhase.ABANDONED),
            return_exceptions=True,
        )

        final = registry.get("bridge_1")
        # Both orders are valid; either way history matches the final phase
        assert final.history[-1].to_phase == final.phase
        assert not any(isinstance(r, Exception) and not isinstance(r, InvalidTransitionError) for r in results)
