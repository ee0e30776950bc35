"""
BridgeOrchestrator drives a USDC transfer through burn, attestation and mint.

The orchestrator owns no chain or HTTP state of its own: the chain gateway
and attestation client are injected, and every status change goes through
the registry. Each transfer is one coroutine, so unrelated transfers only
meet inside the registry, where they never share a lock.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from typing import Any, List, Optional, Tuple

import structlog

from ...config import settings
from ...providers.base import AttestationClient, ChainGateway
from ..recovery import TransactionRevertedError
from .abi import hash_message, is_hex_bytes, is_valid_address
from .approval import ApprovalStage
from .constants import SupportedChain, chain_config, resolve_chain
from .errors import (
    AttestationFetchFailedError,
    AttestationTimeoutError,
    BridgeValidationError,
    BurnFailedError,
    InvalidAddressError,
    InvalidAmountError,
    InvalidAttestationFormatError,
    InvalidMessageFormatError,
    InvalidTransitionError,
    MessageExtractionFailedError,
    TransferNotFoundError,
    UnsupportedChainError,
    WalletNotInitializedError,
)
from .events import BridgeEventBus, BridgeEventSubscription, ProgressHandler
from .fees import build_fee_breakdown, calculate_fee
from .models import (
    AttestationResult,
    AttestationState,
    BridgeExecution,
    BridgePhase,
    BridgeProgressEvent,
    BridgeRequest,
    BridgeTimeEstimate,
    BridgeTransfer,
    ClaimResult,
    FeeBreakdown,
    InitiateResult,
)
from .registry import BridgeRegistry, InMemoryBridgeRegistry
from .timing import estimate_for

# Phases from which polling may (re)start for a known transfer
_ATTESTATION_ENTRY_PHASES = frozenset({
    BridgePhase.INITIATED,
    BridgePhase.PENDING_ATTESTATION,
    BridgePhase.FAILED,
})

# Phases from which a claim may (re)start for a known transfer
_CLAIM_ENTRY_PHASES = frozenset({
    BridgePhase.ATTESTED,
    BridgePhase.CLAIMING,
    BridgePhase.FAILED,
})


class BridgeOrchestrator:
    """Runs transfers from the configured source chain to any other supported chain."""

    def __init__(
        self,
        gateway: ChainGateway,
        attestation_client: AttestationClient,
        *,
        registry: Optional[BridgeRegistry] = None,
        events: Optional[BridgeEventBus] = None,
        source_chain: Any = None,
        minimum_fee: Optional[int] = None,
        fee_bps: Optional[int] = None,
        polling_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.gateway = gateway
        self.attestation_client = attestation_client
        self.registry = registry or InMemoryBridgeRegistry(logger=self.logger)
        self.events = events or BridgeEventBus(logger=self.logger)
        self.source_chain = resolve_chain(source_chain or settings.source_chain)
        self.approval = ApprovalStage(gateway, logger=self.logger)

        self.minimum_fee = settings.bridge_fee_units if minimum_fee is None else minimum_fee
        self.fee_bps = settings.bridge_fee_bps if fee_bps is None else fee_bps
        self.polling_interval = (
            settings.attestation_polling_interval_seconds if polling_interval is None else polling_interval
        )
        self.max_attempts = settings.attestation_max_attempts if max_attempts is None else max_attempts
        if self.max_attempts < 1:
            raise BridgeValidationError("max_attempts must be at least 1", field="maxAttempts")

    # ------------------------------------------------------------------
    # Pure helpers
    # ------------------------------------------------------------------

    @staticmethod
    def new_tracking_id() -> str:
        return f"bridge_{secrets.token_hex(16)}"

    def calculate_bridge_fee(self, amount: int) -> int:
        return calculate_fee(amount, minimum_fee=self.minimum_fee, fee_bps=self.fee_bps)

    def fee_breakdown(self, amount: int) -> FeeBreakdown:
        return build_fee_breakdown(amount, minimum_fee=self.minimum_fee, fee_bps=self.fee_bps)

    def estimate_bridge_time(self, destination_chain: Any) -> BridgeTimeEstimate:
        return estimate_for(resolve_chain(destination_chain))

    @property
    def destination_chains(self) -> List[SupportedChain]:
        return [chain for chain in SupportedChain if chain != self.source_chain]

    def validate_request(self, request: BridgeRequest) -> Tuple[SupportedChain, str, str]:
        """Return ``(destination, sender, recipient)`` or raise before any I/O."""
        amount = request.amount
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmountError()

        destination = resolve_chain(request.destination_chain)
        if destination == self.source_chain:
            raise UnsupportedChainError(
                destination.value,
                message=f"Destination chain must differ from source chain {self.source_chain.value}",
            )

        if request.recipient is not None and not is_valid_address(request.recipient):
            raise InvalidAddressError()

        sender = self.gateway.address
        if not sender:
            raise WalletNotInitializedError()

        recipient = request.recipient or sender
        if not is_valid_address(recipient):
            raise InvalidAddressError()
        return destination, sender, recipient

    # ------------------------------------------------------------------
    # Registry + events
    # ------------------------------------------------------------------

    def _publish(self, transfer: BridgeTransfer, tx_hash: Optional[str] = None) -> None:
        self.events.publish(
            BridgeProgressEvent(
                tracking_id=transfer.tracking_id,
                phase=transfer.phase,
                tx_hash=tx_hash,
                error=transfer.error if transfer.phase == BridgePhase.FAILED else None,
            )
        )

    async def _transition(
        self,
        tracking_id: str,
        phase: BridgePhase,
        *,
        tx_hash: Optional[str] = None,
        **fields: Any,
    ) -> BridgeTransfer:
        before = self.registry.get(tracking_id)
        transfer = await self.registry.update(tracking_id, phase, **fields)
        self.logger.info(
            "Transfer %s: %s -> %s",
            tracking_id,
            before.phase.value if before else None,
            phase.value,
        )
        self._publish(transfer, tx_hash=tx_hash)
        return transfer

    async def _record_error(self, tracking_id: str, error: Exception) -> None:
        """Attach ``error`` to the transfer without moving its phase."""
        current = self.registry.get(tracking_id)
        if current is None or current.phase.is_terminal:
            return

        message = str(error)
        self.logger.warning(
            "Transfer %s failed during %s: %s",
            tracking_id,
            current.phase.value,
            message,
        )
        try:
            transfer = await self.registry.update(tracking_id, current.phase, error=message)
        except InvalidTransitionError as exc:
            # Phase moved underneath us (e.g. abandoned concurrently)
            self.logger.warning("Could not record error on %s: %s", tracking_id, exc)
            return
        self.events.publish(
            BridgeProgressEvent(tracking_id=tracking_id, phase=transfer.phase, error=message)
        )

    async def _finish(self, tracking_id: str, phase: BridgePhase, **fields: Any) -> Optional[BridgeTransfer]:
        """Final transition of a stage; the on-chain outcome stands even if the record moved on."""
        try:
            return await self._transition(tracking_id, phase, **fields)
        except InvalidTransitionError as exc:
            current = self.registry.get(tracking_id)
            self.logger.warning(
                "Transfer %s is %s; not recording %s: %s",
                tracking_id,
                current.phase.value if current else None,
                phase.value,
                exc,
            )
            return None

    def _resolve_tracked(
        self,
        tracking_id: Optional[str],
        message_hash: str,
        allowed: frozenset,
        *,
        destination: Optional[SupportedChain] = None,
    ) -> Optional[str]:
        """Pick the transfer an attestation/claim call should drive, if any.

        An explicit ``tracking_id`` must own ``message_hash`` (once the burn
        has produced one) and, for claims, the destination chain.
        """
        if tracking_id is not None:
            transfer = self.registry.get(tracking_id)
            if transfer is None:
                raise TransferNotFoundError(tracking_id)
            if transfer.message_hash and transfer.message_hash.lower() != message_hash.lower():
                raise BridgeValidationError(
                    f"Message hash {message_hash} does not belong to transfer {tracking_id}",
                    field="messageHash",
                )
        else:
            transfer = self.registry.find_by_message_hash(message_hash)
            if transfer is None:
                return None

        if destination is not None and transfer.destination_chain != destination:
            raise BridgeValidationError(
                f"Transfer {transfer.tracking_id} is bound for {transfer.destination_chain.value}, "
                f"not {destination.value}",
                field="destinationChain",
            )

        if transfer.phase not in allowed:
            self.logger.debug(
                "Transfer %s is %s; leaving registry untouched",
                transfer.tracking_id,
                transfer.phase.value,
            )
            return None
        return transfer.tracking_id

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def initiate(self, request: BridgeRequest, *, tracking_id: Optional[str] = None) -> InitiateResult:
        """Approve if needed, burn on the source chain and extract the CCTP message."""
        destination, sender, recipient = self.validate_request(request)

        amount = request.amount
        fees = self.fee_breakdown(amount)
        tracking_id = tracking_id or self.new_tracking_id()
        source = self.source_chain
        source_config = chain_config(source)
        destination_config = chain_config(destination)

        with structlog.contextvars.bound_contextvars(tracking_id=tracking_id):
            transfer = await self.registry.create(
                BridgeTransfer(
                    tracking_id=tracking_id,
                    phase=BridgePhase.PENDING_INITIATION,
                    source_chain=source,
                    destination_chain=destination,
                    amount=amount,
                    net_amount=fees.net_amount,
                    fee_breakdown=fees,
                    recipient=recipient,
                    sender=sender,
                )
            )
            self._publish(transfer)

            try:
                approval_tx_hash = await self.approval.ensure(source, sender, amount)
                if approval_tx_hash:
                    await self.registry.update(
                        tracking_id,
                        BridgePhase.PENDING_INITIATION,
                        approval_tx_hash=approval_tx_hash,
                    )

                tx_hash = await self.gateway.deposit_for_burn(
                    source,
                    amount,
                    destination_config["domain"],
                    recipient,
                    source_config["usdc"],
                )
                await self.registry.update(tracking_id, BridgePhase.PENDING_INITIATION, source_tx_hash=tx_hash)

                receipt = await self.gateway.wait_for_receipt(source, tx_hash)
                if not receipt.success:
                    raise BurnFailedError(tx_hash=tx_hash)

                message = self.gateway.extract_message_sent(source, receipt)
                if not message:
                    raise MessageExtractionFailedError(tx_hash=tx_hash)
            except Exception as exc:
                await self._record_error(tracking_id, exc)
                raise

            message_hash = hash_message(message)
            await self._transition(
                tracking_id,
                BridgePhase.INITIATED,
                tx_hash=tx_hash,
                source_tx_hash=tx_hash,
                message_hash=message_hash,
                raw_message=message,
            )

        return InitiateResult(
            tracking_id=tracking_id,
            tx_hash=tx_hash,
            phase=BridgePhase.INITIATED,
            source_chain=source,
            destination_chain=destination,
            recipient=recipient,
            amount=amount,
            net_amount=fees.net_amount,
            fee_breakdown=fees,
            message_hash=message_hash,
            message=message,
            approval_tx_hash=approval_tx_hash,
        )

    async def _poll_attestation(self, message_hash: str, interval: float, budget: int) -> Tuple[str, int]:
        for attempt in range(1, budget + 1):
            try:
                poll = await self.attestation_client.fetch_attestation(message_hash)
            except Exception as exc:
                raise AttestationFetchFailedError(
                    f"{type(exc).__name__}: {exc}",
                    message_hash=message_hash,
                    attempts=attempt,
                ) from exc

            if poll.state == AttestationState.ERROR:
                raise AttestationFetchFailedError(
                    poll.error or "unknown error",
                    message_hash=message_hash,
                    attempts=attempt,
                )
            if poll.state == AttestationState.COMPLETE and poll.attestation:
                return poll.attestation, attempt

            self.logger.debug("Attestation for %s pending (%d/%d)", message_hash, attempt, budget)
            if attempt < budget:
                await asyncio.sleep(interval)

        raise AttestationTimeoutError(message_hash=message_hash, attempts=budget)

    async def wait_for_attestation(
        self,
        message_hash: str,
        *,
        polling_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
        tracking_id: Optional[str] = None,
    ) -> AttestationResult:
        """Poll sequentially until the attestation is complete.

        A failed fetch ends the call at once; running out of attempts while
        still pending raises ``AttestationTimeoutError``.
        """
        interval = self.polling_interval if polling_interval is None else polling_interval
        budget = self.max_attempts if max_attempts is None else max_attempts
        if budget < 1:
            raise BridgeValidationError("max_attempts must be at least 1", field="maxAttempts")

        tracked_id = self._resolve_tracked(tracking_id, message_hash, _ATTESTATION_ENTRY_PHASES)
        if tracked_id:
            await self._transition(tracked_id, BridgePhase.PENDING_ATTESTATION, message_hash=message_hash)

        try:
            attestation, attempts = await self._poll_attestation(message_hash, interval, budget)
        except (AttestationFetchFailedError, AttestationTimeoutError) as exc:
            if tracked_id:
                await self._record_error(tracked_id, exc)
            raise

        if tracked_id:
            await self._finish(tracked_id, BridgePhase.ATTESTED, attestation=attestation)

        self.logger.info("Attestation for %s received after %d poll(s)", message_hash, attempts)
        return AttestationResult(
            message_hash=message_hash,
            attestation=attestation,
            attempts=attempts,
            tracking_id=tracked_id,
        )

    async def claim_on_destination(
        self,
        message: str,
        attestation: str,
        destination_chain: Any,
        *,
        tracking_id: Optional[str] = None,
    ) -> ClaimResult:
        """Submit ``receiveMessage`` on the destination chain.

        A reverted claim is returned with ``success=False``; transport
        failures still raise.
        """
        if not is_hex_bytes(message):
            raise InvalidMessageFormatError()
        if not is_hex_bytes(attestation):
            raise InvalidAttestationFormatError()
        destination = resolve_chain(destination_chain)
        if not self.gateway.address:
            raise WalletNotInitializedError()

        tracked_id = self._resolve_tracked(
            tracking_id,
            hash_message(message),
            _CLAIM_ENTRY_PHASES,
            destination=destination,
        )
        if tracked_id:
            await self._transition(
                tracked_id,
                BridgePhase.CLAIMING,
                raw_message=message,
                attestation=attestation,
            )

        tx_hash: Optional[str] = None
        try:
            tx_hash = await self.gateway.receive_message(destination, message, attestation)
            receipt = await self.gateway.wait_for_receipt(destination, tx_hash)
        except TransactionRevertedError as exc:
            # Rejected while simulating, nothing was broadcast
            result = ClaimResult(success=False, error=exc.reason or str(exc), tracking_id=tracked_id)
        except Exception as exc:
            if tracked_id:
                await self._record_error(tracked_id, exc)
            raise
        else:
            if receipt.success:
                result = ClaimResult(success=True, dest_tx_hash=tx_hash, tracking_id=tracked_id)
            else:
                result = ClaimResult(
                    success=False,
                    dest_tx_hash=tx_hash,
                    error="Claim transaction reverted",
                    tracking_id=tracked_id,
                )

        if tracked_id:
            if result.success:
                await self._finish(
                    tracked_id,
                    BridgePhase.COMPLETED,
                    tx_hash=tx_hash,
                    dest_tx_hash=tx_hash,
                )
            else:
                await self._finish(
                    tracked_id,
                    BridgePhase.FAILED,
                    tx_hash=tx_hash,
                    dest_tx_hash=tx_hash,
                    error=result.error,
                )

        if not result.success:
            self.logger.warning("Claim on %s failed: %s", destination.value, result.error)
        return result

    async def execute_bridge(
        self,
        request: BridgeRequest,
        *,
        tracking_id: Optional[str] = None,
    ) -> BridgeExecution:
        """initiate -> wait_for_attestation -> claim_on_destination."""
        initiated = await self.initiate(request, tracking_id=tracking_id)
        with structlog.contextvars.bound_contextvars(tracking_id=initiated.tracking_id):
            attested = await self.wait_for_attestation(
                initiated.message_hash,
                tracking_id=initiated.tracking_id,
            )
            claim = await self.claim_on_destination(
                initiated.message,
                attested.attestation,
                initiated.destination_chain,
                tracking_id=initiated.tracking_id,
            )

        return BridgeExecution(
            success=claim.success,
            tracking_id=initiated.tracking_id,
            source_tx_hash=initiated.tx_hash,
            dest_tx_hash=claim.dest_tx_hash,
            phase=BridgePhase.COMPLETED if claim.success else BridgePhase.FAILED,
            error=claim.error,
        )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def update_bridge_status(self, tracking_id: str, phase: Any, **fields: Any) -> BridgeTransfer:
        try:
            phase = BridgePhase(phase)
        except ValueError as exc:
            raise BridgeValidationError(f"Unknown phase: {phase}", field="phase") from exc
        return await self._transition(tracking_id, phase, **fields)

    def get_bridge_status(self, tracking_id: str) -> Optional[BridgeTransfer]:
        return self.registry.get(tracking_id)

    def get_active_bridges(self) -> List[BridgeTransfer]:
        return self.registry.list_active()

    async def mark_abandoned(self, tracking_id: str) -> BridgeTransfer:
        """Bookkeeping only: a broadcast burn cannot be cancelled on-chain."""
        transfer = self.registry.get(tracking_id)
        if transfer is None:
            raise TransferNotFoundError(tracking_id)
        if transfer.phase == BridgePhase.ABANDONED:
            return transfer
        return await self._transition(tracking_id, BridgePhase.ABANDONED)

    # ------------------------------------------------------------------
    # Progress events
    # ------------------------------------------------------------------

    def subscribe(self, maxsize: Optional[int] = None) -> BridgeEventSubscription:
        return self.events.subscribe(maxsize)

    def on(self, handler: ProgressHandler) -> None:
        self.events.on(handler)

    def off(self, handler: ProgressHandler) -> None:
        self.events.off(handler)

    async def aclose(self) -> None:
        await self.events.close()
        await self.attestation_client.aclose()
        await self.gateway.aclose()


# Singleton instance
_orchestrator: Optional[BridgeOrchestrator] = None


def get_bridge_orchestrator() -> BridgeOrchestrator:
    """Get the process-wide orchestrator built from settings."""
    global _orchestrator
    if _orchestrator is None:
        from ...providers.attestation import IrisAttestationClient
        from ...providers.rpc import JsonRpcChainGateway

        _orchestrator = BridgeOrchestrator(
            gateway=JsonRpcChainGateway(),
            attestation_client=IrisAttestationClient(),
        )
    return _orchestrator


async def close_bridge_orchestrator() -> None:
    """Release the process-wide orchestrator's clients; the next get builds a fresh one."""
    global _orchestrator
    if _orchestrator is not None:
        instance, _orchestrator = _orchestrator, None
        await instance.aclose()
