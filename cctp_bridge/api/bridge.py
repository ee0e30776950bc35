"""HTTP surface for the bridge orchestrator."""

import json
import logging
import re
from typing import Any, AsyncIterator, Dict, Optional, Union

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from ..core.bridge.errors import (
    AttestationTimeoutError,
    BridgeValidationError,
    InvalidAmountError,
    InvalidTransitionError,
    TransferNotFoundError,
    WalletNotInitializedError,
)
from ..core.bridge.constants import resolve_chain
from ..core.bridge.models import BridgeRequest
from ..core.bridge.orchestrator import BridgeOrchestrator, get_bridge_orchestrator
from ..core.recovery import RecoverableError, UnrecoverableError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bridge")

_AMOUNT_RE = re.compile(r"^\d+$")


class BridgeRequestBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: Union[int, str] = Field(description="USDC smallest units (6 decimals), integer or decimal string")
    destination_chain: str = Field(alias="destinationChain", description="BASE, POLYGON or ETHEREUM (aliases accepted)")
    recipient: Optional[str] = Field(default=None, description="Mint recipient; defaults to the signer address")


class ClaimBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    attestation: str
    destination_chain: str = Field(alias="destinationChain")
    tracking_id: Optional[str] = Field(default=None, alias="trackingId")


class AttestationWaitBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    polling_interval: Optional[float] = Field(default=None, ge=0, alias="pollingInterval")
    max_attempts: Optional[int] = Field(default=None, ge=1, alias="maxAttempts")
    tracking_id: Optional[str] = Field(default=None, alias="trackingId")


class StatusUpdateBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phase: str
    source_tx_hash: Optional[str] = Field(default=None, alias="sourceTxHash")
    dest_tx_hash: Optional[str] = Field(default=None, alias="destTxHash")
    message_hash: Optional[str] = Field(default=None, alias="messageHash")
    raw_message: Optional[str] = Field(default=None, alias="message")
    attestation: Optional[str] = None
    error: Optional[str] = None


def _parse_amount(value: Union[int, str]) -> int:
    if isinstance(value, bool):
        raise InvalidAmountError("Amount must be an integer number of smallest units")
    if isinstance(value, int):
        return value
    if not _AMOUNT_RE.match(value.strip()):
        raise InvalidAmountError("Amount must be an integer number of smallest units")
    return int(value.strip())


def _to_request(body: BridgeRequestBody) -> BridgeRequest:
    return BridgeRequest(
        amount=_parse_amount(body.amount),
        destination_chain=body.destination_chain,
        recipient=body.recipient,
    )


def _http_error(exc: Exception) -> HTTPException:
    detail = {"code": getattr(exc, "code", "ERROR"), "message": str(exc)}
    if isinstance(exc, TransferNotFoundError):
        return HTTPException(status_code=404, detail=detail)
    if isinstance(exc, InvalidTransitionError):
        return HTTPException(status_code=409, detail=detail)
    if isinstance(exc, (BridgeValidationError, WalletNotInitializedError)):
        return HTTPException(status_code=400, detail=detail)
    if isinstance(exc, AttestationTimeoutError):
        return HTTPException(status_code=504, detail=detail)
    if isinstance(exc, (RecoverableError, UnrecoverableError)):
        detail["code"] = getattr(exc, "code", exc.category.value)
        return HTTPException(status_code=502, detail=detail)
    return HTTPException(status_code=500, detail=detail)


# ---------------------------------------------------------------------------
# Transfers
# ---------------------------------------------------------------------------

@router.post("/initiate")
async def initiate_bridge(
    body: BridgeRequestBody,
    orchestrator: BridgeOrchestrator = Depends(get_bridge_orchestrator),
) -> Dict[str, Any]:
    try:
        result = await orchestrator.initiate(_to_request(body))
    except (RecoverableError, UnrecoverableError) as exc:
        raise _http_error(exc)
    return result.to_dict()


@router.post("/execute", status_code=202)
async def execute_bridge(
    body: BridgeRequestBody,
    background_tasks: BackgroundTasks,
    orchestrator: BridgeOrchestrator = Depends(get_bridge_orchestrator),
) -> Dict[str, Any]:
    """Validate now, run the full flow in the background; poll status or events for progress."""
    try:
        request = _to_request(body)
        orchestrator.validate_request(request)
    except (RecoverableError, UnrecoverableError) as exc:
        raise _http_error(exc)

    tracking_id = orchestrator.new_tracking_id()

    async def _run() -> None:
        try:
            await orchestrator.execute_bridge(request, tracking_id=tracking_id)
        except Exception:
            # Already recorded on the transfer; nothing awaits this task
            logger.error("Background bridge %s failed", tracking_id, exc_info=True)

    background_tasks.add_task(_run)
    return {"trackingId": tracking_id, "status": "accepted"}


@router.post("/claim")
async def claim_on_destination(
    body: ClaimBody,
    orchestrator: BridgeOrchestrator = Depends(get_bridge_orchestrator),
) -> Dict[str, Any]:
    try:
        result = await orchestrator.claim_on_destination(
            body.message,
            body.attestation,
            body.destination_chain,
            tracking_id=body.tracking_id,
        )
    except (RecoverableError, UnrecoverableError) as exc:
        raise _http_error(exc)
    return result.to_dict()


@router.post("/attestations/{message_hash}/wait")
async def wait_for_attestation(
    message_hash: str,
    body: Optional[AttestationWaitBody] = None,
    orchestrator: BridgeOrchestrator = Depends(get_bridge_orchestrator),
) -> Dict[str, Any]:
    body = body or AttestationWaitBody()
    try:
        result = await orchestrator.wait_for_attestation(
            message_hash,
            polling_interval=body.polling_interval,
            max_attempts=body.max_attempts,
            tracking_id=body.tracking_id,
        )
    except (RecoverableError, UnrecoverableError) as exc:
        raise _http_error(exc)
    return result.to_dict()


# ---------------------------------------------------------------------------
# Read-only helpers
# ---------------------------------------------------------------------------

@router.get("/active")
async def get_active_bridges(
    orchestrator: BridgeOrchestrator = Depends(get_bridge_orchestrator),
) -> Dict[str, Any]:
    bridges = orchestrator.get_active_bridges()
    return {"bridges": [b.to_dict() for b in bridges], "count": len(bridges)}


@router.get("/fee")
async def get_bridge_fee(
    amount: str = Query(..., description="USDC smallest units"),
    orchestrator: BridgeOrchestrator = Depends(get_bridge_orchestrator),
) -> Dict[str, Any]:
    try:
        value = _parse_amount(amount)
        breakdown = orchestrator.fee_breakdown(value)
    except BridgeValidationError as exc:
        raise _http_error(exc)
    return {
        "amount": str(value),
        "fee": str(breakdown.total_fee),
        "feeBreakdown": breakdown.to_dict(),
    }


@router.get("/estimate")
async def get_bridge_estimate(
    destination_chain: str = Query(..., alias="destinationChain"),
    orchestrator: BridgeOrchestrator = Depends(get_bridge_orchestrator),
) -> Dict[str, Any]:
    try:
        destination = resolve_chain(destination_chain)
        estimate = orchestrator.estimate_bridge_time(destination)
    except BridgeValidationError as exc:
        raise _http_error(exc)
    return {"destinationChain": destination.value, **estimate.to_dict()}


@router.get("/events")
async def stream_bridge_events(
    tracking_id: Optional[str] = Query(default=None, alias="trackingId"),
    orchestrator: BridgeOrchestrator = Depends(get_bridge_orchestrator),
) -> StreamingResponse:
    """Server-Sent Events stream of phase changes."""
    subscription = orchestrator.subscribe()

    async def _events() -> AsyncIterator[str]:
        try:
            async for event in subscription:
                if tracking_id and event.tracking_id != tracking_id:
                    continue
                yield f"event: bridgeProgress\ndata: {json.dumps(event.to_dict())}\n\n"
        finally:
            subscription.close()

    return StreamingResponse(_events(), media_type="text/event-stream",
                             headers={"Cache-Control": "no-cache"})


# ---------------------------------------------------------------------------
# Per-transfer routes (registered last so they don't shadow the paths above)
# ---------------------------------------------------------------------------

@router.get("/{tracking_id}")
async def get_bridge_status(
    tracking_id: str,
    orchestrator: BridgeOrchestrator = Depends(get_bridge_orchestrator),
) -> Dict[str, Any]:
    transfer = orchestrator.get_bridge_status(tracking_id)
    if transfer is None:
        raise HTTPException(
            status_code=404,
            detail={"code": TransferNotFoundError.code, "message": f"Unknown tracking id: {tracking_id}"},
        )
    return transfer.to_dict()


@router.post("/{tracking_id}/update")
async def update_bridge_status(
    tracking_id: str,
    body: StatusUpdateBody,
    orchestrator: BridgeOrchestrator = Depends(get_bridge_orchestrator),
) -> Dict[str, Any]:
    fields = body.model_dump(exclude={"phase"}, exclude_none=True)
    try:
        transfer = await orchestrator.update_bridge_status(tracking_id, body.phase, **fields)
    except (RecoverableError, UnrecoverableError) as exc:
        raise _http_error(exc)
    return transfer.to_dict()


@router.post("/{tracking_id}/abandon")
async def abandon_bridge(
    tracking_id: str,
    orchestrator: BridgeOrchestrator = Depends(get_bridge_orchestrator),
) -> Dict[str, Any]:
    try:
        transfer = await orchestrator.mark_abandoned(tracking_id)
    except (RecoverableError, UnrecoverableError) as exc:
        raise _http_error(exc)
    return transfer.to_dict()
