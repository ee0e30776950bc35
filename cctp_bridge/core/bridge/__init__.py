"""CCTP bridge orchestration components."""

from typing import TYPE_CHECKING

from .models import (
    BridgeExecution,
    BridgePhase,
    BridgeProgressEvent,
    BridgeRequest,
    BridgeTransfer,
    ClaimResult,
    FeeBreakdown,
    InitiateResult,
)

if TYPE_CHECKING:  # pragma: no cover
    from .orchestrator import BridgeOrchestrator, get_bridge_orchestrator

__all__ = [
    "BridgeExecution",
    "BridgeOrchestrator",
    "BridgePhase",
    "BridgeProgressEvent",
    "BridgeRequest",
    "BridgeTransfer",
    "ClaimResult",
    "FeeBreakdown",
    "InitiateResult",
    "get_bridge_orchestrator",
]


def __getattr__(name: str):  # pragma: no cover - simple thunk
    # The orchestrator imports the provider interfaces, which import this
    # package; resolve it lazily to keep that cycle open.
    if name == "BridgeOrchestrator":
        from .orchestrator import BridgeOrchestrator as _BridgeOrchestrator

        return _BridgeOrchestrator
    if name == "get_bridge_orchestrator":
        from .orchestrator import get_bridge_orchestrator as _get_bridge_orchestrator

        return _get_bridge_orchestrator
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
