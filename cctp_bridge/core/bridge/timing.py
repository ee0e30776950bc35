"""Display-only completion estimates. Nothing here drives a timeout."""

from datetime import datetime, timedelta
from typing import Dict, Optional

from .constants import (
    ATTESTATION_AVERAGE_SECONDS,
    ATTESTATION_MAX_SECONDS,
    ATTESTATION_MIN_SECONDS,
    SupportedChain,
)
from .models import BridgePhase, BridgeTimeEstimate

# Attestation latency is dominated by source-chain finality, so every
# destination currently shares one profile.
BRIDGE_TIME_ESTIMATES: Dict[SupportedChain, BridgeTimeEstimate] = {
    chain: BridgeTimeEstimate(
        min_seconds=ATTESTATION_MIN_SECONDS,
        max_seconds=ATTESTATION_MAX_SECONDS,
        average_seconds=ATTESTATION_AVERAGE_SECONDS,
    )
    for chain in SupportedChain
}

# Share of the average duration still ahead when a phase is entered
_REMAINING_FRACTION: Dict[BridgePhase, float] = {
    BridgePhase.PENDING_INITIATION: 1.0,
    BridgePhase.INITIATED: 1.0,
    BridgePhase.PENDING_ATTESTATION: 0.6,
    BridgePhase.ATTESTED: 0.2,
}

CLAIM_SECONDS = 60


def estimate_for(destination_chain: SupportedChain) -> BridgeTimeEstimate:
    return BRIDGE_TIME_ESTIMATES[destination_chain]


def estimated_completion(
    phase: BridgePhase,
    destination_chain: SupportedChain,
    now: datetime,
) -> Optional[datetime]:
    """Derive a completion time for a transfer entering ``phase`` at ``now``."""
    if phase == BridgePhase.CLAIMING:
        return now + timedelta(seconds=CLAIM_SECONDS)

    fraction = _REMAINING_FRACTION.get(phase)
    if fraction is None:
        # completed / failed / abandoned: nothing left to estimate
        return None

    average = estimate_for(destination_chain).average_seconds
    return now + timedelta(seconds=average * fraction)
