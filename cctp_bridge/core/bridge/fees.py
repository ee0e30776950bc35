"""Bridge fee calculation. Integer USDC units only, never floats."""

from typing import Optional

from ...config import settings
from .errors import InvalidAmountError
from .models import FeeBreakdown

BPS_DENOMINATOR = 10_000


def calculate_fee(
    amount: int,
    *,
    minimum_fee: Optional[int] = None,
    fee_bps: Optional[int] = None,
) -> int:
    """Return the fee charged for bridging ``amount`` smallest units.

    The fee is the larger of the fixed minimum and the proportional
    component. The minimum applies even when it exceeds ``amount``.
    """
    if amount < 0:
        raise InvalidAmountError("Amount must not be negative")

    minimum = settings.bridge_fee_units if minimum_fee is None else minimum_fee
    bps = settings.bridge_fee_bps if fee_bps is None else fee_bps

    proportional = amount * bps // BPS_DENOMINATOR
    return max(minimum, proportional)


def build_fee_breakdown(
    amount: int,
    *,
    minimum_fee: Optional[int] = None,
    fee_bps: Optional[int] = None,
) -> FeeBreakdown:
    fee = calculate_fee(amount, minimum_fee=minimum_fee, fee_bps=fee_bps)
    # net_amount goes negative when the fee exceeds the amount
    return FeeBreakdown(
        bridge_fee=fee,
        total_fee=fee,
        net_amount=amount - fee,
    )
