"""
Tests for the bridge fee calculator.
"""

import pytest

from cctp_bridge.config import settings
from cctp_bridge.core.bridge.errors import InvalidAmountError
from cctp_bridge.core.bridge.fees import build_fee_breakdown, calculate_fee

MIN_FEE = 100_000


# =============================================================================
# calculate_fee
# =============================================================================

class TestCalculateFee:
    """Fee is the larger of the fixed minimum and the proportional part."""

    @pytest.mark.parametrize("amount", [1, 100, 99_999, 100_000, 1_000_000, 10**15])
    def test_fee_never_below_minimum(self, amount):
        assert calculate_fee(amount, minimum_fee=MIN_FEE, fee_bps=0) >= MIN_FEE

    def test_small_amount_returns_minimum_without_raising(self):
        assert calculate_fee(100, minimum_fee=MIN_FEE, fee_bps=0) == MIN_FEE

    def test_zero_amount_is_in_domain(self):
        assert calculate_fee(0, minimum_fee=MIN_FEE, fee_bps=0) == MIN_FEE

    def test_proportional_component_wins_for_large_amounts(self):
        # 10 bps of 1,000 USDC = 1 USDC
        assert calculate_fee(1_000_000_000, minimum_fee=MIN_FEE, fee_bps=10) == 1_000_000

    def test_proportional_component_rounds_down(self):
        assert calculate_fee(1_000_000_009, minimum_fee=0, fee_bps=1) == 100_000

    def test_negative_amount_rejected(self):
        with pytest.raises(InvalidAmountError):
            calculate_fee(-1)

    def test_defaults_come_from_settings(self, monkeypatch):
        monkeypatch.setattr(settings, "bridge_fee_units", 250_000)
        monkeypatch.setattr(settings, "bridge_fee_bps", 0)

        assert calculate_fee(5) == 250_000

    def test_returns_int(self):
        assert isinstance(calculate_fee(123_456_789, minimum_fee=MIN_FEE, fee_bps=7), int)


# =============================================================================
# build_fee_breakdown
# =============================================================================

class TestFeeBreakdown:
    """net_amount + total_fee always equals the amount."""

    @pytest.mark.parametrize("amount", [1, 100, 100_000, 2_500_000, 10**12])
    def test_net_plus_fee_equals_amount(self, amount):
        breakdown = build_fee_breakdown(amount, minimum_fee=MIN_FEE, fee_bps=5)

        assert breakdown.net_amount + breakdown.total_fee == amount
        assert breakdown.total_fee >= MIN_FEE

    def test_fee_larger_than_amount_gives_negative_net(self):
        breakdown = build_fee_breakdown(100, minimum_fee=MIN_FEE, fee_bps=0)

        assert breakdown.bridge_fee == MIN_FEE
        assert breakdown.total_fee == MIN_FEE
        assert breakdown.net_amount == 100 - MIN_FEE

    def test_to_dict_uses_decimal_strings(self):
        breakdown = build_fee_breakdown(1_000_000, minimum_fee=MIN_FEE, fee_bps=0)

        assert breakdown.to_dict() == {
            "bridgeFee": "100000",
            "totalFee": "100000",
            "netAmount": "900000",
        }
