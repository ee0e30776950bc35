"""
Tests for calldata encoding, log decoding and input validators.
"""

import pytest

from cctp_bridge.core.bridge.abi import (
    decode_single_bytes,
    decode_uint,
    encode_address,
    encode_approve,
    encode_deposit_for_burn,
    encode_receive_message,
    encode_single_bytes,
    encode_uint,
    hash_message,
    is_hex_bytes,
    is_tx_hash,
    is_valid_address,
)
from cctp_bridge.core.bridge.constants import (
    DEPOSIT_FOR_BURN_SELECTOR,
    ERC20_ALLOWANCE_SELECTOR,
    ERC20_APPROVE_SELECTOR,
    ERC20_BALANCE_OF_SELECTOR,
    RECEIVE_MESSAGE_SELECTOR,
)

SPENDER = "0x1682Ae6375C4E4A97e4B583BC394c861A46D8962"
RECIPIENT = "0x2222222222222222222222222222222222222222"


class TestSelectors:
    """Known 4-byte selectors."""

    def test_erc20_selectors(self):
        assert ERC20_BALANCE_OF_SELECTOR == "0x70a08231"
        assert ERC20_ALLOWANCE_SELECTOR == "0xdd62ed3e"
        assert ERC20_APPROVE_SELECTOR == "0x095ea7b3"

    def test_cctp_selectors(self):
        assert DEPOSIT_FOR_BURN_SELECTOR == "0x6fd3504e"
        assert RECEIVE_MESSAGE_SELECTOR == "0x57ecfd28"


class TestEncoding:
    """Static and dynamic argument layouts."""

    def test_encode_uint_bounds(self):
        assert encode_uint(1) == "0" * 63 + "1"
        with pytest.raises(ValueError):
            encode_uint(-1)

    def test_encode_address_left_pads(self):
        word = encode_address(SPENDER)
        assert len(word) == 64
        assert word.endswith(SPENDER[2:].lower())
        assert word.startswith("0" * 24)

    def test_encode_approve(self):
        data = encode_approve(SPENDER, 1_000_000)
        assert data.startswith(ERC20_APPROVE_SELECTOR)
        assert len(data) == 10 + 64 * 2
        assert decode_uint(data[-64:]) == 1_000_000

    def test_encode_deposit_for_burn(self):
        data = encode_deposit_for_burn(5_000_000, 7, RECIPIENT, SPENDER)
        words = [data[10 + i * 64:10 + (i + 1) * 64] for i in range(4)]

        assert data.startswith(DEPOSIT_FOR_BURN_SELECTOR)
        assert decode_uint(words[0]) == 5_000_000
        assert decode_uint(words[1]) == 7
        assert words[2].endswith(RECIPIENT[2:])
        assert words[3].endswith(SPENDER[2:].lower())

    def test_encode_receive_message_offsets(self):
        message = "0x" + "aa" * 40
        attestation = "0x" + "bb" * 65
        body = encode_receive_message(message, attestation)[10:]

        message_offset = decode_uint(body[0:64])
        attestation_offset = decode_uint(body[64:128])
        assert message_offset == 64
        # 40-byte message pads to 64 bytes plus its length word
        assert attestation_offset == 64 + 32 + 64
        assert decode_uint(body[attestation_offset * 2:attestation_offset * 2 + 64]) == 65


class TestDecoding:
    """MessageSent log data."""

    def test_single_bytes_roundtrip(self):
        message = "0x" + "0123456789abcdef" * 9
        assert decode_single_bytes(encode_single_bytes(message)) == message

    @pytest.mark.parametrize("data", ["", "0x", "0x" + "00" * 31, "0xzz"])
    def test_malformed_data_returns_none(self, data):
        assert decode_single_bytes(data) is None

    def test_decode_uint_empty(self):
        assert decode_uint("0x") == 0


class TestValidators:
    """Input format checks used before any network call."""

    @pytest.mark.parametrize("value,expected", [
        (RECIPIENT, True),
        (SPENDER, True),
        (SPENDER.lower(), True),
        ("2222222222222222222222222222222222222222", False),
        ("0x222", False),
        ("0x" + "g" * 40, False),
        (None, False),
    ])
    def test_is_valid_address(self, value, expected):
        assert is_valid_address(value) is expected

    @pytest.mark.parametrize("value,expected", [
        ("0x00", True),
        ("0xABcd", True),
        ("0x", False),
        ("0xabc", False),
        ("abcd", False),
        ("0xzz", False),
        ("", False),
    ])
    def test_is_hex_bytes(self, value, expected):
        assert is_hex_bytes(value) is expected

    def test_is_tx_hash(self):
        assert is_tx_hash("0x" + "ab" * 32)
        assert not is_tx_hash("0x" + "ab" * 31)

    def test_hash_message(self):
        # keccak256 of empty input is well known; use one byte instead
        digest = hash_message("0x00")
        assert digest == "0xbc36789e7a1e281436464229828f817d6612f7b477d66591ff96a9e064bcc98a"
