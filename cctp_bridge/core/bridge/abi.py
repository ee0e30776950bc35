"""
Minimal ABI encoding for the CCTP and ERC-20 calls the bridge makes.

Only the handful of static/dynamic layouts these contracts need are
supported; anything else belongs in a full ABI library.
"""

from __future__ import annotations

import re
from typing import Optional

from eth_utils import is_hex_address, keccak

from .constants import (
    DEPOSIT_FOR_BURN_SELECTOR,
    ERC20_ALLOWANCE_SELECTOR,
    ERC20_APPROVE_SELECTOR,
    ERC20_BALANCE_OF_SELECTOR,
    RECEIVE_MESSAGE_SELECTOR,
)

_HEX_BYTES_RE = re.compile(r"^0x(?:[0-9a-fA-F]{2})+$")
_TX_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")

MAX_UINT256 = 2**256 - 1


def _strip_0x(value: str) -> str:
    return value[2:] if value.startswith("0x") else value


def encode_uint(value: int) -> str:
    """Encode a uint256 as a 32-byte hex word (without 0x prefix)."""
    if value < 0 or value > MAX_UINT256:
        raise ValueError(f"Value out of uint256 range: {value}")
    return format(value, "064x")


def encode_address(address: str) -> str:
    """Encode an address as a left-padded 32-byte word.

    The same layout is CCTP's ``bytes32 mintRecipient``.
    """
    addr = _strip_0x(address).lower()
    if len(addr) != 40:
        raise ValueError(f"Invalid address length: {address}")
    return addr.rjust(64, "0")


def encode_bytes(data: str) -> str:
    """Encode the tail of a dynamic ``bytes`` value: length word + padded data."""
    hex_data = _strip_0x(data)
    if len(hex_data) % 2 != 0:
        raise ValueError("Byte data must have an even-length hex string")
    data_len = len(hex_data) // 2
    padded_len = ((data_len + 31) // 32) * 32
    padding = "0" * ((padded_len - data_len) * 2)
    return encode_uint(data_len) + hex_data.lower() + padding


def encode_single_bytes(data: str) -> str:
    """ABI-encode one ``bytes`` argument, e.g. the data of a MessageSent log."""
    return "0x" + encode_uint(32) + encode_bytes(data)


def decode_uint(value: str) -> int:
    hex_value = _strip_0x(value or "")
    return int(hex_value, 16) if hex_value else 0


def decode_single_bytes(data: str) -> Optional[str]:
    """Decode ABI-encoded ``bytes`` from log data; ``None`` if malformed."""
    hex_data = _strip_0x(data or "")
    try:
        offset = int(hex_data[0:64], 16) * 2
        length = int(hex_data[offset:offset + 64], 16) * 2
    except ValueError:
        return None
    start = offset + 64
    payload = hex_data[start:start + length]
    if length == 0 or len(payload) != length:
        return None
    return "0x" + payload


# ---------------------------------------------------------------------------
# Call data
# ---------------------------------------------------------------------------

def encode_balance_of(owner: str) -> str:
    return ERC20_BALANCE_OF_SELECTOR + encode_address(owner)


def encode_allowance(owner: str, spender: str) -> str:
    return ERC20_ALLOWANCE_SELECTOR + encode_address(owner) + encode_address(spender)


def encode_approve(spender: str, amount: int) -> str:
    return ERC20_APPROVE_SELECTOR + encode_address(spender) + encode_uint(amount)


def encode_deposit_for_burn(
    amount: int,
    destination_domain: int,
    mint_recipient: str,
    burn_token: str,
) -> str:
    # depositForBurn(uint256 amount, uint32 destinationDomain, bytes32 mintRecipient, address burnToken)
    return (
        DEPOSIT_FOR_BURN_SELECTOR
        + encode_uint(amount)
        + encode_uint(destination_domain)
        + encode_address(mint_recipient)
        + encode_address(burn_token)
    )


def encode_receive_message(message: str, attestation: str) -> str:
    # receiveMessage(bytes message, bytes attestation): two offsets, then tails
    message_tail = encode_bytes(message)
    attestation_tail = encode_bytes(attestation)
    message_offset = 64
    attestation_offset = message_offset + len(message_tail) // 2
    return (
        RECEIVE_MESSAGE_SELECTOR
        + encode_uint(message_offset)
        + encode_uint(attestation_offset)
        + message_tail
        + attestation_tail
    )


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def is_valid_address(value: Optional[str]) -> bool:
    return isinstance(value, str) and value.startswith("0x") and is_hex_address(value)


def is_hex_bytes(value: Optional[str]) -> bool:
    """``0x``-prefixed, non-empty, whole bytes."""
    return isinstance(value, str) and bool(_HEX_BYTES_RE.match(value))


def is_tx_hash(value: Optional[str]) -> bool:
    return isinstance(value, str) and bool(_TX_HASH_RE.match(value))


def hash_message(message: str) -> str:
    """keccak256 of the raw CCTP message, the key the attestation service uses."""
    return "0x" + keccak(hexstr=message).hex()
