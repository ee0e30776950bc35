"""Constants and metadata for CCTP bridge orchestration."""

from enum import Enum
from typing import Any, Dict

from eth_utils import keccak

from .errors import UnsupportedChainError


class SupportedChain(str, Enum):
    """Chains the bridge can burn on or mint to."""

    BASE = "BASE"
    POLYGON = "POLYGON"
    ETHEREUM = "ETHEREUM"


# Circle CCTP domain identifiers (not EVM chain ids)
CCTP_DOMAINS: Dict[str, int] = {
    'ETHEREUM': 0,
    'AVALANCHE': 1,
    'OPTIMISM': 2,
    'ARBITRUM': 3,
    'NOBLE': 4,
    'SOLANA': 5,
    'BASE': 6,
    'POLYGON': 7,
}

CHAIN_METADATA: Dict[SupportedChain, Dict[str, Any]] = {
    SupportedChain.BASE: {
        'name': 'Base',
        'chain_id': 8453,
        'aliases': ['base', 'base mainnet'],
        'token_messenger': '0x1682Ae6375C4E4A97e4B583BC394c861A46D8962',
        'message_transmitter': '0xAD09780d193884d503182aD4588450C416D6F9D4',
        'usdc': '0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913',
    },
    SupportedChain.POLYGON: {
        'name': 'Polygon',
        'chain_id': 137,
        'aliases': ['polygon', 'matic', 'polygon pos', 'matic pos'],
        'token_messenger': '0x9daF8c91AEFAE50b9c0E69629D3F6Ca40cA3B3FE',
        'message_transmitter': '0xF3be9355363857F3e001be68856A2f96b4C39Ba9',
        'usdc': '0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359',
    },
    SupportedChain.ETHEREUM: {
        'name': 'Ethereum',
        'chain_id': 1,
        'aliases': ['ethereum', 'eth', 'mainnet', 'ethereum mainnet', 'l1'],
        'token_messenger': '0xBd3fa81B58Ba92a82136038B25aDec7066af3155',
        'message_transmitter': '0x0a992d191DEeC32aFe36203Ad87D7d289a738F81',
        'usdc': '0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48',
    },
}

CHAIN_ALIAS_TO_CHAIN: Dict[str, SupportedChain] = {
    alias: chain
    for chain, details in CHAIN_METADATA.items()
    for alias in [chain.value.lower(), *details.get('aliases', [])]
}


def _selector(signature: str) -> str:
    return f"0x{keccak(text=signature)[:4].hex()}"


# Function selectors used by the chain gateway
ERC20_BALANCE_OF_SELECTOR = _selector("balanceOf(address)")      # 0x70a08231
ERC20_ALLOWANCE_SELECTOR = _selector("allowance(address,address)")  # 0xdd62ed3e
ERC20_APPROVE_SELECTOR = _selector("approve(address,uint256)")   # 0x095ea7b3
DEPOSIT_FOR_BURN_SELECTOR = _selector("depositForBurn(uint256,uint32,bytes32,address)")
RECEIVE_MESSAGE_SELECTOR = _selector("receiveMessage(bytes,bytes)")

# topic0 of MessageTransmitter.MessageSent(bytes message)
MESSAGE_SENT_TOPIC = f"0x{keccak(text='MessageSent(bytes)').hex()}"

USDC_DECIMALS = 6

# $0.10 in USDC smallest units
DEFAULT_BRIDGE_FEE = 100_000

DEFAULT_POLLING_INTERVAL_SECONDS = 10.0
DEFAULT_MAX_POLLING_ATTEMPTS = 180

# Attestation latency (burn finality + Iris signing), display only
ATTESTATION_MIN_SECONDS = 60
ATTESTATION_MAX_SECONDS = 3600
ATTESTATION_AVERAGE_SECONDS = 1200


def resolve_chain(value: Any) -> SupportedChain:
    """Map a chain enum, name or alias to ``SupportedChain``."""
    if isinstance(value, SupportedChain):
        return value
    if isinstance(value, str):
        chain = CHAIN_ALIAS_TO_CHAIN.get(value.strip().lower())
        if chain is not None:
            return chain
    raise UnsupportedChainError(value)


def chain_config(chain: SupportedChain) -> Dict[str, Any]:
    return {
        **CHAIN_METADATA[chain],
        'domain': CCTP_DOMAINS[chain.value],
    }
