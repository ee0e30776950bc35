"""
Shared fakes for bridge tests.

``FakeChainGateway`` and ``FakeAttestationClient`` implement the provider
interfaces in-process, recording every call so tests can assert on order
and count without any network mocking.
"""

import asyncio
import itertools
from typing import Any, List, Optional, Tuple

import pytest

from cctp_bridge.core.bridge.abi import decode_single_bytes, encode_single_bytes
from cctp_bridge.core.bridge.constants import MESSAGE_SENT_TOPIC, SupportedChain, chain_config
from cctp_bridge.core.bridge.models import AttestationPoll, LogEntry, TransactionReceipt
from cctp_bridge.core.bridge.orchestrator import BridgeOrchestrator
from cctp_bridge.core.recovery import TransactionRevertedError
from cctp_bridge.providers.base import AttestationClient, ChainGateway

SIGNER = "0x1111111111111111111111111111111111111111"
RECIPIENT = "0x2222222222222222222222222222222222222222"
ATTESTATION = "0x" + "ab" * 65


class FakeChainGateway(ChainGateway):
    """Scriptable chain: flip the flags to make a stage fail."""

    name = "fake"

    def __init__(
        self,
        *,
        address: Optional[str] = SIGNER,
        allowance: int = 0,
        approve_success: bool = True,
        burn_success: bool = True,
        emit_message: bool = True,
        claim_success: bool = True,
        claim_revert_reason: Optional[str] = None,
        claim_error: Optional[Exception] = None,
    ) -> None:
        self._address = address
        self.allowance = allowance
        self.approve_success = approve_success
        self.burn_success = burn_success
        self.emit_message = emit_message
        self.claim_success = claim_success
        self.claim_revert_reason = claim_revert_reason
        self.claim_error = claim_error

        self.calls: List[Tuple[Any, ...]] = []
        self.messages: List[str] = []
        self._receipts = {}
        self._counter = itertools.count(1)
        # Set to hold receipt waits until the test releases them
        self.receipt_gate: Optional[asyncio.Event] = None
        self.closed = False

    @property
    def address(self) -> Optional[str]:
        return self._address

    def _tx_hash(self) -> str:
        return "0x" + format(next(self._counter), "064x")

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]

    async def get_balance(self, chain, token, owner):
        self.calls.append(("get_balance", chain))
        return 10**12

    async def get_allowance(self, chain, token, owner, spender):
        self.calls.append(("get_allowance", chain, owner, spender))
        return self.allowance

    async def approve(self, chain, token, spender, amount):
        tx_hash = self._tx_hash()
        self.calls.append(("approve", chain, spender, amount))
        self._receipts[tx_hash] = TransactionReceipt(tx_hash=tx_hash, success=self.approve_success)
        if self.approve_success:
            self.allowance = amount
        return tx_hash

    async def deposit_for_burn(self, chain, amount, destination_domain, mint_recipient, burn_token):
        tx_hash = self._tx_hash()
        self.calls.append(("deposit_for_burn", chain, amount, destination_domain, mint_recipient))
        message = "0x" + format(len(self.messages) + 1, "0248x")
        self.messages.append(message)
        logs = []
        if self.emit_message:
            logs.append(
                LogEntry(
                    address=chain_config(chain)["message_transmitter"],
                    topics=[MESSAGE_SENT_TOPIC],
                    data=encode_single_bytes(message),
                )
            )
        self._receipts[tx_hash] = TransactionReceipt(tx_hash=tx_hash, success=self.burn_success, logs=logs)
        return tx_hash

    async def receive_message(self, chain, message, attestation):
        self.calls.append(("receive_message", chain, message, attestation))
        if self.claim_error is not None:
            raise self.claim_error
        if self.claim_revert_reason:
            raise TransactionRevertedError(
                f"eth_estimateGas reverted: {self.claim_revert_reason}",
                reason=self.claim_revert_reason,
                chain=chain.value,
            )
        tx_hash = self._tx_hash()
        self._receipts[tx_hash] = TransactionReceipt(tx_hash=tx_hash, success=self.claim_success)
        return tx_hash

    async def wait_for_receipt(self, chain, tx_hash):
        self.calls.append(("wait_for_receipt", chain, tx_hash))
        if self.receipt_gate is not None:
            await self.receipt_gate.wait()
        # Yield like a real receipt wait would
        await asyncio.sleep(0)
        return self._receipts[tx_hash]

    def extract_message_sent(self, chain, receipt):
        for log in receipt.logs:
            if log.topics and log.topics[0] == MESSAGE_SENT_TOPIC:
                return decode_single_bytes(log.data)
        return None

    async def aclose(self):
        self.closed = True


class FakeAttestationClient(AttestationClient):
    """Returns scripted polls in order, then ``default`` forever."""

    name = "fake-attestation"

    def __init__(self, script: Optional[List[AttestationPoll]] = None, default: Optional[AttestationPoll] = None):
        self.script = list(script or [])
        self.default = default or AttestationPoll.complete(ATTESTATION)
        self.calls: List[str] = []
        self.gate: Optional[asyncio.Event] = None
        self.closed = False

    async def fetch_attestation(self, message_hash: str) -> AttestationPoll:
        self.calls.append(message_hash)
        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(0)
        if self.script:
            poll = self.script.pop(0)
            if isinstance(poll, Exception):
                raise poll
            return poll
        return self.default

    async def aclose(self):
        self.closed = True


@pytest.fixture
def gateway():
    return FakeChainGateway()


@pytest.fixture
def attestation_client():
    return FakeAttestationClient()


@pytest.fixture
def make_orchestrator():
    """Factory so tests can swap in their own fakes."""

    def _make(gateway=None, attestation_client=None, **overrides):
        options = {
            "source_chain": SupportedChain.BASE,
            "minimum_fee": 100_000,
            "fee_bps": 0,
            "polling_interval": 0,
            "max_attempts": 5,
        }
        options.update(overrides)
        return BridgeOrchestrator(
            gateway or FakeChainGateway(),
            attestation_client or FakeAttestationClient(),
            **options,
        )

    return _make


@pytest.fixture
def orchestrator(make_orchestrator, gateway, attestation_client):
    return make_orchestrator(gateway, attestation_client)


@pytest.fixture
def make_gateway():
    return FakeChainGateway


@pytest.fixture
def make_attestation_client():
    return FakeAttestationClient
