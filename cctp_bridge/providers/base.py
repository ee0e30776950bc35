from abc import ABC, abstractmethod
from typing import Optional

from ..core.bridge.constants import SupportedChain
from ..core.bridge.models import AttestationPoll, TransactionReceipt


class AttestationClient(ABC):
    """Source of burn proofs for CCTP messages"""

    name: str = "attestation"

    @abstractmethod
    async def fetch_attestation(self, message_hash: str) -> AttestationPoll:
        """Return pending, complete (with payload) or error for one message hash"""
        pass

    async def aclose(self) -> None:
        pass


class ChainGateway(ABC):
    """Read/write access to the chains a transfer touches.

    Write methods submit exactly one transaction and return its hash without
    waiting for inclusion; callers wait explicitly via ``wait_for_receipt``.
    """

    name: str = "chain"

    @property
    @abstractmethod
    def address(self) -> Optional[str]:
        """Signer address, or ``None`` when no signing key is configured"""
        pass

    @abstractmethod
    async def get_balance(self, chain: SupportedChain, token: str, owner: str) -> int:
        """ERC-20 balance in smallest units"""
        pass

    @abstractmethod
    async def get_allowance(self, chain: SupportedChain, token: str, owner: str, spender: str) -> int:
        """ERC-20 allowance granted by ``owner`` to ``spender``"""
        pass

    @abstractmethod
    async def approve(self, chain: SupportedChain, token: str, spender: str, amount: int) -> str:
        """Submit an ERC-20 approval"""
        pass

    @abstractmethod
    async def deposit_for_burn(
        self,
        chain: SupportedChain,
        amount: int,
        destination_domain: int,
        mint_recipient: str,
        burn_token: str,
    ) -> str:
        """Submit TokenMessenger.depositForBurn on ``chain``"""
        pass

    @abstractmethod
    async def receive_message(self, chain: SupportedChain, message: str, attestation: str) -> str:
        """Submit MessageTransmitter.receiveMessage on ``chain``"""
        pass

    @abstractmethod
    async def wait_for_receipt(self, chain: SupportedChain, tx_hash: str) -> TransactionReceipt:
        """Block (cooperatively) until ``tx_hash`` is mined"""
        pass

    @abstractmethod
    def extract_message_sent(self, chain: SupportedChain, receipt: TransactionReceipt) -> Optional[str]:
        """Raw CCTP message from the receipt's MessageSent log, if any"""
        pass

    async def aclose(self) -> None:
        pass
