"""
JSON-RPC chain gateway.

Talks to each chain's endpoint over one shared ``httpx.AsyncClient``.
Reads go through a bounded retry strategy; writes are signed locally with
``eth_account`` and broadcast exactly once.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx
from eth_account import Account
from eth_utils import to_checksum_address, to_hex

from ..config import settings
from ..core.bridge.abi import (
    decode_single_bytes,
    decode_uint,
    encode_allowance,
    encode_approve,
    encode_balance_of,
    encode_deposit_for_burn,
    encode_receive_message,
)
from ..core.bridge.constants import MESSAGE_SENT_TOPIC, SupportedChain, chain_config, resolve_chain
from ..core.bridge.errors import RpcError, WalletNotInitializedError
from ..core.bridge.models import LogEntry, TransactionReceipt
from ..core.recovery import (
    ExponentialBackoffStrategy,
    NetworkError,
    RateLimitError,
    RetryStrategy,
    TimeoutError,
    TransactionRevertedError,
)
from .base import ChainGateway

# JSON-RPC error codes some providers use for throttling
_RATE_LIMIT_RPC_CODES = {-32005, 429}

DEFAULT_PRIORITY_FEE_WEI = 1_000_000_000


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


class JsonRpcChainGateway(ChainGateway):
    """
    ``ChainGateway`` backed by plain JSON-RPC endpoints.

    Nonces are read from the ``pending`` block tag while holding a
    per-(chain, signer) lock, so concurrent transfers from one signer never
    race for the same nonce. The lock is held until the transaction has
    been accepted by the node.
    """

    name = "json-rpc"

    def __init__(
        self,
        *,
        rpc_urls: Optional[Mapping[Any, str]] = None,
        private_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        retry_strategy: Optional[RetryStrategy] = None,
        receipt_timeout_seconds: Optional[float] = None,
        receipt_poll_interval_seconds: Optional[float] = None,
        gas_multiplier: Optional[float] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self._rpc_urls: Dict[SupportedChain, str] = {
            resolve_chain(chain): url
            for chain, url in (rpc_urls if rpc_urls is not None else settings.rpc_urls).items()
            if url
        }

        key = settings.bridge_private_key if private_key is None else private_key
        self._account = Account.from_key(key) if key else None

        self._client = client or httpx.AsyncClient(timeout=float(settings.request_timeout_seconds))
        self._owns_client = client is None
        self._retry = retry_strategy or ExponentialBackoffStrategy(
            max_attempts=settings.rpc_read_max_attempts,
            initial_delay=settings.rpc_read_retry_delay_seconds,
            logger=self.logger,
        )
        self._receipt_timeout = (
            settings.receipt_timeout_seconds if receipt_timeout_seconds is None else receipt_timeout_seconds
        )
        self._receipt_poll_interval = (
            settings.receipt_poll_interval_seconds
            if receipt_poll_interval_seconds is None
            else receipt_poll_interval_seconds
        )
        self._gas_multiplier = gas_multiplier or settings.gas_multiplier

        self._ids = itertools.count(1)
        self._nonce_locks: Dict[Tuple[SupportedChain, str], asyncio.Lock] = {}

    @property
    def address(self) -> Optional[str]:
        return self._account.address if self._account else None

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _rpc_call(self, chain: SupportedChain, method: str, params: List[Any]) -> Any:
        """Make one RPC call to ``chain``. No retries here."""
        rpc_url = self._rpc_urls.get(chain)
        if not rpc_url:
            raise RpcError(f"No RPC URL configured for chain {chain.value}", chain=chain.value)

        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": next(self._ids),
        }

        try:
            response = await self._client.post(rpc_url, json=payload)
        except httpx.RequestError as exc:
            raise NetworkError(
                f"{chain.value} RPC {method} failed: {type(exc).__name__}: {exc}",
                provider=self.name,
            ) from exc

        if response.status_code == 429:
            raise RateLimitError(
                f"{chain.value} RPC rate limited",
                retry_after=_retry_after(response),
                provider=self.name,
            )
        if response.status_code >= 500:
            raise NetworkError(f"{chain.value} RPC returned HTTP {response.status_code}", provider=self.name)
        if response.status_code >= 400:
            raise RpcError(f"HTTP {response.status_code} from {chain.value} RPC", chain=chain.value)

        try:
            body = response.json()
        except ValueError as exc:
            raise NetworkError(f"{chain.value} RPC returned invalid JSON", provider=self.name) from exc

        error = body.get("error")
        if error:
            self._raise_rpc_error(chain, method, error)

        return body.get("result")

    def _raise_rpc_error(self, chain: SupportedChain, method: str, error: Any) -> None:
        if isinstance(error, dict):
            message = str(error.get("message") or error)
            rpc_code = error.get("code")
            data = error.get("data")
        else:
            message, rpc_code, data = str(error), None, None

        if rpc_code in _RATE_LIMIT_RPC_CODES or "rate limit" in message.lower():
            raise RateLimitError(f"{chain.value} RPC rate limited: {message}", provider=self.name)
        if "revert" in message.lower():
            raise TransactionRevertedError(
                f"{method} reverted: {message}",
                reason=message,
                chain=chain.value,
            )
        raise RpcError(f"RPC error: {message}", rpc_code=rpc_code, data=data, chain=chain.value)

    async def _read(self, chain: SupportedChain, method: str, params: List[Any]) -> Any:
        return await self._retry.execute(
            lambda: self._rpc_call(chain, method, params),
            operation_name=f"{chain.value} {method}",
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _eth_call(self, chain: SupportedChain, to: str, data: str) -> str:
        return await self._read(chain, "eth_call", [{"to": to, "data": data}, "latest"])

    async def get_balance(self, chain: SupportedChain, token: str, owner: str) -> int:
        return decode_uint(await self._eth_call(chain, token, encode_balance_of(owner)))

    async def get_allowance(self, chain: SupportedChain, token: str, owner: str, spender: str) -> int:
        return decode_uint(await self._eth_call(chain, token, encode_allowance(owner, spender)))

    async def _estimate_gas(self, chain: SupportedChain, call_obj: Dict[str, Any]) -> int:
        gas_limit_hex = await self._read(chain, "eth_estimateGas", [call_obj])
        return int(decode_uint(gas_limit_hex) * self._gas_multiplier)

    async def _fee_params(self, chain: SupportedChain) -> Tuple[int, int]:
        """Return ``(max_fee_per_gas, max_priority_fee_per_gas)``."""
        fee_history = await self._read(chain, "eth_feeHistory", [1, "latest", [50]])
        base_fee = decode_uint(fee_history["baseFeePerGas"][-1])
        reward = fee_history.get("reward")
        priority_fee = decode_uint(reward[0][0]) if reward and reward[0] else DEFAULT_PRIORITY_FEE_WEI
        return base_fee * 2 + priority_fee, priority_fee

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _require_account(self):
        if self._account is None:
            raise WalletNotInitializedError()
        return self._account

    def _get_nonce_lock(self, chain: SupportedChain, address: str) -> asyncio.Lock:
        key = (chain, address.lower())
        if key not in self._nonce_locks:
            self._nonce_locks[key] = asyncio.Lock()
        return self._nonce_locks[key]

    async def _send_transaction(self, chain: SupportedChain, to: str, data: str, label: str) -> str:
        account = self._require_account()
        config = chain_config(chain)

        async with self._get_nonce_lock(chain, account.address):
            nonce = decode_uint(
                await self._read(chain, "eth_getTransactionCount", [account.address, "pending"])
            )
            gas_limit = await self._estimate_gas(
                chain,
                {"from": account.address, "to": to, "data": data},
            )
            max_fee, priority_fee = await self._fee_params(chain)

            tx = {
                "type": 2,
                "chainId": config["chain_id"],
                "nonce": nonce,
                "to": to_checksum_address(to),
                "value": 0,
                "data": data,
                "gas": gas_limit,
                "maxFeePerGas": max_fee,
                "maxPriorityFeePerGas": priority_fee,
            }
            signed = account.sign_transaction(tx)

            # Broadcast once; a failed write is the caller's decision to resubmit
            tx_hash = await self._rpc_call(chain, "eth_sendRawTransaction", [to_hex(signed.raw_transaction)])

        self.logger.info("Submitted %s on %s: %s (nonce=%d)", label, chain.value, tx_hash, nonce)
        return tx_hash

    async def approve(self, chain: SupportedChain, token: str, spender: str, amount: int) -> str:
        return await self._send_transaction(chain, token, encode_approve(spender, amount), "approve")

    async def deposit_for_burn(
        self,
        chain: SupportedChain,
        amount: int,
        destination_domain: int,
        mint_recipient: str,
        burn_token: str,
    ) -> str:
        data = encode_deposit_for_burn(amount, destination_domain, mint_recipient, burn_token)
        return await self._send_transaction(
            chain,
            chain_config(chain)["token_messenger"],
            data,
            "depositForBurn",
        )

    async def receive_message(self, chain: SupportedChain, message: str, attestation: str) -> str:
        data = encode_receive_message(message, attestation)
        return await self._send_transaction(
            chain,
            chain_config(chain)["message_transmitter"],
            data,
            "receiveMessage",
        )

    # ------------------------------------------------------------------
    # Receipts
    # ------------------------------------------------------------------

    async def wait_for_receipt(self, chain: SupportedChain, tx_hash: str) -> TransactionReceipt:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._receipt_timeout

        while True:
            receipt = await self._read(chain, "eth_getTransactionReceipt", [tx_hash])
            if receipt:
                parsed = self._parse_receipt(tx_hash, receipt)
                self.logger.debug(
                    "Receipt for %s on %s: success=%s block=%s",
                    tx_hash,
                    chain.value,
                    parsed.success,
                    parsed.block_number,
                )
                return parsed

            if loop.time() >= deadline:
                raise TimeoutError(
                    f"No receipt for {tx_hash} on {chain.value} after {self._receipt_timeout}s",
                    operation="wait_for_receipt",
                )
            await asyncio.sleep(self._receipt_poll_interval)

    @staticmethod
    def _parse_receipt(tx_hash: str, receipt: Dict[str, Any]) -> TransactionReceipt:
        # 0x1 = success, 0x0 = revert
        status = decode_uint(receipt.get("status", "0x1"))
        logs = [
            LogEntry(
                address=log.get("address", ""),
                topics=list(log.get("topics") or []),
                data=log.get("data") or "0x",
            )
            for log in receipt.get("logs") or []
        ]
        return TransactionReceipt(
            tx_hash=receipt.get("transactionHash") or tx_hash,
            success=status == 1,
            logs=logs,
            block_number=decode_uint(receipt["blockNumber"]) if receipt.get("blockNumber") else None,
            gas_used=decode_uint(receipt["gasUsed"]) if receipt.get("gasUsed") else None,
        )

    def extract_message_sent(self, chain: SupportedChain, receipt: TransactionReceipt) -> Optional[str]:
        transmitter = chain_config(chain)["message_transmitter"].lower()
        for log in receipt.logs:
            if log.address.lower() != transmitter or not log.topics:
                continue
            if log.topics[0].lower() == MESSAGE_SENT_TOPIC:
                return decode_single_bytes(log.data)
        return None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
