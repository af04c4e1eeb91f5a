"""web3 client for the DRAIN channel contract."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Awaitable, Optional, TypeVar

import aiohttp
from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import ContractCustomError, ContractLogicError, Web3Exception

from ...domain.errors import ChainCallError
from ...domain.provider.entities import OnChainChannel
from .abi import DRAIN_CHANNEL_ABI, custom_error_names

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _selector(error_name: str) -> str:
    return Web3.keccak(text=f"{error_name}()")[:4].hex().removeprefix("0x")


ERROR_SELECTORS: dict[str, str] = {_selector(name): name for name in custom_error_names()}


def decode_error_name(error: BaseException) -> Optional[str]:
    """Map a reverted call to the contract's custom error name, if any."""
    data = getattr(error, "data", None)
    if isinstance(data, (bytes, bytearray)):
        data = data.hex()
    if isinstance(data, str):
        selector = data.lower().removeprefix("0x")[:8]
        if selector in ERROR_SELECTORS:
            return ERROR_SELECTORS[selector]
    # Some RPC nodes only surface the decoded name inside the revert message
    message = str(getattr(error, "message", None) or error)
    for name in ERROR_SELECTORS.values():
        if re.search(rf"\b{name}\b", message):
            return name
    return None


def mask_rpc_url(rpc_url: str) -> str:
    """Hide an API key carried as the last path segment of an RPC URL."""
    return re.sub(r"(://[^/]+/(?:.*/)?)[^/]{8,}$", r"\1***", rpc_url)


def _to_bytes32(channel_id: str) -> bytes:
    return bytes.fromhex(channel_id.removeprefix("0x"))


class DrainChannelContract:
    """Reads channels and submits claims through an Ethereum JSON-RPC node.

    Every call is bounded by ``timeout`` seconds. Failures are raised as
    ChainCallError; reverted calls carry the decoded custom error name.
    """

    def __init__(
        self,
        *,
        rpc_url: str,
        contract_address: str,
        chain_id: int,
        private_key: str,
        timeout: float = 30.0,
        wait_for_receipt: bool = True,
        w3: Optional[AsyncWeb3] = None,
    ) -> None:
        self.chain_id = chain_id
        self.timeout = timeout
        self.wait_for_receipt = wait_for_receipt
        self._account = Account.from_key(private_key)
        self._w3 = w3 or AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self._contract = self._w3.eth.contract(
            address=Web3.to_checksum_address(contract_address),
            abi=DRAIN_CHANNEL_ABI,
        )
        self._send_lock = asyncio.Lock()
        logger.info("DRAIN contract %s via %s", contract_address, mask_rpc_url(rpc_url))

    @property
    def provider_address(self) -> str:
        return self._account.address

    async def _bounded(self, call: Awaitable[T], what: str) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ChainCallError(f"{what} timed out after {self.timeout}s") from e
        except (ContractCustomError, ContractLogicError) as e:
            raise ChainCallError(f"{what} reverted: {e}", decode_error_name(e)) from e
        except (Web3Exception, aiohttp.ClientError, OSError, ValueError) as e:
            # HTTP 429/5xx from the RPC, transport failures, JSON-RPC errors, nonce/gas contention
            raise ChainCallError(f"{what} failed: {e}", decode_error_name(e)) from e

    async def read_channel(self, channel_id: str) -> OnChainChannel:
        raw: Any = await self._bounded(
            self._contract.functions.getChannel(_to_bytes32(channel_id)).call(),
            "getChannel",
        )
        consumer, provider, deposit, claimed, expiry = raw
        return OnChainChannel(
            consumer=consumer,
            provider=provider,
            deposit=int(deposit),
            claimed=int(claimed),
            expiry=int(expiry),
        )

    async def read_balance(self, channel_id: str) -> int:
        balance = await self._bounded(
            self._contract.functions.getBalance(_to_bytes32(channel_id)).call(),
            "getBalance",
        )
        return int(balance)

    async def _send_claim(
        self, channel_id: str, amount: int, nonce: int, signature: str
    ) -> str:
        address = self._account.address
        tx = await self._contract.functions.claim(
            _to_bytes32(channel_id),
            amount,
            nonce,
            bytes.fromhex(signature.removeprefix("0x")),
        ).build_transaction(
            {
                "from": address,
                "chainId": self.chain_id,
                "nonce": await self._w3.eth.get_transaction_count(address, "pending"),
            }
        )
        signed = self._account.sign_transaction(tx)
        tx_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
        tx_hex = Web3.to_hex(tx_hash)
        if self.wait_for_receipt:
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.timeout
            )
            if receipt["status"] != 1:
                raise ChainCallError(f"claim transaction {tx_hex} reverted on-chain")
        return tx_hex

    async def submit_claim(
        self, channel_id: str, amount: int, nonce: int, signature: str
    ) -> str:
        # One claim in flight at a time so account nonces never collide
        async with self._send_lock:
            return await self._bounded(
                self._send_claim(channel_id, amount, nonce, signature), "claim"
            )
