"""Protocol interfaces for the on-chain collaborators.

Services depend on these protocols rather than on web3 directly so tests can
inject in-process fakes.
"""

from __future__ import annotations

from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    # Avoid circular imports by only importing types during type checking
    from ..provider.entities import OnChainChannel


class ChannelContractProtocol(Protocol):
    """Read/write access to the DRAIN channel contract.

    Implementations raise ``ChainCallError`` on failure, setting
    ``error_name`` to the contract's custom error when the call reverted.
    """

    @property
    def provider_address(self) -> str:
        """Checksum address of the account that signs claim transactions."""
        ...

    async def read_channel(self, channel_id: str) -> OnChainChannel:
        """Return the channel's consumer, provider, deposit, claimed and expiry."""
        ...

    async def read_balance(self, channel_id: str) -> int:
        """Return the channel's remaining claimable balance."""
        ...

    async def submit_claim(
        self, channel_id: str, amount: int, nonce: int, signature: str
    ) -> str:
        """Send a claim transaction and return its hash."""
        ...


class VoucherSignatureVerifier(Protocol):
    """Checks a voucher signature against the contract's EIP-712 domain."""

    def verify(
        self,
        signer_address: str,
        channel_id: str,
        amount: int,
        nonce: int,
        signature: str,
    ) -> bool:
        ...
