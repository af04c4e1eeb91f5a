"""Voucher store domain repository interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .entities import ChannelState, StoredVoucher


class VoucherRepository(ABC):
    """Durable record of every accepted voucher and per-channel ledger state."""

    @abstractmethod
    async def append(self, voucher: StoredVoucher) -> StoredVoucher:
        """Append a voucher to the log."""
        pass

    @abstractmethod
    async def get_channel(self, channel_id: str) -> Optional[ChannelState]:
        """Get the persisted ledger state of a channel."""
        pass

    @abstractmethod
    async def put_channel(self, state: ChannelState) -> ChannelState:
        """Create or replace the ledger state of a channel."""
        pass

    @abstractmethod
    async def commit_voucher(
        self,
        state: ChannelState,
        voucher: StoredVoucher,
        *,
        expected_last_nonce: Optional[int],
        charged: int,
    ) -> ChannelState:
        """
        Atomically append the voucher and write the new channel state.

        The write only happens when the stored channel's last nonce still equals
        ``expected_last_nonce``; otherwise StaleChannelStateError is raised.
        """
        pass

    @abstractmethod
    async def list_unclaimed(self) -> List[StoredVoucher]:
        """Every voucher not yet marked claimed, oldest first."""
        pass

    @abstractmethod
    async def highest_per_channel(self) -> Dict[str, StoredVoucher]:
        """Highest-amount unclaimed voucher of each channel."""
        pass

    @abstractmethod
    async def mark_claimed(
        self,
        channel_id: str,
        tx_hash: Optional[str],
        *,
        up_to_nonce: Optional[int] = None,
    ) -> int:
        """Mark unclaimed vouchers of a channel claimed. Returns how many changed."""
        pass

    @abstractmethod
    async def list_channels(self, skip: int = 0, limit: int = 100) -> List[ChannelState]:
        """Known channels, most recently created first."""
        pass

    @abstractmethod
    async def count_vouchers(self) -> int:
        pass

    @abstractmethod
    async def count_channels(self) -> int:
        pass

    @abstractmethod
    async def count_unclaimed(self) -> int:
        pass

    @abstractmethod
    async def total_earned(self) -> int:
        pass
