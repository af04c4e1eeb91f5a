"""Per-channel ledger: cumulative charges, last accepted voucher and expiry."""

from __future__ import annotations

import asyncio
import logging
import weakref
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ....domain.errors import StaleChannelStateError
from ....domain.provider.entities import (
    ChannelState,
    OnChainChannel,
    StoredVoucher,
    Voucher,
)
from ....domain.provider.voucher_repository import VoucherRepository
from ....domain.shared import ChannelContractProtocol
from .voucher_validators import chargeable_amount, validate_nonce

logger = logging.getLogger(__name__)


class ChannelLedger:
    """Local accounting for every channel this provider has seen.

    Persisted state lives in the repository. Channels that were hydrated from
    the chain but have not yet committed a voucher are kept in memory only,
    so a rejected first voucher leaves nothing behind.

    Commits and claim bookkeeping for a channel are serialized by a
    per-channel lock; the repository's compare-and-set on the last nonce
    catches writers in other processes.
    """

    max_commit_attempts = 3
    max_seeded_channels = 10_000

    def __init__(
        self,
        repository: VoucherRepository,
        contract: ChannelContractProtocol,
    ):
        self.repository = repository
        self.contract = contract
        self._seeded: Dict[str, ChannelState] = {}
        # Entries vanish once no coroutine holds or waits on the lock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, channel_id: str) -> asyncio.Lock:
        lock = self._locks.get(channel_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[channel_id] = lock
        return lock

    async def get(self, channel_id: str) -> Optional[ChannelState]:
        state = await self.repository.get_channel(channel_id)
        if state is not None:
            return state
        return self._seeded.get(channel_id)

    async def upsert(self, state: ChannelState) -> ChannelState:
        saved = await self.repository.put_channel(state)
        self._seeded.pop(state.channel_id, None)
        return saved

    def forget(self, channel_id: str) -> None:
        """Drop an unpersisted channel, e.g. after its first voucher was rejected."""
        self._seeded.pop(channel_id, None)

    async def read_chain(self, channel_id: str) -> OnChainChannel:
        """Read the escrow record. ChainCallError propagates to the caller."""
        return await self.contract.read_channel(channel_id)

    def seed(
        self,
        channel_id: str,
        on_chain: OnChainChannel,
        existing: Optional[ChannelState] = None,
    ) -> ChannelState:
        """Build ledger state from an on-chain read.

        A brand new channel starts with nothing charged. An existing record
        keeps its accounting and only gains the fields it was missing.
        """
        if existing is not None:
            state = existing.model_copy(
                update={
                    "provider": existing.provider or on_chain.provider,
                    "expiry": existing.expiry or on_chain.expiry,
                }
            )
        else:
            state = ChannelState(
                channel_id=channel_id,
                consumer=on_chain.consumer,
                provider=on_chain.provider,
                deposit=on_chain.deposit,
                total_charged=0,
                expiry=on_chain.expiry,
            )
            logger.info(
                "Hydrated channel %s (deposit=%s, expiry=%s)",
                channel_id,
                on_chain.deposit,
                on_chain.expiry,
            )
        self._seeded.pop(channel_id, None)
        if len(self._seeded) >= self.max_seeded_channels:
            # Evict the oldest hydration
            self._seeded.pop(next(iter(self._seeded)))
        self._seeded[channel_id] = state
        return state

    async def commit(
        self, voucher: Voucher, channel: ChannelState, cost: int
    ) -> ChannelState:
        """Record an accepted voucher and add ``cost`` to the channel's charges.

        The charge is capped only by the remaining deposit. The nonce is
        re-checked against the latest state so two requests validated with the
        same voucher cannot both commit it.

        Raises:
            VoucherRejected: invalid_nonce when another commit got there first.
            StaleChannelStateError: when concurrent writers keep winning.
        """
        channel_id = voucher.channel_id
        async with self._lock_for(channel_id):
            for attempt in range(1, self.max_commit_attempts + 1):
                current = await self.repository.get_channel(channel_id)
                if current is None:
                    current = self._seeded.get(channel_id, channel)

                validate_nonce(voucher.nonce, current.last_nonce)

                charged = chargeable_amount(
                    current.deposit, current.total_charged, cost
                )
                if charged < cost:
                    logger.warning(
                        "Cost %s on channel %s exceeds the remaining deposit; charging %s",
                        cost,
                        channel_id,
                        charged,
                    )

                stored = StoredVoucher(
                    **voucher.model_dump(), consumer=current.consumer
                )
                new_state = current.model_copy(
                    update={
                        "total_charged": current.total_charged + charged,
                        "last_voucher": stored,
                        "last_activity_at": datetime.now(timezone.utc),
                    }
                )
                try:
                    await self.repository.commit_voucher(
                        new_state,
                        stored,
                        expected_last_nonce=current.last_nonce,
                        charged=charged,
                    )
                except StaleChannelStateError:
                    logger.info(
                        "Channel %s changed during commit (attempt %d), retrying",
                        channel_id,
                        attempt,
                    )
                    continue

                self._seeded.pop(channel_id, None)
                logger.debug(
                    "Committed voucher nonce=%s on %s (charged=%s, total=%s)",
                    voucher.nonce,
                    channel_id,
                    charged,
                    new_state.total_charged,
                )
                return new_state

        raise StaleChannelStateError(
            f"Could not commit nonce {voucher.nonce} on {channel_id}"
        )

    async def mark_claimed(
        self,
        channel_id: str,
        tx_hash: Optional[str],
        *,
        up_to_nonce: Optional[int] = None,
    ) -> int:
        async with self._lock_for(channel_id):
            return await self.repository.mark_claimed(
                channel_id, tx_hash, up_to_nonce=up_to_nonce
            )

    async def all_channels(self, page_size: int = 500) -> List[ChannelState]:
        """Every persisted channel, newest first."""
        channels: List[ChannelState] = []
        skip = 0
        while True:
            page = await self.repository.list_channels(skip=skip, limit=page_size)
            channels.extend(page)
            if len(page) < page_size:
                return channels
            skip += page_size
