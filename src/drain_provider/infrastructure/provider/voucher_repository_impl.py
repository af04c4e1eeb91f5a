"""Voucher repository implementation over a storage abstraction."""

from __future__ import annotations

from typing import Dict, List, Optional

from ...domain.errors import StaleChannelStateError
from ...domain.provider.entities import ChannelState, StoredVoucher
from ...domain.provider.voucher_repository import VoucherRepository
from ..scripts import PROVIDER_SCRIPTS
from ..storage import KeyValueStore

VOUCHER_PREFIX = "drain:voucher:"
VOUCHERS_ALL_KEY = "drain:vouchers:all"
CHANNELS_ALL_KEY = "drain:channels:all"
CHANNELS_UNCLAIMED_KEY = "drain:channels:unclaimed"
TOTAL_EARNED_KEY = "drain:stats:total_earned"


def _channel_key(channel_id: str) -> str:
    return f"drain:channel:{channel_id}"


def _channel_unclaimed_key(channel_id: str) -> str:
    return f"drain:vouchers:unclaimed:{channel_id}"


class VoucherRepositoryImpl(VoucherRepository):
    """Voucher repository using a KeyValueStore.

    Keys:
      - drain:channel:{channel_id} -> ChannelState JSON
      - drain:voucher:{channel_id}:{nonce} -> StoredVoucher JSON
      - drain:vouchers:all -> zset of every voucher member by received time
      - drain:vouchers:unclaimed:{channel_id} -> zset of unclaimed voucher members
      - drain:channels:unclaimed -> zset of channels holding unclaimed vouchers
      - drain:channels:all -> zset of known channels by creation time
      - drain:stats:total_earned -> integer counter of committed charges
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def initialize(self) -> None:
        """Register the Lua scripts this repository relies on."""
        for name, script in PROVIDER_SCRIPTS.items():
            await self.store.register_script(name, script)

    async def append(self, voucher: StoredVoucher) -> StoredVoucher:
        member = voucher.storage_member
        status, raw = await self.store.run_script(
            "append_voucher",
            keys=[
                VOUCHER_PREFIX + member,
                VOUCHERS_ALL_KEY,
                _channel_unclaimed_key(voucher.channel_id),
                CHANNELS_UNCLAIMED_KEY,
            ],
            args=[
                voucher.model_dump_json(),
                str(voucher.received_at.timestamp()),
                member,
                voucher.channel_id,
                "1" if voucher.claimed else "0",
            ],
        )
        if int(status) == 0:
            # Vouchers are append-only; keep the record already stored
            return StoredVoucher.model_validate_json(raw)
        return voucher

    async def get_channel(self, channel_id: str) -> Optional[ChannelState]:
        data = await self.store.get(_channel_key(channel_id))
        if not data:
            return None
        return ChannelState.model_validate_json(data)

    async def put_channel(self, state: ChannelState) -> ChannelState:
        await self.store.run_script(
            "put_channel",
            keys=[_channel_key(state.channel_id), CHANNELS_ALL_KEY],
            args=[
                state.model_dump_json(),
                str(state.created_at.timestamp()),
                state.channel_id,
            ],
        )
        return state

    async def commit_voucher(
        self,
        state: ChannelState,
        voucher: StoredVoucher,
        *,
        expected_last_nonce: Optional[int],
        charged: int,
    ) -> ChannelState:
        member = voucher.storage_member
        status, raw = await self.store.run_script(
            "commit_voucher",
            keys=[
                _channel_key(state.channel_id),
                VOUCHER_PREFIX + member,
                VOUCHERS_ALL_KEY,
                _channel_unclaimed_key(state.channel_id),
                CHANNELS_UNCLAIMED_KEY,
                CHANNELS_ALL_KEY,
                TOTAL_EARNED_KEY,
            ],
            args=[
                state.model_dump_json(),
                voucher.model_dump_json(),
                "" if expected_last_nonce is None else str(expected_last_nonce),
                member,
                str(voucher.received_at.timestamp()),
                str(state.created_at.timestamp()),
                state.channel_id,
                str(charged),
            ],
        )
        if int(status) != 1:
            raise StaleChannelStateError(
                f"Channel {state.channel_id} changed while committing nonce {voucher.nonce}"
            )
        return state

    async def _load_vouchers(self, members: List[str]) -> List[StoredVoucher]:
        raws = await self.store.mget([VOUCHER_PREFIX + m for m in members])
        return [StoredVoucher.model_validate_json(raw) for raw in raws if raw]

    async def _unclaimed_for_channel(self, channel_id: str) -> List[StoredVoucher]:
        members = await self.store.zrange(_channel_unclaimed_key(channel_id), 0, -1)
        return await self._load_vouchers(members)

    async def list_unclaimed(self) -> List[StoredVoucher]:
        channel_ids = await self.store.zrange(CHANNELS_UNCLAIMED_KEY, 0, -1)
        vouchers: List[StoredVoucher] = []
        for channel_id in channel_ids:
            vouchers.extend(await self._unclaimed_for_channel(channel_id))
        vouchers.sort(key=lambda v: v.received_at)
        return vouchers

    async def highest_per_channel(self) -> Dict[str, StoredVoucher]:
        highest: Dict[str, StoredVoucher] = {}
        for voucher in await self.list_unclaimed():
            existing = highest.get(voucher.channel_id)
            if existing is None or (voucher.amount, voucher.nonce) > (
                existing.amount,
                existing.nonce,
            ):
                highest[voucher.channel_id] = voucher
        return highest

    async def mark_claimed(
        self,
        channel_id: str,
        tx_hash: Optional[str],
        *,
        up_to_nonce: Optional[int] = None,
    ) -> int:
        """Mark unclaimed vouchers of a channel claimed.

        With ``up_to_nonce`` only vouchers at or below that nonce change, so a
        voucher committed while a claim transaction was in flight stays
        claimable.
        """
        pending = [
            v
            for v in await self._unclaimed_for_channel(channel_id)
            if up_to_nonce is None or v.nonce <= up_to_nonce
        ]
        if not pending:
            return 0

        args: List[str] = [channel_id]
        for voucher in pending:
            voucher.mark_claimed(tx_hash)
            args.extend([voucher.storage_member, voucher.model_dump_json()])

        # The script patches the stored channel's last voucher itself
        updated = await self.store.run_script(
            "mark_claimed",
            keys=[
                _channel_unclaimed_key(channel_id),
                CHANNELS_UNCLAIMED_KEY,
                _channel_key(channel_id),
                VOUCHER_PREFIX,
            ],
            args=args,
        )
        return int(updated)

    async def list_channels(self, skip: int = 0, limit: int = 100) -> List[ChannelState]:
        ids = await self.store.zrevrange(CHANNELS_ALL_KEY, skip, skip + limit - 1)
        raws = await self.store.mget([_channel_key(i) for i in ids])
        return [ChannelState.model_validate_json(raw) for raw in raws if raw]

    async def count_vouchers(self) -> int:
        return await self.store.zcard(VOUCHERS_ALL_KEY)

    async def count_channels(self) -> int:
        return await self.store.zcard(CHANNELS_ALL_KEY)

    async def count_unclaimed(self) -> int:
        channel_ids = await self.store.zrange(CHANNELS_UNCLAIMED_KEY, 0, -1)
        total = 0
        for channel_id in channel_ids:
            total += await self.store.zcard(_channel_unclaimed_key(channel_id))
        return total

    async def total_earned(self) -> int:
        raw = await self.store.get(TOTAL_EARNED_KEY)
        return int(raw) if raw else 0
