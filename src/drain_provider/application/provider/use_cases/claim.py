"""Claim submission use case: settle the highest voucher of each channel on-chain."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Iterable, List, Optional

from ....domain.errors import ChainCallError
from ....domain.provider.constants import PERMANENT_CLAIM_ERRORS
from ....domain.provider.entities import ClaimOutcome, StoredVoucher
from ....domain.provider.voucher_repository import VoucherRepository
from ....domain.shared import ChannelContractProtocol
from ..dtos import ClaimReport, ClaimResult
from .ledger import ChannelLedger

logger = logging.getLogger(__name__)


def is_permanent_claim_error(error_name: Optional[str]) -> bool:
    return error_name in PERMANENT_CLAIM_ERRORS


class ClaimSubmitter:
    """Submits claims for unclaimed vouchers.

    Only one pass runs at a time; manual triggers and the auto-claim
    scheduler share the same lock so a voucher is never submitted twice
    concurrently.
    """

    def __init__(
        self,
        repository: VoucherRepository,
        ledger: ChannelLedger,
        contract: ChannelContractProtocol,
        *,
        claim_threshold: int,
        clock: Callable[[], float] = time.time,
    ):
        self.repository = repository
        self.ledger = ledger
        self.contract = contract
        self.claim_threshold = claim_threshold
        self.clock = clock
        self._pass_lock = asyncio.Lock()

    async def _claim_voucher(self, voucher: StoredVoucher, *, force: bool) -> ClaimResult:
        result = ClaimResult(
            channel_id=voucher.channel_id,
            amount=voucher.amount,
            nonce=voucher.nonce,
            outcome=ClaimOutcome.BELOW_THRESHOLD,
        )
        if not force and voucher.amount < self.claim_threshold:
            return result

        # The balance pre-check is an optimization; on failure fall through to the claim
        try:
            balance = await self.contract.read_balance(voucher.channel_id)
        except ChainCallError as e:
            logger.debug("Balance check failed for %s: %s", voucher.channel_id, e)
        else:
            if balance == 0:
                logger.info(
                    "Channel %s has no remaining balance, marking vouchers claimed",
                    voucher.channel_id,
                )
                await self.ledger.mark_claimed(
                    voucher.channel_id, None, up_to_nonce=voucher.nonce
                )
                result.outcome = ClaimOutcome.ALREADY_SETTLED
                return result

        try:
            tx_hash = await self.contract.submit_claim(
                voucher.channel_id, voucher.amount, voucher.nonce, voucher.signature
            )
        except ChainCallError as e:
            result.error = e.error_name or str(e)
            if is_permanent_claim_error(e.error_name):
                logger.error(
                    "Claim for %s failed permanently (%s), dropping voucher nonce=%s",
                    voucher.channel_id,
                    e.error_name,
                    voucher.nonce,
                )
                await self.ledger.mark_claimed(
                    voucher.channel_id, None, up_to_nonce=voucher.nonce
                )
                result.outcome = ClaimOutcome.PERMANENT_FAILURE
            else:
                logger.warning(
                    "Claim for %s failed, will retry: %s", voucher.channel_id, e
                )
                result.outcome = ClaimOutcome.TRANSIENT_FAILURE
            return result

        await self.ledger.mark_claimed(
            voucher.channel_id, tx_hash, up_to_nonce=voucher.nonce
        )
        logger.info(
            "Claimed %s from channel %s in %s", voucher.amount, voucher.channel_id, tx_hash
        )
        result.outcome = ClaimOutcome.SUBMITTED
        result.tx_hash = tx_hash
        return result

    async def _run(self, vouchers: Iterable[StoredVoucher], *, force: bool) -> ClaimReport:
        report = ClaimReport()
        for voucher in vouchers:
            report.results.append(await self._claim_voucher(voucher, force=force))
        return report

    async def claim_channel(
        self, channel_id: str, *, force: bool = False
    ) -> Optional[ClaimResult]:
        """Claim one channel's highest unclaimed voucher, if it has one."""
        async with self._pass_lock:
            voucher = (await self.repository.highest_per_channel()).get(channel_id)
            if voucher is None:
                return None
            return await self._claim_voucher(voucher, force=force)

    async def claim_all(self, *, force: bool = False) -> ClaimReport:
        """Claim every channel whose highest voucher meets the threshold.

        With ``force`` the threshold is ignored.
        """
        async with self._pass_lock:
            highest = await self.repository.highest_per_channel()
            report = await self._run(highest.values(), force=force)
        if report.attempted:
            logger.info(
                "Claim pass: %d submitted, %d failed",
                len(report.tx_hashes),
                len(report.failed),
            )
        return report

    async def claim_expiring(
        self, buffer_seconds: int, *, now: Optional[int] = None
    ) -> ClaimReport:
        """Claim channels expiring within ``buffer_seconds``, regardless of threshold.

        After expiry the consumer can reclaim the deposit, so a small claim
        now beats losing it entirely.
        """
        now = int(self.clock()) if now is None else now
        async with self._pass_lock:
            highest = await self.repository.highest_per_channel()
            due: List[StoredVoucher] = []
            for channel_id, voucher in highest.items():
                if voucher.amount <= 0:
                    continue
                state = await self.ledger.get(channel_id)
                if state is None:
                    continue
                remaining = state.seconds_until_expiry(now)
                if remaining is None or remaining > buffer_seconds:
                    continue
                logger.info(
                    "Channel %s expires in %ds, claiming %s",
                    channel_id,
                    remaining,
                    voucher.amount,
                )
                due.append(voucher)
            return await self._run(due, force=True)
