"""Use case tests for ClaimSubmitter."""

from __future__ import annotations

from typing import Callable

import pytest
from eth_account.signers.local import LocalAccount

from drain_provider.application.provider.use_cases.claim import (
    ClaimSubmitter,
    is_permanent_claim_error,
)
from drain_provider.application.provider.use_cases.ledger import ChannelLedger
from drain_provider.application.provider.use_cases.validation import (
    VoucherValidationService,
)
from drain_provider.domain.provider.entities import ClaimOutcome, Voucher
from drain_provider.infrastructure.provider.voucher_repository_impl import (
    VoucherRepositoryImpl,
)
from tests.conftest import CLAIM_THRESHOLD
from tests.fixtures import FakeChannelContract

DEPOSIT = 10_000_000
OTHER_CHANNEL = "0x" + "cd" * 32


@pytest.fixture
def pay(
    validation_service: VoucherValidationService,
    ledger: ChannelLedger,
    make_voucher: Callable[..., Voucher],
):
    """Validate and commit a voucher worth ``amount`` cumulative."""

    async def _pay(amount: int, nonce: int, cost: int, channel: str | None = None):
        voucher = make_voucher(amount, nonce, channel=channel)
        result = await validation_service.validate(voucher, cost)
        assert result.accepted, result.reject_reason
        return await ledger.commit(voucher, result.channel, cost)

    return _pay


@pytest.fixture(autouse=True)
def open_channels(
    contract: FakeChannelContract,
    consumer_account: LocalAccount,
    channel_id: str,
) -> None:
    contract.open_channel(channel_id, consumer_account.address, DEPOSIT, expiry=2_000_000_000)
    contract.open_channel(OTHER_CHANNEL, consumer_account.address, DEPOSIT, expiry=2_000_000_000)


def test_permanent_error_classification() -> None:
    for name in ("InvalidAmount", "ChannelNotFound", "InvalidSignature", "NotProvider", "NotExpired"):
        assert is_permanent_claim_error(name)
    assert not is_permanent_claim_error("TransferFailed")
    assert not is_permanent_claim_error(None)


async def test_claims_only_highest_voucher_above_threshold(
    claim_submitter: ClaimSubmitter,
    contract: FakeChannelContract,
    voucher_repository: VoucherRepositoryImpl,
    pay,
    channel_id: str,
) -> None:
    await pay(600_000, 1, 600_000)
    await pay(1_200_000, 2, 600_000)
    await pay(100_000, 1, 100_000, channel=OTHER_CHANNEL)

    report = await claim_submitter.claim_all()

    assert contract.claims_for(channel_id) == [(1_200_000, 2)]
    assert contract.claims_for(OTHER_CHANNEL) == []
    assert len(report.tx_hashes) == 1
    outcomes = {r.channel_id: r.outcome for r in report.results}
    assert outcomes[channel_id] == ClaimOutcome.SUBMITTED
    assert outcomes[OTHER_CHANNEL] == ClaimOutcome.BELOW_THRESHOLD

    # Both vouchers of the claimed channel are settled, the small one is not
    remaining = await voucher_repository.list_unclaimed()
    assert [(v.channel_id, v.nonce) for v in remaining] == [(OTHER_CHANNEL, 1)]
    state = await voucher_repository.get_channel(channel_id)
    assert state.last_voucher.claimed
    assert state.last_voucher.claim_tx_hash == report.tx_hashes[0]


async def test_force_ignores_threshold(
    claim_submitter: ClaimSubmitter,
    contract: FakeChannelContract,
    pay,
) -> None:
    await pay(100_000, 1, 100_000, channel=OTHER_CHANNEL)

    report = await claim_submitter.claim_all(force=True)

    assert contract.claims_for(OTHER_CHANNEL) == [(100_000, 1)]
    assert report.attempted == 1


async def test_second_claim_pass_submits_nothing(
    claim_submitter: ClaimSubmitter,
    contract: FakeChannelContract,
    pay,
) -> None:
    await pay(CLAIM_THRESHOLD, 1, CLAIM_THRESHOLD)

    first = await claim_submitter.claim_all()
    second = await claim_submitter.claim_all()

    assert len(first.tx_hashes) == 1
    assert second.tx_hashes == []
    assert len(contract.submitted) == 1


async def test_permanent_failure_dead_letters_voucher(
    claim_submitter: ClaimSubmitter,
    contract: FakeChannelContract,
    voucher_repository: VoucherRepositoryImpl,
    pay,
    channel_id: str,
) -> None:
    await pay(CLAIM_THRESHOLD, 1, CLAIM_THRESHOLD)
    contract.claim_errors[channel_id] = "InvalidAmount"

    report = await claim_submitter.claim_all()

    assert report.tx_hashes == []
    assert report.failed[0].outcome == ClaimOutcome.PERMANENT_FAILURE
    assert report.failed[0].error == "InvalidAmount"
    assert await voucher_repository.list_unclaimed() == []
    state = await voucher_repository.get_channel(channel_id)
    assert state.last_voucher.claimed
    assert state.last_voucher.claim_tx_hash is None

    # Never retried
    del contract.claim_errors[channel_id]
    assert (await claim_submitter.claim_all()).attempted == 0


async def test_transient_failure_stays_claimable(
    claim_submitter: ClaimSubmitter,
    contract: FakeChannelContract,
    voucher_repository: VoucherRepositoryImpl,
    pay,
    channel_id: str,
) -> None:
    await pay(CLAIM_THRESHOLD, 1, CLAIM_THRESHOLD)
    contract.claim_errors[channel_id] = None

    report = await claim_submitter.claim_all()

    assert report.failed[0].outcome == ClaimOutcome.TRANSIENT_FAILURE
    assert len(await voucher_repository.list_unclaimed()) == 1

    # Next pass succeeds
    del contract.claim_errors[channel_id]
    retry = await claim_submitter.claim_all()
    assert len(retry.tx_hashes) == 1
    assert await voucher_repository.list_unclaimed() == []


async def test_unknown_revert_is_transient(
    claim_submitter: ClaimSubmitter,
    contract: FakeChannelContract,
    voucher_repository: VoucherRepositoryImpl,
    pay,
    channel_id: str,
) -> None:
    await pay(CLAIM_THRESHOLD, 1, CLAIM_THRESHOLD)
    contract.claim_errors[channel_id] = "TransferFailed"

    report = await claim_submitter.claim_all()

    assert report.failed[0].outcome == ClaimOutcome.TRANSIENT_FAILURE
    assert len(await voucher_repository.list_unclaimed()) == 1


async def test_zero_balance_marks_claimed_without_transaction(
    claim_submitter: ClaimSubmitter,
    contract: FakeChannelContract,
    voucher_repository: VoucherRepositoryImpl,
    pay,
    channel_id: str,
) -> None:
    await pay(CLAIM_THRESHOLD, 1, CLAIM_THRESHOLD)
    contract.balances[channel_id] = 0

    report = await claim_submitter.claim_all()

    assert contract.submitted == []
    assert report.results[0].outcome == ClaimOutcome.ALREADY_SETTLED
    assert await voucher_repository.list_unclaimed() == []


async def test_balance_check_failure_still_submits(
    claim_submitter: ClaimSubmitter,
    contract: FakeChannelContract,
    pay,
    channel_id: str,
) -> None:
    await pay(CLAIM_THRESHOLD, 1, CLAIM_THRESHOLD)
    contract.balance_errors[channel_id] = "getBalance timed out"

    report = await claim_submitter.claim_all()

    assert len(report.tx_hashes) == 1


async def test_voucher_committed_during_claim_stays_unclaimed(
    claim_submitter: ClaimSubmitter,
    contract: FakeChannelContract,
    voucher_repository: VoucherRepositoryImpl,
    pay,
    channel_id: str,
) -> None:
    """Only vouchers up to the claimed nonce are settled."""
    await pay(CLAIM_THRESHOLD, 1, CLAIM_THRESHOLD)
    original_submit = contract.submit_claim

    async def submit_then_receive_payment(*args):
        tx_hash = await original_submit(*args)
        await pay(CLAIM_THRESHOLD + 5000, 2, 5000)
        return tx_hash

    contract.submit_claim = submit_then_receive_payment

    await claim_submitter.claim_all()

    remaining = await voucher_repository.list_unclaimed()
    assert [v.nonce for v in remaining] == [2]


async def test_claim_channel(
    claim_submitter: ClaimSubmitter,
    contract: FakeChannelContract,
    pay,
    channel_id: str,
) -> None:
    assert await claim_submitter.claim_channel(channel_id) is None

    await pay(200_000, 1, 200_000)
    below = await claim_submitter.claim_channel(channel_id)
    assert below.outcome == ClaimOutcome.BELOW_THRESHOLD

    forced = await claim_submitter.claim_channel(channel_id, force=True)
    assert forced.outcome == ClaimOutcome.SUBMITTED
    assert contract.claims_for(channel_id) == [(200_000, 1)]
