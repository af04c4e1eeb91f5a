"""Use case tests for VoucherValidationService using in-memory collaborators."""

from __future__ import annotations

from typing import Callable

import pytest
from eth_account.signers.local import LocalAccount

from drain_provider.application.provider.use_cases.ledger import ChannelLedger
from drain_provider.application.provider.use_cases.validation import (
    VoucherValidationService,
)
from drain_provider.domain.provider.entities import RejectReason, Voucher
from tests.conftest import STRANGER_KEY
from tests.fixtures import FakeChannelContract

DEPOSIT = 10_000_000
COST = 500_000


@pytest.fixture
def open_channel(
    contract: FakeChannelContract,
    consumer_account: LocalAccount,
    channel_id: str,
) -> None:
    contract.open_channel(channel_id, consumer_account.address, DEPOSIT, expiry=2_000_000_000)


@pytest.mark.usefixtures("open_channel")
async def test_first_voucher_accepted_and_channel_hydrated(
    validation_service: VoucherValidationService,
    make_voucher: Callable[..., Voucher],
    consumer_account: LocalAccount,
) -> None:
    result = await validation_service.validate(make_voucher(COST, 1), COST)

    assert result.accepted
    assert result.reject_reason is None
    assert result.channel is not None
    assert result.channel.total_charged == 0
    assert result.channel.deposit == DEPOSIT
    assert result.channel.consumer == consumer_account.address
    assert result.channel.expiry == 2_000_000_000


@pytest.mark.usefixtures("open_channel")
async def test_validation_does_not_touch_ledger(
    validation_service: VoucherValidationService,
    ledger: ChannelLedger,
    make_voucher: Callable[..., Voucher],
    channel_id: str,
) -> None:
    """Two validations of the same voucher both pass until one is committed."""
    voucher = make_voucher(COST, 1)
    first = await validation_service.validate(voucher, COST)
    second = await validation_service.validate(voucher, COST)

    assert first.accepted and second.accepted
    assert await ledger.repository.get_channel(channel_id) is None
    assert await ledger.repository.count_vouchers() == 0


@pytest.mark.usefixtures("open_channel")
async def test_cumulative_voucher_must_cover_previous_charges(
    validation_service: VoucherValidationService,
    ledger: ChannelLedger,
    make_voucher: Callable[..., Voucher],
) -> None:
    first = make_voucher(COST, 1)
    accepted = await validation_service.validate(first, COST)
    await ledger.commit(first, accepted.channel, COST)

    # Reusing the same cumulative amount with a fresh nonce does not pay again
    stale_amount = await validation_service.validate(make_voucher(COST, 2), COST)
    assert not stale_amount.accepted
    assert stale_amount.reject_reason == RejectReason.INSUFFICIENT_FUNDS
    assert stale_amount.channel.total_charged == COST

    # Exactly the boundary is enough
    boundary = await validation_service.validate(make_voucher(2 * COST, 2), COST)
    assert boundary.accepted


@pytest.mark.usefixtures("open_channel")
async def test_one_below_boundary_rejected(
    validation_service: VoucherValidationService,
    ledger: ChannelLedger,
    make_voucher: Callable[..., Voucher],
) -> None:
    first = make_voucher(1000, 1)
    accepted = await validation_service.validate(first, 1000)
    await ledger.commit(first, accepted.channel, 1000)

    result = await validation_service.validate(make_voucher(1499, 2), 500)
    assert result.reject_reason == RejectReason.INSUFFICIENT_FUNDS


@pytest.mark.usefixtures("open_channel")
async def test_replayed_nonce_rejected(
    validation_service: VoucherValidationService,
    ledger: ChannelLedger,
    make_voucher: Callable[..., Voucher],
) -> None:
    first = make_voucher(COST, 5)
    accepted = await validation_service.validate(first, COST)
    await ledger.commit(first, accepted.channel, COST)

    # Higher amount but an old nonce
    result = await validation_service.validate(make_voucher(3 * COST, 5), COST)
    assert not result.accepted
    assert result.reject_reason == RejectReason.INVALID_NONCE


@pytest.mark.usefixtures("open_channel")
async def test_amount_above_deposit_rejected(
    validation_service: VoucherValidationService,
    make_voucher: Callable[..., Voucher],
) -> None:
    result = await validation_service.validate(make_voucher(DEPOSIT + 1, 1), COST)
    assert result.reject_reason == RejectReason.EXCEEDS_DEPOSIT


@pytest.mark.usefixtures("open_channel")
async def test_signature_from_wrong_key_rejected(
    validation_service: VoucherValidationService,
    make_voucher: Callable[..., Voucher],
) -> None:
    result = await validation_service.validate(
        make_voucher(COST, 1, key=STRANGER_KEY), COST
    )
    assert not result.accepted
    assert result.reject_reason == RejectReason.INVALID_SIGNATURE


@pytest.mark.usefixtures("open_channel")
async def test_signature_over_different_amount_rejected(
    validation_service: VoucherValidationService,
    make_voucher: Callable[..., Voucher],
) -> None:
    signed = make_voucher(COST, 1)
    tampered = signed.model_copy(update={"amount": 2 * COST})
    result = await validation_service.validate(tampered, COST)
    assert result.reject_reason == RejectReason.INVALID_SIGNATURE


async def test_unknown_channel_rejected(
    validation_service: VoucherValidationService,
    make_voucher: Callable[..., Voucher],
) -> None:
    result = await validation_service.validate(make_voucher(COST, 1), COST)
    assert result.reject_reason == RejectReason.CHANNEL_NOT_FOUND


async def test_channel_for_other_provider_rejected(
    validation_service: VoucherValidationService,
    contract: FakeChannelContract,
    consumer_account: LocalAccount,
    stranger_account: LocalAccount,
    make_voucher: Callable[..., Voucher],
    channel_id: str,
) -> None:
    contract.open_channel(
        channel_id, consumer_account.address, DEPOSIT, provider=stranger_account.address
    )
    result = await validation_service.validate(make_voucher(COST, 1), COST)
    assert result.reject_reason == RejectReason.WRONG_PROVIDER


async def test_unreachable_chain_rejects_instead_of_accepting(
    validation_service: VoucherValidationService,
    contract: FakeChannelContract,
    consumer_account: LocalAccount,
    make_voucher: Callable[..., Voucher],
    channel_id: str,
) -> None:
    contract.open_channel(channel_id, consumer_account.address, DEPOSIT)
    contract.read_errors[channel_id] = "getChannel timed out after 30s"

    result = await validation_service.validate(make_voucher(COST, 1), COST)
    assert not result.accepted
    assert result.reject_reason == RejectReason.CHAIN_UNAVAILABLE


@pytest.mark.usefixtures("open_channel")
async def test_known_channel_not_read_from_chain_again(
    validation_service: VoucherValidationService,
    ledger: ChannelLedger,
    contract: FakeChannelContract,
    make_voucher: Callable[..., Voucher],
    channel_id: str,
) -> None:
    first = make_voucher(COST, 1)
    accepted = await validation_service.validate(first, COST)
    await ledger.commit(first, accepted.channel, COST)
    reads_before = len(contract.reads)

    # A chain outage no longer matters once the channel is in the ledger
    contract.read_errors[channel_id] = "rpc down"
    result = await validation_service.validate(make_voucher(2 * COST, 2), COST)

    assert result.accepted
    assert len(contract.reads) == reads_before


async def test_checks_run_in_documented_order(
    validation_service: VoucherValidationService,
    contract: FakeChannelContract,
    consumer_account: LocalAccount,
    make_voucher: Callable[..., Voucher],
    channel_id: str,
) -> None:
    """Insufficient amount is reported before the deposit or signature checks."""
    contract.open_channel(channel_id, consumer_account.address, 100)
    voucher = make_voucher(50, 1, key=STRANGER_KEY)
    result = await validation_service.validate(voucher, 60)
    assert result.reject_reason == RejectReason.INSUFFICIENT_FUNDS

    over_deposit = make_voucher(150, 1, key=STRANGER_KEY)
    result = await validation_service.validate(over_deposit, 60)
    assert result.reject_reason == RejectReason.EXCEEDS_DEPOSIT


async def test_negative_required_charge_is_a_caller_error(
    validation_service: VoucherValidationService,
    make_voucher: Callable[..., Voucher],
) -> None:
    with pytest.raises(ValueError):
        await validation_service.validate(make_voucher(COST, 1), -1)


@pytest.mark.usefixtures("open_channel")
async def test_rejected_first_voucher_leaves_no_channel_behind(
    validation_service: VoucherValidationService,
    ledger: ChannelLedger,
    make_voucher: Callable[..., Voucher],
    channel_id: str,
) -> None:
    accepted = await validation_service.validate(make_voucher(COST, 1), COST)
    assert accepted.accepted
    assert await ledger.get(channel_id) is not None

    rejected = await validation_service.validate(make_voucher(COST, 1, key=STRANGER_KEY), COST)

    assert rejected.reject_reason == RejectReason.INVALID_SIGNATURE
    assert await ledger.get(channel_id) is None
