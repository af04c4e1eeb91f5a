"""Pure validation functions for voucher processing.

These functions contain business logic validation rules that can be tested
in isolation without dependencies on repositories or infrastructure. They run
in the order the validation service calls them and each raises
VoucherRejected with its own reason.
"""

from __future__ import annotations

from typing import Optional

from ....domain.errors import VoucherRejected
from ....domain.provider.entities import ZERO_ADDRESS, RejectReason


def validate_channel_exists(consumer: str) -> None:
    """The contract returns a zero consumer for channels it does not know.

    Raises:
        VoucherRejected: channel_not_found.
    """
    if not consumer or consumer.lower() == ZERO_ADDRESS:
        raise VoucherRejected(RejectReason.CHANNEL_NOT_FOUND)


def validate_provider_ownership(channel_provider: str, provider_address: str) -> None:
    """Validate that the channel pays this provider.

    Raises:
        VoucherRejected: wrong_provider.
    """
    if channel_provider.lower() != provider_address.lower():
        raise VoucherRejected(
            RejectReason.WRONG_PROVIDER,
            f"Channel pays {channel_provider}, not {provider_address}",
        )


def validate_sufficient_amount(
    amount: int, total_charged: int, required_charge: int
) -> None:
    """The new cumulative amount must cover everything charged so far plus this charge.

    Boundary is inclusive: ``amount == total_charged + required_charge`` passes.

    Raises:
        VoucherRejected: insufficient_funds.
    """
    expected_total = total_charged + required_charge
    if amount < expected_total:
        raise VoucherRejected(
            RejectReason.INSUFFICIENT_FUNDS,
            f"Voucher amount {amount} below required total {expected_total}",
        )


def validate_within_deposit(amount: int, deposit: int) -> None:
    """Never accept a voucher the escrow cannot pay out.

    Raises:
        VoucherRejected: exceeds_deposit.
    """
    if amount > deposit:
        raise VoucherRejected(
            RejectReason.EXCEEDS_DEPOSIT,
            f"Voucher amount {amount} exceeds channel deposit {deposit}",
        )


def validate_nonce(nonce: int, last_nonce: Optional[int]) -> None:
    """Nonces are strictly increasing per channel, whatever the amount.

    Raises:
        VoucherRejected: invalid_nonce.
    """
    if last_nonce is not None and nonce <= last_nonce:
        raise VoucherRejected(
            RejectReason.INVALID_NONCE,
            f"Nonce must be increasing. Got {nonce}, expected > {last_nonce}",
        )


def validate_signature(is_valid: bool) -> None:
    if not is_valid:
        raise VoucherRejected(RejectReason.INVALID_SIGNATURE)


def chargeable_amount(deposit: int, total_charged: int, cost: int) -> int:
    """Portion of ``cost`` the channel can still carry.

    The full cost is charged even when it runs past the voucher amount; the
    shortfall raises the total the next voucher must cover. Only the deposit
    caps it.
    """
    if cost < 0:
        raise ValueError("cost must be non-negative")
    return min(cost, max(deposit - total_charged, 0))
