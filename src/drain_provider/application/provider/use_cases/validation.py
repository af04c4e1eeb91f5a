"""Voucher validation use case."""

from __future__ import annotations

import logging
from typing import Optional

from ....domain.errors import ChainCallError, VoucherRejected
from ....domain.provider.entities import ChannelState, RejectReason, Voucher
from ....domain.shared import VoucherSignatureVerifier
from ..dtos import ValidationResult
from .ledger import ChannelLedger
from .voucher_validators import (
    validate_channel_exists,
    validate_nonce,
    validate_provider_ownership,
    validate_signature,
    validate_sufficient_amount,
    validate_within_deposit,
)

logger = logging.getLogger(__name__)


class VoucherValidationService:
    """Decides whether a voucher pays for a request.

    Rejections are returned, never raised. Validation does not modify the
    ledger; a voucher only counts once it is committed.
    """

    def __init__(
        self,
        ledger: ChannelLedger,
        verifier: VoucherSignatureVerifier,
        provider_address: str,
    ):
        self.ledger = ledger
        self.verifier = verifier
        self.provider_address = provider_address

    async def _resolve_channel(
        self, channel_id: str, state: Optional[ChannelState]
    ) -> ChannelState:
        on_chain = await self.ledger.read_chain(channel_id)
        validate_channel_exists(on_chain.consumer)
        validate_provider_ownership(on_chain.provider, self.provider_address)
        return self.ledger.seed(channel_id, on_chain, existing=state)

    async def validate(
        self, voucher: Voucher, required_charge: int
    ) -> ValidationResult:
        if required_charge < 0:
            raise ValueError("required_charge must be non-negative")

        state: Optional[ChannelState] = None
        try:
            state = await self.ledger.get(voucher.channel_id)
            # Channels persisted before the provider was recorded are re-read once
            if state is None or not state.provider:
                try:
                    state = await self._resolve_channel(voucher.channel_id, state)
                except ChainCallError as e:
                    logger.warning(
                        "Channel %s could not be read from chain: %s",
                        voucher.channel_id,
                        e,
                    )
                    return ValidationResult.reject(
                        RejectReason.CHAIN_UNAVAILABLE,
                        voucher=voucher,
                        detail=str(e),
                    )
            else:
                validate_provider_ownership(state.provider, self.provider_address)

            validate_sufficient_amount(
                voucher.amount, state.total_charged, required_charge
            )
            validate_within_deposit(voucher.amount, state.deposit)
            validate_nonce(voucher.nonce, state.last_nonce)
            validate_signature(
                self.verifier.verify(
                    state.consumer,
                    voucher.channel_id,
                    voucher.amount,
                    voucher.nonce,
                    voucher.signature,
                )
            )
        except VoucherRejected as e:
            logger.info(
                "Rejected voucher for %s nonce=%s: %s",
                voucher.channel_id,
                voucher.nonce,
                e.reason.value,
            )
            self.ledger.forget(voucher.channel_id)
            return ValidationResult.reject(
                e.reason, voucher=voucher, channel=state, detail=str(e)
            )

        return ValidationResult.accept(voucher, state)
