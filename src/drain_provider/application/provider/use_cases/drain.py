"""Provider-facing facade over validation, ledger, claims and stats."""

from __future__ import annotations

from typing import List, Optional

from ....domain.provider.entities import ChannelState, RejectReason, Voucher
from ....domain.provider.voucher_repository import VoucherRepository
from ..dtos import (
    ClaimReport,
    StatsDTO,
    ValidationResult,
    VoucherListResponseDTO,
    VoucherResponseDTO,
    parse_voucher_header,
)
from .claim import ClaimSubmitter
from .ledger import ChannelLedger
from .validation import VoucherValidationService


class DrainService:
    """Single entry point the HTTP layer uses to get paid.

    A request handler calls ``validate_and_reserve`` with the raw voucher
    header and its estimated cost, does the work, then calls ``commit`` with
    what the work actually cost.
    """

    def __init__(
        self,
        repository: VoucherRepository,
        ledger: ChannelLedger,
        validation_service: VoucherValidationService,
        submitter: ClaimSubmitter,
        *,
        provider_address: str,
        provider_name: str,
        chain_id: int,
        claim_threshold: int,
    ):
        self.repository = repository
        self.ledger = ledger
        self.validation_service = validation_service
        self.submitter = submitter
        self.provider_address = provider_address
        self.provider_name = provider_name
        self.chain_id = chain_id
        self.claim_threshold = claim_threshold

    async def validate_and_reserve(
        self, header_value: Optional[str], required_charge: int
    ) -> ValidationResult:
        """Parse and validate a voucher header without changing the ledger."""
        if not header_value:
            return ValidationResult.reject(RejectReason.VOUCHER_REQUIRED)
        voucher = parse_voucher_header(header_value)
        if voucher is None:
            return ValidationResult.reject(RejectReason.INVALID_VOUCHER_FORMAT)
        return await self.validation_service.validate(voucher, required_charge)

    async def commit(
        self, voucher: Voucher, channel: ChannelState, cost: int
    ) -> ChannelState:
        return await self.ledger.commit(voucher, channel, cost)

    async def claim(self, *, force: bool = False) -> ClaimReport:
        return await self.submitter.claim_all(force=force)

    async def claim_expiring(self, buffer_seconds: int = 3600) -> ClaimReport:
        return await self.submitter.claim_expiring(buffer_seconds)

    async def trigger_claim(self, force: bool = False) -> List[str]:
        """Claim every eligible channel and return the transaction hashes."""
        return (await self.claim(force=force)).tx_hashes

    async def trigger_expiring_claims(self, buffer_seconds: int = 3600) -> List[str]:
        return (await self.claim_expiring(buffer_seconds)).tx_hashes

    async def get_channel(self, channel_id: str) -> Optional[ChannelState]:
        return await self.repository.get_channel(channel_id)

    async def unclaimed_vouchers(self) -> VoucherListResponseDTO:
        highest = await self.repository.highest_per_channel()
        return VoucherListResponseDTO(
            unclaimed_count=await self.repository.count_unclaimed(),
            channels=[VoucherResponseDTO.from_entity(v) for v in highest.values()],
        )

    async def stats(self) -> StatsDTO:
        return StatsDTO(
            total_vouchers=await self.repository.count_vouchers(),
            unclaimed_count=await self.repository.count_unclaimed(),
            active_channels=await self.repository.count_channels(),
            total_earned=str(await self.repository.total_earned()),
            provider=self.provider_address,
            provider_name=self.provider_name,
            chain_id=self.chain_id,
            claim_threshold=str(self.claim_threshold),
        )
