"""Data Transfer Objects for the provider application layer."""

from __future__ import annotations

import json
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from ...domain.provider.entities import (
    ChannelState,
    ClaimOutcome,
    RejectReason,
    StoredVoucher,
    Voucher,
)


class CamelModel(BaseModel):
    """Response model rendered with camelCase keys, as DRAIN clients expect."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VoucherHeaderDTO(BaseModel):
    """Wire form of the ``X-DRAIN-Voucher`` header."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "channelId": "0x" + "ab" * 32,
                "amount": "100000",
                "nonce": "1",
                "signature": "0x" + "00" * 65,
            }
        }
    )

    channel_id: str = Field(..., alias="channelId", min_length=1)
    amount: int = Field(..., ge=0)
    nonce: int = Field(..., ge=0)
    signature: str = Field(..., min_length=1)

    def to_voucher(self) -> Voucher:
        return Voucher(
            channel_id=self.channel_id,
            amount=self.amount,
            nonce=self.nonce,
            signature=self.signature,
        )


def parse_voucher_header(value: Optional[str]) -> Optional[Voucher]:
    """Parse an ``X-DRAIN-Voucher`` header. Returns None for anything malformed."""
    if not value:
        return None
    try:
        raw = json.loads(value)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(raw, dict):
        return None
    # Integers may arrive as JSON numbers or decimal strings; reject floats and bools
    for field in ("amount", "nonce"):
        item = raw.get(field)
        if isinstance(item, bool) or isinstance(item, float):
            return None
        if isinstance(item, str):
            if not (item.isascii() and item.isdigit()):
                return None
            raw[field] = int(item)
    try:
        return VoucherHeaderDTO.model_validate(raw).to_voucher()
    except ValidationError:
        return None


class ValidationResult(BaseModel):
    """Outcome of validating a voucher against a required charge."""

    accepted: bool
    voucher: Optional[Voucher] = None
    channel: Optional[ChannelState] = None
    reject_reason: Optional[RejectReason] = None
    detail: Optional[str] = None

    @classmethod
    def accept(cls, voucher: Voucher, channel: ChannelState) -> "ValidationResult":
        return cls(accepted=True, voucher=voucher, channel=channel)

    @classmethod
    def reject(
        cls,
        reason: RejectReason,
        *,
        voucher: Optional[Voucher] = None,
        channel: Optional[ChannelState] = None,
        detail: Optional[str] = None,
    ) -> "ValidationResult":
        return cls(
            accepted=False,
            voucher=voucher,
            channel=channel,
            reject_reason=reason,
            detail=detail,
        )


class ClaimResult(BaseModel):
    """What happened to one channel's highest voucher during a claim pass."""

    channel_id: str
    amount: int
    nonce: int
    outcome: ClaimOutcome
    tx_hash: Optional[str] = None
    error: Optional[str] = None


class ClaimReport(BaseModel):
    """Aggregate of a claim pass."""

    results: List[ClaimResult] = Field(default_factory=list)

    @property
    def tx_hashes(self) -> List[str]:
        return [
            r.tx_hash
            for r in self.results
            if r.outcome == ClaimOutcome.SUBMITTED and r.tx_hash
        ]

    @property
    def attempted(self) -> int:
        return sum(
            1
            for r in self.results
            if r.outcome
            in (
                ClaimOutcome.SUBMITTED,
                ClaimOutcome.PERMANENT_FAILURE,
                ClaimOutcome.TRANSIENT_FAILURE,
            )
        )

    @property
    def failed(self) -> List[ClaimResult]:
        return [
            r
            for r in self.results
            if r.outcome
            in (ClaimOutcome.PERMANENT_FAILURE, ClaimOutcome.TRANSIENT_FAILURE)
        ]


class ClaimResponseDTO(CamelModel):
    """DTO returned by manual claim triggers."""

    claimed: int
    attempted: int
    transactions: List[str]
    failed: List[ClaimResult]
    forced: bool = False


class StatsDTO(CamelModel):
    """DTO for provider statistics."""

    total_vouchers: int
    unclaimed_count: int
    active_channels: int
    total_earned: str
    provider: str
    provider_name: str
    chain_id: int
    claim_threshold: str


class VoucherResponseDTO(CamelModel):
    """DTO for returning an unclaimed voucher."""

    channel_id: str
    amount: str
    nonce: str
    consumer: str
    claimed: bool
    received_at: datetime

    @classmethod
    def from_entity(cls, voucher: StoredVoucher) -> "VoucherResponseDTO":
        return cls(
            channel_id=voucher.channel_id,
            amount=str(voucher.amount),
            nonce=str(voucher.nonce),
            consumer=voucher.consumer,
            claimed=voucher.claimed,
            received_at=voucher.received_at,
        )


class VoucherListResponseDTO(CamelModel):
    unclaimed_count: int
    channels: List[VoucherResponseDTO]


class ChannelResponseDTO(CamelModel):
    """DTO for returning the ledger view of a channel."""

    channel_id: str
    consumer: str
    deposit: str
    total_charged: str
    remaining: str
    expiry: int
    last_nonce: Optional[str]
    last_activity_at: datetime

    @classmethod
    def from_entity(cls, state: ChannelState) -> "ChannelResponseDTO":
        return cls(
            channel_id=state.channel_id,
            consumer=state.consumer,
            deposit=str(state.deposit),
            total_charged=str(state.total_charged),
            remaining=str(state.remaining),
            expiry=state.expiry,
            last_nonce=str(state.last_nonce) if state.last_nonce is not None else None,
            last_activity_at=state.last_activity_at,
        )


class PricingResponseDTO(CamelModel):
    provider: str
    provider_name: str
    chain_id: int
    currency: str = "USDC"
    decimals: int
    price_per_request: str
