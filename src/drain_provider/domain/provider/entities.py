"""Provider domain entities: Voucher, StoredVoucher, ChannelState and OnChainChannel."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ..shared.serializers import AmountSerializerMixin, DatetimeSerializerMixin

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_channel_id(value: str) -> str:
    """Lower-case a 0x-prefixed 32-byte hex identifier, rejecting anything else."""
    if not isinstance(value, str):
        raise ValueError("channel id must be a string")
    candidate = value.strip().lower()
    if not candidate.startswith("0x") or len(candidate) != 66:
        raise ValueError("channel id must be a 0x-prefixed 32-byte hex string")
    try:
        int(candidate[2:], 16)
    except ValueError as e:
        raise ValueError("channel id must be hex encoded") from e
    return candidate


class RejectReason(str, Enum):
    """Machine-readable reasons a voucher is refused."""

    CHANNEL_NOT_FOUND = "channel_not_found"
    WRONG_PROVIDER = "wrong_provider"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    EXCEEDS_DEPOSIT = "exceeds_deposit"
    INVALID_NONCE = "invalid_nonce"
    INVALID_SIGNATURE = "invalid_signature"
    CHAIN_UNAVAILABLE = "chain_unavailable"
    VOUCHER_REQUIRED = "voucher_required"
    INVALID_VOUCHER_FORMAT = "invalid_voucher_format"


class ClaimOutcome(str, Enum):
    """What happened to one channel during a claim pass."""

    SUBMITTED = "submitted"
    ALREADY_SETTLED = "already_settled"
    BELOW_THRESHOLD = "below_threshold"
    PERMANENT_FAILURE = "permanent_failure"
    TRANSIENT_FAILURE = "transient_failure"


class Voucher(AmountSerializerMixin, BaseModel):
    """Signed cumulative spending authorization produced by a consumer."""

    channel_id: str
    amount: int = Field(..., ge=0, description="Cumulative amount authorized")
    nonce: int = Field(..., ge=0, description="Per-channel ordering counter")
    signature: str

    @field_validator("channel_id")
    @classmethod
    def validate_channel_id(cls, v: str) -> str:
        return normalize_channel_id(v)

    @field_validator("signature")
    @classmethod
    def validate_signature(cls, v: str) -> str:
        if not v.startswith("0x") or len(v) < 4:
            raise ValueError("signature must be 0x-prefixed hex")
        return v


class StoredVoucher(DatetimeSerializerMixin, Voucher):
    """Durable voucher record. Only the claimed flag ever changes after append."""

    consumer: str
    received_at: datetime = Field(default_factory=_utcnow)
    claimed: bool = False
    claimed_at: Optional[datetime] = None
    claim_tx_hash: Optional[str] = None

    @property
    def storage_member(self) -> str:
        return f"{self.channel_id}:{self.nonce}"

    def mark_claimed(self, tx_hash: Optional[str]) -> None:
        """Flag the voucher as settled (or dead-lettered when tx_hash is None)."""
        self.claimed = True
        self.claimed_at = _utcnow()
        self.claim_tx_hash = tx_hash


class ChannelState(DatetimeSerializerMixin, AmountSerializerMixin, BaseModel):
    """Local ledger view of one channel."""

    channel_id: str
    consumer: str
    provider: str = ""
    deposit: int = Field(..., ge=0)
    total_charged: int = Field(default=0, ge=0)
    expiry: int = Field(default=0, description="Unix timestamp, 0 when unknown")
    last_voucher: Optional[StoredVoucher] = None
    created_at: datetime = Field(default_factory=_utcnow)
    last_activity_at: datetime = Field(default_factory=_utcnow)

    @property
    def last_nonce(self) -> Optional[int]:
        return self.last_voucher.nonce if self.last_voucher else None

    @property
    def remaining(self) -> int:
        return self.deposit - self.total_charged

    def seconds_until_expiry(self, now: int) -> Optional[int]:
        if not self.expiry:
            return None
        return self.expiry - now


class OnChainChannel(BaseModel):
    """Channel record as returned by the contract's getChannel view."""

    consumer: str
    provider: str
    deposit: int
    claimed: int = 0
    expiry: int = 0
