"""Shared Pydantic serializers used across entities and DTOs."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import field_serializer


class DatetimeSerializerMixin:
    """Serialize common datetime fields consistently."""

    @field_serializer("received_at", "created_at", "last_activity_at", check_fields=False)
    def serialize_datetime(self, value: datetime) -> str:
        return value.isoformat()

    @field_serializer("claimed_at", check_fields=False)
    def serialize_claimed_at(self, value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None


class AmountSerializerMixin:
    """Serialize on-chain integers as decimal strings in JSON.

    uint256 values do not fit in a JSON number (nor in a Lua double), so every
    amount-like field is written as a string. Validation accepts both forms.
    """

    @field_serializer(
        "amount",
        "nonce",
        "deposit",
        "total_charged",
        when_used="json",
        check_fields=False,
    )
    def serialize_amount(self, value: int) -> str:
        return str(value)
