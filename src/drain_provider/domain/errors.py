"""Domain-specific exceptions."""

from __future__ import annotations

from typing import Optional

from .provider.entities import RejectReason


class VoucherRejected(Exception):
    """Raised by voucher validators when a voucher cannot be accepted."""

    def __init__(self, reason: RejectReason, message: Optional[str] = None):
        self.reason = reason
        super().__init__(message or reason.value)


class ChainCallError(Exception):
    """Raised when an on-chain read or write fails.

    ``error_name`` carries the decoded custom error of a reverted call
    (e.g. ``"InvalidAmount"``); it is None for transport failures and timeouts.
    """

    def __init__(self, message: str, error_name: Optional[str] = None):
        self.error_name = error_name
        super().__init__(message)


class StaleChannelStateError(Exception):
    """Raised when a channel was modified by another writer during a commit."""
