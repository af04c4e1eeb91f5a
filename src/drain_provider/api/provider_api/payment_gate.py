"""Voucher payment gate for paid endpoints.

A paid route depends on ``require_voucher(cost)``. The dependency validates
the ``X-DRAIN-Voucher`` header before the handler runs and answers 402 when
the voucher does not pay; the handler then does its work and calls
``payment.commit(actual_cost)`` to record the charge::

    @router.post("/v1/answer")
    async def answer(payment: VoucherPayment = Depends(require_voucher())):
        result = await do_work()
        state = await payment.commit()
        return JSONResponse(result, headers=payment.headers(state))
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Optional

from fastapi import Depends, FastAPI, Header, Request, status
from fastapi.responses import JSONResponse
from prometheus_client import Counter, Histogram

from ...application.provider.dtos import ValidationResult
from ...application.provider.use_cases.drain import DrainService
from ...domain.provider.entities import ChannelState, RejectReason, Voucher
from .dependencies import get_drain_service, get_price_per_request

logger = logging.getLogger(__name__)

VOUCHER_HEADER = "X-DRAIN-Voucher"

voucher_validations_total = Counter(
    "voucher_validations_total",
    "Voucher validations by outcome",
    ["outcome"],
)

voucher_validation_duration_seconds = Histogram(
    "voucher_validation_duration_seconds",
    "Wall time to validate a voucher",
    ["outcome"],
)

_REJECT_MESSAGES: Dict[RejectReason, str] = {
    RejectReason.VOUCHER_REQUIRED: f"{VOUCHER_HEADER} header required",
    RejectReason.INVALID_VOUCHER_FORMAT: f"Malformed {VOUCHER_HEADER} header",
    RejectReason.CHANNEL_NOT_FOUND: "Payment channel not found",
    RejectReason.WRONG_PROVIDER: "Payment channel belongs to another provider",
    RejectReason.INSUFFICIENT_FUNDS: "Voucher amount does not cover this request",
    RejectReason.EXCEEDS_DEPOSIT: "Voucher amount exceeds channel deposit",
    RejectReason.INVALID_NONCE: "Voucher nonce already used",
    RejectReason.INVALID_SIGNATURE: "Voucher signature is invalid",
    RejectReason.CHAIN_UNAVAILABLE: "Could not verify payment channel, retry later",
}


class PaymentRequiredError(Exception):
    """Raised by the gate when a voucher is missing or rejected."""

    def __init__(self, result: ValidationResult, required_charge: int):
        self.result = result
        self.required_charge = required_charge
        reason = result.reject_reason or RejectReason.VOUCHER_REQUIRED
        super().__init__(reason.value)

    @property
    def reason(self) -> RejectReason:
        return self.result.reject_reason or RejectReason.VOUCHER_REQUIRED

    def to_response(self) -> JSONResponse:
        headers = {"X-DRAIN-Error": self.reason.value}
        if self.reason == RejectReason.INSUFFICIENT_FUNDS:
            channel = self.result.channel
            charged = channel.total_charged if channel else 0
            headers["X-DRAIN-Required"] = str(charged + self.required_charge)
            if self.result.voucher is not None:
                headers["X-DRAIN-Provided"] = str(self.result.voucher.amount)
        return JSONResponse(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            content={
                "error": {
                    "message": _REJECT_MESSAGES.get(self.reason, self.reason.value),
                    "type": "payment_required",
                    "code": self.reason.value,
                }
            },
            headers=headers,
        )


async def payment_required_handler(
    request: Request, exc: PaymentRequiredError
) -> JSONResponse:
    return exc.to_response()


def install_payment_gate(app: FastAPI) -> None:
    """Register the 402 handler on an application using ``require_voucher``."""
    app.add_exception_handler(PaymentRequiredError, payment_required_handler)


class VoucherPayment:
    """An accepted voucher waiting for the handler to commit the real cost."""

    def __init__(
        self,
        drain_service: DrainService,
        voucher: Voucher,
        channel: ChannelState,
        reserved: int,
    ):
        self.drain_service = drain_service
        self.voucher = voucher
        self.channel = channel
        self.reserved = reserved
        self.committed: Optional[ChannelState] = None
        self.charged: Optional[int] = None

    async def commit(self, actual_cost: Optional[int] = None) -> ChannelState:
        cost = self.reserved if actual_cost is None else actual_cost
        before = self.channel.total_charged
        self.committed = await self.drain_service.commit(
            self.voucher, self.channel, cost
        )
        self.charged = max(self.committed.total_charged - before, 0)
        return self.committed

    def headers(self, state: Optional[ChannelState] = None) -> Dict[str, str]:
        state = state or self.committed or self.channel
        charged = self.reserved if self.charged is None else self.charged
        return {
            "X-DRAIN-Cost": str(charged),
            "X-DRAIN-Total": str(state.total_charged),
            "X-DRAIN-Remaining": str(state.remaining),
            "X-DRAIN-Channel": state.channel_id,
        }


def require_voucher(cost: Optional[int] = None) -> Callable:
    """Dependency factory charging ``cost`` (the configured flat price by default)."""

    async def dependency(
        x_drain_voucher: Optional[str] = Header(None, alias=VOUCHER_HEADER),
        drain_service: DrainService = Depends(get_drain_service),
        price_per_request: int = Depends(get_price_per_request),
    ) -> VoucherPayment:
        required = price_per_request if cost is None else cost
        start_time = time.perf_counter()
        result = await drain_service.validate_and_reserve(x_drain_voucher, required)
        outcome = "accepted" if result.accepted else result.reject_reason.value
        voucher_validations_total.labels(outcome=outcome).inc()
        voucher_validation_duration_seconds.labels(outcome=outcome).observe(
            time.perf_counter() - start_time
        )
        if not result.accepted:
            raise PaymentRequiredError(result, required)
        return VoucherPayment(drain_service, result.voucher, result.channel, required)

    return dependency
