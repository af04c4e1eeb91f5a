"""Admin API routes (claims and ledger statistics)."""

from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from prometheus_client import Counter, Histogram

from ....application.provider.dtos import (
    ClaimReport,
    ClaimResponseDTO,
    StatsDTO,
    VoucherListResponseDTO,
)
from ....application.provider.use_cases.drain import DrainService
from ..dependencies import get_drain_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


claim_results_total = Counter(
    "claim_results_total",
    "Claim attempts by outcome",
    ["outcome"],
)

claim_pass_duration_seconds = Histogram(
    "claim_pass_duration_seconds",
    "Wall time of a manual claim pass",
    ["kind"],
)


def _to_response(report: ClaimReport, *, forced: bool) -> ClaimResponseDTO:
    for result in report.results:
        claim_results_total.labels(outcome=result.outcome.value).inc()
    return ClaimResponseDTO(
        claimed=len(report.tx_hashes),
        attempted=report.attempted,
        transactions=report.tx_hashes,
        failed=report.failed,
        forced=forced,
    )


@router.post("/claim", response_model=ClaimResponseDTO)
async def claim(
    force: bool = Query(False, description="Ignore the claim threshold"),
    drain_service: DrainService = Depends(get_drain_service),
) -> ClaimResponseDTO:
    """Claim the highest voucher of every channel."""
    start_time = time.perf_counter()
    try:
        report = await drain_service.claim(force=force)
    except Exception as e:
        logger.exception("Manual claim failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to claim",
        ) from e
    claim_pass_duration_seconds.labels(kind="manual").observe(
        time.perf_counter() - start_time
    )
    return _to_response(report, forced=force)


@router.post("/claim/expiring", response_model=ClaimResponseDTO)
async def claim_expiring(
    buffer_seconds: int = Query(3600, ge=0),
    drain_service: DrainService = Depends(get_drain_service),
) -> ClaimResponseDTO:
    """Claim channels that expire within ``buffer_seconds``."""
    start_time = time.perf_counter()
    try:
        report = await drain_service.claim_expiring(buffer_seconds)
    except Exception as e:
        logger.exception("Expiring claim pass failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to claim expiring channels",
        ) from e
    claim_pass_duration_seconds.labels(kind="expiring").observe(
        time.perf_counter() - start_time
    )
    return _to_response(report, forced=True)


@router.get("/stats", response_model=StatsDTO)
async def stats(
    drain_service: DrainService = Depends(get_drain_service),
) -> StatsDTO:
    try:
        return await drain_service.stats()
    except Exception as e:
        logger.exception("Failed to read stats")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to read stats",
        ) from e


@router.get("/vouchers", response_model=VoucherListResponseDTO)
async def vouchers(
    drain_service: DrainService = Depends(get_drain_service),
) -> VoucherListResponseDTO:
    """Highest unclaimed voucher of each channel."""
    try:
        return await drain_service.unclaimed_vouchers()
    except Exception as e:
        logger.exception("Failed to list vouchers")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list vouchers",
        ) from e
