"""Channel ledger API routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Path, status

from ....application.provider.dtos import ChannelResponseDTO
from ....application.provider.use_cases.drain import DrainService
from ....domain.provider.entities import normalize_channel_id
from ..dependencies import get_drain_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/channels", tags=["channels"])


@router.get("/{channel_id}", response_model=ChannelResponseDTO)
async def get_channel(
    channel_id: str = Path(..., description="bytes32 channel identifier"),
    drain_service: DrainService = Depends(get_drain_service),
) -> ChannelResponseDTO:
    """Local ledger view of a channel."""
    try:
        channel_id = normalize_channel_id(channel_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        state = await drain_service.get_channel(channel_id)
    except Exception as e:
        logger.exception("Failed to read channel %s", channel_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to read channel",
        ) from e
    if state is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Channel not found"
        )
    return ChannelResponseDTO.from_entity(state)
