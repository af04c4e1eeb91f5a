"""FastAPI application configuration (Provider API)."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Response, status
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CollectorRegistry, make_asgi_app, multiprocess

from ...application.provider.dtos import PricingResponseDTO
from ...domain.provider.constants import USDC_DECIMALS
from ...infrastructure.database import get_database_client
from ...infrastructure.storage import RedisKeyValueStore
from .dependencies import (
    get_app_settings,
    get_auto_claim_scheduler,
    get_channel_contract,
    get_drain_service,
    get_voucher_repository,
)
from .payment_gate import install_payment_gate
from .routers import admin, channels

logger = logging.getLogger(__name__)

settings = get_app_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    db_client = get_database_client(settings)
    if not await db_client.ping():
        logger.error("Redis unreachable at startup")
    repository = get_voucher_repository(RedisKeyValueStore(db_client))
    await repository.initialize()

    contract = get_channel_contract(settings)
    drain_service = get_drain_service(settings, repository, contract)
    scheduler = get_auto_claim_scheduler(settings, drain_service)
    scheduler.start()
    logger.info(
        "Provider %s on %s (chain %s)",
        settings.provider_address,
        settings.chain_name,
        settings.chain_id,
    )
    try:
        yield
    finally:
        await scheduler.stop()
        await db_client.aclose()


def _metrics_app():
    # Aggregate across uvicorn workers when running multi-process
    if os.environ.get("PROMETHEUS_MULTIPROC_DIR"):
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        return make_asgi_app(registry=registry)
    return make_asgi_app()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="DRAIN payment channel provider API",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "X-DRAIN-Cost",
            "X-DRAIN-Total",
            "X-DRAIN-Remaining",
            "X-DRAIN-Channel",
            "X-DRAIN-Error",
            "X-DRAIN-Required",
            "X-DRAIN-Provided",
        ],
    )
    install_payment_gate(app)

    # Include routers
    app.include_router(admin.router, prefix="/v1")
    app.include_router(channels.router, prefix="/v1")
    app.mount("/metrics", _metrics_app())

    @app.get("/health")
    async def health_check(response: Response) -> dict[str, object]:
        """Health check endpoint; 503 while Redis is unreachable."""
        database_ok = await get_database_client(settings).ping()
        if not database_ok:
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {
            "status": "ok" if database_ok else "degraded",
            "database": "ok" if database_ok else "unavailable",
            "service": settings.provider_name,
            "version": settings.app_version,
            "provider": settings.provider_address,
            "chainId": settings.chain_id,
        }

    @app.get("/v1/pricing", response_model=PricingResponseDTO)
    async def pricing() -> PricingResponseDTO:
        """Flat price charged per paid request."""
        return PricingResponseDTO(
            provider=settings.provider_address,
            provider_name=settings.provider_name,
            chain_id=settings.chain_id,
            decimals=USDC_DECIMALS,
            price_per_request=str(settings.price_per_request),
        )

    return app


app = create_app()
