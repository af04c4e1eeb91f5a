"""FastAPI dependencies for the provider API."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from fastapi import Depends

from ...application.provider.use_cases.auto_claim import AutoClaimScheduler
from ...application.provider.use_cases.claim import ClaimSubmitter
from ...application.provider.use_cases.drain import DrainService
from ...application.provider.use_cases.ledger import ChannelLedger
from ...application.provider.use_cases.validation import VoucherValidationService
from ...crypto.vouchers import Eip712VoucherVerifier
from ...domain.shared import ChannelContractProtocol
from ...envs.provider_env import Settings, get_settings
from ...infrastructure.chain.drain_contract import DrainChannelContract
from ...infrastructure.database import DatabaseClient, get_database_client
from ...infrastructure.provider.voucher_repository_impl import VoucherRepositoryImpl
from ...infrastructure.storage import KeyValueStore, RedisKeyValueStore

# Ledger locks and the claim pass lock must be shared by every request
_channel_contract: Optional[ChannelContractProtocol] = None
_voucher_repository: Optional[VoucherRepositoryImpl] = None
_drain_service: Optional[DrainService] = None
_scheduler: Optional[AutoClaimScheduler] = None


@lru_cache
def get_app_settings() -> Settings:
    """Settings read once per process."""
    return get_settings()


def get_database_client_with_settings(
    settings: Settings = Depends(get_app_settings),
) -> DatabaseClient:
    """Get database client with settings."""
    return get_database_client(settings)


def get_key_value_store(
    db_client: DatabaseClient = Depends(get_database_client_with_settings),
) -> KeyValueStore:
    """Get key-value store."""
    return RedisKeyValueStore(db_client)


def get_voucher_repository(
    store: KeyValueStore = Depends(get_key_value_store),
) -> VoucherRepositoryImpl:
    """Get the voucher repository singleton."""
    global _voucher_repository
    if _voucher_repository is None:
        _voucher_repository = VoucherRepositoryImpl(store)
    return _voucher_repository


def get_channel_contract(
    settings: Settings = Depends(get_app_settings),
) -> ChannelContractProtocol:
    """Get the on-chain channel contract client singleton."""
    global _channel_contract
    if _channel_contract is None:
        _channel_contract = DrainChannelContract(
            rpc_url=settings.rpc_url,
            contract_address=settings.drain_contract_address,
            chain_id=settings.chain_id,
            private_key=settings.provider_private_key,
            timeout=settings.rpc_timeout_seconds,
        )
    return _channel_contract


def build_drain_service(
    settings: Settings,
    repository: VoucherRepositoryImpl,
    contract: ChannelContractProtocol,
) -> DrainService:
    """Wire the ledger, validation and claim use cases into the facade."""
    ledger = ChannelLedger(repository, contract)
    validation_service = VoucherValidationService(
        ledger,
        Eip712VoucherVerifier(settings.chain_id, settings.drain_contract_address),
        settings.provider_address,
    )
    submitter = ClaimSubmitter(
        repository,
        ledger,
        contract,
        claim_threshold=settings.claim_threshold,
    )
    return DrainService(
        repository,
        ledger,
        validation_service,
        submitter,
        provider_address=settings.provider_address,
        provider_name=settings.provider_name,
        chain_id=settings.chain_id,
        claim_threshold=settings.claim_threshold,
    )


def get_drain_service(
    settings: Settings = Depends(get_app_settings),
    repository: VoucherRepositoryImpl = Depends(get_voucher_repository),
    contract: ChannelContractProtocol = Depends(get_channel_contract),
) -> DrainService:
    """Get the DRAIN service singleton."""
    global _drain_service
    if _drain_service is None:
        _drain_service = build_drain_service(settings, repository, contract)
    return _drain_service


def get_auto_claim_scheduler(
    settings: Settings = Depends(get_app_settings),
    drain_service: DrainService = Depends(get_drain_service),
) -> AutoClaimScheduler:
    """Get the auto-claim scheduler singleton."""
    global _scheduler
    if _scheduler is None:
        _scheduler = AutoClaimScheduler(
            drain_service.submitter,
            interval_minutes=settings.auto_claim_interval_minutes,
            buffer_seconds=settings.auto_claim_buffer_seconds,
        )
    return _scheduler


def get_price_per_request(settings: Settings = Depends(get_app_settings)) -> int:
    return settings.price_per_request
