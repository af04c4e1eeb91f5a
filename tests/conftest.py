"""Shared pytest fixtures for provider tests."""

from __future__ import annotations

import os
from typing import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from eth_account import Account
from eth_account.signers.local import LocalAccount

from drain_provider.application.provider.use_cases.claim import ClaimSubmitter
from drain_provider.application.provider.use_cases.drain import DrainService
from drain_provider.application.provider.use_cases.ledger import ChannelLedger
from drain_provider.application.provider.use_cases.validation import (
    VoucherValidationService,
)
from drain_provider.crypto.vouchers import Eip712VoucherVerifier, sign_voucher
from drain_provider.domain.provider.constants import DRAIN_ADDRESSES
from drain_provider.domain.provider.entities import Voucher
from drain_provider.infrastructure.database import DatabaseClient
from drain_provider.infrastructure.provider.voucher_repository_impl import (
    VoucherRepositoryImpl,
)
from drain_provider.infrastructure.storage import RedisKeyValueStore
from tests.fixtures import FakeChannelContract, InMemoryKeyValueStore

CHAIN_ID = 137
CONTRACT_ADDRESS = DRAIN_ADDRESSES[CHAIN_ID]
CLAIM_THRESHOLD = 1_000_000

PROVIDER_KEY = "0x" + "11" * 32
CONSUMER_KEY = "0x" + "22" * 32
STRANGER_KEY = "0x" + "33" * 32


@pytest.fixture
def provider_account() -> LocalAccount:
    return Account.from_key(PROVIDER_KEY)


@pytest.fixture
def consumer_account() -> LocalAccount:
    return Account.from_key(CONSUMER_KEY)


@pytest.fixture
def stranger_account() -> LocalAccount:
    return Account.from_key(STRANGER_KEY)


@pytest.fixture
def channel_id() -> str:
    return "0x" + "ab" * 32


@pytest.fixture
def make_voucher(
    consumer_account: LocalAccount, channel_id: str
) -> Callable[..., Voucher]:
    """Build a voucher signed like a DRAIN consumer would sign it."""

    def _make(
        amount: int,
        nonce: int,
        *,
        channel: str | None = None,
        key: str | None = None,
    ) -> Voucher:
        target = channel or channel_id
        signature = sign_voucher(
            key or CONSUMER_KEY,
            chain_id=CHAIN_ID,
            contract_address=CONTRACT_ADDRESS,
            channel_id=target,
            amount=amount,
            nonce=nonce,
        )
        return Voucher(
            channel_id=target, amount=amount, nonce=nonce, signature=signature
        )

    return _make


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
async def voucher_repository(
    store: InMemoryKeyValueStore,
) -> AsyncGenerator[VoucherRepositoryImpl, None]:
    repo = VoucherRepositoryImpl(store)
    await repo.initialize()
    yield repo
    store.clear()


@pytest.fixture
def contract(provider_account: LocalAccount) -> FakeChannelContract:
    return FakeChannelContract(provider_address=provider_account.address)


@pytest.fixture
def ledger(
    voucher_repository: VoucherRepositoryImpl, contract: FakeChannelContract
) -> ChannelLedger:
    return ChannelLedger(voucher_repository, contract)


@pytest.fixture
def verifier() -> Eip712VoucherVerifier:
    return Eip712VoucherVerifier(CHAIN_ID, CONTRACT_ADDRESS)


@pytest.fixture
def validation_service(
    ledger: ChannelLedger,
    verifier: Eip712VoucherVerifier,
    provider_account: LocalAccount,
) -> VoucherValidationService:
    return VoucherValidationService(ledger, verifier, provider_account.address)


@pytest.fixture
def claim_submitter(
    voucher_repository: VoucherRepositoryImpl,
    ledger: ChannelLedger,
    contract: FakeChannelContract,
) -> ClaimSubmitter:
    return ClaimSubmitter(
        voucher_repository, ledger, contract, claim_threshold=CLAIM_THRESHOLD
    )


@pytest.fixture
def drain_service(
    voucher_repository: VoucherRepositoryImpl,
    ledger: ChannelLedger,
    validation_service: VoucherValidationService,
    claim_submitter: ClaimSubmitter,
    provider_account: LocalAccount,
) -> DrainService:
    return DrainService(
        voucher_repository,
        ledger,
        validation_service,
        claim_submitter,
        provider_address=provider_account.address,
        provider_name="Test Provider",
        chain_id=CHAIN_ID,
        claim_threshold=CLAIM_THRESHOLD,
    )


class TestDatabaseSettings:
    """Test settings for Redis connection."""

    database_max_connections = 10
    database_socket_timeout = 2.0

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url


@pytest_asyncio.fixture
async def redis_db_client() -> AsyncGenerator[DatabaseClient, None]:
    """Create a Redis database client for testing.

    Uses database 15 by default, or TEST_REDIS_URL if set.
    """
    import warnings

    test_redis_url = os.getenv("TEST_REDIS_URL", "redis://localhost:6379/15")
    settings = TestDatabaseSettings(database_url=test_redis_url)
    client = DatabaseClient(settings)
    client.initialize_database()

    # Test connection
    try:
        async with client.get_connection() as conn:
            await conn.ping()
    except Exception as e:
        warnings.warn(
            f"Redis not available at {test_redis_url}: {e}. "
            "Tests requiring Redis will be skipped.",
            UserWarning,
        )
        pytest.skip(f"Redis not available: {e}")

    yield client

    # Cleanup: flush test database
    try:
        async with client.get_connection() as conn:
            await conn.flushdb()
    finally:
        await client.aclose()


@pytest_asyncio.fixture
async def redis_store(redis_db_client: DatabaseClient) -> RedisKeyValueStore:
    """Create a Redis-backed key-value store for testing."""
    return RedisKeyValueStore(redis_db_client)
