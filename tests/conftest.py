"""
Shared pytest fixtures for the fulfillment library tests.

This module provides:
- Configuration fixtures (fast retry, short deadlines)
- Store fixtures (in-memory, fault-injecting, SQLite)
- Component fixtures (catalog, ledger, orchestrator, gateway, verifier)
- Tracing fixtures (mock_tracer)

All fixtures are function scoped so every test starts from empty stores.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio

from fulfillment.catalog import InMemoryCatalog
from fulfillment.config import FulfillmentConfig
from fulfillment.inventory.ledger import InventoryLedger
from fulfillment.observability import MockTracer
from fulfillment.orders.orchestrator import OrderOrchestrator
from fulfillment.payments.gateway import InMemoryPaymentGateway
from fulfillment.payments.signature import CallbackSignatureVerifier
from fulfillment.retry import RetryConfig
from fulfillment.stores.in_memory import InMemoryFulfillmentStore

# Import shared fixtures from fixtures module
from tests.fixtures import PRICES, FaultyStore

# ============================================================================
# SQLite Availability Check
# ============================================================================

AIOSQLITE_AVAILABLE = False
try:
    import aiosqlite  # noqa: F401

    AIOSQLITE_AVAILABLE = True
except ImportError:
    pass


# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for tests."""
    config.addinivalue_line("markers", "sqlite: marks tests that require SQLite (aiosqlite)")


# ============================================================================
# Skip Condition
# ============================================================================

skip_if_no_aiosqlite = pytest.mark.skipif(not AIOSQLITE_AVAILABLE, reason="aiosqlite not installed")

SIGNING_SECRET = "test-merchant-secret"


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def retry_config() -> RetryConfig:
    """
    Provide a retry configuration with near-zero backoff.

    Returns:
        RetryConfig with 4 retries and sub-millisecond delays.
    """
    return RetryConfig(max_retries=4, initial_delay=0.0001, max_delay=0.001)


@pytest.fixture
def config(retry_config: RetryConfig) -> FulfillmentConfig:
    """
    Provide a fulfillment configuration suitable for tests.

    Args:
        retry_config: The fast retry configuration fixture.

    Returns:
        FulfillmentConfig with a 1 second deadline per store call.
    """
    return FulfillmentConfig(retry=retry_config, operation_timeout=1.0)


# =============================================================================
# Store Fixtures
# =============================================================================


@pytest.fixture
def store() -> InMemoryFulfillmentStore:
    """Provide an empty in-memory store."""
    return InMemoryFulfillmentStore(enable_tracing=False)


@pytest.fixture
def faulty_store() -> FaultyStore:
    """
    Provide an in-memory store with injectable faults.

    Returns:
        A FaultyStore with every fault switched off.
    """
    return FaultyStore()


@pytest_asyncio.fixture
async def sqlite_store() -> AsyncGenerator:
    """
    Provide an initialized SQLite store on an in-memory database.

    Yields:
        SQLiteFulfillmentStore with the schema created.
    """
    if not AIOSQLITE_AVAILABLE:
        pytest.skip("aiosqlite not installed")

    from fulfillment.stores.sqlite import SQLiteFulfillmentStore

    async with SQLiteFulfillmentStore(":memory:", wal_mode=False, enable_tracing=False) as s:
        await s.initialize()
        yield s


# =============================================================================
# Component Fixtures
# =============================================================================


@pytest.fixture
def catalog() -> InMemoryCatalog:
    """Provide a catalog pricing products 1-3 in INR."""
    return InMemoryCatalog(PRICES)


@pytest.fixture
def gateway() -> InMemoryPaymentGateway:
    """Provide a gateway that approves every charge unless told otherwise."""
    return InMemoryPaymentGateway()


@pytest.fixture
def verifier() -> CallbackSignatureVerifier:
    """Provide a callback signature verifier keyed with SIGNING_SECRET."""
    return CallbackSignatureVerifier(SIGNING_SECRET)


@pytest.fixture
def mock_tracer() -> MockTracer:
    """Provide a tracer that records spans."""
    return MockTracer()


@pytest.fixture
def ledger(store: InMemoryFulfillmentStore, config: FulfillmentConfig) -> InventoryLedger:
    """Provide a ledger over the in-memory store."""
    return InventoryLedger(store, config, enable_tracing=False)


@pytest.fixture
def orchestrator(
    store: InMemoryFulfillmentStore,
    catalog: InMemoryCatalog,
    config: FulfillmentConfig,
    gateway: InMemoryPaymentGateway,
    verifier: CallbackSignatureVerifier,
) -> OrderOrchestrator:
    """
    Provide an orchestrator over the in-memory store.

    Returns:
        OrderOrchestrator with catalog, gateway and signature verifier wired in.
    """
    return OrderOrchestrator(
        store,
        catalog,
        config,
        gateway=gateway,
        signature_verifier=verifier,
        enable_tracing=False,
    )


@pytest.fixture
def faulty_orchestrator(
    faulty_store: FaultyStore,
    catalog: InMemoryCatalog,
    config: FulfillmentConfig,
) -> OrderOrchestrator:
    """Provide an orchestrator over the fault-injecting store."""
    return OrderOrchestrator(faulty_store, catalog, config, enable_tracing=False)
