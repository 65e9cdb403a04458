"""
Global test configuration and fixtures for the storefront client

Every test gets its own in-memory storage, recording notification and
navigation channels, and a fake commerce API behind httpx.MockTransport.
"""

import pytest

from storefront.auth.credentials import CredentialStore
from storefront.auth.roles import Role
from storefront.auth.session import SessionContext
from storefront.cart.background import BestEffortChannel
from storefront.cart.cache import CartCache
from storefront.core.notifications import RecordingNavigator, RecordingNotifier
from storefront.core.utils.encryption import CredentialEncryption
from storefront.core.utils.storage import DurableStore
from storefront.db.session import create_storage_engine
from storefront.http.client import ApiClient, create_http_client
from tests.utils.factories import ProfileFactory
from tests.utils.helpers import API_BASE_URL, FakeCommerceApi

TEST_SECRET_KEY = "test-secret-key-for-storefront-unit-tests-only"


# ============================================================================
# Storage Fixtures
# ============================================================================

@pytest.fixture(scope="session")
def encryption():
    """One cipher per session; key derivation is deliberately slow"""
    return CredentialEncryption(secret_key=TEST_SECRET_KEY, iterations=100_000)


@pytest.fixture(scope="function")
def storage_engine():
    engine = create_storage_engine("sqlite://")
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def store(storage_engine, encryption):
    """Durable store with token keys encrypted"""
    return DurableStore(
        storage_engine,
        encryption=encryption,
        encrypted_keys=CredentialStore.token_keys(),
    )


@pytest.fixture(scope="function")
def credentials(store):
    return CredentialStore(store)


# ============================================================================
# Session Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def notifier():
    return RecordingNotifier()


@pytest.fixture(scope="function")
def navigator():
    return RecordingNavigator()


@pytest.fixture(scope="function")
def session(credentials, notifier, navigator):
    return SessionContext(credentials, notifier=notifier, navigator=navigator)


@pytest.fixture(scope="function")
def customer_session(session):
    """Session with a live customer token"""
    session.login(Role.CUSTOMER, "customer-token-1", ProfileFactory.customer())
    return session


# ============================================================================
# HTTP Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def api():
    return FakeCommerceApi()


@pytest.fixture(scope="function")
async def api_client(session, api):
    client = ApiClient(session, http_client=create_http_client(base_url=API_BASE_URL, transport=api.transport))
    yield client
    await client.aclose()


# ============================================================================
# Cart Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def channel():
    return BestEffortChannel()


@pytest.fixture(scope="function")
async def cart(store, session, api_client, channel):
    cache = CartCache(store, session, api_client, channel=channel)
    yield cache
    await channel.drain()


# ============================================================================
# Test Markers and Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers and settings"""
    config.addinivalue_line(
        "markers", "security: mark test as security-related"
    )
    config.addinivalue_line(
        "markers", "encryption: mark test as exercising credential encryption"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers based on file location"""
    for item in items:
        if "security" in str(item.fspath):
            item.add_marker(pytest.mark.security)
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
