"""
Unit tests for the role-partitioned credential store

These tests validate that the three roles never collide and that clearing the
customer role takes its cart with it.
"""

import pytest
from sqlalchemy import select

from storefront.auth.credentials import CredentialStore
from storefront.auth.roles import CART_STORAGE_KEY, WISHLIST_STORAGE_KEY, Role
from storefront.db.models.stored_value import StoredValue
from storefront.db.session import create_session_factory
from tests.utils.factories import ProfileFactory

# Mark all tests in this module as unit tests
pytestmark = pytest.mark.unit


class TestCredentialStore:
    """Test get/set/clear per role"""

    def test_get_missing_role_returns_none(self, credentials):
        """Test absent credential reads as None"""
        assert credentials.get(Role.ADMIN) is None
        assert credentials.has_token(Role.ADMIN) is False

    def test_set_and_get(self, credentials):
        """Test token and profile are stored together"""
        profile = ProfileFactory.seller()
        credentials.set(Role.SELLER, "seller-token", profile)

        token = credentials.get(Role.SELLER)
        assert token.role == Role.SELLER
        assert token.value == "seller-token"
        assert token.profile == profile

    def test_set_replaces_only_that_role(self, credentials):
        """Test a new login for one role leaves the other roles untouched"""
        credentials.set(Role.ADMIN, "admin-1", ProfileFactory.admin())
        credentials.set(Role.CUSTOMER, "customer-1", ProfileFactory.customer())

        credentials.set(Role.ADMIN, "admin-2", ProfileFactory.admin("second-admin"))

        assert credentials.get(Role.ADMIN).value == "admin-2"
        assert credentials.get(Role.ADMIN).profile["username"] == "second-admin"
        assert credentials.get(Role.CUSTOMER).value == "customer-1"

    def test_token_shape_is_not_validated(self, credentials):
        """Test opaque tokens of any shape are accepted"""
        credentials.set(Role.CUSTOMER, "not.a.jwt at all", {})
        assert credentials.get(Role.CUSTOMER).value == "not.a.jwt at all"

    def test_clear_seller_does_not_touch_other_roles(self, credentials, store):
        """Test clearing seller never touches admin, customer or the cart"""
        credentials.set(Role.ADMIN, "admin-token", ProfileFactory.admin())
        credentials.set(Role.SELLER, "seller-token", ProfileFactory.seller())
        credentials.set(Role.CUSTOMER, "customer-token", ProfileFactory.customer())
        store.set(CART_STORAGE_KEY, {"items": [], "total": 0})

        credentials.clear(Role.SELLER)

        assert credentials.get(Role.SELLER) is None
        assert credentials.get(Role.ADMIN).value == "admin-token"
        assert credentials.get(Role.CUSTOMER).value == "customer-token"
        assert store.get(CART_STORAGE_KEY) is not None

    def test_clear_customer_drops_cart_and_wishlist(self, credentials, store):
        """Test customer logout also removes the data tied to the customer"""
        credentials.set(Role.CUSTOMER, "customer-token", ProfileFactory.customer())
        store.set(CART_STORAGE_KEY, {"items": [{"id": "x"}], "total": 3})
        store.set(WISHLIST_STORAGE_KEY, ["p1"])

        credentials.clear(Role.CUSTOMER)

        assert credentials.get(Role.CUSTOMER) is None
        assert store.get(CART_STORAGE_KEY) is None
        assert store.get(WISHLIST_STORAGE_KEY) is None

    def test_clear_listeners_are_notified(self, credentials):
        """Test listeners run after a clear, and a failing one does not stop the rest"""
        seen = []

        def failing(role):
            raise RuntimeError("listener broke")

        credentials.add_clear_listener(failing)
        credentials.add_clear_listener(seen.append)

        credentials.clear(Role.ADMIN)

        assert seen == [Role.ADMIN]

    def test_live_roles_in_priority_order(self, credentials):
        """Test live roles are listed most privileged first"""
        credentials.set(Role.CUSTOMER, "c", {})
        credentials.set(Role.ADMIN, "a", {})

        assert credentials.live_roles() == [Role.ADMIN, Role.CUSTOMER]

    def test_get_never_raises_on_storage_failure(self, credentials, store, monkeypatch):
        """Test storage errors read as an absent credential"""
        def broken_get(key):
            raise RuntimeError("disk gone")

        monkeypatch.setattr(store, "get", broken_get)

        assert credentials.get(Role.CUSTOMER) is None

    def test_update_profile_keeps_token(self, credentials):
        """Test updating a profile leaves the token in place"""
        credentials.set(Role.CUSTOMER, "customer-token", {"email": "a@example.com"})
        credentials.update_profile(Role.CUSTOMER, {"email": "b@example.com"})

        token = credentials.get(Role.CUSTOMER)
        assert token.value == "customer-token"
        assert token.profile["email"] == "b@example.com"


@pytest.mark.encryption
class TestCredentialEncryptionAtRest:
    """Test tokens are never stored in plaintext"""

    def test_stored_token_is_ciphertext(self, credentials, storage_engine):
        """Test the raw row for a token differs from the token"""
        credentials.set(Role.CUSTOMER, "plain-customer-token", ProfileFactory.customer())

        with create_session_factory(storage_engine)() as db:
            row = db.scalar(select(StoredValue).where(StoredValue.key == "userToken"))

        assert isinstance(row.data, str)
        assert "plain-customer-token" not in row.data

    def test_profile_is_stored_as_json(self, credentials, storage_engine):
        """Test profiles are kept as plain JSON documents"""
        profile = ProfileFactory.customer()
        credentials.set(Role.CUSTOMER, "token", profile)

        with create_session_factory(storage_engine)() as db:
            row = db.scalar(select(StoredValue).where(StoredValue.key == "userData"))

        assert row.data == profile

    def test_undecryptable_token_reads_as_absent(self, store, storage_engine, encryption):
        """Test a token written under another key is treated as missing, never returned raw"""
        from storefront.core.utils.encryption import CredentialEncryption
        from storefront.core.utils.storage import DurableStore

        other = DurableStore(
            storage_engine,
            encryption=CredentialEncryption(secret_key="a-completely-different-secret-key", iterations=100_000),
            encrypted_keys=CredentialStore.token_keys(),
        )
        other.set("adminToken", "admin-token")

        assert CredentialStore(store).get(Role.ADMIN) is None
