"""
Security tests for data protection

Credentials are encrypted at rest and never written to logs in clear text.
"""

import logging

import pytest

from storefront.auth.roles import Role
from storefront.core.logging_config import SecurityLogFilter
from storefront.core.utils.encryption import CredentialEncryption, StorageEncryptionError
from storefront.core.utils.storage import DurableStore
from storefront.http.request import ApiRequest
from tests.utils.factories import ProfileFactory
from tests.utils.helpers import assert_no_sensitive_data_in_logs, json_response

# Mark all tests in this module as security tests
pytestmark = pytest.mark.security


@pytest.mark.encryption
class TestCredentialEncryption:
    """Test the Fernet cipher used for token storage"""

    def test_encrypt_decrypt(self, encryption):
        encrypted = encryption.encrypt("eyJhbGciOiJIUzI1NiJ9.payload.signature")

        assert isinstance(encrypted, str)
        assert "payload" not in encrypted
        assert encryption.decrypt(encrypted) == "eyJhbGciOiJIUzI1NiJ9.payload.signature"

    def test_structured_values(self, encryption):
        value = {"token": "abc", "roles": ["customer"]}

        assert encryption.decrypt(encryption.encrypt(value)) == value

    def test_ciphertext_differs_per_call(self, encryption):
        assert encryption.encrypt("same") != encryption.encrypt("same")

    def test_same_secret_decrypts_across_instances(self, encryption):
        """Test tokens survive a restart with the same secret key"""
        encrypted = encryption.encrypt("persisted-token")
        other = CredentialEncryption(secret_key=encryption._secret_key, iterations=100_000)

        assert other.decrypt(encrypted) == "persisted-token"

    def test_wrong_key_fails_closed(self, encryption):
        encrypted = encryption.encrypt("persisted-token")
        other = CredentialEncryption(secret_key="a-completely-different-secret-key-value", iterations=100_000)

        assert other.decrypt(encrypted) is None

    def test_garbage_ciphertext(self, encryption):
        assert encryption.decrypt("not-a-fernet-token") is None

    def test_unserializable_value_raises(self, encryption):
        with pytest.raises(StorageEncryptionError):
            encryption.encrypt(object())

    @pytest.mark.parametrize("requested,expected", [
        (1_000, 100_000),
        (100_000, 100_000),
        (500_000, 500_000),
        (50_000_000, 10_000_000),
    ])
    def test_iteration_bounds(self, requested, expected):
        assert CredentialEncryption._validate_iterations(requested) == expected


@pytest.mark.encryption
class TestStorageEncryption:
    """Test which keys are encrypted by the durable store"""

    def test_only_secret_keys_are_encrypted(self, storage_engine, encryption):
        store = DurableStore(storage_engine, encryption=encryption, encrypted_keys=["userToken"])

        store.set("userToken", "secret-value")
        store.set("userData", {"email": "shopper@example.com"})

        plain = DurableStore(storage_engine)
        assert plain.get("userToken") != "secret-value"
        assert plain.get("userData") == {"email": "shopper@example.com"}

    def test_plaintext_value_under_secret_key_is_rejected(self, storage_engine, encryption):
        DurableStore(storage_engine).set("userToken", {"raw": True})
        store = DurableStore(storage_engine, encryption=encryption, encrypted_keys=["userToken"])

        assert store.get("userToken") is None

    def test_encryption_disabled(self, storage_engine):
        store = DurableStore(storage_engine, encrypted_keys=["userToken"])

        store.set("userToken", "clear-value")

        assert store.get("userToken") == "clear-value"

    def test_overwrite_and_clear(self, store):
        store.set("cart-storage", {"items": [], "total": 0})
        store.set("cart-storage", {"items": [], "total": 1})

        assert store.get("cart-storage") == {"items": [], "total": 1}
        assert store.keys() == ["cart-storage"]

        store.clear("cart-storage")

        assert store.get("cart-storage") is None
        assert store.keys() == []


class TestLogSanitization:
    """Test credential masking applied to every log record"""

    @pytest.mark.parametrize("message,secret", [
        ("Authorization: Bearer abc.def.ghi", "abc.def.ghi"),
        ("got eyJhbGciOiJIUzI1NiJ9.eyJzdWIiOiIxIn0.sig from refresh", "eyJhbGciOiJIUzI1NiJ9"),
        ("password=hunter2 rejected", "hunter2"),
        ("token: s3cr3t", "s3cr3t"),
        ("login for shopper@example.com", "shopper@"),
    ])
    def test_sensitive_values_are_masked(self, message, secret):
        sanitized = SecurityLogFilter._sanitize_message(message)

        assert secret not in sanitized
        assert "****" in sanitized

    def test_filter_rewrites_record(self):
        record = logging.LogRecord(
            "storefront.test", logging.INFO, __file__, 1, "Using Bearer %s", ("abc123",), None
        )

        assert SecurityLogFilter().filter(record) is True

        assert record.getMessage() == "Using Bearer ****"
        assert record.security_event is False

    def test_security_level_tagging(self):
        record = logging.LogRecord(
            "storefront.test", logging.WARNING, __file__, 1, "Admin token expired", (), None
        )

        SecurityLogFilter().filter(record)

        assert record.security_event is True
        assert record.security_level == "high"

    async def test_request_pipeline_does_not_log_tokens(self, caplog, session, api, api_client):
        caplog.set_level(logging.DEBUG)
        session.login(Role.CUSTOMER, "very-secret-customer-token", ProfileFactory.customer())
        api.route("GET", "/orders", json_response(200, {"orders": []}))

        await api_client.send(ApiRequest("GET", "/orders"))

        assert_no_sensitive_data_in_logs(caplog, ["very-secret-customer-token"])
