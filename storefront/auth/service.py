"""Login, registration and logout against the commerce API."""

import logging
from typing import Any, Optional, Tuple

from storefront.auth.roles import Role, SessionToken
from storefront.auth.session import SessionContext
from storefront.cart.cache import CartCache
from storefront.core.logging_config import log_session_transition
from storefront.http.client import ApiClient
from storefront.http.errors import ApiError, AuthenticationError
from storefront.http.refresh import extract_access_token

logger = logging.getLogger(__name__)

# Where each role's login response keeps the profile
PROFILE_KEYS = {
    Role.CUSTOMER: "user",
    Role.ADMIN: "admin",
    Role.SELLER: "seller",
}


def parse_auth_response(role: Role, payload: Any) -> Tuple[str, dict]:
    """
    Extract the token and profile from a login/registration response.

    Raises:
        AuthenticationError: The response carried no token
    """
    token = extract_access_token(payload)
    if token is None:
        raise AuthenticationError(f"{role.value.capitalize()} login response did not include a token")

    profile_key = PROFILE_KEYS[role]
    profile = None
    for container in (payload, payload.get("data")):
        if isinstance(container, dict) and isinstance(container.get(profile_key), dict):
            profile = container[profile_key]
            break
    return token, profile or {}


class AuthService:
    """Role-specific authentication flows."""

    def __init__(self, client: ApiClient, session: SessionContext, cart: Optional[CartCache] = None):
        self._client = client
        self._session = session
        self._cart = cart

    async def _authenticate(self, role: Role, path: str, body: dict) -> SessionToken:
        try:
            payload = await self._client.post(path, json=body)
        except ApiError:
            log_session_transition(role.value, "login", success=False)
            raise
        token, profile = parse_auth_response(role, payload)
        return self._session.login(role, token, profile)

    async def login_customer(self, email: str, password: str) -> SessionToken:
        session_token = await self._authenticate(
            Role.CUSTOMER, "/auth/login", {"email": email, "password": password}
        )
        self._after_customer_login()
        return session_token

    async def register_customer(
        self,
        email: str,
        password: str,
        display_name: str,
        phone_number: Optional[str] = None,
    ) -> SessionToken:
        body = {"email": email, "password": password, "displayName": display_name}
        if phone_number:
            body["phoneNumber"] = phone_number
        session_token = await self._authenticate(Role.CUSTOMER, "/auth/register", body)
        self._after_customer_login()
        return session_token

    async def login_admin(self, email: str, password: str) -> SessionToken:
        return await self._authenticate(Role.ADMIN, "/admin/login", {"email": email, "password": password})

    async def login_seller(self, email: str, password: str) -> SessionToken:
        return await self._authenticate(Role.SELLER, "/seller/login", {"email": email, "password": password})

    def _after_customer_login(self) -> None:
        if self._cart is not None:
            self._cart.schedule_login_takeover()

    async def logout_customer(self) -> None:
        """Revoke the refresh cookie server-side when possible, then end the local session"""
        if self._session.is_authenticated(Role.CUSTOMER):
            try:
                await self._client.post("/auth/logout")
            except ApiError as e:
                logger.warning(f"Server-side logout failed: {e}")
        self._session.logout(Role.CUSTOMER)

    def _merge_customer_profile(self, payload: Any) -> dict:
        """Merge the `user` of a profile response into the stored customer profile"""
        user = None
        for container in (payload, payload.get("data") if isinstance(payload, dict) else None):
            if isinstance(container, dict) and isinstance(container.get("user"), dict):
                user = container["user"]
                break
        if user is None:
            raise ApiError("Profile response did not include a user", payload=payload)

        current = self._session.profile(Role.CUSTOMER) or {}
        self._session.credentials.update_profile(Role.CUSTOMER, {**current, **user})
        return user

    async def fetch_customer_profile(self) -> dict:
        """Reload the customer's profile from the API and persist it"""
        if not self._session.is_authenticated(Role.CUSTOMER):
            raise AuthenticationError("Customer is not logged in")
        payload = await self._client.get("/users/profile")
        return self._merge_customer_profile(payload)

    async def update_customer_profile(self, changes: dict) -> dict:
        """Send profile changes and persist the profile the API returns"""
        if not self._session.is_authenticated(Role.CUSTOMER):
            raise AuthenticationError("Customer is not logged in")
        payload = await self._client.put("/users/profile", json=changes)
        user = self._merge_customer_profile(payload)
        logger.info("Customer profile updated")
        return user

    def logout_admin(self) -> None:
        self._session.logout(Role.ADMIN)

    def logout_seller(self) -> None:
        self._session.logout(Role.SELLER)
