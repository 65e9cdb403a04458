"""
Explicit session context shared by the request pipeline and the cart.

Holds the credential store together with the channels a credential
transition talks to (notifications and navigation), so nothing in the
client reaches for process-wide session state.
"""

import logging
from typing import Dict, Optional

from storefront.auth.credentials import CredentialStore
from storefront.auth.roles import Role, SessionToken
from storefront.core.config import settings
from storefront.core.logging_config import log_session_transition
from storefront.core.notifications import LoggingNavigator, LoggingNotifier, Navigator, Notifier

logger = logging.getLogger(__name__)

EXPIRY_MESSAGES = {
    Role.ADMIN: "Admin session expired. Please login again.",
    Role.SELLER: "Seller session expired. Please login again.",
    Role.CUSTOMER: "Session expired. Please login again.",
}


def login_route(role: Role) -> str:
    """The login surface a role is sent back to"""
    routes = {
        Role.ADMIN: settings.ADMIN_LOGIN_ROUTE,
        Role.SELLER: settings.SELLER_LOGIN_ROUTE,
        Role.CUSTOMER: settings.CUSTOMER_LOGIN_ROUTE,
    }
    return routes[role]


def is_valid_profile(role: Role, profile: Optional[dict]) -> bool:
    """Check that a persisted profile carries the identity fields of its role"""
    if not isinstance(profile, dict):
        return False
    if role == Role.CUSTOMER:
        return bool(profile.get("email")) and bool(profile.get("_id") or profile.get("id"))
    if role == Role.ADMIN:
        return bool(profile.get("username"))
    return bool(profile.get("email"))


class SessionContext:
    """Credential transitions for the three independent roles."""

    def __init__(
        self,
        credentials: CredentialStore,
        notifier: Optional[Notifier] = None,
        navigator: Optional[Navigator] = None,
    ):
        self.credentials = credentials
        self.notifier = notifier or LoggingNotifier()
        self.navigator = navigator or LoggingNavigator()

    def login(self, role: Role, token: str, profile: Optional[dict] = None) -> SessionToken:
        """Start a session for one role; the other roles are left as they are"""
        session_token = self.credentials.set(role, token, profile)
        log_session_transition(role.value, "login")
        return session_token

    def refreshed(self, token: str, profile: Optional[dict] = None) -> SessionToken:
        """Swap in a freshly issued customer token, keeping the known profile"""
        current = self.credentials.get(Role.CUSTOMER)
        if profile is None:
            profile = current.profile if current else {}
        session_token = self.credentials.set(Role.CUSTOMER, token, profile)
        log_session_transition(Role.CUSTOMER.value, "refresh")
        return session_token

    def logout(self, role: Role) -> None:
        self.credentials.clear(role)
        log_session_transition(role.value, "logout")

    def expire(self, role: Role) -> None:
        """End a role's session after its credential was rejected"""
        self.credentials.clear(role)
        log_session_transition(role.value, "expired")
        self.notifier.error(EXPIRY_MESSAGES[role])
        self.navigator.redirect(login_route(role))

    def restore(self) -> Dict[Role, bool]:
        """
        Validate persisted sessions on startup.

        A token whose profile is missing or malformed is discarded.

        Returns:
            Mapping of role to whether its session was restored
        """
        restored = {}
        for role in Role:
            session_token = self.credentials.get(role)
            if session_token is None:
                restored[role] = False
                continue
            if is_valid_profile(role, session_token.profile):
                logger.info(f"Restored {role.value} session")
                restored[role] = True
            else:
                logger.warning(f"Invalid {role.value} profile in storage, clearing session")
                self.credentials.clear(role)
                restored[role] = False
        return restored

    def token(self, role: Role) -> Optional[SessionToken]:
        return self.credentials.get(role)

    def is_authenticated(self, role: Role) -> bool:
        return self.credentials.has_token(role)

    def profile(self, role: Role) -> Optional[dict]:
        session_token = self.credentials.get(role)
        return session_token.profile if session_token else None
