"""Role-partitioned durable storage of session tokens."""

import logging
from typing import Callable, List, Optional

from storefront.auth.roles import (
    ROLE_ADJACENT_KEYS,
    ROLE_PRIORITY,
    STORAGE_KEYS,
    Role,
    SessionToken,
)
from storefront.core.utils.storage import DurableStore

logger = logging.getLogger(__name__)

ClearListener = Callable[[Role], None]


class CredentialStore:
    """Holds at most one token per role; roles never affect each other."""

    def __init__(self, store: DurableStore):
        self._store = store
        self._clear_listeners: List[ClearListener] = []

    @staticmethod
    def token_keys() -> List[str]:
        """Storage keys that hold bearer credentials"""
        return [token_key for token_key, _ in STORAGE_KEYS.values()]

    def add_clear_listener(self, listener: ClearListener) -> None:
        """Register a callback run after a role's credential is cleared"""
        self._clear_listeners.append(listener)

    def set(self, role: Role, token: str, profile: Optional[dict] = None) -> SessionToken:
        """Store a token and profile for a role, replacing any previous one."""
        token_key, profile_key = STORAGE_KEYS[role]
        self._store.set(token_key, token)
        self._store.set(profile_key, profile or {})
        logger.debug(f"Stored credential for {role.value} role")
        return SessionToken(role=role, value=token, profile=profile or {})

    def get(self, role: Role) -> Optional[SessionToken]:
        """Return the role's token and profile, or None. Never raises."""
        token_key, profile_key = STORAGE_KEYS[role]
        try:
            value = self._store.get(token_key)
            if not value or not isinstance(value, str):
                return None
            profile = self._store.get(profile_key)
        except Exception as e:
            logger.error(f"Failed to read credential for {role.value} role: {e}")
            return None
        return SessionToken(
            role=role,
            value=value,
            profile=profile if isinstance(profile, dict) else {},
        )

    def update_profile(self, role: Role, profile: dict) -> None:
        """Replace the profile of an existing session without touching its token"""
        _, profile_key = STORAGE_KEYS[role]
        self._store.set(profile_key, profile)

    def clear(self, role: Role) -> None:
        """Remove a role's token, profile, and any data tied to that identity."""
        token_key, profile_key = STORAGE_KEYS[role]
        for key in (token_key, profile_key, *ROLE_ADJACENT_KEYS[role]):
            self._store.clear(key)
        logger.info(f"Cleared credential for {role.value} role")

        for listener in self._clear_listeners:
            try:
                listener(role)
            except Exception as e:
                logger.error(f"Credential clear listener failed for {role.value} role: {e}")

    def has_token(self, role: Role) -> bool:
        return self.get(role) is not None

    def live_roles(self) -> List[Role]:
        """Roles that currently hold a token, most privileged first"""
        return [role for role in ROLE_PRIORITY if self.has_token(role)]
