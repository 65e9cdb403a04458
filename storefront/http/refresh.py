"""
Silent re-authentication for the customer role.

Admin and seller tokens are not renewable inside the client; only a customer
session may be refreshed, using the refresh cookie the API set at login.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Optional

import httpx

from storefront.auth.roles import Role
from storefront.auth.session import SessionContext
from storefront.core.config import settings

logger = logging.getLogger(__name__)


class RefreshState(str, Enum):
    AUTHENTICATED_STALE = "authenticated_stale"
    REFRESHING = "refreshing"
    AUTHENTICATED_FRESH = "authenticated_fresh"
    LOGGED_OUT = "logged_out"


class RefreshFailedError(Exception):
    """The refresh endpoint did not hand out a new customer token."""
    pass


def extract_access_token(payload: Any) -> Optional[str]:
    """Find the new bearer token in a refresh or login response body"""
    if not isinstance(payload, dict):
        return None
    for container in (payload, payload.get("data")):
        if not isinstance(container, dict):
            continue
        for key in ("accessToken", "token"):
            token = container.get(key)
            if isinstance(token, str) and token:
                return token
    return None


class RefreshProtocol:
    """
    Single-flight customer token refresh.

    Concurrent callers that hit a 401 while a refresh is already running wait
    for that refresh instead of starting another one.
    """

    def __init__(self, http_client: httpx.AsyncClient, session: SessionContext, refresh_path: Optional[str] = None):
        self._http = http_client
        self._session = session
        self._refresh_path = refresh_path or settings.REFRESH_PATH
        self._in_flight: Optional[asyncio.Future] = None
        self.state = RefreshState.AUTHENTICATED_STALE
        self.attempts = 0

    async def refresh(self) -> str:
        """
        Obtain a fresh customer token.

        Returns:
            The new token, already stored for the customer role

        Raises:
            RefreshFailedError: The customer session is over; it has been
                cleared, the user notified and sent to the login surface
        """
        if self._in_flight is not None:
            logger.debug("Joining in-flight customer token refresh")
            return await asyncio.shield(self._in_flight)

        loop = asyncio.get_running_loop()
        self._in_flight = loop.create_future()
        future = self._in_flight
        try:
            token = await self._perform_refresh()
        except RefreshFailedError as e:
            future.set_exception(e)
            # Mark retrieved so joiners are optional
            future.exception()
            raise
        except BaseException:
            future.cancel()
            raise
        else:
            future.set_result(token)
            return token
        finally:
            self._in_flight = None

    async def _perform_refresh(self) -> str:
        self.state = RefreshState.REFRESHING
        self.attempts += 1
        logger.info("Customer token rejected, attempting refresh")

        try:
            response = await self._http.post(self._refresh_path, json={})
            response.raise_for_status()
            payload = response.json()
            token = extract_access_token(payload)
            if token is None:
                raise RefreshFailedError("Refresh response did not contain an access token")
        except Exception as e:
            logger.warning(f"Token refresh failed: {e}")
            self.state = RefreshState.LOGGED_OUT
            self._session.expire(Role.CUSTOMER)
            if isinstance(e, RefreshFailedError):
                raise
            raise RefreshFailedError(f"Token refresh failed: {e}") from e

        profile = payload.get("user") if isinstance(payload.get("user"), dict) else None
        self._session.refreshed(token, profile)
        self.state = RefreshState.AUTHENTICATED_FRESH
        logger.info("Customer token refreshed")
        return token
