"""
Wiring of the session & cart synchronization layer.

`create_storefront` builds one explicit object graph: durable storage,
credential store, session context, request pipeline, cart cache and auth
service. Nothing here is a module-level singleton, so several independent
clients (or tests) can coexist in one process.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from storefront.auth.credentials import CredentialStore
from storefront.auth.service import AuthService
from storefront.auth.session import SessionContext
from storefront.cart.background import BestEffortChannel
from storefront.cart.cache import CartCache
from storefront.core.config import settings
from storefront.core.notifications import Navigator, Notifier
from storefront.core.utils.encryption import CredentialEncryption
from storefront.core.utils.storage import DurableStore
from storefront.db.session import create_storage_engine
from storefront.http.client import ApiClient, create_http_client

logger = logging.getLogger(__name__)


@dataclass
class Storefront:
    store: DurableStore
    session: SessionContext
    client: ApiClient
    cart: CartCache
    auth: AuthService
    channel: BestEffortChannel

    async def aclose(self) -> None:
        """Let background reconciliation finish, then close the HTTP client"""
        await self.channel.drain()
        await self.client.aclose()

    async def __aenter__(self) -> "Storefront":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


def create_storefront(
    storage_url: Optional[str] = None,
    base_url: Optional[str] = None,
    notifier: Optional[Notifier] = None,
    navigator: Optional[Navigator] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    encrypt_credentials: Optional[bool] = None,
) -> Storefront:
    """Build a storefront client and restore any persisted sessions and cart"""
    encrypt = settings.ENCRYPT_CREDENTIALS if encrypt_credentials is None else encrypt_credentials

    store = DurableStore(
        create_storage_engine(storage_url),
        encryption=CredentialEncryption() if encrypt else None,
        encrypted_keys=CredentialStore.token_keys(),
    )
    session = SessionContext(CredentialStore(store), notifier=notifier, navigator=navigator)
    session.restore()

    client = ApiClient(session, http_client=create_http_client(base_url=base_url, transport=transport))
    channel = BestEffortChannel()
    cart = CartCache(store, session, client, channel=channel)
    auth = AuthService(client, session, cart)

    logger.info(f"{settings.APP_NAME} client ready ({client.http.base_url})")
    return Storefront(store=store, session=session, client=client, cart=cart, auth=auth, channel=channel)
