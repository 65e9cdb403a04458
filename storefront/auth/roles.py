"""Session roles, their storage keys, and request-path role resolution."""

from enum import Enum
from typing import Iterable, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field

from storefront.core.config import settings


class Role(str, Enum):
    ADMIN = "admin"
    SELLER = "seller"
    CUSTOMER = "customer"


# Highest privilege first
ROLE_PRIORITY = (Role.ADMIN, Role.SELLER, Role.CUSTOMER)

STORAGE_KEYS = {
    Role.CUSTOMER: ("userToken", "userData"),
    Role.ADMIN: ("adminToken", "adminData"),
    Role.SELLER: ("sellerToken", "sellerData"),
}

CART_STORAGE_KEY = "cart-storage"
WISHLIST_STORAGE_KEY = "wishlist"

# Data that belongs to a role's identity and goes away with its session
ROLE_ADJACENT_KEYS = {
    Role.CUSTOMER: (CART_STORAGE_KEY, WISHLIST_STORAGE_KEY),
    Role.ADMIN: (),
    Role.SELLER: (),
}


class SessionToken(BaseModel):
    """A live bearer credential for one role."""

    model_config = ConfigDict(frozen=True)

    role: Role
    value: str
    profile: dict = Field(default_factory=dict)


def request_namespace(path: str) -> Optional[Role]:
    """Return the role whose namespace the path belongs to, if any."""
    path = urlsplit(path).path
    segments = [segment for segment in path.split("/") if segment]
    if not segments:
        return None
    first = segments[0].lower()
    if first == settings.ADMIN_NAMESPACE:
        return Role.ADMIN
    if first == settings.SELLER_NAMESPACE:
        return Role.SELLER
    return None


def resolve_role(path: str, live_roles: Iterable[Role]) -> Optional[Role]:
    """
    Decide which role's credential an outgoing request carries.

    Admin and seller namespaces always map to their own role. Any other path
    uses the most privileged role that currently holds a token.
    """
    namespace = request_namespace(path)
    if namespace is not None:
        return namespace

    live = set(live_roles)
    for role in ROLE_PRIORITY:
        if role in live:
            return role
    return None
