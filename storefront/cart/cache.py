"""
Optimistic cart cache.

The cache is the source of truth for the UI. Mutations are synchronous:
they update the lines, recompute the total and persist the whole state
before returning. Backend reconciliation (sync, load, price checks) runs on
the best-effort channel and can fail without the user ever seeing it.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from storefront.auth.roles import CART_STORAGE_KEY, Role
from storefront.auth.session import SessionContext
from storefront.cart.background import BestEffortChannel
from storefront.cart.models import (
    CartLineItem,
    CartState,
    compute_total,
    count_items,
    new_line_id,
    product_id_of,
    snapshot_price,
    to_number,
    to_quantity,
    variant_signature,
)
from storefront.core.config import settings
from storefront.core.utils.storage import DurableStore
from storefront.http.client import ApiClient

logger = logging.getLogger(__name__)

CART_PATH = "/cart"
CART_SYNC_PATH = "/cart/sync"
PRICE_CHANGE_MESSAGE = "Cart prices updated with current prices"

# Variant attributes used to find the matching entry in a product's variant table
VARIANT_MATCH_KEYS = ("color", "material")


def current_unit_price(product: Dict[str, Any], variant: Optional[dict]) -> Any:
    """Authoritative price of a product, or of the matching variant when there is one"""
    price = product.get("price")
    variants = product.get("variants") or []
    if variant and variants:
        for candidate in variants:
            if not isinstance(candidate, dict):
                continue
            if all(candidate.get(key) == variant.get(key) for key in VARIANT_MATCH_KEYS):
                return candidate.get("price", price)
    return price


class CartCache:
    """Cart line items with optimistic local mutation and background reconciliation."""

    def __init__(
        self,
        store: DurableStore,
        session: SessionContext,
        client: ApiClient,
        channel: Optional[BestEffortChannel] = None,
    ):
        self._store = store
        self._session = session
        self._client = client
        self.channel = channel or BestEffortChannel()
        self.is_loading = False
        # Set between a customer login and the end of the backend cart takeover
        self.sync_held = False
        self._state = self._restore()
        session.credentials.add_clear_listener(self._on_credentials_cleared)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def items(self) -> List[CartLineItem]:
        return list(self._state.items)

    @property
    def total(self) -> float:
        return self._state.total

    @property
    def item_count(self) -> int:
        return count_items(self._state.items)

    def find(self, line_id: str) -> Optional[CartLineItem]:
        return next((item for item in self._state.items if item.id == line_id), None)

    def _restore(self) -> CartState:
        try:
            state = CartState.from_dict(self._store.get(CART_STORAGE_KEY))
        except Exception as e:
            logger.error(f"Failed to restore persisted cart: {e}")
            return CartState()
        logger.debug(f"Restored cart with {len(state.items)} lines")
        return state

    def _persist(self) -> None:
        try:
            self._store.set(CART_STORAGE_KEY, self._state.to_dict())
        except Exception as e:
            logger.error(f"Failed to persist cart: {e}")

    def _commit(self, items: List[CartLineItem], sync: bool = True) -> None:
        """Replace the lines, recompute the total, persist, and schedule a sync"""
        emptied = bool(self._state.items) and not items
        self._state.items = items
        self.recompute_total()
        self._persist()
        if sync:
            self.schedule_sync(allow_empty=emptied)

    def _on_credentials_cleared(self, role: Role) -> None:
        if role != Role.CUSTOMER:
            return
        # Persisted copy was already dropped with the customer credential
        self._state = CartState()
        self.sync_held = False
        logger.info("Customer session ended, local cart cleared")

    # ------------------------------------------------------------------
    # Synchronous mutations
    # ------------------------------------------------------------------

    def add(self, product: Dict[str, Any], quantity: int = 1, variant: Optional[dict] = None) -> CartLineItem:
        """Add a product (and variant) or increase the quantity of its existing line"""
        product_id = product_id_of(product)
        if not product_id:
            raise ValueError("Product has no id")
        quantity = to_quantity(quantity)
        if quantity is None or quantity <= 0:
            raise ValueError("Quantity must be a positive integer")

        identity = (product_id, variant_signature(variant))
        items = self.items
        for index, item in enumerate(items):
            if item.identity == identity:
                current = to_quantity(item.quantity) or 0
                line = CartLineItem(
                    id=item.id,
                    product_id=item.product_id,
                    product=item.product,
                    quantity=current + quantity,
                    unit_price=item.unit_price,
                    variant=item.variant,
                    added_at=item.added_at,
                )
                items[index] = line
                break
        else:
            line = CartLineItem(
                id=new_line_id(product_id),
                product_id=product_id,
                product=dict(product),
                quantity=quantity,
                unit_price=snapshot_price(product, variant),
                variant=dict(variant) if variant else None,
            )
            items.append(line)

        self._commit(items)
        self._session.notifier.success(f"{line.name} added to cart!")
        return line

    def remove(self, line_id: str) -> bool:
        items = [item for item in self._state.items if item.id != line_id]
        if len(items) == len(self._state.items):
            logger.debug(f"Cart line {line_id} not found")
            return False
        self._commit(items)
        self._session.notifier.success("Item removed from cart")
        return True

    def set_quantity(self, line_id: str, quantity: Any) -> bool:
        """Set a line's quantity; zero or less removes the line"""
        quantity = to_quantity(quantity)
        if quantity is None:
            raise ValueError("Quantity must be an integer")
        if quantity <= 0:
            return self.remove(line_id)

        found = False
        items = []
        for item in self._state.items:
            if item.id == line_id:
                found = True
                item = CartLineItem(**{**item.to_dict(), "quantity": quantity})
            items.append(item)
        if not found:
            logger.debug(f"Cart line {line_id} not found")
            return False
        self._commit(items)
        return True

    def clear(self) -> None:
        self._commit([], sync=False)
        # The backend mirror must be emptied too
        self.schedule_sync(allow_empty=True)
        self._session.notifier.success("Cart cleared")

    def recompute_total(self) -> float:
        """Derive the total from the current lines"""
        self._state.total = compute_total(self._state.items)
        return self._state.total

    # ------------------------------------------------------------------
    # Background reconciliation
    # ------------------------------------------------------------------

    def schedule_sync(self, allow_empty: bool = False) -> bool:
        """
        Queue a background push of the local cart.

        Nothing is queued for a guest, or while the backend cart of a fresh
        login has not been loaded yet.
        """
        if not self._session.is_authenticated(Role.CUSTOMER):
            logger.debug("Customer not authenticated, cart sync not scheduled")
            return False
        if self.sync_held:
            logger.debug("Backend cart not loaded yet, cart sync not scheduled")
            return False
        return self.channel.submit("cart sync", self.sync_with_backend, allow_empty)

    def schedule_login_takeover(self) -> bool:
        """Hold syncs and queue the post-login cart initialization"""
        self.sync_held = True
        if not self.channel.submit("cart initialization", self.initialize_after_login):
            self.sync_held = False
            return False
        return True

    async def sync_with_backend(self, allow_empty: bool = False) -> bool:
        """
        Push the full local line list to the backend cart.

        Advisory: returns False instead of raising when the push is skipped
        or fails.
        """
        if not self._session.is_authenticated(Role.CUSTOMER):
            logger.debug("Customer not authenticated, skipping cart sync")
            return False
        if self.sync_held:
            logger.debug("Backend cart not loaded yet, skipping cart sync")
            return False
        if not self._state.items and not allow_empty:
            logger.debug("Cart empty, skipping cart sync")
            return False

        payload = [item.to_sync_payload() for item in self._state.items]
        try:
            await self._client.post(CART_SYNC_PATH, json={"items": payload}, notify=False)
        except Exception as e:
            logger.warning(f"Cart sync failed: {e}")
            return False
        logger.info(f"Cart synced with backend ({len(payload)} lines)")
        return True

    async def load_from_backend(self) -> bool:
        """
        Replace the local cart with the backend copy.

        An empty backend cart leaves the local lines in place so they can be
        pushed by the following sync.
        """
        if not self._session.is_authenticated(Role.CUSTOMER):
            return False

        self.is_loading = True
        try:
            body = await self._client.get(CART_PATH, notify=False)
        except Exception as e:
            logger.warning(f"Loading cart from backend failed, keeping local cart: {e}")
            return False
        finally:
            self.is_loading = False

        cart = body.get("cart") if isinstance(body, dict) else None
        raw_items = cart.get("items") if isinstance(cart, dict) else None
        if not isinstance(raw_items, list):
            logger.warning("Backend cart response had no item list, keeping local cart")
            return False

        items = [line for line in (CartLineItem.from_backend(raw) for raw in raw_items) if line]
        if not items:
            logger.info("Backend cart is empty, keeping local cart")
            return False

        self._commit(items, sync=False)
        logger.info(f"Loaded cart from backend ({len(items)} lines)")
        return True

    async def initialize_after_login(self) -> None:
        """Take over the backend cart after a customer login, then push the result"""
        try:
            await self.load_from_backend()
        finally:
            self.sync_held = False
        await self.sync_with_backend()

    async def _fetch_line_update(self, item: CartLineItem) -> Optional[CartLineItem]:
        """Current product data for one line; None when the lookup fails"""
        try:
            body = await self._client.get(f"/products/{item.product_id}", notify=False)
        except Exception as e:
            logger.warning(f"Price lookup failed for product {item.product_id}: {e}")
            return None

        product = body.get("product") if isinstance(body, dict) else None
        if not isinstance(product, dict):
            logger.warning(f"Price lookup for product {item.product_id} returned no product")
            return None

        fresh_price = to_number(current_unit_price(product, item.variant))
        old_price = to_number(item.unit_price)
        if fresh_price is None:
            return CartLineItem(**{**item.to_dict(), "product": product})

        if old_price is None or abs(fresh_price - old_price) > settings.PRICE_EPSILON:
            logger.info(f"Price updated for {product.get('name', item.product_id)}: {old_price} -> {fresh_price}")
            variant = {**item.variant, "price": fresh_price} if item.variant else None
            return CartLineItem(
                **{
                    **item.to_dict(),
                    "product": {**product, "price": fresh_price},
                    "variant": variant,
                    "unit_price": fresh_price,
                }
            )

        return CartLineItem(**{**item.to_dict(), "product": product})

    async def reconcile_prices(self) -> int:
        """
        Re-price every line against the current product data.

        Lines are looked up concurrently and independently; a failed lookup
        keeps that line as it was.

        Returns:
            Number of lines whose price changed
        """
        snapshot = self.items
        if not snapshot:
            return 0

        results = await asyncio.gather(*(self._fetch_line_update(item) for item in snapshot))
        fetched = {
            original.id: (original, updated)
            for original, updated in zip(snapshot, results)
            if updated is not None
        }

        changed = 0
        items = []
        # Apply onto the cart as it is now; lines may have changed meanwhile
        for item in self._state.items:
            entry = fetched.get(item.id)
            if entry is None:
                items.append(item)
                continue
            original, updated = entry
            repriced = to_number(updated.unit_price) != to_number(original.unit_price)
            if repriced:
                changed += 1
            items.append(
                CartLineItem(
                    **{
                        **item.to_dict(),
                        "product": updated.product,
                        "variant": updated.variant if repriced else item.variant,
                        "unit_price": updated.unit_price,
                    }
                )
            )

        if changed:
            self._commit(items)
            self._session.notifier.success(PRICE_CHANGE_MESSAGE)
        else:
            self._commit(items, sync=False)

        logger.info(f"Cart price reconciliation completed ({changed} lines repriced)")
        return changed
