"""
Cart line items and totals.

Line data may come back from partially malformed persisted state, so the
arithmetic here never trusts a field to be numeric.
"""

import json
import logging
import math
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

# Variant attributes that are not part of a line's identity
NON_IDENTITY_VARIANT_KEYS = frozenset({"price", "stock", "_id", "id"})


def product_id_of(product: Any) -> Optional[str]:
    """Product id from a product snapshot or a bare id"""
    if isinstance(product, dict):
        value = product.get("_id") or product.get("id")
        return str(value) if value is not None else None
    if product is None:
        return None
    return str(product)


def variant_signature(variant: Optional[dict]) -> str:
    """Normalized identity of a variant: its attributes minus price/stock, key-sorted"""
    if not variant:
        return ""
    identity = {
        str(key): value
        for key, value in variant.items()
        if key not in NON_IDENTITY_VARIANT_KEYS and value is not None
    }
    return json.dumps(identity, sort_keys=True, default=str)


def to_number(value: Any) -> Optional[float]:
    """Coerce a price-like value to a finite float, or None"""
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def to_quantity(value: Any) -> Optional[int]:
    """Coerce a quantity-like value to an int, or None when it is not a whole number"""
    number = to_number(value)
    if number is None or not number.is_integer():
        return None
    return int(number)


def is_empty_quantity(value: Any) -> bool:
    """A whole-number quantity of zero or less; such lines are never kept"""
    quantity = to_quantity(value)
    return quantity is not None and quantity <= 0


def snapshot_price(product: Optional[dict], variant: Optional[dict]) -> Any:
    """Unit price of a line: the variant price wins over the product price"""
    if variant and variant.get("price") is not None:
        return variant.get("price")
    if isinstance(product, dict):
        return product.get("price")
    return None


def new_line_id(product_id: str) -> str:
    return f"{product_id}_{uuid.uuid4().hex[:12]}"


@dataclass
class CartLineItem:
    id: str
    product_id: str
    product: Dict[str, Any]
    quantity: Any
    unit_price: Any
    variant: Optional[Dict[str, Any]] = None
    added_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def identity(self) -> tuple:
        return (self.product_id, variant_signature(self.variant))

    @property
    def name(self) -> str:
        return str(self.product.get("name", self.product_id)) if isinstance(self.product, dict) else self.product_id

    def subtotal(self) -> float:
        """quantity x unit price, or 0 when either is not a number"""
        price = to_number(self.unit_price)
        quantity = to_quantity(self.quantity)
        if price is None or quantity is None:
            logger.warning(f"Invalid price or quantity on cart line {self.id}")
            return 0.0
        return price * quantity

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_sync_payload(self) -> Dict[str, Any]:
        """Shape the cart sync endpoint expects for one line"""
        return {
            "product": {**self.product, "_id": self.product_id},
            "quantity": self.quantity,
            "variant": self.variant,
            "price": self.unit_price,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["CartLineItem"]:
        """Rebuild a persisted line; entries without a product or with no quantity left are dropped"""
        if not isinstance(data, dict):
            return None
        product = data.get("product") if isinstance(data.get("product"), dict) else {}
        product_id = data.get("product_id") or product_id_of(product)
        if not product_id or is_empty_quantity(data.get("quantity")):
            return None
        variant = data.get("variant") if isinstance(data.get("variant"), dict) else None
        return cls(
            id=str(data.get("id") or new_line_id(str(product_id))),
            product_id=str(product_id),
            product=product,
            quantity=data.get("quantity"),
            unit_price=data.get("unit_price", snapshot_price(product, variant)),
            variant=variant,
            added_at=str(data.get("added_at") or datetime.now(timezone.utc).isoformat()),
        )

    @classmethod
    def from_backend(cls, data: Dict[str, Any]) -> Optional["CartLineItem"]:
        """Build a line from an entry of the backend cart"""
        if not isinstance(data, dict):
            return None
        raw_product = data.get("product")
        product = raw_product if isinstance(raw_product, dict) else {"_id": raw_product}
        product_id = product_id_of(product)
        if not product_id or is_empty_quantity(data.get("quantity")):
            return None
        variant = data.get("variant") if isinstance(data.get("variant"), dict) else None
        price = snapshot_price(product, variant)
        if data.get("price") is not None:
            price = data.get("price")
        return cls(
            id=str(data.get("_id") or data.get("id") or new_line_id(product_id)),
            product_id=product_id,
            product=product,
            quantity=data.get("quantity"),
            unit_price=price,
            variant=variant,
            added_at=str(data.get("addedAt") or datetime.now(timezone.utc).isoformat()),
        )


def compute_total(items: Iterable[CartLineItem]) -> float:
    """Sum of line subtotals; invalid lines contribute 0"""
    total = sum(item.subtotal() for item in items)
    return total if math.isfinite(total) else 0.0


def count_items(items: Iterable[CartLineItem]) -> int:
    return sum(max(to_quantity(item.quantity) or 0, 0) for item in items)


@dataclass
class CartState:
    items: List[CartLineItem] = field(default_factory=list)
    total: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"items": [item.to_dict() for item in self.items], "total": self.total}

    @classmethod
    def from_dict(cls, data: Any) -> "CartState":
        if not isinstance(data, dict) or not isinstance(data.get("items"), list):
            return cls()
        items = [line for line in (CartLineItem.from_dict(raw) for raw in data["items"]) if line]
        return cls(items=items, total=compute_total(items))
