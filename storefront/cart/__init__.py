from storefront.cart.cache import CartCache
from storefront.cart.models import CartLineItem, CartState

__all__ = ["CartCache", "CartLineItem", "CartState"]
