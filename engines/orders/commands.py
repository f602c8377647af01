"""
Bazaar Orders Engine — Request Models
========================================
Checkout input, validated at the boundary before anything touches
inventory. Prices are never accepted from the client.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Tuple

from core.commands.base import (
    require_non_negative_int,
    require_positive_int,
    require_text,
)
from core.errors import ValidationError

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MAX_CART_LINES = 100


@dataclass(frozen=True)
class CartItemRequest:
    product_id: str
    quantity: int
    variant_id: Optional[str] = None

    def __post_init__(self):
        require_text(self.product_id, "product_id")
        require_positive_int(self.quantity, "quantity")
        if self.variant_id is not None:
            require_text(self.variant_id, "variant_id")


@dataclass(frozen=True)
class ShippingAddress:
    full_name: str
    line1: str
    city: str
    postal_code: str
    country: str
    line2: str = ""
    state: str = ""
    phone: str = ""

    def __post_init__(self):
        for name in ("full_name", "line1", "city", "postal_code", "country"):
            require_text(getattr(self, name), name, max_length=200)

    def to_dict(self) -> dict:
        return {
            "full_name": self.full_name,
            "line1": self.line1,
            "line2": self.line2,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
            "phone": self.phone,
        }


@dataclass(frozen=True)
class PlaceOrderRequest:
    """
    items:          cart lines, at least one, no repeated (product, variant)
    guest_email:    set for guest checkout; the order then has no user
    shipping_cost:  quoted shipping in minor units, waived by a
                    free-shipping coupon
    """
    items: Tuple[CartItemRequest, ...]
    shipping_address: ShippingAddress
    coupon_code: Optional[str] = None
    guest_email: Optional[str] = None
    shipping_cost: int = 0

    def __post_init__(self):
        object.__setattr__(self, "items", tuple(self.items))
        if not self.items:
            raise ValidationError("Cart is empty.", field="items")
        if len(self.items) > MAX_CART_LINES:
            raise ValidationError(
                f"Cart cannot exceed {MAX_CART_LINES} lines.", field="items",
            )
        for item in self.items:
            if not isinstance(item, CartItemRequest):
                raise ValidationError("items must be CartItemRequest.", field="items")
        keys = [(i.product_id, i.variant_id) for i in self.items]
        if len(set(keys)) != len(keys):
            raise ValidationError(
                "Each product/variant may appear only once in the cart.",
                field="items",
            )
        if not isinstance(self.shipping_address, ShippingAddress):
            raise ValidationError(
                "shipping_address must be ShippingAddress.", field="shipping_address",
            )
        if self.coupon_code is not None:
            require_text(self.coupon_code, "coupon_code", max_length=50)
        if self.guest_email is not None and not EMAIL_PATTERN.match(self.guest_email):
            raise ValidationError("guest_email is not a valid address.", field="guest_email")
        require_non_negative_int(self.shipping_cost, "shipping_cost")
