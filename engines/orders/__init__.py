"""
Bazaar Orders Engine
======================
Order placement, per-seller split, escrow and status lifecycle.
"""

from engines.orders.builder import OrderBuilder, PlacedOrder
from engines.orders.catalog import (
    Catalog,
    CategoryInfo,
    InMemoryCatalog,
    ProductInfo,
    VariantInfo,
)
from engines.orders.commands import CartItemRequest, PlaceOrderRequest, ShippingAddress
from engines.orders.escrow import EscrowLedger
from engines.orders.models import (
    BasketLine,
    EarningsStatus,
    FulfillmentStatus,
    Order,
    OrderStatus,
    PayoutStatus,
    SellerEarnings,
    SubOrder,
)
from engines.orders.splitter import SplitResult, SubOrderSplitter
from engines.orders.status import (
    ORDER_WORKFLOW,
    PAYOUT_WORKFLOW,
    SUB_ORDER_WORKFLOW,
    OrderStatusMachine,
)
from engines.orders.store import (
    CartStore,
    EarningsStore,
    InMemoryCartStore,
    InMemoryEarningsStore,
    InMemoryOrderStore,
    InMemorySubOrderStore,
    OrderStore,
    SubOrderStore,
)

__all__ = [
    "OrderBuilder",
    "PlacedOrder",
    "Catalog",
    "CategoryInfo",
    "InMemoryCatalog",
    "ProductInfo",
    "VariantInfo",
    "CartItemRequest",
    "PlaceOrderRequest",
    "ShippingAddress",
    "EscrowLedger",
    "BasketLine",
    "EarningsStatus",
    "FulfillmentStatus",
    "Order",
    "OrderStatus",
    "PayoutStatus",
    "SellerEarnings",
    "SubOrder",
    "SplitResult",
    "SubOrderSplitter",
    "ORDER_WORKFLOW",
    "PAYOUT_WORKFLOW",
    "SUB_ORDER_WORKFLOW",
    "OrderStatusMachine",
    "CartStore",
    "EarningsStore",
    "OrderStore",
    "SubOrderStore",
    "InMemoryCartStore",
    "InMemoryEarningsStore",
    "InMemoryOrderStore",
    "InMemorySubOrderStore",
]
