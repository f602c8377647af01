"""
Bazaar Orders Engine — Order Builder
=======================================
Turns a validated checkout request into a persisted Order.

Steps:
1. Price every cart line from the catalog (variant price overrides
   product price). Client prices are never trusted.
2. Run the discount resolver over the whole cart. A rejected coupon
   aborts checkout.
3. Per-seller commission over the pre-discount line totals.
4. Saga, unwound in reverse on any failure or interruption:
       reserve each line → persist order → record coupon usage
       → split by seller (multi-seller) or credit escrow (single)
5. Clear the customer's active cart and emit orders.order.created.

Discounts are platform-funded: seller commission and payout are
computed on the gross line totals.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import nullcontext
from dataclasses import dataclass, replace
from typing import Callable, ContextManager, List, Optional, Tuple

from core.commands.base import RequestContext
from core.config import MarketplaceRules
from core.errors import Forbidden, NotFound, NoValidSellers, ValidationError
from core.events import ORDER_CREATED, NotificationDispatcher, NotificationEvent
from core.resilience import CompensationStack
from core.time import Clock, SystemClock
from engines.commission import CommissionCalculator
from engines.inventory import InventoryLedger
from engines.orders.catalog import Catalog
from engines.orders.commands import CartItemRequest, PlaceOrderRequest
from engines.orders.escrow import EscrowLedger
from engines.orders.models import (
    BasketLine,
    Order,
    OrderStatus,
    SellerEarnings,
    SubOrder,
)
from engines.orders.splitter import SubOrderSplitter, group_by_seller
from engines.orders.store import CartStore, OrderStore
from engines.promotion import DiscountResolver, DiscountResult

logger = logging.getLogger("bazaar.orders")


@dataclass(frozen=True)
class PlacedOrder:
    order: Order
    discount: DiscountResult
    sub_orders: Tuple[SubOrder, ...] = ()
    earnings: Tuple[SellerEarnings, ...] = ()
    discarded_lines: Tuple[BasketLine, ...] = ()

    @property
    def is_split(self) -> bool:
        return bool(self.sub_orders)


class OrderBuilder:

    def __init__(
        self,
        catalog: Catalog,
        ledger: InventoryLedger,
        resolver: DiscountResolver,
        commission: CommissionCalculator,
        orders: OrderStore,
        splitter: SubOrderSplitter,
        escrow: EscrowLedger,
        carts: Optional[CartStore] = None,
        notifier: Optional[NotificationDispatcher] = None,
        rules: Optional[MarketplaceRules] = None,
        clock: Optional[Clock] = None,
        atomic: Callable[[], ContextManager] = nullcontext,
    ):
        self._catalog = catalog
        self._ledger = ledger
        self._resolver = resolver
        self._commission = commission
        self._orders = orders
        self._splitter = splitter
        self._escrow = escrow
        self._carts = carts
        self._notifier = notifier or NotificationDispatcher()
        self._rules = rules or MarketplaceRules()
        self._clock = clock or SystemClock()
        self._atomic = atomic

    def place_order(self, ctx: RequestContext, request: PlaceOrderRequest) -> PlacedOrder:
        user_id, guest_email = self._owner(ctx, request)
        lines = [self._price_line(item) for item in request.items]

        groups, _ = group_by_seller(lines, self._rules)
        if not groups:
            raise NoValidSellers("None of the cart items has a valid seller.")
        single_seller = len({line.seller_id for line in lines}) == 1

        discount = self._resolver.resolve(
            lines, customer_id=user_id or guest_email, coupon_code=request.coupon_code,
        )
        lines = self._apply_promotions(lines, discount)
        coupon = discount.coupon
        coupon_applied = coupon is not None and (
            discount.coupon_discount > 0 or discount.free_shipping
        )
        shipping = 0 if discount.free_shipping else request.shipping_cost

        valid_lines = [line for group in groups.values() for line in group]
        totals = self._commission.by_seller(valid_lines)

        now = self._clock.now_utc()
        order = Order(
            order_id=str(uuid.uuid4()),
            basket=tuple(lines),
            subtotal_before_discount=discount.original_subtotal,
            amount=discount.final_total + shipping,
            status=OrderStatus.PENDING_PAYMENT,
            created_at=now,
            updated_at=now,
            user_id=user_id,
            guest_email=guest_email,
            shipping_address=request.shipping_address.to_dict(),
            shipping_cost=shipping,
            coupon_id=coupon.coupon_id if coupon_applied else None,
            coupon_code=coupon.code if coupon_applied else None,
            coupon_discount=discount.coupon_discount,
            promotional_discount=discount.promotional_discount,
            commission_amount=sum(t.commission for t in totals.values()),
            seller_payout_amount=sum(t.payout for t in totals.values()),
            seller_id=lines[0].seller_id if single_seller else None,
        )

        sub_orders: Tuple[SubOrder, ...] = ()
        earnings: Tuple[SellerEarnings, ...] = ()
        discarded: Tuple[BasketLine, ...] = ()

        with CompensationStack(f"place_order:{order.order_id}") as comp:
            self._reserve_all(order, comp)

            with self._atomic():
                self._orders.create(order)
                comp.push(
                    f"delete order {order.order_id}",
                    lambda: self._orders.delete(order.order_id),
                )

                if coupon_applied:
                    self._resolver.record_usage(
                        coupon, user_id or guest_email, order.order_id,
                        discount.coupon_discount,
                    )
                    comp.push(
                        f"release coupon {coupon.code}",
                        lambda: self._resolver.release_usage(coupon.coupon_id, order.order_id),
                    )

                if single_seller:
                    seller_totals = totals[order.seller_id]
                    row = self._escrow.credit(
                        seller_id=order.seller_id,
                        order_id=order.order_id,
                        gross_amount=seller_totals.gross,
                        commission_amount=seller_totals.commission,
                    )
                    comp.push(
                        f"delete earnings {row.earnings_id}",
                        lambda: self._escrow.remove(row.earnings_id),
                    )
                    earnings = (row,)
                else:
                    split = self._splitter.split(order)
                    comp.push(
                        f"undo split of {order.order_id}",
                        lambda: self._splitter.undo(split),
                    )
                    sub_orders = split.sub_orders
                    earnings = split.earnings
                    discarded = split.discarded_lines
            comp.commit()

        logger.info(
            "Order %s placed: %d line(s), amount %d, %d sub-order(s)",
            order.order_id, len(order.basket), order.amount, len(sub_orders),
        )
        self._clear_cart(user_id)
        self._notifier.emit(NotificationEvent(
            event_type=ORDER_CREATED,
            subject_id=order.order_id,
            actor_id=ctx.actor_id,
            occurred_at=now,
            new_status=str(order.status),
            payload={
                "amount": order.amount,
                "seller_ids": [s for s in order.seller_ids if s],
                "sub_order_ids": [s.sub_order_id for s in sub_orders],
            },
        ))
        return PlacedOrder(
            order=order,
            discount=discount,
            sub_orders=sub_orders,
            earnings=earnings,
            discarded_lines=discarded,
        )

    # ── helpers ───────────────────────────────────────────────

    def _owner(
        self, ctx: RequestContext, request: PlaceOrderRequest,
    ) -> Tuple[Optional[str], Optional[str]]:
        if request.guest_email:
            return None, request.guest_email
        if not ctx.actor.is_customer:
            raise Forbidden("Only customers can place orders.")
        return ctx.actor_id, None

    def _price_line(self, item: CartItemRequest) -> BasketLine:
        product = self._catalog.get_product(item.product_id)
        if product is None:
            raise NotFound("Product", item.product_id)
        if not product.is_active:
            raise ValidationError(
                f"Product {item.product_id} is not available.",
                field="items", code="PRODUCT_UNAVAILABLE",
            )
        price = product.price
        if item.variant_id is not None:
            variant = self._catalog.get_variant(item.variant_id)
            if variant is None:
                raise NotFound("Variant", item.variant_id)
            if variant.product_id != product.product_id:
                raise ValidationError(
                    f"Variant {item.variant_id} does not belong to product {product.product_id}.",
                    field="items",
                )
            if not variant.is_active:
                raise ValidationError(
                    f"Variant {item.variant_id} is not available.",
                    field="items", code="PRODUCT_UNAVAILABLE",
                )
            if variant.price is not None:
                price = variant.price
        return BasketLine(
            product_id=product.product_id,
            variant_id=item.variant_id,
            seller_id=product.seller_id,
            category_id=product.category_id,
            title=product.title,
            quantity=item.quantity,
            unit_price=price,
        )

    @staticmethod
    def _apply_promotions(lines: List[BasketLine], discount: DiscountResult) -> List[BasketLine]:
        if discount.promotional_discount <= 0:
            return lines
        priced = []
        for line in lines:
            breakdown = discount.line_for(line.product_id, line.variant_id)
            if breakdown is not None and breakdown.promotion_id:
                line = replace(
                    line,
                    promotional_price=breakdown.promotional_price,
                    promotion_id=breakdown.promotion_id,
                )
            priced.append(line)
        return priced

    def _reserve_all(self, order: Order, comp: CompensationStack) -> None:
        for line in order.basket:
            key, qty = line.inventory_key, line.quantity
            self._ledger.reserve(key, qty, reference=order.order_id)
            comp.push(
                f"release {key}",
                lambda key=key, qty=qty: self._ledger.release(
                    key, qty, reference=order.order_id,
                ),
            )

    def _clear_cart(self, user_id: Optional[str]) -> None:
        if self._carts is None or user_id is None:
            return
        try:
            self._carts.clear_active_cart(user_id)
        except Exception:
            logger.exception("Order placed but clearing the cart of %s failed", user_id)
