"""
Bazaar Django Store — Repositories
=====================================
ORM implementations of the engine store protocols.

Compare-and-set is a conditional UPDATE:

    Row.objects.filter(pk=..., version=expected.version).update(...)

and succeeds only when exactly one row was touched. Multi-row writes
(inventory swap + movement, coupon usage + counter) run inside
transaction.atomic so they land together or not at all.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from django.db import IntegrityError, transaction
from django.db.models import F, Q

from adapters.django_store.codec import from_snapshot, to_snapshot
from adapters.django_store.models import (
    CommissionRateRow,
    CouponRow,
    CouponUsageRow,
    InventoryMovementRow,
    InventoryRecordRow,
    OrderRow,
    PromotionRow,
    RefundRequestRow,
    ReplacementRequestRow,
    SellerEarningsRow,
    SubOrderRow,
)
from core.errors import DuplicateRequest
from engines.commission.rates import CommissionRate, RateScope
from engines.inventory.models import (
    InventoryKey,
    InventoryKind,
    InventoryMovement,
    InventoryRecord,
    MovementType,
)
from engines.orders.models import EarningsStatus, Order, SellerEarnings, SubOrder
from engines.promotion.models import Coupon, CouponUsage, DiscountType, Promotion
from engines.returns.models import RefundRequest, ReplacementRequest


# ══════════════════════════════════════════════════════════════
# INVENTORY
# ══════════════════════════════════════════════════════════════

def _record_from_row(row: InventoryRecordRow) -> InventoryRecord:
    return InventoryRecord(
        key=InventoryKey(InventoryKind(row.kind), row.ref_id),
        quantity=row.quantity,
        reserved_quantity=row.reserved_quantity,
        low_stock_threshold=row.low_stock_threshold,
        version=row.version,
    )


def _movement_from_row(row: InventoryMovementRow) -> InventoryMovement:
    return InventoryMovement(
        key=InventoryKey(InventoryKind(row.kind), row.ref_id),
        movement_type=MovementType(row.movement_type),
        quantity=row.quantity,
        quantity_after=row.quantity_after,
        reserved_after=row.reserved_after,
        occurred_at=row.occurred_at,
        reason=row.reason,
        reference=row.reference,
    )


def _insert_movement(movement: InventoryMovement) -> None:
    InventoryMovementRow.objects.create(
        kind=movement.key.kind.value,
        ref_id=movement.key.ref_id,
        movement_type=movement.movement_type.value,
        quantity=movement.quantity,
        quantity_after=movement.quantity_after,
        reserved_after=movement.reserved_after,
        occurred_at=movement.occurred_at,
        reason=movement.reason,
        reference=movement.reference,
    )


class DjangoInventoryStore:

    def get(self, key: InventoryKey) -> Optional[InventoryRecord]:
        row = InventoryRecordRow.objects.filter(
            kind=key.kind.value, ref_id=key.ref_id,
        ).first()
        return _record_from_row(row) if row is not None else None

    def create(self, record: InventoryRecord, movement: InventoryMovement) -> bool:
        try:
            with transaction.atomic():
                InventoryRecordRow.objects.create(
                    kind=record.key.kind.value,
                    ref_id=record.key.ref_id,
                    quantity=record.quantity,
                    reserved_quantity=record.reserved_quantity,
                    low_stock_threshold=record.low_stock_threshold,
                    version=record.version,
                )
                _insert_movement(movement)
        except IntegrityError:
            return False
        return True

    def swap(
        self,
        expected: InventoryRecord,
        updated: InventoryRecord,
        movement: InventoryMovement,
    ) -> bool:
        with transaction.atomic():
            touched = InventoryRecordRow.objects.filter(
                kind=expected.key.kind.value,
                ref_id=expected.key.ref_id,
                version=expected.version,
            ).update(
                quantity=updated.quantity,
                reserved_quantity=updated.reserved_quantity,
                low_stock_threshold=updated.low_stock_threshold,
                version=updated.version,
            )
            if touched != 1:
                return False
            _insert_movement(movement)
        return True

    def all_records(self) -> List[InventoryRecord]:
        return [_record_from_row(r) for r in InventoryRecordRow.objects.order_by("kind", "ref_id")]

    def movements(self, key: InventoryKey) -> List[InventoryMovement]:
        rows = InventoryMovementRow.objects.filter(kind=key.kind.value, ref_id=key.ref_id)
        return [_movement_from_row(r) for r in rows.order_by("id")]


# ══════════════════════════════════════════════════════════════
# COMMISSION RATES
# ══════════════════════════════════════════════════════════════

def _rate_from_row(row: CommissionRateRow) -> CommissionRate:
    return CommissionRate(
        scope=RateScope(row.scope),
        percentage=row.percentage,
        is_active=row.is_active,
        seller_id=row.seller_id,
        category_id=row.category_id,
        rate_id=row.rate_id,
    )


class DjangoCommissionRateStore:

    def get(self, rate_id: str) -> Optional[CommissionRate]:
        row = CommissionRateRow.objects.filter(pk=rate_id).first()
        return _rate_from_row(row) if row is not None else None

    def save(self, rate: CommissionRate) -> None:
        CommissionRateRow.objects.update_or_create(
            rate_id=rate.rate_id,
            defaults={
                "scope": rate.scope.value,
                "percentage": rate.percentage,
                "is_active": rate.is_active,
                "seller_id": rate.seller_id,
                "category_id": rate.category_id,
            },
        )

    def find_active(
        self, scope: RateScope, scope_id: Optional[str] = None,
    ) -> Optional[CommissionRate]:
        rows = CommissionRateRow.objects.filter(scope=scope.value, is_active=True)
        if scope == RateScope.SELLER:
            rows = rows.filter(seller_id=scope_id)
        elif scope == RateScope.CATEGORY:
            rows = rows.filter(category_id=scope_id)
        row = rows.order_by("-created_at").first()
        return _rate_from_row(row) if row is not None else None

    def list_rates(self) -> List[CommissionRate]:
        return [_rate_from_row(r) for r in CommissionRateRow.objects.all()]


# ══════════════════════════════════════════════════════════════
# PROMOTIONS & COUPONS
# ══════════════════════════════════════════════════════════════

def _promotion_from_row(row: PromotionRow) -> Promotion:
    return Promotion(
        promotional_price=row.promotional_price,
        product_id=row.product_id,
        variant_id=row.variant_id,
        start_date=row.start_date,
        end_date=row.end_date,
        is_active=row.is_active,
        promotion_id=row.promotion_id,
    )


class DjangoPromotionStore:

    def save(self, promotion: Promotion) -> None:
        PromotionRow.objects.update_or_create(
            promotion_id=promotion.promotion_id,
            defaults={
                "product_id": promotion.product_id,
                "variant_id": promotion.variant_id,
                "promotional_price": promotion.promotional_price,
                "start_date": promotion.start_date,
                "end_date": promotion.end_date,
                "is_active": promotion.is_active,
            },
        )

    def for_product(self, product_id: str) -> List[Promotion]:
        return [_promotion_from_row(r) for r in PromotionRow.objects.filter(product_id=product_id)]

    def for_variant(self, variant_id: str) -> List[Promotion]:
        return [_promotion_from_row(r) for r in PromotionRow.objects.filter(variant_id=variant_id)]


def _coupon_from_row(row: CouponRow) -> Coupon:
    if row.discount_type == DiscountType.PERCENTAGE.value:
        value = Decimal(row.discount_value)
    else:
        value = int(row.discount_value)
    return Coupon(
        code=row.code,
        discount_type=DiscountType(row.discount_type),
        discount_value=value,
        start_date=row.start_date,
        end_date=row.end_date,
        is_active=row.is_active,
        usage_limit=row.usage_limit,
        usage_limit_per_customer=row.usage_limit_per_customer,
        times_used=row.times_used,
        min_purchase_amount=row.min_purchase_amount,
        max_discount_amount=row.max_discount_amount,
        allow_stacking=row.allow_stacking,
        applicable_product_ids=frozenset(row.applicable_product_ids),
        applicable_category_ids=frozenset(row.applicable_category_ids),
        coupon_id=row.coupon_id,
    )


class DjangoCouponStore:

    def save(self, coupon: Coupon) -> None:
        CouponRow.objects.update_or_create(
            coupon_id=coupon.coupon_id,
            defaults={
                "code": coupon.code,
                "discount_type": coupon.discount_type.value,
                "discount_value": Decimal(str(coupon.discount_value)),
                "start_date": coupon.start_date,
                "end_date": coupon.end_date,
                "is_active": coupon.is_active,
                "usage_limit": coupon.usage_limit,
                "usage_limit_per_customer": coupon.usage_limit_per_customer,
                "times_used": coupon.times_used,
                "min_purchase_amount": coupon.min_purchase_amount,
                "max_discount_amount": coupon.max_discount_amount,
                "allow_stacking": coupon.allow_stacking,
                "applicable_product_ids": sorted(coupon.applicable_product_ids),
                "applicable_category_ids": sorted(coupon.applicable_category_ids),
            },
        )

    def get_by_code(self, code: str) -> Optional[Coupon]:
        row = CouponRow.objects.filter(code=code).first()
        return _coupon_from_row(row) if row is not None else None

    def customer_usage_count(self, coupon_id: str, customer_id: str) -> int:
        return CouponUsageRow.objects.filter(
            coupon_id=coupon_id, customer_id=customer_id,
        ).count()

    def record_usage(self, usage: CouponUsage) -> bool:
        with transaction.atomic():
            coupon = CouponRow.objects.select_for_update().filter(pk=usage.coupon_id).first()
            if coupon is None:
                return False
            used = CouponUsageRow.objects.filter(
                coupon_id=usage.coupon_id, customer_id=usage.customer_id,
            ).count()
            if used >= coupon.usage_limit_per_customer:
                return False
            touched = CouponRow.objects.filter(pk=usage.coupon_id).filter(
                Q(usage_limit__isnull=True) | Q(times_used__lt=F("usage_limit")),
            ).update(times_used=F("times_used") + 1)
            if touched != 1:
                return False
            CouponUsageRow.objects.create(
                coupon_id=usage.coupon_id,
                customer_id=usage.customer_id,
                order_id=usage.order_id,
                discount_amount=usage.discount_amount,
                used_at=usage.used_at,
            )
        return True

    def remove_usage(self, coupon_id: str, order_id: str) -> bool:
        with transaction.atomic():
            removed, _ = CouponUsageRow.objects.filter(
                coupon_id=coupon_id, order_id=order_id,
            ).delete()
            if not removed:
                return False
            CouponRow.objects.filter(pk=coupon_id, times_used__gte=removed).update(
                times_used=F("times_used") - removed,
            )
        return True

    def usages(self, coupon_id: str) -> List[CouponUsage]:
        return [
            CouponUsage(
                coupon_id=row.coupon_id,
                customer_id=row.customer_id,
                order_id=row.order_id,
                discount_amount=row.discount_amount,
                used_at=row.used_at,
            )
            for row in CouponUsageRow.objects.filter(coupon_id=coupon_id)
        ]


# ══════════════════════════════════════════════════════════════
# SNAPSHOT ROWS (orders, sub-orders, earnings, requests)
# ══════════════════════════════════════════════════════════════

class _SnapshotRepository:
    model = None
    domain_cls = None
    id_attr = ""

    def _columns(self, obj) -> dict:
        return {}

    def _to_domain(self, row):
        return from_snapshot(self.domain_cls, row.snapshot)

    def _insert(self, obj) -> None:
        self.model.objects.create(
            pk=getattr(obj, self.id_attr),
            version=obj.version,
            created_at=obj.created_at,
            snapshot=to_snapshot(obj),
            **self._columns(obj),
        )

    def get(self, row_id: str):
        row = self.model.objects.filter(pk=row_id).first()
        return self._to_domain(row) if row is not None else None

    def compare_and_set(self, expected, updated) -> bool:
        touched = self.model.objects.filter(
            pk=getattr(expected, self.id_attr), version=expected.version,
        ).update(
            version=updated.version,
            snapshot=to_snapshot(updated),
            **self._columns(updated),
        )
        return touched == 1

    def delete(self, row_id: str) -> bool:
        deleted, _ = self.model.objects.filter(pk=row_id).delete()
        return deleted > 0

    def _select(self, *ordering, **filters) -> list:
        rows = self.model.objects.filter(**filters).order_by(*ordering)
        return [self._to_domain(r) for r in rows]


class DjangoOrderStore(_SnapshotRepository):
    model = OrderRow
    domain_cls = Order
    id_attr = "order_id"

    def _columns(self, order: Order) -> dict:
        return {"user_id": order.user_id, "status": order.status.value, "amount": order.amount}

    def create(self, order: Order) -> None:
        self._insert(order)

    def list_for_user(self, user_id: str) -> List[Order]:
        return self._select("-created_at", user_id=user_id)


class DjangoSubOrderStore(_SnapshotRepository):
    model = SubOrderRow
    domain_cls = SubOrder
    id_attr = "sub_order_id"

    def _columns(self, sub_order: SubOrder) -> dict:
        return {"parent_order_id": sub_order.parent_order_id, "seller_id": sub_order.seller_id}

    def add(self, sub_order: SubOrder) -> None:
        self._insert(sub_order)

    def list_for_order(self, order_id: str) -> List[SubOrder]:
        return self._select("created_at", "seller_id", parent_order_id=order_id)

    def list_for_seller(self, seller_id: str) -> List[SubOrder]:
        return self._select("-created_at", seller_id=seller_id)


class DjangoEarningsStore(_SnapshotRepository):
    model = SellerEarningsRow
    domain_cls = SellerEarnings
    id_attr = "earnings_id"

    def _columns(self, earnings: SellerEarnings) -> dict:
        return {
            "seller_id": earnings.seller_id,
            "order_id": earnings.order_id,
            "status": earnings.status.value,
        }

    def add(self, earnings: SellerEarnings) -> None:
        self._insert(earnings)

    def list_for_order(self, order_id: str) -> List[SellerEarnings]:
        return self._select("created_at", "earnings_id", order_id=order_id)

    def list_for_seller(self, seller_id: str) -> List[SellerEarnings]:
        return self._select("created_at", "earnings_id", seller_id=seller_id)

    def list_by_status(self, status: EarningsStatus) -> List[SellerEarnings]:
        return self._select("created_at", "earnings_id", status=status.value)


class _DjangoRequestStore(_SnapshotRepository):
    id_attr = "request_id"

    def _columns(self, request) -> dict:
        return {
            "order_id": request.order_id,
            "product_id": request.product_id,
            "status": str(request.status),
            "is_active": request.is_active,
        }

    def add(self, request) -> None:
        try:
            with transaction.atomic():
                self._insert(request)
        except IntegrityError:
            existing = self.find_active(request.order_id, request.product_id)
            if existing is None:
                raise
            raise DuplicateRequest(request.order_id, request.product_id, existing.request_id)

    def find_active(self, order_id: str, product_id: str):
        row = self.model.objects.filter(
            order_id=order_id, product_id=product_id, is_active=True,
        ).first()
        return self._to_domain(row) if row is not None else None

    def list_for_order(self, order_id: str) -> list:
        return self._select("created_at", order_id=order_id)


class DjangoRefundStore(_DjangoRequestStore):
    model = RefundRequestRow
    domain_cls = RefundRequest


class DjangoReplacementStore(_DjangoRequestStore):
    model = ReplacementRequestRow
    domain_cls = ReplacementRequest
