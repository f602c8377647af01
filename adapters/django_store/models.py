"""
Bazaar Django Store — Persistence Models
===========================================
Relational rows behind the engine store protocols.

Every mutable row carries a `version` column. Repositories update
with WHERE version = <expected>, and a zero row count means a
concurrent writer won. Nothing here holds business logic.

Aggregates with nested structure (orders, sub-orders, earnings,
return requests) keep their indexed columns next to a JSON
`snapshot`; see codec.py.
"""

from django.db import models
from django.db.models import F, Q


# ══════════════════════════════════════════════════════════════
# ENUMS
# ══════════════════════════════════════════════════════════════

class InventoryKindChoice(models.TextChoices):
    PRODUCT = "product", "Product"
    VARIANT = "variant", "Variant"


class RateScopeChoice(models.TextChoices):
    GLOBAL = "global", "Global"
    CATEGORY = "category", "Category"
    SELLER = "seller", "Seller"


class DiscountTypeChoice(models.TextChoices):
    PERCENTAGE = "percentage", "Percentage"
    FIXED_AMOUNT = "fixed_amount", "Fixed amount"
    FREE_SHIPPING = "free_shipping", "Free shipping"


# ══════════════════════════════════════════════════════════════
# INVENTORY
# ══════════════════════════════════════════════════════════════

class InventoryRecordRow(models.Model):
    kind = models.CharField(max_length=10, choices=InventoryKindChoice.choices)
    ref_id = models.CharField(
        max_length=64,
        help_text="Product id for simple products, variant id for variants.",
    )
    quantity = models.PositiveIntegerField()
    reserved_quantity = models.PositiveIntegerField(default=0)
    low_stock_threshold = models.PositiveIntegerField(default=10)
    version = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "bazaar_inventory_record"
        constraints = [
            models.UniqueConstraint(
                fields=["kind", "ref_id"], name="uq_inventory_key",
            ),
            models.CheckConstraint(
                condition=Q(reserved_quantity__lte=F("quantity")),
                name="ck_inventory_reserved_le_quantity",
            ),
        ]


class InventoryMovementRow(models.Model):
    kind = models.CharField(max_length=10, choices=InventoryKindChoice.choices)
    ref_id = models.CharField(max_length=64)
    movement_type = models.CharField(max_length=20)
    quantity = models.PositiveIntegerField(
        help_text="Amount actually applied by the operation.",
    )
    quantity_after = models.PositiveIntegerField()
    reserved_after = models.PositiveIntegerField()
    occurred_at = models.DateTimeField()
    reason = models.CharField(max_length=255, blank=True, default="")
    reference = models.CharField(max_length=64, null=True, blank=True)

    class Meta:
        db_table = "bazaar_inventory_movement"
        ordering = ["id"]
        indexes = [
            models.Index(fields=["kind", "ref_id"], name="idx_movement_key"),
        ]


# ══════════════════════════════════════════════════════════════
# COMMISSION & PROMOTIONS
# ══════════════════════════════════════════════════════════════

class CommissionRateRow(models.Model):
    rate_id = models.CharField(max_length=64, primary_key=True)
    scope = models.CharField(max_length=10, choices=RateScopeChoice.choices)
    percentage = models.DecimalField(max_digits=5, decimal_places=2)
    is_active = models.BooleanField(default=True)
    seller_id = models.CharField(max_length=64, null=True, blank=True)
    category_id = models.CharField(max_length=64, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "bazaar_commission_rate"
        ordering = ["created_at", "rate_id"]
        indexes = [
            models.Index(fields=["scope", "is_active"], name="idx_rate_scope_active"),
        ]


class PromotionRow(models.Model):
    promotion_id = models.CharField(max_length=64, primary_key=True)
    product_id = models.CharField(max_length=64, null=True, blank=True)
    variant_id = models.CharField(max_length=64, null=True, blank=True)
    promotional_price = models.PositiveIntegerField()
    start_date = models.DateTimeField(null=True, blank=True)
    end_date = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "bazaar_promotion"
        indexes = [
            models.Index(fields=["product_id"], name="idx_promotion_product"),
            models.Index(fields=["variant_id"], name="idx_promotion_variant"),
        ]


class CouponRow(models.Model):
    coupon_id = models.CharField(max_length=64, primary_key=True)
    code = models.CharField(max_length=50, unique=True)
    discount_type = models.CharField(max_length=20, choices=DiscountTypeChoice.choices)
    discount_value = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    start_date = models.DateTimeField(null=True, blank=True)
    end_date = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    usage_limit = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Total redemptions allowed. Null means unlimited.",
    )
    usage_limit_per_customer = models.PositiveIntegerField(default=1)
    times_used = models.PositiveIntegerField(default=0)
    min_purchase_amount = models.PositiveIntegerField(default=0)
    max_discount_amount = models.PositiveIntegerField(null=True, blank=True)
    allow_stacking = models.BooleanField(default=False)
    applicable_product_ids = models.JSONField(default=list, blank=True)
    applicable_category_ids = models.JSONField(default=list, blank=True)

    class Meta:
        db_table = "bazaar_coupon"


class CouponUsageRow(models.Model):
    coupon = models.ForeignKey(
        CouponRow, on_delete=models.CASCADE, related_name="usages",
    )
    customer_id = models.CharField(
        max_length=254,
        help_text="User id, or guest email for guest checkouts.",
    )
    order_id = models.CharField(max_length=64)
    discount_amount = models.PositiveIntegerField()
    used_at = models.DateTimeField()

    class Meta:
        db_table = "bazaar_coupon_usage"
        ordering = ["used_at", "id"]
        indexes = [
            models.Index(fields=["coupon", "customer_id"], name="idx_usage_customer"),
        ]


# ══════════════════════════════════════════════════════════════
# ORDERS
# ══════════════════════════════════════════════════════════════

class OrderRow(models.Model):
    order_id = models.CharField(max_length=64, primary_key=True)
    user_id = models.CharField(max_length=64, null=True, blank=True)
    status = models.CharField(max_length=30)
    amount = models.PositiveIntegerField()
    created_at = models.DateTimeField()
    version = models.PositiveIntegerField(default=0)
    snapshot = models.JSONField(help_text="Full order snapshot.")

    class Meta:
        db_table = "bazaar_order"
        indexes = [
            models.Index(fields=["user_id", "created_at"], name="idx_order_user"),
            models.Index(fields=["status"], name="idx_order_status"),
        ]


class SubOrderRow(models.Model):
    sub_order_id = models.CharField(max_length=64, primary_key=True)
    parent_order_id = models.CharField(max_length=64)
    seller_id = models.CharField(max_length=64)
    created_at = models.DateTimeField()
    version = models.PositiveIntegerField(default=0)
    snapshot = models.JSONField()

    class Meta:
        db_table = "bazaar_sub_order"
        constraints = [
            models.UniqueConstraint(
                fields=["parent_order_id", "seller_id"], name="uq_sub_order_seller",
            ),
        ]
        indexes = [
            models.Index(fields=["seller_id", "created_at"], name="idx_sub_order_seller"),
        ]


class SellerEarningsRow(models.Model):
    earnings_id = models.CharField(max_length=64, primary_key=True)
    seller_id = models.CharField(max_length=64)
    order_id = models.CharField(max_length=64)
    status = models.CharField(max_length=20)
    created_at = models.DateTimeField()
    version = models.PositiveIntegerField(default=0)
    snapshot = models.JSONField()

    class Meta:
        db_table = "bazaar_seller_earnings"
        indexes = [
            models.Index(fields=["seller_id", "created_at"], name="idx_earnings_seller"),
            models.Index(fields=["order_id"], name="idx_earnings_order"),
            models.Index(fields=["status"], name="idx_earnings_status"),
        ]


# ══════════════════════════════════════════════════════════════
# RETURNS
# ══════════════════════════════════════════════════════════════

class _ReturnRequestRow(models.Model):
    request_id = models.CharField(max_length=64, primary_key=True)
    order_id = models.CharField(max_length=64)
    product_id = models.CharField(max_length=64)
    status = models.CharField(max_length=20)
    is_active = models.BooleanField(
        default=True,
        help_text="False once rejected or failed; only active rows block a new request.",
    )
    created_at = models.DateTimeField()
    version = models.PositiveIntegerField(default=0)
    snapshot = models.JSONField()

    class Meta:
        abstract = True


class RefundRequestRow(_ReturnRequestRow):

    class Meta:
        db_table = "bazaar_refund_request"
        constraints = [
            models.UniqueConstraint(
                fields=["order_id", "product_id"],
                condition=Q(is_active=True),
                name="uq_active_refund_per_line",
            ),
        ]


class ReplacementRequestRow(_ReturnRequestRow):

    class Meta:
        db_table = "bazaar_replacement_request"
        constraints = [
            models.UniqueConstraint(
                fields=["order_id", "product_id"],
                condition=Q(is_active=True),
                name="uq_active_replacement_per_line",
            ),
        ]
