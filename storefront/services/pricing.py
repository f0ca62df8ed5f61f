"""Line pricing and coupon discounts.

Money is integer minor units (cents) throughout. Functions here return result
values carrying an error instead of raising, so the checkout flow decides how
to surface each rejection.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

from storefront.core.errors import (
    CouponError, CouponExhausted, CouponExpired, CouponInactive,
    CouponMinimumNotMet, InvalidQuantity, StorefrontError, ValidationError,
)
from storefront.db.models import DiscountType


@dataclass(frozen=True)
class LineResult:
    subtotal_cents: Optional[int] = None
    error: Optional[InvalidQuantity] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class CouponResult:
    discount_cents: int = 0
    total_cents: Optional[int] = None
    error: Optional[CouponError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class Totals:
    sub_total_cents: int = 0
    discount_cents: int = 0
    total_cents: int = 0
    line_subtotals: list = field(default_factory=list)
    error: Optional[StorefrontError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def normalize_code(code: Optional[str]) -> Optional[str]:
    if code is None:
        return None
    return code.strip().upper() or None


def _as_decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def validate_coupon_terms(discount_type, discount_value) -> None:
    discount_type = DiscountType(discount_type)
    value = _as_decimal(discount_value)
    if discount_type == DiscountType.PERCENTAGE:
        if not 0 < value <= 100:
            raise ValidationError("Percentage discount must be above 0 and at most 100")
        if value != value.quantize(Decimal("0.01")):
            raise ValidationError("Percentage discount allows at most two decimal places")
    if discount_type == DiscountType.FIXED_AMOUNT:
        if value <= 0:
            raise ValidationError("Fixed amount discount must be greater than 0")
        if value != value.to_integral_value():
            raise ValidationError("Fixed amount discount must be whole cents")


def line_subtotal(variant, quantity: int) -> LineResult:
    available = variant.quantity or 0
    if quantity < 1 or quantity > available:
        return LineResult(error=InvalidQuantity(quantity, available))
    return LineResult(subtotal_cents=variant.effective_price_cents * quantity)


def apply_coupon(subtotal_cents: int, coupon, now: datetime) -> CouponResult:
    """Validate ``coupon`` against ``subtotal_cents``; the first failing check wins."""
    if not coupon.is_active:
        return CouponResult(error=CouponInactive(coupon.code))
    if now < coupon.start_date or (coupon.end_date is not None and now > coupon.end_date):
        return CouponResult(error=CouponExpired(coupon.code))
    if coupon.max_uses is not None and (coupon.used_count or 0) >= coupon.max_uses:
        return CouponResult(error=CouponExhausted(coupon.code))
    if coupon.min_order_cents is not None and subtotal_cents < coupon.min_order_cents:
        return CouponResult(error=CouponMinimumNotMet(coupon.code, coupon.min_order_cents))

    if DiscountType(coupon.discount_type) == DiscountType.PERCENTAGE:
        raw = Decimal(subtotal_cents) * _as_decimal(coupon.discount_value) / Decimal(100)
    else:
        raw = _as_decimal(coupon.discount_value)
    discount = int(raw.quantize(Decimal(1), rounding=ROUND_HALF_UP))
    discount = max(0, min(discount, subtotal_cents))
    return CouponResult(discount_cents=discount, total_cents=subtotal_cents - discount)


def cart_totals(lines: list[tuple[Any, int]], coupon=None, now: Optional[datetime] = None) -> Totals:
    """Price ``(variant, quantity)`` lines and apply an optional coupon."""
    subtotals = []
    for variant, quantity in lines:
        result = line_subtotal(variant, quantity)
        if not result.ok:
            return Totals(error=result.error)
        subtotals.append(result.subtotal_cents)
    sub_total = sum(subtotals)
    if coupon is None:
        return Totals(sub_total, 0, sub_total, subtotals)
    applied = apply_coupon(sub_total, coupon, now)
    if not applied.ok:
        return Totals(sub_total, 0, sub_total, subtotals, error=applied.error)
    return Totals(sub_total, applied.discount_cents, applied.total_cents, subtotals)
