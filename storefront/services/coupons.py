"""Coupon lookups and the use counter.

Coupon terms are read only; the one write is ``consume_use``.
"""
from datetime import datetime

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from storefront.core.errors import CouponExhausted, NotFound
from storefront.db.models import Coupon
from storefront.services import pricing


def get_by_code(db: Session, code: str) -> Coupon:
    normalized = pricing.normalize_code(code)
    coupon = db.execute(select(Coupon).where(Coupon.code == normalized)).scalar_one_or_none()
    if coupon is None:
        raise NotFound("Coupon", normalized)
    return coupon


def verify(db: Session, code: str, cart_total_cents: int, now: datetime) -> tuple[Coupon, pricing.CouponResult]:
    coupon = get_by_code(db, code)
    return coupon, pricing.apply_coupon(cart_total_cents, coupon, now)


def consume_use(db: Session, coupon: Coupon) -> None:
    """Increment ``used_count`` unless that would exceed ``max_uses``."""
    result = db.execute(
        update(Coupon)
        .where(
            Coupon.id == coupon.id,
            or_(Coupon.max_uses.is_(None), Coupon.used_count < Coupon.max_uses),
        )
        .values(used_count=Coupon.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise CouponExhausted(coupon.code)
    db.expire(coupon, ["used_count"])
