"""Stock reservation for order lines.

``reserve`` is a single conditional UPDATE (decrement where enough stock is
left), so two checkouts racing for the last unit cannot both succeed: the
database serialises them on the variant row and the loser updates zero rows.
All functions run inside the caller's transaction and never commit.
"""
import logging
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from storefront.core.errors import InvalidQuantity, NotFound, OutOfStock
from storefront.db.models import InventoryLog, ProductVariant

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reservation:
    variant_id: int
    quantity: int
    remaining: int


def _current_quantity(db: Session, variant_id: int):
    return db.execute(
        select(ProductVariant.quantity).where(ProductVariant.id == variant_id)
    ).scalar_one_or_none()


def _expire_cached(db: Session, variant_id: int) -> None:
    obj = db.identity_map.get(db.identity_key(ProductVariant, variant_id))
    if obj is not None:
        db.expire(obj, ["quantity"])


def _log(db: Session, variant_id: int, change: int, new_quantity: int, reason: str,
         reference_id=None, actor: str = "", notes: str = "") -> None:
    db.add(InventoryLog(
        variant_id=variant_id,
        quantity_change=change,
        reason=reason,
        reference_id=reference_id,
        previous_quantity=new_quantity - change,
        new_quantity=new_quantity,
        notes=notes,
        created_by=actor,
    ))


def reserve(db: Session, variant_id: int, quantity: int, reference_id=None, actor: str = "") -> Reservation:
    if quantity < 1:
        raise InvalidQuantity(quantity)
    result = db.execute(
        update(ProductVariant)
        .where(
            ProductVariant.id == variant_id,
            ProductVariant.is_active.is_(True),
            ProductVariant.quantity >= quantity,
        )
        .values(quantity=ProductVariant.quantity - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        if _current_quantity(db, variant_id) is None:
            raise NotFound("Product variant", variant_id)
        logger.info("Reservation refused: variant=%s qty=%s", variant_id, quantity)
        raise OutOfStock(variant_id, quantity)
    _expire_cached(db, variant_id)
    remaining = _current_quantity(db, variant_id)
    _log(db, variant_id, -quantity, remaining, "sale", reference_id, actor)
    return Reservation(variant_id, quantity, remaining)


def _increment(db: Session, variant_id: int, quantity: int, reason: str,
               reference_id=None, actor: str = "", notes: str = "") -> int:
    if quantity < 1:
        raise InvalidQuantity(quantity)
    result = db.execute(
        update(ProductVariant)
        .where(ProductVariant.id == variant_id)
        .values(quantity=ProductVariant.quantity + quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise NotFound("Product variant", variant_id)
    _expire_cached(db, variant_id)
    new_quantity = _current_quantity(db, variant_id)
    _log(db, variant_id, quantity, new_quantity, reason, reference_id, actor, notes)
    return new_quantity


def release(db: Session, variant_id: int, quantity: int, reference_id=None, actor: str = "") -> int:
    """Return cancelled stock; only the cancellation path calls this."""
    return _increment(db, variant_id, quantity, "return", reference_id, actor,
                      "Order cancelled - returned to inventory")


def restock(db: Session, variant_id: int, quantity: int, actor: str = "") -> int:
    return _increment(db, variant_id, quantity, "restock", actor=actor)
