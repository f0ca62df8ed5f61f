"""Order placement and the post-purchase lifecycle.

Each public function is one unit of work: it validates, mutates, commits and
publishes the resulting event, or rolls back and raises a ``StorefrontError``
without having changed anything. Status writes are compare-and-set on the
current status, so a request that lost a race (e.g. a second cancel) observes
the new status and fails with ``InvalidTransition`` instead of repeating side
effects such as releasing stock.
"""
import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from storefront import schemas
from storefront.core.config import settings
from storefront.core.errors import InvalidTransition, NotFound, StorefrontError, ValidationError
from storefront.db.models import (
    Order, OrderItem, OrderStatus, OrderTracking, PaymentStatus,
    ProductVariant, TrackingUpdate, utcnow,
)
from storefront.kafka.producer import emit_order_event
from storefront.services import coupons, inventory, pricing, state_machine

logger = logging.getLogger(__name__)

REVENUE_STATUSES = (OrderStatus.PAID, OrderStatus.SHIPPED, OrderStatus.DELIVERED)

TRACKING_DESCRIPTIONS = {
    "PROCESSING": "Order is being processed",
    "SHIPPED": "Order has been shipped",
    "IN_TRANSIT": "Order is in transit",
    "OUT_FOR_DELIVERY": "Order is out for delivery",
    "DELIVERED": "Order has been delivered",
    "FAILED": "Delivery attempt failed",
    "RETURNED": "Order has been returned",
}


@dataclass(frozen=True)
class CartLine:
    variant_id: int
    qty: int


def _order_number() -> str:
    return f"ORD-{int(time.time() * 1000)}-{secrets.randbelow(1000):03d}"


def _merge(lines: Iterable[CartLine]) -> list[CartLine]:
    qty: dict[int, int] = {}
    for line in lines:
        qty[line.variant_id] = qty.get(line.variant_id, 0) + line.qty
    return [CartLine(vid, q) for vid, q in qty.items()]


def get_order(db: Session, order_id: int, owner_email: Optional[str] = None) -> Order:
    order = db.get(Order, order_id)
    # other customers' orders are indistinguishable from missing ones
    if order is None or (owner_email is not None and order.user_email != owner_email):
        raise NotFound("Order", order_id)
    return order


def _compare_and_set(db: Session, order: Order, expected: OrderStatus, new: OrderStatus, **values) -> None:
    result = db.execute(
        update(Order)
        .where(Order.id == order.id, Order.status == expected)
        .values(status=new, updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        latest = db.execute(select(Order.status).where(Order.id == order.id)).scalar_one()
        db.rollback()
        raise InvalidTransition(OrderStatus(latest).value, new.value)
    db.expire(order)


def place_order(db: Session, user_email: str, lines: Iterable[CartLine],
                shipping: schemas.ShippingAddress, coupon_code: Optional[str] = None,
                now: Optional[datetime] = None) -> Order:
    """Create a PENDING order from cart lines.

    Prices are snapshotted from the current variants, stock is reserved with
    the atomic gate and the coupon use is consumed, all in one transaction.
    """
    now = now or utcnow()
    lines = _merge(lines)
    if not lines:
        raise ValidationError("Cart is empty")

    try:
        priced = []
        for line in lines:
            variant = db.get(ProductVariant, line.variant_id)
            if variant is None or not variant.is_active or not variant.product.is_active:
                raise NotFound("Product variant", line.variant_id)
            priced.append((variant, line.qty))

        totals = pricing.cart_totals(priced)
        if not totals.ok:
            raise totals.error

        coupon = None
        discount = 0
        if coupon_code:
            coupon = coupons.get_by_code(db, coupon_code)
            applied = pricing.apply_coupon(totals.sub_total_cents, coupon, now)
            if not applied.ok:
                raise applied.error
            discount = applied.discount_cents

        order = Order(
            order_number=_order_number(),
            user_email=user_email,
            status=OrderStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            sub_total_cents=totals.sub_total_cents,
            discount_cents=discount,
            total_cents=totals.sub_total_cents - discount,
            currency=settings.CURRENCY,
            coupon_id=coupon.id if coupon else None,
            coupon_code=coupon.code if coupon else None,
            coupon_discount_type=coupon.discount_type.value if coupon else None,
            coupon_discount_value=coupon.discount_value if coupon else None,
            ship_name=shipping.full_name,
            address_line1=shipping.address_line1,
            address_line2=shipping.address_line2 or "",
            city=shipping.city,
            state=shipping.state,
            country=shipping.country.upper(),
            postcode=shipping.postcode,
            phone=shipping.phone,
            created_at=now,
        )
        for (variant, qty), subtotal in zip(priced, totals.line_subtotals):
            order.items.append(OrderItem(
                product_id=variant.product_id,
                variant_id=variant.id,
                qty=qty,
                unit_price_cents=variant.effective_price_cents,
                subtotal_cents=subtotal,
                title_snapshot=variant.product.name,
                sku_snapshot=variant.sku,
                flavor_snapshot=variant.flavor.name if variant.flavor else None,
                weight_snapshot=variant.weight.display if variant.weight else None,
            ))
        db.add(order)
        db.flush()

        for variant, qty in priced:
            inventory.reserve(db, variant.id, qty, reference_id=order.id, actor=user_email)
        if coupon is not None:
            coupons.consume_use(db, coupon)
        db.commit()
    except StorefrontError:
        db.rollback()
        raise

    db.refresh(order)
    logger.info("Order %s placed by %s: total=%s", order.order_number, user_email, order.total_cents)
    emit_order_event(
        "order.created", order,
        items=[{"variant_id": it.variant_id, "qty": it.qty, "unit_price_cents": it.unit_price_cents}
               for it in order.items],
    )
    return order


def cancel_order(db: Session, order_id: int, actor: str, reason: Optional[str],
                 as_admin: bool = False) -> Order:
    """Cancel an order and return its stock.

    Customers may cancel only their own PENDING/PROCESSING orders; admins
    follow the transition table.
    """
    order = get_order(db, order_id, owner_email=None if as_admin else actor)
    current = order.status
    if as_admin:
        state_machine.check_transition(current, OrderStatus.CANCELLED)
    else:
        state_machine.check_customer_cancel(current)
    if not reason or not reason.strip():
        raise ValidationError("A cancellation reason is required")

    try:
        _compare_and_set(
            db, order, current, OrderStatus.CANCELLED,
            cancel_reason=reason.strip(),
            cancelled_at=utcnow(),
            cancelled_by=actor,
            cancelled_by_role="customer" if actor == order.user_email else "admin",
        )
        for item in order.items:
            inventory.release(db, item.variant_id, item.qty, reference_id=order.id, actor=actor)
        db.commit()
    except StorefrontError:
        db.rollback()
        raise

    db.refresh(order)
    logger.info("Order %s cancelled by %s (%s)", order.order_number, actor, order.cancelled_by_role)
    emit_order_event("order.cancelled", order, reason=order.cancel_reason, previous_status=current.value)
    return order


def update_status(db: Session, order_id: int, status, actor: str, notes: Optional[str] = None,
                  reason: Optional[str] = None, carrier: Optional[str] = None,
                  tracking_number: Optional[str] = None, location: Optional[str] = None) -> Order:
    """Admin or system status change, including its side effects."""
    try:
        requested = OrderStatus(status)
    except ValueError:
        # unknown values are rejected like any other transition outside the table
        raise InvalidTransition(get_order(db, order_id).status.value, str(status))
    if requested == OrderStatus.CANCELLED:
        return cancel_order(db, order_id, actor, reason or notes, as_admin=True)

    order = get_order(db, order_id)
    current = order.status
    state_machine.check_transition(current, requested)

    now = utcnow()
    values = {}
    if notes:
        values["notes"] = f"{order.notes}\n{notes}" if order.notes else notes
    if requested == OrderStatus.PAID:
        values["payment_status"] = PaymentStatus.CAPTURED
    if requested == OrderStatus.DELIVERED:
        values["delivered_at"] = now

    try:
        _compare_and_set(db, order, current, requested, **values)
        if requested == OrderStatus.SHIPPED and order.tracking is None:
            tracking = OrderTracking(
                order_id=order.id,
                carrier=carrier or "Default Carrier",
                tracking_number=tracking_number or f"SHP{secrets.token_hex(5).upper()}",
                status="SHIPPED",
                shipped_at=now,
            )
            tracking.updates.append(TrackingUpdate(
                status="SHIPPED",
                description=TRACKING_DESCRIPTIONS["SHIPPED"],
                location=location or "Warehouse",
                timestamp=now,
            ))
            db.add(tracking)
        elif requested == OrderStatus.DELIVERED and order.tracking is not None:
            _mark_delivered(order.tracking, now, location or "Delivery address")
        db.commit()
    except StorefrontError:
        db.rollback()
        raise

    db.refresh(order)
    logger.info("Order %s: %s -> %s by %s", order.order_number, current.value, requested.value, actor)
    emit_order_event("order.status_changed", order, previous_status=current.value)
    return order


def _mark_delivered(tracking: OrderTracking, now: datetime, location: Optional[str],
                    description: Optional[str] = None) -> None:
    tracking.status = "DELIVERED"
    tracking.delivered_at = now
    tracking.updates.append(TrackingUpdate(
        status="DELIVERED",
        location=location,
        description=description or TRACKING_DESCRIPTIONS["DELIVERED"],
        timestamp=now,
    ))


def add_tracking_update(db: Session, order_id: int, status: str, actor: str,
                        location: Optional[str] = None, description: Optional[str] = None,
                        carrier: Optional[str] = None, tracking_number: Optional[str] = None) -> Order:
    """Append a carrier update; a DELIVERED update completes a shipped order."""
    order = get_order(db, order_id)
    tracking = order.tracking
    if tracking is None:
        raise ValidationError("Tracking is available once the order has shipped")
    if order.status in state_machine.TERMINAL:
        raise ValidationError(f"Order {order.order_number} is {order.status.value}; tracking is closed")

    status = status.strip().upper()
    now = utcnow()
    try:
        if carrier:
            tracking.carrier = carrier
        if tracking_number:
            tracking.tracking_number = tracking_number
        if status == "DELIVERED":
            current = order.status
            state_machine.check_transition(current, OrderStatus.DELIVERED)
            _mark_delivered(tracking, now, location, description)
            db.flush()
            _compare_and_set(db, order, current, OrderStatus.DELIVERED, delivered_at=now)
        else:
            tracking.status = status
            tracking.updates.append(TrackingUpdate(
                status=status,
                location=location,
                description=description or TRACKING_DESCRIPTIONS.get(status, "Status updated"),
                timestamp=now,
            ))
        db.commit()
    except StorefrontError:
        db.rollback()
        raise

    db.refresh(order)
    logger.info("Order %s tracking update %s by %s", order.order_number, status, actor)
    if status == "DELIVERED":
        emit_order_event("order.status_changed", order, previous_status=OrderStatus.SHIPPED.value)
    return order


def list_orders(db: Session, user_email: Optional[str] = None, status: Optional[str] = None,
                search: Optional[str] = None, limit: int = 10, offset: int = 0) -> tuple[int, list[Order]]:
    stmt = select(Order)
    if user_email is not None:
        stmt = stmt.where(Order.user_email == user_email)
    if status:
        stmt = stmt.where(Order.status == state_machine.parse_status(status))
    if search:
        like = f"%{search.lower()}%"
        stmt = stmt.where(or_(Order.order_number.ilike(like), Order.user_email.ilike(like)))
    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    rows = db.execute(
        stmt.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(limit)
    ).scalars().all()
    return total, list(rows)


def order_stats(db: Session, since: datetime) -> schemas.OrderStats:
    counts = {
        OrderStatus(s).value: n
        for s, n in db.execute(
            select(Order.status, func.count()).where(Order.created_at >= since).group_by(Order.status)
        ).all()
    }
    total_orders = sum(counts.values())
    revenue = db.execute(
        select(func.coalesce(func.sum(Order.total_cents), 0))
        .where(Order.created_at >= since, Order.status.in_(REVENUE_STATUSES))
    ).scalar_one()
    paid_orders = sum(counts.get(s.value, 0) for s in REVENUE_STATUSES)
    return schemas.OrderStats(
        since=since,
        total_orders=total_orders,
        status_counts=counts,
        revenue_cents=int(revenue),
        average_order_cents=int(revenue) // paid_orders if paid_orders else 0,
    )


def order_view(order: Order) -> schemas.OrderView:
    """Read model shared by the customer order page and the admin order page."""
    tracking = None
    if order.tracking is not None:
        tracking = schemas.TrackingRead.model_validate(order.tracking)
    cancellation = None
    if order.status == OrderStatus.CANCELLED:
        cancellation = schemas.CancellationRead(
            reason=order.cancel_reason,
            cancelled_at=order.cancelled_at,
            cancelled_by=order.cancelled_by,
            cancelled_by_role=order.cancelled_by_role,
        )
    coupon = None
    if order.coupon_code:
        coupon = schemas.CouponTerms(
            code=order.coupon_code,
            discount_type=order.coupon_discount_type,
            discount_value=order.coupon_discount_value,
        )
    return schemas.OrderView(
        id=order.id,
        order_number=order.order_number,
        user_email=order.user_email,
        status=order.status.value,
        payment_status=order.payment_status.value,
        progress=state_machine.progress(order.status),
        can_cancel=state_machine.can_customer_cancel(order.status),
        allowed_transitions=sorted(s.value for s in state_machine.allowed_transitions(order.status)),
        sub_total_cents=order.sub_total_cents,
        discount_cents=order.discount_cents,
        total_cents=order.total_cents,
        currency=order.currency,
        coupon=coupon,
        shipping_address=schemas.ShippingAddress(
            full_name=order.ship_name,
            address_line1=order.address_line1,
            address_line2=order.address_line2,
            city=order.city,
            state=order.state,
            country=order.country,
            postcode=order.postcode,
            phone=order.phone,
        ),
        items=[
            schemas.OrderItemRead(
                variant_id=it.variant_id,
                product_id=it.product_id,
                qty=it.qty,
                unit_price_cents=it.unit_price_cents,
                subtotal_cents=it.subtotal_cents,
                title=it.title_snapshot,
                sku=it.sku_snapshot,
                flavor=it.flavor_snapshot,
                weight=it.weight_snapshot,
            )
            for it in order.items
        ],
        tracking=tracking,
        cancellation=cancellation,
        notes=order.notes,
        created_at=order.created_at,
        delivered_at=order.delivered_at,
    )
