"""Tests for order placement and the post-purchase lifecycle."""

import logging
import threading
from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import func, select

from storefront.core.errors import (
    CancellationNotAllowed, CouponExhausted, CouponMinimumNotMet, InvalidQuantity,
    InvalidTransition, NotFound, OutOfStock, ValidationError,
)
from storefront.db.models import (
    Coupon, DiscountType, InventoryLog, Order, OrderStatus, PaymentStatus, ProductVariant, utcnow,
)
from storefront.kafka import consumer as payment_consumer
from storefront.kafka.consumer import process_event
from storefront.services import orders
from storefront.services.orders import CartLine

from conftest import ADMIN, CUSTOMER, OTHER_CUSTOMER


def order_count(db):
    return db.execute(select(func.count()).select_from(Order)).scalar_one()


def return_logs(db, order_id):
    return db.execute(
        select(InventoryLog).where(InventoryLog.reference_id == order_id, InventoryLog.reason == "return")
    ).scalars().all()


@pytest.fixture
def place(db, shop, address):
    def _place(lines=None, email=CUSTOMER, coupon_code=None):
        lines = lines or [CartLine(shop.van_500.id, 2)]
        return orders.place_order(db, email, lines, address, coupon_code=coupon_code)
    return _place


class TestPlaceOrder:
    def test_snapshots_prices_and_reserves_stock(self, db, shop, place):
        order = place([CartLine(shop.van_500.id, 1), CartLine(shop.choc_1kg.id, 2)])
        assert order.status == OrderStatus.PENDING
        assert order.payment_status == PaymentStatus.PENDING
        assert order.order_number.startswith("ORD-")
        assert (order.sub_total_cents, order.discount_cents, order.total_cents) == (220000, 0, 220000)
        assert order.currency == "INR"
        first, second = order.items
        assert (first.sku_snapshot, first.flavor_snapshot, first.weight_snapshot) == ("WP-VAN-500", "Vanilla", "500g")
        # sale price wins
        assert (second.unit_price_cents, second.subtotal_cents) == (85000, 170000)
        assert second.title_snapshot == "Whey Protein"
        assert shop.van_500.quantity == 4
        assert shop.choc_1kg.quantity == 1
        assert (order.city, order.country) == ("Bengaluru", "IN")

    def test_duplicate_lines_are_merged(self, db, shop, place):
        order = place([CartLine(shop.van_500.id, 1), CartLine(shop.van_500.id, 2)])
        [item] = order.items
        assert item.qty == 3
        assert shop.van_500.quantity == 2

    def test_applies_coupon_and_counts_the_use(self, db, shop, place):
        order = place([CartLine(shop.van_500.id, 2)], coupon_code="save10")
        assert (order.sub_total_cents, order.discount_cents, order.total_cents) == (100000, 10000, 90000)
        assert (order.coupon_code, order.coupon_discount_type, order.coupon_discount_value) == ("SAVE10", "PERCENTAGE", 10)
        assert shop.save10.used_count == 1

    def test_fractional_percentage_coupon(self, db, shop, place):
        db.add(Coupon(code="SAVE12HALF", discount_type=DiscountType.PERCENTAGE, discount_value=Decimal("12.5"),
                      start_date=utcnow() - timedelta(days=1), is_active=True))
        db.commit()
        order = place([CartLine(shop.van_500.id, 1)], coupon_code="save12half")
        assert (order.discount_cents, order.total_cents) == (6250, 43750)
        assert order.coupon_discount_value == Decimal("12.50")

    def test_coupon_minimum_not_met_places_nothing(self, db, shop, place):
        with pytest.raises(CouponMinimumNotMet):
            place([CartLine(shop.shaker_variant.id, 1)], coupon_code="SAVE10")
        assert order_count(db) == 0
        assert shop.shaker_variant.quantity == 1
        assert shop.save10.used_count == 0

    def test_exhausted_coupon(self, db, shop, place):
        shop.save10.max_uses = 1
        shop.save10.used_count = 1
        db.commit()
        with pytest.raises(CouponExhausted):
            place([CartLine(shop.van_500.id, 2)], coupon_code="SAVE10")

    def test_unknown_coupon(self, db, shop, place):
        with pytest.raises(NotFound):
            place(coupon_code="NOPE")

    def test_quantity_over_stock_places_nothing(self, db, shop, place):
        with pytest.raises(InvalidQuantity):
            place([CartLine(shop.van_500.id, 1), CartLine(shop.choc_1kg.id, 5)])
        assert order_count(db) == 0
        assert shop.van_500.quantity == 5

    def test_inactive_variant(self, db, shop, place):
        with pytest.raises(NotFound):
            place([CartLine(shop.choc_500.id, 1)])

    def test_empty_cart(self, db, shop, place):
        with pytest.raises(ValidationError):
            orders.place_order(db, CUSTOMER, [], None)

    def test_losing_a_race_rolls_back_the_whole_order(self, shop, session_factory, address):
        vid = shop.shaker_variant.id
        first, second = session_factory(), session_factory()
        try:
            # held so the identity map keeps serving the stale row
            stale = second.get(ProductVariant, vid)
            assert stale.quantity == 1
            orders.place_order(first, CUSTOMER, [CartLine(vid, 1)], address)
            with pytest.raises(OutOfStock):
                orders.place_order(second, OTHER_CUSTOMER, [CartLine(vid, 1)], address)
            assert order_count(second) == 1
            assert not second.execute(select(Order).where(Order.user_email == OTHER_CUSTOMER)).first()
        finally:
            first.close()
            second.close()

    def test_emits_order_created(self, db, shop, place, events):
        order = place()
        [(topic, key, value)] = events
        assert (topic, key) == ("order.events", str(order.id))
        assert value["type"] == "order.created"
        assert value["status"] == "PENDING"
        assert value["items"] == [{"variant_id": shop.van_500.id, "qty": 2, "unit_price_cents": 50000}]


class TestCancel:
    def test_customer_cancel_twice_releases_stock_once(self, db, shop, place):
        order = place()
        orders.update_status(db, order.id, OrderStatus.PROCESSING, actor=ADMIN)

        cancelled = orders.cancel_order(db, order.id, actor=CUSTOMER, reason="changed mind")
        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.cancelled_at is not None
        assert (cancelled.cancel_reason, cancelled.cancelled_by_role) == ("changed mind", "customer")
        assert shop.van_500.quantity == 5

        with pytest.raises(InvalidTransition):
            orders.cancel_order(db, order.id, actor=CUSTOMER, reason="changed mind")
        assert shop.van_500.quantity == 5
        assert len(return_logs(db, order.id)) == 1

    def test_reason_required(self, db, shop, place):
        order = place()
        with pytest.raises(ValidationError):
            orders.cancel_order(db, order.id, actor=CUSTOMER, reason="  ")
        assert orders.get_order(db, order.id).status == OrderStatus.PENDING

    def test_repeat_cancel_without_reason_is_invalid_transition(self, db, shop, place):
        order = place()
        orders.cancel_order(db, order.id, actor=CUSTOMER, reason="changed mind")
        with pytest.raises(InvalidTransition):
            orders.cancel_order(db, order.id, actor=CUSTOMER, reason="")
        with pytest.raises(InvalidTransition):
            orders.update_status(db, order.id, "CANCELLED", actor=ADMIN)
        assert len(return_logs(db, order.id)) == 1

    def test_foreign_order_without_reason_is_not_found(self, db, shop, place):
        order = place()
        with pytest.raises(NotFound):
            orders.cancel_order(db, order.id, actor=OTHER_CUSTOMER, reason=None)
        with pytest.raises(NotFound):
            orders.cancel_order(db, 9999, actor=CUSTOMER, reason="")

    def test_someone_elses_order_is_not_found(self, db, shop, place):
        order = place()
        with pytest.raises(NotFound):
            orders.cancel_order(db, order.id, actor=OTHER_CUSTOMER, reason="mine now")

    def test_customer_cannot_cancel_paid_order(self, db, shop, place):
        order = place()
        orders.update_status(db, order.id, "PAID", actor=ADMIN)
        with pytest.raises(CancellationNotAllowed):
            orders.cancel_order(db, order.id, actor=CUSTOMER, reason="too slow")

    def test_admin_cancels_paid_order(self, db, shop, place, events):
        order = place()
        orders.update_status(db, order.id, "PAID", actor=ADMIN)
        order = orders.update_status(db, order.id, "CANCELLED", actor=ADMIN, reason="fraud check failed")
        assert order.status == OrderStatus.CANCELLED
        assert (order.cancelled_by, order.cancelled_by_role) == (ADMIN, "admin")
        assert shop.van_500.quantity == 5
        assert events[-1][2]["type"] == "order.cancelled"
        assert events[-1][2]["previous_status"] == "PAID"

    def test_admin_cannot_cancel_shipped_order(self, db, shop, place):
        order = place()
        orders.update_status(db, order.id, "PAID", actor=ADMIN)
        orders.update_status(db, order.id, "SHIPPED", actor=ADMIN)
        with pytest.raises(InvalidTransition):
            orders.update_status(db, order.id, "CANCELLED", actor=ADMIN, reason="late")
        assert shop.van_500.quantity == 3

    def test_coupon_use_is_not_returned(self, db, shop, place):
        order = place(coupon_code="SAVE10")
        orders.cancel_order(db, order.id, actor=CUSTOMER, reason="changed mind")
        assert shop.save10.used_count == 1


class TestStatusUpdates:
    def test_paid_captures_payment(self, db, shop, place):
        order = orders.update_status(db, place().id, "PAID", actor=ADMIN, notes="Paid by card")
        assert order.payment_status == PaymentStatus.CAPTURED
        assert order.notes == "Paid by card"

    def test_transition_outside_table(self, db, shop, place):
        order = place()
        with pytest.raises(InvalidTransition) as exc:
            orders.update_status(db, order.id, "DELIVERED", actor=ADMIN)
        assert (exc.value.current, exc.value.requested) == ("PENDING", "DELIVERED")

    def test_unknown_status_is_an_invalid_transition(self, db, shop, place):
        order = place()
        with pytest.raises(InvalidTransition) as exc:
            orders.update_status(db, order.id, "LOST", actor=ADMIN)
        assert (exc.value.current, exc.value.requested) == ("PENDING", "LOST")

    def test_unknown_order(self, db, shop):
        with pytest.raises(NotFound):
            orders.update_status(db, 404, "PAID", actor=ADMIN)

    def test_shipping_and_delivery_through_tracking(self, db, shop, place, events):
        order = place()
        orders.update_status(db, order.id, "PAID", actor=ADMIN)
        order = orders.update_status(db, order.id, "SHIPPED", actor=ADMIN, carrier="BlueDart",
                                     tracking_number="BD123")
        assert (order.tracking.carrier, order.tracking.tracking_number) == ("BlueDart", "BD123")
        assert order.tracking.shipped_at is not None
        assert [u.status for u in order.tracking.updates] == ["SHIPPED"]

        orders.add_tracking_update(db, order.id, "in_transit", actor=ADMIN, location="Chennai hub")
        order = orders.add_tracking_update(db, order.id, "DELIVERED", actor=ADMIN, location="Front door")

        assert order.status == OrderStatus.DELIVERED
        assert order.delivered_at is not None
        assert order.tracking.status == "DELIVERED"
        assert [u.status for u in order.tracking.updates] == ["SHIPPED", "IN_TRANSIT", "DELIVERED"]
        assert order.tracking.updates[1].description == "Order is in transit"
        assert events[-1][2]["type"] == "order.status_changed"
        assert events[-1][2]["status"] == "DELIVERED"

        with pytest.raises(ValidationError):
            orders.add_tracking_update(db, order.id, "RETURNED", actor=ADMIN)

    def test_delivered_status_closes_tracking(self, db, shop, place):
        order = place()
        orders.update_status(db, order.id, "PROCESSING", actor=ADMIN)
        orders.update_status(db, order.id, "SHIPPED", actor=ADMIN)
        order = orders.update_status(db, order.id, "DELIVERED", actor=ADMIN)
        assert order.tracking.status == "DELIVERED"
        assert order.tracking.delivered_at is not None
        assert order.tracking.tracking_number.startswith("SHP")

    def test_tracking_requires_shipment(self, db, shop, place):
        order = place()
        with pytest.raises(ValidationError):
            orders.add_tracking_update(db, order.id, "IN_TRANSIT", actor=ADMIN)


class TestPaymentEvents:
    def test_payment_succeeded_marks_order_paid(self, db, shop, place):
        order = place()
        process_event({"type": "payment.succeeded", "order_id": order.id, "amount_cents": 100000}, db)
        order = orders.get_order(db, order.id)
        assert order.status == OrderStatus.PAID
        assert order.payment_status == PaymentStatus.CAPTURED

    def test_redelivered_event_is_skipped(self, db, shop, place, caplog):
        order = place()
        event = {"type": "payment.succeeded", "order_id": order.id}
        process_event(event, db)
        with caplog.at_level(logging.WARNING, logger="storefront.kafka.consumer"):
            process_event(event, db)
        assert "Skipping payment.succeeded" in caplog.text
        assert orders.get_order(db, order.id).status == OrderStatus.PAID

    def test_other_events_are_ignored(self, db, shop, place):
        order = place()
        process_event({"type": "payment.failed", "order_id": order.id}, db)
        process_event({"type": "payment.succeeded", "order_id": 9999}, db)
        assert orders.get_order(db, order.id).status == OrderStatus.PENDING

    def test_malformed_order_id_is_skipped(self, db, shop, place, caplog):
        order = place()
        with caplog.at_level(logging.WARNING, logger="storefront.kafka.consumer"):
            process_event({"type": "payment.succeeded", "order_id": "abc"}, db)
            process_event({"type": "payment.succeeded", "order_id": [order.id]}, db)
        assert "bad order_id 'abc'" in caplog.text
        assert orders.get_order(db, order.id).status == OrderStatus.PENDING

    def test_loop_survives_a_failing_message(self, db, shop, place, session_factory, monkeypatch, caplog):
        order = place()
        messages = [
            SimpleNamespace(value=["not", "an", "event"]),
            SimpleNamespace(value={"type": "payment.succeeded", "order_id": order.id}),
        ]
        closed = []

        class FakeConsumer:
            def __init__(self, *topics, **config):
                pass

            def __iter__(self):
                return iter(messages)

            def close(self):
                closed.append(True)

        monkeypatch.setattr(payment_consumer, "KafkaConsumer", FakeConsumer)
        monkeypatch.setattr(payment_consumer, "SessionLocal", session_factory)
        monkeypatch.setattr(payment_consumer, "_stop_event", threading.Event())

        with caplog.at_level(logging.ERROR, logger="storefront.kafka.consumer"):
            payment_consumer.run_loop()

        assert "Failed to process payment event" in caplog.text
        assert closed == [True]
        db.expire_all()
        assert orders.get_order(db, order.id).status == OrderStatus.PAID


class TestQueries:
    def test_list_orders_filters(self, db, shop, place):
        mine = place()
        theirs = place([CartLine(shop.choc_1kg.id, 1)], email=OTHER_CUSTOMER)
        orders.update_status(db, theirs.id, "PAID", actor=ADMIN)

        total, rows = orders.list_orders(db, user_email=CUSTOMER)
        assert (total, [o.id for o in rows]) == (1, [mine.id])

        total, rows = orders.list_orders(db, status="PAID")
        assert [o.id for o in rows] == [theirs.id]

        total, rows = orders.list_orders(db, search="OTHER@")
        assert [o.id for o in rows] == [theirs.id]

        with pytest.raises(ValidationError):
            orders.list_orders(db, status="LOST")

    def test_stats_count_revenue_from_paid_orders(self, db, shop, place):
        place()
        paid = place([CartLine(shop.choc_1kg.id, 1)])
        orders.update_status(db, paid.id, "PAID", actor=ADMIN)
        stats = orders.order_stats(db, since=utcnow() - timedelta(days=1))
        assert stats.total_orders == 2
        assert stats.status_counts == {"PENDING": 1, "PAID": 1}
        assert (stats.revenue_cents, stats.average_order_cents) == (85000, 85000)

    def test_order_view(self, db, shop, place):
        view = orders.order_view(place(coupon_code="SAVE10"))
        assert (view.status, view.progress, view.can_cancel) == ("PENDING", 25, True)
        assert view.allowed_transitions == ["CANCELLED", "PAID", "PROCESSING"]
        assert view.coupon.code == "SAVE10"
        assert view.shipping_address.full_name == "Asha Rao"
        assert view.items[0].weight == "500g"
        assert view.cancellation is None
