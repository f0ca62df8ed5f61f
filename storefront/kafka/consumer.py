import threading, json, logging
from kafka import KafkaConsumer
from sqlalchemy.orm import Session
from storefront.core.config import settings
from storefront.core.errors import InvalidTransition, NotFound
from storefront.db.models import OrderStatus
from storefront.db.session import SessionLocal
from storefront.services import orders

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system:payment"

_stop_event = threading.Event()
_thread = None

def process_event(ev: dict, db: Session):
    if ev.get("type") != "payment.succeeded":
        return
    order_id = ev.get("order_id")
    if not order_id:
        return
    try:
        order_id = int(order_id)
    except (TypeError, ValueError):
        logger.warning("Ignoring payment.succeeded with bad order_id %r", order_id)
        return
    try:
        orders.update_status(db, order_id, OrderStatus.PAID, actor=SYSTEM_ACTOR,
                             notes=f"Payment captured: {ev.get('amount_cents', '?')} cents")
    except (InvalidTransition, NotFound) as e:
        # redelivered or late events for orders that already moved on
        logger.warning("Skipping payment.succeeded for order %s: %s", order_id, e)

def run_loop():
    consumer = KafkaConsumer(
        settings.TOPIC_PAYMENT_EVENTS,
        bootstrap_servers=[settings.KAFKA_BOOTSTRAP],
        group_id="storefront-orders",
        value_deserializer=lambda v: json.loads(v.decode("utf-8")),
        enable_auto_commit=True,
        auto_offset_reset="earliest",
    )
    db = SessionLocal()
    try:
        for msg in consumer:
            if _stop_event.is_set(): break
            try:
                process_event(msg.value, db)
            except Exception:
                logger.exception("Failed to process payment event %r", msg.value)
                db.rollback()
    finally:
        db.close()
        consumer.close()

def start():
    global _thread
    if not settings.KAFKA_ENABLED: return
    if _thread and _thread.is_alive(): return
    _stop_event.clear()
    _thread = threading.Thread(target=run_loop, daemon=True)
    _thread.start()

def stop():
    _stop_event.set()
