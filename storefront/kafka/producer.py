import json
import logging
from kafka import KafkaProducer
from kafka.errors import KafkaError
from storefront.core.config import settings

logger = logging.getLogger(__name__)

_producer = None

def get_producer() -> KafkaProducer:
    global _producer
    if _producer is None:
        _producer = KafkaProducer(
            bootstrap_servers=[settings.KAFKA_BOOTSTRAP],
            value_serializer=lambda v: json.dumps(v).encode("utf-8"),
            key_serializer=lambda v: (v.encode("utf-8") if isinstance(v, str) else v),
            linger_ms=5,
            retries=3,
        )
    return _producer

def send(topic: str, key: str, value: dict):
    p = get_producer()
    p.send(topic, key=key, value=value)
    p.flush(5)

def emit_order_event(event_type: str, order, **extra):
    """Publish an order lifecycle event to ``TOPIC_ORDER_EVENTS``.

    Runs after the order transaction has committed, so a broker failure is
    logged rather than undoing the request.
    """
    if not settings.KAFKA_ENABLED:
        return
    value = {
        "type": event_type,
        "order_id": order.id,
        "order_number": order.order_number,
        "user_email": order.user_email,
        "status": order.status.value,
        "amount_cents": order.total_cents,
        **extra,
    }
    try:
        send(settings.TOPIC_ORDER_EVENTS, key=str(order.id), value=value)
    except KafkaError:
        logger.exception("Failed to publish %s for order %s", event_type, order.id)
