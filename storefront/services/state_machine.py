"""Order status transition table."""
from storefront.core.errors import CancellationNotAllowed, InvalidTransition, ValidationError
from storefront.db.models import OrderStatus

S = OrderStatus

TRANSITIONS = {
    S.PENDING: frozenset({S.PROCESSING, S.PAID, S.CANCELLED}),
    S.PROCESSING: frozenset({S.PAID, S.SHIPPED, S.CANCELLED}),
    S.PAID: frozenset({S.SHIPPED, S.CANCELLED}),
    S.SHIPPED: frozenset({S.DELIVERED}),
    S.DELIVERED: frozenset(),
    S.CANCELLED: frozenset(),
    S.REFUNDED: frozenset(),
}

TERMINAL = frozenset({S.DELIVERED, S.CANCELLED, S.REFUNDED})

# statuses a customer may cancel from the storefront
CUSTOMER_CANCELLABLE = frozenset({S.PENDING, S.PROCESSING})

PROGRESS = {
    S.PENDING: 25,
    S.PROCESSING: 50,
    S.PAID: 50,
    S.SHIPPED: 75,
    S.DELIVERED: 100,
}


def parse_status(value) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown order status: {value}")


def allowed_transitions(current) -> frozenset:
    return TRANSITIONS[OrderStatus(current)]


def can_transition(current, requested) -> bool:
    return OrderStatus(requested) in allowed_transitions(current)


def check_transition(current, requested) -> None:
    current, requested = OrderStatus(current), OrderStatus(requested)
    if requested not in TRANSITIONS[current]:
        raise InvalidTransition(current.value, requested.value)


def can_customer_cancel(current) -> bool:
    return OrderStatus(current) in CUSTOMER_CANCELLABLE


def check_customer_cancel(current) -> None:
    current = OrderStatus(current)
    if current in TERMINAL:
        raise InvalidTransition(current.value, S.CANCELLED.value)
    if current not in CUSTOMER_CANCELLABLE:
        raise CancellationNotAllowed(current.value)


def progress(current) -> int:
    return PROGRESS.get(OrderStatus(current), 0)
