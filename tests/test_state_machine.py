"""Tests for the order status transition table."""

import pytest

from storefront.core.errors import CancellationNotAllowed, InvalidTransition, ValidationError
from storefront.db.models import OrderStatus as S
from storefront.services import state_machine

EXPECTED = {
    S.PENDING: {S.PROCESSING, S.PAID, S.CANCELLED},
    S.PROCESSING: {S.PAID, S.SHIPPED, S.CANCELLED},
    S.PAID: {S.SHIPPED, S.CANCELLED},
    S.SHIPPED: {S.DELIVERED},
    S.DELIVERED: set(),
    S.CANCELLED: set(),
    S.REFUNDED: set(),
}

ALL_PAIRS = [(a, b) for a in S for b in S]


@pytest.mark.parametrize("current,requested", ALL_PAIRS)
def test_transition_table(current, requested):
    allowed = requested in EXPECTED[current]
    assert state_machine.can_transition(current, requested) is allowed
    if allowed:
        state_machine.check_transition(current, requested)
    else:
        with pytest.raises(InvalidTransition) as exc:
            state_machine.check_transition(current, requested)
        assert exc.value.current == current.value
        assert exc.value.requested == requested.value


@pytest.mark.parametrize("terminal", [S.DELIVERED, S.CANCELLED, S.REFUNDED])
def test_terminal_states_have_no_exits(terminal):
    assert terminal in state_machine.TERMINAL
    assert state_machine.allowed_transitions(terminal) == frozenset()


def test_accepts_plain_strings():
    assert state_machine.can_transition("PENDING", "PAID")
    assert not state_machine.can_transition("SHIPPED", "CANCELLED")


def test_parse_status_rejects_unknown_values():
    assert state_machine.parse_status("SHIPPED") is S.SHIPPED
    with pytest.raises(ValidationError):
        state_machine.parse_status("LOST")


class TestCustomerCancel:
    @pytest.mark.parametrize("status", [S.PENDING, S.PROCESSING])
    def test_allowed(self, status):
        assert state_machine.can_customer_cancel(status)
        state_machine.check_customer_cancel(status)

    @pytest.mark.parametrize("status", [S.PAID, S.SHIPPED])
    def test_not_allowed_once_paid(self, status):
        assert not state_machine.can_customer_cancel(status)
        with pytest.raises(CancellationNotAllowed):
            state_machine.check_customer_cancel(status)

    @pytest.mark.parametrize("status", [S.DELIVERED, S.CANCELLED, S.REFUNDED])
    def test_terminal_is_an_invalid_transition(self, status):
        with pytest.raises(InvalidTransition):
            state_machine.check_customer_cancel(status)


@pytest.mark.parametrize("status,expected", [
    (S.PENDING, 25), (S.PROCESSING, 50), (S.PAID, 50), (S.SHIPPED, 75),
    (S.DELIVERED, 100), (S.CANCELLED, 0), (S.REFUNDED, 0),
])
def test_progress(status, expected):
    assert state_machine.progress(status) == expected
