"""Unit tests for the order state machine table.

Covers:
- The table is total over (current, requested, shipping).
- Forward paths for pickup and shipped orders.
- Terminal states accept nothing.
- Paid orders never move back to a pre-payment status.
- Unknown statuses raise instead of defaulting.
"""

from __future__ import annotations

from itertools import product

import pytest

from modules.orders.constants import (
    EDITABLE_STATES,
    NOTIFY_STATES,
    SETTLED_STATES,
    TERMINAL_STATES,
    TRANSITION_TABLE,
    OrderStatus,
    allowed_transitions,
    is_transition_allowed,
)
from modules.orders.models import Order

pytestmark = pytest.mark.unit

S = OrderStatus
PRE_PAYMENT = {S.CREATED, S.PROCESSING, S.PAYMENT_FAILED, S.FAILED}


class TestTableShape:
    def test_every_combination_is_listed(self):
        expected = set(product(S.values, S.values, (False, True)))
        assert set(TRANSITION_TABLE) == expected

    def test_no_self_transitions(self):
        for status, shipping in product(S.values, (False, True)):
            assert not is_transition_allowed(status, status, shipping)

    def test_unknown_status_raises(self):
        with pytest.raises(KeyError):
            is_transition_allowed("SHIPPED", S.DELIVERED, False)
        with pytest.raises(KeyError):
            is_transition_allowed(S.PAID, "REFUNDED", False)


class TestForwardPaths:
    @pytest.mark.parametrize(
        "path",
        [
            [S.CREATED, S.PROCESSING, S.PAID, S.PREPARING, S.READY, S.DELIVERED],
            [S.CREATED, S.PROCESSING, S.PAYMENT_FAILED, S.PAID, S.PREPARING],
            [S.CREATED, S.PAID],
            [S.CREATED, S.FAILED, S.CANCELLED],
        ],
    )
    def test_pickup_paths(self, path):
        for current, requested in zip(path, path[1:]):
            assert is_transition_allowed(current, requested, False), (current, requested)

    def test_shipped_order_goes_through_transit(self):
        assert is_transition_allowed(S.READY, S.IN_TRANSIT, True)
        assert is_transition_allowed(S.IN_TRANSIT, S.DELIVERED, True)
        assert not is_transition_allowed(S.READY, S.DELIVERED, True)

    def test_pickup_order_skips_transit(self):
        assert is_transition_allowed(S.READY, S.DELIVERED, False)
        assert not is_transition_allowed(S.READY, S.IN_TRANSIT, False)

    def test_failed_can_only_be_cancelled(self):
        assert allowed_transitions(S.FAILED, False) == [S.CANCELLED]


class TestRejectedMoves:
    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATES))
    @pytest.mark.parametrize("shipping", [False, True])
    def test_terminal_states_accept_nothing(self, terminal, shipping):
        assert allowed_transitions(terminal, shipping) == []

    @pytest.mark.parametrize("settled", sorted(SETTLED_STATES))
    def test_settled_orders_never_return_to_pre_payment(self, settled):
        for target, shipping in product(PRE_PAYMENT, (False, True)):
            assert not is_transition_allowed(settled, target, shipping)

    def test_processing_cannot_go_back_to_created(self):
        assert not is_transition_allowed(S.PROCESSING, S.CREATED, False)

    def test_payment_failed_does_not_return_to_processing(self):
        assert not is_transition_allowed(S.PAYMENT_FAILED, S.PROCESSING, False)

    def test_no_skipping_fulfilment_steps(self):
        assert not is_transition_allowed(S.PAID, S.READY, False)
        assert not is_transition_allowed(S.PAID, S.DELIVERED, False)
        assert not is_transition_allowed(S.PREPARING, S.DELIVERED, False)


class TestStatusGroups:
    def test_editable_states(self):
        assert EDITABLE_STATES == {S.CREATED, S.PROCESSING, S.PAYMENT_FAILED, S.PAID}

    def test_notify_states_exclude_terminal_and_pre_payment(self):
        assert NOTIFY_STATES == {S.PAID, S.PREPARING, S.READY, S.IN_TRANSIT}


class TestOrderModelHelpers:
    def test_can_transition_uses_shipping_flag(self):
        pickup = Order(status=S.READY, shipping=False)
        shipped = Order(status=S.READY, shipping=True)
        assert pickup.can_transition_to(S.DELIVERED)
        assert not shipped.can_transition_to(S.DELIVERED)

    def test_next_statuses(self):
        order = Order(status=S.PAID, shipping=False)
        assert set(order.next_statuses) == {S.PREPARING, S.CANCELLED}

    def test_is_terminal(self):
        assert Order(status=S.DELIVERED).is_terminal
        assert not Order(status=S.READY).is_terminal
