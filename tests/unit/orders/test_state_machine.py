"""Unit tests for the order status transition table and state machine.

Covers:
- Totality: every (current, target) pair gets a verdict consistent with
  ``VALID_TRANSITIONS`` and a non-empty explanation when rejected.
- Self transitions and unknown/missing statuses are rejected.
- Final-state closure (CANCELLED, RETURNED) and COMPLETED non-finality.
- Status predicates (cancellable, returnable) and code/rank lookups.
"""

from __future__ import annotations

import itertools

import pytest

from modules.orders.constants import TERMINAL_STATES, VALID_TRANSITIONS, OrderStatus
from modules.orders.state_machine import OrderStateMachine

pytestmark = pytest.mark.unit


@pytest.fixture()
def machine():
    return OrderStateMachine()


class TestTransitionTable:
    @pytest.mark.parametrize(
        "current,target",
        list(itertools.product(list(OrderStatus), list(OrderStatus))),
    )
    def test_verdict_matches_table_for_every_pair(self, machine, current, target):
        expected = current != target and target in VALID_TRANSITIONS[current]

        assert machine.is_allowed(current, target) is expected
        if not expected:
            assert machine.explain(current, target)

    def test_every_status_has_an_entry(self):
        assert set(VALID_TRANSITIONS) == set(OrderStatus)

    def test_no_self_transitions_in_table(self):
        for status, targets in VALID_TRANSITIONS.items():
            assert status not in targets

    def test_online_payment_path(self, machine):
        path = [
            OrderStatus.PENDING_PAYMENT,
            OrderStatus.PAID,
            OrderStatus.CONFIRMED,
            OrderStatus.PREPARING,
            OrderStatus.SHIPPING,
            OrderStatus.DELIVERED,
            OrderStatus.COMPLETED,
            OrderStatus.RETURNED,
        ]
        for current, target in zip(path, path[1:]):
            assert machine.is_allowed(current, target), (current, target)

    def test_cash_on_delivery_skips_paid(self, machine):
        assert machine.is_allowed(OrderStatus.PENDING_PAYMENT, OrderStatus.CONFIRMED)

    def test_codes_are_accepted_as_strings(self, machine):
        assert machine.is_allowed("PAID", "CONFIRMED")
        assert not machine.is_allowed("PAID", "SHIPPING")


class TestRejections:
    def test_missing_status_is_rejected(self, machine):
        assert machine.is_allowed(None, OrderStatus.PAID) is False
        assert machine.is_allowed(OrderStatus.PAID, None) is False
        assert machine.explain(None, OrderStatus.PAID).startswith("Invalid status")

    def test_unknown_code_is_rejected(self, machine):
        assert machine.is_allowed("LOST_IN_TRANSIT", OrderStatus.PAID) is False
        assert machine.allowed_next("LOST_IN_TRANSIT") == frozenset()

    def test_same_status_explains_no_op(self, machine):
        reason = machine.explain(OrderStatus.PAID, OrderStatus.PAID)
        assert reason == "Order is already in Paid status."

    def test_unreachable_target_lists_allowed_destinations_by_rank(self, machine):
        reason = machine.explain(OrderStatus.PENDING_PAYMENT, OrderStatus.SHIPPING)

        assert reason == (
            "Cannot transition from Awaiting payment to Shipping. "
            "Allowed transitions: Paid, Confirmed, Cancelled."
        )

    def test_allowed_transition_is_explained_as_allowed(self, machine):
        reason = machine.explain(OrderStatus.PAID, OrderStatus.CONFIRMED)
        assert reason == "Transition from Paid to Confirmed is allowed."


class TestFinalStates:
    @pytest.mark.parametrize("final", [OrderStatus.CANCELLED, OrderStatus.RETURNED])
    def test_final_states_have_no_exit(self, machine, final):
        assert final.is_final
        assert machine.allowed_next(final) == frozenset()
        for target in OrderStatus:
            assert not machine.is_allowed(final, target)
            assert "final state" in machine.explain(final, target) or final == target

    def test_terminal_states_derived_from_table(self):
        assert TERMINAL_STATES == frozenset({OrderStatus.CANCELLED, OrderStatus.RETURNED})

    def test_completed_is_not_final(self, machine):
        # COMPLETED still accepts a return, so it is not a final state.
        assert not OrderStatus.COMPLETED.is_final
        assert machine.allowed_next(OrderStatus.COMPLETED) == frozenset(
            {OrderStatus.RETURNED}
        )


class TestStatusPredicates:
    @pytest.mark.parametrize(
        "status,cancellable",
        [
            (OrderStatus.PENDING_PAYMENT, True),
            (OrderStatus.PAID, True),
            (OrderStatus.CONFIRMED, True),
            (OrderStatus.PREPARING, True),
            (OrderStatus.SHIPPING, False),
            (OrderStatus.DELIVERED, False),
            (OrderStatus.COMPLETED, False),
            (OrderStatus.CANCELLED, False),
            (OrderStatus.RETURNED, False),
        ],
    )
    def test_is_cancellable(self, status, cancellable):
        assert status.is_cancellable is cancellable

    def test_is_returnable(self):
        returnable = {s for s in OrderStatus if s.is_returnable}
        assert returnable == {OrderStatus.DELIVERED, OrderStatus.COMPLETED}

    def test_ranks_follow_lifecycle_order(self):
        assert [s.rank for s in OrderStatus] == list(range(1, 10))
        assert OrderStatus.from_rank(5) == OrderStatus.SHIPPING
        assert OrderStatus.from_rank(42) is None

    def test_from_code(self):
        assert OrderStatus.from_code("DELIVERED") == OrderStatus.DELIVERED
        assert OrderStatus.from_code("delivered") is None
        assert OrderStatus.from_code(None) is None
