import pytest

from storecore.services.checkout_state import (
    TERMINAL,
    CheckoutStatus,
    IllegalTransition,
    can_transition,
    transition,
)


def test_forward_path():
    status = CheckoutStatus.STARTED
    for target in (
        CheckoutStatus.PERSONAL_INFO,
        CheckoutStatus.SHIPPING_INFO,
        CheckoutStatus.PAYMENT_SELECTION,
        CheckoutStatus.PAYMENT_PROCESSING,
        CheckoutStatus.COMPLETED,
    ):
        status = transition(status, target)
    assert status is CheckoutStatus.COMPLETED


def test_cannot_skip_steps():
    with pytest.raises(IllegalTransition):
        transition("started", "shipping_info")
    with pytest.raises(IllegalTransition):
        transition("personal_info", "payment_selection")


def test_terminal_states_have_no_exits():
    assert TERMINAL == {CheckoutStatus.COMPLETED, CheckoutStatus.ABANDONED}
    for target in CheckoutStatus:
        assert not can_transition("completed", target)
        assert not can_transition("abandoned", target)


def test_going_back_to_edit_is_allowed():
    assert can_transition("payment_selection", "personal_info")
    assert can_transition("payment_processing", "payment_selection")


def test_illegal_transition_is_value_error():
    assert issubclass(IllegalTransition, ValueError)
