from enum import Enum
from typing import Dict, FrozenSet


class CheckoutStatus(str, Enum):
    STARTED = "started"
    PERSONAL_INFO = "personal_info"
    SHIPPING_INFO = "shipping_info"
    PAYMENT_SELECTION = "payment_selection"
    PAYMENT_PROCESSING = "payment_processing"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


S = CheckoutStatus

TRANSITIONS: Dict[CheckoutStatus, FrozenSet[CheckoutStatus]] = {
    S.STARTED: frozenset({S.PERSONAL_INFO, S.ABANDONED}),
    S.PERSONAL_INFO: frozenset({S.PERSONAL_INFO, S.SHIPPING_INFO, S.ABANDONED}),
    S.SHIPPING_INFO: frozenset({S.PERSONAL_INFO, S.SHIPPING_INFO, S.PAYMENT_SELECTION, S.ABANDONED}),
    S.PAYMENT_SELECTION: frozenset(
        {S.PERSONAL_INFO, S.SHIPPING_INFO, S.PAYMENT_SELECTION, S.PAYMENT_PROCESSING, S.ABANDONED}
    ),
    S.PAYMENT_PROCESSING: frozenset({S.PAYMENT_SELECTION, S.COMPLETED, S.ABANDONED}),
    S.COMPLETED: frozenset(),
    S.ABANDONED: frozenset(),
}

TERMINAL = frozenset(s for s, targets in TRANSITIONS.items() if not targets)


class IllegalTransition(ValueError):
    def __init__(self, current: CheckoutStatus, target: CheckoutStatus) -> None:
        super().__init__(f"Cannot move checkout from {current.value} to {target.value}")
        self.current = current
        self.target = target


def can_transition(current, target) -> bool:
    return CheckoutStatus(target) in TRANSITIONS[CheckoutStatus(current)]


def transition(current, target) -> CheckoutStatus:
    cur, tgt = CheckoutStatus(current), CheckoutStatus(target)
    if tgt not in TRANSITIONS[cur]:
        raise IllegalTransition(cur, tgt)
    return tgt
