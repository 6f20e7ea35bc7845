"""Order state machine.

    PENDING ──► CONFIRMED ──► COMPLETED
       │            │
       └──► CANCELLED ◄┘

COMPLETED and CANCELLED are terminal.
"""

from src.mk_common.enums import OrderStatus
from src.mk_common.errors import InvalidStateTransitionError

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return OrderStatus(target) in ALLOWED_TRANSITIONS[OrderStatus(current)]


def ensure_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvalidStateTransitionError(
            "Order", OrderStatus(current).value, OrderStatus(target).value
        )
