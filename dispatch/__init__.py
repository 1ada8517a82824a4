#Expose the order state machine:
#Transition rules (what may follow what)
#Assignable set (what a rider may claim)
#Stock side-effect predicates

from .state_machines.order_state import (
    ASSIGNABLE_STATUSES,
    OrderStateException,
    can_transition,
    commits_stock,
    ensure_transition,
    is_assignable,
    is_terminal,
    restores_stock,
)

__all__ = [
    "ASSIGNABLE_STATUSES",
    "OrderStateException",
    "can_transition",
    "commits_stock",
    "ensure_transition",
    "is_assignable",
    "is_terminal",
    "restores_stock",
]
