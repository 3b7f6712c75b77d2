# app/services/subscription_state.py
"""Subscription status state machine. Pure functions, no I/O."""
from typing import List, Union

from app.constants.subscription_status import ALLOWED_TRANSITIONS
from app.errors import InvalidStateTransition
from app.models.subscription import SubscriptionStatus

StatusLike = Union[SubscriptionStatus, str]


def _coerce(status: StatusLike) -> SubscriptionStatus:
    return SubscriptionStatus(status)


def can_transition(from_status: StatusLike, to_status: StatusLike) -> bool:
    source, target = _coerce(from_status), _coerce(to_status)
    if source == target:
        return True
    return target in ALLOWED_TRANSITIONS[source]


def assert_transition(from_status: StatusLike, to_status: StatusLike) -> None:
    if not can_transition(from_status, to_status):
        raise InvalidStateTransition(from_status, to_status)


def get_allowed_transitions(status: StatusLike) -> List[SubscriptionStatus]:
    return list(ALLOWED_TRANSITIONS[_coerce(status)])
