"""
Visitor lifecycle state machine.

    Planned --check_in--> Arrived --leave--> Left
    (new)   --walk_in---> Arrived

Pure logic: no I/O, no clock. Callers pass `now` and apply the returned
field changes themselves.
"""

import datetime
import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


# PUBLIC_INTERFACE
class VisitorStatus(str, enum.Enum):
    PLANNED = "Planned"
    ARRIVED = "Arrived"
    LEFT = "Left"


# PUBLIC_INTERFACE
class Trigger(str, enum.Enum):
    PLAN = "plan"
    WALK_IN = "walk_in"
    CHECK_IN = "check_in"
    LEAVE = "leave"


# PUBLIC_INTERFACE
class InvalidTransition(Exception):
    """Raised when a trigger is not legal from the current status."""

    def __init__(self, current: Optional[VisitorStatus], trigger: Trigger):
        self.current = current
        self.trigger = trigger
        state = current.value if current is not None else "(new)"
        super().__init__(f"cannot apply '{trigger.value}' to a visitor in state {state}")


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class Transition:
    status: VisitorStatus
    changes: Dict[str, Any] = field(default_factory=dict)


# (from, trigger) -> (to, timestamp field set on entry)
_TRANSITIONS = {
    (None, Trigger.PLAN): (VisitorStatus.PLANNED, None),
    (None, Trigger.WALK_IN): (VisitorStatus.ARRIVED, "arrived_at"),
    (VisitorStatus.PLANNED, Trigger.CHECK_IN): (VisitorStatus.ARRIVED, "arrived_at"),
    (VisitorStatus.ARRIVED, Trigger.LEAVE): (VisitorStatus.LEFT, "left_at"),
}


# PUBLIC_INTERFACE
def apply(current: Optional[VisitorStatus], trigger: Trigger, now: datetime.datetime) -> Transition:
    """
    Decide a transition.

    Args:
        current: status of the existing visitor, or None for a visitor not yet created.
        trigger: requested lifecycle trigger.
        now: timestamp recorded for the transition.

    Returns:
        Transition: the new status and the fields to write (always including updated_at).

    Raises:
        InvalidTransition: the trigger is not legal from `current`.
    """
    try:
        status, stamp = _TRANSITIONS[(current, trigger)]
    except KeyError:
        raise InvalidTransition(current, trigger) from None

    changes: Dict[str, Any] = {"status": status, "updated_at": now}
    if stamp is not None:
        changes[stamp] = now
    return Transition(status=status, changes=changes)


# PUBLIC_INTERFACE
def initial_state(trigger: Trigger, now: datetime.datetime) -> Transition:
    """Field set for a brand-new visitor entering the lifecycle through `trigger`."""
    transition = apply(None, trigger, now)
    changes = dict(transition.changes)
    changes["created_at"] = now
    return Transition(status=transition.status, changes=changes)
