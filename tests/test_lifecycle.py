import datetime

import pytest

from checkin_hub import lifecycle
from checkin_hub.lifecycle import InvalidTransition, Trigger, VisitorStatus

NOW = datetime.datetime(2024, 5, 15, 9, 30)


def test_plan_creates_planned_visitor_without_arrival():
    transition = lifecycle.initial_state(Trigger.PLAN, NOW)
    assert transition.status == VisitorStatus.PLANNED
    assert transition.changes["created_at"] == NOW
    assert transition.changes["updated_at"] == NOW
    assert "arrived_at" not in transition.changes


def test_walk_in_arrives_immediately():
    transition = lifecycle.initial_state(Trigger.WALK_IN, NOW)
    assert transition.status == VisitorStatus.ARRIVED
    assert transition.changes["arrived_at"] == NOW


def test_check_in_then_leave():
    arrived = lifecycle.apply(VisitorStatus.PLANNED, Trigger.CHECK_IN, NOW)
    assert arrived.status == VisitorStatus.ARRIVED
    assert arrived.changes["arrived_at"] == NOW

    later = NOW + datetime.timedelta(hours=2)
    left = lifecycle.apply(arrived.status, Trigger.LEAVE, later)
    assert left.status == VisitorStatus.LEFT
    assert left.changes == {"status": VisitorStatus.LEFT, "updated_at": later, "left_at": later}


@pytest.mark.parametrize(
    "current, trigger",
    [
        (VisitorStatus.PLANNED, Trigger.LEAVE),
        (VisitorStatus.ARRIVED, Trigger.CHECK_IN),
        (VisitorStatus.LEFT, Trigger.CHECK_IN),
        (VisitorStatus.LEFT, Trigger.LEAVE),
        (VisitorStatus.PLANNED, Trigger.PLAN),
        (None, Trigger.LEAVE),
        (None, Trigger.CHECK_IN),
    ],
)
def test_illegal_transitions_are_refused(current, trigger):
    with pytest.raises(InvalidTransition) as excinfo:
        lifecycle.apply(current, trigger, NOW)
    assert excinfo.value.current == current
    assert excinfo.value.trigger == trigger
