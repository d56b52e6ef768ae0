import datetime
import uuid

import pytest

from checkin_hub import queries
from checkin_hub.commands import check_in_visitor, create_planned_visit, mark_visitor_arrived, visitor_leaves
from checkin_hub.errors import ErrorKind

NOW = datetime.datetime(2024, 5, 15, 9, 30)
TODAY = NOW.date()


def _plan(db, name, visit_date=TODAY, company="Acme"):
    return create_planned_visit(db, name, company, visit_date=visit_date, now=NOW).value


def test_dashboard_splits_the_day_by_status(db):
    _plan(db, "Planned Today")
    _plan(db, "Planned Tomorrow", visit_date=TODAY + datetime.timedelta(days=1))
    visiting = check_in_visitor(db, "Still Here", "TechCo", now=NOW).value
    gone = check_in_visitor(db, "Gone Already", "Software AG", now=NOW).value
    visitor_leaves(db, gone.id, now=NOW + datetime.timedelta(hours=1))
    yesterday = check_in_visitor(db, "Yesterday", "Old Corp", now=NOW - datetime.timedelta(days=1)).value

    snapshot = queries.get_visits_for_date(db, TODAY)

    assert snapshot.date == TODAY
    assert [v.name for v in snapshot.planned] == ["Planned Today"]
    assert [v.id for v in snapshot.currently_visiting] == [visiting.id]
    assert [v.id for v in snapshot.already_left] == [gone.id]
    all_ids = {v.id for v in snapshot.planned + snapshot.currently_visiting + snapshot.already_left}
    assert yesterday.id not in all_ids


def test_dashboard_of_empty_day(db):
    snapshot = queries.get_visits_for_date(db, TODAY)
    assert snapshot.planned == snapshot.currently_visiting == snapshot.already_left == []


@pytest.mark.parametrize(
    "today, monday",
    [
        (datetime.date(2024, 5, 15), datetime.date(2024, 5, 20)),  # Wednesday
        (datetime.date(2024, 5, 20), datetime.date(2024, 5, 27)),  # Monday
        (datetime.date(2024, 5, 18), datetime.date(2024, 5, 20)),  # Saturday
        (datetime.date(2024, 5, 19), datetime.date(2024, 5, 20)),  # Sunday
        (datetime.date(2024, 12, 31), datetime.date(2025, 1, 6)),
    ],
)
def test_next_workweek(today, monday):
    first, last = queries.next_workweek(today)
    assert first == monday
    assert last == monday + datetime.timedelta(days=4)
    assert first.weekday() == 0 and last.weekday() == 4


def test_next_workweek_visits(db):
    _plan(db, "This Friday", visit_date=datetime.date(2024, 5, 17))
    _plan(db, "Monday", visit_date=datetime.date(2024, 5, 20))
    _plan(db, "Friday", visit_date=datetime.date(2024, 5, 24))
    _plan(db, "Saturday", visit_date=datetime.date(2024, 5, 25))

    visits = queries.get_next_workweek_visits(db, today=TODAY)

    assert [v.name for v in visits] == ["Monday", "Friday"]


def test_week_lists_every_day(db):
    _plan(db, "Today")
    _plan(db, "In Two Days", visit_date=TODAY + datetime.timedelta(days=2))
    _plan(db, "Too Late", visit_date=TODAY + datetime.timedelta(days=8))

    week = queries.get_visits_for_week(db, TODAY)

    assert len(week) == 8
    assert week[0].date == TODAY and [v.name for v in week[0].visits] == ["Today"]
    assert week[1].visits == []
    assert [v.name for v in week[2].visits] == ["In Two Days"]
    assert all(v.name != "Too Late" for day in week for v in day.visits)


def test_month_only_lists_planned_visits_of_that_month(db):
    _plan(db, "April", visit_date=datetime.date(2024, 4, 30))
    _plan(db, "May First", visit_date=datetime.date(2024, 5, 1))
    _plan(db, "May Last", visit_date=datetime.date(2024, 5, 31))
    arrived = _plan(db, "Arrived In May", visit_date=datetime.date(2024, 5, 15))
    mark_visitor_arrived(db, arrived.id, now=NOW)

    assert [v.name for v in queries.get_visits_for_month(db, 2024, 5)] == ["May First", "May Last"]


def test_december_month_ends_on_new_year(db):
    _plan(db, "New Years Eve", visit_date=datetime.date(2024, 12, 31))
    _plan(db, "New Year", visit_date=datetime.date(2025, 1, 1))
    assert [v.name for v in queries.get_visits_for_month(db, 2024, 12)] == ["New Years Eve"]


def test_search_needs_three_characters(db):
    _plan(db, "Anna Schmidt")
    assert queries.search_planned_visitors(db, "An") == []
    assert queries.search_planned_visitors(db, "  An  ") == []
    assert queries.search_planned_visitors(db, None) == []


def test_search_is_case_insensitive_substring_over_planned_visitors(db):
    _plan(db, "Anna Schmidt", company="Digital Innovations")
    _plan(db, "Joanna Weber")
    arrived = _plan(db, "Hanna Arrived")
    mark_visitor_arrived(db, arrived.id, now=NOW)

    results = queries.search_planned_visitors(db, "ANN")

    assert [r.name for r in results] == ["Anna Schmidt", "Joanna Weber"]
    assert results[0].company == "Digital Innovations"


def test_search_returns_at_most_ten(db):
    for i in range(12):
        _plan(db, f"Visitor {i:02d}")
    assert len(queries.search_planned_visitors(db, "visitor")) == 10


def test_get_visitor(db):
    visitor = _plan(db, "Anna Schmidt")
    result = queries.get_visitor(db, str(visitor.id))
    assert result.value.name == "Anna Schmidt"

    assert queries.get_visitor(db, uuid.uuid4()).first_error.kind == ErrorKind.NOT_FOUND
    assert queries.get_visitor(db, "abc").first_error.kind == ErrorKind.VALIDATION_FAILED
