"""
Read-only projections used by the dashboard and kiosk screens.
"""

import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from .errors import Error, Result
from .lifecycle import VisitorStatus
from .models import Visitor, utcnow
from .registry import VisitorRegistry
from .schemas import (
    DashboardSnapshot,
    DayVisits,
    PlannedVisitOut,
    VisitorIdCommand,
    VisitorOut,
    VisitorSearchResult,
)

SEARCH_MIN_LENGTH = 3
SEARCH_LIMIT = 10


def _day_bounds(day: datetime.date):
    start = datetime.datetime.combine(day, datetime.time.min)
    return start, start + datetime.timedelta(days=1)


# PUBLIC_INTERFACE
def get_visits_for_date(db: Session, for_date: Optional[datetime.date] = None) -> DashboardSnapshot:
    """
    Dashboard snapshot of one day (default: today, UTC).

    Returns:
        DashboardSnapshot: planned visits of that day, visitors who arrived that
        day and are still here, and visitors who left that day.
    """
    for_date = for_date or utcnow().date()
    start, end = _day_bounds(for_date)
    registry = VisitorRegistry(db)

    planned = registry.query(
        Visitor.status == VisitorStatus.PLANNED,
        Visitor.visit_date == for_date,
        order_by=(Visitor.created_at,),
    )
    visiting = registry.query(
        Visitor.status == VisitorStatus.ARRIVED,
        Visitor.arrived_at >= start,
        Visitor.arrived_at < end,
        order_by=(Visitor.arrived_at,),
    )
    left = registry.query(
        Visitor.status == VisitorStatus.LEFT,
        Visitor.left_at >= start,
        Visitor.left_at < end,
        order_by=(Visitor.left_at,),
    )
    return DashboardSnapshot(
        date=for_date,
        planned=[VisitorOut.model_validate(v) for v in planned],
        currently_visiting=[VisitorOut.model_validate(v) for v in visiting],
        already_left=[VisitorOut.model_validate(v) for v in left],
    )


# PUBLIC_INTERFACE
def next_workweek(today: datetime.date):
    """Monday and Friday of the coming work week. On a Monday that is the week after."""
    days_until_monday = 7 - today.weekday()
    monday = today + datetime.timedelta(days=days_until_monday)
    return monday, monday + datetime.timedelta(days=4)


def _planned_between(db: Session, first: datetime.date, last: datetime.date) -> List[Visitor]:
    return VisitorRegistry(db).query(
        Visitor.status == VisitorStatus.PLANNED,
        Visitor.visit_date >= first,
        Visitor.visit_date <= last,
        order_by=(Visitor.visit_date, Visitor.created_at),
    )


# PUBLIC_INTERFACE
def get_next_workweek_visits(db: Session, today: Optional[datetime.date] = None) -> List[PlannedVisitOut]:
    monday, friday = next_workweek(today or utcnow().date())
    return [PlannedVisitOut.model_validate(v) for v in _planned_between(db, monday, friday)]


# PUBLIC_INTERFACE
def get_visits_for_week(db: Session, start: Optional[datetime.date] = None, days: int = 8) -> List[DayVisits]:
    """Planned visits grouped per day for `days` consecutive days, empty days included."""
    start = start or utcnow().date()
    last = start + datetime.timedelta(days=days - 1)
    visits = _planned_between(db, start, last)

    week = []
    for offset in range(days):
        day = start + datetime.timedelta(days=offset)
        week.append(
            DayVisits(
                date=day,
                visits=[PlannedVisitOut.model_validate(v) for v in visits if v.visit_date == day],
            )
        )
    return week


# PUBLIC_INTERFACE
def get_visits_for_month(db: Session, year: int, month: int) -> List[PlannedVisitOut]:
    first = datetime.date(year, month, 1)
    if month == 12:
        following = datetime.date(year + 1, 1, 1)
    else:
        following = datetime.date(year, month + 1, 1)
    last = following - datetime.timedelta(days=1)
    return [PlannedVisitOut.model_validate(v) for v in _planned_between(db, first, last)]


# PUBLIC_INTERFACE
def search_planned_visitors(db: Session, term: Optional[str]) -> List[VisitorSearchResult]:
    """
    Kiosk lookup of planned visitors by name.
    Case-insensitive substring match; terms shorter than three characters find nothing.
    """
    term = (term or "").strip()
    if len(term) < SEARCH_MIN_LENGTH:
        return []

    pattern = f"%{term.lower()}%"
    visitors = VisitorRegistry(db).query(
        Visitor.status == VisitorStatus.PLANNED,
        func.lower(Visitor.name).like(pattern),
        order_by=(Visitor.name,),
        limit=SEARCH_LIMIT,
    )
    return [VisitorSearchResult.model_validate(v) for v in visitors]


# PUBLIC_INTERFACE
def get_visitor(db: Session, visitor_id) -> Result[VisitorOut]:
    try:
        command = VisitorIdCommand(visitor_id=visitor_id)
    except ValueError:
        return Result.fail(Error.validation("visitor_id", "Visitor id must be a valid identifier."))

    visitor = VisitorRegistry(db).get(command.visitor_id)
    if visitor is None:
        return Result.fail(Error.not_found("VISITOR.NOT_FOUND", "Visitor not found."))
    return Result.ok(VisitorOut.model_validate(visitor))
