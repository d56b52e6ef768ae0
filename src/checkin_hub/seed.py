"""
Demo data for a fresh development database.
"""

import datetime
import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from . import lifecycle
from .lifecycle import Trigger
from .models import Visitor, utcnow

logger = logging.getLogger(__name__)

PLANNED = [
    ("Max Mustermann", "Tech Solutions GmbH"),
    ("Anna Schmidt", "Digital Innovations"),
    ("Peter Weber", "Global Consulting"),
]
VISITING = [
    ("John Doe", "Acme Corp", 8),
    ("Jane Smith", "TechCo", 8),
    ("Robert Johnson", "Business Partners Inc", 9),
]
LEFT = [
    ("Michael Brown", "Software AG", 8, 10),
    ("Sarah Davis", "Marketing Pro", 9, 11),
    ("David Wilson", "Finance Corp", 7, 9),
]


def _visitor(name, company, day, trigger, at):
    transition = lifecycle.initial_state(trigger, at)
    return Visitor(name=name, company=company, visit_date=day, **transition.changes)


# PUBLIC_INTERFACE
def seed_demo_data(db: Session, now: datetime.datetime = None) -> int:
    """
    Inserts a day's worth of demo visitors when the table is empty.

    Returns:
        int: number of visitors inserted (0 if the table already had rows).
    """
    if db.scalar(select(func.count()).select_from(Visitor)):
        return 0

    now = now or utcnow()
    today = now.date()
    midnight = datetime.datetime.combine(today, datetime.time.min)

    visitors = [_visitor(name, company, today, Trigger.PLAN, now) for name, company in PLANNED]
    for name, company, hour in VISITING:
        visitors.append(_visitor(name, company, today, Trigger.WALK_IN, midnight + datetime.timedelta(hours=hour)))
    for name, company, arrived, left in LEFT:
        visitor = _visitor(name, company, today, Trigger.WALK_IN, midnight + datetime.timedelta(hours=arrived))
        leave = lifecycle.apply(visitor.status, Trigger.LEAVE, midnight + datetime.timedelta(hours=left))
        for key, value in leave.changes.items():
            setattr(visitor, key, value)
        visitors.append(visitor)

    db.add_all(visitors)
    db.commit()
    logger.info("Seeded %d demo visitors", len(visitors))
    return len(visitors)
