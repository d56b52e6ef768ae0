"""
SQLAlchemy ORM models for the visitor check-in hub.
Entities: Visitor.
"""

import datetime
import os
import time
import uuid

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Uuid,
)
from sqlalchemy.orm import declarative_base

from .lifecycle import VisitorStatus

Base = declarative_base()

WALK_IN_COMPANY = "Walk-in"
NAME_MAX_LENGTH = 100
COMPANY_MAX_LENGTH = 100


def utcnow() -> datetime.datetime:
    """Naive UTC timestamp; all stored datetimes are naive UTC."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


# PUBLIC_INTERFACE
def new_visitor_id() -> uuid.UUID:
    """
    UUID version 7: 48-bit unix milliseconds followed by random bits,
    so ids sort by creation time.
    """
    millis = time.time_ns() // 1_000_000
    rand = int.from_bytes(os.urandom(10), "big")
    value = (millis & ((1 << 48) - 1)) << 80
    value |= 0x7 << 76
    value |= ((rand >> 62) & 0xFFF) << 64
    value |= 0b10 << 62
    value |= rand & ((1 << 62) - 1)
    return uuid.UUID(int=value)


# PUBLIC_INTERFACE
class Visitor(Base):
    """
    Visitor model.
    One person's visit: identity, lifecycle status and its timestamps.
    `version` is bumped on every UPDATE and guards against lost updates.
    """
    __tablename__ = "visitors"

    id = Column(Uuid, primary_key=True, default=new_visitor_id)
    name = Column(String(NAME_MAX_LENGTH), nullable=False)
    company = Column(String(COMPANY_MAX_LENGTH), nullable=False)
    status = Column(
        Enum(
            VisitorStatus,
            native_enum=False,
            length=16,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=VisitorStatus.PLANNED,
        index=True,
    )
    visit_date = Column(Date, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, index=True)
    arrived_at = Column(DateTime, nullable=True)
    left_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (Index("ix_visitors_name_company_created_at", "name", "company", "created_at"),)

    def __repr__(self):
        return f"<Visitor {self.id} {self.name!r} ({self.company!r}) {self.status.value}>"
