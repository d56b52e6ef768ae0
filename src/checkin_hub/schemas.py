"""
Pydantic schemas: command records, the wire-level check-in event, and the
projections returned by queries and the HTTP API.
"""

import datetime
import enum
import json
import uuid
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .lifecycle import VisitorStatus
from .models import COMPANY_MAX_LENGTH, NAME_MAX_LENGTH

NIL_ID = uuid.UUID(int=0)


def _to_date(value: Any) -> Any:
    if isinstance(value, datetime.datetime):
        if value.tzinfo is not None:
            value = value.astimezone(datetime.timezone.utc)
        return value.date()
    if isinstance(value, str) and "T" in value:
        try:
            return _to_date(datetime.datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            return value
    if value == "":
        return None
    return value


def _is_nil_id(value: str) -> bool:
    try:
        return uuid.UUID(value) == NIL_ID
    except ValueError:
        return False


# -------------------- Commands --------------------

class _Command(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)


# PUBLIC_INTERFACE
class CheckInVisitorCommand(_Command):
    """Kiosk check-in: walk-in details, optionally pointing at a planned visit."""
    name: str = Field(..., min_length=1, max_length=NAME_MAX_LENGTH)
    company: Optional[str] = Field(None, max_length=COMPANY_MAX_LENGTH)
    planned_visitor_id: Optional[uuid.UUID] = None


# PUBLIC_INTERFACE
class PlanVisitCommand(_Command):
    name: str = Field(..., min_length=1, max_length=NAME_MAX_LENGTH)
    company: str = Field(..., min_length=1, max_length=COMPANY_MAX_LENGTH)
    visit_date: Optional[datetime.date] = None

    @field_validator("visit_date", mode="before")
    @classmethod
    def _normalize_date(cls, value):
        return _to_date(value)


# PUBLIC_INTERFACE
class VisitorIdCommand(_Command):
    visitor_id: uuid.UUID


# PUBLIC_INTERFACE
class UpdatePlannedVisitCommand(_Command):
    visitor_id: uuid.UUID
    name: str = Field(..., min_length=1, max_length=NAME_MAX_LENGTH)
    company: str = Field(..., min_length=1, max_length=COMPANY_MAX_LENGTH)
    visit_date: Optional[datetime.date] = None

    @field_validator("visit_date", mode="before")
    @classmethod
    def _normalize_date(cls, value):
        return _to_date(value)


# -------------------- Wire events --------------------

# PUBLIC_INTERFACE
class CheckInMode(str, enum.Enum):
    UNKNOWN = "UNKNOWN"
    SELF_CHECK_IN = "SELF_CHECK_IN"
    REMOTE_CHECK_IN = "REMOTE_CHECK_IN"


# PUBLIC_INTERFACE
class CommunicationEvent(BaseModel):
    """
    Check-in event sent by kiosks and dashboards.
    Accepts both snake_case and the PascalCase keys older kiosks emit.
    The id stays a string here; the command handlers validate it.
    """
    id: Optional[str] = Field(None, validation_alias=AliasChoices("id", "Id"))
    name: str = Field("", validation_alias=AliasChoices("name", "Name"))
    company: Optional[str] = Field(None, validation_alias=AliasChoices("company", "Company"))
    mode: CheckInMode = Field(CheckInMode.UNKNOWN, validation_alias=AliasChoices("mode", "Mode"))

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, value):
        if isinstance(value, uuid.UUID):
            value = str(value)
        if isinstance(value, str):
            value = value.strip()
            if value == "" or _is_nil_id(value):
                return None
        return value

    # PUBLIC_INTERFACE
    @classmethod
    def decode(cls, raw: Any) -> "CommunicationEvent":
        """
        Decodes a JSON object, or a JSON document encoded as a string.

        Raises:
            ValueError: the payload is not a check-in event (pydantic's
                ValidationError is a ValueError too).
        """
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        if isinstance(raw, str):
            raw = json.loads(raw)
        if not isinstance(raw, dict):
            raise ValueError("check-in payload must be a JSON object")
        return cls.model_validate(raw)

    def encode(self) -> dict:
        return {
            "id": self.id or "",
            "name": self.name,
            "company": self.company,
            "mode": self.mode.value,
        }


# -------------------- Projections --------------------

# PUBLIC_INTERFACE
class VisitorOut(BaseModel):
    id: uuid.UUID
    name: str
    company: str
    status: VisitorStatus
    visit_date: datetime.date
    created_at: datetime.datetime
    arrived_at: Optional[datetime.datetime] = None
    left_at: Optional[datetime.datetime] = None
    updated_at: datetime.datetime

    model_config = ConfigDict(from_attributes=True)


# PUBLIC_INTERFACE
class DashboardSnapshot(BaseModel):
    """Visits of one day split by where the visitor is in the lifecycle."""
    date: datetime.date
    planned: List[VisitorOut]
    currently_visiting: List[VisitorOut]
    already_left: List[VisitorOut]


# PUBLIC_INTERFACE
class PlannedVisitOut(BaseModel):
    id: uuid.UUID
    name: str
    company: str
    visit_date: datetime.date
    created_at: datetime.datetime

    model_config = ConfigDict(from_attributes=True)


# PUBLIC_INTERFACE
class DayVisits(BaseModel):
    date: datetime.date
    visits: List[PlannedVisitOut]


# PUBLIC_INTERFACE
class VisitorSearchResult(BaseModel):
    id: uuid.UUID
    name: str
    company: str

    model_config = ConfigDict(from_attributes=True)


# -------------------- HTTP request bodies --------------------
# Loosely typed; the command handlers validate and report every field.

class CheckInRequest(BaseModel):
    name: Optional[str] = None
    company: Optional[str] = None
    planned_visitor_id: Optional[str] = None


class PlannedVisitRequest(BaseModel):
    name: Optional[str] = None
    company: Optional[str] = None
    visit_date: Optional[str] = None
