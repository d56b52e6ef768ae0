"""
Command handlers, one per use case.

Every handler:
  1. validates its input and reports all invalid fields at once,
  2. loads the visitor and rejects wrong states with an actionable message,
  3. routes lifecycle changes through `lifecycle.apply`,
  4. persists through the registry,
and returns a `Result`. Nothing raised inside a handler reaches the caller.
"""

import datetime
import functools
import logging
import uuid
from typing import Optional, Tuple, Type, Union

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from . import lifecycle
from .errors import ConflictError, Error, ErrorKind, Result
from .lifecycle import InvalidTransition, Trigger, VisitorStatus
from .models import WALK_IN_COMPANY, Visitor, utcnow
from .registry import VisitorRegistry
from .schemas import (
    CheckInVisitorCommand,
    PlanVisitCommand,
    UpdatePlannedVisitCommand,
    VisitorIdCommand,
)

logger = logging.getLogger(__name__)

VisitorId = Union[uuid.UUID, str, None]

_LABELS = {
    "name": "Name",
    "company": "Company",
    "visitor_id": "Visitor id",
    "planned_visitor_id": "Planned visitor id",
    "visit_date": "Visit date",
}

_MESSAGES = {
    "missing": "{label} is required.",
    "string_type": "{label} is required.",
    "string_too_short": "{label} is required.",
    "string_too_long": "{label} must not exceed {max_length} characters.",
    "uuid_parsing": "{label} must be a valid identifier.",
    "uuid_type": "{label} must be a valid identifier.",
    "date_parsing": "{label} must be a valid date.",
    "date_from_datetime_parsing": "{label} must be a valid date.",
    "date_type": "{label} must be a valid date.",
}


# -------------------- Validation --------------------

def _validation_error(err: dict) -> Error:
    field = str(err["loc"][0]) if err.get("loc") else "command"
    label = _LABELS.get(field, field)
    template = _MESSAGES.get(err.get("type"))
    if template is None:
        return Error.validation(field, f"{label}: {err.get('msg')}")
    ctx = err.get("ctx") or {}
    return Error.validation(field, template.format(label=label, max_length=ctx.get("max_length")))


# PUBLIC_INTERFACE
def validate(model: Type[BaseModel], **fields) -> Tuple[Optional[BaseModel], Tuple[Error, ...]]:
    """
    Builds a command record from user-supplied fields.

    Returns:
        (command, ()) when valid, (None, errors) with one error per violated field otherwise.
    """
    try:
        return model(**fields), ()
    except ValidationError as ex:
        return None, tuple(_validation_error(err) for err in ex.errors())


# -------------------- Error envelope --------------------

def _is_timeout(ex: OperationalError) -> bool:
    text = str(ex.orig).lower()
    return "locked" in text or "timeout" in text


def command_handler(code: str, message: str, *, recheck_on_conflict: bool = True):
    """
    Wraps a handler so that any exception becomes a typed failure.

    Args:
        code: stable error code reported for unexpected failures.
        message: user-safe description reported for unexpected failures.
        recheck_on_conflict: after losing a concurrent update, run the handler
            once more against the fresh row so its state checks report what
            happened (InvalidState, NotFound). When False, or when the second
            run loses again, the result is a Conflict.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(db: Session, *args, **kwargs) -> Result:
            for _ in range(2 if recheck_on_conflict else 1):
                try:
                    return func(db, *args, **kwargs)
                except ConflictError:
                    db.rollback()
                    db.expunge_all()
                    logger.info("%s lost a concurrent update", func.__name__)
                except InvalidTransition as ex:
                    db.rollback()
                    logger.warning("%s rejected by lifecycle: %s", func.__name__, ex)
                    return Result.fail(Error(ErrorKind.INVALID_TRANSITION, f"{code}.INVALID_TRANSITION", str(ex)))
                except PoolTimeoutError:
                    db.rollback()
                    return Result.fail(Error.timeout(f"{code}.TIMEOUT"))
                except OperationalError as ex:
                    db.rollback()
                    if _is_timeout(ex):
                        return Result.fail(Error.timeout(f"{code}.TIMEOUT"))
                    logger.exception("An error occurred in %s: %s", func.__name__, ex)
                    return Result.fail(Error.failure(code, message))
                except Exception as ex:
                    db.rollback()
                    logger.exception("An error occurred in %s: %s", func.__name__, ex)
                    return Result.fail(Error.failure(code, message))
            return Result.fail(
                Error(
                    ErrorKind.CONFLICT,
                    f"{code}.CONFLICT",
                    "The visitor was changed at the same time by someone else. Please try again.",
                )
            )
        return wrapper
    return decorator


def _not_found(code: str, message: str) -> Result:
    return Result.fail(Error.not_found(code, message))


def _invalid_state(code: str, message: str) -> Result:
    return Result.fail(Error.invalid_state(code, message))


# -------------------- Kiosk --------------------

# PUBLIC_INTERFACE
@command_handler("KIOSK.VISITOR.CHECKIN", "An error occurred while checking in the visitor.")
def check_in_visitor(
    db: Session,
    name: Optional[str],
    company: Optional[str] = None,
    planned_visitor_id: VisitorId = None,
    now: Optional[datetime.datetime] = None,
) -> Result[Visitor]:
    """
    Checks a visitor in at the kiosk.

    With `planned_visitor_id` the planned visit is moved to Arrived. If that
    visit does not exist a walk-in is created from the supplied details
    instead; if it exists but is not Planned the check-in is refused.
    Without an id a walk-in is created; a blank company becomes "Walk-in".
    """
    command, errors = validate(
        CheckInVisitorCommand, name=name, company=company, planned_visitor_id=planned_visitor_id or None
    )
    if errors:
        return Result.fail(*errors)

    registry = VisitorRegistry(db)
    now = now or utcnow()

    if command.planned_visitor_id is not None:
        visitor = registry.get(command.planned_visitor_id)
        if visitor is not None:
            if visitor.status != VisitorStatus.PLANNED:
                return _invalid_state(
                    "VISITOR.INVALID_STATUS", "This visit has already been checked in."
                )
            transition = lifecycle.apply(visitor.status, Trigger.CHECK_IN, now)
            registry.update(visitor, **transition.changes)
            logger.info("Planned visitor %s checked in at the kiosk", visitor.id)
            return Result.ok(visitor)
        logger.info("Planned visit %s not found, registering a walk-in", command.planned_visitor_id)

    transition = lifecycle.initial_state(Trigger.WALK_IN, now)
    visitor = Visitor(
        name=command.name,
        company=command.company or WALK_IN_COMPANY,
        visit_date=now.date(),
        **transition.changes,
    )
    registry.create(visitor)
    logger.info("Walk-in visitor %s checked in", visitor.id)
    return Result.ok(visitor)


# -------------------- Dashboard --------------------

# PUBLIC_INTERFACE
@command_handler("PLANNED_VISIT.CREATE", "An error occurred while creating the planned visit.")
def create_planned_visit(
    db: Session,
    name: Optional[str],
    company: Optional[str],
    visit_date=None,
    now: Optional[datetime.datetime] = None,
) -> Result[Visitor]:
    """Plans a visit; without a date it is planned for today (UTC)."""
    command, errors = validate(PlanVisitCommand, name=name, company=company, visit_date=visit_date)
    if errors:
        return Result.fail(*errors)

    now = now or utcnow()
    transition = lifecycle.initial_state(Trigger.PLAN, now)
    visitor = Visitor(
        name=command.name,
        company=command.company,
        visit_date=command.visit_date or now.date(),
        **transition.changes,
    )
    VisitorRegistry(db).create(visitor)
    logger.info("Planned visit %s for %s", visitor.id, visitor.visit_date)
    return Result.ok(visitor)


# PUBLIC_INTERFACE
@command_handler(
    "PLANNED_VISIT.UPDATE",
    "An error occurred while updating the planned visit.",
    recheck_on_conflict=False,
)
def update_planned_visit(
    db: Session,
    visitor_id: VisitorId,
    name: Optional[str],
    company: Optional[str],
    visit_date=None,
    now: Optional[datetime.datetime] = None,
) -> Result[Visitor]:
    """Changes name, company and (when given) the date of a visit that is still Planned."""
    command, errors = validate(
        UpdatePlannedVisitCommand, visitor_id=visitor_id, name=name, company=company, visit_date=visit_date
    )
    if errors:
        return Result.fail(*errors)

    registry = VisitorRegistry(db)
    visitor = registry.get(command.visitor_id)
    if visitor is None:
        return _not_found("PLANNED_VISIT.NOT_FOUND", "The planned visit was not found.")
    if visitor.status != VisitorStatus.PLANNED:
        return _invalid_state("PLANNED_VISIT.INVALID_STATUS", "Only planned visits can be updated.")

    registry.update(
        visitor,
        name=command.name,
        company=command.company,
        visit_date=command.visit_date or visitor.visit_date,
        updated_at=now or utcnow(),
    )
    return Result.ok(visitor)


# PUBLIC_INTERFACE
@command_handler("PLANNED_VISIT.DELETE", "An error occurred while deleting the planned visit.")
def delete_planned_visit(db: Session, visitor_id: VisitorId) -> Result[bool]:
    command, errors = validate(VisitorIdCommand, visitor_id=visitor_id)
    if errors:
        return Result.fail(*errors)

    registry = VisitorRegistry(db)
    visitor = registry.get(command.visitor_id)
    if visitor is None:
        return _not_found("PLANNED_VISIT.NOT_FOUND", "The planned visit was not found.")
    if visitor.status != VisitorStatus.PLANNED:
        return _invalid_state("PLANNED_VISIT.INVALID_STATUS", "Only planned visits can be deleted.")

    registry.delete(visitor.id)
    logger.info("Deleted planned visit %s", command.visitor_id)
    return Result.ok(True)


# PUBLIC_INTERFACE
@command_handler("VISITOR.MARK_ARRIVED", "An error occurred while marking visitor as arrived.")
def mark_visitor_arrived(
    db: Session, visitor_id: VisitorId, now: Optional[datetime.datetime] = None
) -> Result[Visitor]:
    """Remote check-in of a planned visitor. Repeated delivery is refused, never re-applied."""
    command, errors = validate(VisitorIdCommand, visitor_id=visitor_id)
    if errors:
        return Result.fail(*errors)

    registry = VisitorRegistry(db)
    visitor = registry.get(command.visitor_id)
    if visitor is None:
        return _not_found("VISITOR.NOT_FOUND", "Visitor not found.")
    if visitor.status != VisitorStatus.PLANNED:
        return _invalid_state(
            "VISITOR.INVALID_STATUS", "Visitor must be in planned status to mark as arrived."
        )

    transition = lifecycle.apply(visitor.status, Trigger.CHECK_IN, now or utcnow())
    registry.update(visitor, **transition.changes)
    logger.info("Visitor %s marked as arrived", visitor.id)
    return Result.ok(visitor)


# PUBLIC_INTERFACE
@command_handler("VISITOR.LEAVES", "An error occurred while marking visitor as left.")
def visitor_leaves(
    db: Session, visitor_id: VisitorId, now: Optional[datetime.datetime] = None
) -> Result[Visitor]:
    command, errors = validate(VisitorIdCommand, visitor_id=visitor_id)
    if errors:
        return Result.fail(*errors)

    registry = VisitorRegistry(db)
    visitor = registry.get(command.visitor_id)
    if visitor is None:
        return _not_found("VISITOR.NOT_FOUND", "Visitor not found.")
    if visitor.status != VisitorStatus.ARRIVED:
        return _invalid_state(
            "VISITOR.INVALID_STATUS", "Visitor must be in arrived status to mark as left."
        )

    now = now or utcnow()
    # left_at must not precede arrived_at even if the clock stepped back
    if visitor.arrived_at is not None and now < visitor.arrived_at:
        now = visitor.arrived_at
    transition = lifecycle.apply(visitor.status, Trigger.LEAVE, now)
    registry.update(visitor, **transition.changes)
    logger.info("Visitor %s left", visitor.id)
    return Result.ok(visitor)
