"""
Shared error envelope and result type.

Command handlers never raise to their caller; they return a `Result` that
either carries a value or one or more `Error`s. The hub and the HTTP layer
turn errors into wire messages with `Error.to_message()`.
"""

import enum
from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar

T = TypeVar("T")


# PUBLIC_INTERFACE
class ErrorKind(str, enum.Enum):
    VALIDATION_FAILED = "ValidationFailed"
    NOT_FOUND = "NotFound"
    INVALID_STATE = "InvalidState"
    INVALID_TRANSITION = "InvalidTransition"
    INVALID_PAYLOAD = "InvalidPayload"
    CONFLICT = "Conflict"
    TIMEOUT = "Timeout"
    FAILURE = "Failure"


# PUBLIC_INTERFACE
class ConflictError(Exception):
    """The stored visitor changed since it was loaded."""


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class Error:
    kind: ErrorKind
    code: str
    message: str
    field: Optional[str] = None

    @classmethod
    def validation(cls, field: str, message: str) -> "Error":
        return cls(ErrorKind.VALIDATION_FAILED, f"VALIDATION.{field.upper()}", message, field)

    @classmethod
    def not_found(cls, code: str, message: str) -> "Error":
        return cls(ErrorKind.NOT_FOUND, code, message)

    @classmethod
    def invalid_state(cls, code: str, message: str) -> "Error":
        return cls(ErrorKind.INVALID_STATE, code, message)

    @classmethod
    def invalid_payload(cls, message: str) -> "Error":
        return cls(ErrorKind.INVALID_PAYLOAD, "HUB.INVALID_PAYLOAD", message)

    @classmethod
    def timeout(cls, code: str = "TIMEOUT") -> "Error":
        return cls(ErrorKind.TIMEOUT, code, "The operation timed out. Please try again.")

    @classmethod
    def failure(cls, code: str, message: str) -> "Error":
        return cls(ErrorKind.FAILURE, code, message)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"kind": self.kind.value, "code": self.code, "message": self.message}
        if self.field is not None:
            data["field"] = self.field
        return data

    def to_message(self, *, corr_id: Optional[str] = None, errors: Tuple["Error", ...] = ()) -> Dict[str, Any]:
        msg: Dict[str, Any] = {"type": "Error", **self.to_dict()}
        msg["errors"] = [e.to_dict() for e in (errors or (self,))]
        if corr_id is not None:
            msg["corr_id"] = corr_id
        return msg


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    errors: Tuple[Error, ...] = ()

    @classmethod
    def ok(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, *errors: Error) -> "Result[T]":
        if not errors:
            raise ValueError("a failed result needs at least one error")
        return cls(errors=tuple(errors))

    @property
    def is_error(self) -> bool:
        return bool(self.errors)

    @property
    def first_error(self) -> Optional[Error]:
        return self.errors[0] if self.errors else None

    @property
    def messages(self) -> List[str]:
        return [e.message for e in self.errors]

    def to_error_message(self, *, corr_id: Optional[str] = None) -> Dict[str, Any]:
        return self.first_error.to_message(corr_id=corr_id, errors=self.errors)
