from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, List, Optional, TypeVar

T = TypeVar("T")


class FailureCode(str, Enum):
    NOT_FOUND = "not_found"
    NOT_AVAILABLE = "not_available"
    ALREADY_RETURNED = "already_returned"
    HAS_OPEN_LOANS = "has_open_loans"
    RESERVATION_CLOSED = "reservation_closed"
    NOT_AUTHORIZED = "not_authorized"
    ALREADY_SETUP = "already_setup"
    USERNAME_TAKEN = "username_taken"
    INVALID_CREDENTIALS = "invalid_credentials"


@dataclass
class OperationResult:
    """Outcome of a mutation whose preconditions may not hold."""

    success: bool
    error: Optional[str] = None
    code: Optional[FailureCode] = None
    record: Any = None

    @classmethod
    def ok(cls, record: Any = None) -> "OperationResult":
        return cls(success=True, record=record)

    @classmethod
    def fail(cls, code: FailureCode, error: str) -> "OperationResult":
        return cls(success=False, error=error, code=code)


@dataclass
class Page(Generic[T]):
    items: List[T] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 10

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0
