from __future__ import annotations

import math
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple

from lending.book import Book
from lending.database import parse_timestamp

CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def compute_overdue(due_date: datetime, now: datetime, daily_rate: Decimal) -> Tuple[bool, int, Decimal]:
    """Return ``(is_overdue, overdue_days, fine_amount)`` for an open loan.

    Overdue days are whole days past the due date, rounded up; a loan that
    is not yet past due has zero days and no fine.
    """
    if due_date >= now:
        return False, 0, to_money(0)
    days = math.ceil((now - due_date) / timedelta(days=1))
    return True, days, to_money(days * daily_rate)


class BorrowingRecord:
    """One entry of the lending ledger."""

    def __init__(self, id: str, book_id: str, borrower_name: str, borrowed_at: str, due_date: str,
                 borrower_email: str | None = None, borrower_phone: str | None = None,
                 returned_at: str | None = None, is_overdue: bool = False, overdue_days: int = 0,
                 fine_amount=Decimal("0.00"), notes: str | None = None, issued_by: str | None = None,
                 reminded_at: str | None = None, overdue_notified_at: str | None = None,
                 book: Optional[Book] = None) -> None:
        self.id = id
        self.book_id = book_id
        self.borrower_name = borrower_name
        self.borrower_email = borrower_email
        self.borrower_phone = borrower_phone
        self.borrowed_at = borrowed_at
        self.due_date = due_date
        self.returned_at = returned_at
        self.is_overdue = bool(is_overdue)
        self.overdue_days = overdue_days
        self.fine_amount = to_money(fine_amount)
        self.notes = notes
        self.issued_by = issued_by
        self.reminded_at = reminded_at
        self.overdue_notified_at = overdue_notified_at
        self.book = book

    @property
    def is_open(self) -> bool:
        return self.returned_at is None

    @property
    def due_at(self) -> datetime:
        return parse_timestamp(self.due_date)

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "book_id": self.book_id,
            "borrower_name": self.borrower_name,
            "borrower_email": self.borrower_email,
            "borrower_phone": self.borrower_phone,
            "borrowed_at": self.borrowed_at,
            "due_date": self.due_date,
            "returned_at": self.returned_at,
            "is_overdue": self.is_overdue,
            "overdue_days": self.overdue_days,
            "fine_amount": self.fine_amount,
            "notes": self.notes,
            "issued_by": self.issued_by,
            "reminded_at": self.reminded_at,
            "overdue_notified_at": self.overdue_notified_at,
        }
        if self.book is not None:
            data["book"] = self.book.to_dict()
        return data

    @staticmethod
    def from_dict(data: dict, book: Optional[Book] = None) -> "BorrowingRecord":
        return BorrowingRecord(
            id=data["id"],
            book_id=data["book_id"],
            borrower_name=data["borrower_name"],
            borrower_email=data.get("borrower_email"),
            borrower_phone=data.get("borrower_phone"),
            borrowed_at=data["borrowed_at"],
            due_date=data["due_date"],
            returned_at=data.get("returned_at"),
            is_overdue=data.get("is_overdue", False),
            overdue_days=data.get("overdue_days", 0),
            fine_amount=data.get("fine_amount") or "0.00",
            notes=data.get("notes"),
            issued_by=data.get("issued_by"),
            reminded_at=data.get("reminded_at"),
            overdue_notified_at=data.get("overdue_notified_at"),
            book=book,
        )
