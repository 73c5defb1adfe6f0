import logging
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import lending.database as database
from config import settings
from lending.book import Book
from lending.database import format_timestamp, get_db_connection, immediate_transaction, utcnow
from lending.errors import InconsistentStateError, ValidationError
from lending.loan import BorrowingRecord, compute_overdue
from lending.reservation import Reservation
from lending.results import FailureCode, OperationResult, Page
from lending.services.auth_service import AuthService
from lending.services.notification_service import NotificationService
from utils.validators import CredentialValidator, ISBNValidator, TextValidator

logger = logging.getLogger(__name__)

SEARCH_FIELDS: Dict[str, Tuple[str, ...]] = {
    "all": ("title", "author", "isbn", "subject"),
    "title": ("title",),
    "author": ("author",),
    "isbn": ("isbn",),
    "subject": ("subject",),
}

EDITABLE_FIELDS = (
    "title", "author", "isbn", "subject", "rack_number", "total_copies",
    "available_copies", "published_year", "description", "cover_image_url",
)


@dataclass
class DashboardStats:
    total_books: int = 0
    available_books: int = 0
    borrowed_books: int = 0
    overdue_books: int = 0
    total_reservations: int = 0
    active_reservations: int = 0


@dataclass
class AvailabilityMismatch:
    book_id: str
    title: str
    total_copies: int
    available_copies: int
    open_loans: int


def _new_id() -> str:
    return uuid.uuid4().hex


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class Library:
    """Catalog, lending ledger and reservations backed by SQLite."""

    def __init__(self, db_file: Optional[str] = None) -> None:
        # Tests and callers may point the module-level helpers at another file.
        if db_file:
            database.DATABASE_FILE = db_file
        database.initialize_database()
        self.daily_fine_rate = Decimal(settings.daily_fine_rate)

        self.auth = AuthService()
        self.notifications = NotificationService(self)

    # ------------------------- Catalog ------------------------- #
    def add_book(self, title: str, author: str, isbn: str, subject: str, rack_number: str,
                 total_copies: int = 1, available_copies: Optional[int] = None,
                 published_year: Optional[int] = None, description: Optional[str] = None,
                 cover_image_url: Optional[str] = None, now: Optional[datetime] = None) -> Book:
        """Validate and insert a new title. A new book has no loans, so every copy is available."""
        self._validate_book_fields({
            "title": title, "author": author, "isbn": isbn, "subject": subject,
            "rack_number": rack_number, "total_copies": total_copies,
            "published_year": published_year, "cover_image_url": cover_image_url,
        })
        if available_copies is not None and available_copies != total_copies:
            raise ValidationError("Available copies must equal total copies for a new book.")

        stamp = format_timestamp(now or utcnow())
        book = Book(
            id=_new_id(), title=title, author=author, isbn=isbn, subject=subject,
            rack_number=rack_number, total_copies=total_copies, available_copies=total_copies,
            published_year=published_year, description=description,
            cover_image_url=cover_image_url, created_at=stamp, updated_at=stamp,
        )
        conn = get_db_connection()
        try:
            conn.execute(
                """
                INSERT INTO books (
                    id, title, author, isbn, subject, rack_number, total_copies,
                    available_copies, published_year, description, cover_image_url,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    book.id, book.title, book.author, book.isbn, book.subject, book.rack_number,
                    book.total_copies, book.available_copies, book.published_year,
                    book.description, book.cover_image_url, book.created_at, book.updated_at,
                ),
            )
        finally:
            conn.close()
        logger.info(f"Book added: id={book.id}, isbn={book.isbn}, copies={book.total_copies}")
        return book

    def get_book(self, book_id: str) -> Optional[Book]:
        conn = get_db_connection()
        try:
            row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
            return Book.from_dict(dict(row)) if row else None
        finally:
            conn.close()

    def update_book(self, book_id: str, **changes: Any) -> Optional[Book]:
        """Apply a partial update. Returns the updated book or None if not found.

        Copy counters stay tied to the ledger: when the total changes, the
        available count becomes ``total - open loans``.
        """
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")
        changes = {k: v for k, v in changes.items() if v is not None}
        if not changes:
            raise ValidationError("Nothing to update.")
        self._validate_book_fields(changes)

        with immediate_transaction() as conn:
            row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
            if row is None:
                return None
            book = Book.from_dict(dict(row))

            if "total_copies" in changes or "available_copies" in changes:
                open_loans = self._count_open_loans(conn, book_id)
                new_total = changes.get("total_copies", book.total_copies)
                if new_total < open_loans:
                    raise ValidationError(
                        f"Total copies cannot be lower than the {open_loans} copies currently on loan."
                    )
                expected_available = new_total - open_loans
                if changes.get("available_copies", expected_available) != expected_available:
                    raise ValidationError(
                        f"Available copies must be {expected_available} with {open_loans} open loans."
                    )
                changes["available_copies"] = expected_available

            changes["updated_at"] = format_timestamp(utcnow())
            assignments = ", ".join(f"{column} = ?" for column in changes)
            conn.execute(f"UPDATE books SET {assignments} WHERE id = ?", (*changes.values(), book_id))
            row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()

        logger.info(f"Book updated: id={book_id}, fields={sorted(changes)}")
        return Book.from_dict(dict(row))

    def delete_book(self, book_id: str) -> OperationResult:
        """Delete a title with its closed loan history and reservations.

        Refused while any copy is still on loan.
        """
        with immediate_transaction() as conn:
            row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
            if row is None:
                return OperationResult.fail(FailureCode.NOT_FOUND, "Book not found")
            open_loans = self._count_open_loans(conn, book_id)
            if open_loans:
                logger.warning(f"Refusing to delete book {book_id}: {open_loans} open loan(s)")
                return OperationResult.fail(
                    FailureCode.HAS_OPEN_LOANS,
                    f"Book has {open_loans} copy(ies) on loan and cannot be deleted",
                )
            conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
        logger.info(f"Book deleted: id={book_id}")
        return OperationResult.ok(Book.from_dict(dict(row)))

    def list_books(self, page: int = 1, page_size: Optional[int] = None) -> Page:
        return self.search_books("", page=page, page_size=page_size)

    def search_books(self, query: str = "", filter_type: str = "all", available_only: bool = False,
                     page: int = 1, page_size: Optional[int] = None) -> Page:
        """Case-insensitive substring search, newest first.

        An empty query returns the whole catalog; ``available_only`` narrows
        either form to books with at least one copy on the shelf.
        """
        if filter_type not in SEARCH_FIELDS:
            raise ValidationError(f"Invalid filter type: {filter_type}")
        page, page_size = self._paging(page, page_size)

        clauses: List[str] = []
        params: List[Any] = []
        text = (query or "").strip().lower()
        if text:
            pattern = f"%{_escape_like(text)}%"
            ors = [f"LOWER({column}) LIKE ? ESCAPE '\\'" for column in SEARCH_FIELDS[filter_type]]
            clauses.append("(" + " OR ".join(ors) + ")")
            params.extend([pattern] * len(ors))
        if available_only:
            clauses.append("available_copies > 0")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        conn = get_db_connection()
        try:
            total = conn.execute(f"SELECT COUNT(*) FROM books {where}", params).fetchone()[0]
            rows = conn.execute(
                f"SELECT * FROM books {where} ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
                (*params, page_size, (page - 1) * page_size),
            ).fetchall()
        finally:
            conn.close()
        return Page(items=[Book.from_dict(dict(r)) for r in rows], total=total, page=page, page_size=page_size)

    # ------------------------- Availability lifecycle ------------------------- #
    def borrow_book(self, book_id: str, borrower_name: str, due_date: Any,
                    borrower_email: Optional[str] = None, borrower_phone: Optional[str] = None,
                    notes: Optional[str] = None, issued_by: Optional[str] = None,
                    now: Optional[datetime] = None) -> OperationResult:
        """Issue one copy of a book.

        The availability check and the decrement are a single conditional
        write inside an immediate transaction: of several concurrent calls
        for the last copy exactly one succeeds.
        """
        now = now or utcnow()
        if not TextValidator.has_min_length(borrower_name, 2):
            raise ValidationError("Borrower name must be at least 2 characters")
        if borrower_email and not TextValidator.is_valid_email(borrower_email):
            raise ValidationError("Invalid email address")
        if borrower_phone and not CredentialValidator.is_valid_phone(borrower_phone):
            raise ValidationError("Please enter a valid phone number")
        due = self._parse_due_date(due_date, now)

        record = BorrowingRecord(
            id=_new_id(), book_id=book_id, borrower_name=borrower_name.strip(),
            borrower_email=borrower_email, borrower_phone=borrower_phone,
            borrowed_at=format_timestamp(now), due_date=format_timestamp(due),
            notes=notes, issued_by=issued_by,
        )
        with immediate_transaction() as conn:
            row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
            if row is None:
                logger.warning(f"Borrow rejected: book {book_id} not found")
                return OperationResult.fail(FailureCode.NOT_FOUND, "Book not found")
            book = Book.from_dict(dict(row))

            open_loans = self._count_open_loans(conn, book_id)
            if book.total_copies - book.available_copies != open_loans:
                logger.error(
                    f"Availability mismatch on book {book_id}: total={book.total_copies}, "
                    f"available={book.available_copies}, open_loans={open_loans}"
                )
                raise InconsistentStateError(
                    f"Book {book_id} has {open_loans} open loan(s) but "
                    f"{book.total_copies - book.available_copies} copies marked as lent",
                    book_id=book_id,
                )

            cursor = conn.execute(
                "UPDATE books SET available_copies = available_copies - 1, updated_at = ? "
                "WHERE id = ? AND available_copies > 0",
                (record.borrowed_at, book_id),
            )
            if cursor.rowcount == 0:
                logger.warning(f"Borrow rejected: no copies of book {book_id} available")
                return OperationResult.fail(FailureCode.NOT_AVAILABLE, "Book not available for borrowing")

            conn.execute(
                """
                INSERT INTO borrowing_records (
                    id, book_id, borrower_name, borrower_email, borrower_phone,
                    borrowed_at, due_date, returned_at, is_overdue, overdue_days,
                    fine_amount, notes, issued_by
                ) VALUES (?, ?, ?, ?, ?, ?, ?, NULL, 0, 0, '0.00', ?, ?)
                """,
                (
                    record.id, record.book_id, record.borrower_name, record.borrower_email,
                    record.borrower_phone, record.borrowed_at, record.due_date,
                    record.notes, record.issued_by,
                ),
            )

        book.available_copies -= 1
        record.book = book
        logger.info(f"Loan issued: record={record.id}, book={book_id}, due={record.due_date}")
        return OperationResult.ok(record)

    def return_book(self, record_id: str, now: Optional[datetime] = None) -> OperationResult:
        """Close an open loan and put the copy back on the shelf.

        The final overdue days and fine are frozen on the record at return time.
        """
        now = now or utcnow()
        with immediate_transaction() as conn:
            row = conn.execute("SELECT * FROM borrowing_records WHERE id = ?", (record_id,)).fetchone()
            if row is None:
                return OperationResult.fail(FailureCode.NOT_FOUND, "Borrowing record not found")
            record = BorrowingRecord.from_dict(dict(row))
            if not record.is_open:
                logger.warning(f"Return rejected: record {record_id} already returned at {record.returned_at}")
                return OperationResult.fail(FailureCode.ALREADY_RETURNED, "Book has already been returned")

            book_row = conn.execute("SELECT * FROM books WHERE id = ?", (record.book_id,)).fetchone()
            if book_row is None:
                logger.error(f"Record {record_id} references missing book {record.book_id}")
                raise InconsistentStateError(
                    f"Record {record_id} references a book that no longer exists", book_id=record.book_id
                )
            book = Book.from_dict(dict(book_row))
            if book.available_copies >= book.total_copies:
                logger.error(
                    f"Return of record {record_id} would exceed capacity of book {book.id}: "
                    f"available={book.available_copies}, total={book.total_copies}"
                )
                raise InconsistentStateError(
                    f"Book {book.id} already has all {book.total_copies} copies on the shelf",
                    book_id=book.id,
                )

            is_overdue, days, fine = compute_overdue(record.due_at, now, self.daily_fine_rate)
            record.returned_at = format_timestamp(now)
            record.is_overdue, record.overdue_days, record.fine_amount = is_overdue, days, fine
            conn.execute(
                "UPDATE borrowing_records SET returned_at = ?, is_overdue = ?, overdue_days = ?, fine_amount = ? "
                "WHERE id = ? AND returned_at IS NULL",
                (record.returned_at, int(is_overdue), days, str(fine), record_id),
            )
            conn.execute(
                "UPDATE books SET available_copies = available_copies + 1, updated_at = ? WHERE id = ?",
                (record.returned_at, book.id),
            )

        book.available_copies += 1
        record.book = book
        logger.info(f"Loan returned: record={record_id}, book={book.id}, fine={record.fine_amount}")
        return OperationResult.ok(record)

    def refresh_overdue(self, now: Optional[datetime] = None) -> int:
        """Recompute overdue flags, day counts and fines for open loans past due.

        Closed loans are never touched. Returns how many records changed, so a
        second run with the same ``now`` returns 0.
        """
        now = now or utcnow()
        with immediate_transaction() as conn:
            changed = self._apply_overdue(conn, now)
        if changed:
            logger.info(f"Overdue refresh updated {changed} record(s)")
        return changed

    def _apply_overdue(self, conn: sqlite3.Connection, now: datetime) -> int:
        rows = conn.execute(
            "SELECT * FROM borrowing_records WHERE returned_at IS NULL AND due_date < ?",
            (format_timestamp(now),),
        ).fetchall()
        changed = 0
        for row in rows:
            record = BorrowingRecord.from_dict(dict(row))
            is_overdue, days, fine = compute_overdue(record.due_at, now, self.daily_fine_rate)
            if (record.is_overdue, record.overdue_days, record.fine_amount) == (is_overdue, days, fine):
                continue
            conn.execute(
                "UPDATE borrowing_records SET is_overdue = ?, overdue_days = ?, fine_amount = ? "
                "WHERE id = ? AND returned_at IS NULL",
                (int(is_overdue), days, str(fine), record.id),
            )
            changed += 1
        return changed

    def get_dashboard_stats(self, now: Optional[datetime] = None) -> DashboardStats:
        stamp = format_timestamp(now or utcnow())
        conn = get_db_connection()
        try:
            def count(sql: str, *params: Any) -> int:
                return conn.execute(sql, params).fetchone()[0]

            return DashboardStats(
                total_books=count("SELECT COUNT(*) FROM books"),
                available_books=count("SELECT COUNT(*) FROM books WHERE available_copies > 0"),
                borrowed_books=count("SELECT COUNT(*) FROM borrowing_records WHERE returned_at IS NULL"),
                overdue_books=count(
                    "SELECT COUNT(*) FROM borrowing_records WHERE returned_at IS NULL AND is_overdue = 1"
                ),
                total_reservations=count("SELECT COUNT(*) FROM reservations"),
                active_reservations=count(
                    "SELECT COUNT(*) FROM reservations "
                    "WHERE is_fulfilled = 0 AND is_cancelled = 0 AND expires_at > ?",
                    stamp,
                ),
            )
        finally:
            conn.close()

    def check_availability(self, book_id: Optional[str] = None) -> List[AvailabilityMismatch]:
        """List books whose lent-copy count disagrees with their open loans."""
        sql = """
            SELECT b.id AS book_id, b.title, b.total_copies, b.available_copies, COUNT(r.id) AS open_loans
            FROM books b
            LEFT JOIN borrowing_records r ON r.book_id = b.id AND r.returned_at IS NULL
            {where}
            GROUP BY b.id
            HAVING b.total_copies - b.available_copies != COUNT(r.id)
        """
        params: Tuple[Any, ...] = ()
        where = ""
        if book_id is not None:
            where, params = "WHERE b.id = ?", (book_id,)
        conn = get_db_connection()
        try:
            rows = conn.execute(sql.format(where=where), params).fetchall()
        finally:
            conn.close()
        return [AvailabilityMismatch(**dict(r)) for r in rows]

    # ------------------------- Ledger views ------------------------- #
    def get_loan(self, record_id: str) -> Optional[BorrowingRecord]:
        conn = get_db_connection()
        try:
            row = conn.execute("SELECT * FROM borrowing_records WHERE id = ?", (record_id,)).fetchone()
            return BorrowingRecord.from_dict(dict(row)) if row else None
        finally:
            conn.close()

    def get_borrowing_history(self, page: int = 1, page_size: Optional[int] = None) -> Page:
        page, page_size = self._paging(page, page_size)
        conn = get_db_connection()
        try:
            total = conn.execute("SELECT COUNT(*) FROM borrowing_records").fetchone()[0]
            rows = conn.execute(
                "SELECT * FROM borrowing_records ORDER BY borrowed_at DESC, rowid DESC LIMIT ? OFFSET ?",
                (page_size, (page - 1) * page_size),
            ).fetchall()
            items = self._with_books(conn, rows)
        finally:
            conn.close()
        return Page(items=items, total=total, page=page, page_size=page_size)

    def get_active_loans(self) -> List[BorrowingRecord]:
        conn = get_db_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM borrowing_records WHERE returned_at IS NULL ORDER BY due_date ASC"
            ).fetchall()
            return self._with_books(conn, rows)
        finally:
            conn.close()

    # ------------------------- Reservations ------------------------- #
    def reserve_book(self, book_id: str, reserver_name: str, reserver_email: Optional[str] = None,
                     reserver_phone: Optional[str] = None, now: Optional[datetime] = None) -> OperationResult:
        """Place a hold that expires after ``settings.reservation_days``.

        Holds are advisory: copy counters are not touched.
        """
        now = now or utcnow()
        if not TextValidator.has_min_length(reserver_name, 2):
            raise ValidationError("Name must be at least 2 characters")
        if reserver_email and not TextValidator.is_valid_email(reserver_email):
            raise ValidationError("Invalid email address")
        if reserver_phone and not CredentialValidator.is_valid_phone(reserver_phone):
            raise ValidationError("Please enter a valid phone number")

        reservation = Reservation(
            id=_new_id(), book_id=book_id, reserver_name=reserver_name.strip(),
            reserver_email=reserver_email, reserver_phone=reserver_phone,
            reserved_at=format_timestamp(now),
            expires_at=format_timestamp(now + timedelta(days=settings.reservation_days)),
        )
        with immediate_transaction() as conn:
            if conn.execute("SELECT 1 FROM books WHERE id = ?", (book_id,)).fetchone() is None:
                return OperationResult.fail(FailureCode.NOT_FOUND, "Book not found")
            conn.execute(
                """
                INSERT INTO reservations (
                    id, book_id, reserver_name, reserver_email, reserver_phone,
                    reserved_at, expires_at, is_fulfilled, is_cancelled
                ) VALUES (?, ?, ?, ?, ?, ?, ?, 0, 0)
                """,
                (
                    reservation.id, reservation.book_id, reservation.reserver_name,
                    reservation.reserver_email, reservation.reserver_phone,
                    reservation.reserved_at, reservation.expires_at,
                ),
            )
        logger.info(f"Reservation placed: id={reservation.id}, book={book_id}")
        return OperationResult.ok(reservation)

    def cancel_reservation(self, reservation_id: str) -> OperationResult:
        return self._close_reservation(reservation_id, "is_cancelled")

    def fulfill_reservation(self, reservation_id: str) -> OperationResult:
        return self._close_reservation(reservation_id, "is_fulfilled")

    def _close_reservation(self, reservation_id: str, flag: str) -> OperationResult:
        with immediate_transaction() as conn:
            row = conn.execute("SELECT * FROM reservations WHERE id = ?", (reservation_id,)).fetchone()
            if row is None:
                return OperationResult.fail(FailureCode.NOT_FOUND, "Reservation not found")
            reservation = Reservation.from_dict(dict(row))
            if reservation.is_fulfilled or reservation.is_cancelled:
                return OperationResult.fail(FailureCode.RESERVATION_CLOSED, "Reservation is no longer active")
            conn.execute(f"UPDATE reservations SET {flag} = 1 WHERE id = ?", (reservation_id,))
        setattr(reservation, flag, True)
        logger.info(f"Reservation {reservation_id} closed ({flag})")
        return OperationResult.ok(reservation)

    def list_reservations(self, active_only: bool = False, now: Optional[datetime] = None) -> List[Reservation]:
        now = now or utcnow()
        conn = get_db_connection()
        try:
            rows = conn.execute("SELECT * FROM reservations ORDER BY reserved_at DESC, rowid DESC").fetchall()
        finally:
            conn.close()
        reservations = [Reservation.from_dict(dict(r)) for r in rows]
        if active_only:
            reservations = [r for r in reservations if r.is_active(now)]
        return reservations

    # ------------------------- Helpers ------------------------- #
    @staticmethod
    def _count_open_loans(conn: sqlite3.Connection, book_id: str) -> int:
        return conn.execute(
            "SELECT COUNT(*) FROM borrowing_records WHERE book_id = ? AND returned_at IS NULL",
            (book_id,),
        ).fetchone()[0]

    @staticmethod
    def _with_books(conn: sqlite3.Connection, rows: List[sqlite3.Row]) -> List[BorrowingRecord]:
        book_ids = sorted({row["book_id"] for row in rows})
        books: Dict[str, Book] = {}
        if book_ids:
            placeholders = ", ".join("?" for _ in book_ids)
            for book_row in conn.execute(f"SELECT * FROM books WHERE id IN ({placeholders})", book_ids):
                books[book_row["id"]] = Book.from_dict(dict(book_row))
        return [BorrowingRecord.from_dict(dict(row), book=books.get(row["book_id"])) for row in rows]

    @staticmethod
    def _paging(page: int, page_size: Optional[int]) -> Tuple[int, int]:
        page_size = page_size or settings.default_page_size
        if page < 1:
            raise ValidationError("Page must be 1 or greater.")
        if page_size < 1 or page_size > settings.max_page_size:
            raise ValidationError(f"Page size must be between 1 and {settings.max_page_size}.")
        return page, page_size

    @staticmethod
    def _parse_due_date(value: Any, now: datetime) -> datetime:
        """Accept a date (due at the end of that UTC day) or an ISO timestamp."""
        if isinstance(value, datetime):
            due = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        elif isinstance(value, date):
            due = datetime.combine(value, time.max, tzinfo=timezone.utc)
        elif isinstance(value, str) and value.strip():
            text = value.strip()
            try:
                due = datetime.combine(date.fromisoformat(text), time.max, tzinfo=timezone.utc)
            except ValueError:
                try:
                    due = database.parse_timestamp(text)
                except ValueError as exc:
                    raise ValidationError(f"Invalid due date: {value}") from exc
        else:
            raise ValidationError("Due date is required")

        if due.astimezone(timezone.utc).date() < now.astimezone(timezone.utc).date():
            raise ValidationError("Due date cannot be earlier than today")
        return due

    @staticmethod
    def _validate_book_fields(values: Dict[str, Any]) -> None:
        if "title" in values and not TextValidator.has_min_length(values["title"], 2):
            raise ValidationError("Title must be at least 2 characters")
        if "author" in values and not TextValidator.has_min_length(values["author"], 2):
            raise ValidationError("Author must be at least 2 characters")
        if "isbn" in values and not ISBNValidator.is_valid_isbn(values["isbn"]):
            raise ValidationError("Please enter a valid ISBN")
        if "subject" in values and not TextValidator.has_min_length(values["subject"], 1):
            raise ValidationError("Subject is required")
        if "rack_number" in values and not TextValidator.is_valid_rack_number(values["rack_number"]):
            raise ValidationError("Rack number format: A1-01")
        for key, minimum in (("total_copies", 1), ("available_copies", 0)):
            if key in values:
                number = values[key]
                if isinstance(number, bool) or not isinstance(number, int) or number < minimum:
                    raise ValidationError(f"{key.replace('_', ' ').capitalize()} must be a whole number >= {minimum}")
        year = values.get("published_year")
        if year is not None:
            if isinstance(year, bool) or not isinstance(year, int) or not 1000 <= year <= date.today().year + 1:
                raise ValidationError("Invalid published year")
        url = values.get("cover_image_url")
        if url and not url.startswith(("http://", "https://")):
            raise ValidationError("Cover image URL must be a valid URL")
