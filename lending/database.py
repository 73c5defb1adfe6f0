import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from dotenv import load_dotenv

from config import settings
from lending.errors import ExternalServiceError

# Make sure .env is loaded before DATABASE_FILE is resolved below.
load_dotenv()

logger = logging.getLogger(__name__)

# Default database file.
# Precedence:
# 1) LIBRARY_DB_FILE (explicit override)
# 2) LIBRARY_DATA_FILE (used by config.py/.env)
DATABASE_FILE = os.environ.get("LIBRARY_DB_FILE") or settings.data_file


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Serialize a datetime as an ISO-8601 UTC timestamp."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def get_db_connection() -> sqlite3.Connection:
    """Open a connection to the SQLite database.

    Connections run in autocommit mode; multi-statement writes go through
    ``immediate_transaction`` which takes the write lock up front.
    """
    try:
        conn = sqlite3.connect(
            DATABASE_FILE,
            timeout=settings.database_timeout,
            isolation_level=None,
            check_same_thread=False,
        )
    except sqlite3.OperationalError as exc:
        raise ExternalServiceError(f"Database unavailable: {exc}") from exc
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON;")
    return conn


@contextmanager
def immediate_transaction() -> Iterator[sqlite3.Connection]:
    """Run a block inside ``BEGIN IMMEDIATE`` ... ``COMMIT``.

    Only one writer holds the reserved lock at a time, so a read-check-write
    sequence inside the block cannot interleave with another writer.
    """
    conn = get_db_connection()
    try:
        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.OperationalError as exc:
            raise ExternalServiceError(f"Database busy: {exc}") from exc
        try:
            yield conn
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")
    finally:
        conn.close()


def create_tables() -> None:
    """Create the tables if they do not exist yet."""
    conn = get_db_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS books (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                author TEXT NOT NULL,
                isbn TEXT NOT NULL,
                subject TEXT NOT NULL,
                rack_number TEXT NOT NULL,
                total_copies INTEGER NOT NULL CHECK(total_copies >= 1),
                available_copies INTEGER NOT NULL
                    CHECK(available_copies >= 0 AND available_copies <= total_copies),
                published_year INTEGER,
                description TEXT,
                cover_image_url TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS borrowing_records (
                id TEXT PRIMARY KEY,
                book_id TEXT NOT NULL,
                borrower_name TEXT NOT NULL,
                borrower_email TEXT,
                borrower_phone TEXT,
                borrowed_at TEXT NOT NULL,
                due_date TEXT NOT NULL,
                returned_at TEXT,
                is_overdue INTEGER NOT NULL DEFAULT 0,
                overdue_days INTEGER NOT NULL DEFAULT 0,
                fine_amount TEXT NOT NULL DEFAULT '0.00',
                notes TEXT,
                issued_by TEXT,
                FOREIGN KEY (book_id) REFERENCES books(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS reservations (
                id TEXT PRIMARY KEY,
                book_id TEXT NOT NULL,
                reserver_name TEXT NOT NULL,
                reserver_email TEXT,
                reserver_phone TEXT,
                reserved_at TEXT NOT NULL,
                expires_at TEXT NOT NULL,
                is_fulfilled INTEGER NOT NULL DEFAULT 0,
                is_cancelled INTEGER NOT NULL DEFAULT 0,
                FOREIGN KEY (book_id) REFERENCES books(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS admins (
                id TEXT PRIMARY KEY,
                phone_number TEXT UNIQUE NOT NULL,
                username TEXT UNIQUE,
                password_hash TEXT,
                name TEXT,
                is_active INTEGER NOT NULL DEFAULT 1,
                is_setup_complete INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS notifications (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                type TEXT NOT NULL,
                record_id TEXT,
                recipient_phone TEXT,
                recipient_email TEXT,
                message TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

        # Columns added after the first release
        cursor.execute("PRAGMA table_info(borrowing_records)")
        columns = [column[1] for column in cursor.fetchall()]
        if "reminded_at" not in columns:
            cursor.execute("ALTER TABLE borrowing_records ADD COLUMN reminded_at TEXT")

        if "overdue_notified_at" not in columns:
            cursor.execute("ALTER TABLE borrowing_records ADD COLUMN overdue_notified_at TEXT")

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_created_at ON books(created_at)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_isbn ON books(isbn)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_records_book_id ON borrowing_records(book_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_records_returned_at ON borrowing_records(returned_at)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_records_due_date ON borrowing_records(due_date)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_reservations_book_id ON reservations(book_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_notifications_created_at ON notifications(created_at DESC)")
    finally:
        conn.close()


def initialize_database() -> None:
    """Create the schema if needed."""
    create_tables()
    logger.debug(f"Database ready at {DATABASE_FILE}")
