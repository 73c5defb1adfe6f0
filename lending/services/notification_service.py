import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import List, Optional

import httpx

from config import settings
from lending.database import format_timestamp, immediate_transaction, get_db_connection, utcnow
from lending.loan import BorrowingRecord, compute_overdue

logger = logging.getLogger(__name__)

DUE_REMINDER = "due_reminder"
OVERDUE_NOTICE = "overdue_notice"


@dataclass
class Notification:
    type: str
    message: str
    created_at: str
    record_id: Optional[str] = None
    recipient_phone: Optional[str] = None
    recipient_email: Optional[str] = None
    id: Optional[int] = None

    def to_dict(self) -> dict:
        return asdict(self)


def due_reminder_message(title: str, author: str, due: datetime) -> str:
    return (
        f'Reminder: "{title}" by {author} is due on {due.strftime("%Y-%m-%d")}. '
        "Please return it on time to avoid late fees."
    )


def overdue_notice_message(title: str, days: int) -> str:
    return (
        f'OVERDUE NOTICE: "{title}" was due {days} day(s) ago. '
        "Please return immediately to avoid additional fees."
    )


class NotificationService:
    """Generates due-date reminders and overdue notices for open loans.

    Each sweep runs in one immediate transaction and marks the records it
    handles, so repeated or concurrent sweeps never notify twice.
    """

    def __init__(self, library) -> None:
        self.library = library

    def send_due_reminders(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        window_end = now + timedelta(hours=settings.due_reminder_window_hours)
        created: List[Notification] = []
        with immediate_transaction() as conn:
            rows = conn.execute(
                """
                SELECT r.*, b.title AS book_title, b.author AS book_author
                FROM borrowing_records r JOIN books b ON b.id = r.book_id
                WHERE r.returned_at IS NULL AND r.reminded_at IS NULL
                  AND r.due_date >= ? AND r.due_date <= ?
                ORDER BY r.due_date
                """,
                (format_timestamp(now), format_timestamp(window_end)),
            ).fetchall()
            for row in rows:
                record = BorrowingRecord.from_dict(dict(row))
                notification = Notification(
                    type=DUE_REMINDER,
                    message=due_reminder_message(row["book_title"], row["book_author"], record.due_at),
                    created_at=format_timestamp(now),
                    record_id=record.id,
                    recipient_phone=record.borrower_phone,
                    recipient_email=record.borrower_email,
                )
                notification.id = self._insert(conn, notification)
                conn.execute(
                    "UPDATE borrowing_records SET reminded_at = ? WHERE id = ?",
                    (notification.created_at, record.id),
                )
                created.append(notification)

        logger.info(f"Due reminders sent: {len(created)}")
        self._deliver(created)
        return len(created)

    def send_overdue_notices(self, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        created: List[Notification] = []
        with immediate_transaction() as conn:
            rows = conn.execute(
                """
                SELECT r.*, b.title AS book_title
                FROM borrowing_records r JOIN books b ON b.id = r.book_id
                WHERE r.returned_at IS NULL AND r.overdue_notified_at IS NULL AND r.due_date < ?
                ORDER BY r.due_date
                """,
                (format_timestamp(now),),
            ).fetchall()
            for row in rows:
                record = BorrowingRecord.from_dict(dict(row))
                is_overdue, days, fine = compute_overdue(record.due_at, now, self.library.daily_fine_rate)
                notification = Notification(
                    type=OVERDUE_NOTICE,
                    message=overdue_notice_message(row["book_title"], days),
                    created_at=format_timestamp(now),
                    record_id=record.id,
                    recipient_phone=record.borrower_phone,
                    recipient_email=record.borrower_email,
                )
                notification.id = self._insert(conn, notification)
                conn.execute(
                    "UPDATE borrowing_records SET is_overdue = ?, overdue_days = ?, fine_amount = ?, "
                    "overdue_notified_at = ? WHERE id = ?",
                    (int(is_overdue), days, str(fine), notification.created_at, record.id),
                )
                created.append(notification)

        logger.info(f"Overdue notices sent: {len(created)}")
        self._deliver(created)
        return len(created)

    def list_notifications(self, limit: int = 100) -> List[Notification]:
        conn = get_db_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM notifications ORDER BY created_at DESC, id DESC LIMIT ?", (limit,)
            ).fetchall()
        finally:
            conn.close()
        return [Notification(**dict(row)) for row in rows]

    @staticmethod
    def _insert(conn, notification: Notification) -> int:
        cursor = conn.execute(
            "INSERT INTO notifications (type, record_id, recipient_phone, recipient_email, message, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                notification.type, notification.record_id, notification.recipient_phone,
                notification.recipient_email, notification.message, notification.created_at,
            ),
        )
        return cursor.lastrowid

    def _deliver(self, notifications: List[Notification]) -> None:
        """POST each notification to the configured webhook. Failures are only logged."""
        url = settings.notification_webhook_url
        if not url or not notifications:
            return
        with httpx.Client(timeout=settings.notification_timeout) as client:
            for notification in notifications:
                try:
                    response = client.post(url, json=notification.to_dict())
                    response.raise_for_status()
                except httpx.HTTPError as exc:
                    logger.warning(f"Webhook delivery failed for notification {notification.id}: {exc}")
