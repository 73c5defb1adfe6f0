import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import httpx

from config import settings
from lending.services.notification_service import DUE_REMINDER, OVERDUE_NOTICE

NOW = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


def test_due_reminders_are_sent_once(lib, make_book):
    book = make_book(title="Dune", author="Frank Herbert", total_copies=2)
    soon = lib.borrow_book(book.id, "Jane Reader", "2024-01-02", borrower_phone="+15550001111", now=NOW).record
    lib.borrow_book(book.id, "John Reader", "2024-01-20", now=NOW)

    assert lib.notifications.send_due_reminders(now=NOW) == 1
    assert lib.notifications.send_due_reminders(now=NOW) == 0

    [notification] = lib.notifications.list_notifications()
    assert notification.type == DUE_REMINDER
    assert notification.record_id == soon.id
    assert notification.recipient_phone == "+15550001111"
    assert notification.message == (
        'Reminder: "Dune" by Frank Herbert is due on 2024-01-02. '
        "Please return it on time to avoid late fees."
    )
    assert lib.get_loan(soon.id).reminded_at is not None


def test_returned_loans_get_no_reminder(lib, make_book):
    book = make_book()
    record = lib.borrow_book(book.id, "Jane Reader", "2024-01-02", now=NOW).record
    lib.return_book(record.id, now=NOW)

    assert lib.notifications.send_due_reminders(now=NOW) == 0


def test_overdue_notices_are_sent_once(lib, make_book):
    book = make_book(title="Emma")
    record = lib.borrow_book(book.id, "Jane Reader", "2024-01-02", now=NOW).record

    later = datetime(2024, 1, 4, 12, 0, tzinfo=timezone.utc)
    assert lib.notifications.send_overdue_notices(now=later) == 1
    assert lib.notifications.send_overdue_notices(now=later + timedelta(days=1)) == 0

    stored = lib.get_loan(record.id)
    assert stored.is_overdue
    assert stored.overdue_days == 2
    assert stored.fine_amount == Decimal("2.00")

    [notification] = lib.notifications.list_notifications()
    assert notification.type == OVERDUE_NOTICE
    assert notification.message == (
        'OVERDUE NOTICE: "Emma" was due 2 day(s) ago. Please return immediately to avoid additional fees.'
    )


def test_overdue_notice_after_refresh(lib, make_book):
    book = make_book(title="Emma")
    record = lib.borrow_book(book.id, "Jane Reader", "2024-01-02", now=NOW).record

    later = NOW + timedelta(days=5)
    assert lib.refresh_overdue(now=later) == 1
    assert lib.get_loan(record.id).is_overdue

    assert lib.notifications.send_overdue_notices(now=later) == 1
    assert lib.notifications.send_overdue_notices(now=later) == 0

    stored = lib.get_loan(record.id)
    assert stored.overdue_notified_at is not None
    assert stored.overdue_days == 4
    [notification] = lib.notifications.list_notifications()
    assert notification.record_id == record.id


def test_refresh_after_overdue_notice(lib, make_book):
    book = make_book()
    record = lib.borrow_book(book.id, "Jane Reader", "2024-01-02", now=NOW).record

    later = NOW + timedelta(days=5)
    assert lib.notifications.send_overdue_notices(now=later) == 1
    # The notice already applied today's fine
    assert lib.refresh_overdue(now=later) == 0
    assert lib.refresh_overdue(now=later + timedelta(days=1)) == 1
    assert lib.get_loan(record.id).fine_amount == Decimal("5.00")
    assert lib.notifications.send_overdue_notices(now=later + timedelta(days=1)) == 0


def test_concurrent_overdue_sweeps(lib, make_book):
    book = make_book(total_copies=4)
    records = [
        lib.borrow_book(book.id, f"Reader {n}", "2024-01-02", now=NOW).record
        for n in range(4)
    ]
    later = NOW + timedelta(days=3)
    results = []
    barrier = threading.Barrier(2)

    def worker():
        barrier.wait()
        results.append(lib.notifications.send_overdue_notices(now=later))

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sum(results) == len(records)
    notified = [n.record_id for n in lib.notifications.list_notifications()]
    assert sorted(notified) == sorted(r.id for r in records)


def test_list_notifications_newest_first(lib, make_book):
    book = make_book(total_copies=2)
    lib.borrow_book(book.id, "Jane Reader", "2024-01-02", now=NOW)
    lib.notifications.send_due_reminders(now=NOW)
    lib.notifications.send_overdue_notices(now=NOW + timedelta(days=3))

    types = [n.type for n in lib.notifications.list_notifications()]
    assert types == [OVERDUE_NOTICE, DUE_REMINDER]
    assert len(lib.notifications.list_notifications(limit=1)) == 1


def test_webhook_delivery(lib, make_book, monkeypatch):
    monkeypatch.setattr(settings, "notification_webhook_url", "http://hooks.example.com/library")
    request = httpx.Request("POST", "http://hooks.example.com/library")
    post = MagicMock(return_value=httpx.Response(200, request=request))
    monkeypatch.setattr(httpx.Client, "post", post)

    book = make_book()
    lib.borrow_book(book.id, "Jane Reader", "2024-01-02", now=NOW)
    assert lib.notifications.send_due_reminders(now=NOW) == 1

    post.assert_called_once()
    assert post.call_args.kwargs["json"]["type"] == DUE_REMINDER


def test_webhook_failure_keeps_notifications(lib, make_book, monkeypatch, caplog):
    monkeypatch.setattr(settings, "notification_webhook_url", "http://hooks.example.com/library")
    monkeypatch.setattr(httpx.Client, "post", MagicMock(side_effect=httpx.ConnectError("refused")))

    book = make_book()
    record = lib.borrow_book(book.id, "Jane Reader", "2024-01-02", now=NOW).record
    assert lib.notifications.send_overdue_notices(now=NOW + timedelta(days=2)) == 1

    assert lib.get_loan(record.id).is_overdue
    assert len(lib.notifications.list_notifications()) == 1
    assert "Webhook delivery failed" in caplog.text
