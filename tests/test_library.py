import pytest

from lending.database import get_db_connection
from lending.errors import ValidationError
from lending.results import FailureCode


def test_add_list_and_get(lib, make_book):
    assert lib.list_books().items == []

    book = make_book(title="Ulysses", author="James Joyce", total_copies=3)

    found = lib.get_book(book.id)
    assert found is not None
    assert found.title == "Ulysses"
    assert found.total_copies == 3
    assert found.available_copies == 3
    assert found.is_available


def test_list_is_newest_first(lib, make_book):
    first = make_book(title="First")
    second = make_book(title="Second")
    third = make_book(title="Third")

    ids = [b.id for b in lib.list_books().items]
    assert ids == [third.id, second.id, first.id]


def test_persistence(lib, make_book, tmp_path, request):
    from lending.library import Library

    book = make_book(title="Sapiens", author="Yuval Noah Harari")
    other = Library(db_file=str(tmp_path / f"test_{request.node.name}.db"))
    assert other.get_book(book.id).title == "Sapiens"


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"title": "A"}, "Title"),
        ({"author": " "}, "Author"),
        ({"isbn": "12345"}, "ISBN"),
        ({"subject": ""}, "Subject"),
        ({"rack_number": "shelf 4"}, "Rack number"),
        ({"total_copies": 0}, "Total copies"),
        ({"published_year": 99}, "published year"),
        ({"cover_image_url": "ftp://example.com/x.png"}, "Cover image URL"),
    ],
)
def test_add_book_validation(make_book, overrides, message):
    with pytest.raises(ValidationError, match=message):
        make_book(**overrides)


def test_add_book_rejects_available_different_from_total(make_book):
    with pytest.raises(ValidationError, match="Available copies"):
        make_book(total_copies=3, available_copies=1)


def test_new_book_available_defaults_to_total(make_book):
    book = make_book(total_copies=4, available_copies=4)
    assert book.available_copies == 4


def test_search_by_isbn_substring(lib, make_book):
    make_book(title="Dune", isbn="978-0123456789")
    make_book(title="Emma", isbn="9789999999999")

    result = lib.search_books("0123", filter_type="isbn")
    assert [b.title for b in result.items] == ["Dune"]
    assert result.items[0].isbn == "978-0123456789"


def test_search_is_case_insensitive_over_all_fields(lib, make_book):
    make_book(title="The Hobbit", author="J. R. R. Tolkien", subject="Fantasy")
    make_book(title="Neuromancer", author="William Gibson", subject="Science Fiction")

    assert [b.title for b in lib.search_books("HOBBIT").items] == ["The Hobbit"]
    assert [b.title for b in lib.search_books("gibson").items] == ["Neuromancer"]
    assert [b.title for b in lib.search_books("fantasy").items] == ["The Hobbit"]
    assert lib.search_books("gibson", filter_type="title").total == 0


def test_search_treats_wildcards_literally(lib, make_book):
    make_book(title="100% Useful")
    make_book(title="Plain Title")

    assert [b.title for b in lib.search_books("100%").items] == ["100% Useful"]
    assert lib.search_books("_").total == 0


def test_empty_query_lists_everything(lib, make_book):
    make_book()
    make_book()
    assert lib.search_books("").total == 2


def test_available_only(lib, make_book):
    lent = make_book(title="Lent Out")
    make_book(title="On Shelf")
    assert lib.borrow_book(lent.id, "Jane Reader", "2099-01-01").success

    result = lib.search_books("", available_only=True)
    assert [b.title for b in result.items] == ["On Shelf"]


def test_unknown_filter_type(lib):
    with pytest.raises(ValidationError, match="filter type"):
        lib.search_books("x", filter_type="publisher")


def test_pagination(lib, make_book):
    for _ in range(12):
        make_book()

    first = lib.list_books(page=1)
    second = lib.list_books(page=2)
    assert first.total == 12
    assert first.total_pages == 2
    assert len(first.items) == 10
    assert len(second.items) == 2
    assert not {b.id for b in first.items} & {b.id for b in second.items}


def test_invalid_paging(lib):
    with pytest.raises(ValidationError):
        lib.list_books(page=0)
    with pytest.raises(ValidationError):
        lib.list_books(page_size=1000)


def test_update_book_fields(lib, make_book):
    book = make_book(title="Old Title", author="Old Author")

    updated = lib.update_book(book.id, title="New Title")
    assert updated.title == "New Title"
    assert updated.author == "Old Author"
    assert lib.get_book(book.id).title == "New Title"


def test_update_missing_book_returns_none(lib):
    assert lib.update_book("missing", title="Anything") is None


def test_update_rejects_unknown_and_empty_changes(lib, make_book):
    book = make_book()
    with pytest.raises(ValidationError, match="Unknown fields"):
        lib.update_book(book.id, color="red")
    with pytest.raises(ValidationError, match="Nothing to update"):
        lib.update_book(book.id, title=None)


def test_update_total_recomputes_available(lib, make_book):
    book = make_book(total_copies=2)
    assert lib.borrow_book(book.id, "Jane Reader", "2099-01-01").success

    updated = lib.update_book(book.id, total_copies=5)
    assert updated.total_copies == 5
    assert updated.available_copies == 4


def test_update_total_below_open_loans(lib, make_book):
    book = make_book(total_copies=2)
    lib.borrow_book(book.id, "Jane Reader", "2099-01-01")
    lib.borrow_book(book.id, "John Reader", "2099-01-01")

    with pytest.raises(ValidationError, match="on loan"):
        lib.update_book(book.id, total_copies=1)
    assert lib.get_book(book.id).total_copies == 2


def test_update_rejects_inconsistent_available(lib, make_book):
    book = make_book(total_copies=3)
    with pytest.raises(ValidationError, match="Available copies must be 3"):
        lib.update_book(book.id, available_copies=1)


def test_delete_book(lib, make_book):
    book = make_book()
    result = lib.delete_book(book.id)
    assert result.success
    assert lib.get_book(book.id) is None

    again = lib.delete_book(book.id)
    assert not again.success
    assert again.code == FailureCode.NOT_FOUND


def test_delete_blocked_by_open_loan(lib, make_book):
    book = make_book()
    lib.borrow_book(book.id, "Jane Reader", "2099-01-01")

    result = lib.delete_book(book.id)
    assert not result.success
    assert result.code == FailureCode.HAS_OPEN_LOANS
    assert lib.get_book(book.id) is not None


def test_delete_cascades_closed_history_and_reservations(lib, make_book):
    book = make_book()
    loan = lib.borrow_book(book.id, "Jane Reader", "2099-01-01").record
    lib.return_book(loan.id)
    lib.reserve_book(book.id, "Jane Reader")

    assert lib.delete_book(book.id).success

    conn = get_db_connection()
    try:
        assert conn.execute("SELECT COUNT(*) FROM borrowing_records").fetchone()[0] == 0
        assert conn.execute("SELECT COUNT(*) FROM reservations").fetchone()[0] == 0
    finally:
        conn.close()


def test_search_by_full_hyphenated_isbn(lib, make_book):
    make_book(title="Dune", isbn="978-0123456789")
    make_book(title="Emma", isbn="9780123456789")

    result = lib.search_books("978-0123456789", filter_type="isbn")
    assert [b.title for b in result.items] == ["Dune"]


def test_existing_database_gains_notification_columns(tmp_path):
    import sqlite3

    from lending.library import Library

    db_file = str(tmp_path / "older.db")
    conn = sqlite3.connect(db_file)
    conn.execute(
        "CREATE TABLE borrowing_records (id TEXT PRIMARY KEY, book_id TEXT NOT NULL, "
        "borrower_name TEXT NOT NULL, borrower_email TEXT, borrower_phone TEXT, "
        "borrowed_at TEXT NOT NULL, due_date TEXT NOT NULL, returned_at TEXT, "
        "is_overdue INTEGER NOT NULL DEFAULT 0, overdue_days INTEGER NOT NULL DEFAULT 0, "
        "fine_amount TEXT NOT NULL DEFAULT '0.00', notes TEXT, issued_by TEXT)"
    )
    conn.commit()
    conn.close()

    Library(db_file=db_file)

    conn = get_db_connection()
    try:
        records = [c[1] for c in conn.execute("PRAGMA table_info(borrowing_records)").fetchall()]
        reservations = [c[1] for c in conn.execute("PRAGMA table_info(reservations)").fetchall()]
    finally:
        conn.close()
    assert "reminded_at" in records
    assert "overdue_notified_at" in records
    assert "notified_at" not in reservations
