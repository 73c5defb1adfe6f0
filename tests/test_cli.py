import json
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from lending.library import Library
from lending.results import FailureCode, OperationResult
from main import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def plain_output(monkeypatch):
    # --output persists through the environment; restore it after each test
    monkeypatch.setenv("LIB_CLI_OUTPUT", "plain")


def test_list_no_books(lib):
    result = runner.invoke(app, ["list"])
    assert result.exit_code == 0
    assert "No books in library." in result.stdout


def test_add_book_success(lib):
    result = runner.invoke(app, [
        "add", "--title", "Test Book", "--author", "Test Author", "--isbn", "1234567890",
        "--subject", "Testing", "--rack", "C3-12", "--copies", "2",
    ])
    assert result.exit_code == 0
    assert "Successfully added: Test Book by Test Author" in result.stdout
    assert lib.list_books().items[0].total_copies == 2


def test_add_book_invalid(lib):
    result = runner.invoke(app, [
        "add", "--title", "Test Book", "--author", "Test Author", "--isbn", "123",
        "--subject", "Testing", "--rack", "C3-12",
    ])
    assert result.exit_code == 0
    assert "Error: Please enter a valid ISBN" in result.stdout
    assert lib.list_books().total == 0


def test_list_plain_and_json(lib, make_book):
    book = make_book(title="Dune", author="Frank Herbert", total_copies=2)

    plain = runner.invoke(app, ["list"])
    assert f"{book.isbn} - Dune by Frank Herbert [2/2] @ A1-01" in plain.stdout
    assert "Page 1 of 1 (1 books)" in plain.stdout

    as_json = runner.invoke(app, ["--output", "json", "list"])
    payload = json.loads(as_json.stdout.strip())
    assert payload[0]["id"] == book.id
    assert payload[0]["available_copies"] == 2


def test_search(lib, make_book):
    make_book(title="Dune")
    make_book(title="Emma")
    result = runner.invoke(app, ["search", "emm", "--filter", "title"])
    assert "Emma" in result.stdout
    assert "Dune" not in result.stdout


def test_search_unknown_filter(lib):
    result = runner.invoke(app, ["search", "x", "--filter", "shelf"])
    assert "Error: Invalid filter type: shelf" in result.stdout


def test_find_book(lib, make_book):
    book = make_book(title="Found Book", author="Finder")
    result = runner.invoke(app, ["find", book.id])
    assert result.exit_code == 0
    assert "Book Found" in result.stdout
    assert "Title: Found Book" in result.stdout
    assert "Author: Finder" in result.stdout
    assert "Copies: 1/1 available" in result.stdout


def test_find_book_not_found(lib):
    result = runner.invoke(app, ["find", "nonexistent"])
    assert result.exit_code == 0
    assert "Book nonexistent not found." in result.stdout


def test_update_book(lib, make_book):
    book = make_book(title="Old Title")
    result = runner.invoke(app, ["update", book.id, "--title", "New Title", "--copies", "3"])
    assert "Updated: New Title by Test Author [3/3]" in result.stdout


def test_borrow_return_and_loans(lib, make_book):
    book = make_book(title="Dune")
    borrowed = runner.invoke(app, ["borrow", book.id, "Jane Reader", "--due", "2099-01-01"])
    assert "Dune due 2099-01-01" in borrowed.stdout

    unavailable = runner.invoke(app, ["borrow", book.id, "John Reader", "--due", "2099-01-01"])
    assert "Could not borrow: Book not available for borrowing" in unavailable.stdout

    loans = runner.invoke(app, ["loans"])
    assert "Dune -> Jane Reader, due 2099-01-01 (on loan, fine $0.00)" in loans.stdout

    record_id = lib.get_active_loans()[0].id
    returned = runner.invoke(app, ["return", record_id])
    assert "Returned: Dune" in returned.stdout

    history = runner.invoke(app, ["history"])
    assert "(returned, fine $0.00)" in history.stdout
    assert "No active loans." in runner.invoke(app, ["loans"]).stdout


def test_return_failure_message(lib, monkeypatch):
    monkeypatch.setattr(
        Library, "return_book",
        MagicMock(return_value=OperationResult.fail(FailureCode.ALREADY_RETURNED, "Book has already been returned")),
    )
    result = runner.invoke(app, ["return", "abc"])
    assert "Could not return: Book has already been returned" in result.stdout


def test_remove_book(lib, make_book):
    book = make_book()
    result = runner.invoke(app, ["remove", book.id])
    assert result.exit_code == 0
    assert f"Book {book.id} has been removed." in result.stdout

    missing = runner.invoke(app, ["remove", book.id])
    assert "Could not remove book" in missing.stdout


def test_reserve(lib, make_book):
    book = make_book()
    result = runner.invoke(app, ["reserve", book.id, "Kim Reader"])
    assert "Reservation" in result.stdout
    assert len(lib.list_reservations()) == 1


def test_stats(lib, make_book):
    make_book()
    result = runner.invoke(app, ["stats"])
    assert "Total Books: 1" in result.stdout
    assert "Available Books: 1" in result.stdout

    as_json = runner.invoke(app, ["-o", "json", "stats"])
    assert json.loads(as_json.stdout.strip())["borrowed_books"] == 0


def test_sweeps(lib):
    assert "Updated 0 overdue record(s)." in runner.invoke(app, ["refresh-overdue"]).stdout
    assert "Sent 0 due reminder(s)." in runner.invoke(app, ["remind"]).stdout
    assert "Sent 0 overdue notice(s)." in runner.invoke(app, ["notify-overdue"]).stdout


def test_provision_admin(lib):
    result = runner.invoke(app, ["provision-admin", "+15551234567", "--name", "Front Desk"])
    assert "Provisioned admin phone +15551234567" in result.stdout
    assert lib.auth.admin_state("+15551234567").value == "pending_setup"

    again = runner.invoke(app, ["provision-admin", "+15551234567"])
    assert "Error: Phone number +15551234567 is already registered" in again.stdout


@patch('subprocess.run')
@patch('webbrowser.open')
def test_serve_command(mock_webbrowser_open, mock_subprocess_run, lib):
    result = runner.invoke(app, ["serve"])
    assert result.exit_code == 0
    assert "Starting web UI on" in result.stdout
    mock_webbrowser_open.assert_called_once()
    mock_subprocess_run.assert_called_once()
    # Check if uvicorn is called with correct arguments
    args = mock_subprocess_run.call_args[0][0]
    assert "uvicorn" in args
    assert "api:app" in args
    assert "--host" in args
    assert "--port" in args
