import logging
import os
import subprocess
import sys
import webbrowser
from datetime import date, timedelta
from functools import wraps
from typing import Optional

import typer
from rich.console import Console

import lending.database as database
from config import settings
from lending.errors import ExternalServiceError, InconsistentStateError, ValidationError
from lending.library import Library
from utils.ui_helpers import print_list_result, print_loans_result, print_stats_result, set_output_mode

APP_NAME = "Library Lending CLI"

logger = logging.getLogger(__name__)
console = Console()


class LibraryManager:
    """Holds one Library per database file."""

    _instance: Optional[Library] = None
    _db_file_snapshot: Optional[str] = None

    @classmethod
    def get_instance(cls) -> Library:
        current_db = database.DATABASE_FILE
        # Rebuild when the database file changes (e.g. one file per test)
        if cls._instance is None or current_db != cls._db_file_snapshot:
            cls._instance = Library()
            cls._db_file_snapshot = current_db
        return cls._instance


def handle_errors(func):
    """Print domain errors as a single 'Error: ...' line instead of a traceback."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (ValidationError, InconsistentStateError) as e:
            print(f"Error: {e}")
        except ExternalServiceError as e:
            print(f"Service unavailable: {e}")
    return wrapper


# --- Typer CLI App ---
app = typer.Typer(help=APP_NAME)


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    )
):
    """Global CLI options (e.g. output mode)."""
    logging.basicConfig(level=settings.log_level)
    if output:
        set_output_mode(output)


@app.command("list")
@handle_errors
def cli_list(
    page: int = typer.Option(1, "--page", "-p"),
    page_size: int = typer.Option(settings.default_page_size, "--page-size"),
):
    """List the catalog, newest first."""
    result = LibraryManager.get_instance().list_books(page=page, page_size=page_size)
    print_list_result(result.items, result.total, result.page, result.total_pages)


@app.command("search")
@handle_errors
def cli_search(
    query: str,
    filter_type: str = typer.Option("all", "--filter", "-f", help="all | title | author | isbn | subject"),
    available: bool = typer.Option(False, "--available", help="Only books with a copy on the shelf"),
    page: int = typer.Option(1, "--page", "-p"),
):
    """Search books by title, author, ISBN or subject."""
    result = LibraryManager.get_instance().search_books(
        query, filter_type=filter_type, available_only=available, page=page
    )
    print_list_result(result.items, result.total, result.page, result.total_pages)


@app.command("find")
def cli_find(book_id: str):
    """Show the details of one book."""
    book = LibraryManager.get_instance().get_book(book_id)
    if not book:
        print(f"Book {book_id} not found.")
        return
    print("Book Found")
    print(f"Title: {book.title}")
    print(f"Author: {book.author}")
    print(f"ISBN: {book.isbn}")
    print(f"Subject: {book.subject}")
    print(f"Rack: {book.rack_number}")
    print(f"Copies: {book.available_copies}/{book.total_copies} available")


@app.command("add")
@handle_errors
def cli_add(
    title: str = typer.Option(..., "--title"),
    author: str = typer.Option(..., "--author"),
    isbn: str = typer.Option(..., "--isbn"),
    subject: str = typer.Option(..., "--subject"),
    rack_number: str = typer.Option(..., "--rack", help="Shelf code, e.g. A1-01"),
    copies: int = typer.Option(1, "--copies"),
    year: Optional[int] = typer.Option(None, "--year"),
    description: Optional[str] = typer.Option(None, "--description"),
):
    """Add a book to the catalog."""
    book = LibraryManager.get_instance().add_book(
        title=title, author=author, isbn=isbn, subject=subject, rack_number=rack_number,
        total_copies=copies, published_year=year, description=description,
    )
    print(f"Successfully added: {book.title} by {book.author} ({book.id})")


@app.command("update")
@handle_errors
def cli_update(
    book_id: str,
    title: Optional[str] = typer.Option(None, "--title"),
    author: Optional[str] = typer.Option(None, "--author"),
    subject: Optional[str] = typer.Option(None, "--subject"),
    rack_number: Optional[str] = typer.Option(None, "--rack"),
    copies: Optional[int] = typer.Option(None, "--copies"),
):
    """Update fields of a book."""
    book = LibraryManager.get_instance().update_book(
        book_id, title=title, author=author, subject=subject, rack_number=rack_number, total_copies=copies
    )
    if not book:
        print(f"Book {book_id} not found.")
        return
    print(f"Updated: {book.title} by {book.author} [{book.available_copies}/{book.total_copies}]")


@app.command("remove")
@handle_errors
def cli_remove(book_id: str):
    """Remove a book that has no copies on loan."""
    result = LibraryManager.get_instance().delete_book(book_id)
    if result.success:
        print(f"Book {book_id} has been removed.")
    else:
        print(f"Could not remove book {book_id}: {result.error}")


@app.command("borrow")
@handle_errors
def cli_borrow(
    book_id: str,
    borrower_name: str,
    due: Optional[str] = typer.Option(None, "--due", help="Due date YYYY-MM-DD (default: loan period from today)"),
    email: Optional[str] = typer.Option(None, "--email"),
    phone: Optional[str] = typer.Option(None, "--phone"),
    notes: Optional[str] = typer.Option(None, "--notes"),
):
    """Issue a copy of a book."""
    due = due or (date.today() + timedelta(days=settings.default_loan_days)).isoformat()
    result = LibraryManager.get_instance().borrow_book(
        book_id, borrower_name, due, borrower_email=email, borrower_phone=phone, notes=notes
    )
    if result.success:
        print(f"Loan {result.record.id}: {result.record.book.title} due {result.record.due_date[:10]}")
    else:
        print(f"Could not borrow: {result.error}")


@app.command("return")
@handle_errors
def cli_return(record_id: str):
    """Return a borrowed copy."""
    result = LibraryManager.get_instance().return_book(record_id)
    if not result.success:
        print(f"Could not return: {result.error}")
        return
    record = result.record
    print(f"Returned: {record.book.title}")
    if record.is_overdue:
        print(f"Overdue by {record.overdue_days} day(s). Fine: ${record.fine_amount}")


@app.command("loans")
@handle_errors
def cli_loans():
    """List open loans, soonest due first."""
    print_loans_result(LibraryManager.get_instance().get_active_loans(), "No active loans.")


@app.command("history")
@handle_errors
def cli_history(page: int = typer.Option(1, "--page", "-p")):
    """Show the borrowing history, most recent first."""
    result = LibraryManager.get_instance().get_borrowing_history(page=page)
    print_loans_result(result.items, "No borrowing history.")


@app.command("reserve")
@handle_errors
def cli_reserve(
    book_id: str,
    name: str,
    email: Optional[str] = typer.Option(None, "--email"),
    phone: Optional[str] = typer.Option(None, "--phone"),
):
    """Place a hold on a book."""
    result = LibraryManager.get_instance().reserve_book(book_id, name, reserver_email=email, reserver_phone=phone)
    if result.success:
        print(f"Reservation {result.record.id} expires {result.record.expires_at[:10]}")
    else:
        print(f"Could not reserve: {result.error}")


@app.command("stats")
@handle_errors
def cli_stats():
    """Show dashboard statistics."""
    print_stats_result(LibraryManager.get_instance().get_dashboard_stats().__dict__)


@app.command("refresh-overdue")
@handle_errors
def cli_refresh_overdue():
    """Recompute overdue days and fines for open loans."""
    count = LibraryManager.get_instance().refresh_overdue()
    print(f"Updated {count} overdue record(s).")


@app.command("remind")
@handle_errors
def cli_remind():
    """Send reminders for loans due soon."""
    count = LibraryManager.get_instance().notifications.send_due_reminders()
    print(f"Sent {count} due reminder(s).")


@app.command("notify-overdue")
@handle_errors
def cli_notify_overdue():
    """Send notices for loans that just became overdue."""
    count = LibraryManager.get_instance().notifications.send_overdue_notices()
    print(f"Sent {count} overdue notice(s).")


@app.command("provision-admin")
@handle_errors
def cli_provision_admin(phone_number: str, name: Optional[str] = typer.Option(None, "--name")):
    """Authorize a phone number to complete admin setup."""
    admin = LibraryManager.get_instance().auth.provision_admin(phone_number, name=name)
    print(f"Provisioned admin phone {admin.phone_number}. Setup is pending.")


@app.command("serve")
def cli_serve(timeout: int = typer.Option(0, "--timeout", help="Seconds to run before exiting (0 = no timeout)")):
    """Start the HTTP API with uvicorn."""
    host = settings.api_host
    port = int(settings.api_port)
    url = f"http://{host}:{port}/docs"
    print(f"Starting web UI on {url}")
    try:
        webbrowser.open(url)
    except webbrowser.Error as e:
        logger.debug(f"Could not open browser: {e}")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "api:app",
        "--host", host,
        "--port", str(port),
    ]
    if timeout and timeout > 0:
        # No reloader when running with a timeout, so terminate reaches the server
        start_new_session = os.name != "nt"
        proc = subprocess.Popen(args, start_new_session=start_new_session)
        try:
            proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            proc.terminate()
            try:
                proc.wait(timeout=5)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait(timeout=3)
    else:
        args.append("--reload")
        subprocess.run(args)


if __name__ == "__main__":
    app()
