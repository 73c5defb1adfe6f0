import os
import json
from typing import List, Any, Dict
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    # Unknown values keep the current mode
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def print_list_result(books: List[Any], total: int = None, page: int = 1, total_pages: int = 1) -> None:
    """Print books in the current output mode.
    - plain: 'ISBN - Title by Author [available/total] @ rack' lines, or 'No books in library.'
    - json: JSON array of book dicts
    - rich: Rich table
    """
    mode = get_output_mode()

    if not books:
        print("No books in library.")
        return

    if mode == "json":
        print(json.dumps([b.to_dict() for b in books], ensure_ascii=False, default=str))
    elif mode == "rich":
        table = Table(title="📚 Books", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="dim", no_wrap=True)
        table.add_column("ISBN", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Rack", style="cyan")
        table.add_column("Available", justify="right")
        for b in books:
            color = "green" if b.available_copies else "red"
            table.add_row(
                b.id[:8], b.isbn, b.title, b.author, b.rack_number,
                f"[{color}]{b.available_copies}/{b.total_copies}[/]",
            )
        _console.print(table)
        if total is not None:
            _console.print(f"[dim]Page {page} of {total_pages} ({total} books)[/]")
    else:
        for b in books:
            print(f"{b.isbn} - {b.title} by {b.author} [{b.available_copies}/{b.total_copies}] @ {b.rack_number} ({b.id})")
        if total is not None:
            print(f"Page {page} of {total_pages} ({total} books)")


def print_loans_result(records: List[Any], empty_message: str = "No loans found.") -> None:
    mode = get_output_mode()

    if not records:
        print(empty_message)
        return

    if mode == "json":
        print(json.dumps([r.to_dict() for r in records], ensure_ascii=False, default=str))
    elif mode == "rich":
        table = Table(title="📖 Loans", show_lines=True, header_style="bold cyan")
        table.add_column("Record", style="dim", no_wrap=True)
        table.add_column("Book", style="white")
        table.add_column("Borrower", style="white")
        table.add_column("Due", style="magenta")
        table.add_column("Status")
        table.add_column("Fine", justify="right")
        for r in records:
            title = r.book.title if r.book else r.book_id
            if r.returned_at:
                status = "[dim]returned[/]"
            elif r.is_overdue:
                status = f"[red]overdue {r.overdue_days}d[/]"
            else:
                status = "[green]on loan[/]"
            table.add_row(r.id[:8], title, r.borrower_name, r.due_date[:10], status, f"${r.fine_amount}")
        _console.print(table)
    else:
        for r in records:
            title = r.book.title if r.book else r.book_id
            status = "returned" if r.returned_at else ("overdue" if r.is_overdue else "on loan")
            print(f"{r.id} - {title} -> {r.borrower_name}, due {r.due_date[:10]} ({status}, fine ${r.fine_amount})")


def print_stats_result(stats: Dict[str, Any]) -> None:
    """Print dashboard statistics in the current output mode.
    - plain: one 'Label: value' line per metric
    - json: JSON object
    - rich: Panel with the main metrics
    """
    mode = get_output_mode()

    if not stats:
        print("No statistics available.")
        return

    labels = {
        "total_books": "Total Books",
        "available_books": "Available Books",
        "borrowed_books": "Borrowed Books",
        "overdue_books": "Overdue Books",
        "total_reservations": "Total Reservations",
        "active_reservations": "Active Reservations",
    }

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = "\n".join(f"[bold]{label}:[/] {stats.get(key, 0)}" for key, label in labels.items())
        _console.print(Panel.fit(content, title="📊 Stats", border_style="blue"))
    else:
        for key, label in labels.items():
            print(f"{label}: {stats.get(key, 0)}")
