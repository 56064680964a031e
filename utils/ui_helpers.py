import os
import json
from typing import Any, Dict, List, Sequence, Tuple
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()

# (column title, attribute) pairs per entity
BOOK_COLUMNS = [("ID", "id"), ("Title", "title"), ("Author", "author_name"), ("Year", "publish_year"), ("Price", "price")]
AUTHOR_COLUMNS = [("ID", "id"), ("Name", "full_name"), ("Born", "birth_date"), ("Books", "book_count")]
GENRE_COLUMNS = [("ID", "id"), ("Name", "name"), ("Description", "description")]
USER_COLUMNS = [("ID", "id"), ("Name", "name"), ("Nick", "nick_name"), ("Email", "email"), ("Role", "role")]


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _value(item: Any, attribute: str) -> str:
    if attribute == "role":
        return "Admin" if getattr(item, "is_admin", False) else "User"
    if attribute == "author_name":
        value = getattr(item, "author_name", None) or getattr(item, "author_id", "")
    else:
        value = getattr(item, attribute, "")
    return "" if value is None else str(value)


def _print_rows(items: Sequence[Any], columns: List[Tuple[str, str]], title: str, empty: str) -> None:
    """Render a list in the current output mode.
    - plain: one ' - ' separated line per item, or the empty message
    - json: the items' wire representation
    - rich: Rich table
    """
    mode = get_output_mode()

    if not items:
        print(empty)
        return

    if mode == "json":
        payload = [item.to_dict() if hasattr(item, "to_dict") else item for item in items]
        print(json.dumps(payload, ensure_ascii=False))
    elif mode == "rich":
        table = Table(title=title, show_lines=True, header_style="bold cyan")
        for heading, _ in columns:
            table.add_column(heading, style="white")
        for item in items:
            table.add_row(*(_value(item, attr) for _, attr in columns))
        _console.print(table)
    else:
        for item in items:
            print(" - ".join(_value(item, attr) for _, attr in columns))


def print_books(books: Sequence[Any], saved_ids: Sequence[str] = ()) -> None:
    if saved_ids and get_output_mode() == "plain" and books:
        saved = set(saved_ids)
        for book in books:
            marker = "*" if book.id in saved else " "
            print(f"{marker} " + " - ".join(_value(book, attr) for _, attr in BOOK_COLUMNS))
        return
    _print_rows(books, BOOK_COLUMNS, "📚 Books", "No books found.")


def print_authors(authors: Sequence[Any]) -> None:
    _print_rows(authors, AUTHOR_COLUMNS, "✍️  Authors", "No authors found.")


def print_genres(genres: Sequence[Any]) -> None:
    _print_rows(genres, GENRE_COLUMNS, "🏷️  Genres", "No genres found.")


def print_users(users: Sequence[Any]) -> None:
    _print_rows(users, USER_COLUMNS, "👥 Users", "No users found.")


def print_detail(title: str, fields: Dict[str, Any]) -> None:
    """Single-entity view: 'Key: value' lines, a JSON object or a Rich panel."""
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps(fields, ensure_ascii=False, default=str))
    elif mode == "rich":
        content = "\n".join(f"[bold]{key}:[/] {value}" for key, value in fields.items())
        _console.print(Panel.fit(content, title=title, border_style="blue"))
    else:
        print(title)
        for key, value in fields.items():
            print(f"{key}: {value}")


def print_error(message: str) -> None:
    if get_output_mode() == "rich":
        _console.print(f"[bold red]{message}[/]")
    else:
        print(f"Error: {message}")
