import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

import typer

from config import settings
from catalog.errors import CatalogError, ValidationError
from catalog.library import Library, gather_reads
from catalog.models import BookFilter
from utils.ui_helpers import (
    print_authors,
    print_books,
    print_detail,
    print_error,
    print_genres,
    print_users,
    set_output_mode,
)


T = TypeVar("T")


def _build_library() -> Library:
    """One Library (and one Session) per command invocation."""
    return Library()


def _run(action: Callable[[Library], Awaitable[T]]) -> T:
    """Restore the session, run `action`, and turn catalog errors into a clean exit."""

    async def runner() -> T:
        library = _build_library()
        try:
            library.restore_session()
            return await action(library)
        finally:
            await library.close()

    try:
        return asyncio.run(runner())
    except ValidationError as e:
        for field, message in e.errors.items():
            print_error(f"{field}: {message}")
        raise typer.Exit(code=1)
    except CatalogError as e:
        print_error(e.message)
        raise typer.Exit(code=1)


# --- Typer CLI application ---
app = typer.Typer(help=f"{settings.app_name} CLI v{settings.app_version}")


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log catalog activity to stderr"),
):
    """Global options (output mode, logging)."""
    if output:
        set_output_mode(output)
    level = logging.INFO if verbose or settings.debug else settings.log_level
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


# --- Session commands ---

@app.command("login")
def cli_login(
    email: str,
    password: str = typer.Option(..., "--password", "-p", prompt=True, hide_input=True),
):
    """Log in and remember the session."""
    user = _run(lambda lib: lib.login(email, password))
    role = "admin" if user.is_admin else "user"
    print(f"Logged in as {user.name} <{user.email}> ({role})")


@app.command("register")
def cli_register(
    name: str = typer.Option(..., "--name", prompt=True),
    nick_name: str = typer.Option(..., "--nick", prompt="Nick name"),
    email: str = typer.Option(..., "--email", prompt=True),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True, confirmation_prompt=True),
):
    """Create an account and log into it."""
    form = {"name": name, "nick_name": nick_name, "email": email, "password": password}
    user = _run(lambda lib: lib.register(form))
    print(f"Registration successful! Welcome, {user.name}.")


@app.command("logout")
def cli_logout():
    """Forget the stored session."""

    async def action(lib: Library) -> None:
        lib.logout()

    _run(action)
    print("Logged out successfully")


@app.command("whoami")
def cli_whoami():
    """Show the logged-in identity."""

    async def action(lib: Library):
        return lib.current_user

    user = _run(action)
    if user is None:
        print("Not logged in.")
        return
    print_detail("Current User", {
        "ID": user.id,
        "Name": user.name,
        "Nick": user.nick_name,
        "Email": user.email,
        "Role": "Administrator" if user.is_admin else "User",
    })


# --- Catalog commands ---

@app.command("books")
def cli_books(
    title: Optional[str] = typer.Option(None, "--title", "-t", help="Title contains"),
    author_id: Optional[str] = typer.Option(None, "--author", "-a", help="Author id"),
    genre_id: Optional[int] = typer.Option(None, "--genre", "-g", help="Genre id"),
    sort_by: Optional[str] = typer.Option(None, "--sort-by", help="title | publishYear"),
    sort_order: Optional[str] = typer.Option(None, "--order", help="asc | desc"),
):
    """List books, optionally filtered and sorted by the service."""
    criteria = BookFilter(
        search_title=title, author_id=author_id, genre_id=genre_id, sort_by=sort_by, sort_order=sort_order
    )

    async def action(lib: Library):
        user_id = lib.session.user_id
        if user_id is None:
            return await lib.filter_books(criteria), []
        books, _ = await gather_reads(lib.filter_books(criteria), lib.saved_books.refresh(user_id))
        return books, lib.saved_books.saved_ids(user_id)

    books, saved_ids = _run(action)
    print_books(books, saved_ids)


@app.command("book")
def cli_book(book_id: str):
    """Show one book."""
    book = _run(lambda lib: lib.get_book(book_id))
    print_detail("Book Found", {
        "Title": book.title,
        "Author": book.author_name or book.author_id,
        "Genres": ", ".join(book.genre_names) or ", ".join(str(g) for g in book.genre_ids),
        "ISBN": book.isbn or "-",
        "Year": book.publish_year if book.publish_year is not None else "-",
        "Price": f"{book.price:.2f}",
    })


@app.command("authors")
def cli_authors(counts: bool = typer.Option(True, "--counts/--no-counts", help="Include book counts")):
    """List authors."""
    print_authors(_run(lambda lib: lib.list_authors(with_book_count=counts)))


@app.command("author")
def cli_author(author_id: str):
    """Show an author together with their books."""
    author, books = _run(lambda lib: lib.author_with_books(author_id))
    print_detail("Author", {"Name": author.full_name, "Born": author.birth_date, "Books": len(books)})
    print_books(books)


@app.command("delete-author")
def cli_delete_author(author_id: str):
    """Delete an author that has no books (admin only)."""
    _run(lambda lib: lib.delete_author(author_id))
    print(f"Author {author_id} deleted.")


@app.command("genres")
def cli_genres(show_all: bool = typer.Option(False, "--all", help="Include the 'unknown' genre")):
    """List genres."""
    genres = _run(lambda lib: lib.list_genres() if show_all else lib.selectable_genres())
    print_genres(genres)


# --- User commands ---

@app.command("users")
def cli_users():
    """List users (admin only)."""
    print_users(_run(lambda lib: lib.list_users()))


@app.command("delete-user")
def cli_delete_user(user_id: str):
    """Delete a user (admin only, never yourself)."""
    _run(lambda lib: lib.delete_user(user_id))
    print(f"User {user_id} deleted.")


@app.command("save")
def cli_save(book_id: str):
    """Add a book to your saved books."""
    change = _run(lambda lib: lib.save_book(book_id))
    print(change.message)


@app.command("unsave")
def cli_unsave(book_id: str):
    """Remove a book from your saved books."""
    change = _run(lambda lib: lib.unsave_book(book_id))
    print(change.message)


@app.command("saved")
def cli_saved(user_id: Optional[str] = typer.Option(None, "--user", help="Another user's list (admin only)")):
    """List saved books."""
    books: List[Any] = _run(lambda lib: lib.list_saved_books(user_id))
    print_books(books)


if __name__ == "__main__":
    app()
