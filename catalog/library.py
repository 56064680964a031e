import asyncio
import itertools
import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple, TypeVar, Union

import httpx

from config import settings
from catalog.errors import CatalogError, PolicyDenied, RemoteFailure, ValidationError
from catalog.models import (
    Author,
    AuthorPayload,
    Book,
    BookFilter,
    BookPayload,
    Confirmation,
    Genre,
    GenrePayload,
    User,
    UserPayload,
)
from catalog.policy import LOGIN_REQUIRED_MESSAGE, AccessPolicy, EntityType, Operation
from catalog.saved_books import SavedBookChange, SavedBooksManager
from catalog.services.author_service import AuthorRepository
from catalog.services.book_service import BookRepository
from catalog.services.genre_service import GenreRepository
from catalog.services.http_client import CatalogHTTPClient
from catalog.services.user_service import UserRepository
from catalog.session import Session, SessionState, SessionStorage
from utils.validators import FormValidator, ValidationResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

SORT_ORDERS = ("asc", "desc")
DUPLICATE_EMAIL_MESSAGE = "User with this email already exists"


class RequestTracker:
    """Per-resource tickets: only the newest request's result may be applied."""

    def __init__(self) -> None:
        self._counter = itertools.count(1)
        self._latest: Dict[str, int] = {}

    def begin(self, resource: str) -> int:
        ticket = next(self._counter)
        self._latest[resource] = ticket
        return ticket

    def is_current(self, resource: str, ticket: int) -> bool:
        return self._latest.get(resource) == ticket


async def gather_reads(*reads: Awaitable[Any]) -> Tuple[Any, ...]:
    """Run independent reads concurrently; any failure surfaces as one error."""
    results = await asyncio.gather(*reads, return_exceptions=True)
    failures = [r for r in results if isinstance(r, BaseException)]
    if not failures:
        return tuple(results)

    for failure in failures:
        if not isinstance(failure, CatalogError):
            raise failure
    if len(failures) == 1:
        raise failures[0]

    messages = list(dict.fromkeys(f.message for f in failures))
    status = next((getattr(f, "status_code", None) for f in failures if getattr(f, "status_code", None)), None)
    raise RemoteFailure("; ".join(messages), status) from failures[0]


def _raise_for_errors(result: ValidationResult) -> None:
    if not result.valid:
        raise ValidationError(result.errors)


class Library:
    """Catalog operations as seen by a presentation layer.

    Writes run Validation -> Access Policy -> Repository; reads run
    Access Policy -> Repository. Validation and policy failures never reach
    the network.
    """

    def __init__(
        self,
        session: Optional[Session] = None,
        client: Optional[CatalogHTTPClient] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if session is None:
            storage = SessionStorage(settings.session_file, settings.storage_namespace)
            session = Session(storage, check_token_expiry=settings.check_token_expiry)
        self.session = session
        self.client = client or CatalogHTTPClient(session, base_url=base_url, transport=transport)
        self.policy = AccessPolicy(session)

        self.books = BookRepository(self.client)
        self.authors = AuthorRepository(self.client)
        self.genres = GenreRepository(self.client)
        self.users = UserRepository(self.client)
        self.saved_books = SavedBooksManager(self.users, self.policy, session)
        self.requests = RequestTracker()

    async def close(self) -> None:
        await self.client.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ------------------------- Session ------------------------- #
    @property
    def current_user(self) -> Optional[User]:
        return self.session.user

    def restore_session(self) -> SessionState:
        return self.session.restore()

    def _require_user_id(self) -> str:
        user_id = self.session.user_id
        if user_id is None:
            raise PolicyDenied(LOGIN_REQUIRED_MESSAGE)
        return user_id

    async def login(self, email: str, password: str) -> User:
        _raise_for_errors(FormValidator.login({"email": email, "password": password}))

        result = await self.users.login(email.strip(), password)
        self.session.start(result.user, result.token)
        await self._load_saved_books(result.user.id)
        return result.user

    async def register(self, form: Mapping[str, Any]) -> User:
        """Create an account and log straight into it."""
        _raise_for_errors(FormValidator.user(form))
        payload = UserPayload.from_form({**form, "is_admin": False})

        try:
            await self.users.register(payload)
        except RemoteFailure as e:
            if e.status_code == 409 or _mentions_duplicate(e.message):
                raise ValidationError({"email": DUPLICATE_EMAIL_MESSAGE}) from e
            raise

        return await self.login(payload.email, payload.password)

    def logout(self) -> None:
        self.session.end()

    async def _load_saved_books(self, user_id: str) -> None:
        try:
            await self.saved_books.refresh(user_id)
        except RemoteFailure as e:
            logger.warning(f"Could not load saved books for {user_id}: {e.message}")

    # ------------------------- Books ------------------------- #
    async def list_books(self) -> List[Book]:
        self.policy.require(Operation.LIST, EntityType.BOOK)
        return await self.books.list()

    async def get_book(self, book_id: str) -> Book:
        self.policy.require(Operation.GET, EntityType.BOOK, book_id)
        return await self.books.get_by_id(book_id)

    async def filter_books(self, criteria: Optional[BookFilter] = None, **fields: Any) -> List[Book]:
        """Server-side filter; the returned order is the service's order."""
        criteria = criteria or BookFilter(**fields)
        if criteria.sort_order and criteria.sort_order not in SORT_ORDERS:
            raise ValidationError({"sort_order": "Sort order must be 'asc' or 'desc'"})
        self.policy.require(Operation.LIST, EntityType.BOOK)
        return await self.books.filter(criteria)

    async def books_by_genre(self, genre_id: int) -> List[Book]:
        self.policy.require(Operation.LIST, EntityType.BOOK)
        return await self.books.by_genre(genre_id)

    async def create_book(self, form: Mapping[str, Any]) -> Book:
        _raise_for_errors(FormValidator.book(form))
        payload = BookPayload.from_form(form)
        self.policy.require(Operation.CREATE, EntityType.BOOK)
        return await self.books.create(payload)

    async def update_book(self, book_id: str, form: Mapping[str, Any]) -> Book:
        _raise_for_errors(FormValidator.book(form))
        payload = BookPayload.from_form(form)
        self.policy.require(Operation.UPDATE, EntityType.BOOK, book_id)
        return await self.books.update(book_id, payload)

    async def delete_book(self, book_id: str) -> Confirmation:
        self.policy.require(Operation.DELETE, EntityType.BOOK, book_id)
        return await self.books.delete(book_id)

    # ------------------------- Authors ------------------------- #
    async def list_authors(self, with_book_count: bool = False) -> List[Author]:
        self.policy.require(Operation.LIST, EntityType.AUTHOR)
        if with_book_count:
            return await self.authors.list_with_book_count()
        return await self.authors.list()

    async def get_author(self, author_id: str) -> Author:
        self.policy.require(Operation.GET, EntityType.AUTHOR, author_id)
        return await self.authors.get_by_id(author_id)

    async def author_with_books(self, author_id: str) -> Tuple[Author, List[Book]]:
        self.policy.require(Operation.GET, EntityType.AUTHOR, author_id)
        self.policy.require(Operation.LIST, EntityType.BOOK)
        author, books = await gather_reads(
            self.authors.get_by_id(author_id),
            self.authors.books(author_id),
        )
        return author, books

    async def create_author(self, form: Mapping[str, Any]) -> Author:
        _raise_for_errors(FormValidator.author(form))
        payload = AuthorPayload.from_form(form)
        self.policy.require(Operation.CREATE, EntityType.AUTHOR)
        return await self.authors.create(payload)

    async def update_author(self, author_id: str, form: Mapping[str, Any]) -> Author:
        _raise_for_errors(FormValidator.author(form))
        payload = AuthorPayload.from_form(form)
        self.policy.require(Operation.UPDATE, EntityType.AUTHOR, author_id)
        return await self.authors.update(author_id, payload)

    async def delete_author(self, author: Union[Author, str]) -> Confirmation:
        """Delete an author that has no books.

        The book count is checked locally; when only an id (or an author
        without a count) is given, the count is looked up first.
        """
        author_id = author if isinstance(author, str) else author.id
        self.policy.require(Operation.DELETE, EntityType.AUTHOR, author_id)

        if isinstance(author, str) or author.book_count is None:
            counted = await self.authors.list_with_book_count()
            match = next((a for a in counted if a.id == author_id), None)
            if match is None:
                raise RemoteFailure("Author not found", 404)
            author = match

        self.policy.check_author_delete(author)
        return await self.authors.delete(author.id)

    # ------------------------- Genres ------------------------- #
    async def list_genres(self) -> List[Genre]:
        self.policy.require(Operation.LIST, EntityType.GENRE)
        return await self.genres.list()

    async def selectable_genres(self) -> List[Genre]:
        """Genres offered when picking a book's genres (the sentinel genre is left out)."""
        return _without_hidden_genre(await self.list_genres())

    async def get_genre(self, genre_id: int) -> Genre:
        self.policy.require(Operation.GET, EntityType.GENRE)
        return await self.genres.get_by_id(genre_id)

    async def create_genre(self, form: Mapping[str, Any]) -> Genre:
        _raise_for_errors(FormValidator.genre(form))
        payload = GenrePayload.from_form(form)
        self.policy.require(Operation.CREATE, EntityType.GENRE)
        return await self.genres.create(payload)

    async def update_genre(self, genre_id: int, form: Mapping[str, Any]) -> Genre:
        _raise_for_errors(FormValidator.genre(form))
        payload = GenrePayload.from_form(form)
        self.policy.require(Operation.UPDATE, EntityType.GENRE)
        return await self.genres.update(genre_id, payload)

    async def delete_genre(self, genre_id: int) -> Confirmation:
        self.policy.require(Operation.DELETE, EntityType.GENRE)
        return await self.genres.delete(genre_id)

    async def book_form_options(self) -> Tuple[List[Author], List[Genre]]:
        """Authors and selectable genres for a book form, fetched together."""
        self.policy.require(Operation.LIST, EntityType.AUTHOR)
        self.policy.require(Operation.LIST, EntityType.GENRE)
        authors, genres = await gather_reads(self.authors.list(), self.genres.list())
        return authors, _without_hidden_genre(genres)

    # ------------------------- Users ------------------------- #
    async def list_users(self) -> List[User]:
        self.policy.require(Operation.LIST, EntityType.USER)
        return await self.users.list()

    async def get_user(self, user_id: str) -> User:
        self.policy.require(Operation.GET, EntityType.USER, user_id)
        return await self.users.get_by_id(user_id)

    async def create_user(self, form: Mapping[str, Any]) -> User:
        _raise_for_errors(FormValidator.user(form))
        payload = UserPayload.from_form(form)
        self.policy.require(Operation.CREATE, EntityType.USER)
        try:
            return await self.users.create(payload)
        except RemoteFailure as e:
            if e.status_code == 409 or _mentions_duplicate(e.message):
                raise ValidationError({"email": DUPLICATE_EMAIL_MESSAGE}) from e
            raise

    async def update_user(self, user_id: str, form: Mapping[str, Any]) -> User:
        _raise_for_errors(FormValidator.user(form))
        payload = UserPayload.from_form(form)
        self.policy.check_user_update(user_id, payload)
        user = await self.users.update(user_id, payload)
        self.session.update_identity(user)
        return user

    async def delete_user(self, user_id: str) -> Confirmation:
        self.policy.check_user_delete(user_id)
        return await self.users.delete(user_id)

    # ------------------------- Saved books ------------------------- #
    async def save_book(self, book_id: str, user_id: Optional[str] = None) -> SavedBookChange:
        return await self.saved_books.add(user_id or self._require_user_id(), book_id)

    async def unsave_book(self, book_id: str, user_id: Optional[str] = None) -> SavedBookChange:
        return await self.saved_books.remove(user_id or self._require_user_id(), book_id)

    async def list_saved_books(self, user_id: Optional[str] = None) -> List[Book]:
        return await self.saved_books.list(user_id or self._require_user_id())

    def is_saved(self, book_id: str, user_id: Optional[str] = None) -> bool:
        target = user_id or self.session.user_id
        return target is not None and self.saved_books.is_saved(target, book_id)

    # ------------------------- Stale results ------------------------- #
    async def fetch_latest(
        self,
        resource: str,
        fetch: Callable[[], Awaitable[T]],
        apply: Callable[[T], None],
    ) -> bool:
        """Run `fetch` and hand its result to `apply` unless a newer fetch of
        the same resource started in the meantime. Returns whether it applied."""
        ticket = self.requests.begin(resource)
        result = await fetch()
        if not self.requests.is_current(resource, ticket):
            logger.debug(f"Discarding stale result for {resource}")
            return False
        apply(result)
        return True


def _without_hidden_genre(genres: List[Genre]) -> List[Genre]:
    return [g for g in genres if not g.matches_name(settings.hidden_genre_name)]


def _mentions_duplicate(message: str) -> bool:
    lowered = message.lower()
    return any(word in lowered for word in ("already exists", "duplicate", "conflict"))
