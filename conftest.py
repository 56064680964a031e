import json
import re
import uuid
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

from catalog.library import Library
from catalog.session import Session, SessionStorage

BASE_URL = "http://catalog.test/api"

ADMIN_EMAIL = "admin@library.com"
ADMIN_PASSWORD = "Admin123"
READER_EMAIL = "x@y.com"
READER_PASSWORD = "Secret1!"


class FakeCatalogApi:
    """In-memory stand-in for the catalog REST service, served through httpx.MockTransport.

    Every request is recorded in `requests`. `failures[(METHOD, path)]`
    forces a (status, body) response for that route.
    """

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.failures: Dict[Tuple[str, str], Tuple[int, Any]] = {}
        self.login_tokens: Dict[str, str] = {}
        self.tokens: Dict[str, str] = {}

        self.users: Dict[str, Dict[str, Any]] = {}
        self.passwords: Dict[str, str] = {}
        self.saved: Dict[str, List[str]] = {}
        self._add_user("u-admin", "Ada Admin", "ada", ADMIN_EMAIL, ADMIN_PASSWORD, True)
        self._add_user("u-reader", "Rex Reader", "rex", READER_EMAIL, READER_PASSWORD, False)

        self.authors: Dict[str, Dict[str, Any]] = {
            "a-herbert": {"id": "a-herbert", "firstName": "Frank", "lastName": "Herbert", "birthDate": "1920-10-08T00:00:00"},
            "a-leguin": {"id": "a-leguin", "firstName": "Ursula", "lastName": "Le Guin", "birthDate": "1929-10-21T00:00:00"},
            "a-new": {"id": "a-new", "firstName": "Nora", "lastName": "Newcomer", "birthDate": "1990-01-01T00:00:00"},
        }
        self.genres: Dict[int, Dict[str, Any]] = {
            1: {"id": 1, "name": "unknown", "description": None},
            2: {"id": 2, "name": "Science Fiction", "description": "Futures and spaceships"},
            3: {"id": 3, "name": "Fantasy", "description": None},
        }
        self.books: Dict[str, Dict[str, Any]] = {}
        self._add_book("b-dune", "Dune", "a-herbert", [2], "9780441013593", 1965, 9.99)
        self._add_book("b-messiah", "Dune Messiah", "a-herbert", [2], "9780593098233", 1969, 8.5)
        self._add_book("b-earthsea", "A Wizard of Earthsea", "a-leguin", [3], "", 1968, 7.25)

    # ------------------------- Seeding ------------------------- #
    def _add_user(self, user_id, name, nick, email, password, is_admin):
        self.users[user_id] = {
            "id": user_id, "name": name, "nickName": nick, "email": email, "isAdmin": is_admin,
        }
        self.passwords[user_id] = password
        self.saved[user_id] = []

    def _add_book(self, book_id, title, author_id, genre_ids, isbn, year, price):
        self.books[book_id] = {
            "id": book_id, "title": title, "authorId": author_id, "genreIds": list(genre_ids),
            "isbn": isbn, "publishYear": year, "price": price,
        }

    def token_for(self, user_id: str) -> str:
        token = self.login_tokens.get(user_id, f"tok-{user_id}")
        self.tokens[token] = user_id
        return token

    # ------------------------- Inspection ------------------------- #
    def calls(self, method: Optional[str] = None, path: Optional[str] = None) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if (method is None or r.method == method) and (path is None or self._path(r) == path)
        ]

    @staticmethod
    def _path(request: httpx.Request) -> str:
        path = request.url.path
        return path[len("/api"):] if path.startswith("/api") else path

    # ------------------------- Serialization ------------------------- #
    def _book_out(self, book: Dict[str, Any]) -> Dict[str, Any]:
        author = self.authors.get(book["authorId"])
        out = dict(book)
        out["authorName"] = f"{author['firstName']} {author['lastName']}" if author else None
        out["genreNames"] = [self.genres[g]["name"] for g in book["genreIds"] if g in self.genres]
        return out

    def _user_out(self, user_id: str) -> Dict[str, Any]:
        out = dict(self.users[user_id])
        out["savedBooks"] = [self._book_out(self.books[b]) for b in self.saved[user_id] if b in self.books]
        return out

    def _book_count(self, author_id: str) -> int:
        return sum(1 for b in self.books.values() if b["authorId"] == author_id)

    # ------------------------- Transport ------------------------- #
    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        method, path = request.method, self._path(request)

        if (method, path) in self.failures:
            status, body = self.failures[(method, path)]
            if isinstance(body, str):
                return httpx.Response(status, text=body)
            return httpx.Response(status, json=body)

        body = json.loads(request.content) if request.content else None
        caller = self._caller(request)

        for pattern, verb, route in self._routes():
            match = re.fullmatch(pattern, path)
            if match and verb == method:
                return route(request, caller, body, *match.groups())
        return httpx.Response(404, json={"message": "Not found"})

    def _caller(self, request: httpx.Request) -> Optional[Dict[str, Any]]:
        header = request.headers.get("Authorization", "")
        if not header.startswith("Bearer "):
            return None
        user_id = self.tokens.get(header[len("Bearer "):])
        return self.users.get(user_id) if user_id else None

    def _routes(self):
        return [
            (r"/User/login", "POST", self._login),
            (r"/User/register", "POST", self._register),
            (r"/User", "GET", self._list_users),
            (r"/User/([^/]+)/saved-books", "GET", self._list_saved),
            (r"/User/([^/]+)/saved-books/([^/]+)", "POST", self._add_saved),
            (r"/User/([^/]+)/saved-books/([^/]+)", "DELETE", self._remove_saved),
            (r"/User/([^/]+)", "GET", self._get_user),
            (r"/User/([^/]+)", "PUT", self._update_user),
            (r"/User/([^/]+)", "DELETE", self._delete_user),
            (r"/Book", "GET", self._list_books),
            (r"/Book/filter", "GET", self._filter_books),
            (r"/Book/by-genre/(\d+)", "GET", self._books_by_genre),
            (r"/Book", "POST", self._create_book),
            (r"/Book/([^/]+)", "GET", self._get_book),
            (r"/Book/([^/]+)", "PUT", self._update_book),
            (r"/Book/([^/]+)", "DELETE", self._delete_book),
            (r"/Author", "GET", self._list_authors),
            (r"/Author/with-book-count", "GET", self._authors_with_count),
            (r"/Author/([^/]+)/books", "GET", self._author_books),
            (r"/Author", "POST", self._create_author),
            (r"/Author/([^/]+)", "GET", self._get_author),
            (r"/Author/([^/]+)", "PUT", self._update_author),
            (r"/Author/([^/]+)", "DELETE", self._delete_author),
            (r"/Genre", "GET", self._list_genres),
            (r"/Genre", "POST", self._create_genre),
            (r"/Genre/(\d+)", "GET", self._get_genre),
            (r"/Genre/(\d+)", "PUT", self._update_genre),
            (r"/Genre/(\d+)", "DELETE", self._delete_genre),
        ]

    # ------------------------- Guards ------------------------- #
    @staticmethod
    def _unauthorized():
        return httpx.Response(401, json={"message": "Unauthorized"})

    @staticmethod
    def _forbidden():
        return httpx.Response(403, json={"message": "Forbidden"})

    def _admin_guard(self, caller):
        if caller is None:
            return self._unauthorized()
        if not caller["isAdmin"]:
            return self._forbidden()
        return None

    def _self_or_admin_guard(self, caller, user_id):
        if caller is None:
            return self._unauthorized()
        if not caller["isAdmin"] and caller["id"] != user_id:
            return self._forbidden()
        return None

    # ------------------------- Users ------------------------- #
    def _login(self, request, caller, body):
        email = (body or {}).get("email", "").lower()
        for user_id, user in self.users.items():
            if user["email"].lower() == email and self.passwords[user_id] == body.get("password"):
                return httpx.Response(200, json={"token": self.token_for(user_id), "user": self._user_out(user_id)})
        return httpx.Response(401, json={"message": "Invalid email or password"})

    def _register(self, request, caller, body):
        if any(u["email"].lower() == body["email"].lower() for u in self.users.values()):
            return httpx.Response(409, json={"message": "User with this email already exists"})
        user_id = f"u-{uuid.uuid4().hex[:8]}"
        self._add_user(user_id, body["name"], body["nickName"], body["email"], body["password"], body.get("isAdmin", False))
        # The service echoes the password back; clients must drop it
        return httpx.Response(201, json={**self._user_out(user_id), "password": body["password"]})

    def _list_users(self, request, caller, body):
        return self._admin_guard(caller) or httpx.Response(200, json=[self._user_out(u) for u in self.users])

    def _get_user(self, request, caller, body, user_id):
        denied = self._self_or_admin_guard(caller, user_id)
        if denied:
            return denied
        if user_id not in self.users:
            return httpx.Response(404, json={"message": "User not found"})
        return httpx.Response(200, json=self._user_out(user_id))

    def _update_user(self, request, caller, body, user_id):
        denied = self._self_or_admin_guard(caller, user_id)
        if denied:
            return denied
        user = self.users[user_id]
        user.update({"name": body["name"], "nickName": body["nickName"], "email": body["email"], "isAdmin": body["isAdmin"]})
        self.passwords[user_id] = body["password"]
        return httpx.Response(200, json=self._user_out(user_id))

    def _delete_user(self, request, caller, body, user_id):
        denied = self._admin_guard(caller)
        if denied:
            return denied
        self.users.pop(user_id, None)
        return httpx.Response(200, json={"message": "User deleted"})

    def _list_saved(self, request, caller, body, user_id):
        denied = self._self_or_admin_guard(caller, user_id)
        if denied:
            return denied
        return httpx.Response(200, json=[self._book_out(self.books[b]) for b in self.saved[user_id]])

    def _add_saved(self, request, caller, body, user_id, book_id):
        denied = self._self_or_admin_guard(caller, user_id)
        if denied:
            return denied
        if book_id in self.saved[user_id]:
            return httpx.Response(400, json={"message": "Book already saved"})
        self.saved[user_id].append(book_id)
        return httpx.Response(200, json=self._book_out(self.books[book_id]))

    def _remove_saved(self, request, caller, body, user_id, book_id):
        denied = self._self_or_admin_guard(caller, user_id)
        if denied:
            return denied
        self.saved[user_id].remove(book_id)
        return httpx.Response(200, json={"message": "Book removed from saved books"})

    # ------------------------- Books ------------------------- #
    def _list_books(self, request, caller, body):
        return httpx.Response(200, json=[self._book_out(b) for b in self.books.values()])

    def _filter_books(self, request, caller, body):
        params = request.url.params
        books = list(self.books.values())
        if params.get("searchTitle"):
            books = [b for b in books if params["searchTitle"].lower() in b["title"].lower()]
        if params.get("filterAuthorId"):
            books = [b for b in books if b["authorId"] == params["filterAuthorId"]]
        if params.get("filterGenreId"):
            books = [b for b in books if int(params["filterGenreId"]) in b["genreIds"]]
        sort_by = params.get("sortBy")
        if sort_by:
            key = "title" if sort_by == "title" else "publishYear"
            books.sort(key=lambda b: b[key], reverse=params.get("sortOrder") == "desc")
        return httpx.Response(200, json=[self._book_out(b) for b in books])

    def _books_by_genre(self, request, caller, body, genre_id):
        return httpx.Response(200, json=[self._book_out(b) for b in self.books.values() if int(genre_id) in b["genreIds"]])

    def _get_book(self, request, caller, body, book_id):
        if book_id not in self.books:
            return httpx.Response(404, json={"message": "Book not found"})
        return httpx.Response(200, json=self._book_out(self.books[book_id]))

    def _create_book(self, request, caller, body):
        denied = self._admin_guard(caller)
        if denied:
            return denied
        book_id = f"b-{uuid.uuid4().hex[:8]}"
        self.books[book_id] = {"id": book_id, **body}
        return httpx.Response(201, json=self._book_out(self.books[book_id]))

    def _update_book(self, request, caller, body, book_id):
        denied = self._admin_guard(caller)
        if denied:
            return denied
        self.books[book_id].update(body)
        return httpx.Response(200, json=self._book_out(self.books[book_id]))

    def _delete_book(self, request, caller, body, book_id):
        denied = self._admin_guard(caller)
        if denied:
            return denied
        self.books.pop(book_id, None)
        return httpx.Response(200, json={"message": "Book deleted"})

    # ------------------------- Authors ------------------------- #
    def _list_authors(self, request, caller, body):
        return httpx.Response(200, json=list(self.authors.values()))

    def _authors_with_count(self, request, caller, body):
        return httpx.Response(200, json=[{**a, "bookCount": self._book_count(a["id"])} for a in self.authors.values()])

    def _get_author(self, request, caller, body, author_id):
        if author_id not in self.authors:
            return httpx.Response(404, json={"message": "Author not found"})
        return httpx.Response(200, json=self.authors[author_id])

    def _author_books(self, request, caller, body, author_id):
        return httpx.Response(200, json=[self._book_out(b) for b in self.books.values() if b["authorId"] == author_id])

    def _create_author(self, request, caller, body):
        denied = self._admin_guard(caller)
        if denied:
            return denied
        author_id = f"a-{uuid.uuid4().hex[:8]}"
        self.authors[author_id] = {
            "id": author_id, "firstName": body["FirstName"], "lastName": body["LastName"], "birthDate": body["BirthDate"],
        }
        return httpx.Response(201, json=self.authors[author_id])

    def _update_author(self, request, caller, body, author_id):
        denied = self._admin_guard(caller)
        if denied:
            return denied
        self.authors[author_id].update(
            {"firstName": body["FirstName"], "lastName": body["LastName"], "birthDate": body["BirthDate"]}
        )
        return httpx.Response(200, json=self.authors[author_id])

    def _delete_author(self, request, caller, body, author_id):
        denied = self._admin_guard(caller)
        if denied:
            return denied
        if self._book_count(author_id):
            return httpx.Response(409, json={"message": "Author has books"})
        self.authors.pop(author_id, None)
        return httpx.Response(200, json={"message": "Author deleted"})

    # ------------------------- Genres ------------------------- #
    def _list_genres(self, request, caller, body):
        return httpx.Response(200, json=list(self.genres.values()))

    def _get_genre(self, request, caller, body, genre_id):
        return httpx.Response(200, json=self.genres[int(genre_id)])

    def _create_genre(self, request, caller, body):
        denied = self._admin_guard(caller)
        if denied:
            return denied
        genre_id = max(self.genres) + 1
        self.genres[genre_id] = {"id": genre_id, **body}
        return httpx.Response(201, json=self.genres[genre_id])

    def _update_genre(self, request, caller, body, genre_id):
        denied = self._admin_guard(caller)
        if denied:
            return denied
        self.genres[int(genre_id)].update(body)
        return httpx.Response(200, json=self.genres[int(genre_id)])

    def _delete_genre(self, request, caller, body, genre_id):
        denied = self._admin_guard(caller)
        if denied:
            return denied
        self.genres.pop(int(genre_id), None)
        return httpx.Response(200, json={"message": "Genre deleted"})


@pytest.fixture
def fake_api():
    return FakeCatalogApi()


@pytest.fixture
def session_file(tmp_path):
    # Each test gets its own session file
    return tmp_path / "session.json"


@pytest.fixture
def make_library(fake_api, session_file):
    def _make(path=None, check_token_expiry=True) -> Library:
        session = Session(SessionStorage(path or session_file), check_token_expiry=check_token_expiry)
        return Library(session=session, base_url=BASE_URL, transport=httpx.MockTransport(fake_api.handler))
    return _make


@pytest.fixture
def lib(make_library):
    return make_library()
