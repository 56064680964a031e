from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel, to_pascal

from utils.validators import parse_date


class CatalogModel(BaseModel):
    """Base for everything exchanged with the catalog service (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]):
        return cls.model_validate(data)


# --- Entities ---

class Book(CatalogModel):
    id: str
    title: str
    author_id: str
    author_name: Optional[str] = None
    isbn: str = ""
    publish_year: Optional[int] = None
    price: float = 0.0
    genre_ids: List[int] = Field(default_factory=list)
    genre_names: List[str] = Field(default_factory=list)

    @field_validator("isbn", mode="before")
    @classmethod
    def _blank_isbn(cls, value: Any) -> Any:
        return value or ""

    @field_validator("genre_ids", "genre_names", mode="before")
    @classmethod
    def _empty_list(cls, value: Any) -> Any:
        return value or []

    def __str__(self) -> str:
        return f"{self.title} by {self.author_name or self.author_id}"


class Author(CatalogModel):
    id: str
    first_name: str
    last_name: str
    birth_date: str
    # Attached by /Author/with-book-count only
    book_count: Optional[int] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def has_books(self) -> bool:
        return (self.book_count or 0) > 0


class Genre(CatalogModel):
    id: int
    name: str
    description: Optional[str] = None

    def matches_name(self, name: str) -> bool:
        return self.name.strip().lower() == name.strip().lower()


class User(CatalogModel):
    """Identity as returned by the service. The password never lives here."""

    id: str
    name: str
    nick_name: str = ""
    email: str
    is_admin: bool = False
    saved_books: List[Book] = Field(default_factory=list)

    @field_validator("saved_books", mode="before")
    @classmethod
    def _no_saved_books(cls, value: Any) -> Any:
        return value or []


class LoginResult(CatalogModel):
    token: str
    user: User


class Confirmation(CatalogModel):
    message: str = ""


# --- Write payloads ---

class BookPayload(CatalogModel):
    title: str
    author_id: str
    genre_ids: List[int]
    isbn: str = ""
    publish_year: Optional[int] = None
    price: float

    @classmethod
    def from_form(cls, form: Mapping[str, Any]) -> "BookPayload":
        """Build the payload from already-validated form input."""
        year = form.get("publish_year")
        if isinstance(year, str):
            year = int(year.strip()) if year.strip() else None
        return cls(
            title=str(form["title"]).strip(),
            author_id=str(form["author_id"]).strip(),
            genre_ids=[int(g) for g in form.get("genre_ids") or []],
            isbn=(form.get("isbn") or "").strip(),
            publish_year=year,
            price=float(form["price"]),
        )


class AuthorPayload(CatalogModel):
    # The Author endpoints bind PascalCase keys
    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True)

    first_name: str
    last_name: str
    birth_date: datetime

    @classmethod
    def from_form(cls, form: Mapping[str, Any]) -> "AuthorPayload":
        return cls(
            first_name=str(form["first_name"]).strip(),
            last_name=str(form["last_name"]).strip(),
            birth_date=parse_date(form["birth_date"]),
        )


class GenrePayload(CatalogModel):
    name: str
    description: Optional[str] = None

    @classmethod
    def from_form(cls, form: Mapping[str, Any]) -> "GenrePayload":
        description = (form.get("description") or "").strip()
        return cls(name=str(form["name"]).strip(), description=description or None)


class UserPayload(CatalogModel):
    name: str
    nick_name: str
    email: str
    password: str
    is_admin: bool = False

    @classmethod
    def from_form(cls, form: Mapping[str, Any]) -> "UserPayload":
        return cls(
            name=str(form["name"]).strip(),
            nick_name=str(form["nick_name"]).strip(),
            email=str(form["email"]).strip(),
            password=str(form["password"]),
            is_admin=bool(form.get("is_admin", False)),
        )


# --- Queries ---

class BookFilter(CatalogModel):
    """Book filter criteria. Filtering and ordering happen on the server."""

    search_title: Optional[str] = None
    author_id: Optional[str] = None
    genre_id: Optional[int] = None
    sort_by: Optional[str] = None
    sort_order: Optional[str] = None

    def to_params(self) -> Dict[str, str]:
        """Query parameters for /Book/filter; empty criteria are left out."""
        params: Dict[str, str] = {}
        if self.search_title:
            params["searchTitle"] = self.search_title
        if self.author_id:
            params["filterAuthorId"] = self.author_id
        if self.genre_id is not None:
            params["filterGenreId"] = str(self.genre_id)
        if self.sort_by:
            params["sortBy"] = self.sort_by
        if self.sort_order:
            params["sortOrder"] = self.sort_order
        return params

    @property
    def is_empty(self) -> bool:
        return not self.to_params()
