from typing import List

from catalog.models import Author, Book
from catalog.services.base import Repository


class AuthorRepository(Repository[Author]):
    resource = "Author"
    model = Author
    singular = "author"
    plural = "authors"

    async def list_with_book_count(self) -> List[Author]:
        """Authors with `book_count` attached by the service."""
        fallback = "Failed to fetch authors with book count"
        data = await self.client.get("/Author/with-book-count", fallback=fallback)
        return self._parse_list(data, fallback)

    async def books(self, author_id: str) -> List[Book]:
        fallback = "Failed to fetch author books"
        data = await self.client.get(f"/Author/{author_id}/books", fallback=fallback)
        return self._parse_list(data, fallback, Book)
