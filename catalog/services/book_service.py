import logging
from typing import List, Optional, Union

from catalog.models import Book, BookFilter
from catalog.services.base import Repository

logger = logging.getLogger(__name__)


class BookRepository(Repository[Book]):
    """Books. Filtering and sorting are done by the service, never re-sorted here."""

    resource = "Book"
    model = Book
    singular = "book"
    plural = "books"

    async def filter(self, criteria: Optional[BookFilter] = None) -> List[Book]:
        """Books matching `criteria`; an empty filter is the same as list()."""
        if criteria is None or criteria.is_empty:
            return await self.list()

        fallback = "Failed to filter books"
        data = await self.client.get("/Book/filter", fallback=fallback, params=criteria.to_params())
        books = self._parse_list(data, fallback)
        logger.info(f"Filter {criteria.to_params()} returned {len(books)} books")
        return books

    async def search_by_title(self, title: str) -> List[Book]:
        return await self.filter(BookFilter(search_title=title))

    async def by_genre(self, genre_id: Union[int, str]) -> List[Book]:
        fallback = "Failed to fetch books by genre"
        data = await self.client.get(f"/Book/by-genre/{genre_id}", fallback=fallback)
        return self._parse_list(data, fallback)
