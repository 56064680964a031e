import logging
from typing import List, Optional

from catalog.models import Book, Confirmation, LoginResult, User, UserPayload
from catalog.services.base import Repository

logger = logging.getLogger(__name__)


class UserRepository(Repository[User]):
    """Users, authentication and the saved-books relation.

    Everything except login and registration is user-scoped and carries the
    bearer token.
    """

    resource = "User"
    model = User
    singular = "user"
    plural = "users"
    auth_reads = True

    async def login(self, email: str, password: str) -> LoginResult:
        fallback = "Login failed"
        data = await self.client.post(
            "/User/login", fallback=fallback, payload={"email": email, "password": password}
        )
        result = self._parse(data, fallback, LoginResult)
        logger.info(f"Login succeeded for {result.user.email}")
        return result

    async def register(self, payload: UserPayload) -> User:
        fallback = "Registration failed"
        data = await self.client.post("/User/register", fallback=fallback, payload=payload.to_dict())
        user = self._parse(data, fallback)
        logger.info(f"Registered user {user.id}")
        return user

    async def create(self, payload: UserPayload) -> User:
        """Admin-side creation goes through the registration endpoint with the admin token."""
        fallback = "Failed to create user"
        data = await self.client.post("/User/register", fallback=fallback, auth=True, payload=payload.to_dict())
        user = self._parse(data, fallback)
        logger.info(f"Created user {user.id}")
        return user

    # ------------------------- Saved books ------------------------- #
    async def list_saved(self, user_id: str) -> List[Book]:
        fallback = "Failed to fetch saved books"
        data = await self.client.get(f"/User/{user_id}/saved-books", fallback=fallback, auth=True)
        return self._parse_list(data, fallback, Book)

    async def add_saved(self, user_id: str, book_id: str) -> Optional[Book]:
        fallback = "Failed to save book"
        data = await self.client.post(f"/User/{user_id}/saved-books/{book_id}", fallback=fallback, auth=True)
        logger.info(f"User {user_id} saved book {book_id}")
        if isinstance(data, dict) and "title" in data:
            return self._parse(data, fallback, Book)
        return None

    async def remove_saved(self, user_id: str, book_id: str) -> Confirmation:
        fallback = "Failed to remove saved book"
        data = await self.client.delete(f"/User/{user_id}/saved-books/{book_id}", fallback=fallback, auth=True)
        logger.info(f"User {user_id} removed saved book {book_id}")
        return self._confirmation(data)
