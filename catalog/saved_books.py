import logging
from dataclasses import dataclass
from typing import Dict, List

from catalog.models import Book
from catalog.policy import AccessPolicy, EntityType, Operation
from catalog.services.user_service import UserRepository
from catalog.session import Session, SessionState

logger = logging.getLogger(__name__)


@dataclass
class SavedBookChange:
    changed: bool
    message: str


class SavedBooksManager:
    """Local mirror of the user <-> saved book relation.

    Membership is kept per user as an insertion-ordered dict keyed by book id,
    so `is_saved` is O(1). A user's set is loaded from the service the first
    time it is needed; afterwards it only changes once the service has
    confirmed a mutation, or by a full `refresh`.
    """

    def __init__(self, users: UserRepository, policy: AccessPolicy, session: Session) -> None:
        self.users = users
        self.policy = policy
        self._saved: Dict[str, Dict[str, None]] = {}
        session.subscribe(self._on_session_change)

    def _on_session_change(self, state: SessionState) -> None:
        if state is SessionState.ANONYMOUS:
            self.clear()

    def clear(self) -> None:
        self._saved.clear()

    def is_saved(self, user_id: str, book_id: str) -> bool:
        return book_id in self._saved.get(user_id, {})

    def saved_ids(self, user_id: str) -> List[str]:
        return list(self._saved.get(user_id, {}))

    async def refresh(self, user_id: str) -> List[Book]:
        """Replace the local set for `user_id` with the service's current list."""
        self.policy.require(Operation.LIST_SAVED, EntityType.USER, user_id)
        books = await self.users.list_saved(user_id)
        self._saved[user_id] = {book.id: None for book in books}
        logger.info(f"Saved books refreshed for {user_id}: {len(books)}")
        return books

    async def _ensure_loaded(self, user_id: str) -> None:
        if user_id not in self._saved:
            await self.refresh(user_id)

    async def list(self, user_id: str) -> List[Book]:
        return await self.refresh(user_id)

    async def add(self, user_id: str, book_id: str) -> SavedBookChange:
        self.policy.require(Operation.ADD_SAVED, EntityType.USER, user_id)
        await self._ensure_loaded(user_id)
        if self.is_saved(user_id, book_id):
            return SavedBookChange(changed=False, message="Book is already saved.")

        await self.users.add_saved(user_id, book_id)
        self._saved.setdefault(user_id, {})[book_id] = None
        return SavedBookChange(changed=True, message="Book added to saved books.")

    async def remove(self, user_id: str, book_id: str) -> SavedBookChange:
        self.policy.require(Operation.REMOVE_SAVED, EntityType.USER, user_id)
        await self._ensure_loaded(user_id)
        if not self.is_saved(user_id, book_id):
            return SavedBookChange(changed=False, message="Book is not in saved books.")

        await self.users.remove_saved(user_id, book_id)
        self._saved.get(user_id, {}).pop(book_id, None)
        return SavedBookChange(changed=True, message="Book removed from saved books.")
