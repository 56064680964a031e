import logging
from enum import Enum
from typing import Optional

from catalog.errors import PolicyDenied
from catalog.models import Author, UserPayload
from catalog.session import Role, Session

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    LIST = "list"
    GET = "get"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    LIST_SAVED = "list_saved"
    ADD_SAVED = "add_saved"
    REMOVE_SAVED = "remove_saved"


class EntityType(str, Enum):
    BOOK = "book"
    AUTHOR = "author"
    GENRE = "genre"
    USER = "user"


READ_OPERATIONS = frozenset({Operation.LIST, Operation.GET})
WRITE_OPERATIONS = frozenset({Operation.CREATE, Operation.UPDATE, Operation.DELETE})
SAVED_BOOK_OPERATIONS = frozenset({Operation.LIST_SAVED, Operation.ADD_SAVED, Operation.REMOVE_SAVED})
CATALOG_ENTITIES = frozenset({EntityType.BOOK, EntityType.AUTHOR, EntityType.GENRE})

ADMIN_ONLY_MESSAGE = "Access denied. Admin only."
LOGIN_REQUIRED_MESSAGE = "Please log in to continue."
OWNER_ONLY_MESSAGE = "Access denied. You can only manage your own account."


def can_perform(
    role: Optional[Role],
    operation: Operation,
    entity_type: EntityType,
    actor_id: Optional[str] = None,
    target_id: Optional[str] = None,
) -> bool:
    """Pure role check. `role` is None for an anonymous caller."""
    if role is None:
        return False
    if role is Role.ADMIN:
        return True

    is_self = actor_id is not None and actor_id == target_id

    if entity_type in CATALOG_ENTITIES:
        return operation in READ_OPERATIONS

    # Standard identity on User records: only its own profile and saved books
    if operation in SAVED_BOOK_OPERATIONS:
        return is_self
    if operation in (Operation.GET, Operation.UPDATE):
        return is_self
    return False


class AccessPolicy:
    """Role and invariant checks run before any repository call."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def allows(self, operation: Operation, entity_type: EntityType, target_id: Optional[str] = None) -> bool:
        return can_perform(self.session.role, operation, entity_type, self.session.user_id, target_id)

    def require(self, operation: Operation, entity_type: EntityType, target_id: Optional[str] = None) -> None:
        if self.allows(operation, entity_type, target_id):
            return

        if not self.session.is_authenticated:
            message = LOGIN_REQUIRED_MESSAGE
        elif target_id is not None and entity_type is EntityType.USER and operation not in (
            Operation.LIST, Operation.CREATE, Operation.DELETE
        ):
            message = OWNER_ONLY_MESSAGE
        else:
            message = ADMIN_ONLY_MESSAGE

        logger.warning(
            f"Denied {operation.value} on {entity_type.value} for "
            f"{self.session.user_id or 'anonymous'}: {message}"
        )
        raise PolicyDenied(message)

    def check_author_delete(self, author: Author) -> None:
        """An author that still has books cannot be deleted."""
        self.require(Operation.DELETE, EntityType.AUTHOR, author.id)
        if author.has_books:
            message = (
                f"Cannot delete author with {author.book_count} book(s). "
                "Please remove all books first."
            )
            logger.warning(f"Denied delete of author {author.id}: {message}")
            raise PolicyDenied(message)

    def check_user_delete(self, user_id: str) -> None:
        """Admins delete users, but never the account they are logged in with."""
        self.require(Operation.DELETE, EntityType.USER, user_id)
        if user_id == self.session.user_id:
            logger.warning(f"Denied self-delete for {user_id}")
            raise PolicyDenied("You cannot delete your own account.")

    def check_user_update(self, user_id: str, payload: UserPayload) -> None:
        self.require(Operation.UPDATE, EntityType.USER, user_id)
        if payload.is_admin and self.session.role is not Role.ADMIN:
            logger.warning(f"Denied admin self-promotion for {user_id}")
            raise PolicyDenied(ADMIN_ONLY_MESSAGE)
