"""
Session model: who is logged in, with which token, and where that is persisted.

A single Session instance is created per process and handed to every
collaborator that needs identity or role (HTTP client, access policy,
saved-books manager). Only SessionStorage touches the persisted keys.
"""

import json
import logging
import time
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import jwt
from pydantic import ValidationError as ModelValidationError

from catalog.errors import SessionExpired, StorageCorruption
from catalog.models import User

logger = logging.getLogger(__name__)


class Role(str, Enum):
    ADMIN = "admin"
    STANDARD = "standard"


class SessionState(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"


# ------------------------- Token helpers ------------------------- #

def decode_token(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """Return the JWT payload, or None for anything that is not a readable JWT."""
    if not token:
        return None
    # The service owns the signing key; the payload is only read for its exp claim
    try:
        return jwt.decode(token, options={"verify_signature": False, "verify_exp": False})
    except jwt.InvalidTokenError:
        return None


def is_token_expired(token: Optional[str], now: Optional[float] = None) -> bool:
    """True only for a JWT whose exp claim lies in the past. Opaque tokens never expire here."""
    payload = decode_token(token)
    if not payload:
        return False
    exp = payload.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return False
    current = time.time() if now is None else now
    return exp < current


# ------------------------- Persistence ------------------------- #

class SessionStorage:
    """JSON key-value file holding the serialized identity and the bearer token."""

    def __init__(self, path: Union[str, Path], namespace: str = "library-ui") -> None:
        self.path = Path(path)
        self.user_key = f"{namespace}.currentUser"
        self.token_key = f"{namespace}.authToken"

    def _read_entries(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageCorruption(f"Could not read session file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageCorruption(f"Session file {self.path} is not a key-value object")
        return data

    def _read_entries_or_empty(self) -> Dict[str, Any]:
        try:
            return self._read_entries()
        except StorageCorruption:
            return {}

    def _write_entries(self, entries: Dict[str, Any]) -> None:
        try:
            if not entries:
                if self.path.exists():
                    self.path.unlink()
                return
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(entries, f, indent=2, ensure_ascii=False)
        except OSError as e:
            logger.error(f"Failed to write session file {self.path}: {e}")

    def load(self) -> Optional[Tuple[User, str]]:
        """Return (user, token), None when nothing is stored, or raise StorageCorruption."""
        entries = self._read_entries()
        raw_user = entries.get(self.user_key)
        token = entries.get(self.token_key)

        if raw_user is None and token is None:
            return None
        if not isinstance(raw_user, str) or not isinstance(token, str) or not token:
            raise StorageCorruption("Incomplete session record")

        try:
            user = User.model_validate_json(raw_user)
        except ModelValidationError as e:
            raise StorageCorruption(f"Stored identity is unreadable: {e}") from e
        return user, token

    def save(self, user: User, token: str) -> None:
        entries = self._read_entries_or_empty()
        entries[self.user_key] = user.model_dump_json(by_alias=True)
        entries[self.token_key] = token
        self._write_entries(entries)

    def clear(self) -> None:
        entries = self._read_entries_or_empty()
        entries.pop(self.user_key, None)
        entries.pop(self.token_key, None)
        self._write_entries(entries)


# ------------------------- Session ------------------------- #

SessionListener = Callable[[SessionState], None]


class Session:
    """Anonymous / Authenticated state machine around the current identity."""

    def __init__(self, storage: Optional[SessionStorage] = None, check_token_expiry: bool = True) -> None:
        self.storage = storage
        self.check_token_expiry = check_token_expiry
        self._user: Optional[User] = None
        self._token: Optional[str] = None
        self._listeners: List[SessionListener] = []

    # --- read-only view ---
    @property
    def user(self) -> Optional[User]:
        return self._user

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def state(self) -> SessionState:
        if self._user is not None and self._token:
            return SessionState.AUTHENTICATED
        return SessionState.ANONYMOUS

    @property
    def is_authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED

    @property
    def role(self) -> Optional[Role]:
        if not self.is_authenticated:
            return None
        return Role.ADMIN if self._user.is_admin else Role.STANDARD

    @property
    def user_id(self) -> Optional[str]:
        return self._user.id if self.is_authenticated else None

    def subscribe(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        state = self.state
        for listener in list(self._listeners):
            listener(state)

    # --- transitions ---
    def restore(self, now: Optional[float] = None) -> SessionState:
        """Load the persisted identity. Corrupt or expired records leave us anonymous."""
        self._user, self._token = None, None
        if self.storage is None:
            return self.state

        try:
            record = self.storage.load()
        except StorageCorruption as e:
            logger.warning(f"Discarding unreadable session record: {e}")
            self.storage.clear()
            record = None

        if record:
            user, token = record
            if self.check_token_expiry and is_token_expired(token, now):
                logger.info("Stored token has expired, starting anonymous")
                self.storage.clear()
            else:
                self._user, self._token = user, token
                logger.info(f"Session restored for {user.email}")

        self._notify()
        return self.state

    def start(self, user: User, token: str) -> None:
        if not token:
            raise ValueError("A bearer token is required to start a session.")
        self._user, self._token = user, token
        if self.storage is not None:
            self.storage.save(user, token)
        logger.info(f"Session started for {user.email} ({self.role.value})")
        self._notify()

    def end(self) -> None:
        was_authenticated = self.is_authenticated
        self._user, self._token = None, None
        if self.storage is not None:
            self.storage.clear()
        if was_authenticated:
            logger.info("Session ended")
        self._notify()

    def invalidate(self, reason: str) -> None:
        """Forced logout after the service rejected our credentials."""
        if self.is_authenticated:
            logger.warning(f"Session invalidated: {reason}")
        self.end()

    def update_identity(self, user: User) -> None:
        """Replace the stored identity after a self-edit; the token is kept."""
        if not self.is_authenticated or user.id != self._user.id:
            return
        self._user = user
        if self.storage is not None:
            self.storage.save(user, self._token)
        self._notify()

    def bearer_token(self, now: Optional[float] = None) -> Optional[str]:
        """Token for an outgoing call; ends the session first if the JWT already expired."""
        if not self.is_authenticated:
            return None
        if self.check_token_expiry and is_token_expired(self._token, now):
            self.invalidate("token expired")
            raise SessionExpired("Your session has expired. Please log in again.")
        return self._token
