from typing import Dict, Optional


class CatalogError(Exception):
    """Base class for every failure the catalog core reports to its caller."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(CatalogError):
    """One or more form fields failed validation. Never reaches the network."""

    def __init__(self, errors: Dict[str, str]) -> None:
        self.errors = dict(errors)
        summary = "; ".join(f"{field}: {msg}" for field, msg in self.errors.items())
        super().__init__(summary or "Invalid input")


class PolicyDenied(CatalogError):
    """Operation blocked locally by role or invariant check."""


class SessionExpired(PolicyDenied):
    """Stored token expired before the call was made; the session was ended."""


class RemoteFailure(CatalogError):
    """Non-success response or transport failure from the catalog service."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthorizationFailure(RemoteFailure):
    """The service rejected our credentials (401) or our rights (403)."""


class StorageCorruption(CatalogError):
    """Persisted session data could not be parsed."""
