"""
Domain errors raised by the marketplace services.

The HTTP layer maps these onto status codes; nothing here knows about HTTP.
"""

from __future__ import annotations


class MarketplaceError(Exception):
    """Base class for all marketplace errors."""


class NotFoundError(MarketplaceError):
    def __init__(self, collection: str, doc_id: str):
        super().__init__(f"{collection}/{doc_id} not found")
        self.collection = collection
        self.doc_id = doc_id


class PermissionDeniedError(MarketplaceError):
    pass


class ValidationError(MarketplaceError):
    """Invalid input. `field` names the offending form field, when there is one."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class UsernameTakenError(ValidationError):
    def __init__(self, username: str):
        super().__init__(
            "Username already taken. Please choose another one.", field="username"
        )
        self.username = username


class InvalidTransitionError(MarketplaceError):
    def __init__(self, request_id: str, current: str, target: str):
        super().__init__(
            f"Request {request_id} cannot move from '{current}' to '{target}'"
        )
        self.request_id = request_id
        self.current = current
        self.target = target


class DocumentSchemaError(MarketplaceError):
    """A stored document does not match the record type of its collection."""


class AuthError(MarketplaceError):
    """The auth provider rejected the credentials or the token."""
