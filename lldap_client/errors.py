"""
Exception hierarchy for the LLDAP client.

Transport failures, remote GraphQL errors and negative mutation
acknowledgements are kept apart so callers can decide which of them are
expected states (e.g. "entity not found") and which are defects.
"""

from typing import Any, Dict, List, Optional


NOT_FOUND_MARKER = 'Entity not found'


class LldapError(Exception):
    """Base exception for all client errors."""
    pass


class TransportError(LldapError):
    """Raised on network failures, non-200 responses and malformed envelopes."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class AuthenticationError(TransportError):
    """Raised when the administrative login fails."""
    pass


class InvalidCredentialsError(LldapError):
    """Raised when a directory bind is rejected because of wrong credentials."""
    pass


class GraphQLError:
    """A single entry of the ``errors`` list of a GraphQL response."""

    def __init__(self, message: str, locations: Optional[List[Any]] = None, path: Optional[List[Any]] = None):
        self.message = message
        self.locations = locations or []
        self.path = path or []

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GraphQLError':
        if not isinstance(data, dict):
            return cls(str(data))
        return cls(
            message=str(data.get('message', '')),
            locations=data.get('locations'),
            path=data.get('path'),
        )

    def __repr__(self):
        return f"GraphQLError({self.message!r})"


class RemoteOperationError(LldapError):
    """Raised when an otherwise successful response carries GraphQL errors."""

    def __init__(self, operation: str, errors: List[GraphQLError]):
        self.operation = operation
        self.errors = errors
        messages = '; '.join(e.message for e in errors) or 'unknown error'
        super().__init__(f"GraphQL operation {operation} returned error: {messages}")

    @property
    def is_not_found(self) -> bool:
        return any(NOT_FOUND_MARKER in e.message for e in self.errors)


class EntityNotFoundError(RemoteOperationError):
    """Raised when the remote service reports the requested entity as absent."""
    pass


class AcknowledgementError(LldapError):
    """Raised when a mutation answers ``ok: false`` without any error."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(message)


def remote_error(operation: str, errors: List[GraphQLError]) -> RemoteOperationError:
    """Build the most specific remote error for ``errors``."""
    if any(NOT_FOUND_MARKER in e.message for e in errors):
        return EntityNotFoundError(operation, errors)
    return RemoteOperationError(operation, errors)


def is_entity_not_found(exc: BaseException) -> bool:
    """Tell whether ``exc`` means the remote entity does not exist."""
    return isinstance(exc, RemoteOperationError) and exc.is_not_found
