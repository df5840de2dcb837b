"""
Base Contracts and Shared Types

Foundational types used by every layer of the client.
Errors are enumerated, recorded as immutable data, and carried
through the call stack by a small exception hierarchy.

BOUNDARY ENFORCEMENT:
=====================
- Remote client raises ONLY ClientError subclasses
- Every ClientError carries an immutable Error record
- No layer raises ad-hoc values
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple
from enum import Enum, auto


# =============================================================================
# ERROR STATES (Explicit, never silent)
# =============================================================================

class ErrorCode(Enum):
    """
    Explicit error codes for deterministic error handling.
    Every failure a caller can observe is enumerated here.
    """
    # Remote errors
    NETWORK_FAILURE = auto()
    UNAUTHENTICATED = auto()
    FORBIDDEN = auto()
    NOT_FOUND = auto()
    VALIDATION_FAILED = auto()
    SERVER_ERROR = auto()
    MALFORMED_RESPONSE = auto()

    # Interaction errors
    VOTE_PENDING = auto()
    VOTE_SUPERSEDED = auto()


@dataclass(frozen=True)
class Error:
    """
    Immutable error representation with full context.
    Errors are data - they can be stored, logged and compared.
    """
    code: ErrorCode
    message: str
    timestamp: datetime
    status_code: Optional[int] = None
    context: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    @staticmethod
    def create(
        code: ErrorCode,
        message: str,
        status_code: Optional[int] = None
    ) -> Error:
        return Error(
            code=code,
            message=message,
            timestamp=datetime.now(timezone.utc),
            status_code=status_code
        )

    def with_context(self, key: str, value: str) -> Error:
        """Return new Error with additional context (immutable)."""
        return Error(
            code=self.code,
            message=self.message,
            timestamp=self.timestamp,
            status_code=self.status_code,
            context=self.context + ((key, value),)
        )


# =============================================================================
# EXCEPTION HIERARCHY
# =============================================================================

class ClientError(Exception):
    """Base class for every failure surfaced by the client."""

    code: ErrorCode = ErrorCode.SERVER_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.error = Error.create(self.code, message, status_code)

    @property
    def message(self) -> str:
        return self.error.message

    @property
    def status_code(self) -> Optional[int]:
        return self.error.status_code


class NetworkFailure(ClientError):
    """No response was received (connect error, timeout, reset)."""
    code = ErrorCode.NETWORK_FAILURE


class Unauthenticated(ClientError):
    """401, or a write attempted without a credential."""
    code = ErrorCode.UNAUTHENTICATED


class Forbidden(ClientError):
    """403 - the server refused the action for this user."""
    code = ErrorCode.FORBIDDEN


class NotFound(ClientError):
    code = ErrorCode.NOT_FOUND


class ValidationFailed(ClientError):
    """400/422 with field-level messages."""
    code = ErrorCode.VALIDATION_FAILED

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        field_errors: Optional[Dict[str, Tuple[str, ...]]] = None
    ):
        super().__init__(message, status_code)
        self.field_errors: Dict[str, Tuple[str, ...]] = dict(field_errors or {})


class ServerError(ClientError):
    code = ErrorCode.SERVER_ERROR


class MalformedResponse(ClientError):
    """2xx response that cannot be turned into a complete entity."""
    code = ErrorCode.MALFORMED_RESPONSE


class VotePending(ClientError):
    """A different vote for the same post is still awaiting the server."""
    code = ErrorCode.VOTE_PENDING


class VoteSuperseded(ClientError):
    """The in-flight vote was cancelled by a newer intent."""
    code = ErrorCode.VOTE_SUPERSEDED


# Errors that must always reach the view layer.
SURFACED_ERRORS = (Unauthenticated, Forbidden, ServerError, MalformedResponse)

# Errors a repository may absorb into a fallback result.
FALLBACK_ERRORS = (NotFound, ValidationFailed, NetworkFailure)
