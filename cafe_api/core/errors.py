"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    hint: str
    missing_fields: list[str]
    invalid_fields: list[str]
    allowed_values: list[str]
    search_id: str
    status: str
    place_id: str
    retry_after: float
    provider: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class AuthenticationAppError(AppError):
    """Raised when a valid bearer credential is required but absent."""


class NotFoundAppError(AppError):
    """Raised when no record exists for the requested key."""


class InvalidTransitionAppError(AppError):
    """Raised when a search lifecycle record is already terminal."""


class UpstreamAppError(AppError):
    """Raised when a third-party call (LLM, social search) fails."""


class StorageAppError(AppError):
    """Raised when the persistence layer or counter store is unreachable."""
