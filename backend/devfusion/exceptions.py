from __future__ import annotations


class DevFusionError(RuntimeError):
    """Base error for collaboration operations."""


class AuthenticationError(DevFusionError):
    """Raised when a credential is missing, malformed, expired or unverifiable."""


class PermissionDeniedError(DevFusionError):
    """Raised when an authenticated user may not act on a resource."""


class NotFoundError(DevFusionError):
    """Raised when a referenced record does not exist."""


class InvalidRequestError(DevFusionError):
    """Raised when a request is well-formed but violates a business rule."""


class RateLimitError(DevFusionError):
    """Raised when the AI cooldown or an upstream quota rejects a call."""

    def __init__(self, message: str = "Please wait a moment before asking again.", *, retry_after: float = 0.0):
        super().__init__(message)
        self.retry_after = retry_after


class PersistenceError(DevFusionError):
    """Raised when a store write fails."""


class GenerationError(DevFusionError):
    """Raised when the AI capability fails or returns a reply that breaks the schema."""
