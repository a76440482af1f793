"""Gamification error taxonomy.

Security errors always propagate to the caller. Award validation errors
reject a single award. Ledger conflicts mean a race was correctly
prevented by the store and are treated as no-ops by callers.
"""

from __future__ import annotations


class GamificationError(Exception):
    """Base class for all gamification errors."""


# --- Security (surfaced, never suppressed) ---


class SecurityError(GamificationError):
    """Raised by the event gateway; never swallowed by the pipeline."""


class Unauthorized(SecurityError):
    """No valid session for the caller."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class Forbidden(SecurityError):
    """Authenticated caller attempted to act on another developer."""

    def __init__(self, message: str = "Cannot trigger events for another user") -> None:
        super().__init__(message)


class RateLimited(SecurityError):
    """Event type exceeded its per-developer window."""

    def __init__(self, event_type: str, retry_after: int) -> None:
        self.event_type = event_type
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded for {event_type}. Retry after {retry_after}s")


class InvalidData(SecurityError):
    """Event payload failed structural validation."""


# --- Award validation ---


class AwardValidationError(GamificationError):
    """An award was rejected before touching the ledger."""


class InvalidAmount(AwardValidationError):
    """Amount is negative or otherwise not acceptable."""


class ExceedsSourceMaximum(AwardValidationError):
    """Amount is above the configured maximum for its source."""

    def __init__(self, source: str, amount: int, maximum: int) -> None:
        self.source = source
        self.amount = amount
        self.maximum = maximum
        super().__init__(f"{source} award of {amount} exceeds maximum {maximum}")


class MissingSourceId(AwardValidationError):
    """Source is per-object and requires a source id."""

    def __init__(self, source: str) -> None:
        self.source = source
        super().__init__(f"{source} requires a source_id")


# --- Ledger consistency ---


class LedgerConflict(GamificationError):
    """The store rejected a write because of a uniqueness constraint."""


class DuplicateAward(LedgerConflict):
    """An award with the same idempotency key already exists."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Duplicate award: {key}")


# --- Lookup ---


class DeveloperNotFound(GamificationError):
    """No developer row for the given id."""

    def __init__(self, developer_id: str) -> None:
        self.developer_id = developer_id
        super().__init__(f"Developer not found: {developer_id}")
