"""Event gateway: authenticate, authorize, rate-limit and validate events.

Every failure here is a SecurityError and propagates to the caller.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from careerxp.auth.rate_limit import DEFAULT_RATE_LIMIT, EVENT_RATE_LIMITS, RateLimitStore
from careerxp.gamification.constants import EventType
from careerxp.gamification.exceptions import Forbidden, InvalidData, RateLimited, Unauthorized

logger = structlog.get_logger()

# Fields each event type must carry as a non-empty string
REQUIRED_EVENT_FIELDS: dict[EventType, str] = {
    EventType.CV_UPLOADED: "cv_id",
    EventType.CV_ANALYSIS_COMPLETED: "analysis_id",
    EventType.CV_IMPROVEMENT_APPLIED: "suggestion_id",
    EventType.APPLICATION_SUBMITTED: "application_id",
    EventType.SKILL_ADDED: "skill_name",
    EventType.CHALLENGE_COMPLETED: "challenge_id",
}


class AuthGateway:
    """Front door of the event pipeline."""

    def __init__(
        self,
        store: RateLimitStore,
        limits: Mapping[str, tuple[int, int]] | None = None,
    ) -> None:
        self.store = store
        self.limits = dict(EVENT_RATE_LIMITS if limits is None else limits)

    async def authorize(
        self,
        event_type: EventType,
        event_data: Mapping[str, Any],
        caller_id: str | None,
    ) -> str:
        """Run every check in order; returns the authenticated developer id.

        Raises:
            Unauthorized: no caller identity.
            Forbidden: caller differs from the event's target developer.
            RateLimited: the (developer, event type) window is full.
            InvalidData: the payload is missing a required field.
        """
        if not caller_id:
            logger.warning("gamification_auth_failure", event_type=event_type.value)
            raise Unauthorized()

        target = event_data.get("user_id")
        if target != caller_id:
            logger.warning(
                "gamification_forbidden",
                event_type=event_type.value,
                caller_id=caller_id,
                target_id=target,
            )
            msg = f"User {caller_id} cannot trigger events for user {target}"
            raise Forbidden(msg)

        await self.check_rate_limit(caller_id, event_type)
        self.validate_event_data(event_type, event_data)
        return caller_id

    async def check_rate_limit(self, developer_id: str, event_type: EventType) -> None:
        """Fixed-window limit per (developer, event type)."""
        window_seconds, max_hits = self.limits.get(event_type, DEFAULT_RATE_LIMIT)
        allowed, retry_after = await self.store.hit(
            f"{developer_id}:{event_type.value}", window_seconds, max_hits
        )
        if not allowed:
            logger.warning(
                "gamification_rate_limited",
                developer_id=developer_id,
                event_type=event_type.value,
                max_hits=max_hits,
                window_seconds=window_seconds,
                retry_after=retry_after,
            )
            raise RateLimited(event_type.value, retry_after)

    def validate_event_data(self, event_type: EventType, event_data: Mapping[str, Any]) -> None:
        """Structural checks on the payload."""
        user_id = event_data.get("user_id")
        if not isinstance(user_id, str) or not user_id:
            raise self._invalid(event_type, "user_id is required and must be a string")

        field = REQUIRED_EVENT_FIELDS.get(event_type)
        if field is not None:
            value = event_data.get(field)
            if not isinstance(value, str) or not value:
                raise self._invalid(event_type, f"{event_type.value} event requires valid {field}")

    def _invalid(self, event_type: EventType, message: str) -> InvalidData:
        logger.warning("gamification_invalid_data", event_type=event_type.value, reason=message)
        return InvalidData(message)

    async def sweep(self) -> int:
        """Remove expired rate-limit windows."""
        removed = await self.store.sweep_expired()
        if removed:
            logger.debug("rate_limit_windows_swept", removed=removed)
        return removed
