"""Fire-and-forget gamification updates over Redis pub/sub."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


class Notifier:
    """Publishes a JSON payload per update. Failures are logged, never raised."""

    def __init__(self, redis: Any, channel: str = "pubsub:gamification_update") -> None:  # noqa: ANN401
        self.redis = redis
        self.channel = channel

    async def publish(self, developer_id: str, event: str, payload: dict[str, Any] | None = None) -> bool:
        if self.redis is None:
            return False
        message = {
            "developer_id": developer_id,
            "event": event,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **(payload or {}),
        }
        try:
            await self.redis.publish(self.channel, json.dumps(message, default=str))
        except Exception:
            logger.warning("Failed to publish gamification update", exc_info=True)
            return False
        return True
