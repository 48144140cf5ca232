"""
Event Schema.

Defines the unified ScreenEvent dataclass for everything pushed to screens.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Any


@dataclass
class ScreenEvent:
    """
    Unified event schema for screen notifications.

    The 'entity' field carries event-specific data (order ids, order
    payloads, the lifecycle action).
    """

    type: str
    screen_id: int
    queue_id: int | None = None
    entity: dict[str, Any] = field(default_factory=dict)
    ts: str | None = None
    v: int = 1  # Schema version for future compatibility

    def __post_init__(self) -> None:
        """Reject malformed events before they reach Redis."""
        if not self.type or not isinstance(self.type, str):
            raise ValueError("Event type must be a non-empty string")

        if not isinstance(self.screen_id, int) or self.screen_id <= 0:
            raise ValueError("Event screen_id must be a positive integer")

        if self.queue_id is not None and (not isinstance(self.queue_id, int) or self.queue_id <= 0):
            raise ValueError("Event queue_id must be a positive integer or None")

        if self.entity is not None and not isinstance(self.entity, dict):
            raise ValueError("Event entity must be a dict or None")

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        data = asdict(self)
        data["entity"] = data["entity"] or {}
        data["ts"] = data["ts"] or datetime.now(timezone.utc).isoformat()
        return json.dumps(data, ensure_ascii=False, default=str)

    @classmethod
    def from_json(cls, json_str: str) -> "ScreenEvent":
        """Deserialize event from JSON string (validated in __post_init__)."""
        data = json.loads(json_str)
        return cls(**data)
