"""Message schemas."""

import hashlib
import logging
import time
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

MessageRole = Literal["user", "assistant", "system"]

TEMP_ID_PREFIX = "temp-"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_timestamp(value: Any) -> datetime:
    """Coerce provider timestamps to an aware datetime, falling back to now."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool):
        return utcnow()
    if isinstance(value, (int, float)):
        # Epoch seconds, or milliseconds when the value is too large for seconds
        seconds = value / 1000 if value > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            logger.debug(f"Unusable epoch timestamp {value!r}, using now")
            return utcnow()
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return normalize_timestamp(datetime.fromisoformat(text))
        except ValueError:
            pass
        try:
            return normalize_timestamp(float(text))
        except ValueError:
            logger.debug(f"Unparseable timestamp {value!r}, using now")
    return utcnow()


def temporary_id() -> str:
    return f"{TEMP_ID_PREFIX}{time.time_ns()}"


class Message(BaseModel):
    """A message as displayed in a conversation."""

    model_config = ConfigDict(frozen=True)

    id: str
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    # Set on optimistic entries only
    failed: bool = False
    queued: bool = False

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> datetime:
        return normalize_timestamp(value)

    @property
    def is_temporary(self) -> bool:
        return self.id.startswith(TEMP_ID_PREFIX)

    @classmethod
    def optimistic(cls, content: str) -> "Message":
        return cls(id=temporary_id(), role="user", content=content)


class QueuedMessage(BaseModel):
    """A user message waiting for connectivity."""

    id: str
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    thread_id: str | None = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> datetime:
        return normalize_timestamp(value)

    @classmethod
    def from_message(cls, message: Message, thread_id: str | None) -> "QueuedMessage":
        digest = hashlib.sha1(
            f"{thread_id}:{message.timestamp.isoformat()}:{message.content}".encode("utf-8")
        ).hexdigest()
        return cls(id=f"queued_{digest[:16]}", content=message.content, timestamp=message.timestamp, thread_id=thread_id)
