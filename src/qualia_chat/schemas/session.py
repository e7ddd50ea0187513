"""Observable conversation state."""

from pydantic import BaseModel, Field

from qualia_chat.schemas.messages import Message


class SessionState(BaseModel):
    thread_id: str | None = None
    messages: list[Message] = Field(default_factory=list)
    is_loading: bool = False
    error: str | None = None
    notice: str | None = None
    has_more_messages: bool = False
    is_online: bool = True
