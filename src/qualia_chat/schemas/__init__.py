from qualia_chat.schemas.messages import Message, MessageRole, QueuedMessage, normalize_timestamp
from qualia_chat.schemas.runs import ACTIVE_STATUSES, FAILURE_STATUSES, RunStatus
from qualia_chat.schemas.session import SessionState

__all__ = [
    "ACTIVE_STATUSES",
    "FAILURE_STATUSES",
    "Message",
    "MessageRole",
    "QueuedMessage",
    "RunStatus",
    "SessionState",
    "normalize_timestamp",
]
