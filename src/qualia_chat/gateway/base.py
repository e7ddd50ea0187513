"""Provider gateway contract."""

from abc import ABC, abstractmethod
from typing import Optional

from qualia_chat.schemas import Message, MessageRole, RunStatus


class ProviderGateway(ABC):
    """Narrow adapter over a remote assistant-run provider.

    Implementations translate provider failures into ``qualia_chat.errors``:
    ``ProviderUnavailable`` for transport failures (``offline=True`` when the
    network itself is gone), ``ThreadNotFound`` when the thread is unknown,
    ``RunInProgress`` when the provider reports a conflicting active run.
    """

    @abstractmethod
    async def create_thread(self) -> str:
        """Create a thread and return its id."""

    @abstractmethod
    async def post_message(self, thread_id: str, text: str, role: MessageRole = "user") -> None:
        """Append a message to a thread."""

    @abstractmethod
    async def start_run(self, thread_id: str) -> str:
        """Start a run, cancelling any other active run on the thread first."""

    @abstractmethod
    async def poll_run_status(self, thread_id: str, run_id: str) -> RunStatus:
        """Return the current run status. Side-effect free."""

    @abstractmethod
    async def list_messages(self, thread_id: str, limit: int, before_id: Optional[str] = None) -> list[Message]:
        """Return at most ``limit`` messages, newest first.

        ``before_id`` restricts the page to messages strictly older than the
        referenced one.
        """

    async def aclose(self) -> None:
        """Release provider resources."""
