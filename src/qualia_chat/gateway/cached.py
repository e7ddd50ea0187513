"""Message cache in front of a provider gateway."""

import logging
from dataclasses import dataclass
from typing import Optional

from qualia_chat.cache import BoundedCache
from qualia_chat.gateway.base import ProviderGateway
from qualia_chat.schemas import Message, MessageRole, RunStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedPage:
    limit: int
    messages: tuple[Message, ...]


class CachedGateway(ProviderGateway):
    """Serves repeated first-page message reads from a ``BoundedCache``.

    Paginated reads always go upstream. Anything that can change a thread's
    first page (a new message, a new run, a run reaching a terminal status)
    drops that thread's entry.
    """

    def __init__(self, inner: ProviderGateway, cache: BoundedCache[str, CachedPage]):
        self.inner = inner
        self.cache = cache

    async def create_thread(self) -> str:
        return await self.inner.create_thread()

    async def post_message(self, thread_id: str, text: str, role: MessageRole = "user") -> None:
        self.cache.invalidate(thread_id)
        await self.inner.post_message(thread_id, text, role)

    async def start_run(self, thread_id: str) -> str:
        self.cache.invalidate(thread_id)
        return await self.inner.start_run(thread_id)

    async def poll_run_status(self, thread_id: str, run_id: str) -> RunStatus:
        status = await self.inner.poll_run_status(thread_id, run_id)
        if status.is_terminal:
            self.cache.invalidate(thread_id)
        return status

    async def list_messages(self, thread_id: str, limit: int, before_id: Optional[str] = None) -> list[Message]:
        if before_id:
            return await self.inner.list_messages(thread_id, limit, before_id)

        cached = self.cache.get(thread_id)
        if cached is not None and cached.limit == limit:
            logger.debug(f"Using cached messages for thread {thread_id}")
            return list(cached.messages)

        messages = await self.inner.list_messages(thread_id, limit)
        self.cache.put(thread_id, CachedPage(limit=limit, messages=tuple(messages)))
        return messages

    async def aclose(self) -> None:
        await self.inner.aclose()
