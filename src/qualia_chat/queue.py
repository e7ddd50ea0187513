"""Durable FIFO of user messages waiting for connectivity."""

import logging
from typing import Awaitable, Callable

from qualia_chat.errors import ChatError
from qualia_chat.schemas import QueuedMessage
from qualia_chat.storage import QUEUE_KEY, ClientStore

logger = logging.getLogger(__name__)

Dispatch = Callable[[QueuedMessage], Awaitable[None]]


class OfflineQueue:
    """Ordered list of undelivered messages persisted in the client store."""

    def __init__(self, store: ClientStore, key: str = QUEUE_KEY):
        self.store = store
        self.key = key
        self._draining = False

    @property
    def is_draining(self) -> bool:
        return self._draining

    async def items(self) -> list[QueuedMessage]:
        raw = await self.store.get(self.key, [])
        return [QueuedMessage.model_validate(item) for item in raw or []]

    async def _save(self, items: list[QueuedMessage]) -> None:
        await self.store.set(self.key, [item.model_dump(mode="json") for item in items])

    async def enqueue(self, message: QueuedMessage) -> None:
        items = await self.items()
        items.append(message)
        await self._save(items)
        logger.info(f"Queued message {message.id} for delivery when back online ({len(items)} pending)")

    async def drain(self, dispatch: Dispatch) -> bool:
        """Deliver queued messages in order, stopping at the first failure.

        Delivered messages are removed; the failed message and everything
        after it stay queued. Returns True when every message queued at the
        start of the drain was delivered.
        Calls made while a drain is running return False immediately.
        """
        if self._draining:
            logger.debug("Drain already in progress, skipping")
            return False

        self._draining = True
        sent: set[str] = set()
        try:
            pending = await self.items()
            if not pending:
                return True
            logger.info(f"Draining {len(pending)} queued messages")
            for message in pending:
                try:
                    await dispatch(message)
                except ChatError as e:
                    logger.warning(f"Queued message {message.id} could not be delivered: {e}")
                    return False
                sent.add(message.id)
            return True
        finally:
            if sent:
                # Re-read so messages queued during the drain are kept
                remaining = [item for item in await self.items() if item.id not in sent]
                await self._save(remaining)
            self._draining = False
