"""Conversation session: the single entry point for a chat front end.

Owns the thread id, the displayed message list and pagination state, and
coordinates the provider gateway, run poller, offline queue, and
connectivity monitor. Messages are kept oldest first (newest last), the
order they are displayed in.
"""

import asyncio
import logging
from typing import Optional

from qualia_chat.connectivity import ConnectivityMonitor
from qualia_chat.errors import ChatError, InitializationError, ProviderUnavailable, RunInProgress
from qualia_chat.gateway.base import ProviderGateway
from qualia_chat.poller import PollHandle, RunPoller
from qualia_chat.queue import OfflineQueue
from qualia_chat.schemas import Message, QueuedMessage, RunStatus, SessionState
from qualia_chat.schemas.messages import TEMP_ID_PREFIX, temporary_id
from qualia_chat.storage import THREAD_ID_KEY, ClientStore

logger = logging.getLogger(__name__)

QUEUED_NOTICE = "You're offline. Your message will be sent when you reconnect."
RESET_FAILED = "Failed to reset chat. Please try again."
FORCE_RESET_FAILED = "Failed to reset chat. Please refresh the page."
LOAD_MORE_FAILED = "Failed to load older messages. Please try again."


def _queued_display_id(item: QueuedMessage) -> str:
    return f"{TEMP_ID_PREFIX}{item.id}"


class ConversationSession:
    def __init__(
        self,
        gateway: ProviderGateway,
        store: ClientStore,
        *,
        poller: Optional[RunPoller] = None,
        queue: Optional[OfflineQueue] = None,
        monitor: Optional[ConnectivityMonitor] = None,
        page_size: int = 20,
        system_prompt: Optional[str] = None,
        welcome_message: Optional[str] = None,
    ):
        self.gateway = gateway
        self.store = store
        self.poller = poller or RunPoller(gateway)
        self.queue = queue or OfflineQueue(store)
        self.monitor = monitor or ConnectivityMonitor()
        self.monitor.add_listener(self._connectivity_changed)
        self.page_size = page_size
        self.system_prompt = system_prompt
        self.welcome_message = welcome_message

        self.thread_id: Optional[str] = None
        self.messages: list[Message] = []
        self.has_more_messages = False
        self.is_loading = False
        self.error: Optional[str] = None
        self.notice: Optional[str] = None

        # Set while a run is in flight on the current thread
        self._run_owner: Optional[object] = None
        self._poll: Optional[PollHandle] = None
        self._loading_more = False
        self._drain_task: Optional[asyncio.Task[bool]] = None
        self._drain_pending = False

    @property
    def is_online(self) -> bool:
        return self.monitor.is_online

    @property
    def run_active(self) -> bool:
        return self._run_owner is not None

    @property
    def state(self) -> SessionState:
        return SessionState(
            thread_id=self.thread_id,
            messages=list(self.messages),
            is_loading=self.is_loading,
            error=self.error,
            notice=self.notice,
            has_more_messages=self.has_more_messages,
            is_online=self.is_online,
        )

    async def initialize(self) -> None:
        """Restore the stored thread or create a new one.

        Raises ``InitializationError`` when no thread can be created. Failing
        to load an existing thread's messages is not fatal.
        """
        self.is_loading = True
        try:
            stored_thread_id = await self.store.get(THREAD_ID_KEY)
            if stored_thread_id:
                self.thread_id = stored_thread_id
                try:
                    await self._load_first_page()
                except ChatError as e:
                    logger.warning(f"Could not load messages for thread {stored_thread_id}: {e}")
                    self.messages = []
                    self.has_more_messages = False
                    self.error = e.user_message
            else:
                try:
                    self.thread_id = await self._new_thread()
                except ChatError as e:
                    logger.error(f"Could not create a thread: {e}")
                    self.error = InitializationError.user_message
                    raise InitializationError(str(e)) from e
                await self.store.set(THREAD_ID_KEY, self.thread_id)
        finally:
            self.is_loading = False

        await self._show_queued()
        if self.is_online:
            await self.flush_queue()

    async def send_message(self, text: str) -> None:
        if not self.thread_id or not text.strip():
            return
        if self.run_active:
            self.error = RunInProgress.user_message
            return

        owner = self._run_owner = object()
        thread_id = self.thread_id
        self.is_loading = True
        self.error = None
        self.notice = None

        optimistic = Message.optimistic(text)
        self.messages.append(optimistic)
        posted = False
        try:
            await self.gateway.post_message(thread_id, text)
            posted = True
            self.monitor.set_online(True)
            run_id = await self.gateway.start_run(thread_id)
            status = await self._wait_for_run(thread_id, run_id)
            if status is None or thread_id != self.thread_id:
                return
            await self._load_first_page()
            self.error = None
        except ProviderUnavailable as e:
            if not posted and (e.offline or not self.is_online):
                await self._queue(optimistic, thread_id, offline=e.offline)
            else:
                self._send_failed(optimistic, thread_id, e, posted)
        except ChatError as e:
            self._send_failed(optimistic, thread_id, e, posted)
        finally:
            if self._run_owner is owner:
                self._run_owner = None
                self.is_loading = False
                if self._drain_pending:
                    self._schedule_drain()

    async def reset_thread(self, welcome_message: Optional[str] = None) -> bool:
        """Start a fresh thread. The old thread is abandoned, not deleted."""
        self.is_loading = True
        try:
            thread_id = await self._new_thread()
            if welcome_message:
                await self.gateway.post_message(thread_id, welcome_message, "assistant")
        except ChatError as e:
            logger.error(f"Could not reset thread: {e}")
            self.error = RESET_FAILED
            self.is_loading = False
            return False

        self._abandon_run()
        self.thread_id = thread_id
        await self.store.set(THREAD_ID_KEY, thread_id)
        self.messages = []
        self.has_more_messages = False
        self.error = None
        self.notice = None

        if welcome_message:
            try:
                await self._load_first_page()
            except ChatError as e:
                logger.warning(f"Could not load welcome message: {e}")
                self.messages = [Message(id=temporary_id(), role="assistant", content=welcome_message)]
        self.is_loading = False
        return True

    async def force_reset(self) -> None:
        """Abandon any in-flight run and start over. Queued messages are kept."""
        self._abandon_run()
        if not await self.reset_thread(self.welcome_message):
            self.error = FORCE_RESET_FAILED

    async def load_more_messages(self) -> None:
        if not self.has_more_messages or not self.thread_id or self._loading_more:
            return
        cursor = next((m.id for m in self.messages if not m.is_temporary), None)
        if cursor is None:
            self.has_more_messages = False
            return

        thread_id = self.thread_id
        self._loading_more = True
        try:
            older = await self.gateway.list_messages(thread_id, self.page_size, cursor)
        except ChatError as e:
            logger.warning(f"Could not load messages before {cursor}: {e}")
            self.error = LOAD_MORE_FAILED
            return
        finally:
            self._loading_more = False

        if thread_id != self.thread_id:
            return
        self.messages = list(reversed(older)) + self.messages
        self.has_more_messages = len(older) == self.page_size

    async def flush_queue(self) -> bool:
        """Deliver queued messages to the current thread."""
        if not self.thread_id or self.run_active:
            return False
        owner = self._run_owner = object()
        self._drain_pending = False
        try:
            delivered = await self.queue.drain(self._dispatch_queued)
        finally:
            if self._run_owner is owner:
                self._run_owner = None
        if delivered and self.notice == QUEUED_NOTICE:
            self.notice = None
        return delivered

    async def close(self) -> None:
        self.monitor.remove_listener(self._connectivity_changed)
        self.poller.cancel_all()
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_task.cancel()

    async def _new_thread(self) -> str:
        thread_id = await self.gateway.create_thread()
        if self.system_prompt:
            await self.gateway.post_message(thread_id, self.system_prompt, "system")
        return thread_id

    async def _wait_for_run(self, thread_id: str, run_id: str) -> Optional[RunStatus]:
        if thread_id != self.thread_id:
            # Reset while the run was starting
            return None
        handle = self._poll = self.poller.start(thread_id, run_id)
        try:
            return await handle.wait()
        finally:
            if self._poll is handle:
                self._poll = None

    def _abandon_run(self) -> None:
        if self._poll is not None:
            self._poll.cancel()
        if self.thread_id:
            self.poller.cancel(self.thread_id)
        self._poll = None
        self._run_owner = None

    async def _load_first_page(self) -> None:
        fetched = await self.gateway.list_messages(self.thread_id, self.page_size)
        # Unconfirmed local entries survive; pending optimistic ones are replaced
        leftovers = [m for m in self.messages if m.is_temporary and (m.queued or m.failed)]
        self.messages = list(reversed(fetched)) + leftovers
        self.has_more_messages = len(fetched) == self.page_size

    async def _queue(self, optimistic: Message, thread_id: str, offline: bool) -> None:
        item = QueuedMessage.from_message(optimistic, thread_id)
        await self.queue.enqueue(item)
        self._replace(optimistic.id, optimistic.model_copy(update={"id": _queued_display_id(item), "queued": True}))
        self.notice = QUEUED_NOTICE
        if offline:
            self.monitor.set_online(False)

    def _send_failed(self, optimistic: Message, thread_id: str, error: ChatError, posted: bool) -> None:
        logger.warning(f"Send failed on thread {thread_id}: {error}")
        if thread_id != self.thread_id:
            return
        self.error = error.user_message
        if not posted:
            self._replace(optimistic.id, optimistic.model_copy(update={"failed": True}))

    def _replace(self, message_id: str, message: Message) -> None:
        for i, existing in enumerate(self.messages):
            if existing.id == message_id:
                self.messages[i] = message
                return

    async def _show_queued(self) -> None:
        shown = {m.id for m in self.messages}
        for item in await self.queue.items():
            display_id = _queued_display_id(item)
            if item.thread_id == self.thread_id and display_id not in shown:
                self.messages.append(
                    Message(id=display_id, role="user", content=item.content, timestamp=item.timestamp, queued=True)
                )
        if any(m.queued for m in self.messages):
            self.notice = QUEUED_NOTICE

    async def _dispatch_queued(self, item: QueuedMessage) -> None:
        thread_id = self.thread_id
        # Failures here keep the message queued
        await self.gateway.post_message(thread_id, item.content)
        self.messages = [m for m in self.messages if m.id != _queued_display_id(item)]
        try:
            run_id = await self.gateway.start_run(thread_id)
            status = await self._wait_for_run(thread_id, run_id)
            if status is not None and thread_id == self.thread_id:
                await self._load_first_page()
        except ChatError as e:
            # Already delivered; the reply is what failed
            logger.warning(f"Queued message {item.id} was sent but its run did not complete: {e}")
            self.error = e.user_message

    def _connectivity_changed(self, online: bool) -> None:
        if online:
            self._schedule_drain()

    def _schedule_drain(self) -> None:
        # Deferred until the in-flight run releases the thread
        if self.run_active:
            self._drain_pending = True
            return
        self._drain_pending = False
        if not self.is_online:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = loop.create_task(self.flush_queue())
