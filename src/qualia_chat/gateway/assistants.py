"""Provider gateway for the OpenAI Assistants API."""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import openai
from openai import AsyncOpenAI

from qualia_chat.errors import ProviderUnavailable, RunInProgress, ThreadNotFound
from qualia_chat.gateway.base import ProviderGateway
from qualia_chat.schemas import Message, MessageRole, RunStatus

logger = logging.getLogger(__name__)

SYSTEM_PREFIX = "[SYSTEM INSTRUCTIONS]: "
UNSUPPORTED_CONTENT = "Unsupported message type"

# Runs that still hold the thread and can be cancelled
CANCELLABLE_STATUSES = frozenset({"queued", "in_progress", "requires_action"})

# Provider statuses outside the run lifecycle we track
_STATUS_ALIASES = {
    "cancelling": RunStatus.IN_PROGRESS,
    "incomplete": RunStatus.FAILED,
    "requires_action": RunStatus.FAILED,
}


def normalize_status(status: str) -> RunStatus:
    if status in _STATUS_ALIASES:
        return _STATUS_ALIASES[status]
    try:
        return RunStatus(status)
    except ValueError:
        logger.warning(f"Unknown run status {status!r}, treating as failed")
        return RunStatus.FAILED


def _text_of(message: Any) -> str:
    content = getattr(message, "content", None) or []
    if not content:
        return ""
    block = content[0]
    if getattr(block, "type", None) == "text":
        return block.text.value
    return UNSUPPORTED_CONTENT


def _to_message(message: Any) -> Message:
    role, text = message.role, _text_of(message)
    # System prompts are stored as prefixed user messages
    if role == "user" and text.startswith(SYSTEM_PREFIX):
        role, text = "system", text[len(SYSTEM_PREFIX) :]
    return Message(id=message.id, role=role, content=text, timestamp=message.created_at)


class AssistantsGateway(ProviderGateway):
    """Drives threads and runs through ``client.beta.threads``."""

    def __init__(self, client: AsyncOpenAI, assistant_id: str):
        if not assistant_id:
            raise ValueError("An assistant id is required for the assistants provider")
        self.client = client
        self.assistant_id = assistant_id

    @asynccontextmanager
    async def _translate_errors(self, operation: str, thread_id: Optional[str] = None) -> AsyncIterator[None]:
        try:
            yield
        except openai.APITimeoutError as e:
            logger.warning(f"{operation} timed out: {e}")
            raise ProviderUnavailable(f"{operation} timed out") from e
        except openai.APIConnectionError as e:
            logger.warning(f"{operation} could not reach the provider: {e}")
            raise ProviderUnavailable(f"{operation} failed: connection error", offline=True) from e
        except openai.NotFoundError as e:
            logger.warning(f"{operation}: thread {thread_id} not found")
            raise ThreadNotFound(f"Thread {thread_id} not found") from e
        except (openai.ConflictError, openai.RateLimitError) as e:
            raise RunInProgress(f"{operation}: a run is active on thread {thread_id}") from e
        except openai.APIError as e:
            logger.error(f"{operation} failed: {e}")
            raise ProviderUnavailable(f"{operation} failed") from e

    async def create_thread(self) -> str:
        async with self._translate_errors("create thread"):
            thread = await self.client.beta.threads.create()
        logger.info(f"Created thread {thread.id}")
        return thread.id

    async def post_message(self, thread_id: str, text: str, role: MessageRole = "user") -> None:
        await self._cancel_active_runs(thread_id)
        # Threads only accept user and assistant roles
        if role == "system":
            text = f"{SYSTEM_PREFIX}{text}"
            role = "user"
        async with self._translate_errors("post message", thread_id):
            await self.client.beta.threads.messages.create(thread_id=thread_id, role=role, content=text)

    async def start_run(self, thread_id: str) -> str:
        await self._cancel_active_runs(thread_id)
        async with self._translate_errors("start run", thread_id):
            run = await self.client.beta.threads.runs.create(thread_id=thread_id, assistant_id=self.assistant_id)
        logger.info(f"Started run {run.id} on thread {thread_id}")
        return run.id

    async def poll_run_status(self, thread_id: str, run_id: str) -> RunStatus:
        async with self._translate_errors("poll run", thread_id):
            run = await self.client.beta.threads.runs.retrieve(run_id=run_id, thread_id=thread_id)
        return normalize_status(run.status)

    async def list_messages(self, thread_id: str, limit: int, before_id: Optional[str] = None) -> list[Message]:
        params: dict[str, Any] = {"limit": limit, "order": "desc"}
        if before_id:
            # With descending order the cursor for older messages is ``after``
            params["after"] = before_id
        async with self._translate_errors("list messages", thread_id):
            page = await self.client.beta.threads.messages.list(thread_id=thread_id, **params)
        return [_to_message(m) for m in page.data]

    async def cancel_run(self, thread_id: str, run_id: str) -> None:
        async with self._translate_errors("cancel run", thread_id):
            await self.client.beta.threads.runs.cancel(run_id=run_id, thread_id=thread_id)
        logger.info(f"Cancelled run {run_id} on thread {thread_id}")

    async def _cancel_active_runs(self, thread_id: str) -> None:
        async with self._translate_errors("list runs", thread_id):
            page = await self.client.beta.threads.runs.list(thread_id=thread_id, limit=10, order="desc")
        for run in page.data:
            if run.status in CANCELLABLE_STATUSES:
                try:
                    await self.cancel_run(thread_id, run.id)
                except RunInProgress:
                    # Already finishing on the provider side
                    logger.debug(f"Run {run.id} could not be cancelled")
                except ProviderUnavailable as e:
                    if e.offline:
                        raise
                    # Finished between listing and cancelling
                    logger.debug(f"Run {run.id} was no longer cancellable: {e}")

    async def aclose(self) -> None:
        await self.client.close()
