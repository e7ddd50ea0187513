"""In-process thread and run emulation over a chat completions endpoint.

Lets the conversation layer drive any OpenAI-compatible chat model (Mistral,
a local llama server) with the same thread/run protocol as the Assistants
API. All thread, message, and run state is owned by the gateway instance.
"""

import asyncio
import itertools
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from openai import AsyncOpenAI

from qualia_chat.errors import ProviderUnavailable, ThreadNotFound
from qualia_chat.gateway.base import ProviderGateway
from qualia_chat.schemas import ACTIVE_STATUSES, Message, MessageRole, RunStatus

logger = logging.getLogger(__name__)

CompletionFn = Callable[[list[dict[str, str]]], Awaitable[str]]


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


@dataclass
class StoredMessage:
    id: str
    role: MessageRole
    content: str
    created_at: float
    seq: int


@dataclass
class LocalThread:
    id: str
    created_at: float = field(default_factory=time.time)
    messages: list[StoredMessage] = field(default_factory=list)


@dataclass
class LocalRun:
    id: str
    thread_id: str
    status: RunStatus = RunStatus.IN_PROGRESS
    created_at: float = field(default_factory=time.time)
    task: Optional["asyncio.Task[None]"] = None


def chat_completion(client: AsyncOpenAI, model: str) -> CompletionFn:
    """Build a completion function backed by ``client.chat.completions``."""

    async def complete(messages: list[dict[str, str]]) -> str:
        response = await client.chat.completions.create(model=model, messages=messages)  # type: ignore[arg-type]
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    return complete


class LocalGateway(ProviderGateway):
    """Threads and runs kept in memory; runs execute as asyncio tasks."""

    def __init__(self, complete: CompletionFn, system_prompt: Optional[str] = None, run_expiry: float = 600.0):
        self._complete = complete
        self.system_prompt = system_prompt
        self.run_expiry = run_expiry
        self._threads: dict[str, LocalThread] = {}
        self._runs: dict[str, LocalRun] = {}
        self._seq = itertools.count()

    def _thread(self, thread_id: str) -> LocalThread:
        thread = self._threads.get(thread_id)
        if thread is None:
            raise ThreadNotFound(f"Thread {thread_id} not found")
        return thread

    def _append(self, thread: LocalThread, role: MessageRole, content: str) -> StoredMessage:
        message = StoredMessage(
            id=_new_id("msg"),
            role=role,
            content=content,
            created_at=time.time(),
            seq=next(self._seq),
        )
        thread.messages.append(message)
        return message

    def _cancel_active_runs(self, thread_id: str) -> None:
        for run in self._runs.values():
            if run.thread_id == thread_id and run.status in ACTIVE_STATUSES:
                run.status = RunStatus.CANCELLED
                if run.task and not run.task.done():
                    run.task.cancel()
                logger.info(f"Cancelled run {run.id} on thread {thread_id}")

    async def create_thread(self) -> str:
        thread = LocalThread(id=_new_id("thread"))
        self._threads[thread.id] = thread
        logger.info(f"Created thread {thread.id}")
        return thread.id

    async def post_message(self, thread_id: str, text: str, role: MessageRole = "user") -> None:
        thread = self._thread(thread_id)
        self._cancel_active_runs(thread_id)
        self._append(thread, role, text)

    async def start_run(self, thread_id: str) -> str:
        thread = self._thread(thread_id)
        self._cancel_active_runs(thread_id)
        run = LocalRun(id=_new_id("run"), thread_id=thread_id)
        self._runs[run.id] = run
        run.task = asyncio.create_task(self._execute(thread, run))
        logger.info(f"Started run {run.id} on thread {thread_id}")
        return run.id

    async def _execute(self, thread: LocalThread, run: LocalRun) -> None:
        prompt = [{"role": m.role, "content": m.content} for m in thread.messages]
        if self.system_prompt:
            prompt.insert(0, {"role": "system", "content": self.system_prompt})
        try:
            reply = await asyncio.wait_for(self._complete(prompt), timeout=self.run_expiry)
        except asyncio.CancelledError:
            run.status = RunStatus.CANCELLED
            raise
        except asyncio.TimeoutError:
            logger.warning(f"Run {run.id} expired after {self.run_expiry}s")
            run.status = RunStatus.EXPIRED
            return
        except Exception as e:
            logger.error(f"Run {run.id} failed: {e}")
            run.status = RunStatus.FAILED
            return

        if run.status is not RunStatus.IN_PROGRESS:
            return
        self._append(thread, "assistant", reply)
        run.status = RunStatus.COMPLETED

    async def poll_run_status(self, thread_id: str, run_id: str) -> RunStatus:
        self._thread(thread_id)
        run = self._runs.get(run_id)
        if run is None or run.thread_id != thread_id:
            raise ProviderUnavailable(f"Run {run_id} not found on thread {thread_id}")
        return run.status

    async def list_messages(self, thread_id: str, limit: int, before_id: Optional[str] = None) -> list[Message]:
        thread = self._thread(thread_id)
        ordered = sorted(thread.messages, key=lambda m: m.seq, reverse=True)
        if before_id:
            index = next((i for i, m in enumerate(ordered) if m.id == before_id), None)
            if index is None:
                return []
            ordered = ordered[index + 1 :]
        return [
            Message(id=m.id, role=m.role, content=m.content, timestamp=m.created_at) for m in ordered[:limit]
        ]

    async def aclose(self) -> None:
        for run in self._runs.values():
            if run.task and not run.task.done():
                run.task.cancel()

