import itertools
from pathlib import Path
from typing import Generator, Optional

import pytest
from fastapi.testclient import TestClient

from qualia_chat.errors import ChatError, ProviderUnavailable
from qualia_chat.gateway.base import ProviderGateway
from qualia_chat.poller import RunPoller
from qualia_chat.queue import OfflineQueue
from qualia_chat.schemas import Message, MessageRole, RunStatus
from qualia_chat.services import SearchResponse, SearchResult, SpeechAudio
from qualia_chat.storage import ClientStore
from qualia_server.dependencies import get_search_client, get_speech_client


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGateway(ProviderGateway):
    """Scripted provider that records every call.

    ``statuses`` are returned by successive polls (the last one repeats).
    A run that polls ``completed`` appends ``reply`` to its thread once.
    Put an exception in ``errors`` under an operation name to make that
    operation fail until it is removed.
    """

    def __init__(self, statuses: Optional[list[RunStatus]] = None, reply: str = "Hello from the assistant"):
        self.statuses = list(statuses or [RunStatus.COMPLETED])
        self.reply = reply
        self.threads: dict[str, list[Message]] = {}
        self.calls: list[tuple[str, ...]] = []
        self.errors: dict[str, ChatError] = {}
        self._ids = itertools.count(1)
        self._polls: dict[str, int] = {}
        self._answered: set[str] = set()

    def _check(self, operation: str) -> None:
        if operation in self.errors:
            raise self.errors[operation]

    def calls_to(self, operation: str) -> list[tuple[str, ...]]:
        return [call for call in self.calls if call[0] == operation]

    def add(self, thread_id: str, role: MessageRole, content: str) -> Message:
        message = Message(id=f"msg_{next(self._ids)}", role=role, content=content, timestamp=1_700_000_000)
        self.threads.setdefault(thread_id, []).append(message)
        return message

    async def create_thread(self) -> str:
        self.calls.append(("create_thread",))
        self._check("create_thread")
        thread_id = f"thread_{next(self._ids)}"
        self.threads[thread_id] = []
        return thread_id

    async def post_message(self, thread_id: str, text: str, role: MessageRole = "user") -> None:
        self.calls.append(("post_message", thread_id, text, role))
        self._check("post_message")
        self.add(thread_id, role, text)

    async def start_run(self, thread_id: str) -> str:
        self.calls.append(("start_run", thread_id))
        self._check("start_run")
        run_id = f"run_{next(self._ids)}"
        self._polls[run_id] = 0
        return run_id

    async def poll_run_status(self, thread_id: str, run_id: str) -> RunStatus:
        self.calls.append(("poll_run_status", thread_id, run_id))
        self._check("poll_run_status")
        polls = self._polls.get(run_id, 0)
        self._polls[run_id] = polls + 1
        index = min(polls, len(self.statuses) - 1)
        status = self.statuses[index]
        if status is RunStatus.COMPLETED and run_id not in self._answered:
            self._answered.add(run_id)
            self.add(thread_id, "assistant", self.reply)
        return status

    async def list_messages(self, thread_id: str, limit: int, before_id: Optional[str] = None) -> list[Message]:
        self.calls.append(("list_messages", thread_id, str(limit), before_id or ""))
        self._check("list_messages")
        newest_first = list(reversed(self.threads[thread_id]))
        if before_id:
            ids = [m.id for m in newest_first]
            newest_first = newest_first[ids.index(before_id) + 1 :]
        return newest_first[:limit]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def state_path(tmp_path: Path) -> Path:
    return tmp_path / "client_state.json"


@pytest.fixture
def store(state_path: Path) -> ClientStore:
    return ClientStore(state_path)


@pytest.fixture
def queue(store: ClientStore) -> OfflineQueue:
    return OfflineQueue(store)


@pytest.fixture
def fast_poller(gateway: FakeGateway) -> RunPoller:
    return RunPoller(gateway, interval=0, max_wait=2.0)


class DummySearchClient:
    def __init__(self) -> None:
        self.queries: list[str] = []

    async def search(
        self, query: str, num: int = 10, start: int = 1, lr: str = "", safe: str = "off"
    ) -> SearchResponse:
        self.queries.append(query)
        if not query.strip():
            raise ValueError("Search query is required")
        if query == "offline":
            raise ProviderUnavailable("search upstream down", offline=True)
        return SearchResponse(
            results=[SearchResult(title=f"Result for {query}", link="https://example.com")],
            total_results=1,
            search_terms=query,
        )


class DummySpeechClient:
    async def synthesize(self, text: str, voice: str = "", rate: str = "1", pitch: str = "1") -> SpeechAudio:
        if text == "fail":
            raise ProviderUnavailable("tts down", user_message="Failed to process text-to-speech request.")
        return SpeechAudio(content=f"audio:{text}:{voice}".encode(), media_type="audio/wav")


@pytest.fixture
def search_client() -> DummySearchClient:
    return DummySearchClient()


@pytest.fixture
def client(search_client: DummySearchClient) -> Generator[TestClient, None, None]:
    from qualia_server.app import create_app

    app = create_app()
    app.dependency_overrides[get_search_client] = lambda: search_client
    app.dependency_overrides[get_speech_client] = lambda: DummySpeechClient()

    with TestClient(app) as test_client:
        yield test_client
