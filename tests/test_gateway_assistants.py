"""AssistantsGateway against the real openai SDK over a mock transport."""

import json
from typing import Any, Optional

import httpx
import pytest
from openai import AsyncOpenAI

from qualia_chat.errors import ProviderUnavailable, RunInProgress, ThreadNotFound
from qualia_chat.gateway import AssistantsGateway
from qualia_chat.gateway.assistants import SYSTEM_PREFIX, normalize_status
from qualia_chat.schemas import RunStatus

THREAD_ID = "thread_abc"


def _page(data: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "object": "list",
        "data": data,
        "first_id": data[0]["id"] if data else None,
        "last_id": data[-1]["id"] if data else None,
        "has_more": False,
    }


def _message(message_id: str, role: str, text: str, created_at: int) -> dict[str, Any]:
    return {
        "id": message_id,
        "object": "thread.message",
        "created_at": created_at,
        "thread_id": THREAD_ID,
        "role": role,
        "content": [{"type": "text", "text": {"value": text, "annotations": []}}],
        "attachments": [],
        "metadata": {},
    }


def _run(run_id: str, status: str) -> dict[str, Any]:
    return {
        "id": run_id,
        "object": "thread.run",
        "created_at": 1700000000,
        "thread_id": THREAD_ID,
        "assistant_id": "asst_123",
        "status": status,
    }


class FakeAssistantsAPI:
    """Just enough of the Assistants HTTP API to exercise the gateway."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.messages: list[dict[str, Any]] = []
        self.runs: dict[str, dict[str, Any]] = {}
        self.run_statuses: list[str] = ["completed"]
        self.fail_with: Optional[int] = None
        self.disconnect = False
        self.cancel_status: Optional[int] = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.disconnect:
            raise httpx.ConnectError("network unreachable", request=request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"error": {"message": "nope", "type": "invalid_request_error"}})

        parts = request.url.path.removeprefix("/v1/").split("/")
        body = json.loads(request.content) if request.content else {}

        if request.method == "POST" and parts == ["threads"]:
            return httpx.Response(200, json={"id": THREAD_ID, "object": "thread", "created_at": 1700000000})
        if parts[:2] != ["threads", THREAD_ID]:
            return httpx.Response(404, json={"error": {"message": "No thread found", "type": "invalid_request_error"}})

        rest = parts[2:]
        if rest == ["messages"] and request.method == "POST":
            n = len(self.messages)
            message = _message(f"msg_{n + 1}", body["role"], body["content"], 1700000000 + n)
            self.messages.append(message)
            return httpx.Response(200, json=message)
        if rest == ["messages"]:
            newest_first = list(reversed(self.messages))
            after = request.url.params.get("after")
            if after:
                ids = [m["id"] for m in newest_first]
                newest_first = newest_first[ids.index(after) + 1 :]
            return httpx.Response(200, json=_page(newest_first[: int(request.url.params["limit"])]))
        if rest == ["runs"] and request.method == "POST":
            run = _run(f"run_{len(self.runs) + 1}", "queued")
            self.runs[run["id"]] = run
            return httpx.Response(200, json=run)
        if rest == ["runs"]:
            return httpx.Response(200, json=_page(list(reversed(self.runs.values()))))
        if len(rest) == 3 and rest[0] == "runs" and rest[2] == "cancel":
            if self.cancel_status is not None:
                error = {"message": "Cannot cancel run with status 'completed'.", "type": "invalid_request_error"}
                return httpx.Response(self.cancel_status, json={"error": error})
            self.runs[rest[1]]["status"] = "cancelled"
            return httpx.Response(200, json=self.runs[rest[1]])
        if len(rest) == 2 and rest[0] == "runs":
            status = self.run_statuses.pop(0) if len(self.run_statuses) > 1 else self.run_statuses[0]
            self.runs[rest[1]]["status"] = status
            return httpx.Response(200, json=self.runs[rest[1]])
        return httpx.Response(404, json={"error": {"message": "unknown route"}})

    def paths(self, method: str) -> list[str]:
        return [r.url.path for r in self.requests if r.method == method]


@pytest.fixture
def api() -> FakeAssistantsAPI:
    return FakeAssistantsAPI()


@pytest.fixture
def gateway(api: FakeAssistantsAPI) -> AssistantsGateway:
    client = AsyncOpenAI(
        api_key="sk-test",
        base_url="http://testserver/v1",
        max_retries=0,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(api.handler)),
    )
    return AssistantsGateway(client, "asst_123")


def test_requires_assistant_id():
    with pytest.raises(ValueError):
        AssistantsGateway(AsyncOpenAI(api_key="sk-test"), "")


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("queued", RunStatus.QUEUED),
        ("completed", RunStatus.COMPLETED),
        ("cancelling", RunStatus.IN_PROGRESS),
        ("requires_action", RunStatus.FAILED),
        ("incomplete", RunStatus.FAILED),
    ],
)
def test_normalize_status(raw, expected):
    assert normalize_status(raw) is expected


@pytest.mark.asyncio
async def test_thread_message_and_run_round_trip(gateway, api):
    thread_id = await gateway.create_thread()
    await gateway.post_message(thread_id, "hello")
    run_id = await gateway.start_run(thread_id)

    assert thread_id == THREAD_ID
    assert await gateway.poll_run_status(thread_id, run_id) is RunStatus.COMPLETED
    assert json.loads(api.requests[-2].content)["assistant_id"] == "asst_123"

    messages = await gateway.list_messages(thread_id, 20)
    assert [(m.id, m.role, m.content) for m in messages] == [("msg_1", "user", "hello")]
    assert messages[0].timestamp.year == 2023
    await gateway.aclose()


@pytest.mark.asyncio
async def test_system_messages_are_prefixed_and_restored(gateway, api):
    await gateway.post_message(THREAD_ID, "Be brief.", "system")

    assert api.messages[0]["role"] == "user"
    assert api.messages[0]["content"][0]["text"]["value"] == f"{SYSTEM_PREFIX}Be brief."

    [message] = await gateway.list_messages(THREAD_ID, 20)
    assert (message.role, message.content) == ("system", "Be brief.")


@pytest.mark.asyncio
async def test_welcome_message_is_posted_as_assistant(gateway, api):
    await gateway.post_message(THREAD_ID, "Welcome!", "assistant")
    assert api.messages[0]["role"] == "assistant"


@pytest.mark.asyncio
async def test_list_messages_uses_descending_cursor(gateway, api):
    for n in range(5):
        await gateway.post_message(THREAD_ID, f"message {n}")

    first_page = await gateway.list_messages(THREAD_ID, 2)
    older = await gateway.list_messages(THREAD_ID, 2, before_id=first_page[-1].id)

    assert [m.content for m in first_page] == ["message 4", "message 3"]
    assert [m.content for m in older] == ["message 2", "message 1"]
    params = api.requests[-1].url.params
    assert params["order"] == "desc"
    assert params["after"] == first_page[-1].id


@pytest.mark.asyncio
async def test_active_runs_are_cancelled_before_posting(gateway, api):
    api.run_statuses = ["in_progress"]
    run_id = await gateway.start_run(THREAD_ID)
    await gateway.poll_run_status(THREAD_ID, run_id)

    await gateway.post_message(THREAD_ID, "follow up")

    assert f"/v1/threads/{THREAD_ID}/runs/{run_id}/cancel" in api.paths("POST")
    assert api.runs[run_id]["status"] == "cancelled"


@pytest.mark.asyncio
async def test_poll_reports_failure_statuses(gateway, api):
    api.run_statuses = ["in_progress", "expired"]
    run_id = await gateway.start_run(THREAD_ID)

    assert await gateway.poll_run_status(THREAD_ID, run_id) is RunStatus.IN_PROGRESS
    assert await gateway.poll_run_status(THREAD_ID, run_id) is RunStatus.EXPIRED


@pytest.mark.asyncio
async def test_unknown_thread_maps_to_thread_not_found(gateway):
    with pytest.raises(ThreadNotFound):
        await gateway.list_messages("thread_gone", 20)


@pytest.mark.asyncio
async def test_conflict_maps_to_run_in_progress(gateway, api):
    api.fail_with = 409
    with pytest.raises(RunInProgress):
        await gateway.cancel_run(THREAD_ID, "run_1")


@pytest.mark.asyncio
async def test_server_error_maps_to_provider_unavailable(gateway, api):
    api.fail_with = 500
    with pytest.raises(ProviderUnavailable) as exc_info:
        await gateway.create_thread()
    assert not exc_info.value.offline


@pytest.mark.asyncio
async def test_connection_error_is_marked_offline(gateway, api):
    api.disconnect = True
    with pytest.raises(ProviderUnavailable) as exc_info:
        await gateway.create_thread()
    assert exc_info.value.offline


@pytest.mark.asyncio
async def test_rate_limit_maps_to_run_in_progress(gateway, api):
    api.fail_with = 429
    with pytest.raises(RunInProgress):
        await gateway.start_run(THREAD_ID)


@pytest.mark.asyncio
async def test_run_finishing_before_cancel_does_not_block_posting(gateway, api):
    api.run_statuses = ["in_progress"]
    run_id = await gateway.start_run(THREAD_ID)
    await gateway.poll_run_status(THREAD_ID, run_id)
    api.cancel_status = 400

    await gateway.post_message(THREAD_ID, "hello")

    assert f"/v1/threads/{THREAD_ID}/runs/{run_id}/cancel" in api.paths("POST")
    assert [m["content"][0]["text"]["value"] for m in api.messages] == ["hello"]
