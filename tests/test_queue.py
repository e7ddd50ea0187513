import asyncio

import pytest

from qualia_chat.errors import ProviderUnavailable
from qualia_chat.queue import OfflineQueue
from qualia_chat.schemas import QueuedMessage
from qualia_chat.storage import QUEUE_KEY, ClientStore


def _item(n: int) -> QueuedMessage:
    return QueuedMessage(id=f"queued_{n}", content=f"message {n}", thread_id="thread_1")


@pytest.mark.asyncio
async def test_enqueue_persists_in_order(queue, store):
    await queue.enqueue(_item(1))
    await queue.enqueue(_item(2))

    items = await OfflineQueue(ClientStore(store.path)).items()
    assert [item.id for item in items] == ["queued_1", "queued_2"]
    assert len(await store.get(QUEUE_KEY)) == 2


@pytest.mark.asyncio
async def test_drain_delivers_everything_in_order(queue):
    for n in range(1, 4):
        await queue.enqueue(_item(n))
    sent = []

    async def dispatch(item: QueuedMessage) -> None:
        sent.append(item.id)

    assert await queue.drain(dispatch) is True
    assert sent == ["queued_1", "queued_2", "queued_3"]
    assert await queue.items() == []


@pytest.mark.asyncio
async def test_drain_stops_at_first_failure_and_keeps_the_rest(queue):
    for n in range(1, 4):
        await queue.enqueue(_item(n))
    sent = []
    failing = {"queued_2"}

    async def dispatch(item: QueuedMessage) -> None:
        if item.id in failing:
            raise ProviderUnavailable("offline", offline=True)
        sent.append(item.id)

    assert await queue.drain(dispatch) is False
    assert sent == ["queued_1"]
    assert [item.id for item in await queue.items()] == ["queued_2", "queued_3"]

    # A later drain does not resend what already went out
    failing.clear()
    assert await queue.drain(dispatch) is True
    assert sent == ["queued_1", "queued_2", "queued_3"]
    assert await queue.items() == []


@pytest.mark.asyncio
async def test_empty_drain_succeeds(queue):
    async def dispatch(item: QueuedMessage) -> None:
        raise AssertionError("nothing to send")

    assert await queue.drain(dispatch) is True


@pytest.mark.asyncio
async def test_concurrent_drain_is_rejected(queue):
    await queue.enqueue(_item(1))
    release = asyncio.Event()
    sent = []

    async def slow_dispatch(item: QueuedMessage) -> None:
        await release.wait()
        sent.append(item.id)

    first = asyncio.create_task(queue.drain(slow_dispatch))
    await asyncio.sleep(0.01)
    assert queue.is_draining

    assert await queue.drain(slow_dispatch) is False

    release.set()
    assert await first is True
    assert sent == ["queued_1"]
    assert not queue.is_draining


@pytest.mark.asyncio
async def test_messages_queued_during_drain_are_kept(queue):
    await queue.enqueue(_item(1))

    async def dispatch(item: QueuedMessage) -> None:
        await queue.enqueue(_item(2))

    assert await queue.drain(dispatch) is True
    assert [item.id for item in await queue.items()] == ["queued_2"]
