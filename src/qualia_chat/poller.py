"""Drive a started run to a terminal status."""

import asyncio
import logging
from typing import Callable, Optional

from qualia_chat.errors import PollingTimeout, RunFailed
from qualia_chat.gateway.base import ProviderGateway
from qualia_chat.schemas import RunStatus

logger = logging.getLogger(__name__)

SuccessCallback = Callable[[RunStatus], None]
FailureCallback = Callable[[BaseException], None]


class PollHandle:
    """Token for one poll loop. ``cancel`` is idempotent."""

    def __init__(
        self,
        thread_id: str,
        run_id: str,
        task: "asyncio.Task[RunStatus]",
        on_success: Optional[SuccessCallback] = None,
        on_failure: Optional[FailureCallback] = None,
    ):
        self.thread_id = thread_id
        self.run_id = run_id
        self._task = task
        self._on_success = on_success
        self._on_failure = on_failure
        self._cancelled = False
        task.add_done_callback(self._finished)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if not self._task.done():
            self._task.cancel()
            logger.info(f"Stopped polling run {self.run_id} on thread {self.thread_id}")

    async def wait(self) -> Optional[RunStatus]:
        """Return the terminal status, or None if the loop was cancelled.

        Raises ``RunFailed``, ``PollingTimeout`` or a gateway error otherwise.
        """
        try:
            return await self._task
        except asyncio.CancelledError:
            if self._cancelled:
                return None
            raise

    def _finished(self, task: "asyncio.Task[RunStatus]") -> None:
        if self._cancelled or task.cancelled():
            return
        error = task.exception()
        if error is not None:
            if self._on_failure:
                self._on_failure(error)
        elif self._on_success:
            self._on_success(task.result())


class RunPoller:
    """Polls run status on a fixed interval with an overall deadline.

    At most one loop runs per thread: starting a new one cancels the old.
    """

    def __init__(self, gateway: ProviderGateway, interval: float = 1.0, max_wait: float = 30.0):
        self.gateway = gateway
        self.interval = interval
        self.max_wait = max_wait
        self._active: dict[str, PollHandle] = {}

    def start(
        self,
        thread_id: str,
        run_id: str,
        on_success: Optional[SuccessCallback] = None,
        on_failure: Optional[FailureCallback] = None,
    ) -> PollHandle:
        self.cancel(thread_id)
        task = asyncio.create_task(self._poll(thread_id, run_id))
        handle = PollHandle(thread_id, run_id, task, on_success, on_failure)
        self._active[thread_id] = handle
        task.add_done_callback(lambda _: self._release(handle))
        return handle

    def cancel(self, thread_id: str) -> bool:
        handle = self._active.pop(thread_id, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> None:
        for thread_id in list(self._active):
            self.cancel(thread_id)

    def active(self, thread_id: str) -> Optional[PollHandle]:
        return self._active.get(thread_id)

    def _release(self, handle: PollHandle) -> None:
        if self._active.get(handle.thread_id) is handle:
            del self._active[handle.thread_id]

    async def _poll(self, thread_id: str, run_id: str) -> RunStatus:
        try:
            return await asyncio.wait_for(self._poll_until_terminal(thread_id, run_id), timeout=self.max_wait)
        except asyncio.TimeoutError:
            logger.warning(f"Gave up waiting for run {run_id} after {self.max_wait}s")
            raise PollingTimeout(f"Run {run_id} did not finish within {self.max_wait}s") from None

    async def _poll_until_terminal(self, thread_id: str, run_id: str) -> RunStatus:
        polls = 0
        while True:
            status = RunStatus(await self.gateway.poll_run_status(thread_id, run_id))
            polls += 1
            logger.debug(f"Run {run_id} status after poll {polls}: {status.value}")
            if status is RunStatus.COMPLETED:
                return status
            if status.is_failure:
                raise RunFailed(status.value)
            await asyncio.sleep(self.interval)
