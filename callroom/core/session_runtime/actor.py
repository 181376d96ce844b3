"""Platform event pump.

Every platform callback (connection state, peer/channel text, presence,
publish/unpublish) lands in one queue and is dispatched one at a time, in
arrival order. Handlers never run concurrently, so session state and the
participant registry need no locking.

Each session run gets a new generation; anything queued by an earlier run is
dropped instead of dispatched.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from callroom.core.session_runtime.ports import PlatformEvent

log = logging.getLogger("session.pump")


@dataclass(frozen=True)
class QueuedEvent:
    generation: int
    event: PlatformEvent
    enqueued_at: float = field(default_factory=time.monotonic)


class EventPump:
    def __init__(self, *, dispatch: Callable[[PlatformEvent], Awaitable[None]]):
        self._dispatch = dispatch
        self._generation = 0
        self._running = False
        self._task: asyncio.Task | None = None
        self._queue: asyncio.Queue[QueuedEvent] = asyncio.Queue()

    @property
    def running(self) -> bool:
        return self._running

    def pending_count(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        self.stop()
        self._running = True
        self._task = asyncio.create_task(self._loop(self._generation))

    def post(self, event: PlatformEvent) -> None:
        """Queue a platform event. Safe to call from any callback on the loop."""
        if not self._running:
            log.debug(f"Pump stopped; dropping {event!r}")
            return
        self._queue.put_nowait(QueuedEvent(generation=self._generation, event=event))

    async def drain(self) -> None:
        """Wait until everything queued so far has been dispatched or dropped."""
        await self._queue.join()

    def cancel_queued(self) -> bool:
        """Drop queued items; ignore anything already dequeued."""
        dropped_any = False
        while not self._queue.empty():
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            else:
                dropped_any = True
                self._queue.task_done()
        return dropped_any

    def stop(self) -> None:
        self._running = False
        self._generation += 1

        task = self._task
        self._task = None
        # A dispatch handler may be the one stopping us; let it finish instead
        # of cancelling ourselves mid-teardown.
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()

        self.cancel_queued()

    async def _loop(self, generation: int) -> None:
        try:
            while self._generation == generation:
                item = await self._queue.get()
                try:
                    if item.generation != self._generation:
                        continue
                    await self._dispatch(item.event)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    log.exception(f"Event pump dispatch error ({type(item.event).__name__})")
                finally:
                    self._queue.task_done()
        except asyncio.CancelledError:
            return
