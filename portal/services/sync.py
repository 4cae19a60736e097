"""Change notification for views that share the device and order collections.

Writers publish a ``ChangeEvent`` after every successful write. Consumers
that cannot be pushed to use ``Poller`` instead, which re-runs a fetch on a
fixed cadence.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

logger = logging.getLogger("portal.sync")

T = TypeVar("T")


@dataclass(frozen=True)
class ChangeEvent:
    key: str
    revision: int
    action: str
    device_id: str | None = None


Subscriber = Callable[[ChangeEvent], None]


class ChangeFeed:
    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: ChangeEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                # One broken view must not starve the others of updates.
                logger.exception(
                    "sync.subscriber_failed",
                    extra={"extra_data": {"key": event.key, "action": event.action}},
                )

    def __len__(self) -> int:
        return len(self._subscribers)


class Poller(Generic[T]):
    """Call ``fetch`` every ``interval`` seconds and hand the result on."""

    def __init__(
        self,
        fetch: Callable[[], Awaitable[T]],
        on_result: Callable[[T], None],
        *,
        interval: float,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._fetch = fetch
        self._on_result = on_result
        self.interval = interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def poll_once(self) -> T:
        result = await self._fetch()
        self._on_result(result)
        return result

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            try:
                await self.poll_once()
            except Exception:
                logger.exception("sync.poll_failed")
            await asyncio.sleep(self.interval)
