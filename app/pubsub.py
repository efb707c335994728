from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Handler = Callable[[T], Awaitable[None] | None]


class Topic(Generic[T]):
    """In-process publish/subscribe for one kind of event.

    Every handler subscribed when `publish` is called gets the event, sync or async.
    A failing handler is logged and does not affect the others.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._handlers: list[Handler[T]] = []

    def subscribe(self, handler: Handler[T]) -> None:
        if handler not in self._handlers:
            self._handlers.append(handler)

    def unsubscribe(self, handler: Handler[T]) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def __len__(self) -> int:
        return len(self._handlers)

    async def _call(self, handler: Handler[T], event: T) -> None:
        result = handler(event)
        if inspect.isawaitable(result):
            await result

    async def publish(self, event: T) -> list[BaseException]:
        handlers = list(self._handlers)
        if not handlers:
            return []

        results = await asyncio.gather(*(self._call(h, event) for h in handlers), return_exceptions=True)

        failures: list[BaseException] = []
        for handler, result in zip(handlers, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.error("Consumer %r of %s failed", handler, self.name, exc_info=result)
                failures.append(result)
        return failures
