from __future__ import annotations

import pytest

from app.pubsub import Topic


@pytest.mark.asyncio
async def test_publish_reaches_sync_and_async_handlers() -> None:
    topic: Topic[str] = Topic("t")
    seen: list[str] = []

    async def _async(event: str) -> None:
        seen.append(f"async:{event}")

    topic.subscribe(lambda e: seen.append(f"sync:{e}"))
    topic.subscribe(_async)

    failures = await topic.publish("hello")

    assert failures == []
    assert sorted(seen) == ["async:hello", "sync:hello"]


@pytest.mark.asyncio
async def test_failing_handler_does_not_affect_others() -> None:
    topic: Topic[int] = Topic("t")
    seen: list[int] = []

    def _boom(event: int) -> None:
        raise RuntimeError("boom")

    topic.subscribe(_boom)
    topic.subscribe(seen.append)

    failures = await topic.publish(7)

    assert seen == [7]
    assert len(failures) == 1
    assert isinstance(failures[0], RuntimeError)


@pytest.mark.asyncio
async def test_unsubscribe_and_duplicate_subscribe() -> None:
    topic: Topic[int] = Topic("t")
    seen: list[int] = []

    topic.subscribe(seen.append)
    topic.subscribe(seen.append)
    assert len(topic) == 1

    await topic.publish(1)
    topic.unsubscribe(seen.append)
    topic.unsubscribe(seen.append)
    await topic.publish(2)

    assert seen == [1]
