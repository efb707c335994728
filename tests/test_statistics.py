from __future__ import annotations

import fakeredis
import pytest

from app.api.models import Button, Settings
from app.input_gate import InputEvent
from app.settings_store import SettingsStore
from app.statistics import SessionStatistics, format_playtime, render_stats_text


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _event(actor_id: str) -> InputEvent:
    return InputEvent(actor_id=actor_id, button=Button.a, at=0.0)


def test_format_playtime() -> None:
    assert format_playtime(59_000) == "0m"
    assert format_playtime(61_000) == "1m"
    assert format_playtime((2 * 3600 + 5 * 60) * 1000) == "2h 5m"
    assert format_playtime((26 * 3600) * 1000) == "1d 2h 0m"


def test_render_stats_text_ranks_players() -> None:
    text = render_stats_text(
        Settings(playtime_ms=3_600_000, user_to_input_count={"bob": 2, "alice": 5, "carol": 2}),
        top=2,
    )

    assert "Playtime: 1h 0m" in text
    assert "Inputs: 9" in text
    assert "Players: 3" in text
    assert "1. alice (5)" in text
    assert "2. bob (2)" in text
    assert "carol" not in text


def test_playtime_and_inputs_fold_into_settings(r: fakeredis.FakeRedis) -> None:
    store = SettingsStore(r=r)
    clock = FakeClock()
    stats = SessionStatistics(store=store, clock=clock)

    stats.on_session_started()
    stats.on_user_input(_event("alice"))
    stats.on_user_input(_event("alice"))
    stats.on_user_input(_event("bob"))
    # Inputs are not written one by one.
    assert store.current.user_to_input_count == {}

    clock.now = 90.0
    stats.on_session_stopped()

    assert store.current.playtime_ms == 90_000
    assert store.current.user_to_input_count == {"alice": 2, "bob": 1}
    assert not stats.running

    # Stopped time does not count.
    clock.now = 500.0
    stats.flush()
    assert store.current.playtime_ms == 90_000


def test_clear_drops_pending_inputs(r: fakeredis.FakeRedis) -> None:
    store = SettingsStore(r=r)
    clock = FakeClock()
    stats = SessionStatistics(store=store, clock=clock)
    stats.on_session_started()
    stats.on_user_input(_event("alice"))
    clock.now = 10.0

    stats.clear()
    clock.now = 12.0
    stats.flush()

    assert store.current.user_to_input_count == {}
    assert store.current.playtime_ms == 2_000


@pytest.mark.asyncio
async def test_publish_notifies_consumers(r: fakeredis.FakeRedis) -> None:
    stats = SessionStatistics(store=SettingsStore(r=r), clock=FakeClock())
    received: list[str] = []

    class _Consumer:
        def accept_statistics(self, text: str) -> None:
            received.append(text)

    consumer = _Consumer()
    stats.add_statistics_consumer(consumer)
    stats.on_session_started()
    stats.on_user_input(_event("alice"))

    text = await stats.publish()

    assert received == [text]
    assert "1. alice (1)" in text

    stats.remove_statistics_consumer(consumer)
    await stats.publish()
    assert len(received) == 1
