from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from collections.abc import Callable

from app.api.models import Settings
from app.collaborators import StatisticsConsumer
from app.input_gate import InputEvent
from app.pubsub import Topic
from app.settings_store import SettingsStore

logger = logging.getLogger(__name__)

TOP_PLAYERS = 5


def format_playtime(ms: int) -> str:
    minutes, _ = divmod(ms // 1000, 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)
    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def render_stats_text(settings: Settings, *, top: int = TOP_PLAYERS) -> str:
    counts = settings.user_to_input_count
    lines = [
        f"Playtime: {format_playtime(settings.playtime_ms)}",
        f"Inputs: {sum(counts.values())}",
        f"Players: {len(counts)}",
    ]
    ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[:top]
    if ranked:
        lines.append("Top players:")
        lines.extend(f"{i}. {actor} ({n})" for i, (actor, n) in enumerate(ranked, start=1))
    return "\n".join(lines)


class SessionStatistics:
    """Cumulative playtime and per-actor input counts.

    Inputs are counted in memory and folded into the settings document on each
    flush (every published update and at session stop), so an input never costs a
    settings write on its own.
    """

    def __init__(self, *, store: SettingsStore, clock: Callable[[], float] = time.monotonic) -> None:
        self._store = store
        self._clock = clock
        self._pending: Counter[str] = Counter()
        self._last_flush: float | None = None
        self.updates: Topic[str] = Topic("statistics")

    @property
    def running(self) -> bool:
        return self._last_flush is not None

    def add_statistics_consumer(self, consumer: StatisticsConsumer) -> None:
        self.updates.subscribe(consumer.accept_statistics)

    def remove_statistics_consumer(self, consumer: StatisticsConsumer) -> None:
        self.updates.unsubscribe(consumer.accept_statistics)

    def on_session_started(self) -> None:
        self._last_flush = self._clock()

    def on_session_stopped(self) -> None:
        try:
            self.flush()
        finally:
            self._last_flush = None

    def on_user_input(self, event: InputEvent) -> None:
        self._pending[event.actor_id] += 1

    def flush(self) -> Settings:
        now = self._clock()
        elapsed_ms = 0 if self._last_flush is None else int((now - self._last_flush) * 1000)
        pending = self._pending
        if not elapsed_ms and not pending:
            return self._store.current

        def _fold(s: Settings) -> None:
            s.playtime_ms += elapsed_ms
            for actor_id, n in pending.items():
                s.user_to_input_count[actor_id] = s.user_to_input_count.get(actor_id, 0) + n

        # Pending counts survive a failed write and go out with the next flush.
        settings = self._store.edit(_fold)
        self._pending = Counter()
        if self._last_flush is not None:
            self._last_flush = now
        return settings

    def clear(self) -> Settings:
        """Drop all cumulative statistics, including inputs not yet flushed."""

        self._pending = Counter()
        if self._last_flush is not None:
            self._last_flush = self._clock()
        return self._store.clear_statistics()

    def render(self) -> str:
        return render_stats_text(self.flush())

    async def publish(self) -> str:
        text = self.render()
        await self.updates.publish(text)
        return text

    async def run_periodic(self, interval: float) -> None:
        """Publish an update every `interval` seconds while a session is running."""

        while True:
            await asyncio.sleep(interval)
            if self.running:
                try:
                    await self.publish()
                except Exception:
                    logger.exception("Publishing statistics failed")
