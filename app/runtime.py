from __future__ import annotations

import redis

from app.emulation import StreamCommandEmulator
from app.fanout import BroadcastFanout
from app.infra.config import AppConfig
from app.input_gate import InputGate, InputRateCache
from app.local_display import FileLocalDisplay
from app.registry import DestinationRegistry
from app.rendering import RelayRenderer
from app.session import SessionController
from app.settings_store import SettingsStore
from app.statistics import SessionStatistics
from app.transport import RedisMessageBoard


_CONTROLLER: SessionController | None = None


def build_controller(*, r: redis.Redis, config: AppConfig) -> SessionController:
    store = SettingsStore(r=r, key=config.settings_key, default_owners=config.default_owners)
    transport = RedisMessageBoard(r=r)
    registry = DestinationRegistry(store=store, transport=transport)

    return SessionController(
        store=store,
        transport=transport,
        registry=registry,
        fanout=BroadcastFanout(registry=registry),
        gate=InputGate(
            settings=lambda: store.current,
            rate_limit=config.input_rate_limit_s,
            cache=InputRateCache(ttl=config.input_cache_ttl_s, max_size=config.input_cache_max_size),
        ),
        emulator=StreamCommandEmulator(r=r, settings=lambda: store.current, stream_key=config.emulator_stream),
        renderer=RelayRenderer(),
        statistics=SessionStatistics(store=store),
        local_display=FileLocalDisplay(path=config.local_display_path),
    )


def init_controller(*, r: redis.Redis, config: AppConfig) -> SessionController:
    """Build the process-wide controller once.

    Safe to call multiple times; subsequent calls return the existing instance.
    """

    global _CONTROLLER
    if _CONTROLLER is None:
        _CONTROLLER = build_controller(r=r, config=config)
    return _CONTROLLER


def reset_controller_for_tests() -> None:
    global _CONTROLLER
    _CONTROLLER = None


def get_controller() -> SessionController:
    if _CONTROLLER is None:
        raise RuntimeError("Controller not initialized. Call init_controller() at startup.")
    return _CONTROLLER
