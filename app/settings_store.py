from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable

import redis

from app.api.models import GameMetadataEntity, Settings
from app.errors import PreconditionError
from app.lock import settings_lock

logger = logging.getLogger(__name__)

SETTINGS_KEY = "crowdplays:settings"


class SettingsStore:
    """The single persisted settings document.

    Reads are served from an in-memory copy. Every edit re-reads the stored document,
    applies the mutation and rewrites it wholesale inside one critical section, then
    swaps the in-memory copy. The copy is never mutated in place, so a reader holding
    `current` always sees a consistent document.
    """

    def __init__(self, *, r: redis.Redis, key: str = SETTINGS_KEY, default_owners: Iterable[str] = ()) -> None:
        self._r = r
        self._key = key
        self._default_owners = set(default_owners)
        self._mutex = threading.Lock()
        self._current = self._read()

    @property
    def current(self) -> Settings:
        return self._current

    def _read(self) -> Settings:
        raw = self._r.get(self._key)
        if not raw:
            return Settings(owners=set(self._default_owners))
        return Settings.model_validate_json(raw)

    def load(self) -> Settings:
        with self._mutex:
            self._current = self._read()
            return self._current

    def save(self, settings: Settings) -> None:
        with self._mutex, settings_lock(r=self._r, key=self._key):
            self._r.set(self._key, settings.model_dump_json())
            self._current = settings

    def edit(self, mutate: Callable[[Settings], None]) -> Settings:
        with self._mutex, settings_lock(r=self._r, key=self._key):
            settings = self._read().model_copy(deep=True)
            mutate(settings)
            self._r.set(self._key, settings.model_dump_json())
            self._current = settings
            return settings

    # ---- owner administration ----

    def add_owner(self, actor_id: str) -> Settings:
        def _add(s: Settings) -> None:
            s.owners.add(actor_id)
            s.banned_users.discard(actor_id)

        settings = self.edit(_add)
        logger.info("Added %s to the owners", actor_id)
        return settings

    def ban_user(self, actor_id: str) -> Settings:
        if actor_id in self._current.owners:
            raise PreconditionError("Cannot ban an owner of the event.")

        def _ban(s: Settings) -> None:
            # Re-checked on the fresh document in case another writer got in first.
            if actor_id in s.owners:
                raise PreconditionError("Cannot ban an owner of the event.")
            s.banned_users.add(actor_id)

        settings = self.edit(_ban)
        logger.info("Banned %s from the event", actor_id)
        return settings

    def unban_user(self, actor_id: str) -> Settings:
        settings = self.edit(lambda s: s.banned_users.discard(actor_id))
        logger.info("Unbanned %s", actor_id)
        return settings

    def set_game_metadata(self, entity: GameMetadataEntity | str, value: str) -> Settings:
        entity = GameMetadataEntity(entity)
        if not value.strip():
            raise ValueError(f"{entity.value} must not be empty")

        def _set(s: Settings) -> None:
            if entity == GameMetadataEntity.rom_path:
                s.rom_path = value
            else:
                s.game_title = value

        settings = self.edit(_set)
        logger.info("Changed metadata %s to %s", entity.value, value)
        return settings

    def clear_statistics(self) -> Settings:
        def _clear(s: Settings) -> None:
            s.playtime_ms = 0
            s.user_to_input_count = {}

        settings = self.edit(_clear)
        logger.info("Cleared all statistics")
        return settings
