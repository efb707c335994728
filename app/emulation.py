from __future__ import annotations

import logging
from collections.abc import Callable

import redis

from app.api.models import Button, Settings
from app.streams import publish_command

logger = logging.getLogger(__name__)

EMULATOR_STREAM = "crowdplays:emulator"


class StreamCommandEmulator:
    """Emulator collaborator that forwards commands to an emulator process.

    Commands go to a redis stream the emulator process consumes in order. Button
    presses while stopped are dropped.
    """

    def __init__(
        self,
        *,
        r: redis.Redis,
        settings: Callable[[], Settings],
        stream_key: str = EMULATOR_STREAM,
        maxlen: int = 10_000,
    ) -> None:
        self._r = r
        self._settings = settings
        self.stream_key = stream_key
        self._maxlen = maxlen
        self.running = False

    def _send(self, command: str, **fields: str) -> str:
        return publish_command(r=self._r, stream_key=self.stream_key, fields={"type": command, **fields}, maxlen=self._maxlen)

    def start(self) -> None:
        settings = self._settings()
        self._send("start", rom_path=settings.rom_path, title=settings.game_title)
        self.running = True
        logger.info("Emulator started with %s", settings.rom_path)

    def stop(self) -> None:
        self._send("stop")
        self.running = False
        logger.info("Emulator stopped")

    def click_button(self, button: Button) -> None:
        if not self.running:
            logger.debug("Dropping %s, emulator is not running", button.value)
            return
        self._send("button", button=button.value)

    def mute_sound(self) -> None:
        self._send("mute")
