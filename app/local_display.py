from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class FileLocalDisplay:
    """Local display for the machine running the service.

    While active, every frame and gif is written to `path` so a viewer on the box
    can follow the stream.
    """

    def __init__(self, *, path: Path | None = None) -> None:
        self.path = path
        self.sound = False
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def activate(self, sound: bool) -> None:
        self._active = True
        self.sound = sound
        logger.info("Local display activated (%s sound)", "with" if sound else "without")

    def deactivate(self) -> None:
        self._active = False
        self.sound = False
        logger.info("Local display deactivated")

    def _write(self, data: bytes, suffix: str) -> None:
        if not self._active or self.path is None:
            return
        target = self.path.with_suffix(suffix)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    def accept_frame(self, frame: bytes) -> None:
        self._write(frame, ".png")

    def accept_gif(self, gif: bytes) -> None:
        self._write(gif, ".gif")
