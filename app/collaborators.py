"""Interfaces of the collaborators the session controller drives.

The emulator and the renderer run their own loops elsewhere; the controller only
needs these calls.
"""

from __future__ import annotations

from typing import Protocol

from app.api.models import Button
from app.input_gate import InputEvent


class StreamConsumer(Protocol):
    def accept_frame(self, frame: bytes) -> object: ...

    def accept_gif(self, gif: bytes) -> object: ...


class StatisticsConsumer(Protocol):
    def accept_statistics(self, stats: str) -> object: ...


class Emulator(Protocol):
    def start(self) -> None: ...

    def stop(self) -> None: ...

    def click_button(self, button: Button) -> None: ...

    def mute_sound(self) -> None: ...


class StreamRenderer(Protocol):
    global_message: str | None

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def add_stream_consumer(self, consumer: StreamConsumer) -> None: ...

    def remove_stream_consumer(self, consumer: StreamConsumer) -> None: ...

    def record_user_input(self, event: InputEvent) -> None: ...

    # Render process side: overlay state out, finished frames and gifs in.
    def overlay(self) -> dict[str, object]: ...

    async def push_frame(self, frame: bytes) -> int: ...

    async def push_gif(self, gif: bytes) -> int: ...


class LocalDisplay(StreamConsumer, Protocol):
    @property
    def active(self) -> bool: ...

    def activate(self, sound: bool) -> None: ...

    def deactivate(self) -> None: ...
