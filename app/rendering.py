from __future__ import annotations

import logging
from collections import deque

from app.collaborators import StreamConsumer
from app.input_gate import InputEvent
from app.pubsub import Topic

logger = logging.getLogger(__name__)


class RelayRenderer:
    """Renderer collaborator fed by an external render process.

    The render process pulls the overlay state (global message, recent inputs) and
    pushes back finished frames and gifs, which are relayed to every subscribed
    stream consumer. Pushes while stopped are dropped.
    """

    def __init__(self, *, recent_inputs: int = 10) -> None:
        self.frames: Topic[bytes] = Topic("frames")
        self.gifs: Topic[bytes] = Topic("gifs")
        self.global_message: str | None = None
        self.running = False
        self._recent_inputs: deque[InputEvent] = deque(maxlen=recent_inputs)

    def start(self) -> None:
        self.running = True

    def stop(self) -> None:
        self.running = False
        self._recent_inputs.clear()

    def add_stream_consumer(self, consumer: StreamConsumer) -> None:
        self.frames.subscribe(consumer.accept_frame)
        self.gifs.subscribe(consumer.accept_gif)

    def remove_stream_consumer(self, consumer: StreamConsumer) -> None:
        self.frames.unsubscribe(consumer.accept_frame)
        self.gifs.unsubscribe(consumer.accept_gif)

    def record_user_input(self, event: InputEvent) -> None:
        self._recent_inputs.append(event)

    def overlay(self) -> dict[str, object]:
        return {
            "global_message": self.global_message,
            "recent_inputs": [{"actor_id": e.actor_id, "button": e.button.value} for e in self._recent_inputs],
        }

    async def push_frame(self, frame: bytes) -> int:
        if not self.running:
            logger.debug("Dropping frame, renderer is stopped")
            return 0
        await self.frames.publish(frame)
        return len(self.frames)

    async def push_gif(self, gif: bytes) -> int:
        if not self.running:
            logger.debug("Dropping gif, renderer is stopped")
            return 0
        await self.gifs.publish(gif)
        return len(self.gifs)
