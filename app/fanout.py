from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import StrEnum

from app.errors import BroadcastError, StaleReferenceError, UnknownDestinationError
from app.registry import Destination, DestinationRegistry

logger = logging.getLogger(__name__)

STATS_TITLE = "Stats"


class PayloadKind(StrEnum):
    stream_frame_gif = "stream_frame_gif"
    stream_caption = "stream_caption"
    status_text = "status_text"
    chat_message = "chat_message"


@dataclass(frozen=True, slots=True)
class StreamFile:
    name: str
    data: bytes


@dataclass(frozen=True, slots=True)
class StatusText:
    # None clears the text block.
    text: str | None
    title: str | None = None


@dataclass(slots=True)
class BroadcastReport:
    delivered: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)


Payload = StreamFile | StatusText | str


_PAYLOAD_TYPES: dict[PayloadKind, type] = {
    PayloadKind.stream_frame_gif: StreamFile,
    PayloadKind.stream_caption: StatusText,
    PayloadKind.status_text: StatusText,
    PayloadKind.chat_message: str,
}


def check_payload(kind: PayloadKind, payload: Payload) -> None:
    expected = _PAYLOAD_TYPES.get(kind)
    if expected is None:
        raise ValueError(f"Unknown payload kind: {kind}")
    if not isinstance(payload, expected):
        raise TypeError(f"{kind.value} payload must be {expected.__name__}, got {type(payload).__name__}")


async def deliver(destination: Destination, kind: PayloadKind, payload: Payload) -> None:
    """Apply one payload to one destination. Transport errors propagate."""

    check_payload(kind, payload)
    if isinstance(payload, StreamFile):
        await destination.stream.edit_attachment(payload.name, payload.data)
    elif isinstance(payload, str):
        await destination.status.reply(payload)
    elif kind == PayloadKind.stream_caption:
        await destination.stream.edit_text(payload.text, title=payload.title)
    else:
        await destination.status.edit_text(payload.text, title=payload.title)


class BroadcastFanout:
    """Delivers stream and status updates to every registered destination.

    Deliveries run concurrently. A destination whose message was deleted is removed
    from the registry; any other failure is collected and raised as one
    `BroadcastError` after every destination had its attempt.

    Also acts as the stream consumer of the renderer and the statistics consumer of
    the statistics collaborator.
    """

    def __init__(self, *, registry: DestinationRegistry) -> None:
        self._registry = registry

    async def _deliver_one(self, destination: Destination, kind: PayloadKind, payload: Payload) -> bool:
        """True if delivered, False if the destination turned out to be stale."""

        try:
            await deliver(destination, kind, payload)
        except StaleReferenceError as e:
            logger.info(
                "Message %s of community %s is gone, removing the host",
                e.ref.to_compact(),
                destination.community_id,
            )
            self._registry.remove(destination)
            return False
        return True

    async def broadcast(self, kind: PayloadKind, payload: Payload) -> BroadcastReport:
        check_payload(kind, payload)
        destinations = self._registry.snapshot()
        report = BroadcastReport()
        if not destinations:
            return report

        results = await asyncio.gather(
            *(self._deliver_one(d, kind, payload) for d in destinations),
            return_exceptions=True,
        )

        faults: list[Exception] = []
        for dest, result in zip(destinations, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                logger.error("Delivering %s to community %s failed: %s", kind.value, dest.community_id, result)
                faults.append(result)
            elif result:
                report.delivered.append(dest.community_id)
            else:
                report.removed.append(dest.community_id)

        if faults:
            raise BroadcastError(f"{len(faults)} of {len(destinations)} {kind.value} deliveries failed", faults)
        return report

    async def deliver_to(self, community_id: str, kind: PayloadKind, payload: Payload) -> bool:
        """Deliver to a single community's destination.

        Returns False when the destination was stale and got removed; raises
        `UnknownDestinationError` if the community hosts nothing.
        """

        destination = self._registry.lookup(community_id)
        if destination is None:
            raise UnknownDestinationError(f"Could not find any stream hosted in community {community_id}.")
        return await self._deliver_one(destination, kind, payload)

    # ---- consumer side ----

    def accept_frame(self, frame: bytes) -> None:
        # Destinations only get gifs.
        return None

    async def accept_gif(self, gif: bytes) -> None:
        await self.broadcast(PayloadKind.stream_frame_gif, StreamFile(name="image.gif", data=gif))

    async def accept_statistics(self, stats: str) -> None:
        await self.broadcast(PayloadKind.status_text, StatusText(text=stats, title=STATS_TITLE))
