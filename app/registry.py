from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass

from app.api.models import DestinationDescriptor, Settings
from app.errors import ConflictError
from app.settings_store import SettingsStore
from app.transport import MessageHandle, MessageRef, MessageTransport

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Destination:
    community_id: str
    stream: MessageHandle
    status: MessageHandle

    def to_descriptor(self) -> DestinationDescriptor:
        return DestinationDescriptor(
            community_id=self.community_id,
            stream_message=self.stream.ref.to_compact(),
            status_message=self.status.ref.to_compact(),
        )


async def resolve_descriptor(*, transport: MessageTransport, descriptor: DestinationDescriptor) -> Destination | None:
    """Turn a persisted descriptor back into a live destination, None if any message is gone."""

    try:
        stream_ref = MessageRef.from_compact(descriptor.stream_message)
        status_ref = MessageRef.from_compact(descriptor.status_message)
    except ValueError:
        logger.warning("Dropping malformed host descriptor for community %s", descriptor.community_id)
        return None

    stream, status = await asyncio.gather(transport.resolve(stream_ref), transport.resolve(status_ref))
    if stream is None or status is None:
        return None
    return Destination(community_id=descriptor.community_id, stream=stream, status=status)


class DestinationRegistry:
    """community_id -> Destination, mirrored into the settings document.

    Each mutation rewrites the whole host list before returning. Readers get
    copies (`snapshot`) and never block on a write in progress.
    """

    def __init__(self, *, store: SettingsStore, transport: MessageTransport) -> None:
        self._store = store
        self._transport = transport
        self._by_community: dict[str, Destination] = {}
        self._lock = threading.Lock()

    def ensure_vacant(self, community_id: str) -> None:
        if community_id in self._by_community:
            raise ConflictError(
                f"Community {community_id} already hosts a stream, "
                "only one host per community allowed, first delete the existing host"
            )

    def add(self, destination: Destination) -> None:
        with self._lock:
            self.ensure_vacant(destination.community_id)
            self._by_community[destination.community_id] = destination
            self._persist()
        logger.info("Registered host for community %s", destination.community_id)

    def remove(self, destination: Destination) -> bool:
        """Remove `destination` if it is the one registered for its community."""

        with self._lock:
            if self._by_community.get(destination.community_id) != destination:
                return False
            del self._by_community[destination.community_id]
            self._persist()
        logger.info("Removed host for community %s", destination.community_id)
        return True

    def lookup(self, community_id: str) -> Destination | None:
        return self._by_community.get(community_id)

    def snapshot(self) -> tuple[Destination, ...]:
        return tuple(self._by_community.values())

    def __len__(self) -> int:
        return len(self._by_community)

    async def load_from_settings(self) -> list[Destination]:
        descriptors = self._store.load().hosts
        resolved = await asyncio.gather(
            *(resolve_descriptor(transport=self._transport, descriptor=d) for d in descriptors)
        )

        live: dict[str, Destination] = {}
        for dest in resolved:
            if dest is not None and dest.community_id not in live:
                live[dest.community_id] = dest

        dropped = len(descriptors) - len(live)
        if dropped:
            logger.info("Dropped %d host(s) whose messages no longer exist", dropped)

        with self._lock:
            self._by_community = live
            self._persist()
        return list(live.values())

    def _persist(self) -> None:
        hosts = [d.to_descriptor() for d in self._by_community.values()]

        def _set_hosts(s: Settings) -> None:
            s.hosts = hosts

        self._store.edit(_set_hosts)
