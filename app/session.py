from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path

import redis

from app.api.models import Button, InputOutcome, SessionPhase, SessionStatus
from app.collaborators import Emulator, LocalDisplay, StreamRenderer
from app.errors import ConflictError, PreconditionError, UnknownDestinationError
from app.fanout import BroadcastFanout, BroadcastReport, PayloadKind, StatusText, StreamFile
from app.fsm import SessionFSM
from app.input_gate import InputEvent, InputGate
from app.lock import LockBusyError
from app.registry import Destination, DestinationRegistry
from app.settings_store import SettingsStore
from app.statistics import SessionStatistics
from app.transport import MessageTransport

logger = logging.getLogger(__name__)

_RESOURCES = Path(__file__).resolve().parent / "resources"
OFFLINE_COVER = _RESOURCES / "currently_offline.png"
STARTING_SOON_COVER = _RESOURCES / "starting_soon.png"


def _require_non_empty(message: str | None, what: str) -> None:
    if message is not None and not message.strip():
        raise ValueError(f"Cannot send an empty {what}.")


class SessionController:
    """The shared game session and its broadcast.

    Owns the input gate, the destination registry and the fan-out engine, and drives
    the emulator, renderer and statistics collaborators through the stopped/running
    lifecycle.
    """

    def __init__(
        self,
        *,
        store: SettingsStore,
        transport: MessageTransport,
        registry: DestinationRegistry,
        fanout: BroadcastFanout,
        gate: InputGate,
        emulator: Emulator,
        renderer: StreamRenderer,
        statistics: SessionStatistics,
        local_display: LocalDisplay,
        offline_image: bytes | None = None,
        starting_soon_image: bytes | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.transport = transport
        self.registry = registry
        self.fanout = fanout
        self.gate = gate
        self.emulator = emulator
        self.renderer = renderer
        self.statistics = statistics
        self.local_display = local_display
        self._offline_image = offline_image if offline_image is not None else OFFLINE_COVER.read_bytes()
        self._starting_soon_image = (
            starting_soon_image if starting_soon_image is not None else STARTING_SOON_COVER.read_bytes()
        )
        self._clock = clock
        self._fsm = SessionFSM()

        renderer.add_stream_consumer(fanout)
        statistics.add_statistics_consumer(fanout)

    @property
    def phase(self) -> SessionPhase:
        return self._fsm.phase

    @property
    def is_running(self) -> bool:
        return self.phase == SessionPhase.running

    def status(self) -> SessionStatus:
        return SessionStatus(
            phase=self.phase,
            input_locked_to_owners=self.gate.locked_to_owners,
            local_display_active=self.local_display.active,
            global_message=self.renderer.global_message,
            hosts=len(self.registry),
        )

    # ---- lifecycle ----

    async def start(self) -> None:
        if self.is_running:
            raise PreconditionError("Game is already running.")

        await self.registry.load_from_settings()

        self.emulator.start()
        self.renderer.start()
        self.statistics.on_session_started()
        self._fsm.launch()
        logger.info("Game started, streaming to %d host(s)", len(self.registry))

    async def stop(self) -> BroadcastReport:
        if not self.is_running:
            raise PreconditionError("Game is not running.")

        self.emulator.stop()
        self.renderer.stop()
        self._fsm.halt()
        logger.info("Game stopped")

        try:
            self.statistics.on_session_stopped()
        except (LockBusyError, redis.RedisError):
            # Unflushed inputs stay pending for the next flush.
            logger.exception("Saving statistics on stop failed")

        return await self.fanout.broadcast(
            PayloadKind.stream_frame_gif,
            StreamFile(name="stream.png", data=self._offline_image),
        )

    # ---- input ----

    def submit_input(self, actor_id: str, button: Button, now: float | None = None) -> InputOutcome:
        at = self._clock() if now is None else now
        outcome = self.gate.admit(actor_id, button, at)
        if outcome != InputOutcome.accepted:
            return outcome

        event = InputEvent(actor_id=actor_id, button=button, at=at)
        self.renderer.record_user_input(event)
        self.emulator.click_button(button)
        self.statistics.on_user_input(event)
        return outcome

    def lock_input(self, locked: bool) -> None:
        self.gate.locked_to_owners = locked
        logger.info("%s user input", "Locked" if locked else "Unlocked")

    # ---- local display ----

    def attach_local_observer(self, sound: bool = False) -> None:
        self.local_display.activate(sound)
        self.renderer.add_stream_consumer(self.local_display)

    def detach_local_observer(self) -> None:
        self.renderer.remove_stream_consumer(self.local_display)
        self.local_display.deactivate()
        self.emulator.mute_sound()

    # ---- messages ----

    def set_global_message(self, message: str | None) -> None:
        _require_non_empty(message, "global message")
        self.renderer.global_message = message

    async def set_destination_message(self, community_id: str, message: str | None) -> None:
        _require_non_empty(message, "community message")

        delivered = await self.fanout.deliver_to(community_id, PayloadKind.stream_caption, StatusText(text=message))
        if not delivered:
            raise UnknownDestinationError(f"The stream hosted in community {community_id} no longer exists.")

    async def send_chat_message(self, message: str) -> BroadcastReport:
        if not message.strip():
            raise ValueError("Cannot send an empty chat message.")
        return await self.fanout.broadcast(PayloadKind.chat_message, message)

    # ---- destinations ----

    def register_destination(self, destination: Destination) -> None:
        self.registry.add(destination)

    async def host(self, community_id: str, channel_id: str) -> Destination:
        """Create the stream and status messages in `channel_id` and register them."""

        # Fail before creating messages that would be orphaned.
        self.registry.ensure_vacant(community_id)

        cover = self._starting_soon_image if self.is_running else self._offline_image
        stream_ref = await self.transport.create_message(channel_id)
        await self.transport.edit_attachment(stream_ref, "stream.png", cover)
        status_ref = await self.transport.create_message(channel_id)

        stream = await self.transport.resolve(stream_ref)
        status = await self.transport.resolve(status_ref)
        if stream is None or status is None:
            raise UnknownDestinationError(f"Messages for community {community_id} vanished while hosting.")

        destination = Destination(community_id=community_id, stream=stream, status=status)
        try:
            self.registry.add(destination)
        except ConflictError:
            # Another host for the community won the race while the messages were created.
            await self.transport.delete_message(stream_ref)
            await self.transport.delete_message(status_ref)
            raise
        return destination

    def unhost(self, community_id: str) -> Destination:
        destination = self.registry.lookup(community_id)
        if destination is None:
            raise UnknownDestinationError(f"Could not find any stream hosted in community {community_id}.")
        self.registry.remove(destination)
        return destination

    # ---- administration ----

    def add_owner(self, actor_id: str) -> None:
        self.store.add_owner(actor_id)

    def ban_user(self, actor_id: str) -> None:
        self.store.ban_user(actor_id)

    def unban_user(self, actor_id: str) -> None:
        self.store.unban_user(actor_id)

    def clear_statistics(self) -> None:
        self.statistics.clear()
