from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field


class Button(StrEnum):
    a = "a"
    b = "b"
    start = "start"
    select = "select"
    up = "up"
    down = "down"
    left = "left"
    right = "right"


class InputOutcome(StrEnum):
    accepted = "accepted"
    rate_limited = "rate_limited"
    blocked_non_owner = "blocked_non_owner"
    actor_banned = "actor_banned"


class SessionPhase(StrEnum):
    stopped = "stopped"
    running = "running"


class GameMetadataEntity(StrEnum):
    rom_path = "rom_path"
    title = "title"


class DestinationDescriptor(BaseModel):
    """Persisted form of a destination.

    Message references are kept in their compact `<channel_id>:<message_id>` form,
    see `app.transport.MessageRef`.
    """

    community_id: str
    stream_message: str
    status_message: str


class Settings(BaseModel):
    rom_path: str = "Pokemon Red TPP.gb"
    game_title: str = "Pokemon Red"

    owners: set[str] = Field(default_factory=set)
    banned_users: set[str] = Field(default_factory=set)

    # At most one entry per community_id.
    hosts: list[DestinationDescriptor] = Field(default_factory=list)

    # Cumulative statistics, survive restarts until explicitly cleared.
    playtime_ms: int = 0
    user_to_input_count: dict[str, int] = Field(default_factory=dict)


class SessionStatus(BaseModel):
    phase: SessionPhase
    input_locked_to_owners: bool
    local_display_active: bool
    global_message: str | None = None
    hosts: int = 0


class InputRequest(BaseModel):
    actor_id: str = Field(..., min_length=1)
    button: Button


class InputResponse(BaseModel):
    outcome: InputOutcome


class LockInputRequest(BaseModel):
    locked: bool


class LocalDisplayRequest(BaseModel):
    activate: bool
    sound: bool = False


class MessageRequest(BaseModel):
    # None clears the message.
    message: str | None = None


class ChatMessageRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)


class HostRequest(BaseModel):
    community_id: str = Field(..., min_length=1)
    channel_id: str = Field(..., min_length=1)


class HostResponse(BaseModel):
    community_id: str
    stream_message: str
    status_message: str


class HostListResponse(BaseModel):
    hosts: list[HostResponse]


class ActorRequest(BaseModel):
    actor_id: str = Field(..., min_length=1)


class GameMetadataRequest(BaseModel):
    entity: GameMetadataEntity
    value: str = Field(..., min_length=1)


class LogLevelRequest(BaseModel):
    level: str


class BroadcastSummary(BaseModel):
    delivered: int
    removed: list[str] = Field(default_factory=list)
