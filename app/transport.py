from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Protocol

import redis

from app.errors import StaleReferenceError, TransportFault


@dataclass(frozen=True, slots=True)
class MessageRef:
    channel_id: str
    message_id: str

    def to_compact(self) -> str:
        return f"{self.channel_id}:{self.message_id}"

    @staticmethod
    def from_compact(raw: str) -> "MessageRef":
        channel_id, sep, message_id = raw.rpartition(":")
        if not sep or not channel_id or not message_id:
            raise ValueError(f"Malformed message reference: {raw!r}")
        return MessageRef(channel_id=channel_id, message_id=message_id)


class MessageTransport(Protocol):
    """Chat-transport primitives the core needs.

    Edits raise `StaleReferenceError` when the message no longer exists and
    `TransportFault` for anything else.
    """

    async def resolve(self, ref: MessageRef) -> "MessageHandle | None": ...

    async def create_message(self, channel_id: str, *, text: str | None = None) -> MessageRef: ...

    async def edit_attachment(self, ref: MessageRef, name: str, data: bytes) -> None: ...

    async def edit_text(self, ref: MessageRef, text: str | None, *, title: str | None = None) -> None: ...

    async def delete_message(self, ref: MessageRef) -> None: ...


@dataclass(frozen=True, slots=True)
class MessageHandle:
    """Live handle on a resolved message."""

    ref: MessageRef
    transport: MessageTransport

    async def edit_attachment(self, name: str, data: bytes) -> None:
        await self.transport.edit_attachment(self.ref, name, data)

    async def edit_text(self, text: str | None, *, title: str | None = None) -> None:
        await self.transport.edit_text(self.ref, text, title=title)

    async def reply(self, text: str) -> MessageRef:
        """Post a new message into the same channel."""
        return await self.transport.create_message(self.ref.channel_id, text=text)


BOARD_PREFIX = "crowdplays:board"


class RedisMessageBoard:
    """Message transport backed by redis hashes, one per message.

    Stands in for a chat service: a message is `{channel_id, text, title, attachment_name,
    attachment}` with the attachment base64-encoded, and a channel keeps the ids of
    its messages in order. Deleting the hash makes every reference to it stale.
    """

    def __init__(self, *, r: redis.Redis, prefix: str = BOARD_PREFIX) -> None:
        self._r = r
        self._prefix = prefix

    def _message_key(self, ref: MessageRef) -> str:
        return f"{self._prefix}:message:{ref.channel_id}:{ref.message_id}"

    def _channel_key(self, channel_id: str) -> str:
        return f"{self._prefix}:channel:{channel_id}"

    async def resolve(self, ref: MessageRef) -> MessageHandle | None:
        try:
            exists = self._r.exists(self._message_key(ref))
        except redis.RedisError as e:
            raise TransportFault(ref, str(e)) from e
        return MessageHandle(ref=ref, transport=self) if exists else None

    async def create_message(self, channel_id: str, *, text: str | None = None) -> MessageRef:
        message_id = str(self._r.incr(f"{self._prefix}:seq"))
        ref = MessageRef(channel_id=channel_id, message_id=message_id)
        self._r.hset(self._message_key(ref), mapping={"channel_id": channel_id, "text": text or "", "title": ""})
        self._r.rpush(self._channel_key(channel_id), message_id)
        return ref

    def _replace(self, ref: MessageRef, *, clear: tuple[str, ...], fields: dict[str, str]) -> None:
        key = self._message_key(ref)
        try:
            if not self._r.exists(key):
                raise StaleReferenceError(ref)
            pipe = self._r.pipeline()
            pipe.hdel(key, *clear)
            if fields:
                pipe.hset(key, mapping=fields)
            pipe.execute()
        except redis.RedisError as e:
            raise TransportFault(ref, str(e)) from e

    async def edit_attachment(self, ref: MessageRef, name: str, data: bytes) -> None:
        # Single attachment slot: the previous one is dropped first.
        self._replace(
            ref,
            clear=("attachment_name", "attachment"),
            fields={"attachment_name": name, "attachment": base64.b64encode(data).decode("ascii")},
        )

    async def edit_text(self, ref: MessageRef, text: str | None, *, title: str | None = None) -> None:
        fields: dict[str, str] = {}
        if text:
            fields = {"text": text, "title": title or ""}
        self._replace(ref, clear=("text", "title"), fields=fields)

    async def delete_message(self, ref: MessageRef) -> None:
        self._r.delete(self._message_key(ref))
        self._r.lrem(self._channel_key(ref.channel_id), 0, ref.message_id)

    def read_message(self, ref: MessageRef) -> dict[str, str | bytes] | None:
        raw = self._r.hgetall(self._message_key(ref))
        if not raw:
            return None
        out: dict[str, str | bytes] = dict(raw)
        if "attachment" in raw:
            out["attachment"] = base64.b64decode(raw["attachment"])
        return out

    def channel_messages(self, channel_id: str) -> list[MessageRef]:
        ids = self._r.lrange(self._channel_key(channel_id), 0, -1)
        return [MessageRef(channel_id=channel_id, message_id=i) for i in ids]
