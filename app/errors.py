from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.transport import MessageRef


class ConflictError(ValueError):
    """An edit would break a uniqueness rule (e.g. a second host for one community)."""


class PreconditionError(ValueError):
    """Operation not allowed in the current state (start while running, ...)."""


class StaleReferenceError(Exception):
    """The transport no longer knows the referenced message (it was deleted)."""

    def __init__(self, ref: "MessageRef") -> None:
        super().__init__(f"Unknown message {ref.to_compact()}")
        self.ref = ref


class TransportFault(Exception):
    """Any other failure while talking to the message transport."""

    def __init__(self, ref: "MessageRef", detail: str) -> None:
        super().__init__(f"Transport failure on {ref.to_compact()}: {detail}")
        self.ref = ref


class BroadcastError(ExceptionGroup):
    """Unexpected per-destination failures collected during one broadcast."""


class UnknownDestinationError(LookupError):
    """No destination is registered for the community."""
