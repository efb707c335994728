from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

from app.api.models import Button, InputOutcome, Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class InputEvent:
    actor_id: str
    button: Button
    at: float


class InputRateCache:
    """actor_id -> time of the last accepted input.

    Entries expire `ttl` after they were written and the cache holds at most
    `max_size` actors, evicting the oldest write first.
    """

    def __init__(self, *, ttl: float = 10.0, max_size: int = 1_000) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.ttl = ttl
        self.max_size = max_size
        self._entries: OrderedDict[str, float] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, actor_id: str, *, now: float) -> float | None:
        with self._lock:
            written = self._entries.get(actor_id)
            if written is None:
                return None
            if now - written >= self.ttl:
                del self._entries[actor_id]
                return None
            return written

    def put(self, actor_id: str, at: float) -> None:
        with self._lock:
            self._entries.pop(actor_id, None)
            self._entries[actor_id] = at
            self._expire(now=at)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)

    def _expire(self, *, now: float) -> None:
        # Insertion order == write order, so expired entries sit at the front.
        while self._entries:
            actor_id, written = next(iter(self._entries.items()))
            if now - written < self.ttl:
                break
            del self._entries[actor_id]

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(frozen=True, slots=True)
class AdmissionContext:
    actor_id: str
    button: Button
    now: float
    settings: Settings


class AdmissionCheck(ABC):
    """One rule of the admission policy. Returns a rejection or None to pass."""

    @abstractmethod
    def check(self, *, ctx: AdmissionContext, gate: "InputGate") -> InputOutcome | None:
        raise NotImplementedError


class OwnerLockCheck(AdmissionCheck):
    def check(self, *, ctx: AdmissionContext, gate: "InputGate") -> InputOutcome | None:
        if gate.locked_to_owners and ctx.actor_id not in ctx.settings.owners:
            return InputOutcome.blocked_non_owner
        return None


class BanCheck(AdmissionCheck):
    def check(self, *, ctx: AdmissionContext, gate: "InputGate") -> InputOutcome | None:
        if ctx.actor_id in ctx.settings.banned_users:
            return InputOutcome.actor_banned
        return None


class RateLimitCheck(AdmissionCheck):
    def check(self, *, ctx: AdmissionContext, gate: "InputGate") -> InputOutcome | None:
        last = gate.cache.get(ctx.actor_id, now=ctx.now)
        # No record counts as a full window, so the first input always passes.
        elapsed = gate.rate_limit if last is None else ctx.now - last
        if elapsed < gate.rate_limit:
            return InputOutcome.rate_limited
        return None


DEFAULT_CHECKS: tuple[AdmissionCheck, ...] = (OwnerLockCheck(), BanCheck(), RateLimitCheck())


class InputGate:
    """Decides whether an actor's input is admitted.

    Checks run in order and the first rejection wins. Only an accepted input
    touches the rate cache; forwarding the input anywhere is up to the caller.
    """

    def __init__(
        self,
        *,
        settings: Callable[[], Settings],
        rate_limit: float = 1.5,
        cache: InputRateCache | None = None,
        checks: tuple[AdmissionCheck, ...] = DEFAULT_CHECKS,
    ) -> None:
        self._settings = settings
        self.locked_to_owners = False
        self.cache = cache or InputRateCache()
        self._checks = checks
        # Serializes check-then-record so one actor can't slip two inputs into one window.
        self._admit_lock = threading.Lock()

        if self.cache.ttl < rate_limit:
            raise ValueError("Rate cache ttl must not be shorter than the rate limit")
        self.rate_limit = rate_limit

    @property
    def rate_limit(self) -> float:
        return self._rate_limit

    @rate_limit.setter
    def rate_limit(self, value: float) -> None:
        if value < 0:
            raise ValueError("Rate limit must not be negative")
        with self._admit_lock:
            self._rate_limit = value
            # Records must outlive the window, otherwise an expired record reads as a first input.
            if self.cache.ttl < value:
                logger.info("Raising rate cache ttl from %ss to %ss", self.cache.ttl, value)
                self.cache.ttl = value

    def admit(self, actor_id: str, button: Button, now: float) -> InputOutcome:
        ctx = AdmissionContext(actor_id=actor_id, button=button, now=now, settings=self._settings())

        with self._admit_lock:
            for check in self._checks:
                outcome = check.check(ctx=ctx, gate=self)
                if outcome is not None:
                    logger.debug("Input %s from %s rejected: %s", button.value, actor_id, outcome.value)
                    return outcome

            self.cache.put(actor_id, now)

        return InputOutcome.accepted
