from __future__ import annotations

import pytest

from app.api.models import Button, InputOutcome, Settings
from app.input_gate import InputGate, InputRateCache


def _gate(settings: Settings | None = None, **kwargs) -> InputGate:  # type: ignore[no-untyped-def]
    s = settings or Settings(owners={"owner"}, banned_users={"troll"})
    return InputGate(settings=lambda: s, **kwargs)


def test_rate_limit_scenario() -> None:
    gate = _gate(rate_limit=1.5)

    assert gate.admit("alice", Button.up, 0.0) == InputOutcome.accepted
    assert gate.admit("alice", Button.down, 1.0) == InputOutcome.rate_limited
    assert gate.admit("alice", Button.down, 1.6) == InputOutcome.accepted


def test_first_input_always_passes_rate_limit() -> None:
    gate = _gate()
    assert gate.admit("alice", Button.a, 0.0) == InputOutcome.accepted
    assert gate.admit("bob", Button.a, 0.0) == InputOutcome.accepted


def test_rejected_input_does_not_move_the_window() -> None:
    gate = _gate(rate_limit=1.5)

    assert gate.admit("alice", Button.a, 10.0) == InputOutcome.accepted
    assert gate.admit("alice", Button.a, 11.0) == InputOutcome.rate_limited
    # Measured from the accepted input at 10.0, not the rejected one at 11.0.
    assert gate.cache.get("alice", now=11.4) == 10.0
    assert gate.admit("alice", Button.a, 11.5) == InputOutcome.accepted


def test_accepted_inputs_are_at_least_one_window_apart() -> None:
    gate = _gate(rate_limit=1.5)
    accepted: list[float] = []

    t = 0.0
    while t < 20.0:
        if gate.admit("alice", Button.b, t) == InputOutcome.accepted:
            accepted.append(t)
        t = round(t + 0.25, 2)

    assert len(accepted) > 1
    assert all(b - a >= 1.5 for a, b in zip(accepted, accepted[1:]))


def test_owner_lock_blocks_non_owners_regardless_of_rate_state() -> None:
    gate = _gate()
    gate.locked_to_owners = True

    # Never seen before, so the rate limit alone would accept it.
    assert gate.admit("alice", Button.a, 0.0) == InputOutcome.blocked_non_owner
    assert gate.admit("alice", Button.a, 100.0) == InputOutcome.blocked_non_owner
    assert gate.cache.get("alice", now=100.0) is None


def test_owner_is_never_blocked_by_lock() -> None:
    gate = _gate()
    gate.locked_to_owners = True

    assert gate.admit("owner", Button.start, 0.0) == InputOutcome.accepted
    # Still subject to the rate limit.
    assert gate.admit("owner", Button.start, 0.5) == InputOutcome.rate_limited


def test_lock_check_precedes_ban_check() -> None:
    gate = _gate()
    gate.locked_to_owners = True
    assert gate.admit("troll", Button.a, 0.0) == InputOutcome.blocked_non_owner


def test_banned_actor_is_always_rejected() -> None:
    gate = _gate()

    for t in (0.0, 5.0, 50.0):
        assert gate.admit("troll", Button.a, t) == InputOutcome.actor_banned
    assert gate.cache.get("troll", now=50.0) is None


def test_unlocking_restores_input() -> None:
    gate = _gate()
    gate.locked_to_owners = True
    assert gate.admit("alice", Button.a, 0.0) == InputOutcome.blocked_non_owner

    gate.locked_to_owners = False
    assert gate.admit("alice", Button.a, 0.1) == InputOutcome.accepted


def test_rate_limit_is_runtime_mutable() -> None:
    gate = _gate(rate_limit=1.5)
    assert gate.admit("alice", Button.a, 0.0) == InputOutcome.accepted

    gate.rate_limit = 0.5
    assert gate.admit("alice", Button.a, 0.6) == InputOutcome.accepted


def test_widening_the_window_past_cache_ttl_keeps_records() -> None:
    gate = _gate(rate_limit=1.5, cache=InputRateCache(ttl=10.0))
    assert gate.admit("alice", Button.a, 0.0) == InputOutcome.accepted

    gate.rate_limit = 20.0

    assert gate.cache.ttl == 20.0
    assert gate.admit("alice", Button.a, 11.0) == InputOutcome.rate_limited
    assert gate.admit("alice", Button.a, 20.0) == InputOutcome.accepted


def test_negative_rate_limit_is_rejected() -> None:
    gate = _gate()
    with pytest.raises(ValueError):
        gate.rate_limit = -1.0
    assert gate.rate_limit == 1.5


def test_settings_are_read_on_every_admission() -> None:
    current = {"settings": Settings()}
    gate = InputGate(settings=lambda: current["settings"])

    assert gate.admit("alice", Button.a, 0.0) == InputOutcome.accepted
    current["settings"] = Settings(banned_users={"alice"})
    assert gate.admit("alice", Button.a, 5.0) == InputOutcome.actor_banned


def test_cache_ttl_must_cover_rate_limit() -> None:
    with pytest.raises(ValueError):
        _gate(rate_limit=5.0, cache=InputRateCache(ttl=2.0))


def test_rate_cache_expires_entries() -> None:
    cache = InputRateCache(ttl=10.0, max_size=10)
    cache.put("alice", 0.0)

    assert cache.get("alice", now=9.9) == 0.0
    assert cache.get("alice", now=10.0) is None
    assert len(cache) == 0


def test_rate_cache_evicts_oldest_when_full() -> None:
    cache = InputRateCache(ttl=100.0, max_size=3)
    for i, actor in enumerate(["a", "b", "c", "d"]):
        cache.put(actor, float(i))

    assert len(cache) == 3
    assert cache.get("a", now=4.0) is None
    assert cache.get("d", now=4.0) == 3.0


def test_rate_cache_rewrite_moves_actor_to_the_back() -> None:
    cache = InputRateCache(ttl=100.0, max_size=2)
    cache.put("a", 0.0)
    cache.put("b", 1.0)
    cache.put("a", 2.0)
    cache.put("c", 3.0)

    assert cache.get("b", now=3.0) is None
    assert cache.get("a", now=3.0) == 2.0


def test_flood_of_distinct_actors_stays_bounded() -> None:
    gate = _gate(cache=InputRateCache(ttl=10.0, max_size=50))
    for i in range(500):
        assert gate.admit(f"actor-{i}", Button.left, float(i) / 1000) == InputOutcome.accepted
    assert len(gate.cache) == 50
