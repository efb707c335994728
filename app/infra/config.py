from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


def _load_dotenv() -> None:
    # Only for local runs; real deployments pass plain environment variables.
    env_path = Path(__file__).resolve().parents[2] / ".env"
    if env_path.exists():
        from dotenv import load_dotenv

        load_dotenv(dotenv_path=env_path, override=False)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


@dataclass(frozen=True, slots=True)
class AppConfig:
    redis_url: str = "redis://localhost:6379/0"
    settings_key: str = "crowdplays:settings"

    # Minimum time between two accepted inputs of the same actor.
    input_rate_limit_s: float = 1.5
    # Rate records are forgotten after this long; must be >= the rate limit.
    input_cache_ttl_s: float = 10.0
    input_cache_max_size: int = 1_000

    stats_interval_s: float = 30.0
    emulator_stream: str = "crowdplays:emulator"
    local_display_path: Path | None = None

    # Seeds the owner set of a fresh settings document.
    default_owners: frozenset[str] = field(default_factory=frozenset)


_DEFAULTS = AppConfig()


def load_config() -> AppConfig:
    _load_dotenv()

    display_path = os.environ.get("CROWDPLAYS_LOCAL_DISPLAY_PATH")
    owners = os.environ.get("CROWDPLAYS_OWNERS", "")

    return AppConfig(
        redis_url=os.environ.get("REDIS_URL", _DEFAULTS.redis_url),
        settings_key=os.environ.get("CROWDPLAYS_SETTINGS_KEY", _DEFAULTS.settings_key),
        input_rate_limit_s=_env_float("CROWDPLAYS_INPUT_RATE_LIMIT_S", _DEFAULTS.input_rate_limit_s),
        input_cache_ttl_s=_env_float("CROWDPLAYS_INPUT_CACHE_TTL_S", _DEFAULTS.input_cache_ttl_s),
        input_cache_max_size=_env_int("CROWDPLAYS_INPUT_CACHE_MAX_SIZE", _DEFAULTS.input_cache_max_size),
        stats_interval_s=_env_float("CROWDPLAYS_STATS_INTERVAL_S", _DEFAULTS.stats_interval_s),
        emulator_stream=os.environ.get("CROWDPLAYS_EMULATOR_STREAM", _DEFAULTS.emulator_stream),
        local_display_path=Path(display_path) if display_path else None,
        default_owners=frozenset(o.strip() for o in owners.split(",") if o.strip()),
    )
