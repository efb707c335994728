from __future__ import annotations

from typing import Mapping, cast

import redis


def publish_command(*, r: redis.Redis, stream_key: str, fields: Mapping[str, str], maxlen: int | None = None) -> str:
    """Append a command entry to a redis stream.

    Stream order is the order commands were appended, so a single consumer sees them
    serialized.
    """

    # redis-py stubs expect field/value unions; we only use string fields/values.
    stream_id = r.xadd(stream_key, {str(k): str(v) for k, v in fields.items()}, maxlen=maxlen, approximate=True)
    return cast(str, stream_id)
