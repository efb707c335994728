from __future__ import annotations

import asyncio
import contextlib
import logging

from fastapi import FastAPI

from app.api.routes import router
from app.infra.config import load_config
from app.infra.redis_client import create_redis
from app.runtime import init_controller

app = FastAPI(title="crowd-plays", version="0.1.0")
app.include_router(router)
# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_background: list[asyncio.Task[None]] = []


@app.on_event("startup")
async def _startup() -> None:
    config = load_config()
    # No-op if tests (or an embedding process) already built the controller.
    ctl = init_controller(r=create_redis(config.redis_url), config=config)
    _background.append(asyncio.create_task(ctl.statistics.run_periodic(config.stats_interval_s)))
    logger.info("Service started, ready")


@app.on_event("shutdown")
async def _shutdown() -> None:
    while _background:
        task = _background.pop()
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "crowd-plays", "version": "0.1.0"}
