from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import fakeredis
import pytest
from fastapi.testclient import TestClient

from app.infra.config import AppConfig
from app.runtime import build_controller, init_controller, reset_controller_for_tests
from app.session import SessionController


@pytest.fixture()
def r() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture()
def config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        default_owners=frozenset({"owner-1"}),
        local_display_path=tmp_path / "display" / "latest",
    )


@pytest.fixture()
def ctl(r: fakeredis.FakeRedis, config: AppConfig) -> SessionController:
    return build_controller(r=r, config=config)


@pytest.fixture()
def client_and_controller(
    r: fakeredis.FakeRedis,
    config: AppConfig,
) -> Generator[tuple[TestClient, SessionController], None, None]:
    """TestClient wired to a controller on fakeredis.

    The controller singleton is built before the app starts, so startup never
    touches a real redis.
    """

    from app.main import app

    reset_controller_for_tests()
    controller = init_controller(r=r, config=config)
    with TestClient(app) as c:
        yield c, controller
    reset_controller_for_tests()
