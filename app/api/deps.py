from __future__ import annotations

from app.runtime import get_controller
from app.session import SessionController


def controller() -> SessionController:
    return get_controller()
