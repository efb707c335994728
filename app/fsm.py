from __future__ import annotations

from statemachine import State, StateMachine

from app.api.models import SessionPhase


class SessionFSM(StateMachine):
    """stopped <-> running.

    Only guards transitions; the controller performs the side effects.
    """

    stopped = State(SessionPhase.stopped.value, value=SessionPhase.stopped.value, initial=True)
    running = State(SessionPhase.running.value, value=SessionPhase.running.value)

    launch = stopped.to(running)
    halt = running.to(stopped)

    @property
    def phase(self) -> SessionPhase:
        return SessionPhase(str(self.current_state.value))
