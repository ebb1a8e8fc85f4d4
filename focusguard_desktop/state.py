import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, List, Optional

from focusguard_desktop.errors import EngineProcessError
from focusguard_desktop.supervisor import EngineEvent, EngineSupervisor

logger = logging.getLogger(__name__)


class EnginePhase(str, Enum):
    NOT_RUNNING = "not-running"
    INITIALIZING = "initializing"
    RUNNING = "running"


@dataclass(frozen=True)
class EngineState:
    phase: EnginePhase = EnginePhase.NOT_RUNNING
    active_session_id: Optional[str] = None
    active_token: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self.phase is EnginePhase.RUNNING

    @property
    def is_initializing(self) -> bool:
        return self.phase is EnginePhase.INITIALIZING


StateCallback = Callable[[EngineState], None]


class SessionStateStore:
    """Client-side engine state with publish/subscribe.

    Holds the engine phase and the session/token the engine was started
    with. It changes only through `start`, `stop` and the supervisor's
    events. Each change replaces the frozen snapshot and then notifies every
    subscriber synchronously with that same snapshot.
    """

    def __init__(self, supervisor: EngineSupervisor):
        self._supervisor = supervisor
        self._state = EngineState()
        self._subscribers: List[StateCallback] = []
        self._remove_listener = supervisor.add_listener(self._on_engine_event)

    def get_state(self) -> EngineState:
        return self._state

    def subscribe(self, callback: StateCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def start(self, session_id: str, token: str) -> bool:
        if self._state.phase is not EnginePhase.NOT_RUNNING:
            logger.warning("Start called but engine is already running/initializing.")
            return False

        logger.info(f"Starting engine for session {session_id}")
        self._set_state(
            phase=EnginePhase.INITIALIZING,
            active_session_id=session_id,
            active_token=token,
        )

        try:
            await self._supervisor.start(session_id, token)
        except EngineProcessError:
            if self._state.active_session_id == session_id:
                self._reset()
            raise

        return True

    def stop(self):
        if self._state.phase is EnginePhase.NOT_RUNNING:
            logger.warning("Stop called but engine was not running.")
            return

        logger.info(f"Stopping engine for session {self._state.active_session_id}")
        self._supervisor.stop()
        self._reset()

    def close(self):
        self._remove_listener()
        self._subscribers.clear()

    def _on_engine_event(self, event: EngineEvent, session_id: str):
        if session_id != self._state.active_session_id:
            logger.debug(f"Ignoring {event.value} from engine of session {session_id}")
            return

        if event is EngineEvent.READY:
            if self._state.phase is EnginePhase.INITIALIZING:
                self._set_state(phase=EnginePhase.RUNNING)
        elif event is EngineEvent.FAILED:
            logger.error(f"Engine failed to start for session {session_id}")
            self.stop()
        elif event is EngineEvent.STOPPED:
            logger.info(f"Engine stopped for session {session_id}")
            self.stop()

    def _reset(self):
        self._set_state(
            phase=EnginePhase.NOT_RUNNING,
            active_session_id=None,
            active_token=None,
        )

    def _set_state(self, **changes):
        self._state = replace(self._state, **changes)
        snapshot = self._state
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Engine state subscriber failed")
