# focusguard_desktop/controller.py

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from focusguard_desktop.api import FocusGuardAPI
from focusguard_desktop.errors import ApiError, AuthFailure, EngineProcessError, SessionNotFound
from focusguard_desktop.state import EnginePhase, EngineState, SessionStateStore

logger = logging.getLogger(__name__)

LIVE_STATUS_JOB = "live_status_poll"
DEFAULT_POLL_INTERVAL = 5.0

STALE_SESSION_WARNING = "An unterminated session was found. Please stop it before starting a new one."
ENGINE_FAILED_MESSAGE = "The local analysis engine failed to start. Check terminal for errors."
ENGINE_STOPPED_MESSAGE = "The local analysis engine stopped unexpectedly. Please stop the session."
PLACEHOLDER_MISSING_MESSAGE = "Error: Session placeholder missing. Please restart."
ACTIVATE_AUTH_MESSAGE = "Authentication failed while activating the session. Please log in again."
ACTIVATE_FAILED_MESSAGE = "Failed to activate session on the server. Please stop and restart."


class SessionController:
    """Coordinates the backend session with the local engine.

    Start: create a placeholder session on the backend, then start the
    engine with its id. When the engine is ready the placeholder is
    activated and live-status polling begins. Stop: stop the engine (without
    waiting for it) and close the session on the backend.

    `error` holds the message a UI would show in its banner. A 401 from the
    backend logs the user out and stops the engine.
    """

    def __init__(
        self,
        api: FocusGuardAPI,
        store: SessionStateStore,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        scheduler: Optional[AsyncIOScheduler] = None,
        on_logout: Optional[Callable[[], None]] = None,
        on_live_status: Optional[Callable[[dict], None]] = None,
    ):
        self.api = api
        self.store = store
        self.poll_interval = poll_interval
        self.scheduler = scheduler or AsyncIOScheduler()
        self.on_logout = on_logout
        self.on_live_status = on_live_status

        self.active_session: Optional[dict] = None
        self.placeholder: Optional[dict] = None
        self.live_status: Optional[dict] = None
        self.error: Optional[str] = None
        self.logged_out = False

        self._phase = store.get_state().phase
        self._user_stop = False
        self._tasks = set()
        self._unsubscribe = store.subscribe(self._on_engine_state)

    # ------------------------------------------------------------------ #
    # Actions
    # ------------------------------------------------------------------ #

    async def load(self) -> Optional[dict]:
        """Look for a session left open by an earlier run of the client."""
        try:
            session = await asyncio.to_thread(self.api.current_session)
        except SessionNotFound:
            return None
        except AuthFailure:
            self.logout()
            return None

        logger.warning(f"Found unterminated session {session['id']}")
        self.active_session = session
        self.error = STALE_SESSION_WARNING
        return session

    async def start_session(self) -> Optional[dict]:
        if self.active_session or self.placeholder:
            logger.warning("Start requested while a session is already active")
            return None

        self.error = None
        try:
            placeholder = await asyncio.to_thread(self.api.start_session)
        except AuthFailure:
            self.logout()
            return None
        except ApiError as e:
            self.error = f"Start Failed: {e}"
            return None

        self.placeholder = placeholder
        try:
            started = await self.store.start(placeholder["id"], self.api.token)
        except EngineProcessError as e:
            self.placeholder = None
            self.error = f"Start Failed: {e}"
            return None

        if not started:
            self.placeholder = None
            self.error = "Start Failed: the local analysis engine is already running."
            return None

        return placeholder

    async def stop_session(self) -> Optional[dict]:
        session = self.active_session or self.placeholder
        if not session:
            return None

        self.error = None
        self._stop_engine()
        self._stop_polling()

        try:
            stopped = await asyncio.to_thread(self.api.stop_session, session["id"])
        except AuthFailure:
            self.logout()
            return None
        except SessionNotFound as e:
            # Already closed on the server; nothing left to stop
            self._clear_session()
            self.error = f"Failed to notify backend: {e}"
            return None
        except ApiError as e:
            self.error = f"Failed to notify backend: {e}"
            return None

        self._clear_session()
        return stopped

    def logout(self):
        logger.info("Logging out")
        self._stop_engine()
        self._stop_polling()
        self._clear_session()
        self.api.token = None
        self.logged_out = True
        if self.on_logout is not None:
            self.on_logout()

    async def poll_live_status(self):
        if not self.active_session:
            return
        try:
            status = await asyncio.to_thread(self.api.live_status)
        except SessionNotFound:
            # Session closing while a poll was in flight
            logger.debug("Live status: no active session")
            return
        except AuthFailure:
            self.logout()
            return
        except ApiError as e:
            logger.warning(f"Live status poll failed: {e}")
            return

        self.live_status = status
        if self.on_live_status is not None:
            self.on_live_status(status)

    def elapsed_seconds(self, now: Optional[datetime] = None) -> int:
        if not self.active_session:
            return 0
        start = datetime.fromisoformat(self.active_session["startTime"])
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        now = now or datetime.now(timezone.utc)
        return max(0, int((now - start).total_seconds()))

    async def close(self):
        self._unsubscribe()
        self._stop_polling()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------ #
    # Engine state
    # ------------------------------------------------------------------ #

    def _on_engine_state(self, state: EngineState):
        previous, self._phase = self._phase, state.phase

        if previous is EnginePhase.INITIALIZING and state.phase is EnginePhase.RUNNING:
            self._spawn(self._activate(state.active_session_id))
            return

        if state.phase is EnginePhase.NOT_RUNNING and previous is not EnginePhase.NOT_RUNNING:
            if self._user_stop:
                return
            self._stop_polling()
            if previous is EnginePhase.INITIALIZING:
                # Failure line, or exit without ever becoming ready
                self.placeholder = None
                self.error = ENGINE_FAILED_MESSAGE
            else:
                self.error = ENGINE_STOPPED_MESSAGE

    async def _activate(self, session_id: str):
        placeholder = self.placeholder
        if not placeholder or placeholder["id"] != session_id:
            self.error = PLACEHOLDER_MISSING_MESSAGE
            return

        try:
            session = await asyncio.to_thread(self.api.activate_session, session_id)
        except AuthFailure:
            self.error = ACTIVATE_AUTH_MESSAGE
            self.logout()
            return
        except ApiError as e:
            logger.error(f"Activation of session {session_id} failed: {e}")
            if self.placeholder is placeholder:
                self.error = ACTIVATE_FAILED_MESSAGE
            return

        # Stopped (or restarted) while the request was in flight
        if self.placeholder is not placeholder:
            logger.info(f"Session {session_id} ended before activation completed; ignoring")
            return

        self.active_session = session
        self.placeholder = None
        self._start_polling()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _stop_engine(self):
        self._user_stop = True
        try:
            if self.store.get_state().phase is not EnginePhase.NOT_RUNNING:
                self.store.stop()
        finally:
            self._user_stop = False

    def _clear_session(self):
        self.active_session = None
        self.placeholder = None
        self.live_status = None

    def _start_polling(self):
        if not self.scheduler.running:
            self.scheduler.start()
        self.scheduler.add_job(
            self.poll_live_status,
            "interval",
            seconds=self.poll_interval,
            id=LIVE_STATUS_JOB,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def _stop_polling(self):
        if self.scheduler.get_job(LIVE_STATUS_JOB):
            self.scheduler.remove_job(LIVE_STATUS_JOB)

    @property
    def is_polling(self) -> bool:
        return self.scheduler.get_job(LIVE_STATUS_JOB) is not None

    def _spawn(self, coro):
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
