"""Local analysis engine process supervision.

The engine is a separate process started with the session id and the access
token on its command line. It reports readiness on stdout and failure on
stderr (see `focusguard_desktop.handshake`) and is stopped by signal. The
supervisor turns that into three events for its listeners:

- READY: first readiness line of a run
- FAILED: first failure line of a run, unless READY came first
- STOPPED: the process exited, for whatever reason

Everything runs on the asyncio event loop, so stream callbacks, exit
handling and listener calls never interleave.
"""

import asyncio
import logging
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence

import psutil

from focusguard_desktop import handshake
from focusguard_desktop.errors import EngineProcessError

logger = logging.getLogger(__name__)

DEFAULT_KILL_TIMEOUT = 3.0


class EngineEvent(str, Enum):
    READY = "ready"
    FAILED = "failed"
    STOPPED = "stopped"


EngineListener = Callable[[EngineEvent, str], None]


@dataclass
class EngineRun:
    session_id: str
    process: asyncio.subprocess.Process
    signalled: bool = False
    stopping: bool = False
    indicator: Any = None
    watcher: Optional[asyncio.Task] = None

    @property
    def alive(self) -> bool:
        return self.process.returncode is None


def kill_process_tree(pid: int) -> int:
    """Force-kill a process and all of its descendants.

    Children are collected before anything is killed so that orphans are not
    missed. Returns the number of processes signalled. The caller is expected
    to reap its own child (asyncio does it for the engine).
    """
    try:
        parent = psutil.Process(pid)
        procs = parent.children(recursive=True)
    except psutil.NoSuchProcess:
        return 0
    procs.append(parent)

    killed = 0
    for proc in procs:
        try:
            proc.kill()
            killed += 1
        except psutil.NoSuchProcess:
            pass
        except psutil.AccessDenied:
            logger.warning(f"Access denied killing PID {proc.pid}")
    return killed


class EngineSupervisor:
    """Owns zero or one engine process at a time."""

    def __init__(
        self,
        engine_command: Sequence[str],
        indicator_factory: Optional[Callable[[str], Any]] = None,
        kill_timeout: float = DEFAULT_KILL_TIMEOUT,
        legacy_markers: bool = True,
    ):
        if not engine_command:
            raise ValueError("engine_command must not be empty")

        self.engine_command = list(engine_command)
        self.indicator_factory = indicator_factory
        self.kill_timeout = kill_timeout
        self.legacy_markers = legacy_markers

        self._run: Optional[EngineRun] = None
        self._listeners: List[EngineListener] = []
        self._tasks = set()

    # ------------------------------------------------------------------ #
    # Listeners
    # ------------------------------------------------------------------ #

    def add_listener(self, listener: EngineListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _emit(self, event: EngineEvent, session_id: str):
        for listener in list(self._listeners):
            try:
                listener(event, session_id)
            except Exception:
                logger.exception(f"Engine listener failed on {event.value} for session {session_id}")

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    @property
    def is_running(self) -> bool:
        return self._run is not None and self._run.alive

    @property
    def session_id(self) -> Optional[str]:
        return self._run.session_id if self._run else None

    async def start(self, session_id: str, token: str) -> EngineRun:
        """Spawn the engine. Returns once the process exists, not once it is ready."""
        previous = self._run
        if previous is not None:
            if previous.alive:
                logger.warning(
                    f"Engine already running for session {previous.session_id}; terminating it first"
                )
            self.stop()
            # Deliver the old run's STOPPED before the new run can signal
            await previous.watcher

        command = self.engine_command + ["--session", session_id, "--token", token]
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Could not start engine {self.engine_command[0]!r}: {e}")
            raise EngineProcessError(f"Could not start the local analysis engine: {e}") from e

        run = EngineRun(session_id=session_id, process=process)
        run.watcher = asyncio.ensure_future(self._watch(run))
        self._run = run

        logger.info(f"Engine started for session {session_id} (pid {process.pid})")
        return run

    def stop(self):
        """Stop the current engine without waiting for it to exit.

        Sends a terminate request and escalates to a tree-wide kill if the
        process is still alive after `kill_timeout`. On Windows a terminate
        does not reach the engine's children, so the tree is killed at once.
        The handle is dropped immediately; STOPPED is still emitted when the
        process actually exits.
        """
        run = self._run
        if run is None:
            logger.debug("Stop requested but no engine is running")
            return

        self._run = None
        run.stopping = True
        self._close_indicator(run)

        if not run.alive:
            return

        logger.info(f"Stopping engine for session {run.session_id} (pid {run.process.pid})")

        if sys.platform == "win32":
            kill_process_tree(run.process.pid)
            return

        try:
            run.process.terminate()
        except ProcessLookupError:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            kill_process_tree(run.process.pid)
            return

        self._track(loop.create_task(self._escalate(run)))

    async def aclose(self):
        """Stop the engine and wait for its watcher and escalation tasks."""
        run = self._run
        self.stop()
        if run is not None and run.watcher is not None:
            await run.watcher
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _track(self, task: asyncio.Task):
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _escalate(self, run: EngineRun):
        try:
            await asyncio.wait_for(run.process.wait(), timeout=self.kill_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Engine pid {run.process.pid} ignored terminate for {self.kill_timeout}s; "
                "killing process tree"
            )
            kill_process_tree(run.process.pid)

    async def _watch(self, run: EngineRun):
        await asyncio.gather(
            self._read_stream(run, run.process.stdout, handshake.READY),
            self._read_stream(run, run.process.stderr, handshake.FAILED),
        )
        returncode = await run.process.wait()
        self._on_exit(run, returncode)

    async def _read_stream(self, run: EngineRun, stream: asyncio.StreamReader, expected: str):
        while True:
            try:
                line = await stream.readline()
            except ValueError:
                # Line longer than the reader limit; it was discarded
                continue
            if not line:
                return

            text = line.decode(errors="replace")
            logger.debug(f"[engine {run.session_id}] {text.rstrip()}")

            if handshake.parse_handshake(text, self.legacy_markers) == expected:
                self._on_signal(run, expected)

    def _on_signal(self, run: EngineRun, signal: str):
        # First signal of a run wins
        if run.signalled:
            return
        run.signalled = True

        if signal == handshake.READY:
            logger.info(f"Engine ready for session {run.session_id}")
            if self.indicator_factory is not None and not run.stopping:
                run.indicator = self.indicator_factory(run.session_id)
            self._emit(EngineEvent.READY, run.session_id)
        else:
            logger.error(f"Engine reported a startup failure for session {run.session_id}")
            self._emit(EngineEvent.FAILED, run.session_id)

    def _on_exit(self, run: EngineRun, returncode: int):
        # Indicator goes away before anyone hears about the exit
        self._close_indicator(run)
        if self._run is run:
            self._run = None

        logger.info(f"Engine for session {run.session_id} exited with code {returncode}")
        self._emit(EngineEvent.STOPPED, run.session_id)

    def _close_indicator(self, run: EngineRun):
        indicator, run.indicator = run.indicator, None
        if indicator is None:
            return
        try:
            indicator.close()
        except Exception:
            logger.exception(f"Failed to close session indicator for {run.session_id}")
