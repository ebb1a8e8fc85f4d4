"""Headless desktop client.

Examples:
    # Track a session with a local engine until Ctrl-C
    $ python -m focusguard_desktop --api-url http://localhost:8000 --email me@example.com \\
          run --engine python run_local_analysis.py

    # Print the last 7 days
    $ python -m focusguard_desktop --api-url http://localhost:8000 --token <JWT> summary --days 7
"""

import argparse
import asyncio
import logging
import os
import signal
import sys

from focusguard_desktop.api import FocusGuardAPI
from focusguard_desktop.controller import SessionController, DEFAULT_POLL_INTERVAL
from focusguard_desktop.errors import ApiError
from focusguard_desktop.state import EnginePhase, SessionStateStore
from focusguard_desktop.supervisor import EngineSupervisor, DEFAULT_KILL_TIMEOUT

logger = logging.getLogger("focusguard_desktop")


def _print_status(status: dict):
    print(f"[{status['timestamp']}] {status['service']} - {status['productivity']}: {status['reason']}")


async def run_session(args, api: FocusGuardAPI) -> int:
    supervisor = EngineSupervisor(args.engine, kill_timeout=args.kill_timeout)
    store = SessionStateStore(supervisor)
    controller = SessionController(
        api,
        store,
        poll_interval=args.poll_interval,
        on_live_status=_print_status,
    )

    interrupted = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, interrupted.set)
        except (NotImplementedError, RuntimeError):
            pass

    engine_done = asyncio.Event()
    store.subscribe(
        lambda state: engine_done.set() if state.phase is EnginePhase.NOT_RUNNING else None
    )

    try:
        await controller.load()
        if controller.active_session:
            print(f"Warning: {controller.error}")
            if not args.stop_stale:
                print("Re-run with --stop-stale to close it.")
                return 1
            await controller.stop_session()

        if await controller.start_session() is None:
            print(controller.error or "Start failed.")
            return 1

        print("Engine starting... press Ctrl-C to stop.")
        waiters = [
            asyncio.ensure_future(interrupted.wait()),
            asyncio.ensure_future(engine_done.wait()),
        ]
        await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        for waiter in waiters:
            waiter.cancel()

        if controller.error:
            print(controller.error)

        stopped = await controller.stop_session()
        if stopped:
            print(
                f"Session {stopped['id']} stopped: focus {stopped['focusTime']}s, "
                f"distraction {stopped['distractionTime']}s"
            )
        elif controller.error:
            print(controller.error)
        return 0 if stopped else 1
    finally:
        await controller.close()
        await supervisor.aclose()
        store.close()


def show_summary(args, api: FocusGuardAPI) -> int:
    for day in api.daily_stats(args.days):
        print(
            f"{day['date']}  sessions={day['sessionCount']:<3} focus={day['focusTime']:>6}s "
            f"distraction={day['distractionTime']:>6}s  {day['focusPercentage']}%"
        )
    print()
    for app in api.daily_app_usage(args.days):
        print(f"{app['totalTime']:>8}s  {app['appName']}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="focusguard_desktop", description="Focus Guardian desktop client")
    parser.add_argument("--api-url", default=os.getenv("FOCUSGUARD_API_URL", "http://localhost:8000"))
    parser.add_argument("--token", default=os.getenv("FOCUSGUARD_TOKEN"), help="Bearer token")
    parser.add_argument("--email", help="Log in with the development login instead of --token")
    parser.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "INFO"))

    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Track a session with the local engine")
    run.add_argument("--engine", nargs=argparse.REMAINDER, required=True,
                     help="Engine command; --session and --token are appended")
    run.add_argument("--poll-interval", type=float, default=DEFAULT_POLL_INTERVAL)
    run.add_argument("--kill-timeout", type=float, default=DEFAULT_KILL_TIMEOUT)
    run.add_argument("--stop-stale", action="store_true",
                     help="Stop a session left open by an earlier run before starting")

    summary = sub.add_parser("summary", help="Print daily focus and app usage")
    summary.add_argument("--days", type=int, default=7)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    api = FocusGuardAPI(args.api_url, token=args.token)
    try:
        if args.email:
            api.dev_login(args.email)
        if not api.token:
            print("No credentials: pass --token or --email")
            return 2

        if args.command == "run":
            if not args.engine:
                print("--engine needs a command")
                return 2
            return asyncio.run(run_session(args, api))
        return show_summary(args, api)
    except ApiError as e:
        logger.error(f"Backend error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
