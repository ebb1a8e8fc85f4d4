"""Engine handshake lines.

The engine announces readiness on stdout and failure on stderr, one line
each. The structured form is a JSON object::

    {"handshake": "focusguard", "version": 1, "event": "ready"}
    {"handshake": "focusguard", "version": 1, "event": "failed", "reason": "..."}

Engines that predate it print the bare markers ``PYTHON_ENGINE_READY`` /
``PYTHON_ENGINE_FAILED``. Those only count when they are the whole line, so
a log message that merely mentions a marker is not mistaken for a signal.
"""

import json
from typing import Optional

HANDSHAKE_NAME = "focusguard"
HANDSHAKE_VERSION = 1

READY = "ready"
FAILED = "failed"

LEGACY_READY_MARKER = "PYTHON_ENGINE_READY"
LEGACY_FAILED_MARKER = "PYTHON_ENGINE_FAILED"

_LEGACY_MARKERS = {
    LEGACY_READY_MARKER: READY,
    LEGACY_FAILED_MARKER: FAILED,
}


def format_handshake(event: str, **extra) -> str:
    message = {"handshake": HANDSHAKE_NAME, "version": HANDSHAKE_VERSION, "event": event}
    message.update(extra)
    return json.dumps(message)


def parse_handshake(line: str, legacy_markers: bool = True) -> Optional[str]:
    """Return READY, FAILED or None for one line of engine output."""
    text = line.strip()
    if not text:
        return None

    if legacy_markers and text in _LEGACY_MARKERS:
        return _LEGACY_MARKERS[text]

    if not text.startswith("{"):
        return None

    try:
        message = json.loads(text)
    except ValueError:
        return None

    if not isinstance(message, dict) or message.get("handshake") != HANDSHAKE_NAME:
        return None
    if message.get("version") != HANDSHAKE_VERSION:
        return None

    event = message.get("event")
    return event if event in (READY, FAILED) else None
