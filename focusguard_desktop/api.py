import logging
from typing import List, Optional

import requests

from focusguard_desktop.errors import ApiError, AuthFailure, SessionNotFound

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10


class FocusGuardAPI:
    """Blocking client for the backend session endpoints.

    Calls are synchronous (requests); the controller runs them off the event
    loop with `asyncio.to_thread`.
    """

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT,
                 http: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.http = http or requests.Session()

    def _request(self, method: str, path: str, **kwargs):
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        url = f"{self.base_url}/api{path}"
        try:
            response = self.http.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise ApiError(f"Backend unreachable: {e}")

        if response.status_code >= 400:
            detail = self._detail(response)
            logger.debug(f"{method} {path} -> {response.status_code}: {detail}")
            if response.status_code == 401:
                raise AuthFailure(detail, response.status_code)
            if response.status_code == 404:
                raise SessionNotFound(detail, response.status_code)
            raise ApiError(detail, response.status_code)

        return response.json()

    @staticmethod
    def _detail(response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        if isinstance(body, dict):
            return str(body.get("detail") or body.get("message") or body)
        return str(body)

    # Auth (development login)
    def dev_login(self, email: str, name: Optional[str] = None) -> dict:
        data = self._request("POST", "/auth/dev", json={"email": email, "name": name})
        self.token = data["accessToken"]
        return data

    # Session lifecycle
    def start_session(self) -> dict:
        return self._request("POST", "/sessions/start")["session"]

    def activate_session(self, session_id: str) -> dict:
        return self._request("PATCH", f"/sessions/{session_id}/activate")["session"]

    def stop_session(self, session_id: str) -> dict:
        return self._request("POST", f"/sessions/{session_id}/stop")["session"]

    def current_session(self) -> dict:
        return self._request("GET", "/sessions/current")

    def live_status(self) -> dict:
        return self._request("GET", "/sessions/live-status")

    # Dashboard data
    def daily_stats(self, days: int = 7) -> List[dict]:
        return self._request("GET", "/sessions/daily", params={"days": days})

    def daily_app_usage(self, days: int = 7) -> List[dict]:
        return self._request("GET", "/sessions/daily/apps", params={"days": days})
