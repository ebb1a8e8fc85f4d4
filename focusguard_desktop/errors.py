class DesktopError(Exception):
    pass


class ApiError(DesktopError):
    """The backend answered with an unexpected status or could not be reached."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class AuthFailure(ApiError):
    pass


class SessionNotFound(ApiError):
    pass


class EngineProcessError(DesktopError):
    """The engine could not be started or reported a failure."""
