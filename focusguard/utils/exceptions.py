class FocusGuardError(Exception):
    """Base class for service-level errors (translated to HTTP in routers)."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SessionNotFound(FocusGuardError):
    pass


class InvalidPayload(FocusGuardError):
    pass


class InvalidDaysRange(FocusGuardError):
    pass


class SessionStoreError(FocusGuardError):
    # A database write failed. The caller is not expected to retry.
    pass
