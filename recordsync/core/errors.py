"""
Error taxonomy shared by the sync client and the sync server.

Every error carries a ``retryable`` flag; the coordinator uses it to decide
whether a failed cycle gets an automatic retry.
"""


class SyncError(Exception):
    """Base class for replication failures."""
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConnectivityError(SyncError):
    """No route to the sync server. Retried only by the regular schedule."""
    retryable = False


class RequestTimeoutError(SyncError):
    """An HTTP call exceeded its deadline."""
    retryable = True


class ServerError(SyncError):
    """The server answered with a non-2xx status or an unreadable body."""
    retryable = True

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class ValidationError(SyncError):
    """Missing userKey or malformed dataset. Never retried."""
    retryable = False


class PersistenceError(SyncError):
    """The backing store (server database or local adapter) is unavailable."""
    retryable = True
