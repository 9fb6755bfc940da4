"""
FinSync - Error Taxonomy

PURPOSE: Errors surfaced by the sync layer to its callers
SCOPE: Authentication, remote, lookup and validation failures
DEPENDENCIES: None (foundational module)
"""

from typing import List, Optional

RETRYABLE_STATUS_CODES = frozenset({408, 429})


class SyncError(Exception):
    """Base class for every error the sync layer converts into a notification."""

    title = 'Error'

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthenticated(SyncError):
    """Operation attempted without a signed-in owner."""

    title = 'Authentication required'

    def __init__(self, message: str = 'Authentication required.'):
        super().__init__(message)


class RemoteRejected(SyncError):
    """The backend returned an error, or talking to it failed.

    ``status_code`` is ``None`` for transport failures. ``retryable`` is
    true for transport failures, timeouts, rate limiting and 5xx responses.
    """

    def __init__(self, message: str, status_code: Optional[int] = None,
                 retryable: Optional[bool] = None):
        super().__init__(message)
        self.status_code = status_code
        if retryable is None:
            retryable = (status_code is None
                         or status_code in RETRYABLE_STATUS_CODES
                         or status_code >= 500)
        self.retryable = retryable


class NotFound(SyncError):
    """Mutation target is not in the local collection."""

    title = 'Not found'

    def __init__(self, record_id: str):
        super().__init__(f"Record {record_id} not found")
        self.record_id = record_id


class ValidationFailed(SyncError):
    """Input rejected before anything was sent to the backend."""

    title = 'Validation Error'

    def __init__(self, errors: List[str]):
        super().__init__('; '.join(errors))
        self.errors = list(errors)
