"""
Error taxonomy for the calendar sync core.

Every error carries the HTTP status the API layer should answer with, so
routes can let them propagate to the single handler registered in main.py.
"""
from typing import Optional


class CalendarSyncError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthorizationError(CalendarSyncError):
    """Caller does not own the referenced account or event"""
    status_code = 403


class NotFoundError(CalendarSyncError):
    status_code = 404


class ValidationError(CalendarSyncError):
    status_code = 400


class CredentialError(CalendarSyncError):
    """Token refresh failed or stored tokens are unusable.

    ``reconnect_required`` is set when the grant itself is gone (revoked,
    expired, undecryptable) and only a new OAuth consent can fix it.
    """
    status_code = 401

    def __init__(self, message: str, reconnect_required: bool = True):
        super().__init__(message)
        self.reconnect_required = reconnect_required


class ProviderError(CalendarSyncError):
    """Provider rejected a request in a way retrying will not fix"""
    status_code = 502

    def __init__(self, message: str, http_status: Optional[int] = None):
        super().__init__(message)
        self.http_status = http_status


class ProviderTransientError(ProviderError):
    """Network failure, timeout, rate limit or provider 5xx"""
    status_code = 503


class CursorInvalidError(ProviderError):
    """Provider kept rejecting the sync cursor even after a full resync"""


class PartialReconciliationError(CalendarSyncError):
    """A reconciliation pass failed part way; applied writes are kept"""

    def __init__(self, message: str, created: int = 0, updated: int = 0, deleted: int = 0):
        super().__init__(message)
        self.created = created
        self.updated = updated
        self.deleted = deleted
