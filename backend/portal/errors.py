"""
Error taxonomy for the storage and email layers.

Every failure that leaves a service is one of these kinds. The HTTP layer
(``portal.main``) maps them to status codes; services never raise anything
else and never swallow a failure.
"""

from typing import Optional


class PortalError(Exception):
    """Base class. ``code`` is a stable machine-readable identifier."""

    code = "PORTAL_ERROR"
    status_code = 500

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class ValidationError(PortalError):
    """Malformed or unsafe input. Never retried."""

    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(PortalError):
    """The referenced object does not exist."""

    code = "NOT_FOUND"
    status_code = 404


class TransportError(PortalError):
    """The object store failed. Single-shot; the original error is kept as cause."""

    code = "TRANSPORT_ERROR"
    status_code = 502


class RenameIncompleteError(TransportError):
    """
    A rename copied the source but failed to delete it.

    Both objects exist afterwards. Callers can inspect the situation with
    ``DocumentService.check_rename`` and finish it with ``reconcile_rename``.
    """

    code = "RENAME_INCOMPLETE"

    def __init__(self, message: str, from_path: str, to_path: str,
                 cause: Optional[BaseException] = None):
        super().__init__(message, cause)
        self.from_path = from_path
        self.to_path = to_path


class DeliveryError(PortalError):
    """An email could not be delivered (permanent failure or retries exhausted)."""

    code = "DELIVERY_ERROR"
    status_code = 502

    def __init__(self, message: str, attempts: int = 0,
                 status_code: Optional[int] = None,
                 cause: Optional[BaseException] = None):
        super().__init__(message, cause)
        self.attempts = attempts
        self.transport_status = status_code
