"""
Error taxonomy shared by the registry, dispatcher and limit tracker.

Every error carries the HTTP status the API layer answers with. Delivery
failures are the exception: they are raised by the push gateway only to be
caught by the dispatcher, logged, and recorded on the send result.
"""

from contextlib import contextmanager

from google.api_core.exceptions import GoogleAPIError


class FamilyLinkError(Exception):
    status_code = 500

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__ or self.__class__.__name__)
        self.message = message or self.__class__.__doc__ or self.__class__.__name__

    def to_dict(self):
        return {'error': self.message, 'code': self.__class__.__name__}


# -- Not found ---------------------------------------------------------------

class NotFound(FamilyLinkError):
    """Requested record was not found"""
    status_code = 404


class DeviceNotFound(NotFound):
    """Device is not registered"""


class TargetNotFound(NotFound):
    """Notification target is not registered"""


class PeerNotFound(NotFound):
    """No device is linked to this device"""


class NotificationNotFound(NotFound):
    """Notification not found"""


# -- Validation --------------------------------------------------------------

class ValidationFailure(FamilyLinkError):
    """Missing or invalid fields"""
    status_code = 400


class UnroutableDevice(ValidationFailure):
    """Device type is neither parent nor child"""


class LinkMismatch(FamilyLinkError):
    """Devices are not linked to each other"""
    status_code = 403


# -- Storage / delivery ------------------------------------------------------

class PersistenceFailure(FamilyLinkError):
    """Document store operation failed"""
    status_code = 500


class LinkFailure(PersistenceFailure):
    """Failed to link devices"""


class DeliveryFailure(FamilyLinkError):
    """Push delivery failed"""
    status_code = 502


@contextmanager
def store_errors(action, error_class=PersistenceFailure):
    """Re-raise Firestore client errors as `error_class` with a readable message."""
    try:
        yield
    except GoogleAPIError as exc:
        raise error_class(f'{action}: {exc}') from exc
