"""
Error taxonomy for push registration and dispatch.

Each error carries the HTTP status it is rendered with by the API layer.
"""
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from coursepush.services.push.models import DeliveryStatus


class PushServiceError(Exception):
    """Base class for all push service errors."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequest(PushServiceError):
    """Client input is malformed or incomplete."""

    status_code = 400


class NotFound(PushServiceError):
    """Student id is not part of the roster."""

    status_code = 404


class NoRecipients(PushServiceError):
    """A broadcast rule matched no registered device."""

    status_code = 404


class EmptyToken(PushServiceError):
    """The targeted student has not registered a device token yet."""

    status_code = 404


class VersionMismatch(PushServiceError):
    """The targeted student runs a different app version than requested."""

    status_code = 400


class InvalidPartner(PushServiceError):
    """Partner tag has no configured delivery credentials."""

    status_code = 500


class GatewayError(PushServiceError):
    """The delivery provider call could not be completed."""

    status_code = 500

    def __init__(self, message: str, status: Optional["DeliveryStatus"] = None):
        super().__init__(message)
        self.status = status
