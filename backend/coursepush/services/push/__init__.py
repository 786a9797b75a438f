"""
Course push notifications.

This package contains:
- Device registry (in-memory and SQL backends)
- CredentialSelector - partner -> delivery credential
- RecipientResolver - ordered targeting rules
- FCMGateway - Firebase Cloud Messaging delivery
- PushDispatchService - resolve and deliver one notification
- TokenIngestionService - device token registration
"""

from coursepush.services.push.credentials import CredentialSelector
from coursepush.services.push.dispatch_service import DeliveryReport, PushDispatchService
from coursepush.services.push.exceptions import (
    EmptyToken,
    GatewayError,
    InvalidPartner,
    InvalidRequest,
    NoRecipients,
    NotFound,
    PushServiceError,
    VersionMismatch,
)
from coursepush.services.push.fcm_provider import FCMGateway
from coursepush.services.push.gateway import DeliveryGateway
from coursepush.services.push.ingestion import TokenIngestionService
from coursepush.services.push.models import (
    DeliveryResult,
    DeliveryStatus,
    DeviceRecord,
    MulticastTarget,
    Notification,
    PartnerCredential,
    PushRequest,
    SingleTarget,
    TopicTarget,
)
from coursepush.services.push.registry import (
    DeviceRegistry,
    InMemoryDeviceRegistry,
    SqlDeviceRegistry,
    build_registry,
    load_roster,
)
from coursepush.services.push.resolver import RecipientResolver, build_topic

__all__ = [
    # Registry
    "DeviceRegistry",
    "InMemoryDeviceRegistry",
    "SqlDeviceRegistry",
    "DeviceRecord",
    "build_registry",
    "load_roster",
    # Credentials
    "CredentialSelector",
    "PartnerCredential",
    # Resolution
    "RecipientResolver",
    "PushRequest",
    "SingleTarget",
    "MulticastTarget",
    "TopicTarget",
    "build_topic",
    # Delivery
    "DeliveryGateway",
    "FCMGateway",
    "PushDispatchService",
    "DeliveryReport",
    "DeliveryResult",
    "DeliveryStatus",
    "Notification",
    # Ingestion
    "TokenIngestionService",
    # Errors
    "PushServiceError",
    "InvalidRequest",
    "NotFound",
    "NoRecipients",
    "EmptyToken",
    "VersionMismatch",
    "InvalidPartner",
    "GatewayError",
]
