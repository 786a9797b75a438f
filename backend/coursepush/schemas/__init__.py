"""Pydantic schemas for request/response validation"""
from coursepush.schemas.push import (
    PushNotificationRequest,
    PushNotificationResponse,
)
from coursepush.schemas.device import (
    TokenRegistrationRequest,
    DeviceRecordResponse,
    TokenRegistrationResponse,
)

__all__ = [
    "PushNotificationRequest",
    "PushNotificationResponse",
    "TokenRegistrationRequest",
    "DeviceRecordResponse",
    "TokenRegistrationResponse",
]
