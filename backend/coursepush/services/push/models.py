"""
Domain models for device records, recipient targets and FCM delivery.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple, Union

from pydantic import BaseModel, Field, field_validator

from coursepush.services.push.constants import (
    FIREBASE_APP_PREFIX,
    TARGET_COURSE,
    TARGET_INDIVIDUAL,
    TARGET_TOPIC,
    TARGET_VERSION,
)


# =============================================================================
# Device Registry Models
# =============================================================================


@dataclass(frozen=True)
class DeviceRecord:
    """Push registration state of one enrolled student.

    Records are immutable; the registry replaces a record as a whole on
    every registration, so readers never observe a partial update.

    Attributes:
        id: Student identifier from the roster (immutable key)
        token: Current FCM registration token, empty until first registration
        partner: Distribution partner tag
        environment: Deployment stage tag (qa, staging, release)
        version: App version reported by the client
        courses: Course identifiers the student is enrolled in
        updated_at: Time of the last registration write (UTC)
    """

    id: str
    token: str = ""
    partner: str = ""
    environment: str = ""
    version: str = ""
    courses: FrozenSet[str] = frozenset()
    updated_at: Optional[datetime] = None

    @classmethod
    def provision(cls, student_id: str, courses: Iterable[str]) -> "DeviceRecord":
        """Create an unregistered roster entry."""
        return cls(id=student_id, courses=frozenset(str(c) for c in courses))

    @property
    def has_token(self) -> bool:
        return bool(self.token)

    def with_registration(
        self,
        token: str,
        partner: str,
        environment: str,
        version: str,
        updated_at: datetime,
    ) -> "DeviceRecord":
        """Return a copy carrying a new registration, courses unchanged."""
        return DeviceRecord(
            id=self.id,
            token=token,
            partner=partner,
            environment=environment,
            version=version,
            courses=self.courses,
            updated_at=updated_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Render the record in its public JSON shape."""
        return {
            "id": self.id,
            "token": self.token,
            "partner": self.partner,
            "environment": self.environment,
            "courses": sorted(self.courses),
            "version": self.version,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


# =============================================================================
# Recipient Resolution Models
# =============================================================================


@dataclass
class PushRequest:
    """Targeting fields of a notification request.

    Empty strings are treated as absent so that rule selection depends only
    on which optional fields carry a value.
    """

    partner: Optional[str] = None
    environment: Optional[str] = None
    student_id: Optional[str] = None
    course: Optional[str] = None
    version: Optional[str] = None

    def __post_init__(self):
        for name in ("partner", "environment", "student_id", "course", "version"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, str):
                value = str(value)
            setattr(self, name, value or None)


@dataclass(frozen=True)
class SingleTarget:
    """One device token belonging to one student."""

    token: str
    student_id: str
    version: str = ""
    target_type: str = TARGET_INDIVIDUAL


@dataclass(frozen=True)
class MulticastTarget:
    """A set of device tokens selected by course or by app version."""

    tokens: Tuple[str, ...]
    target_type: str = TARGET_COURSE

    def __post_init__(self):
        if self.target_type not in (TARGET_COURSE, TARGET_VERSION):
            raise ValueError(f"Invalid multicast target type: {self.target_type}")


@dataclass(frozen=True)
class TopicTarget:
    """A provider-side topic that clients subscribe to out-of-band."""

    topic: str
    target_type: str = TARGET_TOPIC


RecipientTarget = Union[SingleTarget, MulticastTarget, TopicTarget]


# =============================================================================
# Delivery Models
# =============================================================================


class DeliveryStatus(str, Enum):
    """Delivery status for push notifications."""

    SUCCESS = "success"
    FAILED = "failed"
    INVALID_TOKEN = "invalid_token"
    RATE_LIMITED = "rate_limited"
    AUTH_ERROR = "auth_error"
    SERVER_ERROR = "server_error"


@dataclass
class DeliveryResult:
    """Result of a push notification delivery attempt to one token or topic."""

    device_token: str
    success: bool
    status: DeliveryStatus = DeliveryStatus.FAILED
    error: Optional[str] = None
    message_id: Optional[str] = None  # FCM message name on success
    retries: int = 0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class Notification:
    """Visible notification content."""

    title: str
    body: str


class PartnerCredential(BaseModel):
    """Delivery context for one distribution partner.

    Attributes:
        partner: Partner tag the credential belongs to
        credentials_path: Path to the Firebase service account JSON file
        project_id: Optional Firebase project ID (read from the file when unset)
    """

    partner: str = Field(..., min_length=1, description="Partner tag")
    credentials_path: str = Field(..., description="Path to service account JSON file")
    project_id: Optional[str] = Field(None, description="Firebase project ID")

    model_config = {"frozen": True}

    @field_validator("credentials_path")
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Validate that credentials path is not empty."""
        if not v or not v.strip():
            raise ValueError("credentials_path cannot be empty")
        return v

    @property
    def app_name(self) -> str:
        """Name of the firebase app bound to this partner."""
        return f"{FIREBASE_APP_PREFIX}-{self.partner}"


class FCMPayload(BaseModel):
    """FCM notification payload.

    See: https://firebase.google.com/docs/cloud-messaging/send-message

    Attributes:
        title: Notification title
        body: Notification body text
        data: Custom data payload (FCM requires string values)
        channel_id: Android notification channel ID
        priority: Message priority (high or normal)
        sound: Sound name or "default"
    """

    title: str = Field(..., description="Notification title")
    body: str = Field(..., description="Notification body text")
    data: Dict[str, str] = Field(default_factory=dict, description="Custom data payload")
    channel_id: str = Field(default="fcm_default_channel", description="Android channel ID")
    priority: str = Field(default="high", description="Message priority")
    sound: str = Field(default="default", description="Sound name")

    @field_validator("priority")
    @classmethod
    def validate_priority(cls, v: str) -> str:
        """Validate priority is one of the allowed values."""
        allowed = {"high", "normal"}
        if v not in allowed:
            raise ValueError(f"Priority must be one of: {allowed}")
        return v

    @classmethod
    def from_notification(
        cls,
        notification: Notification,
        data: Optional[Dict[str, Any]] = None,
        channel_id: str = "fcm_default_channel",
    ) -> "FCMPayload":
        """Build a payload, converting data values to strings as FCM requires."""
        return cls(
            title=notification.title,
            body=notification.body,
            data={k: "" if v is None else str(v) for k, v in (data or {}).items()},
            channel_id=channel_id,
        )
