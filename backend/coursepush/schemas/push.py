"""Push notification request/response schemas"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, Optional

from coursepush.services.push.models import PushRequest


class PushNotificationRequest(BaseModel):
    """
    Request body for POST /push.

    All fields are optional at the schema level; required fields are
    checked by the dispatcher so that missing values produce a 400 with a
    single consistent message.
    """
    partner: Optional[str] = Field(None, description="Distribution partner tag")
    environment: Optional[str] = Field(None, description="Deployment stage (qa, staging, release)")
    title: Optional[str] = Field(None, description="Notification title")
    message: Optional[str] = Field(None, description="Notification body text")
    student: Optional[str] = Field(None, description="Target a single student id")
    course: Optional[str] = Field(None, description="Target everyone enrolled in a course")
    version: Optional[str] = Field(None, description="Restrict to an app version")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "partner": "poc1",
                "environment": "qa",
                "title": "Class update",
                "message": "Today's class starts at 10:00",
                "course": "123",
            }
        }
    )

    @field_validator('student', 'course', 'version', mode='before')
    @classmethod
    def coerce_identifier(cls, v: Any) -> Optional[str]:
        """Accept numeric identifiers from clients that send course ids as numbers."""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    def to_push_request(self) -> PushRequest:
        return PushRequest(
            partner=self.partner,
            environment=self.environment,
            student_id=self.student,
            course=self.course,
            version=self.version,
        )


class PushNotificationResponse(BaseModel):
    """Response for a successful dispatch."""
    success: bool = True
    type: str = Field(..., description="individual, course, specific-version or general-topic")
    sent: int = Field(0, description="Successful deliveries")
    failed: int = Field(0, description="Failed deliveries")
    sent_to: Optional[str] = Field(None, description="Student id or topic name")
    token: Optional[str] = Field(None, description="Device token (individual only)")
    course: Optional[str] = Field(None, description="Course id (course only)")
    quantity: Optional[int] = Field(None, description="Tokens addressed (multicast only)")
    response: Dict[str, Any] = Field(default_factory=dict, description="Provider outcome")
