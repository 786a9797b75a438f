"""Device token registration schemas"""
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import List, Optional


class TokenRegistrationRequest(BaseModel):
    """
    Request body for POST /api/token.

    Field names follow the mobile client (studentId). Emptiness is checked
    by the ingestion service.
    """
    student_id: Optional[str] = Field(None, alias="studentId", description="Roster student id")
    token: Optional[str] = Field(None, description="FCM registration token")
    partner: Optional[str] = Field(None, description="Distribution partner tag")
    environment: Optional[str] = Field(None, description="Deployment stage")
    version: Optional[str] = Field(None, description="App version")

    model_config = ConfigDict(populate_by_name=True)


class DeviceRecordResponse(BaseModel):
    """Public shape of a device record."""
    id: str
    token: str
    partner: str
    environment: str
    courses: List[str]
    version: str
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)


class TokenRegistrationResponse(BaseModel):
    """Response for a successful registration."""
    success: bool = True
    student: DeviceRecordResponse
