"""StudentDevice SQLAlchemy ORM model backing the SQL device registry"""
import json

from sqlalchemy import Column, String, Text, DateTime

from coursepush.core.database import Base


class StudentDevice(Base):
    """
    Push registration row for one roster student.

    Attributes:
        id: Student identifier (primary key, provisioned with the roster)
        token: FCM registration token, empty until the first registration
        partner: Distribution partner tag
        environment: Deployment stage tag
        version: App version reported by the client
        courses: JSON array of course identifiers
        updated_at: Last registration write (UTC)
    """

    __tablename__ = "student_devices"

    id = Column(String(64), primary_key=True)
    token = Column(Text, nullable=False, default="")
    partner = Column(String(64), nullable=False, default="")
    environment = Column(String(64), nullable=False, default="")
    version = Column(String(64), nullable=False, default="")
    courses = Column(Text, nullable=False, default="[]")  # JSON array
    updated_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<StudentDevice(id={self.id}, partner={self.partner}, environment={self.environment})>"

    def get_courses(self) -> list:
        """Decode the JSON course list."""
        if not self.courses:
            return []
        return json.loads(self.courses)

    def set_courses(self, courses) -> None:
        """Encode a course collection as a sorted JSON array."""
        self.courses = json.dumps(sorted(str(c) for c in courses))
