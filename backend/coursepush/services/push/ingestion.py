"""
Device token ingestion.

Registration overwrites token, partner, environment and version of an
existing roster entry and stamps updated_at. Unknown ids are rejected;
records are never created here.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from coursepush.core.logging_config import mask_token
from coursepush.core.metrics import record_token_registration
from coursepush.services.push.exceptions import InvalidRequest, NotFound
from coursepush.services.push.models import DeviceRecord
from coursepush.services.push.registry import DeviceRegistry, get_device_registry

logger = logging.getLogger(__name__)

REQUIRED_FIELDS_MESSAGE = "Required fields: studentId, token, partner, environment, version"


class TokenIngestionService:
    """Writes client registrations into the device registry."""

    def __init__(self, registry: DeviceRegistry):
        self.registry = registry

    def register(
        self,
        student_id: str,
        token: str,
        partner: str,
        environment: str,
        version: str,
    ) -> DeviceRecord:
        """
        Register or refresh a device token.

        Repeating an identical registration leaves the record value-equal
        apart from updated_at.

        Raises:
            InvalidRequest: Any field is missing or empty
            NotFound: student_id is not on the roster
        """
        if not all((student_id, token, partner, environment, version)):
            record_token_registration("invalid")
            raise InvalidRequest(REQUIRED_FIELDS_MESSAGE)

        try:
            record = self.registry.update(
                student_id,
                token=token,
                partner=partner,
                environment=environment,
                version=version,
                updated_at=datetime.now(timezone.utc),
            )
        except NotFound:
            record_token_registration("not_found")
            logger.warning("Registration for unknown student", extra={"student_id": student_id})
            raise

        record_token_registration("updated")
        logger.info(
            "Device token registered",
            extra={
                "student_id": student_id,
                "token": mask_token(token),
                "partner": partner,
                "environment": environment,
                "version": version,
            }
        )
        return record


# Global singleton instance
_ingestion_service: Optional[TokenIngestionService] = None


def get_token_ingestion_service() -> TokenIngestionService:
    """Get the global TokenIngestionService bound to the device registry."""
    global _ingestion_service

    if _ingestion_service is None:
        _ingestion_service = TokenIngestionService(get_device_registry())

    return _ingestion_service
