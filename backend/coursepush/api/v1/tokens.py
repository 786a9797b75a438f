"""
Device token registration API endpoint

- POST /api/token - Register or refresh a student's device token
"""
import logging

from fastapi import APIRouter, Depends

from coursepush.schemas.device import TokenRegistrationRequest, TokenRegistrationResponse
from coursepush.services.push.exceptions import PushServiceError
from coursepush.services.push.ingestion import (
    TokenIngestionService,
    get_token_ingestion_service,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api",
    tags=["devices"]
)


@router.post(
    "/token",
    response_model=TokenRegistrationResponse,
    responses={
        400: {"description": "Missing required field"},
        404: {"description": "Unknown studentId"},
    },
)
def register_token(
    body: TokenRegistrationRequest,
    ingestion: TokenIngestionService = Depends(get_token_ingestion_service),
):
    """
    Register a device token for a roster student.

    Overwrites token, partner, environment and version and stamps updatedAt.
    """
    try:
        record = ingestion.register(
            student_id=body.student_id or "",
            token=body.token or "",
            partner=body.partner or "",
            environment=body.environment or "",
            version=body.version or "",
        )
    except PushServiceError:
        raise
    except Exception as e:
        logger.error("Error updating token", exc_info=True)
        raise PushServiceError("Internal error") from e
    return {"success": True, "student": record.to_dict()}
