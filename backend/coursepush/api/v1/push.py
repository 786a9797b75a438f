"""
Push Notification API endpoint

- POST /push - Send a notification to one student, a course, an app version
  or the partner/environment topic
"""
import logging

from fastapi import APIRouter, Depends

from coursepush.schemas.push import PushNotificationRequest, PushNotificationResponse
from coursepush.services.push.exceptions import PushServiceError
from coursepush.services.push.dispatch_service import (
    PushDispatchService,
    get_push_dispatch_service,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["push"])


@router.post(
    "/push",
    response_model=PushNotificationResponse,
    response_model_exclude_unset=True,
    responses={
        400: {"description": "Missing required fields or version mismatch"},
        404: {"description": "No matching recipient"},
        500: {"description": "Unknown partner or delivery failure"},
    },
)
async def send_push(
    body: PushNotificationRequest,
    dispatcher: PushDispatchService = Depends(get_push_dispatch_service),
):
    """
    Send a push notification.

    Exactly one targeting rule applies, in priority order:
    student > course > version > partner/environment topic.

    Example:
        POST /push
        {"partner": "poc1", "environment": "qa", "title": "Hi", "message": "Hello", "course": "123"}

        Response:
        {"success": true, "type": "course", "course": "123", "quantity": 2,
         "sent": 2, "failed": 0, "response": {...}}
    """
    try:
        report = await dispatcher.dispatch(
            body.to_push_request(),
            title=body.title or "",
            body=body.message or "",
        )
    except PushServiceError:
        raise
    except Exception as e:
        logger.error("Unexpected error sending push", exc_info=True)
        raise PushServiceError(str(e) or type(e).__name__) from e
    return report.to_response()
