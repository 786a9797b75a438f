"""
Push Dispatch Service.

Routes a notification request to the delivery primitive matching its
resolved target:
- SingleTarget  -> gateway.send_one (token)
- MulticastTarget -> gateway.send_multicast (per-token outcomes aggregated)
- TopicTarget   -> gateway.send_one (topic)

The dispatcher never persists anything; its only side effect is the
outbound provider call.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from coursepush.core.metrics import record_delivery, record_dispatch
from coursepush.services.push.constants import (
    TARGET_COURSE,
    TARGET_INDIVIDUAL,
    TARGET_TOPIC,
    TARGET_VERSION,
)
from coursepush.services.push.credentials import CredentialSelector, get_credential_selector
from coursepush.services.push.exceptions import InvalidRequest, PushServiceError
from coursepush.services.push.fcm_provider import get_fcm_gateway
from coursepush.services.push.gateway import DeliveryGateway
from coursepush.services.push.models import (
    DeliveryResult,
    MulticastTarget,
    Notification,
    PushRequest,
    RecipientTarget,
    SingleTarget,
    TopicTarget,
)
from coursepush.services.push.registry import get_device_registry
from coursepush.services.push.resolver import RecipientResolver

logger = logging.getLogger(__name__)

REQUIRED_FIELDS_MESSAGE = "Required fields: partner, environment, title, message"


@dataclass
class DeliveryReport:
    """Outcome of one dispatch.

    Attributes:
        target_type: individual, course, specific-version or general-topic
        sent: Number of successful deliveries
        failed: Number of failed deliveries
        failures: Per-token failure details ({token, status, error})
        results: Raw DeliveryResult list from the gateway
        message_id: Provider message id for single and topic sends
        student_id: Targeted student (individual only)
        token: Targeted device token (individual only)
        course: Targeted course (course only)
        topic: Targeted topic (general-topic only)
        quantity: Number of tokens addressed (multicast only)
        duration_ms: Dispatch duration in milliseconds
    """

    target_type: str
    sent: int = 0
    failed: int = 0
    failures: List[Dict[str, Any]] = field(default_factory=list)
    results: List[DeliveryResult] = field(default_factory=list)
    message_id: Optional[str] = None
    student_id: Optional[str] = None
    token: Optional[str] = None
    course: Optional[str] = None
    topic: Optional[str] = None
    quantity: int = 0
    duration_ms: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_multicast(self) -> bool:
        return self.target_type in (TARGET_COURSE, TARGET_VERSION)

    def to_response(self) -> Dict[str, Any]:
        """Render the /push response body."""
        if self.is_multicast:
            response: Dict[str, Any] = {
                "success_count": self.sent,
                "failure_count": self.failed,
                "failures": self.failures,
            }
        else:
            response = {"message_id": self.message_id}

        body: Dict[str, Any] = {"success": True, "type": self.target_type}
        if self.target_type == TARGET_INDIVIDUAL:
            body["sent_to"] = self.student_id
            body["token"] = self.token
        elif self.target_type == TARGET_COURSE:
            body["course"] = self.course
            body["quantity"] = self.quantity
        elif self.target_type == TARGET_VERSION:
            body["quantity"] = self.quantity
        elif self.target_type == TARGET_TOPIC:
            body["sent_to"] = self.topic

        body["sent"] = self.sent
        body["failed"] = self.failed
        body["response"] = response
        return body


def build_data(request: PushRequest, target: RecipientTarget) -> Dict[str, str]:
    """Metadata attached to the notification for the given target."""
    data = {"partner": request.partner, "environment": request.environment}

    if isinstance(target, SingleTarget):
        data["student"] = target.student_id
        data["course"] = request.course or ""
        data["version"] = target.version
    elif isinstance(target, MulticastTarget) and target.target_type == TARGET_COURSE:
        data["course"] = request.course
        data["version"] = request.version or ""
    elif isinstance(target, MulticastTarget):
        data["version"] = request.version
    return data


class PushDispatchService:
    """
    Resolves recipients and delivers one notification through the gateway.

    Usage:
        service = PushDispatchService(selector, resolver, gateway)
        report = await service.dispatch(
            PushRequest(partner="poc1", environment="qa", course="123"),
            title="Class moved",
            body="Today's class starts at 10:00",
        )
    """

    def __init__(
        self,
        selector: CredentialSelector,
        resolver: RecipientResolver,
        gateway: DeliveryGateway,
    ):
        self.selector = selector
        self.resolver = resolver
        self.gateway = gateway

    async def dispatch(self, request: PushRequest, title: str, body: str) -> DeliveryReport:
        """
        Validate, resolve and deliver a notification.

        Raises:
            InvalidRequest: partner, environment, title or body is empty
            InvalidPartner: partner has no configured credential
            NotFound, VersionMismatch, EmptyToken, NoRecipients: resolution failed
            GatewayError: the provider call could not be completed
        """
        start_time = time.time()
        target_type = "unresolved"

        try:
            if not (request.partner and request.environment and title and body):
                raise InvalidRequest(REQUIRED_FIELDS_MESSAGE)

            credential = self.selector.resolve(request.partner)
            # SQL-backed registries block, keep them off the event loop
            target = await asyncio.to_thread(self.resolver.resolve, request)
            target_type = target.target_type

            notification = Notification(title=title, body=body)
            data = build_data(request, target)

            if isinstance(target, MulticastTarget):
                report = await self._send_multicast(target, notification, data, credential)
                report.course = request.course
            else:
                report = await self._send_single(target, notification, data, credential)
        except PushServiceError as e:
            outcome = "rejected" if e.status_code < 500 else "error"
            record_dispatch(target_type, outcome, time.time() - start_time)
            logger.warning(
                "Push dispatch failed",
                extra={
                    "partner": request.partner,
                    "environment": request.environment,
                    "target_type": target_type,
                    "error_type": type(e).__name__,
                    "error": e.message,
                }
            )
            raise

        duration = time.time() - start_time
        report.duration_ms = duration * 1000
        record_dispatch(target_type, "sent", duration)

        logger.info(
            "Push dispatch complete",
            extra={
                "partner": request.partner,
                "environment": request.environment,
                "target_type": target_type,
                "sent": report.sent,
                "failed": report.failed,
                "duration_ms": round(report.duration_ms, 2),
            }
        )
        return report

    async def _send_single(self, target, notification, data, credential) -> DeliveryReport:
        result = await self.gateway.send_one(target, notification, data, credential)
        record_delivery(result.status.value)

        report = DeliveryReport(
            target_type=target.target_type,
            sent=1 if result.success else 0,
            failed=0 if result.success else 1,
            results=[result],
            message_id=result.message_id,
        )
        if isinstance(target, TopicTarget):
            report.topic = target.topic
        else:
            report.student_id = target.student_id
            report.token = target.token
        return report

    async def _send_multicast(
        self,
        target: MulticastTarget,
        notification: Notification,
        data: Dict[str, str],
        credential,
    ) -> DeliveryReport:
        results = await self.gateway.send_multicast(target.tokens, notification, data, credential)

        failures = [
            {"token": r.device_token, "status": r.status.value, "error": r.error}
            for r in results if not r.success
        ]
        for result in results:
            record_delivery(result.status.value)

        return DeliveryReport(
            target_type=target.target_type,
            sent=len(results) - len(failures),
            failed=len(failures),
            failures=failures,
            results=results,
            quantity=len(target.tokens),
        )

    async def close(self) -> None:
        """Close the gateway and release resources."""
        await self.gateway.close()
        logger.debug("PushDispatchService closed")

    async def __aenter__(self) -> "PushDispatchService":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


# Global singleton instance
_push_dispatch_service: Optional[PushDispatchService] = None


def get_push_dispatch_service() -> PushDispatchService:
    """
    Get the global PushDispatchService instance.

    Wires the credential selector, a resolver over the device registry and
    the FCM gateway on first call.

    Returns:
        PushDispatchService singleton instance
    """
    global _push_dispatch_service

    if _push_dispatch_service is None:
        _push_dispatch_service = PushDispatchService(
            selector=get_credential_selector(),
            resolver=RecipientResolver(get_device_registry()),
            gateway=get_fcm_gateway(),
        )
        logger.info(
            "Global PushDispatchService instance created",
            extra={"event_type": "push_dispatch_service_created"}
        )

    return _push_dispatch_service


async def shutdown_push_dispatch_service() -> None:
    """Close the global dispatcher's gateway, if one was created."""
    global _push_dispatch_service

    if _push_dispatch_service is not None:
        await _push_dispatch_service.close()
        _push_dispatch_service = None
