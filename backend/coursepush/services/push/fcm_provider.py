"""
FCM (Firebase Cloud Messaging) delivery gateway.

Features:
- One Firebase app per partner, created on first use from its service account
- Async wrapper with a timeout for blocking SDK calls
- Retry logic with exponential backoff for transient provider errors
- Per-token outcome mapping for multicast sends, chunked at the FCM limit
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import firebase_admin
from firebase_admin import credentials, messaging
from firebase_admin.exceptions import (
    FirebaseError,
    InvalidArgumentError,
    UnavailableError,
)

from coursepush.core.config import settings
from coursepush.core.logging_config import mask_token
from coursepush.services.push.constants import (
    FCM_MULTICAST_LIMIT,
    RETRY_BASE_DELAY_SECONDS,
)
from coursepush.services.push.exceptions import GatewayError
from coursepush.services.push.gateway import DeliveryGateway
from coursepush.services.push.models import (
    DeliveryResult,
    DeliveryStatus,
    FCMPayload,
    Notification,
    PartnerCredential,
    SingleTarget,
    TopicTarget,
)

logger = logging.getLogger(__name__)


def classify_error(error: Exception) -> Tuple[DeliveryStatus, bool]:
    """
    Map a provider exception to a delivery status.

    Returns:
        Tuple of (status, retryable)
    """
    if isinstance(error, messaging.UnregisteredError):
        return DeliveryStatus.INVALID_TOKEN, False
    if isinstance(error, messaging.QuotaExceededError):
        return DeliveryStatus.RATE_LIMITED, True
    if isinstance(error, messaging.ThirdPartyAuthError):
        return DeliveryStatus.AUTH_ERROR, False
    if isinstance(error, (messaging.SenderIdMismatchError, InvalidArgumentError)):
        return DeliveryStatus.FAILED, False
    if isinstance(error, UnavailableError):
        return DeliveryStatus.SERVER_ERROR, True
    if isinstance(error, FirebaseError):
        return DeliveryStatus.SERVER_ERROR, True
    return DeliveryStatus.FAILED, False


class FCMGateway(DeliveryGateway):
    """
    Delivery gateway on the Firebase Admin SDK.

    SDK calls are blocking, so they run in a worker thread and are bounded
    by timeout_seconds. Each partner credential gets its own named Firebase
    app, created lazily and reused until close().

    Usage:
        gateway = FCMGateway(timeout_seconds=10.0, max_retries=3)
        result = await gateway.send_one(target, notification, data, credential)

    Attributes:
        channel_id: Android notification channel for displayed notifications
        timeout_seconds: Upper bound on a single SDK call
        max_retries: Retries after the first attempt for transient errors
    """

    def __init__(
        self,
        channel_id: str = "fcm_default_channel",
        timeout_seconds: float = 10.0,
        max_retries: int = 3,
        retry_base_delay: float = RETRY_BASE_DELAY_SECONDS,
    ):
        self.channel_id = channel_id
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self._apps: Dict[str, firebase_admin.App] = {}

        logger.info(
            "FCM gateway created",
            extra={
                "channel_id": channel_id,
                "timeout_seconds": timeout_seconds,
                "max_retries": max_retries,
            }
        )

    @classmethod
    def from_settings(cls, settings) -> "FCMGateway":
        return cls(
            channel_id=settings.FCM_CHANNEL_ID,
            timeout_seconds=settings.PUSH_SEND_TIMEOUT_SECONDS,
            max_retries=settings.PUSH_MAX_RETRIES,
        )

    def _get_app(self, credential: PartnerCredential) -> firebase_admin.App:
        """Return the Firebase app for a partner, initializing it on first use."""
        app = self._apps.get(credential.partner)
        if app is not None:
            return app

        creds_path = Path(credential.credentials_path)
        if not creds_path.exists():
            logger.error(
                "FCM credentials file not found",
                extra={"partner": credential.partner, "credentials_path": str(creds_path)}
            )
            raise GatewayError(f"FCM credentials file not found for partner '{credential.partner}'")

        try:
            app = firebase_admin.get_app(credential.app_name)
            logger.debug(f"Using existing Firebase app: {credential.app_name}")
        except ValueError:
            # App doesn't exist, create it
            try:
                cert = credentials.Certificate(str(creds_path))
                options = {"projectId": credential.project_id} if credential.project_id else None
                app = firebase_admin.initialize_app(cert, options=options, name=credential.app_name)
            except (ValueError, OSError) as e:
                logger.error(
                    f"Firebase initialization failed: {e}",
                    extra={"partner": credential.partner, "credentials_path": str(creds_path)}
                )
                raise GatewayError(
                    f"Firebase initialization failed for partner '{credential.partner}'"
                ) from e

            logger.info(
                "Firebase Admin SDK initialized",
                extra={"app_name": credential.app_name, "partner": credential.partner}
            )

        self._apps[credential.partner] = app
        return app

    def _android_config(self, payload: FCMPayload) -> "messaging.AndroidConfig":
        return messaging.AndroidConfig(
            priority=payload.priority,
            notification=messaging.AndroidNotification(
                title=payload.title,
                body=payload.body,
                sound=payload.sound,
                channel_id=payload.channel_id,
            ),
        )

    def _build_message(
        self,
        target: Union[SingleTarget, TopicTarget],
        payload: FCMPayload,
    ) -> "messaging.Message":
        """Build an FCM message addressed to a token or a topic."""
        kwargs: Dict[str, Any] = {}
        if isinstance(target, TopicTarget):
            kwargs["topic"] = target.topic
        else:
            kwargs["token"] = target.token

        return messaging.Message(
            notification=messaging.Notification(title=payload.title, body=payload.body),
            data=payload.data if payload.data else None,
            android=self._android_config(payload),
            **kwargs,
        )

    def _build_multicast(
        self,
        tokens: Sequence[str],
        payload: FCMPayload,
    ) -> "messaging.MulticastMessage":
        return messaging.MulticastMessage(
            tokens=list(tokens),
            notification=messaging.Notification(title=payload.title, body=payload.body),
            data=payload.data if payload.data else None,
            android=self._android_config(payload),
        )

    async def _call(self, func: Callable, message: Any, app: firebase_admin.App) -> Any:
        """Run a blocking SDK call in a worker thread, bounded by the timeout."""
        return await asyncio.wait_for(
            asyncio.to_thread(func, message, app=app),
            timeout=self.timeout_seconds,
        )

    def _payload(self, notification: Notification, data: Dict[str, str]) -> FCMPayload:
        return FCMPayload.from_notification(notification, data, channel_id=self.channel_id)

    async def send_one(
        self,
        target: Union[SingleTarget, TopicTarget],
        notification: Notification,
        data: Dict[str, str],
        credential: PartnerCredential,
    ) -> DeliveryResult:
        """
        Send a notification to one device token or one topic.

        Transient errors are retried with exponential backoff.

        Raises:
            GatewayError: If the message could not be delivered
        """
        app = self._get_app(credential)
        message = self._build_message(target, self._payload(notification, data))
        destination = target.topic if isinstance(target, TopicTarget) else mask_token(target.token)

        retries = 0
        start_time = time.time()

        while True:
            try:
                message_id = await self._call(messaging.send, message, app)
            except asyncio.TimeoutError:
                logger.error(
                    "FCM send timed out",
                    extra={"destination": destination, "timeout_seconds": self.timeout_seconds}
                )
                raise GatewayError(f"FCM send timed out after {self.timeout_seconds}s")
            except Exception as e:
                status, retryable = classify_error(e)
                if retryable and retries < self.max_retries:
                    delay = self.retry_base_delay * (2 ** retries)
                    logger.warning(
                        "FCM transient error, retrying",
                        extra={
                            "destination": destination,
                            "status": status.value,
                            "retry": retries + 1,
                            "error": str(e),
                        }
                    )
                    await asyncio.sleep(delay)
                    retries += 1
                    continue

                logger.error(
                    f"FCM notification failed after {retries} retries",
                    extra={
                        "destination": destination,
                        "status": status.value,
                        "error": str(e),
                        "duration_ms": int((time.time() - start_time) * 1000),
                    }
                )
                raise GatewayError(f"FCM send failed ({status.value}): {e}") from e

            logger.info(
                "FCM notification sent successfully",
                extra={
                    "destination": destination,
                    "message_id": message_id,
                    "retries": retries,
                    "duration_ms": int((time.time() - start_time) * 1000),
                }
            )
            return DeliveryResult(
                device_token=destination if isinstance(target, TopicTarget) else target.token,
                success=True,
                status=DeliveryStatus.SUCCESS,
                message_id=message_id,
                retries=retries,
            )

    async def send_multicast(
        self,
        tokens: Sequence[str],
        notification: Notification,
        data: Dict[str, str],
        credential: PartnerCredential,
    ) -> List[DeliveryResult]:
        """
        Send a notification to many device tokens.

        Uses send_each_for_multicast in chunks of FCM_MULTICAST_LIMIT tokens.
        Per-token failures are returned, not raised. Once a chunk has gone
        out, a later chunk that fails as a whole is reported as one failed
        result per token so earlier deliveries are never discarded.

        Raises:
            GatewayError: If nothing could be sent (app setup or first chunk)
        """
        if not tokens:
            return []

        app = self._get_app(credential)
        payload = self._payload(notification, data)
        results: List[DeliveryResult] = []

        for offset in range(0, len(tokens), FCM_MULTICAST_LIMIT):
            chunk = list(tokens[offset:offset + FCM_MULTICAST_LIMIT])
            try:
                results.extend(await self._send_chunk(chunk, payload, app))
            except GatewayError as e:
                if offset == 0:
                    raise
                logger.error(
                    "FCM chunk failed after earlier chunks were sent",
                    extra={"partner": credential.partner, "offset": offset, "tokens": len(chunk)}
                )
                status = e.status or DeliveryStatus.FAILED
                results.extend(
                    DeliveryResult(device_token=token, success=False, status=status, error=e.message)
                    for token in chunk
                )

        success_count = sum(1 for r in results if r.success)
        invalid_count = sum(1 for r in results if r.status == DeliveryStatus.INVALID_TOKEN)
        logger.info(
            "FCM batch send complete",
            extra={
                "partner": credential.partner,
                "total": len(tokens),
                "success": success_count,
                "failed": len(tokens) - success_count,
                "invalid_tokens": invalid_count,
            }
        )
        return results

    async def _send_chunk(
        self,
        tokens: List[str],
        payload: FCMPayload,
        app: firebase_admin.App,
    ) -> List[DeliveryResult]:
        message = self._build_multicast(tokens, payload)
        retries = 0

        while True:
            try:
                response = await self._call(messaging.send_each_for_multicast, message, app)
                break
            except asyncio.TimeoutError:
                logger.error("FCM batch send timed out", extra={"tokens": len(tokens)})
                raise GatewayError(
                    f"FCM batch send timed out after {self.timeout_seconds}s",
                    status=DeliveryStatus.FAILED,
                )
            except Exception as e:
                status, retryable = classify_error(e)
                if retryable and retries < self.max_retries:
                    await asyncio.sleep(self.retry_base_delay * (2 ** retries))
                    retries += 1
                    continue
                logger.error(f"FCM batch send error: {e}", exc_info=True)
                raise GatewayError(f"FCM batch send failed ({status.value}): {e}", status=status) from e

        results = []
        for token, resp in zip(tokens, response.responses):
            if resp.success:
                results.append(DeliveryResult(
                    device_token=token,
                    success=True,
                    status=DeliveryStatus.SUCCESS,
                    message_id=resp.message_id,
                    retries=retries,
                ))
                continue

            exception = resp.exception
            status, _ = classify_error(exception) if exception else (DeliveryStatus.FAILED, False)
            if status == DeliveryStatus.INVALID_TOKEN:
                logger.warning(
                    "FCM device token unregistered",
                    extra={"device_token": mask_token(token)}
                )
            results.append(DeliveryResult(
                device_token=token,
                success=False,
                status=status,
                error=str(exception) if exception else "Unknown error",
                retries=retries,
            ))
        return results

    async def close(self) -> None:
        """Delete every Firebase app created by this gateway."""
        apps, self._apps = self._apps, {}
        for partner, app in apps.items():
            try:
                firebase_admin.delete_app(app)
                logger.debug("Firebase app deleted", extra={"partner": partner})
            except ValueError as e:
                logger.warning(f"Error deleting Firebase app: {e}")


# Global singleton instance
_fcm_gateway: Optional[FCMGateway] = None


def get_fcm_gateway() -> FCMGateway:
    """Get the global FCMGateway configured from settings."""
    global _fcm_gateway

    if _fcm_gateway is None:
        _fcm_gateway = FCMGateway.from_settings(settings)

    return _fcm_gateway
