"""
Delivery Gateway contract.

The dispatcher talks to the push provider only through this interface.
Implementations fail hard (GatewayError) only when a call cannot be
issued or, for single and topic sends, when the one delivery fails.
Multicast sends report per-token outcomes instead.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Sequence, Union

from coursepush.services.push.models import (
    DeliveryResult,
    Notification,
    PartnerCredential,
    SingleTarget,
    TopicTarget,
)


class DeliveryGateway(ABC):
    """Push provider client."""

    @abstractmethod
    async def send_one(
        self,
        target: Union[SingleTarget, TopicTarget],
        notification: Notification,
        data: Dict[str, str],
        credential: PartnerCredential,
    ) -> DeliveryResult:
        """Send to one device token or one topic."""

    @abstractmethod
    async def send_multicast(
        self,
        tokens: Sequence[str],
        notification: Notification,
        data: Dict[str, str],
        credential: PartnerCredential,
    ) -> List[DeliveryResult]:
        """Send to many device tokens, one DeliveryResult per token in input order."""

    async def close(self) -> None:
        """Release provider resources."""

    async def __aenter__(self) -> "DeliveryGateway":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
