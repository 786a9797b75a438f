"""
Credential Selector.

Maps a partner tag to the delivery credential used for that partner's
notifications. The table is built once at startup and is read-only
afterwards.
"""

import logging
from types import MappingProxyType
from typing import List, Mapping, Optional

from coursepush.core.config import settings
from coursepush.services.push.exceptions import InvalidPartner
from coursepush.services.push.models import PartnerCredential

logger = logging.getLogger(__name__)


class CredentialSelector:
    """
    Partner -> PartnerCredential lookup.

    Usage:
        selector = CredentialSelector.from_settings(settings)
        credential = selector.resolve("poc1")
    """

    def __init__(self, credentials: Mapping[str, PartnerCredential]):
        self._table = MappingProxyType(dict(credentials))

        logger.info(
            "Credential selector configured",
            extra={"partners": self.partners}
        )

    @classmethod
    def from_mapping(cls, paths: Mapping[str, str]) -> "CredentialSelector":
        """Build a selector from a partner -> credentials path mapping."""
        return cls({
            partner: PartnerCredential(partner=partner, credentials_path=path)
            for partner, path in paths.items()
        })

    @classmethod
    def from_settings(cls, settings) -> "CredentialSelector":
        """Build a selector from FCM_PARTNER_CREDENTIALS."""
        return cls.from_mapping(settings.partner_credentials_map)

    @property
    def partners(self) -> List[str]:
        """Configured partner tags, sorted."""
        return sorted(self._table)

    def resolve(self, partner: str) -> PartnerCredential:
        """
        Return the credential for a partner.

        Raises:
            InvalidPartner: If the partner has no configured credential
        """
        credential = self._table.get(partner)
        if credential is None:
            message = f"Invalid partner '{partner}'. Use one of: {', '.join(self.partners)}"
            logger.error(
                "Unknown partner requested",
                extra={"partner": partner, "configured": self.partners}
            )
            raise InvalidPartner(message)
        return credential


# Global singleton instance
_credential_selector: Optional[CredentialSelector] = None


def get_credential_selector() -> CredentialSelector:
    """Get the global CredentialSelector built from settings."""
    global _credential_selector

    if _credential_selector is None:
        _credential_selector = CredentialSelector.from_settings(settings)

    return _credential_selector
