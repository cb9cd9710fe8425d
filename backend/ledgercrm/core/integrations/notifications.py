"""
Portal invitation and revocation dispatch.

Delivery itself (SMTP, templates) lives in the notification service outside
this backend; this module only hands messages over to it.
"""

from typing import Optional, Protocol, List
from uuid import UUID

from ledgercrm.core.config import settings
from ledgercrm.core.logging import get_logger

logger = get_logger(__name__)


class PortalNotifier(Protocol):
    """Fire-and-forget sender for portal access messages."""

    async def send_invitation(
        self,
        contact_id: UUID,
        email: str,
        full_name: str,
        portal_account_id: UUID,
        permissions: List[str],
    ) -> None: ...

    async def send_revocation(
        self,
        contact_id: UUID,
        email: str,
        full_name: str,
        reason: Optional[str],
    ) -> None: ...


class LoggingPortalNotifier:
    """Notifier that records each dispatch in the service log."""

    def __init__(self, portal_base_url: str = None):
        self.portal_base_url = (portal_base_url or settings.PORTAL_BASE_URL).rstrip("/")

    def invitation_link(self, portal_account_id: UUID) -> str:
        return f"{self.portal_base_url}/activate/{portal_account_id}"

    async def send_invitation(
        self,
        contact_id: UUID,
        email: str,
        full_name: str,
        portal_account_id: UUID,
        permissions: List[str],
    ) -> None:
        logger.info(
            f"Portal invitation queued for {email}",
            extra={
                "contact_id": str(contact_id),
                "portal_account_id": str(portal_account_id),
                "link": self.invitation_link(portal_account_id),
                "permissions": permissions,
            },
        )

    async def send_revocation(
        self,
        contact_id: UUID,
        email: str,
        full_name: str,
        reason: Optional[str],
    ) -> None:
        logger.info(
            f"Portal revocation notice queued for {email}",
            extra={"contact_id": str(contact_id), "reason": reason},
        )
