"""
Whitelist verification controller.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from ledgercrm.controllers.base_controller import BaseController
from ledgercrm.core.exceptions import ServiceUnavailableError
from ledgercrm.deps.di_container import get_container
from ledgercrm.models.whitelist_verification import WhitelistStatus
from ledgercrm.schemas.common import Actor
from ledgercrm.schemas.whitelist import (
    WhitelistBatchVerificationResponse,
    WhitelistBatchVerifyRequest,
    WhitelistVerificationResult,
    WhitelistVerifyRequest,
)
from ledgercrm.services.whitelist_service import WhitelistService


class WhitelistController(BaseController):
    """Controller for whitelist verification operations."""

    def __init__(self, session: AsyncSession, actor: Actor):
        super().__init__(session, actor)
        container = get_container()
        self.whitelist_service = WhitelistService(
            session,
            registry=container.whitelist_registry(),
            cache=container.cache(),
            clock=container.clock(),
        )

    async def verify(self, request: WhitelistVerifyRequest) -> WhitelistVerificationResult:
        """
        Verify one NIP.

        Raises:
            ServiceUnavailableError: The registry could not be reached
        """
        result = await self.whitelist_service.verify(
            request.nip,
            self.actor,
            bank_account=request.bank_account,
            verification_date=request.verification_date,
            client_id=request.client_id,
        )
        if result.status == WhitelistStatus.SERVICE_ERROR:
            raise ServiceUnavailableError(
                "Whitelist registry is unavailable, try again later",
                details={"nip": result.nip},
            )
        return result

    async def verify_batch(self, request: WhitelistBatchVerifyRequest) -> WhitelistBatchVerificationResponse:
        """Verify many entries; registry outages are reported per entry."""
        return await self.whitelist_service.batch_verify(request.entries, self.actor)
