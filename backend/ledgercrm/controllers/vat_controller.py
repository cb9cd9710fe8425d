"""
VAT validation controller.
"""

from typing import List
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession

from ledgercrm.controllers.base_controller import BaseController
from ledgercrm.deps.di_container import get_container
from ledgercrm.schemas.common import Actor
from ledgercrm.schemas.vat import (
    ClientVatStatus,
    VatBatchValidateRequest,
    VatBatchValidationResponse,
    VatRecordLinkRequest,
    VatValidateRequest,
    VatValidationRecordResponse,
    VatValidationResult,
)
from ledgercrm.services.vat_service import VatService


class VatController(BaseController):
    """Controller for VAT validation operations."""

    def __init__(self, session: AsyncSession, actor: Actor):
        super().__init__(session, actor)
        container = get_container()
        self.vat_service = VatService(
            session,
            registry=container.vat_registry(),
            cache=container.cache(),
            rate_limiter=container.vat_rate_limiter(),
            clock=container.clock(),
            sleep=container.sleep(),
        )

    async def validate(self, request: VatValidateRequest) -> VatValidationResult:
        return await self.vat_service.validate_vat(request.vat_number, self.actor, client_id=request.client_id)

    async def validate_batch(self, request: VatBatchValidateRequest) -> VatBatchValidationResponse:
        return await self.vat_service.batch_validate_vat(request.vat_numbers, self.actor)

    async def link_to_client(self, record_id: UUID, request: VatRecordLinkRequest) -> VatValidationRecordResponse:
        return await self.vat_service.link_to_client(record_id, request.client_id, self.actor)

    async def list_history(self, vat_number: str) -> List[VatValidationRecordResponse]:
        return await self.vat_service.list_history(vat_number, self.actor)

    async def get_client_status(self, client_id: UUID) -> ClientVatStatus:
        return await self.vat_service.get_vat_status(client_id, self.actor)
