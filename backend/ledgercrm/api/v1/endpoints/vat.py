"""
VAT validation API endpoints.
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ledgercrm.api.v1.middleware import require_actor
from ledgercrm.controllers.vat_controller import VatController
from ledgercrm.db.session import get_db
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

router = APIRouter()


@router.post("/validate", response_model=VatValidationResult)
async def validate_vat(
    request: VatValidateRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> VatValidationResult:
    """
    Validate one VAT number against VIES.
    A registry outage yields a SERVICE_UNAVAILABLE result rather than an error.
    """
    controller = VatController(db, actor)
    return await controller.validate(request)


@router.post("/validate/batch", response_model=VatBatchValidationResponse)
async def validate_vat_batch(
    request: VatBatchValidateRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> VatBatchValidationResponse:
    """Validate up to 100 VAT numbers."""
    controller = VatController(db, actor)
    return await controller.validate_batch(request)


@router.post("/records/{record_id}/link", response_model=VatValidationRecordResponse)
async def link_vat_record(
    record_id: UUID,
    request: VatRecordLinkRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> VatValidationRecordResponse:
    """Attach a stored validation to a client."""
    controller = VatController(db, actor)
    return await controller.link_to_client(record_id, request)


@router.get("/history/{vat_number}", response_model=List[VatValidationRecordResponse])
async def vat_history(
    vat_number: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> List[VatValidationRecordResponse]:
    """Stored validations of a VAT number, newest first."""
    controller = VatController(db, actor)
    return await controller.list_history(vat_number)


@router.get("/clients/{client_id}/status", response_model=ClientVatStatus)
async def client_vat_status(
    client_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> ClientVatStatus:
    """Latest VAT standing of a client, with whether it needs re-validation."""
    controller = VatController(db, actor)
    return await controller.get_client_status(client_id)
