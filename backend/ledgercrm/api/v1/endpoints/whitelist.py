"""
Whitelist verification API endpoints.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ledgercrm.api.v1.middleware import require_actor
from ledgercrm.controllers.whitelist_controller import WhitelistController
from ledgercrm.db.session import get_db
from ledgercrm.schemas.common import Actor
from ledgercrm.schemas.whitelist import (
    WhitelistBatchVerificationResponse,
    WhitelistBatchVerifyRequest,
    WhitelistVerificationResult,
    WhitelistVerifyRequest,
)

router = APIRouter()


@router.post("/verify", response_model=WhitelistVerificationResult)
async def verify(
    request: WhitelistVerifyRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> WhitelistVerificationResult:
    """Verify a NIP (and optionally a bank account). Registry outages answer 503."""
    controller = WhitelistController(db, actor)
    return await controller.verify(request)


@router.post("/verify/batch", response_model=WhitelistBatchVerificationResponse)
async def verify_batch(
    request: WhitelistBatchVerifyRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> WhitelistBatchVerificationResponse:
    """Verify up to 100 entries."""
    controller = WhitelistController(db, actor)
    return await controller.verify_batch(request)
