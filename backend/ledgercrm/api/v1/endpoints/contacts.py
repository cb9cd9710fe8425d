"""
Contact API endpoints.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ledgercrm.api.v1.middleware import require_actor
from ledgercrm.controllers.contact_controller import ContactController
from ledgercrm.db.session import get_db
from ledgercrm.models.contact import ContactRole
from ledgercrm.schemas.common import Actor
from ledgercrm.schemas.contact import (
    ContactCreate,
    ContactFilters,
    ContactHistoryListResponse,
    ContactListResponse,
    ContactResponse,
    ContactUpdate,
    PortalAccessEnable,
    PortalAccessRevoke,
    PrimaryContactTransfer,
)

router = APIRouter()


@router.post(
    "/clients/{client_id}/contacts",
    response_model=ContactResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_contact(
    client_id: UUID,
    contact_data: ContactCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> ContactResponse:
    """Create a new contact for a client."""
    controller = ContactController(db, actor)
    return await controller.create_contact(client_id, contact_data)


@router.get("/clients/{client_id}/contacts", response_model=ContactListResponse)
async def list_contacts(
    client_id: UUID,
    roles: Optional[List[ContactRole]] = Query(None),
    has_portal_access: Optional[bool] = Query(None),
    is_active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> ContactListResponse:
    """List contacts of a client, primary first."""
    controller = ContactController(db, actor)
    filters = ContactFilters(
        roles=roles,
        has_portal_access=has_portal_access,
        is_active=is_active,
        search=search,
    )
    return await controller.list_contacts(client_id, filters)


@router.post("/clients/{client_id}/primary-contact", response_model=ContactResponse)
async def transfer_primary_contact(
    client_id: UUID,
    transfer: PrimaryContactTransfer,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> ContactResponse:
    """Designate another contact as the client's primary contact."""
    controller = ContactController(db, actor)
    return await controller.transfer_primary_status(client_id, transfer.contact_id)


@router.get("/contacts/{contact_id}", response_model=ContactResponse)
async def get_contact(
    contact_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> ContactResponse:
    """Get contact by ID."""
    controller = ContactController(db, actor)
    return await controller.get_contact(contact_id)


@router.get("/contacts/{contact_id}/history", response_model=ContactHistoryListResponse)
async def get_contact_history(
    contact_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> ContactHistoryListResponse:
    """Get the change history of a contact."""
    controller = ContactController(db, actor)
    return await controller.get_contact_history(contact_id)


@router.patch("/contacts/{contact_id}", response_model=ContactResponse)
async def update_contact(
    contact_id: UUID,
    contact_data: ContactUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> ContactResponse:
    """Update a contact."""
    controller = ContactController(db, actor)
    return await controller.update_contact(contact_id, contact_data)


@router.delete("/contacts/{contact_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_contact(
    contact_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    """Soft-delete a contact."""
    controller = ContactController(db, actor)
    await controller.delete_contact(contact_id)


@router.post("/contacts/{contact_id}/restore", response_model=ContactResponse)
async def restore_contact(
    contact_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    """Restore a soft-deleted contact."""
    controller = ContactController(db, actor)
    return await controller.restore_contact(contact_id)


@router.post("/contacts/{contact_id}/portal-access", response_model=ContactResponse)
async def enable_portal_access(
    contact_id: UUID,
    data: PortalAccessEnable,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> ContactResponse:
    """Grant portal access and optionally send an invitation."""
    controller = ContactController(db, actor)
    return await controller.enable_portal_access(contact_id, data)


@router.post("/contacts/{contact_id}/portal-access/activate", response_model=ContactResponse)
async def activate_portal_access(
    contact_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> ContactResponse:
    """Record the contact's first portal login."""
    controller = ContactController(db, actor)
    return await controller.activate_portal_access(contact_id)


@router.delete("/contacts/{contact_id}/portal-access", response_model=ContactResponse)
async def revoke_portal_access(
    contact_id: UUID,
    reason: Optional[str] = Query(None, max_length=500),
    send_notification: bool = Query(True),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> ContactResponse:
    """Revoke portal access."""
    controller = ContactController(db, actor)
    return await controller.revoke_portal_access(
        contact_id, PortalAccessRevoke(reason=reason, send_notification=send_notification)
    )
