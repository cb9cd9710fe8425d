"""
Contact controller.
"""

from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession

from ledgercrm.controllers.base_controller import BaseController
from ledgercrm.deps.di_container import get_container
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
)
from ledgercrm.services.contact_service import ContactService


class ContactController(BaseController):
    """Controller for contact operations."""

    def __init__(self, session: AsyncSession, actor: Actor):
        super().__init__(session, actor)
        container = get_container()
        self.contact_service = ContactService(
            session,
            notifier=container.portal_notifier(),
            locks=container.client_locks(),
            clock=container.clock(),
        )

    async def create_contact(self, client_id: UUID, contact_data: ContactCreate) -> ContactResponse:
        """Create a new contact for a client."""
        return await self.contact_service.create_contact(client_id, contact_data, self.actor)

    async def get_contact(self, contact_id: UUID) -> ContactResponse:
        return await self.contact_service.get_contact(contact_id, self.actor)

    async def get_contact_history(self, contact_id: UUID) -> ContactHistoryListResponse:
        return await self.contact_service.get_contact_history(contact_id, self.actor)

    async def list_contacts(self, client_id: UUID, filters: ContactFilters) -> ContactListResponse:
        """List contacts of a client."""
        return await self.contact_service.list_contacts(client_id, self.actor, filters)

    async def update_contact(self, contact_id: UUID, contact_data: ContactUpdate) -> ContactResponse:
        return await self.contact_service.update_contact(contact_id, contact_data, self.actor)

    async def delete_contact(self, contact_id: UUID) -> None:
        await self.contact_service.delete_contact(contact_id, self.actor)

    async def restore_contact(self, contact_id: UUID) -> ContactResponse:
        return await self.contact_service.restore_contact(contact_id, self.actor)

    async def transfer_primary_status(self, client_id: UUID, contact_id: UUID) -> ContactResponse:
        return await self.contact_service.transfer_primary_status(client_id, contact_id, self.actor)

    async def enable_portal_access(self, contact_id: UUID, data: PortalAccessEnable) -> ContactResponse:
        return await self.contact_service.enable_portal_access(
            contact_id,
            self.actor,
            permissions=data.permissions,
            send_invitation=data.send_invitation,
        )

    async def activate_portal_access(self, contact_id: UUID) -> ContactResponse:
        return await self.contact_service.activate_portal_access(contact_id, self.actor)

    async def revoke_portal_access(self, contact_id: UUID, data: PortalAccessRevoke) -> ContactResponse:
        return await self.contact_service.revoke_portal_access(
            contact_id,
            self.actor,
            reason=data.reason,
            send_notification=data.send_notification,
        )
