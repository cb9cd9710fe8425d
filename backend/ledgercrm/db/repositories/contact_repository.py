"""
Contact repository for database operations.
"""

from typing import Optional, List, Sequence
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, or_, case

from ledgercrm.db.repositories.base_repository import BaseRepository
from ledgercrm.models.contact import Contact, ContactRole, ContactRoleLink


class ContactRepository(BaseRepository[Contact]):
    """Repository for contact operations. Tombstoned contacts are excluded unless asked for."""

    def __init__(self, session: AsyncSession):
        super().__init__(Contact, session)

    async def get(
        self,
        id: UUID,
        organization_id: Optional[UUID] = None,
        include_deleted: bool = False,
    ) -> Optional[Contact]:
        """Get contact by ID within an organization."""
        query = select(Contact).where(Contact.id == id)
        if organization_id is not None:
            query = query.where(Contact.organization_id == organization_id)
        if not include_deleted:
            query = query.where(Contact.deleted_at.is_(None))
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_by_client(
        self,
        client_id: UUID,
        organization_id: UUID,
        roles: Optional[Sequence[ContactRole]] = None,
        has_portal_access: Optional[bool] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
    ) -> List[Contact]:
        """
        List non-deleted contacts of a client.

        Filters combine with AND; the role filter matches contacts holding any
        of the requested roles. Primary contact first, then last/first name.
        """
        query = (
            select(Contact)
            .where(Contact.client_id == client_id)
            .where(Contact.organization_id == organization_id)
            .where(Contact.deleted_at.is_(None))
        )
        if roles:
            query = query.where(
                select(ContactRoleLink.id)
                .where(ContactRoleLink.contact_id == Contact.id)
                .where(ContactRoleLink.role.in_(list(roles)))
                .exists()
            )
        if has_portal_access is not None:
            query = query.where(Contact.has_portal_access == has_portal_access)
        if is_active is not None:
            query = query.where(Contact.is_active == is_active)
        if search:
            pattern = f"%{search.lower()}%"
            query = query.where(
                or_(
                    func.lower(Contact.first_name).like(pattern),
                    func.lower(Contact.last_name).like(pattern),
                    func.lower(func.coalesce(Contact.email, "")).like(pattern),
                )
            )
        query = query.order_by(
            case((Contact.is_primary.is_(True), 0), else_=1),
            Contact.last_name.asc(),
            Contact.first_name.asc(),
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def lock_client_contacts(self, client_id: UUID) -> List[Contact]:
        """
        Lock every non-deleted contact row of a client for the current transaction.

        Concurrent primary transitions for the same client queue behind this lock.
        """
        result = await self.session.execute(
            select(Contact)
            .where(Contact.client_id == client_id)
            .where(Contact.deleted_at.is_(None))
            .order_by(Contact.id)
            .with_for_update()
        )
        return list(result.scalars().all())

    async def get_primary_contact(self, client_id: UUID) -> Optional[Contact]:
        """Get the primary contact of a client."""
        result = await self.session.execute(
            select(Contact)
            .where(Contact.client_id == client_id)
            .where(Contact.deleted_at.is_(None))
            .where(Contact.is_primary.is_(True))
        )
        return result.scalar_one_or_none()

    async def clear_primary_contacts(self, client_id: UUID) -> None:
        """Clear primary status for all non-deleted contacts of a client."""
        await self.session.execute(
            update(Contact)
            .where(Contact.client_id == client_id)
            .where(Contact.deleted_at.is_(None))
            .where(Contact.is_primary.is_(True))
            .values(is_primary=False)
            .execution_options(synchronize_session="fetch")
        )
        await self.session.flush()

    async def count_other_active(self, client_id: UUID, exclude_contact_id: UUID) -> int:
        """Count active, non-deleted contacts of a client other than the given one."""
        result = await self.session.execute(
            select(func.count(Contact.id))
            .where(Contact.client_id == client_id)
            .where(Contact.id != exclude_contact_id)
            .where(Contact.deleted_at.is_(None))
            .where(Contact.is_active.is_(True))
        )
        return result.scalar() or 0

    async def next_primary_candidate(self, client_id: UUID, exclude_contact_id: UUID) -> Optional[Contact]:
        """First active contact of a client in listing order, skipping the given one."""
        result = await self.session.execute(
            select(Contact)
            .where(Contact.client_id == client_id)
            .where(Contact.id != exclude_contact_id)
            .where(Contact.deleted_at.is_(None))
            .where(Contact.is_active.is_(True))
            .order_by(Contact.last_name.asc(), Contact.first_name.asc(), Contact.created_at.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()
