"""
Contact service with business logic.

Owns the contact lifecycle, the single-primary-contact rule and the portal
access state machine (NONE -> PENDING -> ACTIVE -> REVOKED; enabling again
after a revocation starts a fresh PENDING cycle). Every successful mutation
writes one history entry for the contact and one timeline event.
"""

import asyncio
import copy
import enum
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ledgercrm.core.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from ledgercrm.core.integrations.notifications import LoggingPortalNotifier, PortalNotifier
from ledgercrm.core.logging import get_logger
from ledgercrm.db.repositories.client_repository import ClientRepository
from ledgercrm.db.repositories.contact_history_repository import ContactHistoryRepository
from ledgercrm.db.repositories.contact_repository import ContactRepository
from ledgercrm.db.repositories.portal_account_repository import PortalAccountRepository
from ledgercrm.models.contact import Contact, ContactRole, PortalStatus
from ledgercrm.models.contact_history import ContactChangeType
from ledgercrm.models.portal_account import PortalAccount
from ledgercrm.schemas.common import Actor
from ledgercrm.schemas.contact import (
    ContactCreate,
    ContactFilters,
    ContactHistoryListResponse,
    ContactHistoryResponse,
    ContactListResponse,
    ContactResponse,
    ContactUpdate,
)
from ledgercrm.services.audit_service import audited
from ledgercrm.services.base_service import BaseService
from ledgercrm.services.timeline_service import TimelineService
from ledgercrm.utils.clock import utcnow

logger = get_logger(__name__)

DEFAULT_PORTAL_PERMISSIONS = ["documents:read", "invoices:read", "messages:write"]
DATA_PROCESSING_LEGAL_BASIS = "GDPR Art. 6(1)(b)"

# Fields captured in history snapshots and compared to detect changes
SNAPSHOT_FIELDS = (
    "first_name",
    "last_name",
    "email",
    "phone",
    "mobile",
    "fax",
    "position",
    "department",
    "roles",
    "is_primary",
    "is_active",
    "has_portal_access",
    "portal_status",
    "portal_account_id",
    "portal_invited_at",
    "portal_activated_at",
    "portal_revoked_at",
    "portal_revoked_reason",
    "communication_preferences",
    "consent",
    "notes",
    "deleted_at",
)

CONSENT_FIELDS = {
    "marketing_consent": "marketing",
    "third_party_consent": "third_party",
}


class ClientLockRegistry:
    """Per-client asyncio locks serializing primary-contact transitions within one process."""

    def __init__(self):
        self._locks: Dict[UUID, asyncio.Lock] = {}

    def for_client(self, client_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(client_id)
        if lock is None:
            lock = self._locks[client_id] = asyncio.Lock()
        return lock


client_locks = ClientLockRegistry()


def _json_value(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_json_value(v) for v in value]
    if isinstance(value, dict):
        return {k: _json_value(v) for k, v in value.items()}
    return value


def contact_snapshot(contact: Contact) -> Dict[str, Any]:
    """JSON-safe copy of every tracked field of a contact."""
    snapshot = {field: _json_value(getattr(contact, field)) for field in SNAPSHOT_FIELDS}
    snapshot["roles"] = sorted(snapshot["roles"])
    snapshot["id"] = str(contact.id)
    snapshot["client_id"] = str(contact.client_id)
    return snapshot


def _changed_fields(before: Dict[str, Any], after: Dict[str, Any]) -> List[str]:
    return [field for field in SNAPSHOT_FIELDS if before.get(field) != after.get(field)]


def _require_contact_method(email: Optional[str], phone: Optional[str], mobile: Optional[str]) -> None:
    if not any((email, phone, mobile)):
        raise ValidationError(
            "At least one contact method (email, phone or mobile) is required",
            details={"fields": ["email", "phone", "mobile"]},
        )


def _require_roles(roles: Optional[Sequence[ContactRole]]) -> None:
    if not roles:
        raise ValidationError("At least one role is required", details={"field": "roles"})


class ContactService(BaseService):
    """Service for contact operations."""

    def __init__(
        self,
        session: AsyncSession,
        notifier: Optional[PortalNotifier] = None,
        locks: Optional[ClientLockRegistry] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(session)
        self.contact_repo = ContactRepository(session)
        self.client_repo = ClientRepository(session)
        self.history_repo = ContactHistoryRepository(session)
        self.portal_account_repo = PortalAccountRepository(session)
        self.timeline = TimelineService(session, clock=clock)
        self.notifier = notifier or LoggingPortalNotifier()
        self.locks = locks or client_locks
        self._clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _get_contact(self, contact_id: UUID, actor: Actor, include_deleted: bool = False) -> Contact:
        contact = await self.contact_repo.get(contact_id, actor.organization_id, include_deleted=include_deleted)
        if not contact:
            raise NotFoundError("Contact not found", details={"contact_id": str(contact_id)})
        return contact

    async def _require_client(self, client_id: UUID, actor: Actor) -> None:
        client = await self.client_repo.get(client_id, actor.organization_id)
        if not client:
            raise NotFoundError("Client not found", details={"client_id": str(client_id)})

    async def get_contact(self, contact_id: UUID, actor: Actor) -> ContactResponse:
        """Get contact by ID."""
        return self._to_response(await self._get_contact(contact_id, actor))

    async def get_contact_history(self, contact_id: UUID, actor: Actor) -> ContactHistoryListResponse:
        """History of a contact, oldest first. Available after soft-deletion too."""
        await self._get_contact(contact_id, actor, include_deleted=True)
        entries = await self.history_repo.list_by_contact(contact_id, actor.organization_id)
        items = [ContactHistoryResponse.model_validate(entry) for entry in entries]
        return ContactHistoryListResponse(items=items, total=len(items))

    async def list_contacts(
        self,
        client_id: UUID,
        actor: Actor,
        filters: Optional[ContactFilters] = None,
    ) -> ContactListResponse:
        """List non-deleted contacts of a client, primary first."""
        await self._require_client(client_id, actor)
        filters = filters or ContactFilters()
        contacts = await self.contact_repo.list_by_client(
            client_id,
            actor.organization_id,
            roles=filters.roles,
            has_portal_access=filters.has_portal_access,
            is_active=filters.is_active,
            search=filters.search,
        )
        return ContactListResponse(items=[self._to_response(c) for c in contacts], total=len(contacts))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _initial_consent(self, data: ContactCreate, now: datetime) -> Dict[str, Any]:
        stamp = now.isoformat()
        consent = {
            "data_processing": {
                "granted": True,
                "granted_at": stamp,
                "legal_basis": DATA_PROCESSING_LEGAL_BASIS,
                "source": data.consent_source,
            },
        }
        for field, key in CONSENT_FIELDS.items():
            granted = getattr(data, field)
            if granted is None:
                continue
            consent[key] = {
                "granted": granted,
                "granted_at": stamp if granted else None,
                "revoked_at": None,
                "source": data.consent_source,
            }
        return consent

    def _apply_consent_changes(self, contact: Contact, data: ContactUpdate, now: datetime) -> None:
        consent = copy.deepcopy(contact.consent or {})
        stamp = now.isoformat()
        for field, key in CONSENT_FIELDS.items():
            granted = getattr(data, field)
            if granted is None:
                continue
            current = consent.get(key) or {}
            if bool(current.get("granted")) == granted:
                continue
            consent[key] = {
                "granted": granted,
                "granted_at": stamp if granted else current.get("granted_at"),
                "revoked_at": None if granted else stamp,
                "source": data.consent_source,
            }
        if consent != (contact.consent or {}):
            contact.consent = consent

    async def _write_history(
        self,
        contact: Contact,
        change_type: ContactChangeType,
        changed_fields: List[str],
        actor: Actor,
    ) -> None:
        await self.history_repo.create(
            organization_id=contact.organization_id,
            contact_id=contact.id,
            change_type=change_type,
            changed_fields=changed_fields,
            snapshot=contact_snapshot(contact),
            changed_by=actor.user_id,
            changed_at=self._clock(),
        )

    async def _make_primary(self, target: Contact, previous: Optional[Contact], actor: Actor) -> None:
        """
        Clear every primary flag of the client, then set it on `target`.

        The caller holds the client lock and the contact row locks. The clear is
        flushed before the flag is set so the partial unique index never sees two
        primaries. The previous primary gets its own history entry.
        """
        await self.contact_repo.clear_primary_contacts(target.client_id)
        target.is_primary = True
        await self.session.flush()
        if previous is not None and previous.id != target.id:
            previous.updated_by = actor.user_id
            previous.updated_at = self._clock()
            await self._write_history(previous, ContactChangeType.UPDATE, ["is_primary"], actor)

    @audited("CREATE", "CONTACT")
    async def create_contact(self, client_id: UUID, data: ContactCreate, actor: Actor) -> ContactResponse:
        """
        Create a contact for a client.

        The first contact of a client always becomes primary. When portal
        access is requested it is enabled once the contact row exists.
        """
        _require_contact_method(data.email, data.phone, data.mobile)
        _require_roles(data.roles)
        if data.enable_portal_access and not data.email:
            raise ValidationError("Email is required to enable portal access", details={"field": "email"})
        await self._require_client(client_id, actor)

        async with self.locks.for_client(client_id):
            await self.contact_repo.lock_client_contacts(client_id)
            current_primary = await self.contact_repo.get_primary_contact(client_id)
            make_primary = data.is_primary or current_primary is None
            if make_primary and current_primary is not None:
                await self.contact_repo.clear_primary_contacts(client_id)
                current_primary.updated_by = actor.user_id
                current_primary.updated_at = self._clock()
                await self._write_history(current_primary, ContactChangeType.UPDATE, ["is_primary"], actor)

            now = self._clock()
            contact = Contact(
                organization_id=actor.organization_id,
                client_id=client_id,
                first_name=data.first_name,
                last_name=data.last_name,
                email=data.email,
                phone=data.phone,
                mobile=data.mobile,
                fax=data.fax,
                position=data.position,
                department=data.department,
                is_primary=make_primary,
                is_active=True,
                has_portal_access=False,
                portal_status=PortalStatus.NONE,
                communication_preferences=data.communication_preferences.model_dump(mode="json"),
                consent=self._initial_consent(data, now),
                notes=data.notes,
                created_by=actor.user_id,
                created_at=now,
                role_links=[],
            )
            contact.roles = data.roles
            await self.contact_repo.add(contact)

            await self._write_history(contact, ContactChangeType.CREATE, list(SNAPSHOT_FIELDS), actor)
            await self.timeline.record_contact_added(contact, actor)
            await self.session.commit()

        logger.info(
            f"Contact created: {contact.id}",
            extra={"client_id": str(client_id), "is_primary": contact.is_primary},
        )

        if data.enable_portal_access:
            return await self.enable_portal_access(
                contact.id,
                actor,
                permissions=data.portal_permissions,
                send_invitation=data.send_portal_invitation,
            )
        return self._to_response(contact)

    @audited("UPDATE", "CONTACT", id_arg="contact_id")
    async def update_contact(self, contact_id: UUID, data: ContactUpdate, actor: Actor) -> ContactResponse:
        """
        Apply a partial update.

        Setting `is_primary` runs the primary transfer first. The primary flag
        cannot be removed directly, and the primary contact cannot be
        deactivated; transfer the primary status to another contact instead.
        """
        contact = await self._get_contact(contact_id, actor)
        updates = data.model_dump(exclude_unset=True)
        for field in ("marketing_consent", "third_party_consent", "consent_source"):
            updates.pop(field, None)
        wants_primary = updates.pop("is_primary", None)

        if wants_primary is False and contact.is_primary:
            raise PreconditionFailedError(
                "Cannot unset the primary contact directly; transfer primary status instead",
                details={"contact_id": str(contact_id)},
            )
        if updates.get("is_active") is False and (contact.is_primary or wants_primary):
            raise PreconditionFailedError(
                "Cannot deactivate the primary contact",
                details={"contact_id": str(contact_id)},
            )
        will_be_active = updates.get("is_active", contact.is_active)
        if wants_primary and not will_be_active:
            raise PreconditionFailedError(
                "An inactive contact cannot become primary",
                details={"contact_id": str(contact_id)},
            )
        _require_contact_method(
            updates.get("email", contact.email),
            updates.get("phone", contact.phone),
            updates.get("mobile", contact.mobile),
        )
        if "roles" in updates:
            _require_roles(updates["roles"])

        async with self.locks.for_client(contact.client_id):
            await self.contact_repo.lock_client_contacts(contact.client_id)
            before = contact_snapshot(contact)

            if wants_primary and not contact.is_primary:
                previous = await self.contact_repo.get_primary_contact(contact.client_id)
                await self._make_primary(contact, previous, actor)

            now = self._clock()
            for field, value in updates.items():
                if field == "roles":
                    contact.roles = value
                else:
                    setattr(contact, field, value)
            self._apply_consent_changes(contact, data, now)

            after = contact_snapshot(contact)
            changed = _changed_fields(before, after)
            if not changed:
                return self._to_response(contact)

            contact.updated_by = actor.user_id
            contact.updated_at = now
            await self.session.flush()

            await self._write_history(contact, ContactChangeType.UPDATE, changed, actor)
            await self.timeline.record_contact_updated(
                contact,
                changed,
                before={field: before[field] for field in changed},
                after={field: after[field] for field in changed},
                actor=actor,
            )
            await self.session.commit()

        logger.info(f"Contact updated: {contact.id}", extra={"changed_fields": changed})
        return self._to_response(contact)

    @audited("TRANSFER_PRIMARY", "CONTACT", id_arg="new_primary_contact_id")
    async def transfer_primary_status(
        self,
        client_id: UUID,
        new_primary_contact_id: UUID,
        actor: Actor,
    ) -> ContactResponse:
        """
        Make another contact the client's primary contact in one atomic step.

        Designating the current primary again changes nothing and records nothing.
        """
        await self._require_client(client_id, actor)

        async with self.locks.for_client(client_id):
            await self.contact_repo.lock_client_contacts(client_id)
            target = await self.contact_repo.get(new_primary_contact_id, actor.organization_id)
            if not target or target.client_id != client_id:
                raise NotFoundError("Contact not found", details={"contact_id": str(new_primary_contact_id)})
            if not target.is_active:
                raise PreconditionFailedError(
                    "An inactive contact cannot become primary",
                    details={"contact_id": str(new_primary_contact_id)},
                )

            previous = await self.contact_repo.get_primary_contact(client_id)
            if previous is not None and previous.id == target.id:
                return self._to_response(target)

            await self._make_primary(target, previous, actor)
            target.updated_by = actor.user_id
            target.updated_at = self._clock()
            await self.session.flush()

            await self._write_history(target, ContactChangeType.UPDATE, ["is_primary"], actor)
            await self.timeline.record_primary_contact_changed(client_id, previous, target, actor)
            await self.session.commit()

        logger.info(
            f"Primary contact of client {client_id} transferred",
            extra={
                "previous_contact_id": str(previous.id) if previous else None,
                "new_contact_id": str(target.id),
            },
        )
        return self._to_response(target)

    @audited("DELETE", "CONTACT", id_arg="contact_id")
    async def delete_contact(self, contact_id: UUID, actor: Actor) -> None:
        """
        Soft-delete a contact.

        A primary contact can only be removed while another active contact
        exists; the primary flag then moves to the next active contact by
        last name, first name.

        Raises:
            PreconditionFailedError: The contact is the only active primary
        """
        contact = await self._get_contact(contact_id, actor)

        async with self.locks.for_client(contact.client_id):
            await self.contact_repo.lock_client_contacts(contact.client_id)
            successor = None
            if contact.is_primary:
                others = await self.contact_repo.count_other_active(contact.client_id, contact.id)
                if others == 0:
                    raise PreconditionFailedError(
                        "Cannot remove the only primary contact",
                        details={"contact_id": str(contact_id)},
                    )
                successor = await self.contact_repo.next_primary_candidate(contact.client_id, contact.id)

            now = self._clock()
            before = contact_snapshot(contact)
            contact.is_primary = False
            contact.is_active = False
            contact.deleted_at = now
            contact.deleted_by = actor.user_id
            if contact.has_portal_access:
                await self._deactivate_portal_account(contact, "Contact deleted", now)
                contact.has_portal_access = False
                contact.portal_status = PortalStatus.REVOKED
                contact.portal_revoked_at = now
                contact.portal_revoked_reason = "Contact deleted"
            await self.session.flush()

            if successor is not None:
                successor.is_primary = True
                successor.updated_by = actor.user_id
                successor.updated_at = now
                await self.session.flush()
                await self._write_history(successor, ContactChangeType.UPDATE, ["is_primary"], actor)

            await self._write_history(
                contact, ContactChangeType.DELETE, _changed_fields(before, contact_snapshot(contact)), actor
            )
            await self.timeline.record_contact_removed(
                contact, actor, new_primary_contact_id=successor.id if successor else None
            )
            await self.session.commit()

        logger.info(
            f"Contact deleted: {contact.id}",
            extra={"new_primary_contact_id": str(successor.id) if successor else None},
        )

    @audited("RESTORE", "CONTACT", id_arg="contact_id")
    async def restore_contact(self, contact_id: UUID, actor: Actor) -> ContactResponse:
        """
        Bring a soft-deleted contact back as an active contact.

        The contact only becomes primary when the client has no primary
        contact left. Portal access stays revoked and must be enabled again.

        Raises:
            NotFoundError: Unknown contact or one of another organization
            InvalidStateError: The contact is not deleted
        """
        contact = await self._get_contact(contact_id, actor, include_deleted=True)
        if contact.deleted_at is None:
            raise InvalidStateError("Contact is not deleted", details={"contact_id": str(contact_id)})

        async with self.locks.for_client(contact.client_id):
            await self.contact_repo.lock_client_contacts(contact.client_id)
            before = contact_snapshot(contact)
            contact.deleted_at = None
            contact.deleted_by = None
            contact.is_active = True
            contact.updated_by = actor.user_id
            contact.updated_at = self._clock()
            await self.session.flush()

            if await self.contact_repo.get_primary_contact(contact.client_id) is None:
                await self._make_primary(contact, None, actor)

            await self._write_history(
                contact, ContactChangeType.RESTORE, _changed_fields(before, contact_snapshot(contact)), actor
            )
            await self.timeline.record_contact_restored(contact, actor)
            await self.session.commit()

        logger.info(f"Contact restored: {contact.id}", extra={"is_primary": contact.is_primary})
        return self._to_response(contact)

    # ------------------------------------------------------------------
    # Portal access
    # ------------------------------------------------------------------

    async def _deactivate_portal_account(self, contact: Contact, reason: Optional[str], now: datetime) -> Optional[PortalAccount]:
        if contact.portal_account_id is None:
            return None
        account = await self.portal_account_repo.get(contact.portal_account_id, contact.organization_id)
        if account is None:
            return None
        account.status = PortalStatus.REVOKED
        account.is_active = False
        account.deactivated_at = now
        account.deactivation_reason = reason
        return account

    async def _dispatch(self, description: str, send: Callable[[], Awaitable[None]]) -> bool:
        """Fire-and-forget notification. Failures are logged and never undo the operation."""
        try:
            await send()
            return True
        except Exception:
            logger.exception(f"Failed to send {description}")
            return False

    @audited("ENABLE_PORTAL", "CONTACT", id_arg="contact_id")
    async def enable_portal_access(
        self,
        contact_id: UUID,
        actor: Actor,
        permissions: Optional[List[str]] = None,
        send_invitation: bool = True,
    ) -> ContactResponse:
        """
        Provision a PENDING portal account for a contact.

        Raises:
            PreconditionFailedError: No email, inactive contact, or an invitation is already pending
            ConflictError: Portal access is already active
        """
        contact = await self._get_contact(contact_id, actor)
        if not contact.email:
            raise PreconditionFailedError(
                "Contact has no email address", details={"contact_id": str(contact_id)}
            )
        if contact.portal_status == PortalStatus.ACTIVE:
            raise ConflictError("Portal access is already active", details={"contact_id": str(contact_id)})
        if contact.portal_status == PortalStatus.PENDING:
            raise PreconditionFailedError(
                "Portal access is already pending activation", details={"contact_id": str(contact_id)}
            )
        if not contact.is_active:
            raise PreconditionFailedError(
                "Inactive contact cannot receive portal access", details={"contact_id": str(contact_id)}
            )

        granted = list(dict.fromkeys(permissions or DEFAULT_PORTAL_PERMISSIONS))
        now = self._clock()
        before = contact_snapshot(contact)

        account = await self.portal_account_repo.create(
            organization_id=contact.organization_id,
            contact_id=contact.id,
            email=contact.email,
            status=PortalStatus.PENDING,
            permissions=granted,
            is_active=True,
            invited_at=now,
            created_by=actor.user_id,
        )
        contact.has_portal_access = True
        contact.portal_status = PortalStatus.PENDING
        contact.portal_account_id = account.id
        contact.portal_invited_at = now
        contact.portal_activated_at = None
        contact.portal_revoked_at = None
        contact.portal_revoked_reason = None
        contact.updated_by = actor.user_id
        contact.updated_at = now
        await self.session.flush()

        await self._write_history(
            contact, ContactChangeType.UPDATE, _changed_fields(before, contact_snapshot(contact)), actor
        )
        await self.timeline.record_portal_access_granted(contact, account.id, granted, send_invitation, actor)
        await self.session.commit()

        if send_invitation:
            await self._dispatch(
                "portal invitation",
                lambda: self.notifier.send_invitation(
                    contact.id, contact.email, contact.full_name, account.id, granted
                ),
            )
        logger.info(f"Portal access granted to contact {contact.id}", extra={"portal_account_id": str(account.id)})
        return self._to_response(contact)

    @audited("ACTIVATE_PORTAL", "CONTACT", id_arg="contact_id")
    async def activate_portal_access(self, contact_id: UUID, actor: Actor) -> ContactResponse:
        """
        Record the contact's first successful portal login (PENDING -> ACTIVE).

        Raises:
            InvalidStateError: Portal access is not pending activation
        """
        contact = await self._get_contact(contact_id, actor)
        if contact.portal_status != PortalStatus.PENDING:
            raise InvalidStateError(
                "Portal access is not pending activation",
                details={"contact_id": str(contact_id), "portal_status": contact.portal_status.value},
            )

        now = self._clock()
        before = contact_snapshot(contact)
        account = await self.portal_account_repo.get(contact.portal_account_id, contact.organization_id)
        if account is not None:
            account.status = PortalStatus.ACTIVE
            account.activated_at = now
        contact.portal_status = PortalStatus.ACTIVE
        contact.portal_activated_at = now
        contact.updated_at = now
        contact.updated_by = actor.user_id
        await self.session.flush()

        await self._write_history(
            contact, ContactChangeType.UPDATE, _changed_fields(before, contact_snapshot(contact)), actor
        )
        await self.timeline.record_portal_access_activated(contact, contact.portal_account_id, actor)
        await self.session.commit()
        return self._to_response(contact)

    @audited("REVOKE_PORTAL", "CONTACT", id_arg="contact_id")
    async def revoke_portal_access(
        self,
        contact_id: UUID,
        actor: Actor,
        reason: Optional[str] = None,
        send_notification: bool = True,
    ) -> ContactResponse:
        """
        Revoke portal access. Invitation and activation timestamps are kept.

        Raises:
            PreconditionFailedError: The contact has no portal access
        """
        contact = await self._get_contact(contact_id, actor)
        if not contact.has_portal_access:
            raise PreconditionFailedError(
                "Contact has no portal access", details={"contact_id": str(contact_id)}
            )

        now = self._clock()
        before = contact_snapshot(contact)
        await self._deactivate_portal_account(contact, reason, now)
        contact.has_portal_access = False
        contact.portal_status = PortalStatus.REVOKED
        contact.portal_revoked_at = now
        contact.portal_revoked_reason = reason
        contact.updated_by = actor.user_id
        contact.updated_at = now
        await self.session.flush()

        notify = send_notification and bool(contact.email)
        await self._write_history(
            contact, ContactChangeType.UPDATE, _changed_fields(before, contact_snapshot(contact)), actor
        )
        await self.timeline.record_portal_access_revoked(
            contact, contact.portal_account_id, reason, notify, actor
        )
        await self.session.commit()

        if notify:
            await self._dispatch(
                "portal revocation notice",
                lambda: self.notifier.send_revocation(contact.id, contact.email, contact.full_name, reason),
            )
        logger.info(f"Portal access revoked for contact {contact.id}", extra={"reason": reason})
        return self._to_response(contact)

    def _to_response(self, contact: Contact) -> ContactResponse:
        """Convert contact model to response schema."""
        return ContactResponse.model_validate(contact)
