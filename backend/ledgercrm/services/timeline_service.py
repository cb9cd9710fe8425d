"""
Timeline service: the append-only chronological log of a client.

Every state-changing operation elsewhere writes exactly one event through the
`record_*` constructors below, inside the caller's transaction. Users add
notes, tasks, calls and meetings directly.
"""

import base64
import binascii
import json
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ledgercrm.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from ledgercrm.core.logging import get_logger
from ledgercrm.db.repositories.client_repository import ClientRepository
from ledgercrm.db.repositories.contact_repository import ContactRepository
from ledgercrm.db.repositories.timeline_repository import TimelineRepository
from ledgercrm.models.contact import Contact
from ledgercrm.models.timeline_event import (
    TaskPriority,
    TimelineCategory,
    TimelineEvent,
    TimelineEventTag,
    TimelineEventType,
)
from ledgercrm.schemas.common import Actor
from ledgercrm.schemas.timeline import (
    CallLog,
    ManualEntryBase,
    MeetingLog,
    NoteCreate,
    SortOrder,
    StatsPeriod,
    TaskCreate,
    TimelineEventResponse,
    TimelineFilters,
    TimelinePage,
    TimelineStats,
)
from ledgercrm.schemas.timeline_metadata import (
    CallMetadata,
    ClientCreatedMetadata,
    ContactEventMetadata,
    DataEnrichedMetadata,
    DocumentMetadata,
    MeetingMetadata,
    PortalAccessMetadata,
    PrimaryContactChangedMetadata,
    StatusChangedMetadata,
    TagMetadata,
    TimelineMetadata,
    VatValidatedMetadata,
    WhitelistVerifiedMetadata,
)
from ledgercrm.services.audit_service import audited
from ledgercrm.services.base_service import BaseService
from ledgercrm.utils.clock import to_naive_utc, utcnow

logger = get_logger(__name__)

CLIENT_CONTACT = "CLIENT_CONTACT"
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
RECENT_ACTIVITY_SIZE = 5
STATS_PERIODS = {
    StatsPeriod.WEEK: timedelta(days=7),
    StatsPeriod.MONTH: timedelta(days=30),
    StatsPeriod.QUARTER: timedelta(days=90),
    StatsPeriod.YEAR: timedelta(days=365),
    StatsPeriod.ALL: None,
}


def encode_cursor(event: TimelineEvent) -> str:
    """Opaque keyset cursor pointing just past `event`."""
    payload = json.dumps({"created_at": event.created_at.isoformat(), "id": str(event.id)})
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> Tuple[datetime, UUID]:
    """Inverse of encode_cursor. Raises ValidationError for anything it did not produce."""
    try:
        payload = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")))
        return datetime.fromisoformat(payload["created_at"]), UUID(payload["id"])
    except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError) as e:
        raise ValidationError("Invalid timeline cursor", details={"cursor": cursor}) from e


class TimelineService(BaseService):
    """Service for timeline operations."""

    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = utcnow):
        super().__init__(session)
        self.timeline_repo = TimelineRepository(session)
        self.client_repo = ClientRepository(session)
        self.contact_repo = ContactRepository(session)
        self._clock = clock

    # ------------------------------------------------------------------
    # Core append
    # ------------------------------------------------------------------

    async def append(self, event: TimelineEvent) -> TimelineEvent:
        """Insert an event. Events are never rewritten afterwards."""
        event = await self.timeline_repo.add(event)
        logger.debug(
            f"Timeline event {event.event_type.value} appended",
            extra={"client_id": str(event.client_id), "event_id": str(event.id)},
        )
        return event

    def _build(
        self,
        client_id: UUID,
        actor: Actor,
        event_type: TimelineEventType,
        category: TimelineCategory,
        title: str,
        description: Optional[str] = None,
        metadata: Optional[TimelineMetadata] = None,
        changes: Optional[Dict[str, Any]] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[UUID] = None,
        tags: Sequence[str] = (),
        attachments: Sequence[Dict[str, Any]] = (),
    ) -> TimelineEvent:
        return TimelineEvent(
            organization_id=actor.organization_id,
            client_id=client_id,
            event_type=event_type,
            category=category,
            title=title,
            description=description,
            event_metadata=metadata.to_json() if metadata is not None else {},
            changes=changes,
            entity_type=entity_type,
            entity_id=entity_id,
            attachments=list(attachments),
            tag_links=[TimelineEventTag(tag=tag) for tag in dict.fromkeys(t.strip() for t in tags if t.strip())],
            created_by=actor.user_id,
            created_at=self._clock(),
        )

    # ------------------------------------------------------------------
    # System event constructors
    # ------------------------------------------------------------------

    async def record_system_event(
        self,
        client_id: UUID,
        title: str,
        actor: Actor,
        description: Optional[str] = None,
        metadata: Optional[TimelineMetadata] = None,
        event_type: TimelineEventType = TimelineEventType.SYSTEM,
        category: TimelineCategory = TimelineCategory.SYSTEM,
        changes: Optional[Dict[str, Any]] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[UUID] = None,
    ) -> TimelineEvent:
        """Generic constructor; the specific recorders below all go through it."""
        return await self.append(
            self._build(
                client_id,
                actor,
                event_type,
                category,
                title,
                description=description,
                metadata=metadata,
                changes=changes,
                entity_type=entity_type,
                entity_id=entity_id,
            )
        )

    async def record_client_created(
        self, client_id: UUID, client_name: str, actor: Actor, source: Optional[str] = None
    ) -> TimelineEvent:
        return await self.record_system_event(
            client_id,
            f"Client created: {client_name}",
            actor,
            metadata=ClientCreatedMetadata(client_name=client_name, source=source),
            event_type=TimelineEventType.CLIENT_CREATED,
            entity_type="CLIENT",
            entity_id=client_id,
        )

    async def record_status_changed(
        self,
        client_id: UUID,
        from_status: Optional[str],
        to_status: str,
        actor: Actor,
        reason: Optional[str] = None,
    ) -> TimelineEvent:
        return await self.record_system_event(
            client_id,
            f"Status changed to {to_status}",
            actor,
            description=reason,
            metadata=StatusChangedMetadata(from_status=from_status, to_status=to_status, reason=reason),
            event_type=TimelineEventType.STATUS_CHANGED,
            changes={"before": {"status": from_status}, "after": {"status": to_status}},
            entity_type="CLIENT",
            entity_id=client_id,
        )

    async def record_data_enriched(
        self, client_id: UUID, source: str, fields: List[str], actor: Actor
    ) -> TimelineEvent:
        return await self.record_system_event(
            client_id,
            f"Client data enriched from {source}",
            actor,
            metadata=DataEnrichedMetadata(source=source, fields=fields),
            event_type=TimelineEventType.DATA_ENRICHED,
            entity_type="CLIENT",
            entity_id=client_id,
        )

    async def record_vat_validated(
        self,
        client_id: UUID,
        vat_number: str,
        status: str,
        valid: bool,
        actor: Actor,
        record_id: Optional[UUID] = None,
        company_name: Optional[str] = None,
    ) -> TimelineEvent:
        return await self.record_system_event(
            client_id,
            f"VAT number {vat_number} validated: {status}",
            actor,
            metadata=VatValidatedMetadata(
                vat_number=vat_number,
                status=status,
                valid=valid,
                record_id=record_id,
                company_name=company_name,
            ),
            event_type=TimelineEventType.VAT_VALIDATED,
            entity_type="VAT_VALIDATION",
            entity_id=record_id,
        )

    async def record_whitelist_verified(
        self,
        client_id: UUID,
        nip: str,
        status: str,
        verification_date: date,
        actor: Actor,
        bank_account: Optional[str] = None,
        record_id: Optional[UUID] = None,
    ) -> TimelineEvent:
        return await self.record_system_event(
            client_id,
            f"Whitelist verification of NIP {nip}: {status}",
            actor,
            metadata=WhitelistVerifiedMetadata(
                nip=nip,
                status=status,
                verification_date=verification_date,
                bank_account=bank_account,
                record_id=record_id,
            ),
            event_type=TimelineEventType.WHITELIST_VERIFIED,
            entity_type="WHITELIST_VERIFICATION",
            entity_id=record_id,
        )

    async def record_contact_added(self, contact: Contact, actor: Actor) -> TimelineEvent:
        return await self.record_system_event(
            contact.client_id,
            f"Contact added: {contact.full_name}",
            actor,
            metadata=ContactEventMetadata(
                contact_id=contact.id,
                contact_name=contact.full_name,
                is_primary=contact.is_primary,
            ),
            event_type=TimelineEventType.CONTACT_ADDED,
            entity_type=CLIENT_CONTACT,
            entity_id=contact.id,
        )

    async def record_contact_updated(
        self,
        contact: Contact,
        changed_fields: List[str],
        before: Dict[str, Any],
        after: Dict[str, Any],
        actor: Actor,
    ) -> TimelineEvent:
        return await self.record_system_event(
            contact.client_id,
            f"Contact updated: {contact.full_name}",
            actor,
            metadata=ContactEventMetadata(
                contact_id=contact.id,
                contact_name=contact.full_name,
                is_primary=contact.is_primary,
                changed_fields=changed_fields,
            ),
            event_type=TimelineEventType.CONTACT_UPDATED,
            changes={"before": before, "after": after},
            entity_type=CLIENT_CONTACT,
            entity_id=contact.id,
        )

    async def record_contact_removed(
        self, contact: Contact, actor: Actor, new_primary_contact_id: Optional[UUID] = None
    ) -> TimelineEvent:
        return await self.record_system_event(
            contact.client_id,
            f"Contact removed: {contact.full_name}",
            actor,
            metadata=ContactEventMetadata(
                contact_id=contact.id,
                contact_name=contact.full_name,
                is_primary=False,
                new_primary_contact_id=new_primary_contact_id,
            ),
            event_type=TimelineEventType.CONTACT_REMOVED,
            entity_type=CLIENT_CONTACT,
            entity_id=contact.id,
        )

    async def record_contact_restored(self, contact: Contact, actor: Actor) -> TimelineEvent:
        return await self.record_system_event(
            contact.client_id,
            f"Contact restored: {contact.full_name}",
            actor,
            metadata=ContactEventMetadata(
                contact_id=contact.id,
                contact_name=contact.full_name,
                is_primary=contact.is_primary,
            ),
            event_type=TimelineEventType.CONTACT_RESTORED,
            entity_type=CLIENT_CONTACT,
            entity_id=contact.id,
        )

    async def record_primary_contact_changed(
        self, client_id: UUID, previous: Optional[Contact], new: Contact, actor: Actor
    ) -> TimelineEvent:
        return await self.record_system_event(
            client_id,
            f"Primary contact changed to {new.full_name}",
            actor,
            metadata=PrimaryContactChangedMetadata(
                previous_contact_id=previous.id if previous else None,
                new_contact_id=new.id,
                new_contact_name=new.full_name,
            ),
            event_type=TimelineEventType.PRIMARY_CONTACT_CHANGED,
            changes={
                "before": {"primary_contact_id": str(previous.id) if previous else None},
                "after": {"primary_contact_id": str(new.id)},
            },
            entity_type=CLIENT_CONTACT,
            entity_id=new.id,
        )

    async def record_portal_access_granted(
        self,
        contact: Contact,
        portal_account_id: UUID,
        permissions: List[str],
        notification_sent: bool,
        actor: Actor,
    ) -> TimelineEvent:
        return await self.record_system_event(
            contact.client_id,
            f"Portal access granted to {contact.full_name}",
            actor,
            metadata=PortalAccessMetadata(
                contact_id=contact.id,
                contact_name=contact.full_name,
                portal_account_id=portal_account_id,
                permissions=permissions,
                notification_sent=notification_sent,
            ),
            event_type=TimelineEventType.PORTAL_ACCESS_GRANTED,
            entity_type=CLIENT_CONTACT,
            entity_id=contact.id,
        )

    async def record_portal_access_activated(
        self, contact: Contact, portal_account_id: UUID, actor: Actor
    ) -> TimelineEvent:
        return await self.record_system_event(
            contact.client_id,
            f"Portal access activated by {contact.full_name}",
            actor,
            metadata=PortalAccessMetadata(
                contact_id=contact.id,
                contact_name=contact.full_name,
                portal_account_id=portal_account_id,
            ),
            event_type=TimelineEventType.PORTAL_ACCESS_ACTIVATED,
            entity_type=CLIENT_CONTACT,
            entity_id=contact.id,
        )

    async def record_portal_access_revoked(
        self,
        contact: Contact,
        portal_account_id: Optional[UUID],
        reason: Optional[str],
        notification_sent: bool,
        actor: Actor,
    ) -> TimelineEvent:
        return await self.record_system_event(
            contact.client_id,
            f"Portal access revoked for {contact.full_name}",
            actor,
            description=reason,
            metadata=PortalAccessMetadata(
                contact_id=contact.id,
                contact_name=contact.full_name,
                portal_account_id=portal_account_id,
                notification_sent=notification_sent,
                reason=reason,
            ),
            event_type=TimelineEventType.PORTAL_ACCESS_REVOKED,
            entity_type=CLIENT_CONTACT,
            entity_id=contact.id,
        )

    async def record_document_uploaded(
        self,
        client_id: UUID,
        document_id: UUID,
        file_name: str,
        actor: Actor,
        document_type: Optional[str] = None,
        size_bytes: Optional[int] = None,
    ) -> TimelineEvent:
        return await self.record_system_event(
            client_id,
            f"Document uploaded: {file_name}",
            actor,
            metadata=DocumentMetadata(
                document_id=document_id,
                file_name=file_name,
                document_type=document_type,
                size_bytes=size_bytes,
            ),
            event_type=TimelineEventType.DOCUMENT_UPLOADED,
            entity_type="DOCUMENT",
            entity_id=document_id,
        )

    async def record_tag_added(self, client_id: UUID, tag: str, actor: Actor) -> TimelineEvent:
        return await self.record_system_event(
            client_id,
            f"Tag added: {tag}",
            actor,
            metadata=TagMetadata(tag=tag),
            event_type=TimelineEventType.TAG_ADDED,
            entity_type="CLIENT",
            entity_id=client_id,
        )

    async def record_tag_removed(self, client_id: UUID, tag: str, actor: Actor) -> TimelineEvent:
        return await self.record_system_event(
            client_id,
            f"Tag removed: {tag}",
            actor,
            metadata=TagMetadata(tag=tag),
            event_type=TimelineEventType.TAG_REMOVED,
            entity_type="CLIENT",
            entity_id=client_id,
        )

    # ------------------------------------------------------------------
    # Manual entries
    # ------------------------------------------------------------------

    async def _require_client(self, client_id: UUID, actor: Actor) -> None:
        client = await self.client_repo.get(client_id, actor.organization_id)
        if not client:
            raise NotFoundError("Client not found", details={"client_id": str(client_id)})

    async def _require_client_contacts(self, client_id: UUID, contact_ids: Sequence[UUID], actor: Actor) -> None:
        for contact_id in contact_ids:
            contact = await self.contact_repo.get(contact_id, actor.organization_id)
            if not contact or contact.client_id != client_id:
                raise NotFoundError("Contact not found", details={"contact_id": str(contact_id)})

    def _manual_event(
        self,
        client_id: UUID,
        data: ManualEntryBase,
        actor: Actor,
        event_type: TimelineEventType,
        category: TimelineCategory,
        metadata: TimelineMetadata,
    ) -> TimelineEvent:
        return self._build(
            client_id,
            actor,
            event_type,
            category,
            data.title,
            description=data.description,
            metadata=metadata,
            tags=data.tags,
            attachments=[a.model_dump(mode="json") for a in data.attachments],
        )

    async def _commit_manual(self, event: TimelineEvent) -> TimelineEventResponse:
        await self.append(event)
        await self.session.commit()
        return self._to_response(event)

    @audited("CREATE", "TIMELINE_EVENT")
    async def add_note(self, client_id: UUID, data: NoteCreate, actor: Actor) -> TimelineEventResponse:
        """Add a note to a client's timeline."""
        await self._require_client(client_id, actor)
        event = self._manual_event(
            client_id, data, actor, TimelineEventType.NOTE, TimelineCategory.MANUAL,
            TimelineMetadata(extra=data.extra),
        )
        return await self._commit_manual(event)

    @audited("CREATE", "TIMELINE_EVENT")
    async def add_task(self, client_id: UUID, data: TaskCreate, actor: Actor) -> TimelineEventResponse:
        """Add an open task. Priority defaults to MEDIUM."""
        await self._require_client(client_id, actor)
        event = self._manual_event(
            client_id, data, actor, TimelineEventType.TASK, TimelineCategory.MANUAL,
            TimelineMetadata(extra=data.extra),
        )
        event.due_at = to_naive_utc(data.due_at)
        event.priority = data.priority or TaskPriority.MEDIUM
        event.task_completed = False
        return await self._commit_manual(event)

    @audited("CREATE", "TIMELINE_EVENT")
    async def log_call(self, client_id: UUID, data: CallLog, actor: Actor) -> TimelineEventResponse:
        """Log a phone call with the client."""
        await self._require_client(client_id, actor)
        if data.contact_id:
            await self._require_client_contacts(client_id, [data.contact_id], actor)
        metadata = CallMetadata(
            direction=data.direction,
            duration_minutes=data.duration_minutes,
            contact_id=data.contact_id,
            phone_number=data.phone_number,
            outcome=data.outcome,
            extra=data.extra,
        )
        event = self._manual_event(
            client_id, data, actor, TimelineEventType.CALL, TimelineCategory.COMMUNICATION, metadata
        )
        if data.contact_id:
            event.entity_type = CLIENT_CONTACT
            event.entity_id = data.contact_id
        return await self._commit_manual(event)

    @audited("CREATE", "TIMELINE_EVENT")
    async def log_meeting(self, client_id: UUID, data: MeetingLog, actor: Actor) -> TimelineEventResponse:
        """Log a meeting with the client."""
        await self._require_client(client_id, actor)
        if data.starts_at and data.ends_at and data.ends_at < data.starts_at:
            raise ValidationError("Meeting cannot end before it starts")
        await self._require_client_contacts(client_id, data.contact_ids, actor)
        metadata = MeetingMetadata(
            starts_at=data.starts_at,
            ends_at=data.ends_at,
            location=data.location,
            attendees=data.attendees,
            contact_ids=data.contact_ids,
            extra=data.extra,
        )
        event = self._manual_event(
            client_id, data, actor, TimelineEventType.MEETING, TimelineCategory.COMMUNICATION, metadata
        )
        return await self._commit_manual(event)

    @audited("COMPLETE", "TIMELINE_EVENT", id_arg="event_id")
    async def complete_task(self, event_id: UUID, actor: Actor) -> TimelineEventResponse:
        """
        Mark a task as completed.

        Raises:
            NotFoundError: No such event, or it is not a task
            InvalidStateError: The task is already completed
        """
        event = await self.timeline_repo.get(event_id, actor.organization_id)
        if not event or event.deleted_at is not None or event.event_type != TimelineEventType.TASK:
            raise NotFoundError("Task not found", details={"event_id": str(event_id)})
        if event.task_completed:
            raise InvalidStateError(
                "Task is already completed",
                details={"event_id": str(event_id), "completed_at": event.completed_at.isoformat()},
            )
        event.task_completed = True
        event.completed_at = self._clock()
        event.completed_by = actor.user_id
        await self.session.flush()
        await self.session.commit()
        return self._to_response(event)

    @audited("DELETE", "TIMELINE_EVENT", id_arg="event_id")
    async def delete_event(self, event_id: UUID, actor: Actor) -> None:
        """
        Soft-delete a manually created event.

        Raises:
            NotFoundError: No such event
            InvalidStateError: The event is not MANUAL, or is already deleted
        """
        event = await self.timeline_repo.get(event_id, actor.organization_id)
        if not event:
            raise NotFoundError("Timeline event not found", details={"event_id": str(event_id)})
        if event.category != TimelineCategory.MANUAL:
            raise InvalidStateError(
                "Cannot delete non-manual event",
                details={"event_id": str(event_id), "category": event.category.value},
            )
        if event.deleted_at is not None:
            raise InvalidStateError("Timeline event is already deleted", details={"event_id": str(event_id)})
        event.deleted_at = self._clock()
        event.deleted_by = actor.user_id
        await self.session.flush()
        await self.session.commit()

    # ------------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------------

    async def query(
        self,
        client_id: UUID,
        actor: Actor,
        filters: Optional[TimelineFilters] = None,
        cursor: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        sort_order: SortOrder = SortOrder.DESC,
    ) -> TimelinePage:
        """
        Return one cursor-paginated page of a client's timeline.

        Events are ordered by creation time (newest first by default); the tag
        filter requires every requested tag.
        """
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}", details={"limit": limit})
        await self._require_client(client_id, actor)
        filters = filters or TimelineFilters()
        after = decode_cursor(cursor) if cursor else None

        events = await self.timeline_repo.query(
            client_id=client_id,
            organization_id=actor.organization_id,
            event_types=filters.event_types,
            categories=filters.categories,
            date_from=to_naive_utc(filters.date_from),
            date_to=to_naive_utc(filters.date_to),
            user_id=filters.user_id,
            tags=filters.tags,
            search=filters.search,
            include_deleted=filters.include_deleted,
            after=after,
            limit=limit + 1,
            descending=sort_order == SortOrder.DESC,
        )
        has_more = len(events) > limit
        events = events[:limit]
        return TimelinePage(
            items=[self._to_response(event) for event in events],
            next_cursor=encode_cursor(events[-1]) if has_more else None,
            has_more=has_more,
            limit=limit,
        )

    async def list_all(
        self,
        client_id: UUID,
        actor: Actor,
        filters: Optional[TimelineFilters] = None,
        sort_order: SortOrder = SortOrder.DESC,
    ) -> List[TimelineEvent]:
        """Every event matching the filters, unpaginated. Used by exports."""
        await self._require_client(client_id, actor)
        filters = filters or TimelineFilters()
        return await self.timeline_repo.query(
            client_id=client_id,
            organization_id=actor.organization_id,
            event_types=filters.event_types,
            categories=filters.categories,
            date_from=to_naive_utc(filters.date_from),
            date_to=to_naive_utc(filters.date_to),
            user_id=filters.user_id,
            tags=filters.tags,
            search=filters.search,
            include_deleted=filters.include_deleted,
            limit=None,
            descending=sort_order == SortOrder.DESC,
        )

    async def get_stats(
        self,
        client_id: UUID,
        actor: Actor,
        period: StatsPeriod = StatsPeriod.MONTH,
    ) -> TimelineStats:
        """
        Summarize a client's activity: event counts per type and category within
        the period, open and overdue tasks, and the latest events.
        """
        await self._require_client(client_id, actor)
        now = self._clock()
        length = STATS_PERIODS[period]
        since = now - length if length is not None else None
        organization_id = actor.organization_id

        total = await self.timeline_repo.count_by_client(client_id, organization_id, since)
        by_type = await self.timeline_repo.count_grouped(TimelineEvent.event_type, client_id, organization_id, since)
        by_category = await self.timeline_repo.count_grouped(
            TimelineEvent.category, client_id, organization_id, since
        )
        open_tasks, overdue_tasks = await self.timeline_repo.count_open_tasks(client_id, organization_id, now)
        recent = await self.timeline_repo.query(client_id, organization_id, limit=RECENT_ACTIVITY_SIZE)

        return TimelineStats(
            client_id=client_id,
            period=period,
            since=since,
            total_events=total,
            events_by_type={event_type.value: count for event_type, count in by_type.items()},
            events_by_category={category.value: count for category, count in by_category.items()},
            open_tasks=open_tasks,
            overdue_tasks=overdue_tasks,
            last_event_at=await self.timeline_repo.last_event_at(client_id, organization_id),
            recent_activity=[self._to_response(event) for event in recent],
        )

    def _to_response(self, event: TimelineEvent) -> TimelineEventResponse:
        """Convert timeline model to response schema."""
        return TimelineEventResponse.model_validate(event)
