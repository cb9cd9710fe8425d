"""
Timeline service tests: manual entries, tasks, queries and exports.
"""

import csv
import io
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from openpyxl import load_workbook

from ledgercrm.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from ledgercrm.models.contact import Contact, ContactRole
from ledgercrm.models.timeline_event import TaskPriority, TimelineCategory, TimelineEventType
from ledgercrm.schemas.timeline import (
    CallLog,
    ExportFormat,
    MeetingLog,
    NoteCreate,
    SortOrder,
    StatsPeriod,
    TaskCreate,
    TimelineExportRequest,
    TimelineFilters,
)
from ledgercrm.schemas.timeline_metadata import CallDirection
from ledgercrm.services.timeline_export_service import COLUMNS, ExportStore, TimelineExportService
from ledgercrm.services.timeline_service import TimelineService


@pytest.fixture
def service(session, clock):
    return TimelineService(session, clock=clock)


@pytest.fixture
def export_service(session, clock, tmp_path):
    return TimelineExportService(session, ExportStore(str(tmp_path), ttl_seconds=600, clock=clock), clock=clock)


async def add_contact(session, client, actor) -> Contact:
    contact = Contact(
        organization_id=client.organization_id,
        client_id=client.id,
        first_name="Anna",
        last_name="Nowak",
        email="anna@example.com",
        is_primary=True,
        created_by=actor.user_id,
        role_links=[],
    )
    contact.roles = [ContactRole.OWNER]
    session.add(contact)
    await session.commit()
    return contact


class TestManualEntries:
    async def test_add_note(self, service, client, actor):
        note = await service.add_note(
            client.id, NoteCreate(title="Called about Q1", description="Needs invoices", tags=["q1", " vat "]), actor
        )

        assert note.event_type == TimelineEventType.NOTE
        assert note.category == TimelineCategory.MANUAL
        assert note.tags == ["q1", "vat"]
        assert note.created_by == actor.user_id

    async def test_add_task_defaults_to_medium_priority(self, service, client, actor):
        due = datetime(2026, 3, 20, 12, 0, tzinfo=timezone(timedelta(hours=1)))

        task = await service.add_task(client.id, TaskCreate(title="Send JPK", due_at=due), actor)

        assert task.event_type == TimelineEventType.TASK
        assert task.priority == TaskPriority.MEDIUM
        assert task.task_completed is False
        assert task.due_at == datetime(2026, 3, 20, 11, 0)

    async def test_log_call_with_contact(self, service, session, client, actor):
        contact = await add_contact(session, client, actor)

        call = await service.log_call(
            client.id,
            CallLog(title="Quarterly review", direction=CallDirection.INBOUND, duration_minutes=15, contact_id=contact.id),
            actor,
        )

        assert call.event_type == TimelineEventType.CALL
        assert call.category == TimelineCategory.COMMUNICATION
        assert call.metadata["direction"] == "INBOUND"
        assert call.metadata["duration_minutes"] == 15
        assert call.entity_id == contact.id

    async def test_log_call_with_foreign_contact(self, service, client, actor):
        with pytest.raises(NotFoundError):
            await service.log_call(client.id, CallLog(title="Call", contact_id=uuid4()), actor)

    async def test_log_meeting(self, service, session, client, actor):
        contact = await add_contact(session, client, actor)
        starts = datetime(2026, 3, 12, 9, 0)

        meeting = await service.log_meeting(
            client.id,
            MeetingLog(
                title="Year-end closing",
                starts_at=starts,
                ends_at=starts + timedelta(hours=1),
                location="Office",
                contact_ids=[contact.id],
            ),
            actor,
        )

        assert meeting.event_type == TimelineEventType.MEETING
        assert meeting.metadata["contact_ids"] == [str(contact.id)]

    async def test_meeting_cannot_end_before_it_starts(self, service, client, actor):
        starts = datetime(2026, 3, 12, 9, 0)
        with pytest.raises(ValidationError):
            await service.log_meeting(
                client.id, MeetingLog(title="Backwards", starts_at=starts, ends_at=starts - timedelta(minutes=5)), actor
            )

    async def test_unknown_client(self, service, other_actor, client):
        with pytest.raises(NotFoundError):
            await service.add_note(client.id, NoteCreate(title="Hidden"), other_actor)


class TestTasks:
    async def test_complete_task(self, service, client, actor):
        task = await service.add_task(client.id, TaskCreate(title="Prepare PIT", priority=TaskPriority.HIGH), actor)

        done = await service.complete_task(task.id, actor)

        assert done.task_completed is True
        assert done.completed_by == actor.user_id
        assert done.completed_at is not None

    async def test_complete_twice(self, service, client, actor):
        task = await service.add_task(client.id, TaskCreate(title="Prepare PIT"), actor)
        await service.complete_task(task.id, actor)

        with pytest.raises(InvalidStateError):
            await service.complete_task(task.id, actor)

    async def test_complete_a_note(self, service, client, actor):
        note = await service.add_note(client.id, NoteCreate(title="Just a note"), actor)
        with pytest.raises(NotFoundError):
            await service.complete_task(note.id, actor)


class TestDeleteEvent:
    async def test_manual_event_is_tombstoned(self, service, client, actor):
        note = await service.add_note(client.id, NoteCreate(title="Typo"), actor)

        await service.delete_event(note.id, actor)

        page = await service.query(client.id, actor)
        assert page.items == []
        with_deleted = await service.query(client.id, actor, TimelineFilters(include_deleted=True))
        assert [e.id for e in with_deleted.items] == [note.id]
        assert with_deleted.items[0].deleted_at is not None

    async def test_system_event_cannot_be_deleted(self, service, client, actor):
        event = await service.record_status_changed(client.id, "PROSPECT", "ACTIVE", actor)

        with pytest.raises(InvalidStateError):
            await service.delete_event(event.id, actor)

    async def test_delete_twice(self, service, client, actor):
        note = await service.add_note(client.id, NoteCreate(title="Typo"), actor)
        await service.delete_event(note.id, actor)
        with pytest.raises(InvalidStateError):
            await service.delete_event(note.id, actor)


class TestSystemEvents:
    async def test_recorders_write_system_events(self, service, session, client, actor):
        document_id = uuid4()
        await service.record_client_created(client.id, "ACME", actor, source="import")
        await service.record_data_enriched(client.id, "GUS", ["name", "address"], actor)
        await service.record_document_uploaded(client.id, document_id, "vat-7.pdf", actor, size_bytes=2048)
        await service.record_tag_added(client.id, "vip", actor)
        await service.record_tag_removed(client.id, "vip", actor)
        await session.commit()

        page = await service.query(client.id, actor, sort_order=SortOrder.ASC)

        assert [e.event_type for e in page.items] == [
            TimelineEventType.CLIENT_CREATED,
            TimelineEventType.DATA_ENRICHED,
            TimelineEventType.DOCUMENT_UPLOADED,
            TimelineEventType.TAG_ADDED,
            TimelineEventType.TAG_REMOVED,
        ]
        assert {e.category for e in page.items} == {TimelineCategory.SYSTEM}
        assert page.items[1].metadata["fields"] == ["name", "address"]
        document = page.items[2]
        assert document.entity_type == "DOCUMENT"
        assert document.entity_id == document_id
        assert document.metadata["size_bytes"] == 2048

    async def test_status_change_records_before_and_after(self, service, client, actor):
        event = await service.record_status_changed(client.id, "PROSPECT", "ACTIVE", actor, reason="Signed")

        assert event.changes == {"before": {"status": "PROSPECT"}, "after": {"status": "ACTIVE"}}
        assert event.description == "Signed"


class TestStats:
    async def test_counts_within_period(self, service, client, clock, actor):
        await service.add_note(client.id, NoteCreate(title="Onboarding"), actor)
        clock.advance(days=40)
        await service.add_task(client.id, TaskCreate(title="Late", due_at=clock.now - timedelta(days=1)), actor)
        await service.add_task(client.id, TaskCreate(title="Upcoming", due_at=clock.now + timedelta(days=5)), actor)
        done = await service.add_task(client.id, TaskCreate(title="Done", due_at=clock.now - timedelta(days=2)), actor)
        await service.complete_task(done.id, actor)
        call = await service.log_call(client.id, CallLog(title="Check-in"), actor)

        stats = await service.get_stats(client.id, actor, StatsPeriod.MONTH)

        assert stats.total_events == 4
        assert stats.events_by_type == {"TASK": 3, "CALL": 1}
        assert stats.events_by_category == {"MANUAL": 3, "COMMUNICATION": 1}
        assert stats.open_tasks == 2
        assert stats.overdue_tasks == 1
        assert stats.last_event_at == call.created_at
        assert stats.recent_activity[0].id == call.id
        assert len(stats.recent_activity) == 5

    async def test_all_time_includes_old_events(self, service, client, clock, actor):
        await service.add_note(client.id, NoteCreate(title="Onboarding"), actor)
        clock.advance(days=400)
        await service.add_note(client.id, NoteCreate(title="Renewal"), actor)

        yearly = await service.get_stats(client.id, actor, StatsPeriod.YEAR)
        everything = await service.get_stats(client.id, actor, StatsPeriod.ALL)

        assert yearly.total_events == 1
        assert everything.total_events == 2
        assert everything.since is None
        assert everything.events_by_type == {"NOTE": 2}

    async def test_deleted_events_are_not_counted(self, service, client, actor):
        note = await service.add_note(client.id, NoteCreate(title="Typo"), actor)
        await service.delete_event(note.id, actor)

        stats = await service.get_stats(client.id, actor)

        assert stats.total_events == 0
        assert stats.last_event_at is None
        assert stats.recent_activity == []

    async def test_other_organization(self, service, client, other_actor):
        with pytest.raises(NotFoundError):
            await service.get_stats(client.id, other_actor)


class TestQuery:
    async def test_cursor_pagination_walks_every_event(self, service, client, actor):
        titles = [f"Note {i}" for i in range(5)]
        for title in titles:
            await service.add_note(client.id, NoteCreate(title=title), actor)

        seen = []
        cursor = None
        while True:
            page = await service.query(client.id, actor, cursor=cursor, limit=2)
            seen.extend(e.title for e in page.items)
            if not page.has_more:
                assert page.next_cursor is None
                break
            cursor = page.next_cursor

        assert seen == list(reversed(titles))

    async def test_ascending_order(self, service, client, actor):
        for i in range(3):
            await service.add_note(client.id, NoteCreate(title=f"Note {i}"), actor)

        page = await service.query(client.id, actor, sort_order=SortOrder.ASC)

        assert [e.title for e in page.items] == ["Note 0", "Note 1", "Note 2"]

    async def test_tag_filter_requires_every_tag(self, service, client, actor):
        await service.add_note(client.id, NoteCreate(title="Both", tags=["vat", "urgent"]), actor)
        await service.add_note(client.id, NoteCreate(title="Only vat", tags=["vat"]), actor)

        page = await service.query(client.id, actor, TimelineFilters(tags=["vat", "urgent"]))

        assert [e.title for e in page.items] == ["Both"]

    async def test_type_and_search_filters(self, service, client, actor):
        await service.add_note(client.id, NoteCreate(title="Invoice question"), actor)
        await service.add_task(client.id, TaskCreate(title="Invoice reminder"), actor)
        await service.add_note(client.id, NoteCreate(title="Payroll"), actor)

        tasks = await service.query(client.id, actor, TimelineFilters(event_types=[TimelineEventType.TASK]))
        assert [e.title for e in tasks.items] == ["Invoice reminder"]

        searched = await service.query(client.id, actor, TimelineFilters(search="INVOICE"))
        assert {e.title for e in searched.items} == {"Invoice question", "Invoice reminder"}

    async def test_date_range(self, service, client, clock, actor):
        await service.add_note(client.id, NoteCreate(title="Old"), actor)
        clock.advance(days=10)
        await service.add_note(client.id, NoteCreate(title="New"), actor)

        page = await service.query(client.id, actor, TimelineFilters(date_from=clock.now - timedelta(days=1)))

        assert [e.title for e in page.items] == ["New"]

    @pytest.mark.parametrize("limit", [0, 101])
    async def test_limit_bounds(self, service, client, actor, limit):
        with pytest.raises(ValidationError):
            await service.query(client.id, actor, limit=limit)

    async def test_garbage_cursor(self, service, client, actor):
        with pytest.raises(ValidationError):
            await service.query(client.id, actor, cursor="not-a-cursor")


class TestExport:
    async def test_xlsx_export(self, service, export_service, client, actor):
        await service.add_note(client.id, NoteCreate(title="First", tags=["a"]), actor)
        await service.add_task(client.id, TaskCreate(title="Second"), actor)

        handle = await export_service.export_timeline(client.id, TimelineExportRequest(), actor)

        assert handle.row_count == 2
        assert handle.filename.endswith(".xlsx")
        stored = await export_service.fetch_export(handle.token, actor)
        with open(stored.path, "rb") as f:
            workbook = load_workbook(io.BytesIO(f.read()))
        sheet = workbook.active
        assert [cell.value for cell in sheet[1]] == [header for header, _ in COLUMNS]
        assert sheet.max_row == 3
        assert sheet.cell(row=2, column=4).value == "Second"
        assert sheet.cell(row=1, column=1).font.bold is True

    async def test_csv_export_applies_filters(self, service, export_service, client, actor):
        await service.add_note(client.id, NoteCreate(title="Keep", tags=["vat"]), actor)
        await service.add_note(client.id, NoteCreate(title="Drop"), actor)

        handle = await export_service.export_timeline(
            client.id,
            TimelineExportRequest(format=ExportFormat.CSV, filters=TimelineFilters(tags=["vat"])),
            actor,
        )

        stored = await export_service.fetch_export(handle.token, actor)
        with open(stored.path, "rb") as f:
            rows = list(csv.reader(io.StringIO(f.read().decode("utf-8-sig"))))
        assert rows[0][0] == "Created at"
        assert [row[3] for row in rows[1:]] == ["Keep"]
        assert handle.content_type.startswith("text/csv")

    async def test_export_token_expires(self, export_service, client, clock, actor):
        handle = await export_service.export_timeline(client.id, TimelineExportRequest(), actor)
        clock.advance(seconds=601)

        with pytest.raises(NotFoundError):
            await export_service.fetch_export(handle.token, actor)

    async def test_export_token_is_organization_scoped(self, export_service, client, actor, other_actor):
        handle = await export_service.export_timeline(client.id, TimelineExportRequest(), actor)

        with pytest.raises(NotFoundError):
            await export_service.fetch_export(handle.token, other_actor)

    async def test_purge_removes_expired_exports(self, export_service, client, clock, actor):
        await export_service.export_timeline(client.id, TimelineExportRequest(), actor)
        clock.advance(seconds=601)

        assert export_service.store.purge_expired() == 1
