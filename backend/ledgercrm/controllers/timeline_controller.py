"""
Timeline controller.
"""

from typing import Optional
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession

from ledgercrm.controllers.base_controller import BaseController
from ledgercrm.deps.di_container import get_container
from ledgercrm.schemas.common import Actor
from ledgercrm.schemas.timeline import (
    CallLog,
    ExportHandle,
    MeetingLog,
    NoteCreate,
    SortOrder,
    StatsPeriod,
    TaskCreate,
    TimelineEventResponse,
    TimelineExportRequest,
    TimelineFilters,
    TimelinePage,
    TimelineStats,
)
from ledgercrm.services.timeline_export_service import StoredExport, TimelineExportService
from ledgercrm.services.timeline_service import TimelineService


class TimelineController(BaseController):
    """Controller for timeline operations."""

    def __init__(self, session: AsyncSession, actor: Actor):
        super().__init__(session, actor)
        container = get_container()
        clock = container.clock()
        self.timeline_service = TimelineService(session, clock=clock)
        self.export_service = TimelineExportService(session, store=container.export_store(), clock=clock)

    async def query(
        self,
        client_id: UUID,
        filters: TimelineFilters,
        cursor: Optional[str],
        limit: int,
        sort_order: SortOrder,
    ) -> TimelinePage:
        return await self.timeline_service.query(
            client_id,
            self.actor,
            filters=filters,
            cursor=cursor,
            limit=limit,
            sort_order=sort_order,
        )

    async def get_stats(self, client_id: UUID, period: StatsPeriod) -> TimelineStats:
        return await self.timeline_service.get_stats(client_id, self.actor, period)

    async def add_note(self, client_id: UUID, data: NoteCreate) -> TimelineEventResponse:
        return await self.timeline_service.add_note(client_id, data, self.actor)

    async def add_task(self, client_id: UUID, data: TaskCreate) -> TimelineEventResponse:
        return await self.timeline_service.add_task(client_id, data, self.actor)

    async def log_call(self, client_id: UUID, data: CallLog) -> TimelineEventResponse:
        return await self.timeline_service.log_call(client_id, data, self.actor)

    async def log_meeting(self, client_id: UUID, data: MeetingLog) -> TimelineEventResponse:
        return await self.timeline_service.log_meeting(client_id, data, self.actor)

    async def complete_task(self, event_id: UUID) -> TimelineEventResponse:
        return await self.timeline_service.complete_task(event_id, self.actor)

    async def delete_event(self, event_id: UUID) -> None:
        await self.timeline_service.delete_event(event_id, self.actor)

    async def export(self, client_id: UUID, request: TimelineExportRequest) -> ExportHandle:
        return await self.export_service.export_timeline(client_id, request, self.actor)

    async def fetch_export(self, token: str) -> StoredExport:
        return await self.export_service.fetch_export(token, self.actor)
