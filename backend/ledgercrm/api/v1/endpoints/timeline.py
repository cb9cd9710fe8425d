"""
Timeline API endpoints.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ledgercrm.api.v1.middleware import require_actor
from ledgercrm.controllers.timeline_controller import TimelineController
from ledgercrm.db.session import get_db
from ledgercrm.models.timeline_event import TimelineCategory, TimelineEventType
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
from ledgercrm.services.timeline_service import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

router = APIRouter()


@router.get("/clients/{client_id}/timeline", response_model=TimelinePage)
async def get_timeline(
    client_id: UUID,
    event_types: Optional[List[TimelineEventType]] = Query(None),
    categories: Optional[List[TimelineCategory]] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    user_id: Optional[UUID] = Query(None),
    tags: Optional[List[str]] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    include_deleted: bool = Query(False),
    cursor: Optional[str] = Query(None),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    sort_order: SortOrder = Query(SortOrder.DESC),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> TimelinePage:
    """Get one page of a client's timeline, newest first by default."""
    controller = TimelineController(db, actor)
    filters = TimelineFilters(
        event_types=event_types,
        categories=categories,
        date_from=date_from,
        date_to=date_to,
        user_id=user_id,
        tags=tags,
        search=search,
        include_deleted=include_deleted,
    )
    return await controller.query(client_id, filters, cursor, limit, sort_order)


@router.get("/clients/{client_id}/timeline/stats", response_model=TimelineStats)
async def get_timeline_stats(
    client_id: UUID,
    period: StatsPeriod = Query(StatsPeriod.MONTH),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> TimelineStats:
    """Activity summary of a client's timeline over a period."""
    controller = TimelineController(db, actor)
    return await controller.get_stats(client_id, period)

@router.post(
    "/clients/{client_id}/timeline/notes",
    response_model=TimelineEventResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_note(
    client_id: UUID,
    data: NoteCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> TimelineEventResponse:
    controller = TimelineController(db, actor)
    return await controller.add_note(client_id, data)


@router.post(
    "/clients/{client_id}/timeline/tasks",
    response_model=TimelineEventResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_task(
    client_id: UUID,
    data: TaskCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> TimelineEventResponse:
    controller = TimelineController(db, actor)
    return await controller.add_task(client_id, data)


@router.post(
    "/clients/{client_id}/timeline/calls",
    response_model=TimelineEventResponse,
    status_code=status.HTTP_201_CREATED,
)
async def log_call(
    client_id: UUID,
    data: CallLog,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> TimelineEventResponse:
    controller = TimelineController(db, actor)
    return await controller.log_call(client_id, data)


@router.post(
    "/clients/{client_id}/timeline/meetings",
    response_model=TimelineEventResponse,
    status_code=status.HTTP_201_CREATED,
)
async def log_meeting(
    client_id: UUID,
    data: MeetingLog,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> TimelineEventResponse:
    controller = TimelineController(db, actor)
    return await controller.log_meeting(client_id, data)


@router.post("/timeline/{event_id}/complete", response_model=TimelineEventResponse)
async def complete_task(
    event_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> TimelineEventResponse:
    """Mark a task as completed."""
    controller = TimelineController(db, actor)
    return await controller.complete_task(event_id)


@router.delete("/timeline/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_event(
    event_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    """Soft-delete a manual timeline entry."""
    controller = TimelineController(db, actor)
    await controller.delete_event(event_id)


@router.post("/clients/{client_id}/timeline/export", response_model=ExportHandle)
async def export_timeline(
    client_id: UUID,
    request: TimelineExportRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> ExportHandle:
    """Render the timeline and return a time-limited download token."""
    controller = TimelineController(db, actor)
    return await controller.export(client_id, request)


@router.get("/timeline/exports/{token}")
async def download_export(
    token: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_actor),
) -> FileResponse:
    """Download a rendered export until its handle expires."""
    controller = TimelineController(db, actor)
    stored = await controller.fetch_export(token)
    return FileResponse(stored.path, media_type=stored.content_type, filename=stored.filename)
