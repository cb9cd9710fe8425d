"""
Timeline Pydantic schemas for request/response validation.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from uuid import UUID
import enum

from ledgercrm.models.timeline_event import TimelineEventType, TimelineCategory, TaskPriority
from ledgercrm.schemas.timeline_metadata import CallDirection


class SortOrder(str, enum.Enum):
    ASC = "asc"
    DESC = "desc"


class ExportFormat(str, enum.Enum):
    XLSX = "xlsx"
    CSV = "csv"


class Attachment(BaseModel):
    """Reference to a stored document; the file itself lives in document storage."""
    document_id: UUID
    file_name: str = Field(..., max_length=255)


class ManualEntryBase(BaseModel):
    """Common fields of user-authored timeline entries."""
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    tags: List[str] = Field(default_factory=list)
    attachments: List[Attachment] = Field(default_factory=list)
    extra: Dict[str, Any] = Field(default_factory=dict)


class NoteCreate(ManualEntryBase):
    """Schema for adding a note."""
    pass


class TaskCreate(ManualEntryBase):
    """Schema for adding a task."""
    due_at: Optional[datetime] = None
    priority: Optional[TaskPriority] = None


class CallLog(ManualEntryBase):
    """Schema for logging a phone call."""
    direction: CallDirection = CallDirection.OUTBOUND
    duration_minutes: Optional[int] = Field(None, ge=0, le=1440)
    contact_id: Optional[UUID] = None
    phone_number: Optional[str] = Field(None, max_length=50)
    outcome: Optional[str] = Field(None, max_length=200)


class MeetingLog(ManualEntryBase):
    """Schema for logging a meeting."""
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    location: Optional[str] = Field(None, max_length=255)
    attendees: List[str] = Field(default_factory=list)
    contact_ids: List[UUID] = Field(default_factory=list)


class TimelineFilters(BaseModel):
    """Filters for querying a client's timeline."""
    event_types: Optional[List[TimelineEventType]] = None
    categories: Optional[List[TimelineCategory]] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    user_id: Optional[UUID] = None
    tags: Optional[List[str]] = None
    search: Optional[str] = Field(None, max_length=100)
    include_deleted: bool = False


class TimelineEventResponse(BaseModel):
    """Schema for a timeline event."""
    id: UUID
    client_id: UUID
    event_type: TimelineEventType
    category: TimelineCategory
    title: str
    description: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias="event_metadata")
    changes: Optional[Dict[str, Any]] = None
    entity_type: Optional[str] = None
    entity_id: Optional[UUID] = None
    attachments: List[Dict[str, Any]] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    due_at: Optional[datetime] = None
    priority: Optional[TaskPriority] = None
    task_completed: Optional[bool] = None
    completed_at: Optional[datetime] = None
    completed_by: Optional[UUID] = None
    created_by: Optional[UUID] = None
    created_at: datetime
    deleted_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TimelinePage(BaseModel):
    """One cursor-paginated page of timeline events."""
    items: List[TimelineEventResponse]
    next_cursor: Optional[str] = None
    has_more: bool
    limit: int


class StatsPeriod(str, enum.Enum):
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"
    ALL = "all"


class TimelineStats(BaseModel):
    """Activity summary of a client's timeline over a period."""
    client_id: UUID
    period: StatsPeriod
    since: Optional[datetime] = None
    total_events: int
    events_by_type: Dict[str, int] = Field(default_factory=dict)
    events_by_category: Dict[str, int] = Field(default_factory=dict)
    open_tasks: int = 0
    overdue_tasks: int = 0
    last_event_at: Optional[datetime] = None
    recent_activity: List[TimelineEventResponse] = Field(default_factory=list)


class TimelineExportRequest(BaseModel):
    """Schema for exporting a timeline."""
    filters: TimelineFilters = Field(default_factory=TimelineFilters)
    format: ExportFormat = ExportFormat.XLSX
    sort_order: SortOrder = SortOrder.DESC


class ExportHandle(BaseModel):
    """Time-limited handle to a rendered export."""
    token: str
    filename: str
    content_type: str
    expires_at: datetime
    row_count: int
