"""
Timeline export: renders a filtered client timeline to XLSX or CSV and hands
out a time-limited download token.
"""

import csv
import io
import json
import os
import secrets
from datetime import datetime, timedelta
from typing import Callable, List, Optional
from uuid import UUID

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ledgercrm.core.config import settings
from ledgercrm.core.exceptions import NotFoundError
from ledgercrm.core.logging import get_logger
from ledgercrm.models.timeline_event import TimelineEvent
from ledgercrm.schemas.common import Actor
from ledgercrm.schemas.timeline import ExportFormat, ExportHandle, TimelineExportRequest
from ledgercrm.services.audit_service import audited
from ledgercrm.services.base_service import BaseService
from ledgercrm.services.timeline_service import TimelineService
from ledgercrm.utils.clock import utcnow

logger = get_logger(__name__)

CONTENT_TYPES = {
    ExportFormat.XLSX: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ExportFormat.CSV: "text/csv; charset=utf-8",
}

COLUMNS = [
    ("Created at", 20),
    ("Type", 26),
    ("Category", 16),
    ("Title", 40),
    ("Description", 60),
    ("Tags", 24),
    ("Created by", 38),
    ("Entity type", 22),
    ("Entity ID", 38),
    ("Priority", 10),
    ("Due at", 20),
    ("Completed", 10),
    ("Completed at", 20),
    ("Deleted at", 20),
]

HEADER_FILL = "305496"


def _fmt(value) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if hasattr(value, "value"):
        return str(value.value)
    return str(value)


def event_row(event: TimelineEvent) -> List[str]:
    """Flatten one event into export cells, in COLUMNS order."""
    completed = "" if event.task_completed is None else ("yes" if event.task_completed else "no")
    return [
        _fmt(event.created_at),
        _fmt(event.event_type),
        _fmt(event.category),
        event.title,
        event.description or "",
        ", ".join(event.tags),
        _fmt(event.created_by),
        event.entity_type or "",
        _fmt(event.entity_id),
        _fmt(event.priority),
        _fmt(event.due_at),
        completed,
        _fmt(event.completed_at),
        _fmt(event.deleted_at),
    ]


def render_xlsx(rows: List[List[str]], title: str = "Timeline") -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = title[:31]

    for col, (header, width) in enumerate(COLUMNS, start=1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.font = Font(bold=True, color="FFFFFF")
        cell.fill = PatternFill(start_color=HEADER_FILL, end_color=HEADER_FILL, fill_type="solid")
        ws.column_dimensions[get_column_letter(col)].width = width

    for row in rows:
        ws.append(row)
    ws.freeze_panes = "A2"

    output = io.BytesIO()
    wb.save(output)
    return output.getvalue()


def render_csv(rows: List[List[str]]) -> bytes:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow([header for header, _ in COLUMNS])
    writer.writerows(rows)
    # BOM so spreadsheet applications detect UTF-8
    return output.getvalue().encode("utf-8-sig")


class StoredExport(BaseModel):
    """Metadata of a rendered export kept next to the file."""
    token: str
    filename: str
    content_type: str
    organization_id: UUID
    client_id: UUID
    row_count: int
    expires_at: datetime
    path: str


class ExportStore:
    """
    Directory of rendered exports, each addressed by an unguessable token.

    Files are served until `expires_at`; expired entries are removed when
    looked up or purged.
    """

    def __init__(
        self,
        directory: str = None,
        ttl_seconds: int = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.directory = directory or settings.EXPORT_DIR
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.EXPORT_LINK_TTL_SECONDS
        self._clock = clock

    def _paths(self, token: str):
        return os.path.join(self.directory, f"{token}.bin"), os.path.join(self.directory, f"{token}.json")

    def save(
        self,
        content: bytes,
        filename: str,
        content_type: str,
        organization_id: UUID,
        client_id: UUID,
        row_count: int,
    ) -> StoredExport:
        os.makedirs(self.directory, exist_ok=True)
        token = secrets.token_urlsafe(24)
        data_path, meta_path = self._paths(token)
        stored = StoredExport(
            token=token,
            filename=filename,
            content_type=content_type,
            organization_id=organization_id,
            client_id=client_id,
            row_count=row_count,
            expires_at=self._clock() + timedelta(seconds=self.ttl_seconds),
            path=data_path,
        )
        with open(data_path, "wb") as f:
            f.write(content)
        with open(meta_path, "w", encoding="utf-8") as f:
            f.write(stored.model_dump_json())
        return stored

    def get(self, token: str) -> Optional[StoredExport]:
        """Live export for a token, or None when unknown or expired."""
        if not token or not token.replace("-", "").replace("_", "").isalnum():
            return None
        data_path, meta_path = self._paths(token)
        try:
            with open(meta_path, "r", encoding="utf-8") as f:
                stored = StoredExport.model_validate(json.load(f))
        except FileNotFoundError:
            return None
        if stored.expires_at <= self._clock() or not os.path.exists(data_path):
            self.delete(token)
            return None
        return stored

    def delete(self, token: str) -> None:
        for path in self._paths(token):
            try:
                os.remove(path)
            except FileNotFoundError:
                pass

    def purge_expired(self) -> int:
        """Remove every expired export. Returns the number removed."""
        if not os.path.isdir(self.directory):
            return 0
        removed = 0
        for name in os.listdir(self.directory):
            if name.endswith(".json") and self.get(name[: -len(".json")]) is None:
                removed += 1
        return removed


class TimelineExportService(BaseService):
    """Service for timeline exports."""

    def __init__(
        self,
        session: AsyncSession,
        store: ExportStore,
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(session)
        self.timeline = TimelineService(session, clock=clock)
        self.store = store
        self._clock = clock

    @audited("EXPORT", "TIMELINE", id_arg="client_id")
    async def export_timeline(
        self,
        client_id: UUID,
        request: TimelineExportRequest,
        actor: Actor,
    ) -> ExportHandle:
        """Render the filtered timeline of a client and return a download handle."""
        events = await self.timeline.list_all(
            client_id,
            actor,
            filters=request.filters,
            sort_order=request.sort_order,
        )
        rows = [event_row(event) for event in events]
        if request.format == ExportFormat.XLSX:
            content = render_xlsx(rows)
        else:
            content = render_csv(rows)

        stamp = self._clock().strftime("%Y%m%d-%H%M%S")
        stored = self.store.save(
            content,
            filename=f"timeline-{client_id}-{stamp}.{request.format.value}",
            content_type=CONTENT_TYPES[request.format],
            organization_id=actor.organization_id,
            client_id=client_id,
            row_count=len(rows),
        )
        logger.info(
            f"Timeline export created for client {client_id}",
            extra={"format": request.format.value, "row_count": len(rows), "expires_at": stored.expires_at.isoformat()},
        )
        return ExportHandle(
            token=stored.token,
            filename=stored.filename,
            content_type=stored.content_type,
            expires_at=stored.expires_at,
            row_count=stored.row_count,
        )

    async def fetch_export(self, token: str, actor: Actor) -> StoredExport:
        """
        Resolve a download token.

        Raises:
            NotFoundError: Unknown, expired, or issued to another organization
        """
        stored = self.store.get(token)
        if stored is None or stored.organization_id != actor.organization_id:
            raise NotFoundError("Export not found or expired", details={"token": token})
        return stored
