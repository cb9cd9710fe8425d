"""
Timeline repository for database operations.
"""

from datetime import datetime
from typing import Any, Dict, Optional, List, Sequence, Tuple
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_, and_, case

from ledgercrm.db.repositories.base_repository import BaseRepository
from ledgercrm.models.timeline_event import (
    TimelineEvent,
    TimelineEventTag,
    TimelineEventType,
    TimelineCategory,
)


class TimelineRepository(BaseRepository[TimelineEvent]):
    """Repository for timeline events. Events are inserted, never rewritten."""

    def __init__(self, session: AsyncSession):
        super().__init__(TimelineEvent, session)

    async def query(
        self,
        client_id: UUID,
        organization_id: UUID,
        event_types: Optional[Sequence[TimelineEventType]] = None,
        categories: Optional[Sequence[TimelineCategory]] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        user_id: Optional[UUID] = None,
        tags: Optional[Sequence[str]] = None,
        search: Optional[str] = None,
        include_deleted: bool = False,
        after: Optional[Tuple[datetime, UUID]] = None,
        limit: Optional[int] = 20,
        descending: bool = True,
    ) -> List[TimelineEvent]:
        """
        Page through a client's timeline in (created_at, id) order.

        Args:
            after: Keyset position (created_at, id) of the last row already returned
            limit: Maximum rows to return; None returns everything
            tags: Every listed tag must be present on the event

        Returns:
            Matching events in the requested order
        """
        query = (
            select(TimelineEvent)
            .where(TimelineEvent.client_id == client_id)
            .where(TimelineEvent.organization_id == organization_id)
        )
        if not include_deleted:
            query = query.where(TimelineEvent.deleted_at.is_(None))
        if event_types:
            query = query.where(TimelineEvent.event_type.in_(list(event_types)))
        if categories:
            query = query.where(TimelineEvent.category.in_(list(categories)))
        if date_from is not None:
            query = query.where(TimelineEvent.created_at >= date_from)
        if date_to is not None:
            query = query.where(TimelineEvent.created_at <= date_to)
        if user_id is not None:
            query = query.where(TimelineEvent.created_by == user_id)
        for tag in dict.fromkeys(tags or []):
            query = query.where(
                select(TimelineEventTag.id)
                .where(TimelineEventTag.event_id == TimelineEvent.id)
                .where(TimelineEventTag.tag == tag)
                .exists()
            )
        if search:
            pattern = f"%{search.lower()}%"
            query = query.where(
                or_(
                    func.lower(TimelineEvent.title).like(pattern),
                    func.lower(func.coalesce(TimelineEvent.description, "")).like(pattern),
                )
            )

        if after is not None:
            after_at, after_id = after
            if descending:
                query = query.where(
                    or_(
                        TimelineEvent.created_at < after_at,
                        and_(TimelineEvent.created_at == after_at, TimelineEvent.id < after_id),
                    )
                )
            else:
                query = query.where(
                    or_(
                        TimelineEvent.created_at > after_at,
                        and_(TimelineEvent.created_at == after_at, TimelineEvent.id > after_id),
                    )
                )

        if descending:
            query = query.order_by(TimelineEvent.created_at.desc(), TimelineEvent.id.desc())
        else:
            query = query.order_by(TimelineEvent.created_at.asc(), TimelineEvent.id.asc())
        if limit is not None:
            query = query.limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    def _client_events(self, query, client_id: UUID, organization_id: UUID, since: Optional[datetime]):
        query = (
            query.where(TimelineEvent.client_id == client_id)
            .where(TimelineEvent.organization_id == organization_id)
            .where(TimelineEvent.deleted_at.is_(None))
        )
        if since is not None:
            query = query.where(TimelineEvent.created_at >= since)
        return query

    async def count_by_client(
        self, client_id: UUID, organization_id: UUID, since: Optional[datetime] = None
    ) -> int:
        """Count non-deleted events of a client, optionally only those created since a moment."""
        result = await self.session.execute(
            self._client_events(select(func.count(TimelineEvent.id)), client_id, organization_id, since)
        )
        return result.scalar() or 0

    async def count_grouped(
        self, column, client_id: UUID, organization_id: UUID, since: Optional[datetime] = None
    ) -> Dict[Any, int]:
        """Count non-deleted events of a client per value of `column` (event_type, category)."""
        query = self._client_events(select(column, func.count(TimelineEvent.id)), client_id, organization_id, since)
        result = await self.session.execute(query.group_by(column))
        return {value: count for value, count in result.all()}

    async def count_open_tasks(
        self, client_id: UUID, organization_id: UUID, now: datetime
    ) -> Tuple[int, int]:
        """Open and overdue task counts of a client, regardless of creation time."""
        overdue = and_(TimelineEvent.due_at.is_not(None), TimelineEvent.due_at < now)
        query = self._client_events(
            select(
                func.count(TimelineEvent.id),
                func.coalesce(func.sum(case((overdue, 1), else_=0)), 0),
            ),
            client_id,
            organization_id,
            None,
        )
        query = query.where(TimelineEvent.event_type == TimelineEventType.TASK).where(
            TimelineEvent.task_completed.is_not(True)
        )
        open_count, overdue_count = (await self.session.execute(query)).one()
        return open_count or 0, int(overdue_count or 0)

    async def last_event_at(self, client_id: UUID, organization_id: UUID) -> Optional[datetime]:
        result = await self.session.execute(
            self._client_events(select(func.max(TimelineEvent.created_at)), client_id, organization_id, None)
        )
        return result.scalar()
