"""
Storage collaborator for the click pipeline.

ClickStore is the only surface the ingestion and aggregation code sees.
SqlClickStore backs it with an AsyncSession. Write failures surface as
PersistenceFailure so callers can log and carry on.
"""

import datetime
from typing import Protocol, Sequence
from uuid import UUID

from fastapi import Depends
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from linkpulse.errors import PersistenceFailure
from linkpulse.models.database import get_db
from linkpulse.models.tables import ClickEvent, ShortUrl


class ClickStore(Protocol):
    async def find_short_url_by_code(self, code: str) -> ShortUrl | None: ...

    async def insert_click_event(self, event: ClickEvent) -> None: ...

    async def find_recent_event_by_fingerprint(
        self, url_id: UUID, fingerprint: str, since: datetime.datetime
    ) -> bool: ...

    async def increment_counters(self, url_id: UUID, is_unique: bool) -> None: ...

    async def list_click_events(
        self, url_id: UUID, since: datetime.datetime | None = None, limit: int | None = None
    ) -> Sequence[ClickEvent]: ...


class SqlClickStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_short_url_by_code(self, code: str) -> ShortUrl | None:
        result = await self.db.execute(select(ShortUrl).where(ShortUrl.code == code))
        return result.scalar_one_or_none()

    async def insert_click_event(self, event: ClickEvent) -> None:
        try:
            self.db.add(event)
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceFailure("click event insert failed") from exc

    async def find_recent_event_by_fingerprint(
        self, url_id: UUID, fingerprint: str, since: datetime.datetime
    ) -> bool:
        stmt = (
            select(ClickEvent.id)
            .where(
                ClickEvent.short_url_id == url_id,
                ClickEvent.fingerprint == fingerprint,
                ClickEvent.timestamp >= since,
            )
            .limit(1)
        )
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceFailure("dedupe query failed") from exc
        return result.scalar_one_or_none() is not None

    async def increment_counters(self, url_id: UUID, is_unique: bool) -> None:
        # One UPDATE; the database does the arithmetic.
        stmt = (
            update(ShortUrl)
            .where(ShortUrl.id == url_id)
            .values(
                total_clicks=ShortUrl.total_clicks + 1,
                unique_clicks=ShortUrl.unique_clicks + (1 if is_unique else 0),
            )
        )
        try:
            await self.db.execute(stmt)
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceFailure("counter increment failed") from exc

    async def list_click_events(
        self, url_id: UUID, since: datetime.datetime | None = None, limit: int | None = None
    ) -> Sequence[ClickEvent]:
        stmt = select(ClickEvent).where(ClickEvent.short_url_id == url_id)
        if since is not None:
            stmt = stmt.where(ClickEvent.timestamp >= since)
        stmt = stmt.order_by(ClickEvent.timestamp.desc())
        if limit:
            stmt = stmt.limit(limit)
        result = await self.db.execute(stmt)
        return result.scalars().all()


async def get_store(db: AsyncSession = Depends(get_db)) -> ClickStore:
    """FastAPI dependency — SQL-backed store on the request's session."""
    return SqlClickStore(db)
