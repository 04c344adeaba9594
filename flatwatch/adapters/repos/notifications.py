# flatwatch/adapters/repos/notifications.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ...models import NotificationKind, NotificationRecord, utcnow


class NotificationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def already_sent(
        self,
        subscription_id: int | None,
        listing_id: int,
        kind: NotificationKind,
        since: datetime | None = None,
    ) -> bool:
        q = select(NotificationRecord.id).where(
            NotificationRecord.listing_id == listing_id,
            NotificationRecord.kind == kind,
        )
        if subscription_id is None:
            q = q.where(NotificationRecord.subscription_id.is_(None))
        else:
            q = q.where(NotificationRecord.subscription_id == subscription_id)
        if since is not None:
            q = q.where(NotificationRecord.sent_at >= since)
        return (await self.session.execute(q.limit(1))).first() is not None

    async def record(
        self,
        subscription_id: int | None,
        listing_id: int,
        kind: NotificationKind,
        message: str | None = None,
        sent_at: datetime | None = None,
    ) -> NotificationRecord:
        rec = NotificationRecord(
            subscription_id=subscription_id,
            listing_id=listing_id,
            kind=kind,
            message=message,
            sent_at=sent_at or utcnow(),
        )
        self.session.add(rec)
        await self.session.flush()
        return rec

    async def for_listing(self, listing_id: int) -> list[NotificationRecord]:
        q = select(NotificationRecord).where(NotificationRecord.listing_id == listing_id).order_by(NotificationRecord.id.asc())
        return list((await self.session.execute(q)).scalars().all())
