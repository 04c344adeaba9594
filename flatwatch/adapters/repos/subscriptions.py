# flatwatch/adapters/repos/subscriptions.py
from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ...models import Subscription, utcnow

_FIELDS = (
    "name",
    "rooms_min",
    "rooms_max",
    "price_min",
    "price_max",
    "area_min",
    "area_max",
    "floor_min",
    "floor_max",
    "is_active",
    "notify_email",
)


class SubscriptionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, subscription_id: int) -> Subscription | None:
        return await self.session.get(Subscription, subscription_id)

    async def list(self, active_only: bool = False) -> list[Subscription]:
        q = select(Subscription)
        if active_only:
            q = q.where(Subscription.is_active.is_(True))
        q = q.order_by(Subscription.id.asc())
        return list((await self.session.execute(q)).scalars().all())

    async def list_active(self) -> list[Subscription]:
        return await self.list(active_only=True)

    def _apply(self, sub: Subscription, fields: dict[str, Any]) -> None:
        if "project_ids" in fields:
            sub.project_ids = fields["project_ids"]
        for name in _FIELDS:
            if name in fields:
                setattr(sub, name, fields[name])

    async def create(self, **fields: Any) -> Subscription:
        now = utcnow()
        sub = Subscription(name=fields.get("name") or "subscription", is_active=True, created_at=now, updated_at=now)
        self._apply(sub, fields)
        self.session.add(sub)
        await self.session.flush()
        return sub

    async def update(self, subscription_id: int, **fields: Any) -> Subscription | None:
        """Partial update: only keys present in `fields` are touched (None clears a bound)."""
        sub = await self.get(subscription_id)
        if sub is None:
            return None
        self._apply(sub, fields)
        sub.updated_at = utcnow()
        await self.session.flush()
        return sub

    async def delete(self, subscription_id: int) -> bool:
        sub = await self.get(subscription_id)
        if sub is None:
            return False
        await self.session.delete(sub)
        await self.session.flush()
        return True
