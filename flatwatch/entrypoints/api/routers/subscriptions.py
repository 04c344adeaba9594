# flatwatch/entrypoints/api/routers/subscriptions.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_session, require_api_key
from ....adapters.repos.subscriptions import SubscriptionRepository
from ....schemas import SubscriptionCreate, SubscriptionOut, SubscriptionUpdate

router = APIRouter(tags=["subscriptions"])


@router.get("/subscriptions", response_model=list[SubscriptionOut], dependencies=[Depends(require_api_key)])
async def list_subscriptions(
    active_only: bool = Query(False),
    session: AsyncSession = Depends(get_session),
) -> list[SubscriptionOut]:
    rows = await SubscriptionRepository(session).list(active_only=active_only)
    return [SubscriptionOut.model_validate(s) for s in rows]


@router.post(
    "/subscriptions",
    response_model=SubscriptionOut,
    status_code=201,
    dependencies=[Depends(require_api_key)],
)
async def create_subscription(body: SubscriptionCreate, session: AsyncSession = Depends(get_session)) -> SubscriptionOut:
    sub = await SubscriptionRepository(session).create(**body.model_dump())
    await session.commit()
    return SubscriptionOut.model_validate(sub)


@router.get("/subscriptions/{subscription_id}", response_model=SubscriptionOut, dependencies=[Depends(require_api_key)])
async def get_subscription(subscription_id: int, session: AsyncSession = Depends(get_session)) -> SubscriptionOut:
    sub = await SubscriptionRepository(session).get(subscription_id)
    if sub is None:
        raise HTTPException(status_code=404, detail="Subscription not found")
    return SubscriptionOut.model_validate(sub)


@router.patch("/subscriptions/{subscription_id}", response_model=SubscriptionOut, dependencies=[Depends(require_api_key)])
async def update_subscription(
    subscription_id: int,
    body: SubscriptionUpdate,
    session: AsyncSession = Depends(get_session),
) -> SubscriptionOut:
    repo = SubscriptionRepository(session)
    current = await repo.get(subscription_id)
    if current is None:
        raise HTTPException(status_code=404, detail="Subscription not found")

    fields = body.model_dump(exclude_unset=True)
    # bounds are checked against the merged row, not just the patch
    for name in ("rooms", "price", "area", "floor"):
        lo = fields.get(f"{name}_min", getattr(current, f"{name}_min"))
        hi = fields.get(f"{name}_max", getattr(current, f"{name}_max"))
        if lo is not None and hi is not None and lo > hi:
            raise HTTPException(status_code=400, detail=f"{name}_min must not exceed {name}_max")

    sub = await repo.update(subscription_id, **fields)
    await session.commit()
    return SubscriptionOut.model_validate(sub)


@router.delete("/subscriptions/{subscription_id}", status_code=204, dependencies=[Depends(require_api_key)])
async def delete_subscription(subscription_id: int, session: AsyncSession = Depends(get_session)) -> None:
    if not await SubscriptionRepository(session).delete(subscription_id):
        raise HTTPException(status_code=404, detail="Subscription not found")
    await session.commit()
