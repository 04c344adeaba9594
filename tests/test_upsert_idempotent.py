import pytest

from flatwatch.adapters.repos.listings import ListingRepository
from flatwatch.domain.normalize import normalize_listing
from flatwatch.models import ListingStatus

from fakes import flat


def _data(ext_id: int, price: int, **kw):
    return normalize_listing(flat(ext_id, price, **kw), {"project_external_id": 101})


@pytest.mark.asyncio
async def test_new_listing_creates_exactly_one_history_entry(async_session_maker, tracked_project):
    async with async_session_maker() as session:
        repo = ListingRepository(session)
        res = await repo.upsert_listing(_data(1, 5_000_000), tracked_project.id)
        await session.commit()

        assert res.is_new is True
        assert res.price_changed is False
        assert res.stored.status == ListingStatus.active

        history = await repo.price_history(res.stored.id)
        assert [h.price for h in history] == [5_000_000]


@pytest.mark.asyncio
async def test_upsert_same_payload_twice_is_idempotent(async_session_maker, tracked_project):
    async with async_session_maker() as session:
        r1 = await ListingRepository(session).upsert_listing(_data(1, 5_000_000), tracked_project.id)
        await session.commit()

    async with async_session_maker() as session:
        repo = ListingRepository(session)
        r2 = await repo.upsert_listing(_data(1, 5_000_000), tracked_project.id)
        await session.commit()

        assert r2.is_new is False
        assert r2.price_changed is False
        assert r2.stored.id == r1.stored.id
        assert len(await repo.price_history(r1.stored.id)) == 1


@pytest.mark.asyncio
async def test_price_change_appends_and_keeps_old_entry(async_session_maker, tracked_project):
    async with async_session_maker() as session:
        repo = ListingRepository(session)
        r1 = await repo.upsert_listing(_data(1, 5_000_000), tracked_project.id)
        r2 = await repo.upsert_listing(_data(1, 4_800_000), tracked_project.id)
        await session.commit()

        assert r2.price_changed is True
        assert r2.old_price == 5_000_000
        assert r2.stored.price == 4_800_000

        history = await repo.price_history(r1.stored.id)
        assert [h.price for h in history] == [5_000_000, 4_800_000]


@pytest.mark.asyncio
async def test_metadata_refresh_without_price_change_adds_no_history(async_session_maker, tracked_project):
    async with async_session_maker() as session:
        repo = ListingRepository(session)
        r1 = await repo.upsert_listing(_data(1, 5_000_000, floor=3), tracked_project.id)
        r2 = await repo.upsert_listing(_data(1, 5_000_000, floor=4), tracked_project.id)
        await session.commit()

        assert r2.price_changed is False
        assert r2.stored.floor == 4
        assert len(await repo.price_history(r1.stored.id)) == 1
