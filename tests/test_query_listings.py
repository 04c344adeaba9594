import pytest

from flatwatch.adapters.repos.listings import ListingQuery, ListingRepository
from flatwatch.domain.normalize import normalize_listing
from flatwatch.models import Project

from fakes import flat


@pytest.fixture
async def seeded(async_session_maker, tracked_project):
    async with async_session_maker() as session:
        other = Project(external_id=202, name="Other", is_tracked=True)
        session.add(other)
        await session.flush()

        repo = ListingRepository(session)
        rows = [
            (101, tracked_project.id, flat(1, 5_000_000, rooms=0, area=25.0, floor=2)),
            (101, tracked_project.id, flat(2, 7_000_000, rooms=1, area=38.0, floor=9)),
            (101, tracked_project.id, flat(3, 9_000_000, rooms=2, area=55.0, floor=14)),
            (202, other.id, flat(4, 6_000_000, rooms=1, area=36.0, floor=3)),
            (202, other.id, flat(5, 12_000_000, rooms=3, area=80.0, floor=20)),
        ]
        for ext, pid, payload in rows:
            await repo.upsert_listing(normalize_listing(payload, {"project_external_id": ext}), pid)
        # flat 5 is gone
        await repo.mark_sold_except([4], other.id)
        await session.commit()


async def _ids(session, q: ListingQuery, **kw) -> tuple[list[int], int]:
    page = await ListingRepository(session).query_listings(q, **kw)
    return [x.external_id for x in page.items], page.total


@pytest.mark.asyncio
async def test_only_active_listings_ordered_by_price(async_session_maker, seeded):
    async with async_session_maker() as session:
        ids, total = await _ids(session, ListingQuery())
        assert ids == [1, 4, 2, 3]
        assert total == 4


@pytest.mark.asyncio
async def test_project_filter_and_ranges_share_one_predicate_for_count_and_page(async_session_maker, seeded):
    async with async_session_maker() as session:
        ids, total = await _ids(session, ListingQuery(project_ids=(101,), price_min=6_000_000), limit=1)
        assert ids == [2]
        assert total == 2

        ids, total = await _ids(session, ListingQuery(rooms_min=1, rooms_max=1, floor_max=5))
        assert ids == [4]
        assert total == 1

        ids, total = await _ids(session, ListingQuery(area_min=30, area_max=40, order_by="-price"))
        assert ids == [2, 4]


@pytest.mark.asyncio
async def test_zero_bound_is_respected(async_session_maker, seeded):
    async with async_session_maker() as session:
        ids, _ = await _ids(session, ListingQuery(rooms_max=0))
        assert ids == [1]


@pytest.mark.asyncio
async def test_unknown_ordering_is_rejected(async_session_maker, seeded):
    async with async_session_maker() as session:
        with pytest.raises(ValueError):
            await ListingRepository(session).query_listings(ListingQuery(order_by="id; drop table"))


@pytest.mark.asyncio
async def test_pagination_offset(async_session_maker, seeded):
    async with async_session_maker() as session:
        ids, total = await _ids(session, ListingQuery(), limit=2, offset=2)
        assert ids == [2, 3]
        assert total == 4
