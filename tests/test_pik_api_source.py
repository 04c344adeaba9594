import httpx
import pytest

from flatwatch.adapters.clients.http_resilience import ResilientHttp
from flatwatch.adapters.clients.pik_api import PikApiClient
from flatwatch.adapters.ingestion.pik_api import PikApiSource
from flatwatch.domain.types import ListingCriteria

from fakes import flat


def _source(settings, handler, **overrides) -> PikApiSource:
    s = settings.model_copy(update=overrides) if overrides else settings
    http = ResilientHttp(s, transport=httpx.MockTransport(handler))
    return PikApiSource(s, client=PikApiClient(s, http=http))


def _paged_handler(total: int, seen: list[dict]):
    def handler(request: httpx.Request) -> httpx.Response:
        params = dict(request.url.params)
        seen.append(params)
        limit, offset = int(params["flatLimit"]), int(params["flatOffset"])
        flats = [flat(i, 1_000_000 + i) for i in range(offset, min(offset + limit, total))]
        return httpx.Response(200, json={"blocks": [{"id": 101, "name": "Green Park", "flats": flats}]})
    return handler


@pytest.mark.asyncio
async def test_pagination_stops_at_short_page(settings):
    seen: list[dict] = []
    src = _source(settings, _paged_handler(5, seen), LISTINGS_PAGE_SIZE=2, LISTINGS_MAX_OFFSET=100)

    raws = await src.fetch_listings([101])

    assert len(raws) == 5
    assert [p["flatOffset"] for p in seen] == ["0", "2", "4"]
    assert src.health.last_fetch_complete is True
    assert all(r.project_external_id == 101 for r in raws)
    # the plural parameter, not 'block'
    assert seen[0]["blocks"] == "101"
    assert seen[0]["onlyFlats"] == "1"


@pytest.mark.asyncio
async def test_pagination_offset_cap_marks_fetch_incomplete(settings):
    seen: list[dict] = []
    src = _source(settings, _paged_handler(1000, seen), LISTINGS_PAGE_SIZE=2, LISTINGS_MAX_OFFSET=4)

    raws = await src.fetch_listings([101])

    assert [p["flatOffset"] for p in seen] == ["0", "2", "4"]
    assert len(raws) == 6
    assert src.health.last_fetch_complete is False


@pytest.mark.asyncio
async def test_server_params_expand_open_room_bucket_and_skip_area(settings):
    seen: list[dict] = []
    src = _source(settings, _paged_handler(0, seen))

    crit = ListingCriteria(rooms=(1, 3), price_min=1, price_max=9_000_000, area_min=30, area_max=60)
    await src.fetch_listings([101, 202], crit)

    p = seen[0]
    assert p["blocks"] == "101,202"
    assert p["rooms"] == "1,3,4,5,6"
    assert p["priceMin"] == "1"
    assert p["priceMax"] == "9000000"
    assert "areaMin" not in p and "areaMax" not in p


@pytest.mark.asyncio
async def test_criteria_are_reapplied_when_upstream_ignores_them(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        flats = [
            flat(1, 5_000_000, rooms=1, area=35.0),
            flat(2, 5_000_000, rooms=2, area=35.0),   # wrong rooms
            flat(3, 5_000_000, rooms=1, area=20.0),   # too small
            flat(4, 15_000_000, rooms=1, area=35.0),  # too expensive
            {"id": 5},                                 # no price
        ]
        return httpx.Response(200, json={"blocks": [{"id": 101, "flats": flats}]})

    src = _source(settings, handler)
    crit = ListingCriteria(rooms=(1,), price_max=10_000_000, area_min=30)
    raws = await src.fetch_listings([101], crit)

    assert [r.payload["id"] for r in raws] == [1]


@pytest.mark.asyncio
async def test_invalid_json_degrades_to_incomplete_empty_result(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>maintenance</html>")

    src = _source(settings, handler)
    raws = await src.fetch_listings([101])

    assert raws == []
    assert src.health.last_fetch_complete is False
    assert src.health.last_error.startswith("invalid_json")


@pytest.mark.asyncio
async def test_server_errors_are_retried_then_reported(settings):
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(503)

    src = _source(settings, handler)
    raws = await src.fetch_listings([101])

    assert raws == []
    # one try + HTTP_MAX_RETRIES=1
    assert calls["n"] == 2
    assert src.health.last_fetch_complete is False
    assert src.health.last_error == "HTTP 503"


@pytest.mark.asyncio
async def test_projects_from_aggregate_endpoint(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v2/filter"
        assert request.url.params["flatLimit"] == "0"
        assert request.url.params["blockLimit"] == "100"
        return httpx.Response(
            200,
            json={
                "blocks": [
                    {"id": 2, "name": "Zeta", "url": "zeta", "path": "/zeta", "count": 4},
                    {"id": 1, "name": "Alpha", "path": "/alpha", "count": 12, "priceMin": 6_000_000},
                    {"id": 3, "name": "Sold out", "count": 0},
                    {"id": 4, "count": 3},
                ]
            },
        )

    projects = await _source(settings, handler).fetch_projects()

    assert [p.name for p in projects] == ["Alpha", "Zeta"]
    assert projects[0].slug == "alpha"
    assert projects[0].price_min == 6_000_000
    assert projects[1].slug == "zeta"


@pytest.mark.asyncio
async def test_projects_fall_back_to_legacy_endpoint(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v2/filter":
            return httpx.Response(200, json={"unexpected": True})
        assert request.url.path == "/v2/block"
        return httpx.Response(200, json=[{"id": 7, "url": "/seven"}, {"name": "no id"}])

    projects = await _source(settings, handler).fetch_projects()

    assert len(projects) == 1
    assert projects[0].external_id == 7
    assert projects[0].name == "Project #7"
    assert projects[0].slug == "seven"
