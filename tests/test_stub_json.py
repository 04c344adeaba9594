import json

import pytest

from flatwatch.adapters.ingestion.stub_json import StubJsonSource

from fakes import flat


@pytest.fixture
def fixtures_dir(tmp_path):
    d = tmp_path / "stub"
    d.mkdir()
    (d / "projects.json").write_text(
        json.dumps([{"id": 2, "name": "Beta", "count": 3}, {"id": 1, "name": "Alpha", "url": "alpha"}, {"name": "no id"}]),
        encoding="utf-8",
    )
    (d / "1.json").write_text(json.dumps({"flats": [flat(10, 5_000_000), {"id": 11}]}), encoding="utf-8")
    (d / "3.json").write_text("{broken", encoding="utf-8")
    return d


@pytest.mark.asyncio
async def test_projects_sorted_by_name(fixtures_dir):
    src = StubJsonSource(fixtures_dir=fixtures_dir, site_url="https://www.test")
    projects = await src.fetch_projects()
    assert [p.external_id for p in projects] == [1, 2]
    assert projects[0].slug == "alpha"


@pytest.mark.asyncio
async def test_listings_skip_unparseable_and_missing_files(fixtures_dir):
    src = StubJsonSource(fixtures_dir=fixtures_dir)

    raws = await src.fetch_listings([1, 2])
    assert [r.payload["id"] for r in raws] == [10]
    assert src.health.last_fetch_complete is True

    assert await src.fetch_listings([3]) == []
    assert src.health.last_fetch_complete is False
