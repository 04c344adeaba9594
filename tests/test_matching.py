from types import SimpleNamespace

from flatwatch.domain.matching import criteria_allows, matches, room_bucket_matches
from flatwatch.domain.types import ListingCriteria


def _listing(**kw):
    base = dict(project_external_id=1, rooms=2, price=10_000_000, area=50.0, floor=5)
    base.update(kw)
    return SimpleNamespace(**base)


def _sub(**kw):
    base = dict(
        project_ids=[],
        rooms_min=None, rooms_max=None,
        price_min=None, price_max=None,
        area_min=None, area_max=None,
        floor_min=None, floor_max=None,
    )
    base.update(kw)
    return SimpleNamespace(**base)


def test_empty_subscription_matches_everything():
    assert matches(_listing(), _sub()) is True


def test_bounds_are_inclusive():
    sub = _sub(price_min=10_000_000, price_max=10_000_000, floor_min=5, floor_max=5)
    assert matches(_listing(), sub) is True
    assert matches(_listing(price=10_000_001), sub) is False
    assert matches(_listing(floor=4), sub) is False


def test_price_max_is_inclusive():
    sub = _sub(price_max=20_000_000)
    assert matches(_listing(price=20_000_000), sub) is True
    assert matches(_listing(price=20_000_001), sub) is False


def test_zero_is_a_real_bound():
    assert matches(_listing(rooms=0), _sub(rooms_max=0)) is True
    assert matches(_listing(rooms=1), _sub(rooms_max=0)) is False


def test_unknown_value_fails_a_set_bound_but_passes_an_unset_one():
    assert matches(_listing(area=None), _sub(area_min=30)) is False
    assert matches(_listing(area=None), _sub(price_max=20_000_000)) is True


def test_project_set_restricts_projects():
    sub = _sub(project_ids=[1, 2])
    assert matches(_listing(project_external_id=2), sub) is True
    assert matches(_listing(project_external_id=3), sub) is False


def test_room_buckets():
    assert room_bucket_matches(0, [0]) is True
    assert room_bucket_matches(1, [0, 2]) is False
    # 3 means "3 or more"
    assert room_bucket_matches(3, [3]) is True
    assert room_bucket_matches(5, [3]) is True
    assert room_bucket_matches(2, [3]) is False
    assert room_bucket_matches(None, [0, 1, 2, 3]) is False


def test_criteria_are_reapplied_client_side():
    crit = ListingCriteria(rooms=(1,), price_max=9_000_000, area_min=30)
    assert criteria_allows(_listing(rooms=1, price=8_000_000, area=35.0), crit) is True
    assert criteria_allows(_listing(rooms=2, price=8_000_000, area=35.0), crit) is False
    assert criteria_allows(_listing(rooms=1, price=9_500_000, area=35.0), crit) is False
    assert criteria_allows(_listing(rooms=1, price=8_000_000, area=25.0), crit) is False
    assert criteria_allows(_listing(), None) is True
