import pytest
from sqlalchemy import select

from flatwatch.adapters.repos.listings import ListingRepository
from flatwatch.adapters.repos.notifications import NotificationRepository
from flatwatch.adapters.repos.subscriptions import SubscriptionRepository
from flatwatch.domain.normalize import normalize_listing
from flatwatch.domain.types import PriceChange
from flatwatch.integrations.render import render_new_listings, render_price_changes
from flatwatch.integrations.services.dispatch import NotificationDispatcher
from flatwatch.models import NotificationKind, NotificationRecord, utcnow

from fakes import FakeMailer, flat


async def _listing(session, project_id, ext_id, price, **kw):
    res = await ListingRepository(session).upsert_listing(
        normalize_listing(flat(ext_id, price, **kw), {"project_external_id": 101, "site_url": "https://www.test"}),
        project_id,
    )
    return res.stored


async def _records(session) -> list[NotificationRecord]:
    return list((await session.execute(select(NotificationRecord).order_by(NotificationRecord.id))).scalars().all())


@pytest.mark.asyncio
async def test_matching_listings_are_sent_once_and_recorded(async_session_maker, tracked_project, settings):
    mailer = FakeMailer()
    async with async_session_maker() as session:
        cheap = await _listing(session, tracked_project.id, 1, 5_000_000, rooms=1)
        pricey = await _listing(session, tracked_project.id, 2, 15_000_000, rooms=1)
        sub = await SubscriptionRepository(session).create(
            name="one-room under 10M", price_max=10_000_000, notify_email="me@example.com", project_ids=[101]
        )
        await session.commit()

        d = NotificationDispatcher(session, mailer, settings)
        r1 = await d.dispatch([cheap, pricey], [], [sub])
        r2 = await d.dispatch([cheap, pricey], [], [sub])

        assert (r1.sent, r1.notified, r1.failed) == (1, 1, 0)
        assert (r2.sent, r2.notified, r2.skipped_duplicates) == (0, 0, 1)
        assert len(mailer.sent) == 1
        assert mailer.sent[0].to == "me@example.com"
        assert "one-room under 10M" in mailer.sent[0].subject
        assert "https://www.test/flat/1" in mailer.sent[0].html

        recs = await _records(session)
        assert [(r.subscription_id, r.listing_id, r.kind) for r in recs] == [(sub.id, cheap.id, NotificationKind.new)]

        sent_for_cheap = await NotificationRepository(session).for_listing(cheap.id)
        assert [r.id for r in sent_for_cheap] == [recs[0].id]
        assert await NotificationRepository(session).for_listing(pricey.id) == []


@pytest.mark.asyncio
async def test_failed_send_writes_no_record(async_session_maker, tracked_project, settings):
    async with async_session_maker() as session:
        lst = await _listing(session, tracked_project.id, 1, 5_000_000)
        sub = await SubscriptionRepository(session).create(name="all", notify_email="me@example.com")
        await session.commit()

        report = await NotificationDispatcher(session, FakeMailer(fail=True), settings).dispatch([lst], [], [sub])

        assert report.sent == 0
        assert report.failed == 1
        assert "smtp down" in report.errors[0]
        assert await _records(session) == []


@pytest.mark.asyncio
async def test_quiet_when_email_disabled(async_session_maker, tracked_project, settings):
    mailer = FakeMailer()
    quiet = settings.model_copy(update={"EMAIL_ENABLED": False})
    async with async_session_maker() as session:
        lst = await _listing(session, tracked_project.id, 1, 5_000_000)
        sub = await SubscriptionRepository(session).create(name="all", notify_email="me@example.com")
        await session.commit()

        report = await NotificationDispatcher(session, mailer, quiet).dispatch([lst], [], [sub])

        assert report.sent == 0
        assert mailer.sent == []


@pytest.mark.asyncio
async def test_subscriptions_without_email_or_inactive_are_skipped(async_session_maker, tracked_project, settings):
    mailer = FakeMailer()
    async with async_session_maker() as session:
        lst = await _listing(session, tracked_project.id, 1, 5_000_000)
        repo = SubscriptionRepository(session)
        no_email = await repo.create(name="no email")
        inactive = await repo.create(name="inactive", notify_email="me@example.com", is_active=False)
        await session.commit()

        report = await NotificationDispatcher(session, mailer, settings).dispatch([lst], [], [no_email, inactive])

        assert report.sent == 0
        assert mailer.sent == []


@pytest.mark.asyncio
async def test_price_drops_go_to_default_address_only(async_session_maker, tracked_project, settings):
    mailer = FakeMailer()
    async with async_session_maker() as session:
        a = await _listing(session, tracked_project.id, 1, 5_000_000)
        b = await _listing(session, tracked_project.id, 2, 6_000_000)
        sub = await SubscriptionRepository(session).create(name="all", notify_email="me@example.com")
        await session.commit()

        now = utcnow()
        changes = [
            PriceChange(listing=a, old_price=5_200_000, new_price=5_000_000, changed_at=now),
            PriceChange(listing=b, old_price=5_900_000, new_price=6_000_000, changed_at=now),
        ]
        d = NotificationDispatcher(session, mailer, settings)
        r1 = await d.dispatch([], changes, [sub])
        r2 = await d.dispatch([], changes, [sub])

        assert (r1.sent, r1.notified) == (1, 1)
        assert r2.sent == 0
        assert [m.to for m in mailer.sent] == ["owner@example.com"]
        assert "got cheaper" in mailer.sent[0].subject

        recs = await _records(session)
        assert [(r.subscription_id, r.listing_id, r.kind) for r in recs] == [(None, a.id, NotificationKind.price_drop)]


@pytest.mark.asyncio
async def test_price_increases_only_when_enabled(async_session_maker, tracked_project, settings):
    mailer = FakeMailer()
    loud = settings.model_copy(update={"NOTIFY_PRICE_INCREASES": True})
    async with async_session_maker() as session:
        b = await _listing(session, tracked_project.id, 2, 6_000_000)
        await session.commit()

        change = PriceChange(listing=b, old_price=5_900_000, new_price=6_000_000, changed_at=utcnow())
        report = await NotificationDispatcher(session, mailer, loud).dispatch([], [change], [])

        assert report.sent == 1
        assert (await _records(session))[0].kind == NotificationKind.price_increase


def test_render_is_pure_and_escapes():
    class L:
        rooms = 0
        is_studio = True
        area = 24.5
        floor = 3
        floors_total = 17
        price = 5_000_000
        price_per_area = 204082
        settlement_date = "<Q4 2026>"
        url = "https://www.test/flat/1?a=1&b=2"

    msg = render_new_listings([L()], "studios", "₽")
    assert msg.subject == "flatwatch: 1 new listing (studios)"
    assert "5 000 000 ₽" in msg.text
    assert "studio" in msg.text
    assert "&lt;Q4 2026&gt;" in msg.html
    assert "a=1&amp;b=2" in msg.html

    ch = render_price_changes([PriceChange(listing=L(), old_price=5_100_000, new_price=5_000_000, changed_at=utcnow())])
    assert "5 100 000 ₽ -> 5 000 000 ₽ (-100 000 ₽)" in ch.text
