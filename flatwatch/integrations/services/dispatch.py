from __future__ import annotations

import logging
from typing import Any, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from ...adapters.repos.notifications import NotificationRepository
from ...config import Settings
from ...domain.matching import matches
from ...domain.types import DispatchReport, PriceChange
from ...models import NotificationKind
from ..base import DeliveryResult, EmailMessageSpec, Mailer
from ..render import RenderedEmail, render_new_listings, render_price_changes

log = logging.getLogger(__name__)


def _active_since(listing: Any):
    # a relisted unit starts a new announcement window
    return getattr(listing, "relisted_at", None) or getattr(listing, "first_seen_at", None)


class NotificationDispatcher:
    """
    Turns one cycle's deltas into e-mail digests.

    Quiet by default:
      - EMAIL_ENABLED false => nothing is sent and nothing is recorded.
    Reliability:
      - a NotificationRecord is written (and committed) only after a successful send;
        nothing retries automatically, but an unrecorded notice stays visible in the
        store and IngestionCycle.resend_pending() offers it again
      - records already present for the listing's current active period are skipped
    """

    def __init__(self, session: AsyncSession, mailer: Mailer, settings: Settings) -> None:
        self.session = session
        self.mailer = mailer
        self.settings = settings
        self.records = NotificationRepository(session)

    async def _send(self, to: str, rendered: RenderedEmail) -> DeliveryResult:
        try:
            return await self.mailer.send(
                EmailMessageSpec(to=to, subject=rendered.subject, html=rendered.html, text=rendered.text)
            )
        except Exception as e:
            return DeliveryResult(ok=False, error=f"{type(e).__name__}: {e}")

    async def dispatch(
        self,
        new_listings: Sequence[Any],
        price_changes: Sequence[PriceChange],
        subscriptions: Sequence[Any],
    ) -> DispatchReport:
        report = DispatchReport()
        if not self.settings.EMAIL_ENABLED:
            return report

        for sub in subscriptions:
            if not sub.is_active or not sub.notify_email:
                continue
            await self._dispatch_subscription(sub, new_listings, report)

        if price_changes and self.settings.EMAIL_DEFAULT_TO:
            await self._dispatch_price_changes(price_changes, report)

        return report

    async def _dispatch_subscription(self, sub: Any, new_listings: Sequence[Any], report: DispatchReport) -> None:
        fresh: list[Any] = []
        for listing in new_listings:
            if not matches(listing, sub):
                continue
            if await self.records.already_sent(sub.id, listing.id, NotificationKind.new, _active_since(listing)):
                report.skipped_duplicates += 1
                continue
            fresh.append(listing)

        if not fresh:
            return

        rendered = render_new_listings(fresh, sub.name, self.settings.CURRENCY_LABEL)
        res = await self._send(sub.notify_email, rendered)
        if not res.ok:
            report.failed += 1
            report.errors.append(f"subscription {sub.id}: {res.error}")
            log.warning("digest for subscription %s to %s failed: %s", sub.id, sub.notify_email, res.error)
            return

        for listing in fresh:
            await self.records.record(sub.id, listing.id, NotificationKind.new, rendered.subject)
        await self.session.commit()

        report.sent += 1
        report.notified += len(fresh)
        log.info("sent %d new listings to %s (subscription %s)", len(fresh), sub.notify_email, sub.id)

    async def _dispatch_price_changes(self, price_changes: Sequence[PriceChange], report: DispatchReport) -> None:
        wanted: list[tuple[PriceChange, NotificationKind]] = []
        for ch in price_changes:
            if ch.is_drop:
                kind = NotificationKind.price_drop
            elif self.settings.NOTIFY_PRICE_INCREASES:
                kind = NotificationKind.price_increase
            else:
                continue
            if await self.records.already_sent(None, ch.listing.id, kind, ch.changed_at):
                report.skipped_duplicates += 1
                continue
            wanted.append((ch, kind))

        if not wanted:
            return

        to = self.settings.EMAIL_DEFAULT_TO
        rendered = render_price_changes([ch for ch, _ in wanted], self.settings.CURRENCY_LABEL)
        res = await self._send(to, rendered)
        if not res.ok:
            report.failed += 1
            report.errors.append(f"price digest: {res.error}")
            log.warning("price digest to %s failed: %s", to, res.error)
            return

        for ch, kind in wanted:
            await self.records.record(None, ch.listing.id, kind, rendered.subject)
        await self.session.commit()

        report.sent += 1
        report.notified += len(wanted)
        log.info("sent price digest with %d listings to %s", len(wanted), to)
