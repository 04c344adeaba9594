from __future__ import annotations

from dataclasses import dataclass
from html import escape
from typing import Any, Sequence

from ..domain.types import PriceChange

_STYLE = (
    "body{font-family:Arial,sans-serif;line-height:1.6;color:#333}"
    ".header{background:#ff6b35;color:#fff;padding:20px;text-align:center}"
    ".flat{border:1px solid #ddd;border-radius:8px;margin:15px 0;padding:15px}"
    ".price{font-size:22px;font-weight:bold;color:#ff6b35}"
    ".old{text-decoration:line-through;color:#888}"
    ".down{color:#155724}.up{color:#721c24}"
    ".footer{text-align:center;padding:20px;color:#888;font-size:12px}"
)


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


def format_money(value: int | None, currency: str) -> str:
    if value is None:
        return "-"
    return f"{int(value):,}".replace(",", " ") + f" {currency}"


def rooms_label(rooms: int | None, is_studio: bool = False) -> str:
    if is_studio or rooms == 0:
        return "studio"
    if rooms is None:
        return "-"
    return f"{rooms}-room"


def _facts(listing: Any, currency: str) -> list[tuple[str, str]]:
    area = getattr(listing, "area", None)
    ppa = getattr(listing, "price_per_area", None)
    floor = getattr(listing, "floor", None)
    floors_total = getattr(listing, "floors_total", None)
    floor_s = "-" if floor is None else (f"{floor}/{floors_total}" if floors_total else str(floor))
    return [
        ("Rooms", rooms_label(getattr(listing, "rooms", None), bool(getattr(listing, "is_studio", False)))),
        ("Area", "-" if area is None else f"{area:g} m²"),
        ("Floor", floor_s),
        ("Completion", getattr(listing, "settlement_date", None) or "-"),
        ("Price per m²", format_money(ppa, f"{currency}/m²") if ppa is not None else "-"),
    ]


def _page(title: str, subtitle: str, blocks: list[str]) -> str:
    return (
        "<!DOCTYPE html><html><head><meta charset=\"UTF-8\">"
        f"<style>{_STYLE}</style></head><body>"
        f"<div class=\"header\"><h1>{escape(title)}</h1><p>{escape(subtitle)}</p></div>"
        f"<div class=\"content\">{''.join(blocks)}</div>"
        "<div class=\"footer\">flatwatch | automatic notification</div>"
        "</body></html>"
    )


def _html_facts(listing: Any, currency: str) -> str:
    rows = "".join(f"<tr><td>{escape(k)}</td><td><b>{escape(v)}</b></td></tr>" for k, v in _facts(listing, currency))
    return f"<table>{rows}</table>"


def _html_link(listing: Any) -> str:
    url = getattr(listing, "url", None)
    if not url:
        return ""
    return f"<a href=\"{escape(url, quote=True)}\">Open listing</a>"


def _text_facts(listing: Any, currency: str) -> list[str]:
    lines = [f"  {k}: {v}" for k, v in _facts(listing, currency)]
    url = getattr(listing, "url", None)
    if url:
        lines.append(f"  {url}")
    return lines


def render_new_listings(listings: Sequence[Any], subscription_name: str = "", currency: str = "₽") -> RenderedEmail:
    count = len(listings)
    subject = f"flatwatch: {count} new listing{'s' if count != 1 else ''}"
    if subscription_name:
        subject += f" ({subscription_name})"
    title = f"New listings: {subscription_name}" if subscription_name else "New listings found"

    blocks: list[str] = []
    text: list[str] = [title, f"Listings found: {count}", ""]
    for lst in listings:
        price = format_money(getattr(lst, "price", None), currency)
        blocks.append(
            f"<div class=\"flat\"><div class=\"price\">{escape(price)}</div>"
            f"{_html_facts(lst, currency)}{_html_link(lst)}</div>"
        )
        text.append(price)
        text.extend(_text_facts(lst, currency))
        text.append("")

    return RenderedEmail(subject=subject, html=_page(title, f"Listings found: {count}", blocks), text="\n".join(text))


def render_price_changes(changes: Sequence[PriceChange], currency: str = "₽") -> RenderedEmail:
    count = len(changes)
    drops = sum(1 for c in changes if c.is_drop)
    if drops == count:
        subject = f"flatwatch: {count} listing{'s' if count != 1 else ''} got cheaper"
    else:
        subject = f"flatwatch: price changes on {count} listing{'s' if count != 1 else ''}"
    title = "Price changes"

    blocks: list[str] = []
    text: list[str] = [title, f"Listings with a new price: {count}", ""]
    for ch in changes:
        diff = ch.new_price - ch.old_price
        diff_s = ("+" if diff > 0 else "-") + format_money(abs(diff), currency)
        old_s = format_money(ch.old_price, currency)
        new_s = format_money(ch.new_price, currency)
        css = "down" if ch.is_drop else "up"
        blocks.append(
            f"<div class=\"flat\"><span class=\"old\">{escape(old_s)}</span> "
            f"<span class=\"price\">{escape(new_s)}</span> "
            f"<span class=\"{css}\">{escape(diff_s)}</span>"
            f"{_html_facts(ch.listing, currency)}{_html_link(ch.listing)}</div>"
        )
        text.append(f"{old_s} -> {new_s} ({diff_s})")
        text.extend(_text_facts(ch.listing, currency))
        text.append("")

    return RenderedEmail(
        subject=subject,
        html=_page(title, f"Listings with a new price: {count}", blocks),
        text="\n".join(text),
    )
