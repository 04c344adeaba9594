# flatwatch/domain/normalize.py
from __future__ import annotations

from typing import Any, Mapping

from .parsing import first_scalar, get_first, per_unit, to_float, to_int, to_str
from .types import ListingData, RawListing

# Ordered candidate keys per canonical field; first present, non-empty value wins.
# The API (snake_case and camelCase generations) and the site's __NEXT_DATA__
# payload disagree on almost every name.
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "external_id": ("id", "pik_id", "flatId", "flat_id"),
    "rooms": ("rooms", "room_count", "roomsCount"),
    "rooms_type": ("roomsType", "rooms_type"),
    "area": ("area", "square"),
    "floor": ("floor",),
    "floors_total": ("floors_total", "floorsTotal", "maxFloor", "bulk.floors"),
    "price": ("price", "currentPrice", "current_price"),
    "address": ("address",),
    "bulk_id": ("bulk_id", "bulkId", "bulks"),
    "bulk_name": ("bulk_name", "bulkName", "bulk.name"),
    "section": ("section", "sections"),
    "finishing": ("finishes", "finishing", "decoration", "finishType"),
    "settlement_date": ("settlement_date", "settlementDate", "bulk.date_till", "bulk.settlementDate"),
    "url": ("url",),
    "is_studio": ("is_studio", "isStudio"),
    "discount": ("discount", "benefit.discount"),
    "project_external_id": ("block_id", "blockId", "block.id"),
}


def resolve(payload: Mapping[str, Any], field: str) -> Any:
    return get_first(dict(payload), *FIELD_ALIASES[field])


def _finishing(v: Any) -> str | None:
    # list of finish objects ({"type": ...}) or a plain string
    if isinstance(v, list):
        head = v[0] if v else None
        if isinstance(head, dict):
            return to_str(head.get("type") or head.get("name"))
        return to_str(head)
    if isinstance(v, dict):
        return to_str(v.get("type") or v.get("name"))
    return to_str(v)


def _rooms(payload: Mapping[str, Any]) -> int | None:
    rooms = to_int(resolve(payload, "rooms"))
    if rooms is not None:
        return rooms
    rooms_type = resolve(payload, "rooms_type")
    if rooms_type is None:
        return None
    # "1", "2", ... or a non-numeric label such as "studio"
    parsed = to_int(rooms_type)
    return parsed if parsed is not None else 0


def _studio_flag(v: Any) -> bool | None:
    if v is None:
        return None
    if isinstance(v, bool):
        return v
    if isinstance(v, str):
        return v.strip().lower() in ("1", "true", "yes")
    return bool(v)


def reject_reason(payload: Mapping[str, Any]) -> str | None:
    """Why a record cannot become a Listing, or None when it can."""
    if not isinstance(payload, Mapping):
        return "not_a_record"
    if to_int(first_scalar(resolve(payload, "external_id"))) is None:
        return "missing_external_id"
    if to_int(resolve(payload, "price")) is None:
        return "missing_price"
    return None


def normalize_listing(
    raw: RawListing | Mapping[str, Any],
    defaults: Mapping[str, Any] | None = None,
) -> ListingData | None:
    """
    Map one heterogeneous upstream record into ListingData.

    `defaults` carries context the record itself may lack (enclosing block id,
    site base URL for deep links). Returns None for records without an external
    id or a parseable price; never raises on bad input.
    """
    defaults = dict(defaults or {})
    if isinstance(raw, RawListing):
        payload: Mapping[str, Any] = raw.payload
        if raw.project_external_id is not None:
            defaults.setdefault("project_external_id", raw.project_external_id)
    else:
        payload = raw

    if reject_reason(payload) is not None:
        return None

    external_id = to_int(first_scalar(resolve(payload, "external_id")))
    price = to_int(resolve(payload, "price"))
    area = to_float(resolve(payload, "area"))

    rooms = _rooms(payload)
    studio = _studio_flag(resolve(payload, "is_studio"))
    if studio is None:
        studio = rooms == 0
    elif studio and rooms is None:
        rooms = 0

    url = to_str(resolve(payload, "url"))
    site_url = to_str(defaults.get("site_url"))
    if url is None and site_url:
        url = f"{site_url.rstrip('/')}/flat/{external_id}"
    elif url is not None and url.startswith("/") and site_url:
        url = f"{site_url.rstrip('/')}{url}"

    project_external_id = to_int(first_scalar(resolve(payload, "project_external_id")))
    if project_external_id is None:
        project_external_id = to_int(defaults.get("project_external_id"))

    return ListingData(
        external_id=external_id,
        price=price,
        rooms=rooms,
        is_studio=bool(studio),
        area=area,
        floor=to_int(resolve(payload, "floor")),
        floors_total=to_int(resolve(payload, "floors_total")),
        price_per_area=per_unit(price, area),
        address=to_str(resolve(payload, "address")),
        bulk_id=to_int(first_scalar(resolve(payload, "bulk_id"))),
        bulk_name=to_str(resolve(payload, "bulk_name")),
        section=to_str(first_scalar(resolve(payload, "section"))),
        finishing=_finishing(resolve(payload, "finishing")),
        settlement_date=to_str(resolve(payload, "settlement_date")),
        discount=to_float(resolve(payload, "discount")),
        url=url,
        project_external_id=project_external_id,
    )
