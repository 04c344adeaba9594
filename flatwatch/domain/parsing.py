from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any


def to_int(x: Any) -> int | None:
    if x is None or x == "" or isinstance(x, bool):
        return None
    try:
        return int(float(x))
    except (TypeError, ValueError, OverflowError):
        return None


def to_float(x: Any) -> float | None:
    if x is None or x == "" or isinstance(x, bool):
        return None
    try:
        f = float(x)
    except (TypeError, ValueError):
        return None
    # NaN/inf parse fine from JSON but are not a measurement
    return f if math.isfinite(f) else None


def to_str(x: Any) -> str | None:
    if x is None or isinstance(x, (dict, list)):
        return None
    s = str(x).strip()
    return s or None


def first_scalar(x: Any) -> Any:
    """Upstream sends some ids either as a scalar or as a one-element list."""
    if isinstance(x, (list, tuple)):
        return x[0] if x else None
    return x


def get_nested(payload: dict[str, Any], path: str) -> Any:
    """Tiny dot-path getter: 'bulk.floors' or 'benefit.discount'."""
    cur: Any = payload
    for part in path.split("."):
        if not isinstance(cur, dict):
            return None
        cur = cur.get(part)
        if cur is None:
            return None
    return cur


def get_first(payload: dict[str, Any], *keys: str) -> Any:
    """Return the value of the first present, non-empty key (dot paths allowed)."""
    for k in keys:
        v = get_nested(payload, k) if "." in k else payload.get(k)
        if v is None:
            continue
        if isinstance(v, str) and not v.strip():
            continue
        if isinstance(v, (list, dict)) and not v:
            continue
        return v
    return None


def round_half_up(value: float | Decimal) -> int:
    try:
        return int(Decimal(str(value)).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        raise ValueError(f"cannot round {value!r}")


def per_unit(price: int | None, area: float | None) -> int | None:
    """price / area rounded to a whole currency unit; None unless area > 0."""
    if price is None or area is None or not math.isfinite(area) or area <= 0:
        return None
    return round_half_up(Decimal(price) / Decimal(str(area)))
