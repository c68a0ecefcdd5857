from __future__ import annotations

from datetime import datetime, date, timedelta, timezone
from typing import Optional

from freshops.errors import ValidationError


def iso_today() -> str:
    return date.today().isoformat()


def iso_now() -> str:
    # Use UTC ISO timestamps for consistency.
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def to_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r}")


def add_days(value, days: int) -> str:
    return (to_date(value) + timedelta(days=int(days))).isoformat()


def safe_div(n: float, d: float) -> float:
    return float(n) / float(d) if d else 0.0


def round2(v: float) -> float:
    return round(float(v), 2)


def parse_number(raw, *, field: str, minimum: Optional[float] = 0.0) -> Optional[float]:
    """
    Parse a user-typed number. Empty input means "not provided" and returns None.
    """
    if raw is None:
        return None
    if isinstance(raw, (int, float)):
        v = float(raw)
    else:
        s = str(raw).strip().replace(",", "")
        if not s:
            return None
        try:
            v = float(s)
        except ValueError:
            raise ValidationError(f"{field} must be a number.")
    if v != v:  # NaN
        raise ValidationError(f"{field} must be a number.")
    if minimum is not None and v < minimum:
        raise ValidationError(f"{field} must be >= {minimum:g}.")
    return v
