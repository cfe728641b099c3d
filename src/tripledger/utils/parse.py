from __future__ import annotations

from datetime import date, datetime, time
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

UTC = ZoneInfo("UTC")

DATE_FORMATS = ("%Y-%m-%d %H:%M", "%Y-%m-%d", "%d.%m.%Y %H:%M", "%d.%m.%Y", "%d/%m/%Y")


def _parse_text(value: str, default_tz: ZoneInfo) -> datetime:
    text = value.strip()
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        parsed = None
    if parsed is not None:
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=default_tz)

    # "2025-12-20 19:00 Europe/Paris": trailing zone name overrides the default
    parts = text.rsplit(" ", 1)
    tz = default_tz
    if len(parts) == 2 and "/" in parts[1] and ":" not in parts[1]:
        try:
            tz = ZoneInfo(parts[1])
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError("Unknown time zone") from exc
        text = parts[0]

    for fmt in DATE_FORMATS:
        try:
            naive = datetime.strptime(text, fmt)
        except ValueError:
            continue
        return naive.replace(tzinfo=tz)

    raise ValueError(f"Unrecognised date: {value!r}")


def normalize_date(value: datetime | date | str, default_tz: ZoneInfo = UTC) -> datetime:
    """Turn whatever the caller has into a timezone-aware UTC ``datetime``.

    Naive values are interpreted in ``default_tz``.
    """
    if isinstance(value, datetime):
        aware = value if value.tzinfo else value.replace(tzinfo=default_tz)
    elif isinstance(value, date):
        aware = datetime.combine(value, time.min, tzinfo=default_tz)
    elif isinstance(value, str):
        aware = _parse_text(value, default_tz)
    else:
        raise TypeError(f"Unsupported date value: {type(value).__name__}")
    return aware.astimezone(UTC)
