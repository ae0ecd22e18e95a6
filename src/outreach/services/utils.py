from __future__ import annotations

import re
from datetime import UTC, date, datetime, time, timedelta, tzinfo

CONTACT_RE = re.compile(r"^(?P<name>[^<]+?)(?:\s*<(?P<email>[^>]+)>)?$")


def utc_now_iso() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat()


def today_iso() -> str:
    return date.today().isoformat()


def to_utc_iso(value: datetime) -> str:
    """Storage form for timestamps; naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).replace(microsecond=0).isoformat()


def from_iso(value: str | None) -> datetime | None:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def day_bounds(day: date, tz: tzinfo | None = None) -> tuple[str, str]:
    """Midnight starting ``day`` and the next day in ``tz``, in storage form.

    ``tz`` defaults to the local timezone.
    """
    start = datetime.combine(day, time(0, 0))
    end = start + timedelta(days=1)
    if tz is None:
        return to_utc_iso(start.astimezone()), to_utc_iso(end.astimezone())
    return to_utc_iso(start.replace(tzinfo=tz)), to_utc_iso(end.replace(tzinfo=tz))


def local_today(tz: tzinfo | None = None) -> date:
    if tz is None:
        return date.today()
    return datetime.now(tz).date()


def parse_contact(contact: str) -> tuple[str, str | None]:
    match = CONTACT_RE.match(contact.strip())
    if not match:
        return contact.strip(), None
    name = match.group("name").strip()
    email = match.group("email")
    return name, email.strip() if email else None


def split_name(full_name: str) -> tuple[str | None, str | None]:
    parts = full_name.strip().split(None, 1)
    if not parts:
        return None, None
    if len(parts) == 1:
        return parts[0], None
    return parts[0], parts[1]


def blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None
