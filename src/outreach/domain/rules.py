from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import date, datetime

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^\+?[1-9]?[0-9]{3}[0-9]{3}[0-9]{4}$")
PHONE_STRIP_RE = re.compile(r"[\s\-().]")


class ValidationError(ValueError):
    pass


def require(value: str | None, field: str) -> None:
    if value is None or str(value).strip() == "":
        raise ValidationError(f"{field} is required.")


def validate_enum(value: str | None, allowed: Iterable[str], field: str) -> None:
    if value is None:
        return
    allowed = list(allowed)
    if value not in allowed:
        raise ValidationError(f"{field} must be one of: {', '.join(sorted(allowed))}")


def validate_non_negative(value: int | None, field: str) -> None:
    if value is None:
        return
    if value < 0:
        raise ValidationError(f"{field} must be zero or greater.")


def validate_email(value: str | None, field: str = "email") -> None:
    if value is None or value.strip() == "":
        return
    if not EMAIL_RE.match(value.strip()):
        raise ValidationError(f"{field} is not a valid email address.")


def validate_phone(value: str | None, field: str = "phone") -> None:
    if value is None or value.strip() == "":
        return
    if not PHONE_RE.match(PHONE_STRIP_RE.sub("", value)):
        raise ValidationError(f"{field} is not a valid phone number.")


def parse_date(value: str | None, field: str) -> date | None:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"{field} must be YYYY-MM-DD.") from exc


def parse_datetime(value: str | None, field: str) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"{field} must be ISO 8601.") from exc
