"""Outreach touchpoint scheduling.

Pure functions: no store, no clock reads beyond an optional default for
"today", and no mutation of inputs. Equal inputs yield equal outputs.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import UTC, date, datetime, time, tzinfo
from operator import attrgetter
from typing import Protocol, TypeVar

from outreach.domain.business_days import add_business_days
from outreach.domain.models import (
    OutreachStep,
    Personalization,
    Recipient,
    ScheduledTouchpoint,
)
from outreach.domain.stages import TouchpointType
from outreach.domain.templates import replace_template_variables

SEND_TIME = time(9, 0, 0, tzinfo=UTC)


class _Schedulable(Protocol):
    scheduled_at: datetime | None
    completed_at: datetime | None


T = TypeVar("T", bound=_Schedulable)


def schedule_touchpoints_for_lead(
    recipient: Recipient,
    campaign_start: date | datetime,
    steps: Iterable[OutreachStep],
    personalization: Personalization | None = None,
) -> list[ScheduledTouchpoint]:
    """Turn sequence steps into dated touchpoints for one recipient.

    Steps run in ascending ``step_order`` whatever order they arrive in; ties
    keep their input order. The first step, and any step without
    ``days_after_previous``, is placed ``day_offset`` business days after
    ``campaign_start``. Every other step is placed ``days_after_previous``
    business days after the previous step's computed date.
    """
    start = _calendar_date(campaign_start)
    ordered = sorted(steps, key=attrgetter("step_order"))

    scheduled: list[ScheduledTouchpoint] = []
    previous = start
    for index, step in enumerate(ordered):
        if index == 0 or step.days_after_previous is None:
            current = add_business_days(start, step.day_offset)
        else:
            current = add_business_days(previous, step.days_after_previous)
        previous = current

        scheduled.append(
            ScheduledTouchpoint(
                recipient=recipient,
                type=TouchpointType(step.type),
                subject=replace_template_variables(step.name, personalization),
                content=replace_template_variables(step.content_link, personalization),
                scheduled_at=datetime.combine(current, SEND_TIME),
            )
        )
    return scheduled


def filter_by_contact_channel(
    touchpoints: Sequence[ScheduledTouchpoint], has_email: bool, has_phone: bool
) -> list[ScheduledTouchpoint]:
    """Drop touchpoints the recipient cannot receive.

    Email needs an address and calls need a phone number; LinkedIn messages
    need neither.
    """
    kept = []
    for touchpoint in touchpoints:
        if touchpoint.type == TouchpointType.EMAIL and not has_email:
            continue
        if touchpoint.type == TouchpointType.CALL and not has_phone:
            continue
        kept.append(touchpoint)
    return kept


def get_touchpoints_due_today(
    touchpoints: Iterable[T], today: date | None = None, tz: tzinfo | None = None
) -> list[T]:
    """Open touchpoints whose scheduled time falls on ``today`` in ``tz``.

    ``tz`` defaults to the local timezone, and ``today`` to the current
    date there.
    """
    if today is None:
        today = _today(tz)
    return [tp for tp in touchpoints if _open_on(tp, tz) == today]


def get_overdue_touchpoints(
    touchpoints: Iterable[T], today: date | None = None, tz: tzinfo | None = None
) -> list[T]:
    if today is None:
        today = _today(tz)
    result = []
    for tp in touchpoints:
        scheduled = _open_on(tp, tz)
        if scheduled is not None and scheduled < today:
            result.append(tp)
    return result


def _today(tz: tzinfo | None) -> date:
    if tz is None:
        return date.today()
    return datetime.now(tz).date()


def _open_on(touchpoint: _Schedulable, tz: tzinfo | None = None) -> date | None:
    if touchpoint.scheduled_at is None or touchpoint.completed_at is not None:
        return None
    scheduled = touchpoint.scheduled_at
    if scheduled.tzinfo is not None:
        scheduled = scheduled.astimezone(tz)
    return scheduled.date()


def _calendar_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value
