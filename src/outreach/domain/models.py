from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime

from outreach.domain.stages import TouchpointType


@dataclass(frozen=True)
class LeadRecipient:
    lead_id: str


@dataclass(frozen=True)
class DistrictContactRecipient:
    district_contact_id: str


# Exactly one identity per recipient; the scheduler carries it through untouched.
Recipient = LeadRecipient | DistrictContactRecipient


def recipient_ids(recipient: Recipient) -> tuple[str | None, str | None]:
    """Return ``(lead_id, district_contact_id)`` for storage columns."""
    if isinstance(recipient, LeadRecipient):
        return recipient.lead_id, None
    return None, recipient.district_contact_id


@dataclass(frozen=True)
class Personalization:
    first_name: str | None = None
    last_name: str | None = None
    city: str | None = None
    company: str | None = None


@dataclass(frozen=True)
class OutreachStep:
    """One slot of a sequence.

    ``day_offset`` counts business days from the campaign start.
    ``days_after_previous`` counts business days from the previous step's
    computed date and wins over ``day_offset`` on every step but the first.
    """

    step_order: int
    type: TouchpointType
    day_offset: int = 0
    days_after_previous: int | None = None
    name: str | None = None
    content_link: str | None = None
    step_id: str | None = None
    sequence_id: str | None = None


@dataclass(frozen=True)
class OutreachSequence:
    sequence_id: str
    tenant: str
    name: str
    description: str | None = None
    steps: tuple[OutreachStep, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ScheduledTouchpoint:
    recipient: Recipient
    type: TouchpointType
    subject: str
    content: str
    scheduled_at: datetime

    @property
    def lead_id(self) -> str | None:
        return recipient_ids(self.recipient)[0]

    @property
    def district_contact_id(self) -> str | None:
        return recipient_ids(self.recipient)[1]


@dataclass(frozen=True)
class Touchpoint:
    touchpoint_id: str
    type: str
    lead_id: str | None = None
    district_contact_id: str | None = None
    campaign_id: str | None = None
    subject: str | None = None
    content: str | None = None
    scheduled_at: datetime | None = None
    completed_at: datetime | None = None
    outcome: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class Campaign:
    campaign_id: str
    tenant: str
    name: str
    sequence_id: str | None
    start_date: date | None
    end_date: date | None
    description: str | None
    created_at: datetime


@dataclass(frozen=True)
class EnrollmentCandidate:
    """What enrollment needs to know about one recipient."""

    recipient: Recipient
    tenant: str
    personalization: Personalization
    has_email: bool
    has_phone: bool
