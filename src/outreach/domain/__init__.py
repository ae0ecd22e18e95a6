from outreach.domain.business_days import (
    add_business_days,
    get_next_batch_start_date,
    get_next_business_day,
    is_business_day,
)
from outreach.domain.models import (
    Campaign,
    DistrictContactRecipient,
    EnrollmentCandidate,
    LeadRecipient,
    OutreachSequence,
    OutreachStep,
    Personalization,
    Recipient,
    ScheduledTouchpoint,
    Touchpoint,
)
from outreach.domain.rules import ValidationError
from outreach.domain.schedule import (
    filter_by_contact_channel,
    get_overdue_touchpoints,
    get_touchpoints_due_today,
    schedule_touchpoints_for_lead,
)
from outreach.domain.templates import replace_template_variables

__all__ = [
    "Campaign",
    "DistrictContactRecipient",
    "EnrollmentCandidate",
    "LeadRecipient",
    "OutreachSequence",
    "OutreachStep",
    "Personalization",
    "Recipient",
    "ScheduledTouchpoint",
    "Touchpoint",
    "ValidationError",
    "add_business_days",
    "filter_by_contact_channel",
    "get_next_batch_start_date",
    "get_next_business_day",
    "get_overdue_touchpoints",
    "get_touchpoints_due_today",
    "is_business_day",
    "replace_template_variables",
    "schedule_touchpoints_for_lead",
]
