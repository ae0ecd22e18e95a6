from __future__ import annotations

from enum import Enum


class TouchpointType(str, Enum):
    EMAIL = "email"
    CALL = "call"
    LINKEDIN_MESSAGE = "linkedin_message"


class TouchpointOutcome(str, Enum):
    REPLIED = "replied"
    NO_ANSWER = "no_answer"
    VOICEMAIL = "voicemail"
    OPTED_OUT = "opted_out"
    BOUNCED = "bounced"
    BOOKED = "booked"
    IGNORED = "ignored"


class RecipientStatus(str, Enum):
    NOT_CONTACTED = "not_contacted"
    ACTIVELY_CONTACTING = "actively_contacting"
    ENGAGED = "engaged"
    WON = "won"
    NOT_INTERESTED = "not_interested"


class QueueKind(str, Enum):
    TODAY = "today"
    OVERDUE = "overdue"
    ALL = "all"
