from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime

from outreach.domain.business_days import BATCH_CUTOFF_HOUR, get_next_batch_start_date
from outreach.domain.models import Recipient, ScheduledTouchpoint, recipient_ids
from outreach.domain.schedule import filter_by_contact_channel, schedule_touchpoints_for_lead
from outreach.services import campaigns, recipients, sequences
from outreach.services.events import EventLogger
from outreach.services.touchpoints import (
    DEFAULT_CHUNK_SIZE,
    ChunkFailure,
    persist_touchpoints,
    schedule_key,
    stored_schedules,
)
from outreach.services.utils import utc_now_iso
from outreach.store.sqlite import SqliteStore

logger = logging.getLogger(__name__)


class EnrollmentError(RuntimeError):
    pass


@dataclass
class EnrollmentResult:
    campaign_id: str
    start_date: date
    enrolled: int = 0
    skipped: list[str] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)
    already_enrolled: list[str] = field(default_factory=list)
    generated: int = 0
    filtered: int = 0
    persisted: int = 0
    already_stored: int = 0
    failed_chunks: list[ChunkFailure] = field(default_factory=list)

    @property
    def discrepancy(self) -> int:
        """Touchpoints that were generated but are not in the store."""
        return self.generated - self.persisted - self.already_stored


def resolve_start_date(
    campaign_start: date | None,
    start_date: date | None = None,
    now: datetime | None = None,
    cutoff_hour: int = BATCH_CUTOFF_HOUR,
) -> date:
    if start_date is not None:
        return start_date
    if campaign_start is not None:
        return campaign_start
    return get_next_batch_start_date(now, cutoff_hour=cutoff_hour).date()


def enroll_recipients(
    store: SqliteStore,
    campaign_id: str,
    targets: Sequence[Recipient],
    start_date: date | None = None,
    now: datetime | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    cutoff_hour: int = BATCH_CUTOFF_HOUR,
    events: EventLogger | None = None,
) -> EnrollmentResult:
    """Schedule a campaign's sequence for each recipient and store the touchpoints.

    Recipients from another tenant are skipped. Touchpoints on a channel the
    recipient has no address for are dropped before insert. A recipient named
    more than once is enrolled once.

    Running again for a recipient who already has touchpoints in the campaign
    only fills in the steps missing from the same schedule, which is how a
    run with failed chunks is retried. If the stored touchpoints are complete,
    or belong to a different schedule (another start date or sequence), the
    recipient is reported in ``already_enrolled`` and left alone.
    """
    campaign = campaigns.get_campaign(store, campaign_id)
    if not campaign.sequence_id:
        raise EnrollmentError("Campaign does not have an outreach sequence assigned.")
    sequence = sequences.load_sequence(store, campaign.sequence_id)

    anchor = resolve_start_date(campaign.start_date, start_date, now, cutoff_hour)
    result = EnrollmentResult(campaign_id=campaign_id, start_date=anchor)

    unique_targets: list[Recipient] = []
    seen: set[Recipient] = set()
    for recipient in targets:
        if recipient in seen:
            result.duplicates.append(_recipient_label(recipient))
            continue
        seen.add(recipient)
        unique_targets.append(recipient)

    stored = stored_schedules(store, campaign_id)
    to_insert: list[ScheduledTouchpoint] = []
    enrolled: list[Recipient] = []
    for candidate in recipients.load_recipients(store, unique_targets):
        if candidate.tenant != campaign.tenant:
            result.skipped.append(_recipient_label(candidate.recipient))
            continue
        scheduled = schedule_touchpoints_for_lead(
            candidate.recipient, anchor, sequence.steps, candidate.personalization
        )
        kept = filter_by_contact_channel(scheduled, candidate.has_email, candidate.has_phone)
        dropped = len(scheduled) - len(kept)

        existing = stored.get(recipient_ids(candidate.recipient), set())
        if existing:
            keys = {schedule_key(tp) for tp in kept}
            if keys <= existing or not existing <= keys:
                result.already_enrolled.append(_recipient_label(candidate.recipient))
                continue
            kept = [tp for tp in kept if schedule_key(tp) not in existing]
            logger.info(
                "Resuming %s: %s touchpoints missing",
                _recipient_label(candidate.recipient),
                len(kept),
            )

        result.filtered += dropped
        to_insert.extend(kept)
        enrolled.append(candidate.recipient)

    if result.skipped:
        logger.warning(
            "Skipped %s recipients outside tenant %s", len(result.skipped), campaign.tenant
        )

    with store.session() as session:
        now_iso = utc_now_iso()
        for recipient in enrolled:
            recipients.mark_enrolled(session, recipient, campaign_id, now_iso)
    result.enrolled = len(enrolled)

    persisted = persist_touchpoints(
        store, to_insert, campaign_id=campaign_id, chunk_size=chunk_size, events=events
    )
    result.generated = persisted.generated
    result.persisted = persisted.persisted
    result.already_stored = persisted.already_stored
    result.failed_chunks = persisted.failed_chunks

    if events is not None:
        events.log(
            event_type="enrollment",
            entity_type="campaign",
            entity_id=campaign_id,
            details={
                "start_date": anchor.isoformat(),
                "enrolled": result.enrolled,
                "skipped": len(result.skipped),
                "duplicates": len(result.duplicates),
                "already_enrolled": len(result.already_enrolled),
                "generated": result.generated,
                "persisted": result.persisted,
                "failed_chunks": len(result.failed_chunks),
            },
        )
    return result


def _recipient_label(recipient: Recipient) -> str:
    lead_id, district_contact_id = recipient_ids(recipient)
    return lead_id or district_contact_id or ""
