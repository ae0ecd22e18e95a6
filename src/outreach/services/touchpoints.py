from __future__ import annotations

import logging
import sqlite3
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from uuid import uuid4

from outreach.domain import rules
from outreach.domain.models import LeadRecipient, Recipient, ScheduledTouchpoint, Touchpoint
from outreach.domain.stages import QueueKind, RecipientStatus, TouchpointOutcome
from outreach.services.events import EventLogger
from outreach.services.utils import day_bounds, from_iso, local_today, to_utc_iso, utc_now_iso
from outreach.store.sqlite import SqliteSession, SqliteStore

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 50

# Outcomes that move the recipient out of active outreach.
OUTCOME_STATUS = {
    TouchpointOutcome.REPLIED.value: RecipientStatus.ENGAGED.value,
    TouchpointOutcome.BOOKED.value: RecipientStatus.ENGAGED.value,
    TouchpointOutcome.OPTED_OUT.value: RecipientStatus.NOT_INTERESTED.value,
}

INSERT_SQL = (
    "INSERT INTO touchpoints (touchpoint_id, lead_id, district_contact_id, campaign_id, type, subject, "
    "content, scheduled_at, completed_at, outcome, notes, created_at, updated_at) "
    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?) ON CONFLICT DO NOTHING"
)

QUEUE_SQL = (
    "SELECT touchpoints.*, "
    "COALESCE(leads.first_name, district_contacts.first_name) AS first_name, "
    "COALESCE(leads.last_name, district_contacts.last_name) AS last_name, "
    "COALESCE(leads.company, districts.name) AS company, "
    "campaigns.name AS campaign_name "
    "FROM touchpoints "
    "LEFT JOIN leads ON touchpoints.lead_id = leads.lead_id "
    "LEFT JOIN district_contacts ON touchpoints.district_contact_id = district_contacts.district_contact_id "
    "LEFT JOIN districts ON district_contacts.district_id = districts.district_id "
    "LEFT JOIN campaigns ON touchpoints.campaign_id = campaigns.campaign_id "
    "WHERE touchpoints.completed_at IS NULL AND touchpoints.scheduled_at IS NOT NULL "
    "AND COALESCE(leads.tenant, districts.tenant) = ?"
)


class TouchpointError(RuntimeError):
    pass


@dataclass(frozen=True)
class ChunkFailure:
    index: int
    size: int
    error: str


@dataclass
class PersistResult:
    generated: int = 0
    persisted: int = 0
    already_stored: int = 0
    failed_chunks: list[ChunkFailure] = field(default_factory=list)

    @property
    def discrepancy(self) -> int:
        """Touchpoints that are not in the store after this run."""
        return self.generated - self.persisted - self.already_stored


@dataclass(frozen=True)
class QueueItem:
    touchpoint: Touchpoint
    recipient_name: str
    company: str | None
    campaign_name: str | None


def persist_touchpoints(
    store: SqliteStore,
    touchpoints: Sequence[ScheduledTouchpoint],
    campaign_id: str | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    events: EventLogger | None = None,
) -> PersistResult:
    """Insert scheduled touchpoints in fixed-size chunks, one transaction each.

    A failing chunk is rolled back on its own and recorded; chunks already
    committed stay committed and later chunks are still attempted. A
    touchpoint matching a stored one on campaign, recipient, type and
    ``scheduled_at`` is counted in ``already_stored`` instead of inserted.
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1.")

    result = PersistResult(generated=len(touchpoints))
    for index, start in enumerate(range(0, len(touchpoints), chunk_size)):
        chunk = touchpoints[start : start + chunk_size]
        now = utc_now_iso()
        rows = [
            (
                str(uuid4()),
                tp.lead_id,
                tp.district_contact_id,
                campaign_id,
                tp.type.value,
                tp.subject or None,
                tp.content or None,
                to_utc_iso(tp.scheduled_at),
                None,
                None,
                None,
                now,
                now,
            )
            for tp in chunk
        ]
        try:
            with store.session() as session:
                inserted = session.execute_many(INSERT_SQL, rows)
        except sqlite3.Error as exc:
            failure = ChunkFailure(index=index, size=len(chunk), error=str(exc))
            result.failed_chunks.append(failure)
            logger.warning("Touchpoint chunk %s (%s records) failed: %s", index, len(chunk), exc)
            if events is not None:
                events.log(
                    event_type="chunk_failed",
                    entity_type="campaign",
                    entity_id=campaign_id or "",
                    details={"chunk": index, "size": len(chunk), "error": str(exc)},
                )
            continue
        result.persisted += inserted
        result.already_stored += len(chunk) - inserted
    return result


def schedule_key(touchpoint: ScheduledTouchpoint) -> tuple[str, str]:
    return touchpoint.type.value, to_utc_iso(touchpoint.scheduled_at)


def stored_schedules(
    store: SqliteStore, campaign_id: str
) -> dict[tuple[str | None, str | None], set[tuple[str, str]]]:
    """Schedule keys already stored for a campaign, grouped by recipient ids."""
    rows = store.fetch_all(
        "SELECT lead_id, district_contact_id, type, scheduled_at FROM touchpoints "
        "WHERE campaign_id = ? AND scheduled_at IS NOT NULL",
        (campaign_id,),
    )
    schedules: dict[tuple[str | None, str | None], set[tuple[str, str]]] = {}
    for row in rows:
        owner = (row["lead_id"], row["district_contact_id"])
        schedules.setdefault(owner, set()).add((row["type"], row["scheduled_at"]))
    return schedules


def complete_touchpoint(
    store: SqliteStore,
    touchpoint_id: str,
    outcome: str,
    completed_at: datetime | None = None,
    notes: str | None = None,
    events: EventLogger | None = None,
) -> Touchpoint:
    rules.validate_enum(outcome, [o.value for o in TouchpointOutcome], "outcome")

    now = utc_now_iso()
    completed_value = to_utc_iso(completed_at) if completed_at else now
    with store.session() as session:
        row = session.fetch_one(
            "SELECT * FROM touchpoints WHERE touchpoint_id = ?", (touchpoint_id,)
        )
        if row is None:
            raise TouchpointError(f"Touchpoint not found: {touchpoint_id}")
        if row["completed_at"] is not None:
            raise TouchpointError(f"Touchpoint already completed: {touchpoint_id}")
        session.execute(
            "UPDATE touchpoints SET completed_at = ?, outcome = ?, notes = COALESCE(?, notes), "
            "updated_at = ? WHERE touchpoint_id = ?",
            (completed_value, outcome, notes, now, touchpoint_id),
        )
        status = OUTCOME_STATUS.get(outcome)
        if status is not None:
            _update_recipient_status(session, row, status, now)
        updated = session.fetch_one(
            "SELECT * FROM touchpoints WHERE touchpoint_id = ?", (touchpoint_id,)
        )

    if events is not None:
        events.log(
            event_type="touchpoint_completed",
            entity_type="touchpoint",
            entity_id=touchpoint_id,
            details={"outcome": outcome},
        )
    return row_to_touchpoint(updated)


def daily_queue(
    store: SqliteStore,
    tenant: str,
    kind: str = QueueKind.ALL.value,
    on: date | None = None,
    campaign_id: str | None = None,
    tz: tzinfo | None = None,
) -> list[QueueItem]:
    """Open touchpoints for operator action, oldest first.

    ``today`` is the calendar day ``on`` in ``tz`` (default: the current
    date in the local timezone). ``overdue`` is anything before it and
    ``all`` is both.
    """
    rules.validate_enum(kind, [k.value for k in QueueKind], "kind")
    if on is None:
        on = local_today(tz)
    day_start, day_end = day_bounds(on, tz)

    query = QUEUE_SQL
    params: list[str] = [tenant]
    if kind == QueueKind.TODAY.value:
        query += " AND touchpoints.scheduled_at >= ? AND touchpoints.scheduled_at < ?"
        params.extend([day_start, day_end])
    elif kind == QueueKind.OVERDUE.value:
        query += " AND touchpoints.scheduled_at < ?"
        params.append(day_start)
    else:
        query += " AND touchpoints.scheduled_at < ?"
        params.append(day_end)
    if campaign_id:
        query += " AND touchpoints.campaign_id = ?"
        params.append(campaign_id)
    query += " ORDER BY touchpoints.scheduled_at ASC, touchpoints.created_at ASC"

    rows = store.fetch_all(query, params)
    return [
        QueueItem(
            touchpoint=row_to_touchpoint(row),
            recipient_name=" ".join(
                part for part in (row["first_name"], row["last_name"]) if part
            ),
            company=row["company"],
            campaign_name=row["campaign_name"],
        )
        for row in rows
    ]


def queue_counts(
    store: SqliteStore, tenant: str, on: date | None = None, tz: tzinfo | None = None
) -> dict[str, int]:
    if on is None:
        on = local_today(tz)
    return {
        kind.value: len(daily_queue(store, tenant, kind.value, on=on, tz=tz))
        for kind in (QueueKind.TODAY, QueueKind.OVERDUE)
    }


def list_touchpoints(store: SqliteStore, recipient: Recipient) -> list[Touchpoint]:
    if isinstance(recipient, LeadRecipient):
        column, record_id = "lead_id", recipient.lead_id
    else:
        column, record_id = "district_contact_id", recipient.district_contact_id
    rows = store.fetch_all(
        f"SELECT * FROM touchpoints WHERE {column} = ? ORDER BY scheduled_at ASC",
        (record_id,),
    )
    return [row_to_touchpoint(row) for row in rows]


def row_to_touchpoint(row: sqlite3.Row) -> Touchpoint:
    return Touchpoint(
        touchpoint_id=row["touchpoint_id"],
        type=row["type"],
        lead_id=row["lead_id"],
        district_contact_id=row["district_contact_id"],
        campaign_id=row["campaign_id"],
        subject=row["subject"],
        content=row["content"],
        scheduled_at=from_iso(row["scheduled_at"]),
        completed_at=from_iso(row["completed_at"]),
        outcome=row["outcome"],
        notes=row["notes"],
    )


def _update_recipient_status(
    session: SqliteSession, row: sqlite3.Row, status: str, now: str
) -> None:
    if row["lead_id"]:
        session.execute(
            "UPDATE leads SET status = ?, updated_at = ? WHERE lead_id = ?",
            (status, now, row["lead_id"]),
        )
    if row["district_contact_id"]:
        session.execute(
            "UPDATE district_contacts SET status = ?, updated_at = ? WHERE district_contact_id = ?",
            (status, now, row["district_contact_id"]),
        )
