from __future__ import annotations

from uuid import uuid4

from outreach.domain import rules
from outreach.domain.models import OutreachSequence, OutreachStep
from outreach.domain.stages import TouchpointType
from outreach.services.utils import utc_now_iso
from outreach.store.sqlite import SqliteStore


class SequenceError(RuntimeError):
    pass


def create_sequence(
    store: SqliteStore, tenant: str, name: str, description: str | None = None
) -> str:
    rules.require(tenant, "tenant")
    rules.require(name, "name")

    now = utc_now_iso()
    sequence_id = str(uuid4())
    store.execute(
        "INSERT INTO outreach_sequences (sequence_id, tenant, name, description, created_at, updated_at) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        (sequence_id, tenant, name, description, now, now),
    )
    return sequence_id


def add_step(
    store: SqliteStore,
    sequence_id: str,
    step_order: int,
    type: str,
    day_offset: int = 0,
    days_after_previous: int | None = None,
    name: str | None = None,
    content_link: str | None = None,
) -> str:
    rules.validate_enum(type, [t.value for t in TouchpointType], "type")
    if step_order < 1:
        raise rules.ValidationError("step_order must be 1 or greater.")
    rules.validate_non_negative(day_offset, "day_offset")
    rules.validate_non_negative(days_after_previous, "days_after_previous")

    now = utc_now_iso()
    step_id = str(uuid4())
    with store.session() as session:
        if not session.exists("outreach_sequences", "sequence_id", sequence_id):
            raise SequenceError(f"Sequence not found: {sequence_id}")
        clash = session.fetch_one(
            "SELECT step_id FROM outreach_steps WHERE sequence_id = ? AND step_order = ?",
            (sequence_id, step_order),
        )
        if clash:
            raise rules.ValidationError(f"step_order {step_order} already exists in this sequence.")
        session.execute(
            "INSERT INTO outreach_steps (step_id, sequence_id, step_order, type, name, content_link, "
            "day_offset, days_after_previous, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                step_id,
                sequence_id,
                step_order,
                type,
                name,
                content_link,
                day_offset,
                days_after_previous,
                now,
                now,
            ),
        )
        session.execute(
            "UPDATE outreach_sequences SET updated_at = ? WHERE sequence_id = ?",
            (now, sequence_id),
        )
    return step_id


def load_sequence(store: SqliteStore, sequence_id: str) -> OutreachSequence:
    """Fetch a sequence with its steps already in ``step_order``."""
    row = store.fetch_one(
        "SELECT sequence_id, tenant, name, description FROM outreach_sequences WHERE sequence_id = ?",
        (sequence_id,),
    )
    if row is None:
        raise SequenceError(f"Sequence not found: {sequence_id}")
    step_rows = store.fetch_all(
        "SELECT * FROM outreach_steps WHERE sequence_id = ? ORDER BY step_order ASC",
        (sequence_id,),
    )
    steps = tuple(
        OutreachStep(
            step_id=step["step_id"],
            sequence_id=step["sequence_id"],
            step_order=step["step_order"],
            type=TouchpointType(step["type"]),
            name=step["name"],
            content_link=step["content_link"],
            day_offset=step["day_offset"],
            days_after_previous=step["days_after_previous"],
        )
        for step in step_rows
    )
    return OutreachSequence(
        sequence_id=row["sequence_id"],
        tenant=row["tenant"],
        name=row["name"],
        description=row["description"],
        steps=steps,
    )


def list_sequences(store: SqliteStore, tenant: str) -> list[dict[str, object]]:
    rows = store.fetch_all(
        "SELECT outreach_sequences.sequence_id, outreach_sequences.name, "
        "COUNT(outreach_steps.step_id) AS step_count "
        "FROM outreach_sequences "
        "LEFT JOIN outreach_steps ON outreach_steps.sequence_id = outreach_sequences.sequence_id "
        "WHERE outreach_sequences.tenant = ? "
        "GROUP BY outreach_sequences.sequence_id ORDER BY outreach_sequences.name ASC",
        (tenant,),
    )
    return [dict(row) for row in rows]
