from __future__ import annotations

from datetime import date
from uuid import uuid4

from outreach.domain import rules
from outreach.domain.models import Campaign
from outreach.services.utils import from_iso, utc_now_iso
from outreach.store.sqlite import SqliteStore


class CampaignError(RuntimeError):
    pass


def create_campaign(
    store: SqliteStore,
    tenant: str,
    name: str,
    sequence_id: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    description: str | None = None,
) -> str:
    rules.require(tenant, "tenant")
    rules.require(name, "name")
    if start_date and end_date and end_date < start_date:
        raise rules.ValidationError("end_date must not be before start_date.")

    now = utc_now_iso()
    campaign_id = str(uuid4())
    with store.session() as session:
        if sequence_id:
            row = session.fetch_one(
                "SELECT tenant FROM outreach_sequences WHERE sequence_id = ?", (sequence_id,)
            )
            if row is None:
                raise CampaignError(f"Sequence not found: {sequence_id}")
            if row["tenant"] != tenant:
                raise CampaignError("Sequence belongs to a different tenant.")
        session.execute(
            "INSERT INTO campaigns (campaign_id, tenant, name, description, sequence_id, start_date, "
            "end_date, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                campaign_id,
                tenant,
                name,
                description,
                sequence_id,
                start_date.isoformat() if start_date else None,
                end_date.isoformat() if end_date else None,
                now,
                now,
            ),
        )
    return campaign_id


def get_campaign(store: SqliteStore, campaign_id: str) -> Campaign:
    row = store.fetch_one("SELECT * FROM campaigns WHERE campaign_id = ?", (campaign_id,))
    if row is None:
        raise CampaignError(f"Campaign not found: {campaign_id}")
    return Campaign(
        campaign_id=row["campaign_id"],
        tenant=row["tenant"],
        name=row["name"],
        sequence_id=row["sequence_id"],
        start_date=date.fromisoformat(row["start_date"]) if row["start_date"] else None,
        end_date=date.fromisoformat(row["end_date"]) if row["end_date"] else None,
        description=row["description"],
        created_at=from_iso(row["created_at"]),
    )


def list_campaigns(store: SqliteStore, tenant: str) -> list[dict[str, object]]:
    rows = store.fetch_all(
        "SELECT campaigns.campaign_id, campaigns.name, campaigns.start_date, "
        "outreach_sequences.name AS sequence_name "
        "FROM campaigns "
        "LEFT JOIN outreach_sequences ON campaigns.sequence_id = outreach_sequences.sequence_id "
        "WHERE campaigns.tenant = ? ORDER BY campaigns.created_at DESC",
        (tenant,),
    )
    return [dict(row) for row in rows]
