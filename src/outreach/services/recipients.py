from __future__ import annotations

from collections.abc import Iterable, Sequence
from uuid import uuid4

from outreach.domain import rules
from outreach.domain.models import (
    DistrictContactRecipient,
    EnrollmentCandidate,
    LeadRecipient,
    Personalization,
    Recipient,
)
from outreach.domain.stages import RecipientStatus
from outreach.services.utils import blank_to_none, utc_now_iso
from outreach.store.sqlite import SqliteSession, SqliteStore


class RecipientError(RuntimeError):
    pass


def add_lead(
    store: SqliteStore,
    tenant: str,
    first_name: str | None,
    last_name: str | None,
    email: str | None = None,
    phone: str | None = None,
    city: str | None = None,
    state: str | None = None,
    company: str | None = None,
    linkedin_url: str | None = None,
    notes: str | None = None,
    status: str = RecipientStatus.NOT_CONTACTED.value,
) -> str:
    rules.require(tenant, "tenant")
    rules.validate_email(email)
    rules.validate_phone(phone)
    rules.validate_enum(status, [s.value for s in RecipientStatus], "status")

    now = utc_now_iso()
    lead_id = str(uuid4())
    with store.session() as session:
        insert_lead(
            session,
            lead_id=lead_id,
            tenant=tenant,
            first_name=blank_to_none(first_name),
            last_name=blank_to_none(last_name),
            email=_normalize_email(email),
            phone=blank_to_none(phone),
            city=blank_to_none(city),
            state=blank_to_none(state),
            company=blank_to_none(company),
            linkedin_url=blank_to_none(linkedin_url),
            notes=notes,
            status=status,
            now=now,
        )
    return lead_id


def insert_lead(session: SqliteSession, *, lead_id: str, tenant: str, now: str, **fields) -> None:
    session.execute(
        "INSERT INTO leads (lead_id, tenant, first_name, last_name, email, phone, city, state, company, "
        "linkedin_url, status, campaign_id, notes, created_at, updated_at) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        (
            lead_id,
            tenant,
            fields.get("first_name"),
            fields.get("last_name"),
            fields.get("email"),
            fields.get("phone"),
            fields.get("city"),
            fields.get("state"),
            fields.get("company"),
            fields.get("linkedin_url"),
            fields.get("status", RecipientStatus.NOT_CONTACTED.value),
            None,
            fields.get("notes"),
            now,
            now,
        ),
    )


def add_district(
    store: SqliteStore,
    tenant: str,
    name: str,
    city: str | None = None,
    state: str | None = None,
    county: str | None = None,
) -> str:
    rules.require(tenant, "tenant")
    rules.require(name, "name")

    now = utc_now_iso()
    district_id = str(uuid4())
    store.execute(
        "INSERT INTO districts (district_id, tenant, name, county, city, state, created_at, updated_at) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        (
            district_id,
            tenant,
            name,
            blank_to_none(county),
            blank_to_none(city),
            blank_to_none(state),
            now,
            now,
        ),
    )
    return district_id


def add_district_contact(
    store: SqliteStore,
    district_id: str,
    first_name: str | None,
    last_name: str | None,
    title: str | None = None,
    email: str | None = None,
    phone: str | None = None,
    notes: str | None = None,
) -> str:
    rules.validate_email(email)
    rules.validate_phone(phone)

    now = utc_now_iso()
    contact_id = str(uuid4())
    with store.session() as session:
        if not session.exists("districts", "district_id", district_id):
            raise RecipientError(f"District not found: {district_id}")
        session.execute(
            "INSERT INTO district_contacts (district_contact_id, district_id, first_name, last_name, title, "
            "email, phone, status, campaign_id, notes, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                contact_id,
                district_id,
                blank_to_none(first_name),
                blank_to_none(last_name),
                blank_to_none(title),
                _normalize_email(email),
                blank_to_none(phone),
                RecipientStatus.NOT_CONTACTED.value,
                None,
                notes,
                now,
                now,
            ),
        )
    return contact_id


def list_leads(
    store: SqliteStore, tenant: str, status: str | None = None
) -> list[dict[str, str]]:
    params: list[str] = [tenant]
    where = "WHERE leads.tenant = ?"
    if status:
        where += " AND leads.status = ?"
        params.append(status)
    rows = store.fetch_all(
        "SELECT leads.lead_id, leads.first_name, leads.last_name, leads.email, leads.company, "
        "leads.status, campaigns.name AS campaign_name "
        "FROM leads LEFT JOIN campaigns ON leads.campaign_id = campaigns.campaign_id "
        f"{where} ORDER BY leads.updated_at DESC",
        params,
    )
    return [dict(row) for row in rows]


def list_district_contacts(
    store: SqliteStore, tenant: str, district_id: str | None = None
) -> list[dict[str, str]]:
    params: list[str] = [tenant]
    where = "WHERE districts.tenant = ?"
    if district_id:
        where += " AND districts.district_id = ?"
        params.append(district_id)
    rows = store.fetch_all(
        "SELECT district_contacts.district_contact_id, districts.name AS district_name, "
        "district_contacts.first_name, district_contacts.last_name, district_contacts.title, "
        "district_contacts.email, district_contacts.status "
        "FROM district_contacts JOIN districts ON district_contacts.district_id = districts.district_id "
        f"{where} ORDER BY districts.name ASC, district_contacts.last_name ASC",
        params,
    )
    return [dict(row) for row in rows]


def contacts_for_districts(
    store: SqliteStore, district_ids: Iterable[str]
) -> list[DistrictContactRecipient]:
    ids = list(district_ids)
    if not ids:
        return []
    placeholders = ", ".join("?" for _ in ids)
    rows = store.fetch_all(
        "SELECT district_contact_id FROM district_contacts "
        f"WHERE district_id IN ({placeholders}) ORDER BY created_at ASC",
        ids,
    )
    return [DistrictContactRecipient(row["district_contact_id"]) for row in rows]


def resolve_recipient(store: SqliteStore, record_id: str) -> Recipient:
    lead = store.fetch_one("SELECT lead_id FROM leads WHERE lead_id = ?", (record_id,))
    if lead:
        return LeadRecipient(lead["lead_id"])
    contact = store.fetch_one(
        "SELECT district_contact_id FROM district_contacts WHERE district_contact_id = ?",
        (record_id,),
    )
    if contact:
        return DistrictContactRecipient(contact["district_contact_id"])
    raise RecipientError(f"Recipient not found in leads or district_contacts: {record_id}")


def load_recipients(
    store: SqliteStore, recipients: Sequence[Recipient]
) -> list[EnrollmentCandidate]:
    """Identity, personalization and channel presence for each recipient.

    District contacts are personalized with their district's name as the
    company and the district's city.
    """
    candidates: list[EnrollmentCandidate] = []
    with store.session() as session:
        for recipient in recipients:
            if isinstance(recipient, LeadRecipient):
                row = session.fetch_one(
                    "SELECT tenant, first_name, last_name, email, phone, city, company "
                    "FROM leads WHERE lead_id = ?",
                    (recipient.lead_id,),
                )
                missing = recipient.lead_id
            else:
                row = session.fetch_one(
                    "SELECT districts.tenant, district_contacts.first_name, district_contacts.last_name, "
                    "district_contacts.email, district_contacts.phone, districts.city, "
                    "districts.name AS company "
                    "FROM district_contacts JOIN districts "
                    "ON district_contacts.district_id = districts.district_id "
                    "WHERE district_contacts.district_contact_id = ?",
                    (recipient.district_contact_id,),
                )
                missing = recipient.district_contact_id
            if row is None:
                raise RecipientError(f"Recipient not found: {missing}")
            candidates.append(
                EnrollmentCandidate(
                    recipient=recipient,
                    tenant=row["tenant"],
                    personalization=Personalization(
                        first_name=row["first_name"],
                        last_name=row["last_name"],
                        city=row["city"],
                        company=row["company"],
                    ),
                    has_email=bool(row["email"] and row["email"].strip()),
                    has_phone=bool(row["phone"] and row["phone"].strip()),
                )
            )
    return candidates


def mark_enrolled(
    session: SqliteSession, recipient: Recipient, campaign_id: str, now: str
) -> None:
    if isinstance(recipient, LeadRecipient):
        table, id_field, record_id = "leads", "lead_id", recipient.lead_id
    else:
        table, id_field, record_id = (
            "district_contacts",
            "district_contact_id",
            recipient.district_contact_id,
        )
    session.execute(
        f"UPDATE {table} SET campaign_id = ?, status = ?, updated_at = ? WHERE {id_field} = ?",
        (campaign_id, RecipientStatus.ACTIVELY_CONTACTING.value, now, record_id),
    )


def existing_emails(store: SqliteStore, tenant: str) -> set[str]:
    rows = store.fetch_all(
        "SELECT email FROM leads WHERE tenant = ? AND email IS NOT NULL", (tenant,)
    )
    return {row["email"].lower() for row in rows}


def _normalize_email(email: str | None) -> str | None:
    email = blank_to_none(email)
    return email.lower() if email else None
