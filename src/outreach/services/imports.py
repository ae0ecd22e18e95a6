from __future__ import annotations

import csv
from dataclasses import dataclass, field
from pathlib import Path
from uuid import uuid4

from outreach.domain import rules
from outreach.domain.rules import ValidationError
from outreach.domain.stages import RecipientStatus
from outreach.services.recipients import existing_emails, insert_lead
from outreach.services.utils import blank_to_none, utc_now_iso
from outreach.store.sqlite import SqliteStore

COLUMNS = {
    "first_name": "First Name",
    "last_name": "Last Name",
    "email": "Email",
    "phone": "Phone Number",
    "city": "City/State",
    "company": "Company",
    "linkedin_url": "Linkedin URL",
    "notes": "Next Step / Notes",
}


class CsvImportError(RuntimeError):
    pass


@dataclass(frozen=True)
class RowError:
    row: int
    errors: list[str]


@dataclass
class ImportResult:
    created: list[str] = field(default_factory=list)
    duplicates: list[int] = field(default_factory=list)
    invalid: list[RowError] = field(default_factory=list)


def import_leads_csv(store: SqliteStore, tenant: str, path: Path) -> ImportResult:
    """Create leads from a spreadsheet export.

    Rows are numbered as in the file, header included, so the first data
    row is row 2. Duplicate emails, in the store or earlier in the file,
    are reported and skipped.
    """
    rules.require(tenant, "tenant")
    if not path.exists():
        raise CsvImportError(f"CSV file not found: {path}")

    with path.open(newline="", encoding="utf-8-sig") as handle:
        reader = csv.DictReader(handle)
        missing = [
            header for header in (COLUMNS["first_name"], COLUMNS["last_name"], COLUMNS["email"])
            if header not in (reader.fieldnames or [])
        ]
        if missing:
            raise CsvImportError(f"CSV is missing required columns: {', '.join(missing)}")
        rows = list(reader)

    result = ImportResult()
    seen = existing_emails(store, tenant)
    now = utc_now_iso()
    with store.session() as session:
        for index, raw in enumerate(rows, start=2):
            record = {key: blank_to_none(raw.get(header)) for key, header in COLUMNS.items()}
            errors = _validate(record)
            if errors:
                result.invalid.append(RowError(row=index, errors=errors))
                continue
            email = record["email"].lower()
            if email in seen:
                result.duplicates.append(index)
                continue
            seen.add(email)
            lead_id = str(uuid4())
            insert_lead(
                session,
                lead_id=lead_id,
                tenant=tenant,
                now=now,
                first_name=record["first_name"],
                last_name=record["last_name"],
                email=email,
                phone=record["phone"],
                city=city_from_city_state(record["city"]),
                company=record["company"],
                linkedin_url=record["linkedin_url"],
                notes=record["notes"],
            )
            result.created.append(lead_id)
    return result


def city_from_city_state(value: str | None) -> str | None:
    """``"Austin, TX"`` -> ``"Austin"``."""
    if not value:
        return None
    return value.split(",", 1)[0].strip() or None


def _validate(record: dict[str, str | None]) -> list[str]:
    errors: list[str] = []
    if not record["first_name"]:
        errors.append("Missing first name")
    if not record["last_name"]:
        errors.append("Missing last name")
    if not record["email"]:
        errors.append("Missing email address")
    else:
        try:
            rules.validate_email(record["email"])
        except ValidationError:
            errors.append("Invalid email format")
    try:
        rules.validate_phone(record["phone"])
    except ValidationError:
        errors.append("Invalid phone number format")
    return errors


DISTRICT_COLUMNS = {
    "district_name": "School District Name",
    "county": "County",
    "city": "City",
    "state": "State",
    "first_name": "First Name",
    "last_name": "Last Name",
    "title": "Title",
    "email": "Email Address",
    "phone": "Phone Number",
    "notes": "Notes",
}

DISTRICT_REQUIRED = ("district_name", "county", "first_name", "last_name", "title")


@dataclass
class DistrictImportResult:
    districts_created: list[str] = field(default_factory=list)
    districts_existing: list[str] = field(default_factory=list)
    contacts_added: list[str] = field(default_factory=list)
    contacts_updated: list[str] = field(default_factory=list)
    contacts_skipped: list[int] = field(default_factory=list)
    invalid: list[RowError] = field(default_factory=list)


def import_districts_csv(store: SqliteStore, tenant: str, path: Path) -> DistrictImportResult:
    """Create districts and their contacts from a staff directory export.

    Each row is one contact. Districts are matched on name and county,
    case-insensitively, within the tenant. A contact whose email is
    already on file for the same district is updated; one whose email
    belongs to another district is skipped. Contacts without an email are
    matched on first and last name within their district.
    """
    rules.require(tenant, "tenant")
    if not path.exists():
        raise CsvImportError(f"CSV file not found: {path}")

    with path.open(newline="", encoding="utf-8-sig") as handle:
        reader = csv.DictReader(handle)
        missing = [
            DISTRICT_COLUMNS[key]
            for key in DISTRICT_REQUIRED
            if DISTRICT_COLUMNS[key] not in (reader.fieldnames or [])
        ]
        if missing:
            raise CsvImportError(f"CSV is missing required columns: {', '.join(missing)}")
        rows = list(reader)

    result = DistrictImportResult()
    now = utc_now_iso()
    with store.session() as session:
        districts = {
            _district_key(row["name"], row["county"]): row["district_id"]
            for row in session.fetch_all(
                "SELECT district_id, name, county FROM districts WHERE tenant = ?", (tenant,)
            )
        }
        by_email: dict[str, tuple[str, str]] = {}
        by_name: dict[tuple[str, str, str], str] = {}
        for row in session.fetch_all(
            "SELECT dc.district_contact_id, dc.district_id, dc.first_name, dc.last_name, dc.email "
            "FROM district_contacts dc JOIN districts d ON d.district_id = dc.district_id "
            "WHERE d.tenant = ?",
            (tenant,),
        ):
            if row["email"]:
                by_email[row["email"].lower()] = (row["district_contact_id"], row["district_id"])
            by_name[_name_key(row["district_id"], row["first_name"], row["last_name"])] = row[
                "district_contact_id"
            ]

        for index, raw in enumerate(rows, start=2):
            record = {key: blank_to_none(raw.get(header)) for key, header in DISTRICT_COLUMNS.items()}
            errors = _validate_district_row(record)
            if errors:
                result.invalid.append(RowError(row=index, errors=errors))
                continue

            key = _district_key(record["district_name"], record["county"])
            district_id = districts.get(key)
            if district_id is None:
                district_id = str(uuid4())
                session.execute(
                    "INSERT INTO districts (district_id, tenant, name, county, city, state, "
                    "created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        district_id,
                        tenant,
                        record["district_name"],
                        record["county"],
                        record["city"],
                        record["state"],
                        now,
                        now,
                    ),
                )
                districts[key] = district_id
                result.districts_created.append(district_id)
            elif district_id not in result.districts_created + result.districts_existing:
                result.districts_existing.append(district_id)

            email = record["email"].lower() if record["email"] else None
            if email:
                match = by_email.get(email)
                if match and match[1] != district_id:
                    result.contacts_skipped.append(index)
                    continue
                contact_id = match[0] if match else None
            else:
                contact_id = by_name.get(
                    _name_key(district_id, record["first_name"], record["last_name"])
                )

            if contact_id is not None:
                session.execute(
                    "UPDATE district_contacts SET title = ?, phone = COALESCE(?, phone), "
                    "notes = COALESCE(?, notes), updated_at = ? WHERE district_contact_id = ?",
                    (record["title"], record["phone"], record["notes"], now, contact_id),
                )
                if contact_id not in result.contacts_updated:
                    result.contacts_updated.append(contact_id)
                continue

            contact_id = str(uuid4())
            session.execute(
                "INSERT INTO district_contacts (district_contact_id, district_id, first_name, last_name, "
                "title, email, phone, status, campaign_id, notes, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    contact_id,
                    district_id,
                    record["first_name"],
                    record["last_name"],
                    record["title"],
                    email,
                    record["phone"],
                    RecipientStatus.NOT_CONTACTED.value,
                    None,
                    record["notes"],
                    now,
                    now,
                ),
            )
            if email:
                by_email[email] = (contact_id, district_id)
            by_name[_name_key(district_id, record["first_name"], record["last_name"])] = contact_id
            result.contacts_added.append(contact_id)
    return result


def _district_key(name: str, county: str | None) -> tuple[str, str]:
    return name.strip().lower(), (county or "").strip().lower()


def _name_key(district_id: str, first_name: str | None, last_name: str | None) -> tuple[str, str, str]:
    return district_id, (first_name or "").lower(), (last_name or "").lower()


def _validate_district_row(record: dict[str, str | None]) -> list[str]:
    errors: list[str] = []
    if not record["district_name"]:
        errors.append("Missing district name")
    if not record["county"]:
        errors.append("Missing county")
    if not record["first_name"]:
        errors.append("Missing first name")
    if not record["last_name"]:
        errors.append("Missing last name")
    if not record["title"]:
        errors.append("Missing title")
    if not record["email"] and not record["phone"]:
        errors.append("Either email or phone number is required")
    try:
        rules.validate_email(record["email"])
    except ValidationError:
        errors.append("Invalid email format")
    try:
        rules.validate_phone(record["phone"])
    except ValidationError:
        errors.append("Invalid phone number format")
    return errors
