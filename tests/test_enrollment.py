import json
from datetime import UTC, date, datetime
from pathlib import Path

import pytest

from outreach.domain.models import DistrictContactRecipient, LeadRecipient
from outreach.services import campaigns, enrollment, recipients, sequences, touchpoints
from outreach.services.events import EventLogger
from outreach.store.sqlite import SqliteStore


def _store(tmp_path: Path) -> SqliteStore:
    db_path = tmp_path / "test.sqlite"
    store = SqliteStore(db_path)
    schema_path = (
        Path(__file__).resolve().parents[1] / "resources" / "schema" / "canonical.yaml"
    )
    store.apply_schema(schema_path)
    return store


def _campaign(store: SqliteStore, start_date: date | None = date(2024, 1, 5)) -> str:
    sequence_id = sequences.create_sequence(store, "acme", "Districts Q1")
    sequences.add_step(
        store, sequence_id, step_order=1, type="email", name="Hi {{first_name}} from {{city}}"
    )
    sequences.add_step(
        store, sequence_id, step_order=2, type="call", days_after_previous=1, name="Call {{company}}"
    )
    sequences.add_step(
        store, sequence_id, step_order=3, type="linkedin_message", days_after_previous=2
    )
    return campaigns.create_campaign(
        store, "acme", "Spring push", sequence_id=sequence_id, start_date=start_date
    )


def _scheduled_days(store: SqliteStore, recipient) -> list[tuple[str, date]]:
    return [
        (tp.type, tp.scheduled_at.date())
        for tp in touchpoints.list_touchpoints(store, recipient)
    ]


def test_enroll_lead_schedules_sequence(tmp_path: Path) -> None:
    store = _store(tmp_path)
    campaign_id = _campaign(store)
    lead_id = recipients.add_lead(
        store, "acme", "Ada", "Lovelace", email="ada@example.com", phone="555-123-4567",
        city="Austin", company="Engines Inc",
    )

    result = enrollment.enroll_recipients(store, campaign_id, [LeadRecipient(lead_id)])

    assert result.start_date == date(2024, 1, 5)
    assert result.enrolled == 1
    assert result.generated == 3
    assert result.persisted == 3
    assert result.discrepancy == 0
    assert _scheduled_days(store, LeadRecipient(lead_id)) == [
        ("email", date(2024, 1, 5)),
        ("call", date(2024, 1, 8)),
        ("linkedin_message", date(2024, 1, 10)),
    ]
    stored = touchpoints.list_touchpoints(store, LeadRecipient(lead_id))
    assert stored[0].subject == "Hi Ada from Austin"
    assert stored[0].scheduled_at == datetime(2024, 1, 5, 9, tzinfo=UTC)
    assert stored[1].subject == "Call Engines Inc"
    assert {tp.campaign_id for tp in stored} == {campaign_id}

    lead = store.fetch_one("SELECT status, campaign_id FROM leads WHERE lead_id = ?", (lead_id,))
    assert lead["status"] == "actively_contacting"
    assert lead["campaign_id"] == campaign_id


def test_enroll_drops_channels_without_address(tmp_path: Path) -> None:
    store = _store(tmp_path)
    campaign_id = _campaign(store)
    lead_id = recipients.add_lead(store, "acme", "Ada", "Lovelace", email="ada@example.com")

    result = enrollment.enroll_recipients(store, campaign_id, [LeadRecipient(lead_id)])

    assert result.filtered == 1
    assert result.persisted == 2
    # The dropped call still anchors the step chained after it.
    assert _scheduled_days(store, LeadRecipient(lead_id)) == [
        ("email", date(2024, 1, 5)),
        ("linkedin_message", date(2024, 1, 10)),
    ]


def test_enroll_district_contact_uses_district_details(tmp_path: Path) -> None:
    store = _store(tmp_path)
    campaign_id = _campaign(store)
    district_id = recipients.add_district(store, "acme", "Springfield USD", city="Springfield")
    contact_id = recipients.add_district_contact(
        store, district_id, "Seymour", "Skinner", email="skinner@springfield.k12.us",
        phone="(555) 010-2000",
    )

    targets = recipients.contacts_for_districts(store, [district_id])
    result = enrollment.enroll_recipients(store, campaign_id, targets)

    assert result.persisted == 3
    stored = touchpoints.list_touchpoints(store, DistrictContactRecipient(contact_id))
    assert stored[0].lead_id is None
    assert stored[0].district_contact_id == contact_id
    assert stored[0].subject == "Hi Seymour from Springfield"
    assert stored[1].subject == "Call Springfield USD"
    contact = store.fetch_one(
        "SELECT status FROM district_contacts WHERE district_contact_id = ?", (contact_id,)
    )
    assert contact["status"] == "actively_contacting"


def test_enroll_skips_other_tenants(tmp_path: Path) -> None:
    store = _store(tmp_path)
    campaign_id = _campaign(store)
    ours = recipients.add_lead(store, "acme", "Ada", "Lovelace", email="ada@example.com")
    theirs = recipients.add_lead(store, "globex", "Hank", "Scorpio", email="hank@globex.com")

    result = enrollment.enroll_recipients(
        store, campaign_id, [LeadRecipient(ours), LeadRecipient(theirs)]
    )

    assert result.enrolled == 1
    assert result.skipped == [theirs]
    assert touchpoints.list_touchpoints(store, LeadRecipient(theirs)) == []
    row = store.fetch_one("SELECT status, campaign_id FROM leads WHERE lead_id = ?", (theirs,))
    assert row["status"] == "not_contacted"
    assert row["campaign_id"] is None


def test_explicit_start_overrides_campaign_start(tmp_path: Path) -> None:
    store = _store(tmp_path)
    campaign_id = _campaign(store)
    lead_id = recipients.add_lead(store, "acme", "Ada", "Lovelace", email="ada@example.com")

    result = enrollment.enroll_recipients(
        store, campaign_id, [LeadRecipient(lead_id)], start_date=date(2024, 2, 1)
    )

    assert result.start_date == date(2024, 2, 1)
    assert _scheduled_days(store, LeadRecipient(lead_id))[0] == ("email", date(2024, 2, 1))


def test_start_falls_back_to_next_batch_date(tmp_path: Path) -> None:
    store = _store(tmp_path)
    campaign_id = _campaign(store, start_date=None)
    lead_id = recipients.add_lead(store, "acme", "Ada", "Lovelace", email="ada@example.com")

    result = enrollment.enroll_recipients(
        store, campaign_id, [LeadRecipient(lead_id)], now=datetime(2024, 1, 5, 18, 0)
    )

    assert result.start_date == date(2024, 1, 8)


def test_resolve_start_date_precedence() -> None:
    now = datetime(2024, 1, 3, 9, 0)
    assert enrollment.resolve_start_date(date(2024, 1, 10), date(2024, 1, 4), now) == date(2024, 1, 4)
    assert enrollment.resolve_start_date(date(2024, 1, 10), None, now) == date(2024, 1, 10)
    assert enrollment.resolve_start_date(None, None, now) == date(2024, 1, 3)
    assert enrollment.resolve_start_date(None, None, now, cutoff_hour=8) == date(2024, 1, 4)


def test_enroll_requires_sequence(tmp_path: Path) -> None:
    store = _store(tmp_path)
    campaign_id = campaigns.create_campaign(store, "acme", "No sequence")
    lead_id = recipients.add_lead(store, "acme", "Ada", "Lovelace", email="ada@example.com")

    with pytest.raises(enrollment.EnrollmentError):
        enrollment.enroll_recipients(store, campaign_id, [LeadRecipient(lead_id)])


def test_enroll_unknown_recipient(tmp_path: Path) -> None:
    store = _store(tmp_path)
    campaign_id = _campaign(store)

    with pytest.raises(recipients.RecipientError):
        enrollment.enroll_recipients(store, campaign_id, [LeadRecipient("missing")])


def test_enroll_writes_event(tmp_path: Path) -> None:
    store = _store(tmp_path)
    campaign_id = _campaign(store)
    lead_id = recipients.add_lead(store, "acme", "Ada", "Lovelace", email="ada@example.com")
    events_path = tmp_path / "events.ndjson"

    enrollment.enroll_recipients(
        store,
        campaign_id,
        [LeadRecipient(lead_id)],
        events=EventLogger(events_path, workspace="demo"),
    )

    lines = events_path.read_text(encoding="utf-8").splitlines()
    payload = json.loads(lines[-1])
    assert payload["event_type"] == "enrollment"
    assert payload["entity_id"] == campaign_id
    assert payload["details"]["persisted"] == 2
    assert payload["details"]["start_date"] == "2024-01-05"


def test_recipient_named_twice_is_enrolled_once(tmp_path: Path) -> None:
    store = _store(tmp_path)
    campaign_id = _campaign(store)
    district_id = recipients.add_district(store, "acme", "Springfield USD", city="Springfield")
    contact_id = recipients.add_district_contact(
        store, district_id, "Seymour", "Skinner", email="skinner@springfield.k12.us",
        phone="(555) 010-2000",
    )
    targets = [DistrictContactRecipient(contact_id)]
    targets.extend(recipients.contacts_for_districts(store, [district_id]))

    result = enrollment.enroll_recipients(store, campaign_id, targets)

    assert result.enrolled == 1
    assert result.duplicates == [contact_id]
    assert result.persisted == 3
    assert len(touchpoints.list_touchpoints(store, DistrictContactRecipient(contact_id))) == 3


def test_enrolling_again_does_not_duplicate_schedule(tmp_path: Path) -> None:
    store = _store(tmp_path)
    campaign_id = _campaign(store)
    lead_id = recipients.add_lead(
        store, "acme", "Ada", "Lovelace", email="ada@example.com", phone="555-123-4567"
    )
    enrollment.enroll_recipients(store, campaign_id, [LeadRecipient(lead_id)])

    again = enrollment.enroll_recipients(store, campaign_id, [LeadRecipient(lead_id)])

    assert again.already_enrolled == [lead_id]
    assert again.enrolled == 0
    assert again.generated == 0
    assert again.discrepancy == 0
    assert len(touchpoints.list_touchpoints(store, LeadRecipient(lead_id))) == 3


def test_enrolling_again_with_new_start_leaves_schedule_alone(tmp_path: Path) -> None:
    store = _store(tmp_path)
    campaign_id = _campaign(store)
    lead_id = recipients.add_lead(store, "acme", "Ada", "Lovelace", email="ada@example.com")
    enrollment.enroll_recipients(store, campaign_id, [LeadRecipient(lead_id)])

    again = enrollment.enroll_recipients(
        store, campaign_id, [LeadRecipient(lead_id)], start_date=date(2024, 3, 4)
    )

    assert again.already_enrolled == [lead_id]
    assert [day for _, day in _scheduled_days(store, LeadRecipient(lead_id))] == [
        date(2024, 1, 5),
        date(2024, 1, 10),
    ]


def test_retry_fills_in_missing_touchpoints(tmp_path: Path) -> None:
    store = _store(tmp_path)
    campaign_id = _campaign(store)
    lead_id = recipients.add_lead(
        store, "acme", "Ada", "Lovelace", email="ada@example.com", phone="555-123-4567"
    )
    enrollment.enroll_recipients(store, campaign_id, [LeadRecipient(lead_id)])
    # Leave the store as a run whose second chunk failed would.
    store.execute("DELETE FROM touchpoints WHERE lead_id = ? AND type = 'call'", (lead_id,))

    retry = enrollment.enroll_recipients(store, campaign_id, [LeadRecipient(lead_id)])

    assert retry.already_enrolled == []
    assert retry.generated == 1
    assert retry.persisted == 1
    assert retry.discrepancy == 0
    assert _scheduled_days(store, LeadRecipient(lead_id)) == [
        ("email", date(2024, 1, 5)),
        ("call", date(2024, 1, 8)),
        ("linkedin_message", date(2024, 1, 10)),
    ]
