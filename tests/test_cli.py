import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from outreach import __version__
from outreach.cli import app

SCHEMA_PATH = Path(__file__).resolve().parents[1] / "resources" / "schema" / "canonical.yaml"

runner = CliRunner()


def _invoke(*args: str) -> str:
    result = runner.invoke(app, list(args))
    assert result.exit_code == 0, result.output
    return result.output


def _created_id(output: str) -> str:
    return output.strip().rsplit(": ", 1)[1]


@pytest.fixture()
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    _invoke("workspace", "add", "demo", "--tenant", "acme")
    _invoke("schema", "apply", "--schema", str(SCHEMA_PATH))
    return tmp_path / "workspaces" / "demo"


def test_version() -> None:
    assert _invoke("--version").strip() == __version__


def test_commands_require_workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    result = runner.invoke(app, ["sequence", "list"])
    assert result.exit_code == 1
    assert "No active workspace" in result.output


def test_enroll_queue_complete(workspace: Path) -> None:
    sequence_id = _created_id(_invoke("sequence", "create", "Districts Q1"))
    _invoke("sequence", "step", sequence_id, "--order", "1", "--type", "email", "--name", "Hi {{first_name}}")
    _invoke("sequence", "step", sequence_id, "--order", "2", "--type", "call", "--after", "1")
    shown = _invoke("sequence", "show", sequence_id, "--start", "2024-01-05")
    assert "2 | call | +1d after previous |  | 2024-01-08" in shown

    lead_id = _created_id(_invoke("lead", "add", "Ada Lovelace <ada@example.com>"))
    campaign_id = _created_id(
        _invoke("campaign", "create", "Spring push", "--sequence", sequence_id, "--start", "2024-01-05")
    )

    enrolled = _invoke("campaign", "enroll", campaign_id, "--lead", lead_id)
    assert "Start date: 2024-01-05" in enrolled
    assert "generated=1 persisted=1 already_stored=0 dropped_no_channel=1" in enrolled

    queued = _invoke("queue", "--kind", "today", "--date", "2024-01-05")
    assert "Hi Ada" in queued
    assert "Ada Lovelace" in queued
    touchpoint_id = queued.strip().split(" | ")[0]
    _invoke("queue", "--kind", "today", "--date", "2024-01-05", "--out", "exports/today.csv")
    exported = (workspace.parents[1] / "exports" / "today.csv").read_text(encoding="utf-8")
    assert touchpoint_id in exported

    _invoke("touchpoint", "complete", touchpoint_id, "--outcome", "booked", "--note", "Demo Tuesday")
    assert "No touchpoints due." in _invoke("queue", "--date", "2024-01-05")
    assert "engaged" in _invoke("lead", "list")
    assert "booked" in _invoke("touchpoint", "list", lead_id)

    events = [
        json.loads(line)
        for line in (workspace / "events.ndjson").read_text(encoding="utf-8").splitlines()
    ]
    assert [event["event_type"] for event in events] == ["enrollment", "touchpoint_completed"]
    shown = _invoke("events", "--type", "touchpoint_completed")
    assert touchpoint_id in shown
    assert "\"outcome\": \"booked\"" in shown


def test_enroll_without_sequence_fails(workspace: Path) -> None:
    lead_id = _created_id(_invoke("lead", "add", "Ada Lovelace <ada@example.com>"))
    campaign_id = _created_id(_invoke("campaign", "create", "No sequence"))

    result = runner.invoke(app, ["campaign", "enroll", campaign_id, "--lead", lead_id, "--no-events"])
    assert result.exit_code == 1
    assert "does not have an outreach sequence" in result.output


def test_enroll_requires_targets(workspace: Path) -> None:
    campaign_id = _created_id(_invoke("campaign", "create", "Empty"))
    result = runner.invoke(app, ["campaign", "enroll", campaign_id])
    assert result.exit_code != 0


def test_district_enrollment(workspace: Path) -> None:
    sequence_id = _created_id(_invoke("sequence", "create", "Districts Q1"))
    _invoke("sequence", "step", sequence_id, "--order", "1", "--type", "linkedin_message")
    district_id = _created_id(_invoke("district", "add", "Springfield USD", "--city", "Springfield"))
    _invoke("district", "contact", district_id, "Seymour Skinner", "--title", "Principal")
    campaign_id = _created_id(
        _invoke("campaign", "create", "Districts", "--sequence", sequence_id, "--start", "2024-01-08")
    )

    enrolled = _invoke("campaign", "enroll", campaign_id, "--district", district_id, "--no-events")
    assert "Enrolled recipients: 1" in enrolled
    assert "actively_contacting" in _invoke("district", "contacts")


def test_invalid_lead_reports_error(workspace: Path) -> None:
    result = runner.invoke(app, ["lead", "add", "Ada Lovelace <ada@>"])
    assert result.exit_code == 1
    assert "valid email" in result.output


def test_import_and_export(workspace: Path, tmp_path: Path) -> None:
    csv_path = tmp_path / "leads.csv"
    csv_path.write_text(
        "First Name,Last Name,Email\nAda,Lovelace,ada@example.com\nGrace,,grace@example.com\n",
        encoding="utf-8",
    )
    imported = _invoke("lead", "import", str(csv_path))
    assert "Imported 1 leads; 0 duplicates; 1 invalid rows." in imported

    _invoke("export", "csv", "--out", "exports/csv")
    assert (tmp_path / "exports" / "csv" / "leads.csv").exists()
    _invoke("export", "excel", "--out", "exports/outreach.xlsx")
    assert (tmp_path / "exports" / "outreach.xlsx").exists()


def test_batch_date(workspace: Path) -> None:
    output = _invoke("batch-date").strip()
    assert len(output) == 10
    assert output.count("-") == 2


def test_district_import(workspace: Path, tmp_path: Path) -> None:
    _invoke("district", "add", "Springfield USD", "--county", "Sangamon")
    csv_path = tmp_path / "districts.csv"
    csv_path.write_text(
        "School District Name,County,First Name,Last Name,Title,Email Address,Phone Number\n"
        "Springfield USD,Sangamon,Seymour,Skinner,Principal,skinner@springfield.k12.us,\n"
        "Capital City USD,Capital,Edna,Krabappel,Librarian,,555-123-4567\n"
        "Capital City USD,Capital,Otto,Mann,Driver,,\n",
        encoding="utf-8",
    )

    imported = _invoke("district", "import", str(csv_path))

    assert "Districts: 1 created; 1 already on file." in imported
    assert "Contacts: 2 added; 0 updated; 0 skipped; 1 invalid rows." in imported
    assert "Row 4: Either email or phone number is required" in imported
    contacts = _invoke("district", "contacts")
    assert "Springfield USD | Seymour Skinner" in contacts
    assert "Capital City USD | Edna Krabappel" in contacts
