from __future__ import annotations

import json
import shutil
from pathlib import Path
from typing import Annotated

import typer

from outreach import __version__
from outreach.config import (
    WorkspaceConfig,
    WorkspaceError,
    ensure_workspaces_dir,
    load_workspace,
    set_current_workspace,
    workspace_config_path,
    write_workspace_config,
)
from outreach.domain import rules
from outreach.domain.business_days import get_next_batch_start_date
from outreach.domain.models import DistrictContactRecipient, LeadRecipient, Recipient
from outreach.domain.rules import ValidationError
from outreach.domain.schedule import schedule_touchpoints_for_lead
from outreach.domain.stages import QueueKind
from outreach.services import (
    campaigns,
    enrollment,
    exports,
    imports,
    recipients,
    sequences,
    touchpoints,
)
from outreach.services.campaigns import CampaignError
from outreach.services.enrollment import EnrollmentError
from outreach.services.events import EVENTS_FILENAME, EventLogger, read_events
from outreach.services.imports import CsvImportError
from outreach.services.recipients import RecipientError
from outreach.services.sequences import SequenceError
from outreach.services.touchpoints import TouchpointError
from outreach.services.utils import parse_contact, split_name, today_iso
from outreach.store.sqlite import SqliteStore

app = typer.Typer(help="Outreach CLI")
workspace_app = typer.Typer(help="Workspace management")
schema_app = typer.Typer(help="Schema operations")
sequence_app = typer.Typer(help="Outreach sequences")
campaign_app = typer.Typer(help="Campaigns and enrollment")
lead_app = typer.Typer(help="Lead operations")
district_app = typer.Typer(help="Districts and district contacts")
touchpoint_app = typer.Typer(help="Touchpoints")
export_app = typer.Typer(help="Exports")

app.add_typer(workspace_app, name="workspace")
app.add_typer(schema_app, name="schema")
app.add_typer(sequence_app, name="sequence")
app.add_typer(campaign_app, name="campaign")
app.add_typer(lead_app, name="lead")
app.add_typer(district_app, name="district")
app.add_typer(touchpoint_app, name="touchpoint")
app.add_typer(export_app, name="export")

SCHEMA_PATH = Path("resources/schema/canonical.yaml")

TenantOption = Annotated[
    str | None, typer.Option("--tenant", help="Tenant (company); defaults to the workspace tenant.")
]
EventsOption = Annotated[
    bool, typer.Option("--events/--no-events", help="Write events to the workspace log.")
]

DOMAIN_ERRORS = (
    ValidationError,
    SequenceError,
    CampaignError,
    RecipientError,
    TouchpointError,
    EnrollmentError,
    CsvImportError,
)


@app.callback()
def version_callback(version: bool = typer.Option(False, "--version", help="Show version and exit.")):
    if version:
        typer.echo(__version__)
        raise typer.Exit()


@app.command("init")
def init() -> None:
    """Initialize directories for workspaces and outputs."""
    ensure_workspaces_dir()
    Path("data").mkdir(exist_ok=True)
    Path("exports").mkdir(exist_ok=True)
    typer.echo("Initialized outreach directories.")


@workspace_app.command("add")
def workspace_add(
    name: str = typer.Argument(...),
    tenant: str | None = typer.Option(None, "--tenant", help="Default tenant for this workspace."),
    use: bool = typer.Option(True, "--use/--no-use", help="Set as current workspace."),
    force: bool = typer.Option(
        False, "--force", help="Overwrite existing workspace config if it exists."
    ),
) -> None:
    config_path = workspace_config_path(name)
    if config_path.exists() and not force:
        raise typer.BadParameter(
            f"Workspace already exists: {config_path}. Use --force to overwrite."
        )
    config_path = write_workspace_config(name, tenant)
    if use:
        set_current_workspace(name)
    typer.echo(f"Workspace created: {config_path}")


@workspace_app.command("use")
def workspace_use(name: str = typer.Argument(...)) -> None:
    if not workspace_config_path(name).exists():
        raise typer.BadParameter(f"Workspace config not found: {workspace_config_path(name)}")
    set_current_workspace(name)
    typer.echo(f"Active workspace: {name}")


@schema_app.command("apply")
def schema_apply(
    schema: Path = typer.Option(SCHEMA_PATH, "--schema", help="Canonical schema YAML."),
) -> None:
    ws = _load_workspace()
    store = SqliteStore(ws.store.sqlite_path)
    store.apply_schema(schema)
    typer.echo("Applied schema to local SQLite.")


@sequence_app.command("create")
def sequence_create(
    name: str = typer.Argument(...),
    description: str | None = typer.Option(None, "--description"),
    tenant: TenantOption = None,
) -> None:
    ws = _load_workspace()
    store = SqliteStore(ws.store.sqlite_path)
    try:
        sequence_id = sequences.create_sequence(store, _tenant(ws, tenant), name, description)
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    typer.echo(f"Created sequence: {sequence_id}")


@sequence_app.command("step")
def sequence_step(
    sequence_id: str = typer.Argument(...),
    order: int = typer.Option(..., "--order", help="1-based position in the sequence."),
    step_type: str = typer.Option(..., "--type", help="email, call or linkedin_message"),
    offset: int = typer.Option(0, "--offset", help="Business days from campaign start."),
    after: int | None = typer.Option(
        None, "--after", help="Business days after the previous step (ignored on the first step)."
    ),
    name: str | None = typer.Option(None, "--name", help="Subject template."),
    content: str | None = typer.Option(None, "--content", help="Content template or link."),
) -> None:
    ws = _load_workspace()
    store = SqliteStore(ws.store.sqlite_path)
    try:
        step_id = sequences.add_step(
            store,
            sequence_id,
            step_order=order,
            type=step_type,
            day_offset=offset,
            days_after_previous=after,
            name=name,
            content_link=content,
        )
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    typer.echo(f"Added step: {step_id}")


@sequence_app.command("show")
def sequence_show(
    sequence_id: str = typer.Argument(...),
    start: str | None = typer.Option(
        None, "--start", help="Preview dates from this campaign start (YYYY-MM-DD)."
    ),
) -> None:
    ws = _load_workspace()
    store = SqliteStore(ws.store.sqlite_path)
    try:
        sequence = sequences.load_sequence(store, sequence_id)
        start_date = rules.parse_date(start, "start")
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    typer.echo(f"{sequence.name} ({len(sequence.steps)} steps)")
    preview = []
    if start_date is not None:
        preview = schedule_touchpoints_for_lead(
            LeadRecipient("preview"), start_date, sequence.steps
        )
    for index, step in enumerate(sequence.steps):
        when = f"+{step.day_offset}d from start"
        if index > 0 and step.days_after_previous is not None:
            when = f"+{step.days_after_previous}d after previous"
        line = f"{step.step_order} | {step.type.value} | {when} | {step.name or ''}"
        if preview:
            line += f" | {preview[index].scheduled_at.date().isoformat()}"
        typer.echo(line)


@sequence_app.command("list")
def sequence_list(tenant: TenantOption = None) -> None:
    ws = _load_workspace()
    store = SqliteStore(ws.store.sqlite_path)
    for row in sequences.list_sequences(store, _tenant(ws, tenant)):
        typer.echo(f"{row['sequence_id']} | {row['name']} | {row['step_count']} steps")


@campaign_app.command("create")
def campaign_create(
    name: str = typer.Argument(...),
    sequence: str | None = typer.Option(None, "--sequence", help="Outreach sequence ID."),
    start: str | None = typer.Option(None, "--start"),
    end: str | None = typer.Option(None, "--end"),
    description: str | None = typer.Option(None, "--description"),
    tenant: TenantOption = None,
) -> None:
    ws = _load_workspace()
    store = SqliteStore(ws.store.sqlite_path)
    try:
        campaign_id = campaigns.create_campaign(
            store,
            _tenant(ws, tenant),
            name,
            sequence_id=sequence,
            start_date=rules.parse_date(start, "start"),
            end_date=rules.parse_date(end, "end"),
            description=description,
        )
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    typer.echo(f"Created campaign: {campaign_id}")


@campaign_app.command("list")
def campaign_list(tenant: TenantOption = None) -> None:
    ws = _load_workspace()
    store = SqliteStore(ws.store.sqlite_path)
    for row in campaigns.list_campaigns(store, _tenant(ws, tenant)):
        typer.echo(
            f"{row['campaign_id']} | {row['name']} | {row['start_date']} | {row['sequence_name']}"
        )


@campaign_app.command("enroll")
def campaign_enroll(
    campaign_id: str = typer.Argument(...),
    lead: Annotated[list[str] | None, typer.Option("--lead", help="Lead ID to enroll.")] = None,
    contact: Annotated[
        list[str] | None, typer.Option("--contact", help="District contact ID to enroll.")
    ] = None,
    district: Annotated[
        list[str] | None, typer.Option("--district", help="Enroll every contact of this district.")
    ] = None,
    start: str | None = typer.Option(None, "--start", help="Anchor date (YYYY-MM-DD)."),
    chunk_size: int | None = typer.Option(None, "--chunk-size", min=1),
    events: EventsOption = True,
) -> None:
    """Schedule the campaign's sequence for the given recipients."""
    ws = _load_workspace()
    store = SqliteStore(ws.store.sqlite_path)
    targets: list[Recipient] = [LeadRecipient(lead_id) for lead_id in lead or []]
    targets.extend(DistrictContactRecipient(contact_id) for contact_id in contact or [])
    targets.extend(recipients.contacts_for_districts(store, district or []))
    if not targets:
        raise typer.BadParameter("Provide at least one --lead, --contact or --district.")
    try:
        result = enrollment.enroll_recipients(
            store,
            campaign_id,
            targets,
            start_date=rules.parse_date(start, "start"),
            chunk_size=chunk_size or ws.scheduling.insert_chunk_size,
            cutoff_hour=ws.scheduling.batch_cutoff_hour,
            events=_event_logger(ws, enabled=events),
        )
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))

    typer.echo(f"Start date: {result.start_date.isoformat()}")
    typer.echo(f"Enrolled recipients: {result.enrolled}")
    if result.skipped:
        typer.echo(f"Skipped (other tenant): {', '.join(result.skipped)}")
    if result.duplicates:
        typer.echo(f"Ignored repeated recipients: {', '.join(result.duplicates)}")
    if result.already_enrolled:
        typer.echo(f"Already enrolled: {', '.join(result.already_enrolled)}")
    typer.echo(
        f"Touchpoints: generated={result.generated} persisted={result.persisted} "
        f"already_stored={result.already_stored} dropped_no_channel={result.filtered}"
    )
    for failure in result.failed_chunks:
        typer.echo(f"Chunk {failure.index} ({failure.size} records) failed: {failure.error}", err=True)
    if result.discrepancy:
        _exit_with_error(f"{result.discrepancy} touchpoints were generated but not persisted.")


@lead_app.command("add")
def lead_add(
    contact: str = typer.Argument(..., help='Name and optional email: "Jane Doe <jane@acme.com>"'),
    phone: str | None = typer.Option(None, "--phone"),
    city: str | None = typer.Option(None, "--city"),
    state: str | None = typer.Option(None, "--state"),
    company: str | None = typer.Option(None, "--company"),
    linkedin: str | None = typer.Option(None, "--linkedin"),
    notes: str | None = typer.Option(None, "--notes"),
    tenant: TenantOption = None,
) -> None:
    ws = _load_workspace()
    store = SqliteStore(ws.store.sqlite_path)
    name, email = parse_contact(contact)
    first_name, last_name = split_name(name)
    try:
        lead_id = recipients.add_lead(
            store,
            _tenant(ws, tenant),
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone=phone,
            city=city,
            state=state,
            company=company,
            linkedin_url=linkedin,
            notes=notes,
        )
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    typer.echo(f"Created lead: {lead_id}")


@lead_app.command("list")
def lead_list(
    status: str | None = typer.Option(None, "--status"),
    tenant: TenantOption = None,
) -> None:
    ws = _load_workspace()
    store = SqliteStore(ws.store.sqlite_path)
    for row in recipients.list_leads(store, _tenant(ws, tenant), status):
        typer.echo(
            f"{row['lead_id']} | {row['first_name'] or ''} {row['last_name'] or ''} | "
            f"{row['email'] or ''} | {row['status']} | {row['campaign_name'] or ''}"
        )


@lead_app.command("import")
def lead_import(
    path: Path = typer.Argument(..., help="CSV export with First Name, Last Name and Email columns."),
    tenant: TenantOption = None,
) -> None:
    ws = _load_workspace()
    store = SqliteStore(ws.store.sqlite_path)
    try:
        result = imports.import_leads_csv(store, _tenant(ws, tenant), path)
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    typer.echo(
        f"Imported {len(result.created)} leads; "
        f"{len(result.duplicates)} duplicates; {len(result.invalid)} invalid rows."
    )
    for row_error in result.invalid:
        typer.echo(f"Row {row_error.row}: {'; '.join(row_error.errors)}", err=True)


@district_app.command("add")
def district_add(
    name: str = typer.Argument(...),
    city: str | None = typer.Option(None, "--city"),
    state: str | None = typer.Option(None, "--state"),
    county: str | None = typer.Option(None, "--county"),
    tenant: TenantOption = None,
) -> None:
    ws = _load_workspace()
    store = SqliteStore(ws.store.sqlite_path)
    try:
        district_id = recipients.add_district(
            store, _tenant(ws, tenant), name, city, state, county=county
        )
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    typer.echo(f"Created district: {district_id}")


@district_app.command("import")
def district_import(
    path: Path = typer.Argument(
        ..., help="CSV with School District Name, County, First Name, Last Name and Title columns."
    ),
    tenant: TenantOption = None,
) -> None:
    ws = _load_workspace()
    store = SqliteStore(ws.store.sqlite_path)
    try:
        result = imports.import_districts_csv(store, _tenant(ws, tenant), path)
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    typer.echo(
        f"Districts: {len(result.districts_created)} created; "
        f"{len(result.districts_existing)} already on file."
    )
    typer.echo(
        f"Contacts: {len(result.contacts_added)} added; {len(result.contacts_updated)} updated; "
        f"{len(result.contacts_skipped)} skipped; {len(result.invalid)} invalid rows."
    )
    for row in result.contacts_skipped:
        typer.echo(f"Row {row}: email belongs to a contact in another district", err=True)
    for row_error in result.invalid:
        typer.echo(f"Row {row_error.row}: {'; '.join(row_error.errors)}", err=True)


@district_app.command("contact")
def district_contact(
    district_id: str = typer.Argument(...),
    contact: str = typer.Argument(..., help='Name and optional email: "Jane Doe <jane@k12.org>"'),
    title: str | None = typer.Option(None, "--title"),
    phone: str | None = typer.Option(None, "--phone"),
    notes: str | None = typer.Option(None, "--notes"),
) -> None:
    ws = _load_workspace()
    store = SqliteStore(ws.store.sqlite_path)
    name, email = parse_contact(contact)
    first_name, last_name = split_name(name)
    try:
        contact_id = recipients.add_district_contact(
            store,
            district_id,
            first_name=first_name,
            last_name=last_name,
            title=title,
            email=email,
            phone=phone,
            notes=notes,
        )
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    typer.echo(f"Created district contact: {contact_id}")


@district_app.command("contacts")
def district_contacts(
    district_id: str | None = typer.Option(None, "--district"),
    tenant: TenantOption = None,
) -> None:
    ws = _load_workspace()
    store = SqliteStore(ws.store.sqlite_path)
    for row in recipients.list_district_contacts(store, _tenant(ws, tenant), district_id):
        typer.echo(
            f"{row['district_contact_id']} | {row['district_name']} | "
            f"{row['first_name'] or ''} {row['last_name'] or ''} | {row['email'] or ''} | {row['status']}"
        )


@app.command("queue")
def queue(
    kind: str = typer.Option(QueueKind.ALL.value, "--kind", help="today, overdue or all"),
    on: str | None = typer.Option(None, "--date", help="Treat this date as today (YYYY-MM-DD)."),
    campaign: str | None = typer.Option(None, "--campaign"),
    out: Path | None = typer.Option(None, "--out", help="Also write the queue to .csv or .xlsx."),
    tenant: TenantOption = None,
) -> None:
    """Open touchpoints due today and/or overdue."""
    ws = _load_workspace()
    store = SqliteStore(ws.store.sqlite_path)
    tenant = _tenant(ws, tenant)
    try:
        day = rules.parse_date(on, "date")
        items = touchpoints.daily_queue(store, tenant, kind=kind, on=day, campaign_id=campaign)
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    if out is not None:
        exports.export_queue(items, out)
        typer.echo(f"Wrote {len(items)} touchpoints to {out}")
    if not items:
        typer.echo("No touchpoints due.")
        return
    for item in items:
        tp = item.touchpoint
        typer.echo(
            f"{tp.touchpoint_id} | {tp.scheduled_at.astimezone().date().isoformat()} | {tp.type} | "
            f"{item.recipient_name} | {item.company or ''} | {tp.subject or ''}"
        )
    if kind == QueueKind.ALL.value and not campaign:
        counts = touchpoints.queue_counts(store, tenant, on=day)
        typer.echo(f"Due today: {counts['today']} | Overdue: {counts['overdue']}")


@touchpoint_app.command("complete")
def touchpoint_complete(
    touchpoint_id: str = typer.Argument(...),
    outcome: str = typer.Option(..., "--outcome"),
    note: str | None = typer.Option(None, "--note"),
    at: str | None = typer.Option(None, "--at", help="Completion time (ISO 8601)."),
    events: EventsOption = True,
) -> None:
    ws = _load_workspace()
    store = SqliteStore(ws.store.sqlite_path)
    try:
        touchpoints.complete_touchpoint(
            store,
            touchpoint_id,
            outcome,
            completed_at=rules.parse_datetime(at, "at"),
            notes=note,
            events=_event_logger(ws, enabled=events),
        )
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    typer.echo(f"Completed touchpoint: {touchpoint_id}")


@touchpoint_app.command("list")
def touchpoint_list(record_id: str = typer.Argument(..., help="Lead or district contact ID.")) -> None:
    ws = _load_workspace()
    store = SqliteStore(ws.store.sqlite_path)
    try:
        recipient = recipients.resolve_recipient(store, record_id)
    except DOMAIN_ERRORS as exc:
        _exit_with_error(str(exc))
    for tp in touchpoints.list_touchpoints(store, recipient):
        scheduled = tp.scheduled_at.date().isoformat() if tp.scheduled_at else ""
        typer.echo(
            f"{tp.touchpoint_id} | {scheduled} | {tp.type} | {tp.outcome or 'scheduled'} | {tp.subject or ''}"
        )


@export_app.command("excel")
def export_excel(out: str = typer.Option(..., "--out")) -> None:
    ws = _load_workspace()
    store = SqliteStore(ws.store.sqlite_path)
    exports.export_excel(store, Path(out))
    typer.echo(f"Exported Excel to {out}")


@export_app.command("csv")
def export_csv(out: str = typer.Option(..., "--out")) -> None:
    ws = _load_workspace()
    store = SqliteStore(ws.store.sqlite_path)
    exports.export_csv_tables(store, Path(out))
    typer.echo(f"Exported CSV tables to {out}")


@app.command("snapshot")
def snapshot() -> None:
    ws = _load_workspace()
    store = SqliteStore(ws.store.sqlite_path)
    snapshot_dir = Path("data") / "snapshots" / today_iso()
    snapshot_dir.mkdir(parents=True, exist_ok=True)
    if ws.store.sqlite_path.exists():
        shutil.copy2(ws.store.sqlite_path, snapshot_dir / "local.sqlite")
    exports.export_csv_tables(store, snapshot_dir)
    typer.echo(f"Snapshot created at {snapshot_dir}")


@app.command("events")
def events_show(
    event_type: str | None = typer.Option(None, "--type", help="Only this event type."),
    limit: int = typer.Option(20, "--limit", min=1),
) -> None:
    """Show the most recent workspace events."""
    ws = _load_workspace()
    records = list(read_events(ws.path / EVENTS_FILENAME, event_type))
    for record in records[-limit:]:
        typer.echo(
            f"{record['ts']} | {record['event_type']} | {record['entity_type']} | "
            f"{record['entity_id']} | {json.dumps(record.get('details', {}), sort_keys=True)}"
        )


@app.command("batch-date")
def batch_date() -> None:
    """Show the date a new cohort enrolled now would start on."""
    ws = _load_workspace()
    anchor = get_next_batch_start_date(cutoff_hour=ws.scheduling.batch_cutoff_hour)
    typer.echo(anchor.date().isoformat())


def _load_workspace() -> WorkspaceConfig:
    try:
        return load_workspace()
    except WorkspaceError as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1) from exc


def _tenant(ws: WorkspaceConfig, tenant: str | None) -> str:
    resolved = tenant or ws.tenant
    if not resolved:
        raise typer.BadParameter("No tenant given and the workspace has no default tenant.")
    return resolved


def _exit_with_error(message: str) -> None:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(code=1)


def _event_logger(ws: WorkspaceConfig, enabled: bool) -> EventLogger:
    return EventLogger(path=ws.path / EVENTS_FILENAME, workspace=ws.name, enabled=enabled)


if __name__ == "__main__":
    app()
