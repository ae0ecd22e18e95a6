from __future__ import annotations

import csv
from collections.abc import Sequence
from pathlib import Path

from openpyxl import Workbook

from outreach.services.touchpoints import QueueItem
from outreach.store.sqlite import SqliteStore

TABLES = [
    "outreach_sequences",
    "outreach_steps",
    "campaigns",
    "leads",
    "districts",
    "district_contacts",
    "touchpoints",
]

QUEUE_HEADERS = [
    "touchpoint_id",
    "scheduled_on",
    "type",
    "recipient",
    "company",
    "campaign",
    "subject",
    "content",
]


def export_excel(store: SqliteStore, out_path: Path) -> None:
    """One worksheet per table, header row first."""
    out_path.parent.mkdir(parents=True, exist_ok=True)
    wb = Workbook()
    wb.remove(wb.active)
    for table in TABLES:
        headers, rows = _table_rows(store, table)
        ws = wb.create_sheet(title=table)
        if headers:
            ws.append(headers)
        for row in rows:
            ws.append(row)
    wb.save(out_path)


def export_csv_tables(store: SqliteStore, out_dir: Path) -> None:
    out_dir.mkdir(parents=True, exist_ok=True)
    for table in TABLES:
        headers, rows = _table_rows(store, table)
        _write_csv(out_dir / f"{table}.csv", headers, rows)


def export_queue(items: Sequence[QueueItem], out_path: Path) -> None:
    """Write a work queue as ``.xlsx`` or ``.csv`` depending on the suffix."""
    rows = [_queue_row(item) for item in items]
    out_path.parent.mkdir(parents=True, exist_ok=True)
    if out_path.suffix.lower() == ".xlsx":
        wb = Workbook()
        ws = wb.active
        ws.title = "queue"
        ws.append(QUEUE_HEADERS)
        for row in rows:
            ws.append(row)
        wb.save(out_path)
        return
    _write_csv(out_path, QUEUE_HEADERS, rows)


def _table_rows(store: SqliteStore, table: str) -> tuple[list[str], list[list[object]]]:
    records = store.fetch_all(f"SELECT * FROM {table}")
    if not records:
        return [], []
    headers = list(records[0].keys())
    return headers, [[record[h] for h in headers] for record in records]


def _queue_row(item: QueueItem) -> list[object]:
    tp = item.touchpoint
    return [
        tp.touchpoint_id,
        tp.scheduled_at.astimezone().date().isoformat() if tp.scheduled_at else None,
        tp.type,
        item.recipient_name,
        item.company,
        item.campaign_name,
        tp.subject,
        tp.content,
    ]


def _write_csv(path: Path, headers: list[str], rows: list[list[object]]) -> None:
    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(headers)
        writer.writerows(rows)
