"""Build SQLite DDL from ``resources/schema/canonical.yaml``.

Each table lists ``fields`` (type, required, enum, ref), plain ``indexes``
and ``unique`` column groups. Nullable columns in a unique group are
compared through ``COALESCE(col, '')`` so that a missing lead or district
contact id still takes part in the uniqueness check.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

SQL_TYPES = {
    "uuid": "TEXT",
    "text": "TEXT",
    "integer": "INTEGER",
    "number": "REAL",
    "datetime": "TEXT",
    "date": "TEXT",
    "enum": "TEXT",
    "bool": "INTEGER",
}


class SchemaError(RuntimeError):
    pass


@dataclass(frozen=True)
class Schema:
    version: int
    enums: dict[str, list[str]]
    tables: dict[str, Any]


def load_schema(schema_path: Path) -> Schema:
    data = yaml.safe_load(schema_path.read_text(encoding="utf-8")) or {}
    enums = data.get("enums") or {}
    tables = data.get("tables") or {}
    if not isinstance(enums, dict):
        raise SchemaError("Schema enums must be a mapping.")
    if not isinstance(tables, dict):
        raise SchemaError("Schema tables must be a mapping.")
    return Schema(version=data.get("version", 1), enums=enums, tables=tables)


def ddl_statements(schema: Schema) -> list[str]:
    """Every ``CREATE`` statement for the schema, tables before their indexes."""
    statements: list[str] = []
    for table, table_def in schema.tables.items():
        fields = table_def.get("fields")
        if not isinstance(fields, dict):
            raise SchemaError(f"Table {table} fields must be a mapping.")
        statements.append(_table_sql(table, table_def, fields, schema.enums))
        statements.extend(_index_sql(table, table_def, fields))
    return statements


def apply_schema(conn: sqlite3.Connection, schema_path: Path) -> None:
    schema = load_schema(schema_path)
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute(
        "CREATE TABLE IF NOT EXISTS __schema_meta (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)"
    )
    for statement in ddl_statements(schema):
        conn.execute(statement)
    conn.execute(
        "INSERT OR REPLACE INTO __schema_meta (version, applied_at) VALUES (?, datetime('now'))",
        (schema.version,),
    )
    conn.commit()


def _table_sql(
    table: str, table_def: dict[str, Any], fields: dict[str, Any], enums: dict[str, list[str]]
) -> str:
    primary_key = table_def.get("primary_key")
    columns = [
        _column_sql(name, field, primary_key, enums) for name, field in fields.items()
    ]
    if isinstance(primary_key, list):
        columns.append(f"PRIMARY KEY ({', '.join(primary_key)})")
    for name, field in fields.items():
        if field.get("ref"):
            ref_table, ref_column = field["ref"].split(".")
            columns.append(f"FOREIGN KEY ({name}) REFERENCES {ref_table}({ref_column})")
    return f"CREATE TABLE IF NOT EXISTS {table} ({', '.join(columns)});"


def _column_sql(
    name: str, field: dict[str, Any], primary_key: Any, enums: dict[str, list[str]]
) -> str:
    field_type = field.get("type")
    if field_type not in SQL_TYPES:
        raise SchemaError(f"Unknown field type {field_type} for {name}.")
    parts = [name, SQL_TYPES[field_type]]
    if field.get("required"):
        parts.append("NOT NULL")
    if name == primary_key:
        parts.append("PRIMARY KEY")
    if field_type == "enum":
        values = enums.get(field.get("enum"))
        if values is None:
            raise SchemaError(f"Unknown enum {field.get('enum')} for {name}.")
        allowed = ", ".join(f"'{value}'" for value in values)
        parts.append(f"CHECK ({name} IN ({allowed}))")
    return " ".join(parts)


def _index_sql(table: str, table_def: dict[str, Any], fields: dict[str, Any]) -> list[str]:
    statements = []
    for columns in table_def.get("indexes") or []:
        if columns:
            statements.append(
                f"CREATE INDEX IF NOT EXISTS idx_{table}_{'_'.join(columns)} "
                f"ON {table} ({', '.join(columns)});"
            )
    for columns in table_def.get("unique") or []:
        unknown = [column for column in columns if column not in fields]
        if unknown:
            raise SchemaError(f"Unique index on {table} names unknown fields: {', '.join(unknown)}")
        terms = [
            column if fields[column].get("required") else f"COALESCE({column}, '')"
            for column in columns
        ]
        statements.append(
            f"CREATE UNIQUE INDEX IF NOT EXISTS uq_{table}_{'_'.join(columns)} "
            f"ON {table} ({', '.join(terms)});"
        )
    return statements
