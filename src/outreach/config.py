from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from outreach.domain.business_days import BATCH_CUTOFF_HOUR

WORKSPACES_DIR = Path("workspaces")
CURRENT_WORKSPACE_FILE = WORKSPACES_DIR / ".current"
WORKSPACE_FILENAME = "workspace.yaml"
DEFAULT_CHUNK_SIZE = 50


@dataclass(frozen=True)
class StoreConfig:
    sqlite_path: Path


@dataclass(frozen=True)
class SchedulingConfig:
    batch_cutoff_hour: int = BATCH_CUTOFF_HOUR
    insert_chunk_size: int = DEFAULT_CHUNK_SIZE


@dataclass(frozen=True)
class WorkspaceConfig:
    name: str
    tenant: str | None
    store: StoreConfig
    scheduling: SchedulingConfig
    path: Path


class WorkspaceError(RuntimeError):
    pass


def ensure_workspaces_dir() -> None:
    WORKSPACES_DIR.mkdir(parents=True, exist_ok=True)


def set_current_workspace(name: str) -> None:
    ensure_workspaces_dir()
    CURRENT_WORKSPACE_FILE.write_text(f"{name}\n", encoding="utf-8")


def get_current_workspace_name() -> str:
    if not CURRENT_WORKSPACE_FILE.exists():
        raise WorkspaceError("No active workspace. Run `outreach workspace use <name>`.")
    return CURRENT_WORKSPACE_FILE.read_text(encoding="utf-8").strip()


def workspace_path(name: str) -> Path:
    return WORKSPACES_DIR / name


def workspace_config_path(name: str) -> Path:
    return workspace_path(name) / WORKSPACE_FILENAME


def load_workspace(name: str | None = None) -> WorkspaceConfig:
    if name is None:
        name = get_current_workspace_name()
    config_path = workspace_config_path(name)
    if not config_path.exists():
        raise WorkspaceError(f"Workspace config not found: {config_path}")
    return parse_workspace(name, config_path)


def parse_workspace(name: str, config_path: Path) -> WorkspaceConfig:
    data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise WorkspaceError("Workspace config must be a mapping.")
    store = _parse_store(data.get("store"), config_path)
    scheduling = _parse_scheduling(data.get("scheduling"))
    tenant = data.get("tenant")
    if tenant is not None and not isinstance(tenant, str):
        raise WorkspaceError("Workspace tenant must be a string.")
    return WorkspaceConfig(
        name=name,
        tenant=tenant or None,
        store=store,
        scheduling=scheduling,
        path=config_path.parent,
    )


def write_workspace_config(name: str, tenant: str | None) -> Path:
    ensure_workspaces_dir()
    ws_dir = workspace_path(name)
    ws_dir.mkdir(parents=True, exist_ok=True)
    sqlite_path = Path("./local.sqlite")
    config = {
        "workspace": name,
        "tenant": tenant,
        "store": {"sqlite_path": str(sqlite_path)},
        "scheduling": {
            "batch_cutoff_hour": BATCH_CUTOFF_HOUR,
            "insert_chunk_size": DEFAULT_CHUNK_SIZE,
        },
    }
    config_path = workspace_config_path(name)
    config_path.write_text(yaml.safe_dump(config, sort_keys=False), encoding="utf-8")
    return config_path


def _parse_store(store_data: Any, config_path: Path) -> StoreConfig:
    if not isinstance(store_data, dict):
        raise WorkspaceError("Invalid workspace store configuration.")
    sqlite_path_raw = store_data.get("sqlite_path")
    if not sqlite_path_raw:
        raise WorkspaceError("Workspace store.sqlite_path is required.")
    sqlite_path = _resolve_sqlite_path(sqlite_path_raw, config_path)
    if sqlite_path is None:
        raise WorkspaceError("Workspace store.sqlite_path must be a string.")
    return StoreConfig(sqlite_path=sqlite_path)


def _resolve_sqlite_path(sqlite_path_raw: Any, config_path: Path) -> Path | None:
    if not isinstance(sqlite_path_raw, str):
        return None
    raw_path = Path(sqlite_path_raw)
    if raw_path.is_absolute():
        return raw_path
    workspace_dir = config_path.parent
    if raw_path.parts and raw_path.parts[0] == WORKSPACES_DIR.name:
        # Paths written from the repo root already include "workspaces/...".
        return (workspace_dir.parent.parent / raw_path).resolve()
    return (workspace_dir / raw_path).resolve()


def _parse_scheduling(scheduling_data: Any) -> SchedulingConfig:
    if scheduling_data is None:
        return SchedulingConfig()
    if not isinstance(scheduling_data, dict):
        raise WorkspaceError("Invalid workspace scheduling configuration.")
    cutoff = _int_setting(scheduling_data, "batch_cutoff_hour", BATCH_CUTOFF_HOUR)
    if not 0 <= cutoff <= 23:
        raise WorkspaceError("scheduling.batch_cutoff_hour must be between 0 and 23.")
    chunk_size = _int_setting(scheduling_data, "insert_chunk_size", DEFAULT_CHUNK_SIZE)
    if chunk_size < 1:
        raise WorkspaceError("scheduling.insert_chunk_size must be at least 1.")
    return SchedulingConfig(batch_cutoff_hour=cutoff, insert_chunk_size=chunk_size)


def _int_setting(data: dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise WorkspaceError(f"scheduling.{key} must be an integer.")
    return value
