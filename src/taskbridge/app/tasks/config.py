"""Loading and validation of the sync configuration file."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping

import jsonschema
import yaml

from taskbridge.domain.tasks import DEFAULT_FIELD_VALUES, Field, FieldError
from taskbridge.domain.tasks.models import coerce_field, parse_categories
from taskbridge.domain.tasks.registry import DEFAULT_MAX_WORKERS
from taskbridge.resources import load_schema

DEFAULT_CONFIG_PATH = Path("config") / "taskbridge.json"


class SyncConfigError(RuntimeError):
    """Raised when the sync configuration cannot be read or is invalid."""


@dataclass(frozen=True)
class SyncConfig:
    root: Path
    board: Dict[str, Any]
    program: Dict[str, Any]
    defaults: Dict[Field, Any] = field(default_factory=lambda: dict(DEFAULT_FIELD_VALUES))
    max_workers: int = DEFAULT_MAX_WORKERS
    path: Path | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], *, root: Path, path: Path | None = None) -> "SyncConfig":
        validator = jsonschema.Draft202012Validator(load_schema("sync_config"))
        errors = sorted(validator.iter_errors(raw), key=lambda error: list(error.absolute_path))
        if errors:
            first = errors[0]
            location = ".".join(str(part) for part in first.absolute_path) or "<root>"
            raise SyncConfigError(f"sync.config_invalid: {location}: {first.message}")
        return cls(
            root=root,
            board=dict(raw["board"]),
            program=dict(raw.get("program") or {}),
            defaults=_parse_defaults(raw.get("defaults") or {}),
            max_workers=int(raw.get("max_workers", DEFAULT_MAX_WORKERS)),
            path=path,
        )


def load_sync_config(project_root: Path, config_path: Path | None = None) -> SyncConfig:
    path = config_path or (project_root / DEFAULT_CONFIG_PATH)
    if not path.exists():
        raise SyncConfigError(f"sync.config_not_found: configuration missing at {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            raw = yaml.safe_load(text) or {}
        else:
            raw = json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise SyncConfigError(f"sync.config_invalid: {exc}") from exc
    if not isinstance(raw, dict):
        raise SyncConfigError("sync.config_invalid: root must be object")
    return SyncConfig.from_mapping(raw, root=project_root, path=path)


def _parse_defaults(raw: Mapping[str, Any]) -> Dict[Field, Any]:
    defaults: Dict[Field, Any] = dict(DEFAULT_FIELD_VALUES)
    for key, value in raw.items():
        try:
            task_field = coerce_field(key)
        except FieldError as exc:
            raise SyncConfigError(f"sync.config_invalid: defaults: {exc}") from exc
        if task_field is Field.CATEGORIES and value is not None:
            value = parse_categories(value)
        defaults[task_field] = value
    return defaults


__all__ = ["DEFAULT_CONFIG_PATH", "SyncConfig", "SyncConfigError", "load_sync_config"]
