"""Factory helpers turning configuration sections into service adapters."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping

import requests

from taskbridge.adapters.tasks.board_adapter import BoardAdapter, BoardCustomFields, BoardLayout
from taskbridge.adapters.tasks.board_client import (
    DEFAULT_BASE_URL as BOARD_BASE_URL,
    DEFAULT_MIN_INTERVAL as BOARD_MIN_INTERVAL,
    TrelloAuthConfig,
    TrelloBoardClient,
)
from taskbridge.adapters.tasks.program_adapter import ProgramAdapter
from taskbridge.adapters.tasks.program_client import (
    DEFAULT_BASE_URL as PROGRAM_BASE_URL,
    ProgramAuthConfig,
    ProgramTaskClient,
)
from taskbridge.adapters.tasks.utils import MinIntervalThrottle
from taskbridge.domain.tasks import Category
from taskbridge.ports.tasks.services import ServiceConfigError


@dataclass(frozen=True)
class AdapterBuildResult:
    board: BoardAdapter
    program: ProgramAdapter


def build_adapters_from_config(
    project_root: Path,
    board_config: Mapping[str, Any],
    program_config: Mapping[str, Any],
    *,
    session: requests.Session | None = None,
) -> AdapterBuildResult:
    layout = build_board_layout(board_config)
    board_auth = board_config.get("auth", {}) if isinstance(board_config.get("auth"), dict) else {}
    board_client = TrelloBoardClient(
        layout.board_id,
        TrelloAuthConfig(key_env=board_auth.get("key_env"), token_env=board_auth.get("token_env")),
        session=session,
        throttle=MinIntervalThrottle(float(board_config.get("min_interval", BOARD_MIN_INTERVAL))),
        base_url=str(board_config.get("base_url", BOARD_BASE_URL)),
        timeout=float(board_config.get("timeout", 30)),
    )

    options: Dict[str, Any] = dict(program_config)
    _normalise_paths(project_root, options)
    program_auth = options.get("auth", {}) if isinstance(options.get("auth"), dict) else {}
    program_client = ProgramTaskClient(
        ProgramAuthConfig(token_env=program_auth.get("token_env")),
        session=session,
        throttle=MinIntervalThrottle(float(options.get("min_interval", 0))),
        base_url=str(options.get("base_url", PROGRAM_BASE_URL)),
        snapshot_path=options.get("snapshot_path"),
        timeout=float(options.get("timeout", 30)),
    )

    return AdapterBuildResult(
        board=BoardAdapter(board_client, layout),
        program=ProgramAdapter(program_client),
    )


def build_board_layout(board_config: Mapping[str, Any]) -> BoardLayout:
    board_id = board_config.get("board_id")
    if not isinstance(board_id, str) or not board_id:
        raise ServiceConfigError("board.board_id must be a non-empty string")
    raw_lists = board_config.get("category_lists")
    if not isinstance(raw_lists, dict) or not raw_lists:
        raise ServiceConfigError("board.category_lists must be a non-empty object")
    category_lists = {parse_category_key(key): str(list_id) for key, list_id in raw_lists.items()}

    raw_fields = board_config.get("custom_fields")
    if not isinstance(raw_fields, dict):
        raise ServiceConfigError("board.custom_fields must be an object")
    try:
        custom_fields = BoardCustomFields(**{key: str(value) for key, value in raw_fields.items()})
    except TypeError as exc:
        raise ServiceConfigError(f"board.custom_fields invalid: {exc}") from exc

    default_list = board_config.get("default_list")
    if default_list is None and Category.CODING not in category_lists:
        raise ServiceConfigError("board.default_list required when no CODING list is configured")
    return BoardLayout(
        board_id=board_id,
        category_lists=category_lists,
        custom_fields=custom_fields,
        default_list=default_list,
    )


def parse_category_key(key: Any) -> Category:
    text = str(key).strip()
    if text.isdigit():
        try:
            return Category(int(text))
        except ValueError as exc:
            raise ServiceConfigError(f"unknown category id '{key}'") from exc
    try:
        return Category[text.upper()]
    except KeyError as exc:
        raise ServiceConfigError(f"unknown category '{key}'") from exc


def _normalise_paths(project_root: Path, options: Dict[str, Any]) -> None:
    value = options.get("snapshot_path")
    if not value:
        return
    candidate = Path(str(value))
    if not candidate.is_absolute():
        candidate = (project_root / candidate).resolve()
    options["snapshot_path"] = str(candidate)


__all__ = [
    "AdapterBuildResult",
    "build_adapters_from_config",
    "build_board_layout",
    "parse_category_key",
]
