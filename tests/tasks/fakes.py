from __future__ import annotations

import copy
import json
from typing import Any, Dict, List, Mapping

from taskbridge.adapters.tasks.board_adapter import BoardCustomFields, BoardLayout
from taskbridge.domain.tasks import Category
from taskbridge.settings import RuntimeSettings
from taskbridge.ports.tasks.services import (
    BoardService,
    NotFoundError,
    ProgramService,
    RemoteServiceError,
    TaskPage,
)

CUSTOM_FIELDS = BoardCustomFields(
    program_id="cf-program",
    days="cf-days",
    is_beginner="cf-beginner",
    max_instances="cf-instances",
    tags="cf-tags",
    is_code="cf-code",
    is_design="cf-design",
    is_docs="cf-docs",
    is_qa="cf-qa",
    is_out_research="cf-research",
)

CATEGORY_LISTS = {
    Category.CODING: "list-code",
    Category.DESIGN: "list-design",
    Category.DOCS_TRAINING: "list-docs",
    Category.QA: "list-qa",
    Category.OUTRESEARCH: "list-research",
}

LAYOUT = BoardLayout(board_id="board-1", category_lists=CATEGORY_LISTS, custom_fields=CUSTOM_FIELDS)


def checked(field_id: str, value: bool = True) -> Dict[str, Any]:
    return {"idCustomField": field_id, "value": {"checked": "true" if value else "false"}}


def text(field_id: str, value: str) -> Dict[str, Any]:
    return {"idCustomField": field_id, "value": {"text": value}}


def number(field_id: str, value: int) -> Dict[str, Any]:
    return {"idCustomField": field_id, "value": {"number": str(value)}}


def make_card(card_id: str, name: str, list_id: str, *items: Dict[str, Any], desc: str = "") -> Dict[str, Any]:
    return {
        "id": card_id,
        "name": name,
        "desc": desc,
        "idList": list_id,
        "dateLastActivity": "2017-11-20T10:00:00.000Z",
        "customFieldItems": list(items),
    }


class FakeBoardService(BoardService):
    def __init__(self, cards: List[Dict[str, Any]] | None = None) -> None:
        self.cards = list(cards or [])
        self.missing: set[str] = set()
        self.failing: set[str] = set()
        self.main_updates: List[tuple[str, Dict[str, Any]]] = []
        self.created: List[Dict[str, Any]] = []
        self.deleted: List[str] = []
        self.custom_updates: List[tuple[str | None, str, Dict[str, Any]]] = []
        self.webhooks: List[Dict[str, Any]] = []
        self.deleted_webhooks: List[str] = []
        self.created_webhooks: List[tuple[str, str]] = []

    def fetch_all_cards(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(self.cards)

    def update_card_main_fields(self, card_id: str, fields: Mapping[str, Any]) -> Dict[str, Any]:
        self.main_updates.append((card_id, dict(fields)))
        if card_id in self.failing:
            raise RemoteServiceError("board unavailable", status_code=503)
        if card_id in self.missing:
            raise NotFoundError(f"card {card_id} not found", status_code=404)
        return {"id": card_id, **fields}

    def create_card(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
        self.created.append(dict(fields))
        return {"id": f"card-new-{len(self.created)}", **fields}

    def delete_card(self, card_id: str) -> None:
        self.deleted.append(card_id)

    def update_custom_field(self, card_id: str, field_id: str, raw_value: Mapping[str, Any]) -> None:
        self.custom_updates.append((card_id, field_id, dict(raw_value)))

    def list_webhooks(self) -> List[Dict[str, Any]]:
        return list(self.webhooks)

    def delete_webhook(self, webhook_id: str) -> None:
        self.deleted_webhooks.append(webhook_id)

    def create_webhook(self, card_id: str, callback_url: str) -> Dict[str, Any]:
        self.created_webhooks.append((card_id, callback_url))
        return {"id": f"wh-{card_id}"}

    def custom_values_for(self, card_id: str) -> Dict[str, Dict[str, Any]]:
        return {field_id: raw for target, field_id, raw in self.custom_updates if target == card_id}


class FakeProgramService(ProgramService):
    def __init__(self, pages: List[List[Dict[str, Any]]] | None = None) -> None:
        self.pages = pages or [[]]
        self.requested: List[str | None] = []
        self.missing: set[Any] = set()
        self.failing: set[Any] = set()
        self.updates: List[tuple[Any, Dict[str, Any]]] = []
        self.created: List[Dict[str, Any]] = []

    def fetch_task_page(self, page_token: str | None) -> TaskPage:
        self.requested.append(page_token)
        index = int(page_token) if page_token else 0
        next_token = str(index + 1) if index + 1 < len(self.pages) else None
        return TaskPage(results=copy.deepcopy(self.pages[index]), next=next_token)

    def update_task(self, task_id: Any, fields: Mapping[str, Any]) -> Dict[str, Any]:
        self.updates.append((task_id, dict(fields)))
        if task_id in self.failing:
            raise RemoteServiceError("program unavailable", status_code=503)
        if task_id in self.missing:
            raise NotFoundError(f"task {task_id} not found", status_code=404)
        return {"id": task_id, **fields}

    def create_task(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
        self.created.append(dict(fields))
        return {"id": 9000 + len(self.created), **fields}


def sample_config() -> Dict[str, Any]:
    return {
        "board": {
            "board_id": "board-1",
            "category_lists": {
                "CODING": "list-code",
                "DESIGN": "list-design",
                "3": "list-docs",
                "QA": "list-qa",
                "OUTRESEARCH": "list-research",
            },
            "custom_fields": {
                "program_id": "cf-program",
                "days": "cf-days",
                "is_beginner": "cf-beginner",
                "max_instances": "cf-instances",
                "tags": "cf-tags",
                "is_code": "cf-code",
                "is_design": "cf-design",
                "is_docs": "cf-docs",
                "is_qa": "cf-qa",
                "is_out_research": "cf-research",
            },
            "auth": {"key_env": "TASKBRIDGE_TEST_BOARD_KEY", "token_env": "TASKBRIDGE_TEST_BOARD_TOKEN"},
            "min_interval": 0,
        },
        "program": {
            "auth": {"token_env": "TASKBRIDGE_TEST_PROGRAM_TOKEN"},
        },
        "defaults": {"days": 5},
        "max_workers": 2,
    }


def read_events(settings: RuntimeSettings) -> List[Dict[str, Any]]:
    log_path = settings.log_dir / "telemetry.jsonl"
    if not log_path.exists():
        return []
    return [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines() if line.strip()]
