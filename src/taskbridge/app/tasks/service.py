"""Application service orchestrating load and write passes across both services."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

import requests

from taskbridge.adapters.tasks.board_adapter import BoardAdapter
from taskbridge.adapters.tasks.program_adapter import ProgramAdapter
from taskbridge.adapters.tasks.providers import build_adapters_from_config
from taskbridge.app.tasks.config import SyncConfig
from taskbridge.domain.tasks import BatchResult, LoadResult, TaskRegistry, WriteMode
from taskbridge.ports.tasks.services import RemoteServiceError, ServiceConfigError

logger = logging.getLogger(__name__)

CARD_UPDATED = "updateCard"
CUSTOM_FIELD_UPDATED = "updateCustomFieldItem"


class TaskSyncError(RuntimeError):
    """Raised when synchronisation cannot be performed."""


@dataclass(frozen=True)
class RemoteEvent:
    type: str
    card_id: str
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_webhook(cls, body: Mapping[str, Any]) -> "RemoteEvent":
        action = body.get("action")
        if not isinstance(action, dict):
            raise ValueError("webhook body missing 'action' object")
        data = action.get("data") if isinstance(action.get("data"), dict) else {}
        card = data.get("card") if isinstance(data.get("card"), dict) else {}
        card_id = card.get("id")
        if not isinstance(card_id, str) or not card_id:
            raise ValueError("webhook action does not reference a card")
        return cls(type=str(action.get("type", "")), card_id=card_id, payload=dict(data))


@dataclass
class LoadReport:
    board: LoadResult
    program: LoadResult

    def to_dict(self) -> Dict[str, Any]:
        return {"board": self.board.summary(), "program": self.program.summary()}


@dataclass
class WriteReport:
    mode: WriteMode
    board: BatchResult
    program: BatchResult
    relinked: int = 0
    failures: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.board.ok and self.program.ok and not self.failures

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "board": self.board.summary(),
            "program": self.program.summary(),
            "relinked": self.relinked,
            "failures": list(self.failures),
        }


@dataclass
class SyncReport:
    load: LoadReport
    write: WriteReport
    tasks: int
    linked: int

    @property
    def ok(self) -> bool:
        return self.write.ok and not self.load.board.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tasks": self.tasks,
            "linked": self.linked,
            "load": self.load.to_dict(),
            "write": self.write.to_dict(),
            "ok": self.ok,
        }


class TaskSyncService:
    def __init__(self, registry: TaskRegistry, board: BoardAdapter, program: ProgramAdapter) -> None:
        self._registry = registry
        self._board = board
        self._program = program
        self._event_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: SyncConfig, *, session: requests.Session | None = None) -> "TaskSyncService":
        try:
            adapters = build_adapters_from_config(config.root, config.board, config.program, session=session)
        except ServiceConfigError as exc:
            raise TaskSyncError(str(exc)) from exc
        layout = adapters.board.layout
        registry = TaskRegistry(
            board_id=layout.board_id,
            category_lists=layout.category_lists,
            defaults=config.defaults,
            max_workers=config.max_workers,
        )
        return cls(registry, adapters.board, adapters.program)

    @property
    def registry(self) -> TaskRegistry:
        return self._registry

    @property
    def board(self) -> BoardAdapter:
        return self._board

    @property
    def program(self) -> ProgramAdapter:
        return self._program

    def load_all(self) -> LoadReport:
        # category follow-ups run inside the board pass, before any write
        board_result = self._registry.load_all_from_board(self._board)
        program_result = self._registry.load_all_from_program(self._program)
        return LoadReport(board=board_result, program=program_result)

    def write_all(self, mode: WriteMode) -> WriteReport:
        board_result = self._registry.write_all_to_board(self._board, mode)
        program_result = self._registry.write_all_to_program(self._program, mode)
        report = WriteReport(mode=mode, board=board_result, program=program_result)

        for record in self._registry:
            if not record.created_on_program or record.board_id is None:
                continue
            try:
                self._board.update_other_id(record)
            except RemoteServiceError as exc:
                logger.error("Linking card '%s' to its new program task failed: %s", record.name, exc)
                report.failures.append(f"{record.board_id}: {exc}")
                continue
            report.relinked += 1
        return report

    def sync(self, mode: WriteMode = WriteMode.ALL) -> SyncReport:
        load = self.load_all()
        write = self.write_all(mode)
        records = list(self._registry)
        return SyncReport(
            load=load,
            write=write,
            tasks=len(records),
            linked=sum(1 for record in records if record.is_linked),
        )

    def handle_remote_event(self, event: RemoteEvent) -> bool:
        """Apply a board notification to its record and push the change onwards.

        Returns False when the event type carries nothing to synchronise.
        """

        with self._event_lock:
            record = self._registry.find_or_create_by_board_id(event.card_id)
            record.clear_dirty()
            if event.type == CARD_UPDATED:
                logger.info("Webhook triggered: card %s updated", event.card_id)
                card = event.payload.get("card") or {}
                self._board.parse_main_fields(card, record)
            elif event.type == CUSTOM_FIELD_UPDATED:
                logger.info("Webhook triggered: custom field changed on card %s", event.card_id)
                item = event.payload.get("customFieldItem")
                self._board.parse_custom_field_items([item] if item else [], record)
            else:
                logger.info("Webhook triggered: irrelevant change '%s' on card %s", event.type, event.card_id)
                return False
            self._program.write_task(record, WriteMode.ONLY_CHANGED)
            return True

    def refresh_webhooks(self, callback_url: str) -> int:
        card_ids = [record.board_id for record in self._registry if record.board_id]
        return self._board.replace_webhooks(card_ids, callback_url)


__all__ = [
    "LoadReport",
    "RemoteEvent",
    "SyncReport",
    "TaskSyncError",
    "TaskSyncService",
    "WriteReport",
]
