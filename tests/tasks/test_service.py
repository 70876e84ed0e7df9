from __future__ import annotations

from pathlib import Path

import pytest

from taskbridge.adapters.tasks.board_adapter import BoardAdapter
from taskbridge.adapters.tasks.program_adapter import ProgramAdapter
from taskbridge.app.tasks import RemoteEvent, SyncConfig, TaskSyncError, TaskSyncService
from taskbridge.domain.tasks import Category, Field, TaskRegistry, WriteMode

from tests.tasks.fakes import (
    CATEGORY_LISTS,
    LAYOUT,
    FakeBoardService,
    FakeProgramService,
    checked,
    make_card,
    number,
    sample_config,
)


def _service(board: FakeBoardService, program: FakeProgramService) -> TaskSyncService:
    registry = TaskRegistry(board_id="board-1", category_lists=CATEGORY_LISTS, max_workers=2)
    return TaskSyncService(registry, BoardAdapter(board, LAYOUT), ProgramAdapter(program))


def _linked_service() -> tuple[TaskSyncService, FakeBoardService, FakeProgramService]:
    board = FakeBoardService([make_card("card-1", "Linked", "list-code", checked("cf-code"), number("cf-program", 5))])
    program = FakeProgramService([[{"id": 5, "name": "Linked", "categories": [1]}]])
    service = _service(board, program)
    service.load_all()
    return service, board, program


def test_sync_creates_missing_counterparts_and_links_ids() -> None:
    board = FakeBoardService([make_card("card-1", "Only on board", "list-code", checked("cf-code"))])
    program = FakeProgramService([[{"id": 5, "name": "Only in program", "categories": [4]}]])
    service = _service(board, program)

    report = service.sync(WriteMode.ALL)

    assert report.ok
    assert report.tasks == 2
    assert report.linked == 2
    assert report.write.relinked == 1

    board_only = service.registry.find_by_board_id("card-1")
    assert board_only.program_id == 9001
    assert board_only.created_on_program
    assert ("card-1", "cf-program", {"value": {"number": "9001"}}) in board.custom_updates

    program_only = service.registry.find_by_program_id(5)
    assert program_only.board_id == "card-new-1"
    assert program_only.created_on_board
    assert board.created[0]["idList"] == "list-qa"

    payload = report.to_dict()
    assert payload["write"]["board"] == {"written": 2, "failed": 0}
    assert payload["load"]["program"]["loaded"] == 1


def test_sync_reports_partial_failure() -> None:
    board = FakeBoardService([make_card("card-1", "Flaky", "list-code", checked("cf-code"), number("cf-program", 5))])
    board.failing.add("card-1")
    program = FakeProgramService([[{"id": 5, "name": "Flaky"}]])
    service = _service(board, program)

    report = service.sync(WriteMode.ALL)

    assert not report.ok
    assert len(report.write.board.failed) == 1
    assert report.write.program.ok


def test_changed_mode_writes_load_differences_only() -> None:
    board = FakeBoardService([make_card("card-1", "Same", "list-code", checked("cf-code"), number("cf-program", 5))])
    program = FakeProgramService([[{"id": 5, "name": "Same", "categories": [1], "status": 2}]])
    service = _service(board, program)

    service.sync(WriteMode.ONLY_CHANGED)

    assert board.created == []
    assert program.created == []
    task_id, payload = program.updates[0]
    assert task_id == 5
    assert payload["name"] == "Same"
    assert payload["status"] == 2


def test_handle_card_update_forwards_changed_fields() -> None:
    service, _, program = _linked_service()
    event = RemoteEvent.from_webhook(
        {"action": {"type": "updateCard", "data": {"card": {"id": "card-1", "name": "Renamed"}}}}
    )

    assert service.handle_remote_event(event) is True

    assert program.updates == [(5, {"name": "Renamed"})]
    assert service.registry.find_by_board_id("card-1").name == "Renamed"


def test_handle_list_move_adds_category() -> None:
    service, _, program = _linked_service()
    event = RemoteEvent(type="updateCard", card_id="card-1", payload={"card": {"id": "card-1", "idList": "list-qa"}})

    service.handle_remote_event(event)

    assert program.updates == [(5, {"categories": [1, 4]})]


def test_handle_custom_field_update() -> None:
    service, _, program = _linked_service()
    body = {
        "action": {
            "type": "updateCustomFieldItem",
            "data": {
                "card": {"id": "card-1"},
                "customFieldItem": {"idCustomField": "cf-days", "value": {"number": "8"}},
            },
        }
    }

    service.handle_remote_event(RemoteEvent.from_webhook(body))

    assert program.updates == [(5, {"time_to_complete_in_days": 8})]


def test_irrelevant_event_is_ignored() -> None:
    service, _, program = _linked_service()

    handled = service.handle_remote_event(RemoteEvent(type="commentCard", card_id="card-1"))

    assert handled is False
    assert program.updates == []


def test_event_for_unknown_card_without_program_id_is_not_written() -> None:
    service, _, program = _linked_service()
    event = RemoteEvent(type="updateCard", card_id="card-new", payload={"card": {"id": "card-new", "name": "New"}})

    assert service.handle_remote_event(event) is True

    assert program.updates == []
    assert service.registry.find_by_board_id("card-new").name == "New"


@pytest.mark.parametrize(
    "body",
    [{}, {"action": "nope"}, {"action": {"type": "updateCard", "data": {}}}],
)
def test_remote_event_rejects_malformed_bodies(body: dict) -> None:
    with pytest.raises(ValueError):
        RemoteEvent.from_webhook(body)


def test_refresh_webhooks_covers_every_card() -> None:
    service, board, _ = _linked_service()
    board.webhooks = [{"id": "wh-stale"}]

    assert service.refresh_webhooks("https://hooks.example.org/webhook") == 1
    assert board.deleted_webhooks == ["wh-stale"]
    assert board.created_webhooks == [("card-1", "https://hooks.example.org/webhook")]


def test_from_config_builds_registry(tmp_path: Path) -> None:
    config = SyncConfig.from_mapping(sample_config(), root=tmp_path)

    service = TaskSyncService.from_config(config)

    assert service.registry.board_id == "board-1"
    assert service.registry.category_lists[Category.DOCS_TRAINING] == "list-docs"
    assert service.board.layout.default_list_id == "list-code"
    record = service.registry.find_or_create_by_board_id("card-1")
    assert record.get(Field.DAYS) == 5


def test_from_config_rejects_layout_without_default_list(tmp_path: Path) -> None:
    raw = sample_config()
    del raw["board"]["category_lists"]["CODING"]
    config = SyncConfig.from_mapping(raw, root=tmp_path)

    with pytest.raises(TaskSyncError):
        TaskSyncService.from_config(config)


def test_custom_field_event_for_unmapped_field_changes_nothing() -> None:
    service, _, program = _linked_service()
    event = RemoteEvent(
        type="updateCustomFieldItem",
        card_id="card-1",
        payload={
            "card": {"id": "card-1"},
            "customFieldItem": {"idCustomField": "cf-due", "value": {"date": "2018-01-01T00:00:00.000Z"}},
        },
    )

    assert service.handle_remote_event(event) is True
    assert program.updates == []
