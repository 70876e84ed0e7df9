from __future__ import annotations

from taskbridge.adapters.tasks.program_adapter import WRITABLE_FIELDS, ProgramAdapter
from taskbridge.domain.tasks import Category, Field, TaskRecord, TaskRegistry, WriteMode

from tests.tasks.fakes import FakeProgramService


def _task(task_id: int, name: str, **extra: object) -> dict:
    payload = {
        "id": task_id,
        "name": name,
        "description": f"{name} description",
        "status": 2,
        "max_instances": 4,
        "mentors": ["mentor@example.org"],
        "tags": ["python"],
        "is_beginner": False,
        "categories": [1, 4],
        "time_to_complete_in_days": 6,
        "external_url": "",
        "last_modified": "2017-11-21T08:00:00Z",
        "claimed_count": 1,
        "available_count": 3,
        "completed_count": 0,
    }
    payload.update(extra)
    return payload


def test_load_all_walks_every_page() -> None:
    service = FakeProgramService([[_task(1, "One"), _task(2, "Two")], [_task(3, "Three")]])
    registry = TaskRegistry()

    result = registry.load_all_from_program(ProgramAdapter(service))

    assert result.loaded == 3
    assert service.requested == [None, "1"]
    record = registry.find_by_program_id(3)
    assert record.name == "Three"
    assert record.get(Field.DAYS) == 6
    assert record.categories() == [Category.CODING, Category.QA]
    assert record.get(Field.CLAIMED_COUNT) == 1
    assert record.get(Field.LAST_MODIFIED) == "2017-11-21T08:00:00Z"


def test_load_merges_into_records_known_from_board() -> None:
    registry = TaskRegistry()
    card_record = registry.find_or_create_by_board_id("card-1")
    card_record.set(Field.PROGRAM_ID, 5)
    card_record.set(Field.DESCRIPTION, "From the board")
    service = FakeProgramService([[_task(5, "Five", description="")]])

    registry.load_all_from_program(ProgramAdapter(service))

    assert len(registry) == 1
    assert card_record.name == "Five"
    assert card_record.get(Field.DESCRIPTION) == "From the board"


def test_load_skips_tasks_without_id() -> None:
    service = FakeProgramService([[{"name": "Orphan"}]])
    registry = TaskRegistry()

    result = registry.load_all_from_program(ProgramAdapter(service))

    assert result.loaded == 0
    assert len(registry) == 0


def test_full_write_updates_existing_task() -> None:
    service = FakeProgramService()
    record = TaskRecord()
    record.set(Field.PROGRAM_ID, 7)
    record.set(Field.NAME, "Seven")
    record.set(Field.CATEGORIES, [Category.DESIGN])
    record.set(Field.CLAIMED_COUNT, 9)

    ProgramAdapter(service).write_task(record, WriteMode.ALL)

    assert len(service.updates) == 1
    task_id, payload = service.updates[0]
    assert task_id == 7
    assert payload["name"] == "Seven"
    assert payload["categories"] == [2]
    assert payload["time_to_complete_in_days"] == 3
    assert "claimed_count" not in payload
    assert "id" not in payload
    assert "description" not in payload
    assert not record.created_on_program


def test_full_write_creates_missing_task() -> None:
    service = FakeProgramService()
    service.missing.add(7)
    record = TaskRecord()
    record.set(Field.PROGRAM_ID, 7)
    record.set(Field.NAME, "Gone")

    ProgramAdapter(service).write_full_task(record)

    assert len(service.created) == 1
    assert record.program_id == 9001
    assert record.created_on_program


def test_full_write_creates_task_without_id() -> None:
    service = FakeProgramService()
    record = TaskRecord()
    record.set(Field.NAME, "Fresh")

    ProgramAdapter(service).write_full_task(record)

    assert service.updates == []
    assert service.created[0]["name"] == "Fresh"
    assert record.created_on_program


def test_changed_write_sends_only_dirty_writable_fields() -> None:
    service = FakeProgramService()
    record = TaskRecord()
    record.set(Field.PROGRAM_ID, 7)
    record.clear_dirty()
    record.set(Field.TAGS, ["go"])
    record.set(Field.LAST_MODIFIED, "2017-12-01")

    ProgramAdapter(service).write_task(record, WriteMode.ONLY_CHANGED)

    assert service.updates == [(7, {"tags": ["go"]})]


def test_changed_write_skips_unlinked_or_clean_records() -> None:
    service = FakeProgramService()
    adapter = ProgramAdapter(service)
    unlinked = TaskRecord()
    unlinked.set(Field.NAME, "No program id")
    clean = TaskRecord()
    clean.set(Field.PROGRAM_ID, 1)
    clean.clear_dirty()

    assert adapter.write_changed_fields(unlinked, unlinked.dirty_fields()) is None
    assert adapter.write_changed_fields(clean, clean.dirty_fields()) is None
    assert service.updates == []
    assert service.created == []


def test_writable_fields_exclude_identity_and_counters() -> None:
    assert Field.PROGRAM_ID not in WRITABLE_FIELDS
    assert Field.BOARD_ID not in WRITABLE_FIELDS
    assert Field.COMPLETED_COUNT not in WRITABLE_FIELDS
    assert Field.DAYS in WRITABLE_FIELDS
