"""Translation between program service tasks and task records."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List

from taskbridge.domain.tasks import Field, LoadResult, TaskRecord, TaskRegistry, WriteMode
from taskbridge.domain.tasks.models import READ_ONLY_FIELDS, parse_categories
from taskbridge.ports.tasks.services import NotFoundError, ProgramService, RawTask

logger = logging.getLogger(__name__)

REMOTE_NAMES: Dict[Field, str] = {
    Field.PROGRAM_ID: "id",
    Field.NAME: "name",
    Field.DESCRIPTION: "description",
    Field.STATUS: "status",
    Field.MAX_INSTANCES: "max_instances",
    Field.MENTORS: "mentors",
    Field.TAGS: "tags",
    Field.IS_BEGINNER: "is_beginner",
    Field.CATEGORIES: "categories",
    Field.DAYS: "time_to_complete_in_days",
    Field.EXTERNAL_URL: "external_url",
    Field.LAST_MODIFIED: "last_modified",
    Field.CLAIMED_COUNT: "claimed_count",
    Field.AVAILABLE_COUNT: "available_count",
    Field.COMPLETED_COUNT: "completed_count",
}

WRITABLE_FIELDS: List[Field] = [
    task_field
    for task_field in REMOTE_NAMES
    if task_field is not Field.PROGRAM_ID and task_field not in READ_ONLY_FIELDS
]


class ProgramAdapter:
    """Loads program tasks into records and writes records back as tasks."""

    name = "program"

    def __init__(self, service: ProgramService) -> None:
        self._service = service

    @property
    def service(self) -> ProgramService:
        return self._service

    def load_all(self, registry: TaskRegistry) -> LoadResult:
        result = LoadResult(service=self.name)
        for raw_task in self._service.iter_tasks():
            task_id = raw_task.get("id")
            if task_id is None:
                logger.warning("Skipping program task without id: %r", raw_task.get("name"))
                continue
            record = registry.find_or_create_by_program_id(task_id)
            self.parse_into_record(raw_task, record)
            result.loaded += 1
        logger.info("Loaded %d tasks from the program service", result.loaded)
        return result

    def parse_into_record(self, raw_task: RawTask, record: TaskRecord) -> None:
        record.set_if_meaningful(Field.PROGRAM_ID, raw_task.get("id"))
        for task_field in WRITABLE_FIELDS:
            value = raw_task.get(REMOTE_NAMES[task_field])
            if task_field is Field.CATEGORIES and value is not None:
                value = parse_categories(value)
            record.set_if_meaningful(task_field, value)
        for task_field in READ_ONLY_FIELDS:
            remote_name = REMOTE_NAMES[task_field]
            if remote_name in raw_task:
                record.set(task_field, raw_task[remote_name])

    def write_task(self, record: TaskRecord, mode: WriteMode) -> None:
        if mode is WriteMode.ALL:
            self.write_full_task(record)
        else:
            self.write_changed_fields(record, record.dirty_fields())

    def write_full_task(self, record: TaskRecord) -> RawTask:
        record.clear_dirty()
        payload = self.to_raw(record, WRITABLE_FIELDS)
        record.created_on_program = False
        if record.program_id is not None:
            try:
                response = self._service.update_task(record.program_id, payload)
                logger.info("Task '%s' updated on the program service", record.name)
                return response
            except NotFoundError:
                logger.info("Updating task '%s' failed; creating a new task", record.name)
        return self._create(record, payload)

    def write_changed_fields(self, record: TaskRecord, dirty_fields: Iterable[Field]) -> RawTask | None:
        dirty = set(dirty_fields)
        fields = [task_field for task_field in WRITABLE_FIELDS if task_field in dirty]
        if not fields:
            return None
        if record.program_id is None:
            logger.debug("Task '%s' has no program id; skipping partial write", record.name)
            return None
        response = self._service.update_task(record.program_id, self.to_raw(record, fields))
        logger.info(
            "Task '%s' fields %s written to the program service",
            record.name,
            ", ".join(task_field.value for task_field in fields),
        )
        return response

    def to_raw(self, record: TaskRecord, fields: Iterable[Field]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for task_field in fields:
            value = record.get(task_field)
            if value is None:
                continue
            if task_field is Field.CATEGORIES:
                value = [int(category) for category in value]
            payload[REMOTE_NAMES[task_field]] = value
        return payload

    def _create(self, record: TaskRecord, payload: Dict[str, Any]) -> RawTask:
        response = self._service.create_task(payload)
        record.set(Field.PROGRAM_ID, response["id"])
        record.created_on_program = True
        logger.info("Task '%s' created on the program service", record.name)
        return response


__all__ = ["ProgramAdapter", "REMOTE_NAMES", "WRITABLE_FIELDS"]
