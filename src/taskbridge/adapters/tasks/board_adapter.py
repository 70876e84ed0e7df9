"""Translation between board cards and task records.

Cards only carry a name, a description and the list they sit in; everything
else lives in custom fields. Categories are encoded twice: once as one
checkbox custom field per category and once implicitly by the card's list.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Set, Tuple

from taskbridge.adapters.tasks.custom_fields import (
    CLEARED,
    custom_field_to_value,
    to_raw,
    value_to_custom_field,
)
from taskbridge.domain.tasks import Category, Field, LoadResult, TaskRecord, TaskRegistry, WriteMode
from taskbridge.ports.tasks.services import BoardService, NotFoundError, RawCard, RemoteServiceError

logger = logging.getLogger(__name__)

MAIN_FIELDS = frozenset({Field.NAME, Field.DESCRIPTION})


@dataclass(frozen=True)
class BoardCustomFields:
    """Ids of the board custom fields backing task fields."""

    program_id: str
    days: str
    is_beginner: str
    max_instances: str
    tags: str
    is_code: str
    is_design: str
    is_docs: str
    is_qa: str
    is_out_research: str

    def category_fields(self) -> Dict[Category, str]:
        return {
            Category.CODING: self.is_code,
            Category.DESIGN: self.is_design,
            Category.DOCS_TRAINING: self.is_docs,
            Category.QA: self.is_qa,
            Category.OUTRESEARCH: self.is_out_research,
        }

    def scalar_fields(self) -> Dict[Field, str]:
        return {
            Field.PROGRAM_ID: self.program_id,
            Field.DAYS: self.days,
            Field.IS_BEGINNER: self.is_beginner,
            Field.MAX_INSTANCES: self.max_instances,
        }


@dataclass(frozen=True)
class BoardLayout:
    board_id: str
    category_lists: Mapping[Category, str]
    custom_fields: BoardCustomFields
    default_list: str | None = None
    _list_categories: Dict[str, Category] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        lookup = {list_id: category for category, list_id in self.category_lists.items()}
        object.__setattr__(self, "_list_categories", lookup)

    def category_for_list(self, list_id: str | None) -> Category | None:
        if list_id is None:
            return None
        return self._list_categories.get(list_id)

    def list_for_category(self, category: Category) -> str | None:
        return self.category_lists.get(category)

    @property
    def default_list_id(self) -> str:
        if self.default_list:
            return self.default_list
        return self.category_lists[Category.CODING]


class BoardAdapter:
    """Loads cards into task records and writes records back as cards."""

    name = "board"

    def __init__(self, service: BoardService, layout: BoardLayout) -> None:
        self._service = service
        self._layout = layout

    @property
    def service(self) -> BoardService:
        return self._service

    @property
    def layout(self) -> BoardLayout:
        return self._layout

    # loading

    def load_all(self, registry: TaskRegistry) -> LoadResult:
        cards = self._service.fetch_all_cards()
        result = LoadResult(service=self.name, loaded=len(cards))
        for raw_card in cards:
            record = registry.find_or_create_matching(raw_card.get("id"), self.program_id_from_card(raw_card))
            record.category_inferred = False
            self.parse_into_record(raw_card, record)
            if record.category_inferred:
                result.follow_ups.append(record)
            logger.debug("Loaded card '%s' from the board", record.name)

        for record in result.follow_ups:
            try:
                self.propagate_category_change(record)
            except RemoteServiceError as exc:
                logger.error("Propagating categories of card '%s' failed: %s", record.name, exc)
                result.failed.append((record, exc))
        logger.info("Loaded %d cards from the board", result.loaded)
        return result

    def parse_into_record(self, raw_card: RawCard, record: TaskRecord) -> None:
        record.set_if_meaningful(Field.BOARD_ID, raw_card.get("id"))
        record.set_if_meaningful(Field.DESCRIPTION, raw_card.get("desc"))
        record.set_if_meaningful(Field.NAME, raw_card.get("name"))

        custom = self._layout.custom_fields
        record.set_if_meaningful(Field.PROGRAM_ID, self.program_id_from_card(raw_card))
        record.set_if_meaningful(Field.DAYS, self.custom_field_value(custom.days, raw_card))
        record.set_if_meaningful(Field.IS_BEGINNER, self.custom_field_value(custom.is_beginner, raw_card))
        record.set_if_meaningful(Field.MAX_INSTANCES, self.custom_field_value(custom.max_instances, raw_card))

        categories, inferred = self.compute_category_set(raw_card)
        record.set_if_meaningful(Field.CATEGORIES, _ordered(categories))
        if inferred:
            record.category_inferred = True
        record.set_if_meaningful(Field.TAGS, self.parse_tags(raw_card))

        # authoritative on the board, never conditional
        record.set(Field.LAST_MODIFIED, raw_card.get("dateLastActivity"))

    def parse_main_fields(self, raw_card: RawCard, record: TaskRecord) -> None:
        """Apply the subset of card fields reported by a card update event."""

        if "desc" in raw_card:
            record.set_if_meaningful(Field.DESCRIPTION, raw_card.get("desc"))
        if "name" in raw_card:
            record.set_if_meaningful(Field.NAME, raw_card.get("name"))
        if "idList" in raw_card:
            category = self._layout.category_for_list(raw_card["idList"])
            if category is None:
                logger.error("Card '%s' (%s) is not in a category list", record.name, record.board_id)
            elif category not in record.categories():
                record.add_category(category)
                record.category_inferred = True

    def parse_custom_field_items(self, items: Iterable[Mapping[str, Any]], record: TaskRecord) -> None:
        """Apply individual custom field items as reported by field change events."""

        custom = self._layout.custom_fields
        by_category = {field_id: category for category, field_id in custom.category_fields().items()}
        by_field = {field_id: task_field for task_field, field_id in custom.scalar_fields().items()}
        for item in items:
            field_id = item.get("idCustomField")
            if field_id not in by_category and field_id not in by_field and field_id != custom.tags:
                logger.debug("Ignoring unmapped custom field %s", field_id)
                continue
            value = custom_field_to_value(item)
            if field_id in by_category:
                if value:
                    record.add_category(by_category[field_id])
                else:
                    record.remove_category(by_category[field_id])
            elif field_id == custom.tags:
                record.set(Field.TAGS, split_tags(value))
            else:
                task_field = by_field[field_id]
                if task_field is Field.PROGRAM_ID:
                    value = normalise_program_id(value)
                record.set(task_field, value)

    def compute_category_set(self, raw_card: RawCard) -> Tuple[Set[Category], bool]:
        categories: Set[Category] = set()
        for category, field_id in self._layout.custom_fields.category_fields().items():
            if self.custom_field_value(field_id, raw_card):
                categories.add(category)

        list_category = self._layout.category_for_list(raw_card.get("idList"))
        if list_category is None:
            logger.error(
                "Card '%s' (%s) is not in a category list",
                raw_card.get("name"),
                raw_card.get("id"),
            )
            return categories, False
        if list_category in categories:
            return categories, False
        categories.add(list_category)
        return categories, True

    def parse_tags(self, raw_card: RawCard) -> List[str]:
        return split_tags(self.custom_field_value(self._layout.custom_fields.tags, raw_card))

    def match_record(self, record: TaskRecord, raw_card: RawCard) -> bool:
        if record.board_id is not None and record.board_id == raw_card.get("id"):
            return True
        program_id = self.program_id_from_card(raw_card)
        return program_id is not None and record.program_id == program_id

    def program_id_from_card(self, raw_card: RawCard) -> Any:
        return normalise_program_id(self.custom_field_value(self._layout.custom_fields.program_id, raw_card))

    def custom_field_value(self, field_id: str, raw_card: RawCard) -> Any:
        items = raw_card.get("customFieldItems")
        if not isinstance(items, list):
            return None
        item = next((entry for entry in items if entry.get("idCustomField") == field_id), None)
        return custom_field_to_value(item)

    # writing

    def write_task(self, record: TaskRecord, mode: WriteMode) -> None:
        if mode is WriteMode.ALL:
            self.write_full_task(record)
            return
        dirty = record.dirty_fields()
        if dirty:
            self.write_changed_fields(record, dirty)

    def write_full_task(self, record: TaskRecord) -> TaskRecord:
        record.clear_dirty()
        raw_custom = self.customs_to_raw(record)
        self.write_or_create(record)
        self._update_all_fields(record.board_id, raw_custom)
        record.created_on_board = record.is_dirty(Field.BOARD_ID)
        if record.created_on_board:
            logger.info("Card '%s' created on the board", record.name)
        else:
            logger.info("Card '%s' updated on the board", record.name)
        return record

    def write_changed_fields(self, record: TaskRecord, dirty_fields: Iterable[Field]) -> None:
        if record.board_id is None:
            self.write_full_task(record)
            return
        staged: Dict[str, Dict[str, Any]] = {}
        main_written = False
        custom = self._layout.custom_fields
        for task_field in _in_field_order(dirty_fields):
            if task_field in MAIN_FIELDS:
                if not main_written:
                    self.write_or_create(record)
                    main_written = True
            elif task_field is Field.CATEGORIES:
                staged.update(self.serialise_categories(record))
            elif task_field is Field.TAGS:
                staged[custom.tags] = self.serialise_tags(record)
            elif task_field in custom.scalar_fields():
                staged[custom.scalar_fields()[task_field]] = self._custom_value(record, task_field)
            elif task_field is not Field.BOARD_ID:
                logger.debug("Field '%s' is not stored on the board", task_field.value)
        self._update_all_fields(record.board_id, staged)

    def write_or_create(self, record: TaskRecord) -> RawCard:
        """Update the card's main fields, creating the card when it is gone."""

        if record.board_id:
            try:
                return self._service.update_card_main_fields(record.board_id, self.main_to_raw(record))
            except NotFoundError:
                logger.info("Updating card '%s' failed; creating a new card", record.name)
                return self.create_card(record)
        return self.create_card(record)

    def create_card(self, record: TaskRecord) -> RawCard:
        categories = record.categories()
        list_id = self._layout.list_for_category(categories[0]) if categories else None
        if list_id is None:
            if categories:
                logger.warning(
                    "No list for category %s of card '%s'; using the default list",
                    categories[0].name,
                    record.name,
                )
            list_id = self._layout.default_list_id
        raw_main = self.main_to_raw(record)
        raw_main.pop("id", None)
        raw_main["idList"] = list_id
        response = self._service.create_card(raw_main)
        record.set(Field.BOARD_ID, response["id"])
        return response

    def delete_card(self, record: TaskRecord) -> None:
        if record.board_id:
            self._service.delete_card(record.board_id)

    def propagate_category_change(self, record: TaskRecord) -> None:
        self._update_all_fields(record.board_id, self.serialise_categories(record))
        logger.info("Card '%s' (%s) category change propagated", record.name, record.board_id)

    def update_other_id(self, record: TaskRecord) -> None:
        self._service.update_custom_field(
            record.board_id,
            self._layout.custom_fields.program_id,
            self._custom_value(record, Field.PROGRAM_ID),
        )

    def replace_webhooks(self, card_ids: Iterable[str], callback_url: str) -> int:
        for webhook in self._service.list_webhooks():
            self._service.delete_webhook(webhook["id"])
        created = 0
        for card_id in card_ids:
            logger.info("Creating webhook for card %s", card_id)
            self._service.create_webhook(card_id, callback_url)
            created += 1
        return created

    # serialisation

    def main_to_raw(self, record: TaskRecord) -> Dict[str, Any]:
        return {
            "id": record.board_id,
            "desc": record.get(Field.DESCRIPTION) or "",
            "name": record.get(Field.NAME) or "",
        }

    def serialise_categories(self, record: TaskRecord) -> Dict[str, Dict[str, Any]]:
        categories = record.categories()
        checked = value_to_custom_field(True)
        return {
            field_id: checked if category in categories else to_raw(CLEARED)
            for category, field_id in self._layout.custom_fields.category_fields().items()
        }

    def serialise_tags(self, record: TaskRecord) -> Dict[str, Any]:
        tags = record.get(Field.TAGS) or []
        return value_to_custom_field(", ".join(tags))

    def customs_to_raw(self, record: TaskRecord) -> Dict[str, Dict[str, Any]]:
        custom = self._layout.custom_fields
        raw_custom = self.serialise_categories(record)
        raw_custom[custom.tags] = self.serialise_tags(record)
        for task_field, field_id in custom.scalar_fields().items():
            raw_custom[field_id] = self._custom_value(record, task_field)
        return raw_custom

    def _custom_value(self, record: TaskRecord, task_field: Field) -> Dict[str, Any]:
        value = record.get(task_field)
        if value is None:
            return to_raw(CLEARED)
        return value_to_custom_field(value)

    def _update_all_fields(self, card_id: str | None, raw_custom: Mapping[str, Dict[str, Any]]) -> None:
        # one request at a time; the client throttle spaces them out
        for field_id, raw_value in raw_custom.items():
            self._service.update_custom_field(card_id, field_id, raw_value)


def split_tags(value: Any) -> List[str]:
    if not value or not isinstance(value, str):
        return []
    return [tag.strip() for tag in value.split(",") if tag.strip()]


def normalise_program_id(value: Any) -> Any:
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        if stripped.isdigit():
            return int(stripped)
        return stripped
    if isinstance(value, bool):
        return None
    return value


def _ordered(categories: Iterable[Category]) -> List[Category]:
    return sorted(categories, key=int)


def _in_field_order(fields: Iterable[Field]) -> List[Field]:
    wanted = set(fields)
    return [task_field for task_field in Field if task_field in wanted]


__all__ = [
    "BoardAdapter",
    "BoardCustomFields",
    "BoardLayout",
    "normalise_program_id",
    "split_tags",
]
