"""Task record model shared by the board and program sides of a sync."""

from __future__ import annotations

import copy
import logging
from enum import Enum, IntEnum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Set

logger = logging.getLogger(__name__)


class FieldError(LookupError):
    """Raised when a record is accessed with an unknown field identifier."""


class Field(str, Enum):
    BOARD_ID = "board_id"
    PROGRAM_ID = "program_id"
    NAME = "name"
    DESCRIPTION = "description"
    STATUS = "status"
    MAX_INSTANCES = "max_instances"
    MENTORS = "mentors"
    TAGS = "tags"
    IS_BEGINNER = "is_beginner"
    CATEGORIES = "categories"
    DAYS = "days"
    EXTERNAL_URL = "external_url"
    LAST_MODIFIED = "last_modified"
    CLAIMED_COUNT = "claimed_count"
    AVAILABLE_COUNT = "available_count"
    COMPLETED_COUNT = "completed_count"


class Category(IntEnum):
    """Work classifications, numbered as the program service numbers them."""

    CODING = 1
    DESIGN = 2
    DOCS_TRAINING = 3
    QA = 4
    OUTRESEARCH = 5


class WriteMode(str, Enum):
    ALL = "all"
    ONLY_CHANGED = "changed"


IDENTITY_FIELDS = frozenset({Field.BOARD_ID, Field.PROGRAM_ID})

READ_ONLY_FIELDS = frozenset(
    {
        Field.LAST_MODIFIED,
        Field.CLAIMED_COUNT,
        Field.AVAILABLE_COUNT,
        Field.COMPLETED_COUNT,
    }
)

DEFAULT_FIELD_VALUES: Dict[Field, Any] = {
    Field.STATUS: 1,
    Field.MAX_INSTANCES: 1,
    Field.MENTORS: [],
    Field.TAGS: [],
    Field.IS_BEGINNER: False,
    Field.CATEGORIES: [],
    Field.DAYS: 3,
}

IdentityListener = Callable[["TaskRecord", Field, Any, Any], None]


def coerce_field(field: Field | str) -> Field:
    if isinstance(field, Field):
        return field
    try:
        return Field(field)
    except ValueError as exc:
        raise FieldError(f"unknown task field '{field}'") from exc


def is_empty_value(value: Any) -> bool:
    """Return True for values that carry no information for a field."""

    if value is None:
        return True
    if isinstance(value, (str, list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


class TaskRecord:
    """One unit of work, unified across the board and program services.

    Fields are restricted to :class:`Field`. Every write goes through
    :meth:`set` (directly or via :meth:`set_if_meaningful`) and marks the
    field dirty until :meth:`clear_dirty` is called.
    """

    def __init__(
        self,
        defaults: Mapping[Field | str, Any] | None = None,
        *,
        on_identity_change: IdentityListener | None = None,
    ) -> None:
        self._values: Dict[Field, Any] = {field: None for field in Field}
        source = DEFAULT_FIELD_VALUES if defaults is None else defaults
        for key, value in source.items():
            self._values[coerce_field(key)] = copy.deepcopy(value)
        self._dirty: Set[Field] = set()
        self._on_identity_change = on_identity_change

        self.created_on_board = False
        self.created_on_program = False
        self.category_inferred = False

    def __repr__(self) -> str:
        return (
            f"TaskRecord(name={self._values[Field.NAME]!r}, "
            f"board_id={self.board_id!r}, program_id={self.program_id!r})"
        )

    @property
    def board_id(self) -> str | None:
        return self._values[Field.BOARD_ID]

    @property
    def program_id(self) -> Any:
        return self._values[Field.PROGRAM_ID]

    @property
    def name(self) -> str | None:
        return self._values[Field.NAME]

    @property
    def is_linked(self) -> bool:
        return self.board_id is not None and self.program_id is not None

    def get(self, field: Field | str) -> Any:
        return self._values[coerce_field(field)]

    def set(self, field: Field | str, value: Any) -> None:
        key = coerce_field(field)
        previous = self._values[key]
        self._values[key] = value
        self._dirty.add(key)
        if key in IDENTITY_FIELDS and previous != value and self._on_identity_change is not None:
            self._on_identity_change(self, key, previous, value)

    def set_if_meaningful(self, field: Field | str, value: Any) -> None:
        """Write ``value`` unless it is empty and would erase a known value."""

        if self.get(field) is not None and is_empty_value(value):
            return
        self.set(field, value)

    def is_dirty(self, field: Field | str) -> bool:
        return coerce_field(field) in self._dirty

    def dirty_fields(self) -> FrozenSet[Field]:
        return frozenset(self._dirty)

    def clear_dirty(self) -> None:
        self._dirty = set()

    def categories(self) -> List[Category]:
        return list(self._values[Field.CATEGORIES] or [])

    def add_category(self, category: Category | int) -> None:
        category = Category(category)
        current = self.categories()
        if category in current:
            return
        current.append(category)
        self.set(Field.CATEGORIES, current)

    def remove_category(self, category: Category | int) -> None:
        category = Category(category)
        current = self.categories()
        if category not in current:
            logger.warning(
                "Attempted to remove task '%s' (%s) from category %s it was not in",
                self.name,
                self.program_id,
                category.name,
            )
            return
        current.remove(category)
        self.set(Field.CATEGORIES, current)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for field, value in self._values.items():
            if field is Field.CATEGORIES and value is not None:
                value = [int(category) for category in value]
            payload[field.value] = value
        return payload

    def reset_flags(self) -> None:
        self.created_on_board = False
        self.created_on_program = False
        self.category_inferred = False


def parse_categories(values: Iterable[Any]) -> List[Category]:
    """Convert raw category ids, skipping ones the model does not know."""

    result: List[Category] = []
    for raw in values:
        try:
            category = Category(int(raw))
        except (TypeError, ValueError):
            logger.warning("Ignoring unknown category id %r", raw)
            continue
        if category not in result:
            result.append(category)
    return result


__all__ = [
    "Category",
    "DEFAULT_FIELD_VALUES",
    "Field",
    "FieldError",
    "IDENTITY_FIELDS",
    "READ_ONLY_FIELDS",
    "TaskRecord",
    "WriteMode",
    "coerce_field",
    "is_empty_value",
    "parse_categories",
]
