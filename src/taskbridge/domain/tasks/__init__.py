"""Task domain exports."""

from .models import (
    DEFAULT_FIELD_VALUES,
    Category,
    Field,
    FieldError,
    TaskRecord,
    WriteMode,
)
from .registry import BatchResult, LoadResult, TaskRegistry

__all__ = [
    "BatchResult",
    "Category",
    "DEFAULT_FIELD_VALUES",
    "Field",
    "FieldError",
    "LoadResult",
    "TaskRecord",
    "TaskRegistry",
    "WriteMode",
]
