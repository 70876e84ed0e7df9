"""In-memory registry unifying task records across both id namespaces."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Mapping, Protocol, Tuple

from taskbridge.ports.tasks.services import RemoteServiceError

from .models import Category, Field, TaskRecord, WriteMode

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


class LoadingAdapter(Protocol):
    def load_all(self, registry: "TaskRegistry") -> "LoadResult": ...


class WritingAdapter(Protocol):
    name: str

    def write_task(self, record: TaskRecord, mode: WriteMode) -> Any: ...


@dataclass
class BatchResult:
    service: str
    written: List[TaskRecord] = field(default_factory=list)
    failed: List[Tuple[TaskRecord, Exception]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> Dict[str, int]:
        return {"written": len(self.written), "failed": len(self.failed)}


@dataclass
class LoadResult:
    service: str
    loaded: int = 0
    follow_ups: List[TaskRecord] = field(default_factory=list)
    failed: List[Tuple[TaskRecord, Exception]] = field(default_factory=list)

    def summary(self) -> Dict[str, int]:
        return {
            "loaded": self.loaded,
            "follow_ups": len(self.follow_ups),
            "failed": len(self.failed),
        }


class TaskRegistry:
    """Owns every task record of a run, indexed by board id and program id."""

    def __init__(
        self,
        *,
        board_id: str | None = None,
        category_lists: Mapping[Category, str] | None = None,
        defaults: Mapping[Field | str, Any] | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> None:
        self._board_id = board_id
        self._category_lists: Dict[Category, str] = dict(category_lists or {})
        self._defaults = defaults
        self._max_workers = max(1, int(max_workers))
        self._records: List[TaskRecord] = []
        self._by_board: Dict[Any, TaskRecord] = {}
        self._by_program: Dict[Any, TaskRecord] = {}
        self._lock = threading.RLock()

    @property
    def board_id(self) -> str | None:
        return self._board_id

    @property
    def category_lists(self) -> Mapping[Category, str]:
        return dict(self._category_lists)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[TaskRecord]:
        with self._lock:
            return iter(list(self._records))

    def find_by_board_id(self, board_id: Any) -> TaskRecord | None:
        with self._lock:
            return self._by_board.get(board_id)

    def find_by_program_id(self, program_id: Any) -> TaskRecord | None:
        with self._lock:
            return self._by_program.get(program_id)

    def find_or_create_by_board_id(self, board_id: Any) -> TaskRecord:
        with self._lock:
            record = self._by_board.get(board_id)
            if record is None:
                record = self._append_new()
                record.set(Field.BOARD_ID, board_id)
            return record

    def find_or_create_by_program_id(self, program_id: Any) -> TaskRecord:
        with self._lock:
            record = self._by_program.get(program_id)
            if record is None:
                record = self._append_new()
                record.set(Field.PROGRAM_ID, program_id)
            return record

    def find_or_create_by_predicate(self, predicate: Callable[[TaskRecord], bool]) -> TaskRecord:
        with self._lock:
            for record in self._records:
                if predicate(record):
                    return record
            return self._append_new()

    def find_or_create_matching(self, board_id: Any, program_id: Any = None) -> TaskRecord:
        """Match by board id first, then by program id; create on a miss."""

        with self._lock:
            record = self._by_board.get(board_id) if board_id is not None else None
            if record is None and program_id is not None:
                record = self._by_program.get(program_id)
            if record is None:
                record = self._append_new()
                if board_id is not None:
                    record.set(Field.BOARD_ID, board_id)
            return record

    def load_all_from_board(self, adapter: LoadingAdapter) -> LoadResult:
        return adapter.load_all(self)

    def load_all_from_program(self, adapter: LoadingAdapter) -> LoadResult:
        return adapter.load_all(self)

    def write_all_to_board(self, adapter: WritingAdapter, mode: WriteMode) -> BatchResult:
        return self._write_all(adapter, mode)

    def write_all_to_program(self, adapter: WritingAdapter, mode: WriteMode) -> BatchResult:
        return self._write_all(adapter, mode)

    def reset_dirty(self) -> None:
        for record in self:
            record.clear_dirty()

    def _write_all(self, adapter: WritingAdapter, mode: WriteMode) -> BatchResult:
        records = list(self)
        result = BatchResult(service=adapter.name)
        logger.info("Writing %d tasks to %s (%s)", len(records), adapter.name, mode.value)
        if not records:
            return result

        def _write(record: TaskRecord) -> Exception | None:
            try:
                adapter.write_task(record, mode)
            except RemoteServiceError as exc:
                return exc
            return None

        with ThreadPoolExecutor(max_workers=min(self._max_workers, len(records))) as pool:
            outcomes = list(pool.map(_write, records))

        for record, error in zip(records, outcomes):
            if error is None:
                result.written.append(record)
                continue
            logger.error("Writing task '%s' to %s failed: %s", record.name, adapter.name, error)
            result.failed.append((record, error))
        return result

    def _append_new(self) -> TaskRecord:
        record = TaskRecord(self._defaults, on_identity_change=self._reindex)
        self._records.append(record)
        return record

    def _reindex(self, record: TaskRecord, key: Field, previous: Any, current: Any) -> None:
        index = self._by_board if key is Field.BOARD_ID else self._by_program
        with self._lock:
            if previous is not None and index.get(previous) is record:
                del index[previous]
            if current is None:
                return
            existing = index.get(current)
            if existing is not None and existing is not record:
                logger.warning(
                    "Task '%s' takes over %s %r from task '%s'",
                    record.name,
                    key.value,
                    current,
                    existing.name,
                )
            index[current] = record


__all__ = ["BatchResult", "LoadResult", "TaskRegistry"]
