"""Ports for the remote services a sync talks to."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping


class RemoteServiceError(RuntimeError):
    """Raised when a remote service call fails."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(RemoteServiceError):
    """Raised when the remote entity addressed by a call no longer exists."""


class ServiceConfigError(RuntimeError):
    """Raised when a service client is misconfigured or lacks credentials."""


RawCard = Dict[str, Any]
RawTask = Dict[str, Any]


@dataclass(frozen=True)
class TaskPage:
    results: List[RawTask] = field(default_factory=list)
    next: str | None = None


class BoardService(ABC):
    """Kanban board holding one card per task."""

    @abstractmethod
    def fetch_all_cards(self) -> List[RawCard]:
        """Return every open card on the board, custom field items included."""

    @abstractmethod
    def update_card_main_fields(self, card_id: str, fields: Mapping[str, Any]) -> RawCard:
        """Update name/description; raises :class:`NotFoundError` for a missing card."""

    @abstractmethod
    def create_card(self, fields: Mapping[str, Any]) -> RawCard:
        """Create a card and return its raw representation."""

    @abstractmethod
    def delete_card(self, card_id: str) -> None:
        """Delete a card."""

    @abstractmethod
    def update_custom_field(self, card_id: str, field_id: str, raw_value: Mapping[str, Any]) -> None:
        """Set a single custom field item on a card."""

    @abstractmethod
    def list_webhooks(self) -> List[Dict[str, Any]]:
        """Return the webhooks registered by this integration."""

    @abstractmethod
    def delete_webhook(self, webhook_id: str) -> None:
        """Delete a webhook."""

    @abstractmethod
    def create_webhook(self, card_id: str, callback_url: str) -> Dict[str, Any]:
        """Register a webhook watching ``card_id``."""


class ProgramService(ABC):
    """Cursor-paginated program task API."""

    @abstractmethod
    def fetch_task_page(self, page_token: str | None) -> TaskPage:
        """Fetch one page; ``None`` requests the first page."""

    @abstractmethod
    def update_task(self, task_id: Any, fields: Mapping[str, Any]) -> RawTask:
        """Update a task; raises :class:`NotFoundError` for a missing task."""

    @abstractmethod
    def create_task(self, fields: Mapping[str, Any]) -> RawTask:
        """Create a task and return its raw representation."""

    def iter_tasks(self) -> Iterator[RawTask]:
        token: str | None = None
        while True:
            page = self.fetch_task_page(token)
            yield from page.results
            if not page.next:
                return
            token = page.next


__all__ = [
    "BoardService",
    "NotFoundError",
    "ProgramService",
    "RawCard",
    "RawTask",
    "RemoteServiceError",
    "ServiceConfigError",
    "TaskPage",
]
