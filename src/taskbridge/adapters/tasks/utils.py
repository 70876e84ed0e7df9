"""Shared helpers for remote service adapters."""

from __future__ import annotations

import json
import os
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from taskbridge.ports.tasks.services import ServiceConfigError


class MinIntervalThrottle:
    """Keeps successive calls to one service at least ``interval`` seconds apart.

    Shared by every caller of a client, whichever thread they run on.
    """

    def __init__(
        self,
        interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if interval < 0:
            raise ValueError("throttle interval must be non-negative")
        self._interval = float(interval)
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last: float | None = None

    @property
    def interval(self) -> float:
        return self._interval

    def wait(self) -> None:
        with self._lock:
            now = self._clock()
            if self._last is not None:
                remaining = self._interval - (now - self._last)
                if remaining > 0:
                    self._sleep(remaining)
                    now = self._clock()
            self._last = now


@dataclass(frozen=True)
class EnvSecret:
    """A credential looked up from the environment when first needed."""

    label: str
    env: str | None

    def resolve(self) -> str:
        if not self.env:
            raise ServiceConfigError(f"{self.label} requires an environment variable name")
        value = os.environ.get(self.env)
        if not value:
            raise ServiceConfigError(f"{self.label} missing in environment variable '{self.env}'")
        return value


def read_snapshot(path: str | Path) -> Any:
    """Load a JSON snapshot of remote payloads."""

    file_path = Path(path)
    if not file_path.exists():
        raise ServiceConfigError(f"snapshot not found at {file_path}")
    try:
        return json.loads(file_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ServiceConfigError(f"snapshot is not valid JSON: {exc}") from exc


__all__ = ["EnvSecret", "MinIntervalThrottle", "read_snapshot"]
