"""Program task API client implementing the program service port."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping

import requests

from taskbridge.adapters.tasks.utils import EnvSecret, MinIntervalThrottle, read_snapshot
from taskbridge.ports.tasks.services import (
    NotFoundError,
    ProgramService,
    RawTask,
    RemoteServiceError,
    ServiceConfigError,
    TaskPage,
)

DEFAULT_BASE_URL = "https://codein.withgoogle.com/api/program/current"


@dataclass
class ProgramAuthConfig:
    token_env: str | None

    def resolve(self) -> str:
        return EnvSecret("program api token", self.token_env).resolve()


class ProgramTaskClient(ProgramService):
    def __init__(
        self,
        auth: ProgramAuthConfig,
        *,
        session: requests.Session | None = None,
        throttle: MinIntervalThrottle | None = None,
        base_url: str = DEFAULT_BASE_URL,
        snapshot_path: str | None = None,
        timeout: float = 30,
    ) -> None:
        self._auth = auth
        self._session = session or requests.Session()
        self._throttle = throttle or MinIntervalThrottle(0)
        self._base_url = base_url.rstrip("/")
        self._snapshot_path = snapshot_path
        self._timeout = timeout

    @property
    def read_only(self) -> bool:
        return self._snapshot_path is not None

    def fetch_task_page(self, page_token: str | None) -> TaskPage:
        if self._snapshot_path:
            return self._load_snapshot(self._snapshot_path)
        url = page_token or f"{self._base_url}/tasks/?page=1"
        payload = self._request("GET", url)
        if not isinstance(payload, dict):
            raise RemoteServiceError("program task page must be an object")
        results = payload.get("results")
        if not isinstance(results, list):
            raise RemoteServiceError("program task page missing 'results' list")
        return TaskPage(
            results=[item for item in results if isinstance(item, dict)],
            next=payload.get("next") or None,
        )

    def update_task(self, task_id: Any, fields: Mapping[str, Any]) -> RawTask:
        self._ensure_writable()
        return self._request("PATCH", f"{self._base_url}/tasks/{task_id}/", json=dict(fields))

    def create_task(self, fields: Mapping[str, Any]) -> RawTask:
        self._ensure_writable()
        return self._request("POST", f"{self._base_url}/tasks/", json=dict(fields))

    def _ensure_writable(self) -> None:
        if self._snapshot_path:
            raise ServiceConfigError("program service is backed by a read-only snapshot")

    def _load_snapshot(self, path: str) -> TaskPage:
        payload = read_snapshot(path)
        tasks: List[Dict[str, Any]]
        if isinstance(payload, dict):
            data = payload.get("results", payload.get("tasks"))
            if not isinstance(data, list):
                raise ServiceConfigError("program snapshot missing 'results' list")
            tasks = data
        elif isinstance(payload, list):
            tasks = payload
        else:
            raise ServiceConfigError("program snapshot must be an object or list")
        return TaskPage(results=[item for item in tasks if isinstance(item, dict)], next=None)

    def _request(self, method: str, url: str, *, json: Dict[str, Any] | None = None) -> Any:
        token = self._auth.resolve()
        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {token}",
        }
        self._throttle.wait()
        try:
            response = self._session.request(method, url, json=json, headers=headers, timeout=self._timeout)
        except requests.RequestException as exc:
            raise RemoteServiceError(f"program request {method} {url} failed: {exc}") from exc
        if response.status_code == 404:
            raise NotFoundError(f"program entity not found: {method} {url}", status_code=404)
        if response.status_code >= 400:
            raise RemoteServiceError(
                f"program request failed: {response.status_code} {response.text}",
                status_code=response.status_code,
            )
        if not response.content:
            return None
        return response.json()


__all__ = ["ProgramAuthConfig", "ProgramTaskClient"]
