"""Trello REST client implementing the board service port."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping

import requests

from taskbridge.adapters.tasks.utils import EnvSecret, MinIntervalThrottle
from taskbridge.ports.tasks.services import (
    BoardService,
    NotFoundError,
    RawCard,
    RemoteServiceError,
)

DEFAULT_BASE_URL = "https://api.trello.com/1"
DEFAULT_MIN_INTERVAL = 0.3


@dataclass
class TrelloAuthConfig:
    key_env: str | None
    token_env: str | None

    def resolve(self) -> tuple[str, str]:
        key = EnvSecret("board api key", self.key_env).resolve()
        token = EnvSecret("board api token", self.token_env).resolve()
        return key, token


class TrelloBoardClient(BoardService):
    def __init__(
        self,
        board_id: str,
        auth: TrelloAuthConfig,
        *,
        session: requests.Session | None = None,
        throttle: MinIntervalThrottle | None = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30,
    ) -> None:
        self._board_id = board_id
        self._auth = auth
        self._session = session or requests.Session()
        self._throttle = throttle or MinIntervalThrottle(DEFAULT_MIN_INTERVAL)
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._credentials: tuple[str, str] | None = None

    def fetch_all_cards(self) -> List[RawCard]:
        payload = self._request(
            "GET",
            f"/boards/{self._board_id}/cards",
            params={"customFieldItems": "true", "filter": "open"},
        )
        if not isinstance(payload, list):
            raise RemoteServiceError("board cards response must be a list")
        return [card for card in payload if isinstance(card, dict)]

    def update_card_main_fields(self, card_id: str, fields: Mapping[str, Any]) -> RawCard:
        return self._request("PUT", f"/cards/{card_id}", json=dict(fields))

    def create_card(self, fields: Mapping[str, Any]) -> RawCard:
        return self._request("POST", "/cards", json=dict(fields))

    def delete_card(self, card_id: str) -> None:
        self._request("DELETE", f"/cards/{card_id}")

    def update_custom_field(self, card_id: str, field_id: str, raw_value: Mapping[str, Any]) -> None:
        self._request("PUT", f"/card/{card_id}/customField/{field_id}/item", json=dict(raw_value))

    def list_webhooks(self) -> List[Dict[str, Any]]:
        _, token = self._resolve_credentials()
        payload = self._request("GET", f"/tokens/{token}/webhooks")
        return list(payload or [])

    def delete_webhook(self, webhook_id: str) -> None:
        self._request("DELETE", f"/webhooks/{webhook_id}")

    def create_webhook(self, card_id: str, callback_url: str) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/webhooks",
            json={
                "callbackURL": callback_url,
                "idModel": card_id,
                "description": f"taskbridge card {card_id}",
            },
        )

    def _resolve_credentials(self) -> tuple[str, str]:
        if self._credentials is None:
            self._credentials = self._auth.resolve()
        return self._credentials

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Dict[str, Any] | None = None,
        json: Dict[str, Any] | None = None,
    ) -> Any:
        key, token = self._resolve_credentials()
        query = {"key": key, "token": token}
        if params:
            query.update(params)
        self._throttle.wait()
        try:
            response = self._session.request(
                method,
                f"{self._base_url}{path}",
                params=query,
                json=json,
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise RemoteServiceError(f"board request {method} {path} failed: {exc}") from exc
        if response.status_code == 404:
            raise NotFoundError(
                f"board entity not found: {method} {path}",
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            raise RemoteServiceError(
                f"board request failed: {response.status_code} {response.text}",
                status_code=response.status_code,
            )
        if not response.content:
            return None
        return response.json()


__all__ = ["TrelloAuthConfig", "TrelloBoardClient"]
