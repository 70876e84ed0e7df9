"""HTTP receiver turning board webhook deliveries into remote events."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, HTTPServer
from socketserver import ThreadingMixIn
from urllib.parse import urlparse

from taskbridge.adapters.tasks.custom_fields import UnsupportedTypeError
from taskbridge.app.tasks.service import RemoteEvent, TaskSyncService
from taskbridge.ports.tasks.services import RemoteServiceError, ServiceConfigError
from taskbridge.settings import SETTINGS, RuntimeSettings
from taskbridge.utils.telemetry import record_structured_event

logger = logging.getLogger(__name__)

MAX_BODY_BYTES = 1024 * 1024


@dataclass
class WebhookReceiverConfig:
    host: str = "127.0.0.1"
    port: int = 8080
    path: str = "/webhook"


class ThreadedHTTPServer(ThreadingMixIn, HTTPServer):
    daemon_threads = True


class WebhookReceiver:
    """Serves the webhook callback url and forwards events to the sync service."""

    def __init__(
        self,
        service: TaskSyncService,
        config: WebhookReceiverConfig,
        *,
        settings: RuntimeSettings = SETTINGS,
    ) -> None:
        self._service = service
        self._config = config
        self._settings = settings

    @property
    def config(self) -> WebhookReceiverConfig:
        return self._config

    def dispatch(self, body: dict) -> tuple[HTTPStatus, dict[str, object]]:
        try:
            event = RemoteEvent.from_webhook(body)
        except ValueError as exc:
            return HTTPStatus.BAD_REQUEST, {"status": "error", "message": str(exc)}
        try:
            handled = self._service.handle_remote_event(event)
        except RemoteServiceError as exc:
            logger.error("Webhook event %s for card %s failed: %s", event.type, event.card_id, exc)
            self._record(event, status="error", message=str(exc))
            return HTTPStatus.BAD_GATEWAY, {"status": "error", "message": str(exc)}
        except UnsupportedTypeError as exc:
            logger.error("Webhook event %s for card %s has an unreadable value: %s", event.type, event.card_id, exc)
            self._record(event, status="error", message=str(exc))
            return HTTPStatus.UNPROCESSABLE_ENTITY, {"status": "error", "message": str(exc)}
        except ServiceConfigError as exc:
            logger.error("Webhook event %s for card %s cannot be forwarded: %s", event.type, event.card_id, exc)
            self._record(event, status="error", message=str(exc))
            return HTTPStatus.INTERNAL_SERVER_ERROR, {"status": "error", "message": str(exc)}
        status = "applied" if handled else "ignored"
        self._record(event, status=status)
        return HTTPStatus.OK, {"status": status, "type": event.type, "card": event.card_id}

    def _record(self, event: RemoteEvent, *, status: str, message: str | None = None) -> None:
        payload: dict[str, object] = {"type": event.type, "card_id": event.card_id}
        if message:
            payload["message"] = message
        record_structured_event(
            self._settings,
            "webhook.event",
            status=status,
            level="error" if status == "error" else "info",
            component="webhooks",
            payload=payload,
        )

    def create_server(self) -> ThreadedHTTPServer:
        app = self
        config = self._config

        class Handler(BaseHTTPRequestHandler):
            def log_message(self, format: str, *args: object) -> None:  # noqa: A003 - routed to logging
                logger.debug("webhook %s - %s", self.address_string(), format % args)

            def _write_json(self, status: HTTPStatus, payload: dict[str, object]) -> None:
                data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
                self.send_response(status)
                self.send_header("Content-Type", "application/json; charset=utf-8")
                self.send_header("Content-Length", str(len(data)))
                self.end_headers()
                self.wfile.write(data)

            def do_HEAD(self) -> None:  # noqa: N802
                # the board probes the callback url with HEAD before registering
                if urlparse(self.path).path == config.path:
                    self.send_response(HTTPStatus.OK)
                else:
                    self.send_response(HTTPStatus.NOT_FOUND)
                self.end_headers()

            def do_GET(self) -> None:  # noqa: N802
                if urlparse(self.path).path == "/healthz":
                    self._write_json(HTTPStatus.OK, {"status": "ok", "tasks": len(app._service.registry)})
                    return
                self.send_response(HTTPStatus.NOT_FOUND)
                self.end_headers()

            def do_POST(self) -> None:  # noqa: N802
                if urlparse(self.path).path != config.path:
                    self.send_response(HTTPStatus.NOT_FOUND)
                    self.end_headers()
                    return
                try:
                    length = int(self.headers.get("Content-Length") or 0)
                except ValueError:
                    length = -1
                if length <= 0 or length > MAX_BODY_BYTES:
                    self._write_json(HTTPStatus.BAD_REQUEST, {"status": "error", "message": "invalid body length"})
                    return
                try:
                    body = json.loads(self.rfile.read(length).decode("utf-8"))
                except (UnicodeDecodeError, json.JSONDecodeError):
                    self._write_json(HTTPStatus.BAD_REQUEST, {"status": "error", "message": "body is not JSON"})
                    return
                if not isinstance(body, dict):
                    self._write_json(HTTPStatus.BAD_REQUEST, {"status": "error", "message": "body must be object"})
                    return
                status, payload = app.dispatch(body)
                self._write_json(status, payload)

        return ThreadedHTTPServer((config.host, config.port), Handler)


__all__ = ["WebhookReceiver", "WebhookReceiverConfig"]
