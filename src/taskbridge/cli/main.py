#!/usr/bin/env python3
"""Entry point for the taskbridge CLI."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from textwrap import dedent

from taskbridge import __version__
from taskbridge.app.tasks import (
    SyncConfigError,
    SyncReport,
    TaskSyncError,
    TaskSyncService,
    load_sync_config,
)
from taskbridge.app.tasks.webhooks import WebhookReceiver, WebhookReceiverConfig
from taskbridge.domain.tasks import WriteMode
from taskbridge.ports.tasks.services import RemoteServiceError, ServiceConfigError
from taskbridge.settings import SETTINGS
from taskbridge.utils.telemetry import record_structured_event

HELP_OVERVIEW = dedent(
    """
    Keep board cards and program tasks in step.

    Commands:
      - taskbridge sync               - load both services, then write every task back
      - taskbridge load               - load both services and report what was found
      - taskbridge webhooks refresh   - re-register one board webhook per card
      - taskbridge serve              - receive board webhooks and forward changes

    Configuration lives in config/taskbridge.json (or pass --config).
    """
)

logger = logging.getLogger("taskbridge")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def _default_project_path(path_arg: str | None) -> Path:
    if path_arg:
        return Path(path_arg).expanduser().resolve()
    return Path.cwd()


def _build_service(project_path: Path, config_arg: str | None) -> TaskSyncService:
    config_path: Path | None = None
    if config_arg:
        candidate = Path(config_arg)
        config_path = candidate if candidate.is_absolute() else (project_path / candidate).resolve()
    config = load_sync_config(project_path, config_path)
    return TaskSyncService.from_config(config)


def _service_or_none(args: argparse.Namespace) -> TaskSyncService | None:
    project_path = _default_project_path(getattr(args, "path", None))
    try:
        return _build_service(project_path, getattr(args, "config", None))
    except (SyncConfigError, TaskSyncError) as exc:
        print(str(exc), file=sys.stderr)
        return None


def _sync_cmd(args: argparse.Namespace) -> int:
    service = _service_or_none(args)
    if service is None:
        return 1
    mode = WriteMode(getattr(args, "mode", WriteMode.ALL.value))
    started = time.monotonic()
    try:
        report = service.sync(mode)
    except (RemoteServiceError, ServiceConfigError) as exc:
        print(f"sync.failed: {exc}", file=sys.stderr)
        record_structured_event(
            SETTINGS,
            "sync.write",
            level="error",
            status="error",
            component="sync",
            payload={"mode": mode.value, "message": str(exc)},
        )
        return 1
    duration_ms = (time.monotonic() - started) * 1000

    _print_sync_report(report, as_json=getattr(args, "json", False))
    record_structured_event(
        SETTINGS,
        "sync.write",
        status="success" if report.ok else "partial",
        level="info" if report.ok else "warn",
        component="sync",
        duration_ms=duration_ms,
        payload=report.to_dict(),
    )
    return 0 if report.ok else 2


def _print_sync_report(report: SyncReport, *, as_json: bool) -> None:
    if as_json:
        print(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))
        return
    load = report.load.to_dict()
    write = report.write.to_dict()
    print(f"Tasks: {report.tasks} ({report.linked} linked)")
    print(
        "Loaded: board={board} program={program} categories_inferred={inferred}".format(
            board=load["board"]["loaded"],
            program=load["program"]["loaded"],
            inferred=load["board"]["follow_ups"],
        )
    )
    print(
        "Written ({mode}): board={board_ok}/{board_failed} failed, program={program_ok}/{program_failed} failed".format(
            mode=write["mode"],
            board_ok=write["board"]["written"],
            board_failed=write["board"]["failed"],
            program_ok=write["program"]["written"],
            program_failed=write["program"]["failed"],
        )
    )
    if report.write.relinked:
        print(f"Cards linked to new program tasks: {report.write.relinked}")
    for record, error in report.write.board.failed + report.write.program.failed:
        print(f"  ! {record.name or record.board_id}: {error}")
    for failure in report.write.failures:
        print(f"  ! {failure}")


def _load_cmd(args: argparse.Namespace) -> int:
    service = _service_or_none(args)
    if service is None:
        return 1
    try:
        report = service.load_all()
    except (RemoteServiceError, ServiceConfigError) as exc:
        print(f"load.failed: {exc}", file=sys.stderr)
        return 1
    records = list(service.registry)
    payload = {
        "tasks": len(records),
        "linked": sum(1 for record in records if record.is_linked),
        "load": report.to_dict(),
        "inferred": [record.board_id for record in report.board.follow_ups],
    }
    if getattr(args, "json", False):
        output = dict(payload, records=[record.to_dict() for record in records])
        print(json.dumps(output, ensure_ascii=False, indent=2))
    else:
        print(f"Tasks: {payload['tasks']} ({payload['linked']} linked)")
        for record in records:
            marker = "=" if record.is_linked else "~"
            print(f"  {marker} {record.name} [board={record.board_id} program={record.program_id}]")
    record_structured_event(SETTINGS, "sync.load", status="success", component="sync", payload=payload)
    return 0


def _webhooks_cmd(args: argparse.Namespace) -> int:
    service = _service_or_none(args)
    if service is None:
        return 1
    try:
        service.load_all()
        created = service.refresh_webhooks(args.callback_url)
    except (RemoteServiceError, ServiceConfigError) as exc:
        print(f"webhooks.failed: {exc}", file=sys.stderr)
        return 1
    print(f"Webhooks registered: {created}")
    return 0


def _serve_cmd(args: argparse.Namespace) -> int:
    service = _service_or_none(args)
    if service is None:
        return 1
    try:
        service.load_all()
        if args.callback_url:
            service.refresh_webhooks(args.callback_url)
    except (RemoteServiceError, ServiceConfigError) as exc:
        print(f"serve.failed: {exc}", file=sys.stderr)
        return 1
    receiver = WebhookReceiver(
        service,
        WebhookReceiverConfig(host=args.host, port=args.port, path=args.webhook_path),
    )
    server = receiver.create_server()
    logger.info("Listening for webhooks on http://%s:%s%s", args.host, args.port, args.webhook_path)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down webhook receiver")
    finally:
        server.server_close()
    return 0


def _add_common_arguments(command: argparse.ArgumentParser) -> None:
    command.add_argument("path", nargs="?", help="Project path (default: current directory)")
    command.add_argument("--config", help="Config path (default: config/taskbridge.json)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="taskbridge",
        description=HELP_OVERVIEW,
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"taskbridge {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    sync_cmd = sub.add_parser("sync", help="Load both services and write tasks back")
    _add_common_arguments(sync_cmd)
    sync_cmd.add_argument(
        "--mode",
        choices=[mode.value for mode in WriteMode],
        default=WriteMode.ALL.value,
        help="Write every field (all) or only fields changed by the load (changed)",
    )
    sync_cmd.add_argument("--json", action="store_true", help="Emit report as JSON")
    sync_cmd.set_defaults(func=_sync_cmd)

    load_cmd = sub.add_parser("load", help="Load both services without writing")
    _add_common_arguments(load_cmd)
    load_cmd.add_argument("--json", action="store_true", help="Emit records as JSON")
    load_cmd.set_defaults(func=_load_cmd)

    webhooks_cmd = sub.add_parser("webhooks", help="Board webhook management")
    webhooks_sub = webhooks_cmd.add_subparsers(dest="webhooks_command", required=True)
    refresh_cmd = webhooks_sub.add_parser("refresh", help="Replace all webhooks with one per card")
    _add_common_arguments(refresh_cmd)
    refresh_cmd.add_argument("--callback-url", required=True, help="Public url of the webhook receiver")
    refresh_cmd.set_defaults(func=_webhooks_cmd)

    serve_cmd = sub.add_parser("serve", help="Run the webhook receiver")
    _add_common_arguments(serve_cmd)
    serve_cmd.add_argument("--host", default="127.0.0.1")
    serve_cmd.add_argument("--port", type=int, default=8080)
    serve_cmd.add_argument("--webhook-path", default="/webhook")
    serve_cmd.add_argument("--callback-url", help="Refresh webhooks to this url before serving")
    serve_cmd.set_defaults(func=_serve_cmd)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(getattr(args, "verbose", False))
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
