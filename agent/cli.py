from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
from pathlib import Path
from typing import Any

from agent.config import ClientConfig, default_config_path, init_config, load_config
from agent.logger import create_logger
from agent.logging import bind_client_context, configure_logging
from reader.client import extract_rows
from reader.stream import StreamRecord
from shared.enums import Importance, LogType, Subsystem
from shared.errors import QueryError

logger = logging.getLogger("oml_agent")


def _load(args: argparse.Namespace) -> ClientConfig:
    config = load_config(Path(args.config).expanduser() if args.config else None)
    bind_client_context(config)
    return config


def _filters(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "type": args.type,
        "env": args.env,
        "appName": args.app_name,
        "search": args.search,
        "limit": args.limit,
    }


def format_record(record: StreamRecord) -> str:
    return f"{record.ts} {record.level.value:<7} [{record.source}] {record.message}"


def cmd_init(args: argparse.Namespace) -> int:
    path = init_config(Path(args.config).expanduser() if args.config else None)
    print(f"initialized config: {path}")
    return 0


async def _send(config: ClientConfig, args: argparse.Namespace) -> None:
    async with create_logger(config, terminate=None) as oml:
        oml.send(
            {
                "type": args.type,
                "message": args.message,
                "importance": args.importance,
                "subsystem": args.subsystem,
                "operation": args.operation,
                "service": args.service,
            }
        )


def cmd_send(args: argparse.Namespace) -> int:
    config = _load(args)
    asyncio.run(_send(config, args))
    return 0


def cmd_query(args: argparse.Namespace) -> int:
    config = _load(args)
    oml = create_logger(config, terminate=None)
    try:
        payload = asyncio.run(oml.get(_filters(args)))
    except QueryError as exc:
        logger.error("%s", exc)
        return 1
    for row in extract_rows(payload):
        print(json.dumps(row, ensure_ascii=False, sort_keys=True))
    return 0


async def _tail(config: ClientConfig, args: argparse.Namespace) -> None:
    oml = create_logger(config, terminate=None)
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    seen: set[str] = set()

    def _print_new(records: list[StreamRecord]) -> None:
        nonlocal seen
        for record in records:
            if record.id not in seen:
                print(format_record(record), flush=True)
        seen = {record.id for record in records}

    async with oml.live(_filters(args), on_update=_print_new):
        await stop_event.wait()
    logger.info("stream closed")


def cmd_tail(args: argparse.Namespace) -> int:
    config = _load(args)
    asyncio.run(_tail(config, args))
    return 0


def _add_filter_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--type", choices=[item.value for item in LogType], default=None)
    parser.add_argument("--env", default=None)
    parser.add_argument("--app-name", default=None)
    parser.add_argument("--search", default=None)
    parser.add_argument("--limit", type=int, default=None)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="oml")
    parser.add_argument("--verbose", action="store_true")
    parser.add_argument("--config", type=str, default=str(default_config_path()))
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init", help="write a config template")
    init_parser.set_defaults(func=cmd_init)

    send_parser = subparsers.add_parser("send", help="send one log event and flush")
    send_parser.add_argument("message")
    send_parser.add_argument("--type", choices=[item.value for item in LogType], default=LogType.INFO.value)
    send_parser.add_argument("--importance", choices=[item.value for item in Importance], default=None)
    send_parser.add_argument("--subsystem", choices=[item.value for item in Subsystem], default=None)
    send_parser.add_argument("--operation", default=None)
    send_parser.add_argument("--service", default=None)
    send_parser.set_defaults(func=cmd_send)

    query_parser = subparsers.add_parser("query", help="print stored logs as JSON lines")
    _add_filter_args(query_parser)
    query_parser.set_defaults(func=cmd_query)

    tail_parser = subparsers.add_parser("tail", help="follow the live log stream")
    _add_filter_args(tail_parser)
    tail_parser.set_defaults(func=cmd_tail)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(bool(args.verbose))
    return int(args.func(args))
