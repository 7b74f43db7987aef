"""Command line control of live streams.

Usage:
    fabric-live init my-stream --drm
    fabric-live create my-stream --start --show_curl
    fabric-live status my-stream
    fabric-live insertion my-stream 120 30 hq__TargetHash
    fabric-live insertion my-stream 120 0 - --remove
    fabric-live terminate my-stream
    fabric-live summary

A stream is a content id (iq__...) or a name in the stream table (LIVE_CONF_PATH).
"""

import argparse
import asyncio
import sys

import yaml
from loguru import logger
from pydantic import BaseModel

from fabric_live.app_config import get_app_environ_config
from fabric_live.domain.live.stream import StreamService
from fabric_live.shared.utils import format_error, init_logger
from fabric_live.utils.stream_errors import StreamError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fabric-live", description="Live stream control")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    init = commands.add_parser("init", help="Set playout formats and DRM")
    init.add_argument("stream")
    init.add_argument("--drm", action="store_true", help="DRM formats only")
    init.add_argument("--formats", help="Comma-separated playout formats, e.g. hls-clear,hls-aes128")

    create = commands.add_parser("create", help="Create a new session (edge write token)")
    create.add_argument("stream")
    create.add_argument("--start", action="store_true", help="Start the stream right away")
    create.add_argument("--show_curl", action="store_true", help="Print curl commands")

    for name, help_text in (
        ("terminate", "Stop the session and finalize the edge write token"),
        ("start", "Start recording"),
        ("stop", "Stop recording"),
        ("reset", "Stop and start a new recording period"),
        ("status", "Show the stream status"),
    ):
        cmd = commands.add_parser(name, help=help_text)
        cmd.add_argument("stream")

    commands.add_parser("summary", help="Status of every stream in the stream table")

    insertion = commands.add_parser("insertion", help="Add or remove a playout insertion")
    insertion.add_argument("stream")
    insertion.add_argument("time", type=float, help="Insertion time (seconds)")
    insertion.add_argument("duration", type=float, help="Duration (seconds)")
    insertion.add_argument("target_hash", help="Version hash of the inserted content")
    insertion.add_argument("--remove", action="store_true", help="Remove the insertion at TIME")

    return parser


async def run_command(args: argparse.Namespace, service: StreamService) -> BaseModel:
    if args.command == "init":
        return await service.initialize(args.stream, drm=args.drm, formats=args.formats)
    if args.command == "create":
        return await service.create(args.stream, start=args.start, show_curl=args.show_curl)
    if args.command == "terminate":
        return await service.terminate(args.stream)
    if args.command in ("start", "stop", "reset"):
        return await service.start_or_stop_or_reset(args.stream, args.command)
    if args.command == "status":
        return await service.status(args.stream)
    if args.command == "summary":
        return await service.summary()
    if args.command == "insertion":
        if args.remove:
            return await service.remove_insertion(args.stream, args.time)
        return await service.upsert_insertion(
            args.stream, args.time, args.duration, args.target_hash
        )
    raise ValueError(f"unknown command: {args.command}")


def render(result: BaseModel) -> str:
    return yaml.safe_dump(
        result.model_dump(mode="json", exclude_none=True),
        sort_keys=False,
        default_flow_style=False,
    )


def main(argv: list[str] | None = None, service: StreamService | None = None) -> int:
    args = build_parser().parse_args(argv)
    init_logger(debug=args.verbose or get_app_environ_config().DEBUG)

    try:
        result = asyncio.run(run_command(args, service or StreamService()))
    except StreamError as e:
        logger.debug("{} [{}] raised at {}", e, e.erresid, e.caller_info)
        print(f"ERROR: {e.errmesg}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.error("Unexpected failure: {}", format_error(e))
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    print(render(result), end="")
    if getattr(result, "errcode", None):
        print(f"ERROR: {result.error}", file=sys.stderr)
        return 1
    return 0
