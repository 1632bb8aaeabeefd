"""Command line entry point: ``python -m s3local {start,create,remove}``."""

import argparse
import asyncio
import contextlib
import signal
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import structlog
import uvicorn
from pydantic import ValidationError

from s3local.app import create_app
from s3local.config import Settings
from s3local.errors import S3LocalError
from s3local.lifecycle import ProcessSignals
from s3local.logging import configure_logging
from s3local.runtime import S3LocalRuntime
from s3local.service import ServiceDefinition

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="s3local",
        description="Local S3 emulator with bucket notifications for serverless handlers.",
    )
    parser.add_argument("--config", dest="service_file", type=Path, help="serverless service file")
    parser.add_argument("--directory", type=Path, help="directory holding bucket data")
    parser.add_argument("--debug", action="store_true", default=None)
    parser.add_argument("--silent", action="store_true", default=None)

    commands = parser.add_subparsers(dest="command", required=True)

    start = commands.add_parser("start", help="run the emulator and dispatch bucket events")
    start.add_argument("--host", help="bind address")
    start.add_argument("--port", type=int, help="bind port")
    start.add_argument("--no-start", dest="no_start", action="store_true", default=None,
                       help="only watch the directory, do not serve HTTP")
    start.add_argument("--provided-runtime", dest="provided_runtime",
                       help='runtime to use for functions declared as "provided"')
    start.add_argument("--fail-fast", dest="fail_fast", action="store_true", default=None,
                       help="abort on the first invalid notification")
    start.add_argument("--buckets", nargs="*", help="extra buckets to create")

    create = commands.add_parser("create", help="create declared buckets")
    create.add_argument("--buckets", nargs="*", help="extra buckets to create")
    commands.add_parser("remove", help="remove declared buckets and their objects")
    return parser


def resolve_settings(args: argparse.Namespace) -> Settings:
    """Combine environment, service file options and CLI flags."""
    base = Settings()
    overrides: dict[str, Any] = {
        key: value for key, value in vars(args).items() if key != "command"
    }
    service_file = overrides.get("service_file") or base.service_file

    service_options: dict[str, Any] = {}
    if Path(service_file).is_file():
        service_options = ServiceDefinition.from_file(service_file).s3_options()
    return base.merged(service_options, overrides)


async def watch_reloads(runtime: S3LocalRuntime, signals: ProcessSignals) -> None:
    """Rebuild subscriptions each time a reload is requested."""
    while await signals.wait_for_reload():
        await runtime.reload()


async def serve(settings: Settings) -> None:
    """Run the emulator until SIGTERM/SIGINT; SIGHUP reloads subscriptions.

    With ``no_start`` only the storage watcher and dispatch run.

    Args:
        settings: Effective configuration.
    """
    runtime = S3LocalRuntime(settings)
    signals = ProcessSignals()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signals.trigger_shutdown)
    loop.add_signal_handler(signal.SIGHUP, signals.request_reload)

    reload_task = asyncio.create_task(watch_reloads(runtime, signals))

    try:
        if settings.no_start:
            await runtime.start()
            try:
                await signals.wait_for_shutdown()
            finally:
                await runtime.stop()
        else:
            config = uvicorn.Config(
                create_app(settings, runtime),
                host=settings.host,
                port=settings.port,
                log_level="warning",
                access_log=False,
            )
            server = uvicorn.Server(config)

            async def run_server() -> None:
                try:
                    await server.serve()
                finally:
                    signals.trigger_shutdown()

            async def stop_server() -> None:
                await signals.wait_for_shutdown()
                server.should_exit = True

            await asyncio.gather(run_server(), stop_server())
    finally:
        signals.trigger_shutdown()
        await reload_task


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for python -m s3local."""
    args = build_parser().parse_args(argv)

    try:
        settings = resolve_settings(args)
        configure_logging(debug=settings.debug, silent=settings.silent)

        if args.command == "create":
            S3LocalRuntime(settings).create_buckets()
        elif args.command == "remove":
            S3LocalRuntime(settings).remove_buckets()
        else:
            with contextlib.suppress(KeyboardInterrupt):
                asyncio.run(serve(settings))
    except (S3LocalError, ValidationError) as e:
        logger.error("command_failed", command=args.command, error=str(e))
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
