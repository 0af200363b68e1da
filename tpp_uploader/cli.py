from __future__ import annotations

import argparse
import asyncio
from typing import List, Optional

from playwright.async_api import async_playwright

from tpp_uploader.browser import open_session
from tpp_uploader.config import Config, ConfigError
from tpp_uploader.json_logger import ExitCodes, JsonLogger, get_logger, log_event, new_run_id
from tpp_uploader.run import RunContext, run_workflow


def _load_config(args: argparse.Namespace) -> Config:
    config = Config.load_from_env(require_upload=args.command == "run")
    overrides = {}
    if args.poll_interval is not None:
        if args.poll_interval <= 0:
            raise ConfigError("--poll-interval must be positive")
        overrides["poll_interval_s"] = args.poll_interval
    if args.headless:
        overrides["headless"] = True
    return config.with_overrides(**overrides) if overrides else config


async def _run_async(args: argparse.Namespace) -> int:
    run_id = args.run_id or new_run_id()
    bootstrap_logger = get_logger(run_id=run_id)

    try:
        config = _load_config(args)
    except ConfigError as exc:
        log_event(logger=bootstrap_logger, phase="config", status="error", message=str(exc))
        bootstrap_logger.close()
        return ExitCodes.BAD_CONFIG

    logger: JsonLogger = bootstrap_logger
    if config.json_log_file:
        bootstrap_logger.close()
        logger = get_logger(run_id=run_id, log_file_path=config.json_log_file)

    log_event(
        logger=logger,
        phase="config",
        message="configuration loaded",
        command=args.command,
        portal=config.portal_base_url,
        upload_file=str(config.upload_file) if config.upload_file else None,
        download_dir=str(config.download_dir),
        poll_interval_s=config.poll_interval_s,
    )

    try:
        async with async_playwright() as playwright:
            session = await open_session(playwright=playwright, config=config, logger=logger)
            ctx = RunContext(config=config, logger=logger, session=session)
            return await run_workflow(ctx, upload=args.command == "run")
    except Exception as exc:
        log_event(
            logger=logger,
            phase="orchestrator",
            status="error",
            message="browser session could not be started",
            extras={"error": str(exc), "exc_type": type(exc).__name__},
        )
        return ExitCodes.UNCAUGHT
    finally:
        logger.close()


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--run-id", dest="run_id", type=str, default=None, help="Override generated run id")
    parser.add_argument(
        "--poll-interval",
        dest="poll_interval",
        type=float,
        default=None,
        help="Seconds between build status checks (overrides POLL_INTERVAL_SECONDS)",
    )
    parser.add_argument("--headless", action="store_true", help="Run the browser headless")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tpp-uploader", description="Upload a build to the portal and fetch the result")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Upload UPLOAD_FILE, wait for the build and download it")
    _add_common_arguments(run_parser)

    watch_parser = subparsers.add_parser(
        "watch", help="Wait for the most recent existing build and download it (no upload)"
    )
    _add_common_arguments(watch_parser)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command in {"run", "watch"}:
        return asyncio.run(_run_async(args))

    parser.error("Unknown command")
    return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
