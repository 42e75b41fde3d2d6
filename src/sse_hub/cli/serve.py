from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from typing import List, Optional

import uvicorn

from sse_hub.config import Settings
from sse_hub.utils.log import setup_logging
from sse_hub.web.main import create_app


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Stream server-sent events to connected clients")
    parser.add_argument("--host", help="Interface to bind (env SSE_HUB_HOST)")
    parser.add_argument("--port", type=int, help="Port to listen on (env SSE_HUB_PORT, default 8080)")
    parser.add_argument("--interval", type=float, help="Seconds between clock ticks, 0 disables")
    parser.add_argument("--outbox-size", type=int, help="Per-client queue size before messages are dropped")
    parser.add_argument("--log-level", help="Logging level (env LOG_LEVEL)")
    return parser


def resolve_settings(args: argparse.Namespace, base: Optional[Settings] = None) -> Settings:
    settings = base or Settings.from_env()
    overrides = {
        "host": args.host,
        "port": args.port,
        "tick_interval": args.interval,
        "outbox_size": args.outbox_size,
    }
    return replace(settings, **{k: v for k, v in overrides.items() if v is not None})


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    logger = setup_logging(args.log_level)
    try:
        settings = resolve_settings(args)
    except ValueError as e:
        logger.critical("Invalid configuration: %s", e)
        sys.exit(2)

    config = uvicorn.Config(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,
        log_level=logging.getLevelName(logger.level).lower(),
        timeout_graceful_shutdown=5,
    )
    server = uvicorn.Server(config)
    logger.info("Starting server on %s:%d", settings.host, settings.port)
    try:
        server.run()
    except OSError as e:
        logger.critical("Listener failed on %s:%d: %s", settings.host, settings.port, e)
        sys.exit(1)
    except SystemExit as e:
        # uvicorn exits on bind errors after logging them
        if e.code:
            logger.critical("Listener failed on %s:%d", settings.host, settings.port)
        raise


if __name__ == "__main__":
    main()
