"""
eventshub main entry point.

Loads `.env`, reads the EVENTSHUB_* environment into a ServerConfig, then
serves until SIGINT/SIGTERM or an accepted kill request.

Usage:
    eventshub [--insecure] [--log-dir DIR] [--log-level LEVEL] [--env-file PATH]

Exit codes:
    0  clean shutdown
    1  configuration error or failure to bind/serve
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from dotenv import find_dotenv, load_dotenv

from eventshub.core.repository import StorageError
from eventshub.server.config import ConfigurationError, LOG_LEVELS, loadServerConfig
from eventshub.server.lifecycle import LifecycleController
from sdk.logging import getLogger, configureLogging


def parseArgs(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='eventshub - calendar event store server')
    parser.add_argument('--insecure', action='store_true',
                        help='Serve plain HTTP (TLS certificate and key not required)')
    parser.add_argument('--log-dir', default=None,
                        help='Directory for rotating log files (default: EVENTSHUB_LOG_DIR or console only)')
    parser.add_argument('--log-level', default=None, type=str.upper, choices=LOG_LEVELS,
                        help='Log level (default: EVENTSHUB_LOG_LEVEL or INFO)')
    parser.add_argument('--env-file', default=None,
                        help='Path to a .env file (default: ./.env if present)')
    return parser.parse_args(argv)


async def serve(controller: LifecycleController, secure: bool) -> str:
    try:
        return await controller.run(secure=secure)
    finally:
        await controller.stop()


def main(argv: Optional[List[str]] = None) -> int:
    args = parseArgs(argv)

    # Real environment wins over the file
    load_dotenv(args.env_file or find_dotenv(usecwd=True), override=False)

    try:
        config = loadServerConfig(requireTls=not args.insecure)
    except ConfigurationError as e:
        configureLogging(level=args.log_level or 'INFO')
        getLogger().critical(f"Configuration error: {e}")
        return 1

    configureLogging(logDir=args.log_dir or config.logDir, level=args.log_level or config.logLevel)
    log = getLogger()
    log.info("eventshub starting", secure=not args.insecure)

    controller = LifecycleController(config)
    try:
        controller.configure()
        reason = asyncio.run(serve(controller, secure=not args.insecure))
    except ConfigurationError as e:
        log.critical(f"Configuration error: {e}")
        return 1
    except StorageError as e:
        log.critical(f"Storage unavailable: {e}")
        return 1
    except OSError as e:
        log.critical(f"Failed to serve: {e}")
        return 1

    log.info("eventshub stopped", reason=reason)
    return 0


if __name__ == '__main__':
    sys.exit(main())
