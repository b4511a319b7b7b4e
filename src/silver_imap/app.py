# =============================================================================
# Silver IMAP Main Application
# =============================================================================
# Process bootstrap for the IMAP server:
#   - Command-line parsing
#   - Logging setup
#   - Configuration loading (file, then CLI overrides)
#   - Opening the SQLite store and starting the listener
# =============================================================================

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from silver_imap import __version__, __app_name__
from silver_imap.config import Config, ConfigError, print_paths
from silver_imap.imap.server import IMAPServer
from silver_imap.storage.database import Database
from silver_imap.storage.repository import Repository


logger = logging.getLogger(__name__)


async def run_server(config: Config) -> None:
    """
    Open the database and serve IMAP until cancelled.

    Args:
        config: Effective configuration.
    """
    db = Database(config.database_path)
    await db.connect()

    try:
        repository = Repository(db)
        if config.storage.seed_sample_messages:
            await repository.seed_sample_messages()

        server = IMAPServer(repository, config)
        await server.start()
        logger.info("Configure your email client with:")
        logger.info(f"  Server: localhost  Port: {server.port}  Security: None")
        logger.info("  Username/password: any non-empty value")
        await server.serve_forever()
    finally:
        await db.close()


# =============================================================================
# CLI Entry Point
# =============================================================================

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        prog=__app_name__,
        description="Silver IMAP: a small IMAP server backed by SQLite",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "--paths",
        action="store_true",
        help="Print configuration paths and exit",
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config file (default: XDG config location)",
    )

    parser.add_argument(
        "--write-config",
        action="store_true",
        help="Write the effective configuration to the config file and exit",
    )

    parser.add_argument(
        "--host",
        help="Interface to listen on (overrides config)",
    )

    parser.add_argument(
        "--port",
        type=int,
        help="Port to listen on (overrides config)",
    )

    parser.add_argument(
        "--database",
        type=Path,
        help="Path to the SQLite message store (overrides config)",
    )

    parser.add_argument(
        "--seed",
        action="store_true",
        help="Insert sample messages into an empty store",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode (logs every protocol line)",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> Config:
    """
    Load the config file and apply command-line overrides.

    Raises:
        ConfigError: If the config file is invalid.
    """
    config = Config.load(args.config)

    if args.host is not None:
        config.server.host = args.host
    if args.port is not None:
        config.server.port = args.port
    if args.database is not None:
        config.storage.database = args.database
    if args.seed:
        config.storage.seed_sample_messages = True

    return config


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for Silver IMAP.

    This function:
        1. Parses command-line arguments
        2. Loads configuration
        3. Handles special commands (--paths, --write-config)
        4. Runs the server until interrupted

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = build_config(args)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 1

    # Handle --paths flag
    if args.paths:
        print_paths(config, args.config)
        return 0

    if args.write_config:
        path = config.save(args.config)
        print(f"Wrote {path}")
        return 0

    try:
        asyncio.run(run_server(config))
    except KeyboardInterrupt:
        logger.info("Shutting down")
    except OSError as e:
        logger.error(f"Server failed: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
