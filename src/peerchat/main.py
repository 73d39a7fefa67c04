"""
PeerChat - Main entry point for the application.

Created by orpheus497
"""

import argparse
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

from . import __version__
from .config import Config
from .constants import (
    APP_NAME,
    CONFIG_FILENAME,
    DEFAULT_DATA_DIR,
    LOG_BACKUP_COUNT,
    LOG_DATE_FORMAT,
    LOG_FILENAME,
    LOG_FORMAT,
    LOG_MAX_BYTES,
)
from .errors import PeerChatError
from .utils import validate_port


def setup_logging(config: Config, data_dir: Path, debug: bool = False) -> Optional[Path]:
    """
    Configure the "peerchat" logger from the logging section of the config.

    Console logging is off by default because the terminal UI owns the screen.

    Args:
        config: Loaded configuration
        data_dir: Directory that receives the log file
        debug: Force DEBUG level

    Returns:
        Path of the log file, or None if file logging is disabled
    """
    level_name = "DEBUG" if debug else str(config.get("logging", "level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    logger = logging.getLogger("peerchat")
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    log_path = None

    if config.get("logging", "file_logging", True):
        data_dir.mkdir(parents=True, exist_ok=True)
        log_path = data_dir / LOG_FILENAME
        file_handler = RotatingFileHandler(
            log_path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if config.get("logging", "console_logging", False):
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return log_path


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        description=f"{APP_NAME} - Direct peer-to-peer encrypted chat",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  peerchat                                  # Listen on 127.0.0.1:5000
  peerchat --port 5001 --name alice         # Listen on another port
  peerchat --connect 127.0.0.1:5000         # Connect to a listening peer

Created by orpheus497
        """,
    )

    parser.add_argument("--version", action="version", version=f"{APP_NAME} {__version__}")

    parser.add_argument("--name", type=str, default=None, help="Display name sent to the peer")

    parser.add_argument(
        "--host", type=str, default=None, help="Address to listen on (default: from config)"
    )

    parser.add_argument(
        "--port", type=int, default=None, help="Port to listen on, 0 for any (default: 5000)"
    )

    parser.add_argument(
        "--connect",
        type=str,
        default=None,
        metavar="PEER_ID",
        help="Peer to connect to on startup, as host:port",
    )

    parser.add_argument(
        "--config", type=str, default=None, help="Path to configuration file (TOML)"
    )

    parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help=f"Directory for configuration and logs (default: {DEFAULT_DATA_DIR})",
    )

    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for PeerChat."""
    parser = build_parser()
    args = parser.parse_args(argv)

    data_dir = Path(args.data_dir or DEFAULT_DATA_DIR).expanduser().resolve()
    config_path = Path(args.config).expanduser() if args.config else data_dir / CONFIG_FILENAME

    try:
        config = Config(config_path)
    except PeerChatError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return 1

    if args.name is not None:
        config.set("identity", "display_name", args.name)
    if args.host is not None:
        config.set("network", "host", args.host)
    if args.port is not None:
        if not validate_port(args.port):
            parser.error(f"invalid port: {args.port}")
        config.set("network", "port", args.port)

    try:
        config.validate()
    except PeerChatError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return 1

    log_path = setup_logging(config, data_dir, args.debug)
    logger = logging.getLogger(__name__)
    logger.info(f"Starting {APP_NAME} {__version__} (log: {log_path})")

    # Imported late so --help and --version work without loading Textual
    from .session import PeerSession
    from .tcp import TcpTransport
    from .ui import ChatApp

    try:
        transport = TcpTransport(
            host=config.get("network", "host"),
            port=config.get("network", "port"),
            connect_timeout=config.get("network", "connect_timeout"),
        )
    except PeerChatError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    session = PeerSession(
        transport,
        display_name=config.get("identity", "display_name", ""),
        typing_timeout=config.get("presence", "typing_timeout"),
    )

    app = ChatApp(session, config, connect_to=args.connect)
    app.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
