"""
Centralized logging configuration for SeatBid.

Every subsystem logs under the "seatbid" logger (seatbid.ledger,
seatbid.catalog, seatbid.round, seatbid.settlement, ...). Console output
goes to stderr so command output on stdout (e.g. `seatbid stats`) stays
machine-readable.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import colorlog

ROOT_LOGGER = "seatbid"
LOG_FILE = "seatbid.log"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


class SeatBidLogger:
    """Configures the seatbid logger tree once per process"""

    _initialized = False
    _log_file: Optional[Path] = None

    @classmethod
    def setup(
        cls,
        level: int = logging.INFO,
        log_dir: Optional[str] = None,
        log_to_file: bool = False,
        force: bool = False,
    ):
        """
        Setup logging configuration.

        The first get_logger() call configures INFO console logging
        implicitly; pass force=True to replace it (the CLI does this once
        it has parsed --debug and --log-file).

        Args:
            level: Logging level (DEBUG, INFO, WARNING, ERROR)
            log_dir: Directory for the log file. If None, uses ./logs
            log_to_file: Also append to <log_dir>/seatbid.log
            force: Replace an earlier configuration
        """
        if cls._initialized and not force:
            return

        root = logging.getLogger(ROOT_LOGGER)
        root.setLevel(level)
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()

        console = colorlog.StreamHandler(sys.stderr)
        console.setLevel(level)
        console.setFormatter(colorlog.ColoredFormatter(
            "%(log_color)s%(asctime)s [%(name)s] %(levelname)-8s%(reset)s %(message)s",
            datefmt=DATE_FORMAT,
            log_colors=LOG_COLORS,
        ))
        root.addHandler(console)

        cls._log_file = None
        if log_to_file:
            directory = Path(log_dir) if log_dir else Path("logs")
            directory.mkdir(exist_ok=True, parents=True)
            cls._log_file = directory / LOG_FILE

            file_handler = logging.FileHandler(cls._log_file, encoding="utf-8")
            file_handler.setLevel(level)
            file_handler.setFormatter(logging.Formatter(
                "%(asctime)s [%(name)s] %(levelname)-8s %(message)s",
                datefmt=DATE_FORMAT,
            ))
            root.addHandler(file_handler)

        cls._initialized = True

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """
        Get a logger for a specific subsystem.

        Args:
            name: Subsystem name (e.g., 'ledger', 'catalog', 'settlement')
        """
        if not cls._initialized:
            cls.setup()

        return logging.getLogger(f"{ROOT_LOGGER}.{name}")

    @classmethod
    def log_file(cls) -> Optional[Path]:
        """Path of the active log file, if file logging is on"""
        return cls._log_file


def get_logger(name: str) -> logging.Logger:
    return SeatBidLogger.get_logger(name)


def setup_logging(
    level: int = logging.INFO,
    log_dir: Optional[str] = None,
    log_to_file: bool = False,
    force: bool = False,
):
    """Setup logging configuration"""
    SeatBidLogger.setup(level=level, log_dir=log_dir, log_to_file=log_to_file, force=force)
