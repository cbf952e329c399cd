"""
Centralized logging configuration for the solver.

Provides colored console output and separate loggers for each subsystem
(chain, poller, strategy, dutch, sealed, runner).
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

import colorlog


LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


class SolverLogger:
    """Centralized logger for solver components"""

    _initialized = False
    _log_dir: Optional[Path] = None

    @classmethod
    def setup(
        cls,
        level: Union[int, str] = logging.INFO,
        log_dir: Optional[str] = None,
        colored: bool = True,
        force: bool = False,
    ):
        """
        Setup logging configuration.

        Args:
            level: Logging level, as int or name ("debug", "INFO", ...)
            log_dir: Directory for the log file. No file is written when None
            colored: Use ANSI colors on the console
            force: Reconfigure even if already initialized
        """
        if cls._initialized and not force:
            return

        if isinstance(level, str):
            level = logging.getLevelName(level.upper())
            if not isinstance(level, int):
                level = logging.INFO

        root_logger = logging.getLogger("intent_solver")
        root_logger.setLevel(level)
        root_logger.handlers.clear()

        # Console handler
        console_handler = colorlog.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        if colored:
            console_formatter = colorlog.ColoredFormatter(
                "%(log_color)s%(asctime)s [%(name)s] %(levelname)-8s%(reset)s %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
                log_colors=LOG_COLORS,
            )
        else:
            console_formatter = logging.Formatter(
                "%(asctime)s [%(name)s] %(levelname)-8s %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        console_handler.setFormatter(console_formatter)
        root_logger.addHandler(console_handler)

        # File handler (if enabled)
        if log_dir:
            cls._log_dir = Path(log_dir)
            cls._log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(cls._log_dir / "solver.log")
            file_handler.setLevel(level)
            file_handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s [%(name)s] %(levelname)-8s %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )
            root_logger.addHandler(file_handler)

        cls._initialized = True

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """
        Get a logger for a specific subsystem.

        Args:
            name: Subsystem name (e.g., 'chain', 'poller', 'dutch')

        Returns:
            Logger instance
        """
        return logging.getLogger(f"intent_solver.{name}")


# Convenience functions
def get_logger(name: str) -> logging.Logger:
    """Get a logger for a specific subsystem"""
    return SolverLogger.get_logger(name)


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_dir: Optional[str] = None,
    colored: bool = True,
):
    """Setup logging configuration"""
    SolverLogger.setup(level=level, log_dir=log_dir, colored=colored, force=True)
