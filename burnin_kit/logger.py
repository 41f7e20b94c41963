"""
Burn-in logging

One root configuration shared by every burnin_kit module.

Usage:
    from burnin_kit.logger import get_module_logger
    logger = get_module_logger(__name__)
    logger.info("SMART short test started")
    logger.debug(raw_smartctl_output)

Per-session log file:
    from burnin_kit.logger import Logger
    Logger.attach_session_log('./run-logs/burnin-sdb-WDC_X_1234-2026-10-18-1792300000.log')

Every record goes to the operator console (INFO and above) and, once a
session log is attached, to that file (DEBUG and above). Raw smartctl
output is logged at DEBUG so it lands in the session log without
flooding the console.
"""

import logging
import sys
from pathlib import Path
from typing import Dict, Optional

LOG_FORMAT = '[%(levelname)s %(asctime)s] [%(name)s] %(message)s'


class Logger:
    """
    Process-wide logging setup.

    Holds the console handler, the current session file handler and a
    cache of named loggers. All state lives on the class; there is one
    burn-in session per process.

    Example:
        >>> Logger.attach_session_log('/var/log/burnin/burnin-sdb.log')
        >>> Logger.get_logger('burnin_kit.smart').info("polling")
    """

    _initialized = False
    _loggers: Dict[str, logging.Logger] = {}
    _console_handler: Optional[logging.StreamHandler] = None
    _session_handler: Optional[logging.FileHandler] = None

    @classmethod
    def get_logger(cls, name: str = 'burnin_kit') -> logging.Logger:
        """
        Named logger, configuring the root on first use.

        Args:
            name: Dotted logger name, usually the calling module's __name__.
        """
        if not cls._initialized:
            cls.init_logging()

        if name not in cls._loggers:
            cls._loggers[name] = logging.getLogger(name)

        return cls._loggers[name]

    @classmethod
    def init_logging(cls, level: int = logging.INFO) -> None:
        """
        Configure the root logger. Calling it again only changes the console level.

        Sets up a console handler on the root logger unless one is already
        present (pytest installs its own capture handlers).

        Args:
            level: Console threshold.
        """
        formatter = logging.Formatter(LOG_FORMAT)
        root_logger = logging.getLogger()

        if cls._console_handler is not None:
            cls._console_handler.setLevel(level)
        else:
            has_console_handler = any(
                isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
                for h in root_logger.handlers
            )
            if not has_console_handler:
                console_handler = logging.StreamHandler(sys.stdout)
                console_handler.setLevel(level)
                console_handler.setFormatter(formatter)
                root_logger.addHandler(console_handler)
                cls._console_handler = console_handler

        root_logger.setLevel(logging.DEBUG)
        cls._initialized = True

    @classmethod
    def attach_session_log(cls, log_path: str) -> Path:
        """
        Route all records to a per-session log file (append mode).

        Replaces a previously attached session file, so one process only
        ever writes one session log.

        Args:
            log_path: Target log file; parent directories are created.

        Returns:
            Absolute path of the session log.
        """
        if not cls._initialized:
            cls.init_logging()

        path = Path(log_path).resolve()
        path.parent.mkdir(parents=True, exist_ok=True)

        root_logger = logging.getLogger()
        if cls._session_handler is not None:
            if Path(cls._session_handler.baseFilename) == path:
                return path
            cls.detach_session_log()

        handler = logging.FileHandler(str(path), mode='a', encoding='utf-8')
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root_logger.addHandler(handler)
        cls._session_handler = handler
        return path

    @classmethod
    def detach_session_log(cls) -> None:
        """Close and remove the session log handler, if any."""
        handler = cls._session_handler
        if handler is None:
            return
        logging.getLogger().removeHandler(handler)
        handler.close()
        cls._session_handler = None

    @classmethod
    def flush(cls) -> None:
        """Flush the session log so readers see every record written so far."""
        if cls._session_handler is not None:
            cls._session_handler.flush()


def get_module_logger(module_name: str = 'burnin_kit') -> logging.Logger:
    """
    Get a logger instance for the specified module.

    Args:
        module_name: Module name (use __name__ for automatic module detection)

    Returns:
        logging.Logger: Configured logger instance

    Example:
        >>> logger = get_module_logger(__name__)
        >>> logger.info("Starting SMART short test")
    """
    return Logger.get_logger(module_name)


def LogSection(title: str, logger: Optional[logging.Logger] = None) -> None:
    """
    Log a section header surrounded by separator lines.

    Args:
        title: Section title
        logger: Logger to write to (defaults to the package logger)

    Example:
        >>> LogSection("SMART extended/long test")
    """
    logger = logger or Logger.get_logger('burnin_kit')
    logger.info("=" * 60)
    logger.info(f"  {title}")
    logger.info("=" * 60)


def LogResult(passed: bool, message: str, logger: Optional[logging.Logger] = None) -> None:
    """
    Log a phase result as pass or fail with a message.

    Args:
        passed: True if the phase passed, False if it failed
        message: Result message
    """
    logger = logger or Logger.get_logger('burnin_kit')
    if passed:
        logger.info(f"[PASS] {message}")
    else:
        logger.error(f"[FAIL] {message}")
