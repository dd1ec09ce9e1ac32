"""
Logging setup for the sync agent.

Every module logs through a child of the ``galedi`` logger. Console output
uses rich (or a plain stream for service managers that capture stderr); an
optional file handler keeps a parseable DEBUG trail of every cycle.
"""

import logging
import sys
from pathlib import Path
from typing import Any

from rich.logging import RichHandler

ROOT_LOGGER_NAME = "galedi"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class PlainConsoleFormatter(logging.Formatter):
    """``LEVEL: timestamp - msg``; errors also show ``file:line``."""

    def __init__(self) -> None:
        super().__init__(datefmt=DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        where = ""
        if record.levelno >= logging.ERROR and record.pathname:
            where = f"{Path(record.pathname).name}:{record.lineno} - "
        text = f"{record.levelname}: {self.formatTime(record)} - {where}{record.getMessage()}"
        if record.exc_info:
            text = f"{text}\n{self.formatException(record.exc_info)}"
        return text


def _level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    return logging.getLevelNamesMapping().get(str(level).upper(), logging.INFO)


def _console_handler(level: int, use_rich: bool) -> logging.Handler:
    if use_rich:
        return RichHandler(
            level=level,
            show_path=True,
            markup=False,
            rich_tracebacks=True,
            log_time_format="[%X]",
            omit_repeated_times=False,
        )
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(PlainConsoleFormatter())
    return handler


def _file_handler(path: Path, mode: str) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, mode=mode, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)-8s] %(name)s: %(message)s", datefmt=DATE_FORMAT))
    return handler


def setup_logging(
    level: str | int = logging.INFO,
    log_file: str | Path | None = None,
    file_mode: str = "a",
    console_enabled: bool = True,
    use_rich: bool = True,
) -> logging.Logger:
    """
    (Re)configure the ``galedi`` logger.

    Handlers previously installed on it are closed and replaced, so calling
    this twice (CLI then service startup) does not duplicate output. Unknown
    level names fall back to INFO.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    level_int = _level(level)
    logger.setLevel(level_int)

    if console_enabled:
        logger.addHandler(_console_handler(level_int, use_rich))
    if log_file:
        logger.addHandler(_file_handler(Path(log_file), file_mode))

    return logger


def setup_logging_from_config(logging_config: Any, project_dir: Path | None = None) -> logging.Logger:
    """Apply a ``LoggingConfig``; relative log files live under ``project_dir``."""
    log_file = None
    if logging_config.file_enabled and logging_config.file:
        log_file = Path(logging_config.file)
        if project_dir is not None and not log_file.is_absolute():
            log_file = Path(project_dir) / log_file

    return setup_logging(
        level=logging_config.level,
        log_file=log_file,
        file_mode=logging_config.file_mode,
        console_enabled=logging_config.console_enabled,
        use_rich=logging_config.console_type == "rich",
    )


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    return logging.getLogger(name)
