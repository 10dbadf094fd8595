from __future__ import annotations

import logging
import sys
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Deque, Iterator, List, Optional

import structlog

if TYPE_CHECKING:
    from fuzzpatch.settings import LoggingSettings

LOGGER_NAME = "fuzzpatch"


@dataclass
class CapturedLog:
    logger_name: str
    level_name: str
    message: str


class LogCapture(logging.Handler):
    """Keeps the most recent records emitted under the fuzzpatch logger."""

    def __init__(self, max_entries: Optional[int] = None) -> None:
        super().__init__()
        self._entries: Deque[CapturedLog] = deque(maxlen=max_entries)

    def emit(self, record: logging.LogRecord) -> None:
        self._entries.append(
            CapturedLog(
                logger_name=record.name,
                level_name=record.levelname.lower(),
                message=record.getMessage(),
            )
        )

    @property
    def entries(self) -> List[CapturedLog]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()


@contextmanager
def capture_logs(max_entries: Optional[int] = None) -> Iterator[LogCapture]:
    """Collect fuzzpatch log records emitted inside the block."""
    capture = LogCapture(max_entries)
    target = logging.getLogger(LOGGER_NAME)
    target.addHandler(capture)
    try:
        yield capture
    finally:
        target.removeHandler(capture)


def configure_logging(
    settings: Optional["LoggingSettings"] = None,
    *,
    level_override: Optional[str] = None,
    log_file: Optional[str] = None,
) -> None:
    """
    Attach a stderr (or file) handler and apply levels from LoggingSettings.
    level_override wins over settings.default_level for the fuzzpatch logger.
    """
    handler: logging.Handler
    if log_file:
        handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        if getattr(existing, "_fuzzpatch_handler", False):
            root_logger.removeHandler(existing)
            existing.close()
    setattr(handler, "_fuzzpatch_handler", True)
    root_logger.addHandler(handler)

    default_level = "warning"
    overrides = {}
    if settings is not None:
        default_level = settings.default_level.value
        overrides = {name: lvl.value for name, lvl in settings.enabled_loggers.items()}
    if level_override:
        default_level = level_override

    logging.getLogger(LOGGER_NAME).setLevel(default_level.upper())
    for name, lvl in overrides.items():
        logging.getLogger(name).setLevel(lvl.upper())


structlog.configure(
    wrapper_class=structlog.make_filtering_bound_logger(logging.NOTSET),
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=False),
        structlog.dev.ConsoleRenderer(colors=False),
    ],
)

logger: structlog.BoundLogger = structlog.get_logger(LOGGER_NAME)
