import sys
from pathlib import Path
from contextvars import ContextVar
from typing import Optional
from loguru import logger
from fastapi import Request
from framework.config import settings

# Store current request in contextvars for async context
_current_request: ContextVar[Optional[Request]] = ContextVar("current_request", default=None)

LOG_DIR = Path(settings.LOG_DIR)
LOG_DIR.mkdir(exist_ok=True)

_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<magenta>Trace:{extra[trace_id]}</magenta> - <level>{message}</level>"
)
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | Trace:{extra[trace_id]} - {message}"


class LogConfig:
    """Global logging configuration using Loguru."""

    @classmethod
    def _add_sinks(cls, prefix: str):
        logger.add(
            sys.stdout,
            enqueue=True,
            backtrace=True,
            diagnose=settings.DEBUG,
            format=_CONSOLE_FORMAT,
            level=settings.LOG_LEVEL,
        )

        logger.add(
            LOG_DIR / f"{prefix}_{{time:YYYY-MM-DD}}.log",
            rotation="00:00",
            retention="30 days",
            compression="zip",
            enqueue=True,
            format=_FILE_FORMAT,
            level="DEBUG",
        )

        logger.add(
            LOG_DIR / f"{prefix}_error_{{time:YYYY-MM-DD}}.log",
            level="ERROR",
            rotation="100 MB",
            enqueue=True,
            format=_FILE_FORMAT,
        )

    @classmethod
    def setup_logging(cls):
        logger.remove()
        logger.configure(extra={"trace_id": "system"})
        cls._add_sinks("app")

    @classmethod
    def setup_worker_logging(cls, worker_name: str):
        """Separate log files for the audit writer when it runs as its own process."""
        logger.remove()
        logger.configure(extra={"trace_id": f"worker-{worker_name}"})
        cls._add_sinks(f"worker_{worker_name}")


def get_logger(name: str = None, request: Optional[Request] = None):
    """Get logger instance; optionally pass request for trace_id, else from context."""
    current_request = request or _current_request.get()

    extra = {}
    if name:
        extra["name"] = name
    # Module-level loggers are created outside any request; leave trace_id to
    # logger.contextualize() in the middleware so it is not pinned here.
    if current_request is not None:
        extra["trace_id"] = getattr(current_request.state, "trace_id", "unknown")
    return logger.bind(**extra)
