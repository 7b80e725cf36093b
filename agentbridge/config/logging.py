"""
Logging configuration and setup.

Console and optional file output for the `agentbridge` logger tree. Several
chat streams can run in one server process, so every record carries the id
of the request that produced it (`-` outside a request):

    2025-01-01 12:00:00 - agentbridge.tools.connector - INFO - [req_3f2a9c1d] Loaded 12 tools from github
"""

import logging
import secrets
import sys
from contextvars import ContextVar
from pathlib import Path

from agentbridge.config.settings import Settings

# Inherited by the producer and heartbeat tasks a request spawns
_request_id: ContextVar[str] = ContextVar("agentbridge_request_id", default="-")

REQUEST_ID_PREFIX = "req_"

# Chatty dependencies, held at WARNING unless the app runs at DEBUG
NOISY_LOGGERS = ("LiteLLM", "httpx", "httpcore", "mcp")

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(funcName)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def new_request_id() -> str:
    return f"{REQUEST_ID_PREFIX}{secrets.token_hex(4)}"


def set_request_id(request_id: str) -> None:
    """Tag log records from the current task (and tasks it spawns) with request_id."""
    _request_id.set(request_id)


def get_request_id() -> str:
    return _request_id.get()


class RequestIdFilter(logging.Filter):
    """Stamps `record.request_id` from the current context."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()
        return True


class ColoredFormatter(logging.Formatter):
    """Formatter that adds color to console output."""

    # ANSI color codes
    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, *args, use_color: bool = True, **kwargs):
        super().__init__(*args, **kwargs)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if self.use_color and levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            # Other handlers (file) must see the plain level name
            record.levelname = levelname


def _console_handler(level: int) -> logging.Handler:
    # stderr keeps `chat` output on stdout clean
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(ColoredFormatter(
        fmt=CONSOLE_FORMAT, datefmt=DATE_FORMAT, use_color=sys.stderr.isatty(),
    ))
    return handler


def _file_handler(log_file: Path, level: int) -> logging.Handler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file)
    handler.setLevel(level)
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(settings: Settings) -> None:
    """
    Configure the `agentbridge` logger tree from settings.

    Also quiets the LLM/HTTP client libraries and sends uvicorn's own loggers
    through the same handlers, so `serve` output has one format.

    Args:
        settings: Application settings containing log configuration
    """
    level = getattr(logging, settings.log_level)

    handlers = [_console_handler(level)]
    if settings.log_file:
        handlers.append(_file_handler(Path(settings.log_file), level))

    root_logger = logging.getLogger("agentbridge")
    root_logger.setLevel(level)
    root_logger.handlers = list(handlers)
    root_logger.propagate = False

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        server_logger = logging.getLogger(name)
        server_logger.handlers = list(handlers)
        server_logger.setLevel(max(level, logging.INFO))
        server_logger.propagate = False

    noisy_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)

    root_logger.info(f"Logging initialized - Level: {settings.log_level}")
    if settings.log_file:
        root_logger.info(f"Logging to file: {settings.log_file}")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger under the `agentbridge` tree.

    Args:
        name: Logger name (typically __name__)
    """
    if name.startswith("agentbridge"):
        return logging.getLogger(name)
    return logging.getLogger(f"agentbridge.{name}")
