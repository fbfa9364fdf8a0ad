"""Logging configuration for the ardactl package.

All handlers are owned by a single :class:`logging.handlers.QueueListener`.
Producers (the coordinator, health-check threads, the job runner) only put
records on a queue, and the listener thread writes them out one at a time.
"""
import logging
import queue
import socket
import sys
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

from .config import Settings

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

_listener: Optional[QueueListener] = None
_queue_handler: Optional[QueueHandler] = None


def local_node() -> str:
    """Identity of the node this process runs on."""
    return Settings.NODE_NAME or socket.gethostname()


class NodeFilter(logging.Filter):
    """Stamp every record with the node it originated from.

    Callers can pass ``extra={"node": hostname}`` to attribute a record to a
    remote node; everything else is attributed to the local node.
    """

    def __init__(self, default: Optional[str] = None):
        super().__init__()
        self.default = default or local_node()

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "node", None):
            record.node = self.default
        return True


class ProgressFilter(logging.Filter):
    """Drop DEBUG progress chatter from the console when progress is off."""

    def __init__(self, show_progress: bool):
        super().__init__()
        self.show_progress = show_progress

    def filter(self, record: logging.LogRecord) -> bool:
        return self.show_progress or record.levelno >= logging.INFO


def parse_level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    return LEVELS.get(str(level).lower(), logging.INFO)


def setup_logging(
    level: Union[str, int] = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    show_progress: bool = True,
    node: Optional[str] = None,
) -> QueueListener:
    """Route the ``ardactl`` logger hierarchy through a queue-backed sink.

    Calling this again replaces the previous sink, so the CLI can start with
    console-only logging and add the run's log file once the cluster
    configuration is known.

    Args:
        level: Threshold for the ``ardactl`` loggers (name or numeric)
        log_file: Optional path of a rotating log file
        show_progress: Echo DEBUG progress lines on the console
        node: Identity stamped on records that don't carry one

    Returns:
        The running listener
    """
    global _listener, _queue_handler
    shutdown_logging()

    numeric = parse_level(level)
    formatter = logging.Formatter(Settings.LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    console.addFilter(ProgressFilter(show_progress))
    handlers = [console]

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            filename=log_path,
            maxBytes=Settings.LOG_MAX_SIZE_MB * 1024 * 1024,
            backupCount=Settings.LOG_BACKUP_COUNT,
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    records: "queue.Queue[logging.LogRecord]" = queue.Queue(-1)
    _queue_handler = QueueHandler(records)
    _queue_handler.addFilter(NodeFilter(node))

    root = logging.getLogger("ardactl")
    root.setLevel(numeric)
    root.propagate = False
    root.addHandler(_queue_handler)

    _listener = QueueListener(records, *handlers, respect_handler_level=True)
    _listener.start()
    return _listener


def shutdown_logging() -> None:
    """Flush pending records and detach the sink."""
    global _listener, _queue_handler
    if _listener is not None:
        _listener.stop()
        _listener = None
    if _queue_handler is not None:
        logging.getLogger("ardactl").removeHandler(_queue_handler)
        _queue_handler = None
