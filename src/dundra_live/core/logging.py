"""Logging for dundra-live.

Every module logger feeds one process-wide queue. A listener thread drains it
into a rotating file under `~/.dundra/logs` (or `DUNDRA_LOG_DIR`) and, when
`DUNDRA_CONSOLE_LOGS` is set, stdout. Handlers never run on the event loop.
"""

import atexit
import logging
import os
import sys
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path
from queue import SimpleQueue

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE = "dundra-live.log"
MAX_LOG_BYTES = 10 * 1024 * 1024

_queue: SimpleQueue | None = None


def _sinks(include_console: bool) -> list[logging.Handler]:
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    sinks: list[logging.Handler] = []

    logs_dir = Path(os.environ.get("DUNDRA_LOG_DIR") or Path.home() / ".dundra" / "logs")
    try:
        logs_dir.mkdir(parents=True, exist_ok=True)
        sinks.append(RotatingFileHandler(logs_dir / LOG_FILE, maxBytes=MAX_LOG_BYTES, backupCount=5))
    except OSError:
        # Read-only home, logging still works on the console
        pass

    if include_console:
        sinks.append(logging.StreamHandler(sys.stdout))

    for sink in sinks:
        sink.setFormatter(formatter)
    return sinks


def _log_queue() -> SimpleQueue | None:
    global _queue
    if _queue is None:
        console = os.environ.get("DUNDRA_CONSOLE_LOGS", "").strip().lower() in {"1", "true", "yes"}
        sinks = _sinks(console)
        if not sinks:
            return None
        _queue = SimpleQueue()
        listener = QueueListener(_queue, *sinks, respect_handler_level=True)
        listener.start()
        atexit.register(listener.stop)
    return _queue


def setup_logging(module_name: str, log_level: str | None = None) -> logging.Logger:
    """Return the module's logger, attached to the shared queue on first use.

    Args:
        module_name: Name of the module (usually __name__)
        log_level: DEBUG, INFO, WARNING or ERROR. Defaults to DUNDRA_LOG_LEVEL or INFO.

    """
    logger = logging.getLogger(module_name)
    if logger.handlers:
        return logger

    level_name = (log_level or os.environ.get("DUNDRA_LOG_LEVEL", "INFO")).upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    queue = _log_queue()
    # Records still propagate so pytest's caplog and embedding apps see them.
    logger.addHandler(QueueHandler(queue) if queue is not None else logging.NullHandler())
    return logger


__all__ = ["setup_logging"]
