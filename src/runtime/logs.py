"""Process-wide logging setup.

Records are handed to a ``QueueHandler`` on the calling thread and formatted
and written by a ``QueueListener`` thread, so a slow terminal or disk never
stalls the control loop.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import queue
import threading
import time
from collections.abc import Callable

from src.config.loader import LoggingConfig

_HANDLER_MARK = "_farmbot_handler"

_listener: logging.handlers.QueueListener | None = None
_listener_lock = threading.Lock()


class JSONLogFormatter(logging.Formatter):
    """Compact JSON formatter for machine-readable logs."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=True)


def _build_formatter(config: LoggingConfig) -> logging.Formatter:
    if config.json_output:
        return JSONLogFormatter(datefmt="%Y-%m-%dT%H:%M:%S")
    return logging.Formatter(fmt=config.format, datefmt="%H:%M:%S")


def configure_logging(config: LoggingConfig | None = None) -> logging.handlers.QueueListener:
    """Install queue-based logging on the root logger.

    Calling it again replaces the previous setup.

    Args:
        config: Logging settings. Uses defaults if None.

    Returns:
        The running listener (stop it with ``shutdown_logging``).
    """
    global _listener
    config = config or LoggingConfig()

    with _listener_lock:
        _stop_listener()

        formatter = _build_formatter(config)
        sinks: list[logging.Handler] = [logging.StreamHandler()]
        if config.file:
            sinks.append(logging.FileHandler(config.file, encoding="utf-8"))
        for sink in sinks:
            sink.setFormatter(formatter)

        records: queue.Queue[logging.LogRecord] = queue.Queue(-1)
        handler = logging.handlers.QueueHandler(records)
        setattr(handler, _HANDLER_MARK, True)

        root = logging.getLogger()
        root.handlers = [h for h in root.handlers if not getattr(h, _HANDLER_MARK, False)]
        root.addHandler(handler)
        root.setLevel(getattr(logging, config.level.upper(), logging.INFO))

        _listener = logging.handlers.QueueListener(records, *sinks, respect_handler_level=True)
        _listener.start()
        return _listener


def shutdown_logging() -> None:
    """Flush pending records and remove the queue handler."""
    with _listener_lock:
        _stop_listener()
        root = logging.getLogger()
        root.handlers = [h for h in root.handlers if not getattr(h, _HANDLER_MARK, False)]


def _stop_listener() -> None:
    global _listener
    if _listener is None:
        return
    _listener.stop()
    for sink in _listener.handlers:
        sink.close()
    _listener = None


class LogThrottle:
    """Rate limiter for repeated log messages.

    Example:
        >>> throttle = LogThrottle(interval_seconds=10)
        >>> if throttle.allow("reattach"):
        ...     logger.warning(f"Reattach failed ({throttle.suppressed('reattach')} suppressed)")
    """

    def __init__(
        self,
        interval_seconds: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._interval = interval_seconds
        self._clock = clock
        self._last: dict[str, float] = {}
        self._suppressed: dict[str, int] = {}

    def allow(self, key: str) -> bool:
        """Whether a message under ``key`` may be logged now."""
        now = self._clock()
        last = self._last.get(key)
        if last is not None and now - last < self._interval:
            self._suppressed[key] = self._suppressed.get(key, 0) + 1
            return False
        self._last[key] = now
        return True

    def suppressed(self, key: str) -> int:
        """Return and clear the number of messages dropped under ``key``."""
        return self._suppressed.pop(key, 0)

    def reset(self, key: str | None = None) -> None:
        if key is None:
            self._last.clear()
            self._suppressed.clear()
        else:
            self._last.pop(key, None)
            self._suppressed.pop(key, None)
