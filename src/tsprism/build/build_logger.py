"""Build output reporting.

The orchestrators never print directly; they receive a BuildLogger and report
through it. This keeps the build engine free of process-wide output state and
lets tests capture everything a build says.

Levels (in order of increasing verbosity):
    quiet   - errors only
    info    - default build output
    verbose - per-target detail (roles, polyfills, copy timings)

Messages suppressed by the current level are buffered. On failure the
orchestrator calls flush() so the user sees the full trail without re-running
with --verbose; on success the buffer is discarded with clear().
"""

import sys
import threading
from typing import List, Optional, TextIO

LOG_LEVELS = ("quiet", "info", "verbose")


class BuildLogger:
    """Leveled, buffering reporter passed explicitly into the build engine."""

    def __init__(
        self,
        level: str = "info",
        stream: Optional[TextIO] = None,
        error_stream: Optional[TextIO] = None,
    ):
        """Initialize the logger.

        Args:
            level: One of "quiet", "info" or "verbose"
            stream: Stream for regular output (default: sys.stdout at call time)
            error_stream: Stream for errors and warnings (default: sys.stderr)
        """
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level '{level}', expected one of {LOG_LEVELS}")
        self.level = level
        self._stream = stream
        self._error_stream = error_stream
        self._buffer: List[str] = []
        self._lock = threading.Lock()

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stdout

    @property
    def error_stream(self) -> TextIO:
        return self._error_stream if self._error_stream is not None else sys.stderr

    def _emit(self, message: str, stream: TextIO) -> None:
        with self._lock:
            print(message, file=stream)

    def error(self, message: str) -> None:
        """Always printed."""
        self._emit(message, self.error_stream)

    def warn(self, message: str) -> None:
        """Printed at info and verbose."""
        if self.level != "quiet":
            self._emit(message, self.error_stream)

    def info(self, message: str) -> None:
        """Printed at info and verbose, buffered when quiet."""
        if self.level != "quiet":
            self._emit(message, self.stream)
        else:
            with self._lock:
                self._buffer.append(message)

    def verbose(self, message: str) -> None:
        """Printed only at verbose, buffered otherwise."""
        if self.level == "verbose":
            self._emit(message, self.stream)
        else:
            with self._lock:
                self._buffer.append(message)

    @property
    def buffered(self) -> List[str]:
        with self._lock:
            return list(self._buffer)

    def flush(self) -> None:
        """Replay buffered messages to the error stream."""
        with self._lock:
            pending = list(self._buffer)
            self._buffer.clear()
        if self.level == "verbose" or not pending:
            return
        self._emit("\n[tsprism] Diagnostic trail (use --verbose to see this in real-time):",
                   self.error_stream)
        for message in pending:
            self._emit(message, self.error_stream)

    def clear(self) -> None:
        """Discard buffered messages."""
        with self._lock:
            self._buffer.clear()
