"""Colored logging formatter for console output."""

from __future__ import annotations

import logging
import os
import sys


class ColoredFormatter(logging.Formatter):
    """Logging formatter that applies ANSI color codes to the levelname field.

    Records logged with ``extra={"degraded": True}`` (persistence gave up and
    the engine kept running from memory) get a ``[DEGRADED]`` marker so they
    stand out in the console even without colors.

    Colors are disabled when the ``NO_COLOR`` environment variable is set or
    when the output stream is not a TTY (e.g. redirected to a file).
    """

    COLORS: dict[int, str] = {
        logging.DEBUG: "\033[36m",     # cyan
        logging.INFO: "\033[32m",      # green
        logging.WARNING: "\033[33m",   # yellow
        logging.ERROR: "\033[31m",     # red
        logging.CRITICAL: "\033[1;31m",  # bold red
    }
    DEGRADED_COLOR = "\033[35m"  # magenta
    DEGRADED_MARKER = "[DEGRADED]"
    RESET = "\033[0m"

    def _use_color(self) -> bool:
        if os.environ.get("NO_COLOR") is not None:
            return False
        stream = getattr(self, "_stream", None) or sys.stdout
        return hasattr(stream, "isatty") and stream.isatty()

    def format(self, record: logging.LogRecord) -> str:
        degraded = bool(getattr(record, "degraded", False))
        use_color = self._use_color()
        if not (use_color or degraded):
            return super().format(record)

        record = logging.makeLogRecord(record.__dict__)
        if use_color:
            color = self.COLORS.get(record.levelno, "")
            record.levelname = f"{color}{record.levelname}{self.RESET}"
        if degraded:
            marker = self.DEGRADED_MARKER
            if use_color:
                marker = f"{self.DEGRADED_COLOR}{marker}{self.RESET}"
            record.msg = f"{marker} {record.msg}"
        return super().format(record)
