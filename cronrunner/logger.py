"""Structured logging used by the scheduler, with printf-style adapters."""

from __future__ import annotations

import sys
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, List, Sequence

Printer = Callable[[str], Any]


class Logger(ABC):
    """Logging interface with an info level and an error level.

    Extra arguments are alternating keys and values.
    """

    @abstractmethod
    def info(self, msg: str, *args: Any) -> None:
        """Log a routine message about the scheduler's operation."""

    @abstractmethod
    def error(self, err: BaseException, msg: str, *args: Any) -> None:
        """Log an error condition."""


def format_string(num_keys_and_values: int) -> str:
    """Return a logfmt-like format string for the given number of keys and values."""
    pairs = ", ".join("%s=%s" for _ in range(num_keys_and_values // 2))
    if num_keys_and_values > 0:
        return "%s, " + pairs
    return "%s"


def _rfc3339(t: datetime) -> str:
    if t.tzinfo is None:
        t = t.astimezone()
    base = t.strftime("%Y-%m-%dT%H:%M:%S")
    offset = t.utcoffset()
    total = int(offset.total_seconds()) if offset is not None else 0
    if total == 0:
        return base + "Z"
    sign = "+" if total > 0 else "-"
    total = abs(total)
    return f"{base}{sign}{total // 3600:02d}:{total % 3600 // 60:02d}"


def format_times(keys_and_values: Sequence[Any]) -> List[Any]:
    """Return the values with every datetime rendered as RFC 3339 text."""
    return [_rfc3339(v) if isinstance(v, datetime) else v for v in keys_and_values]


def _render(msg: str, args: Sequence[Any]) -> str:
    values = list(args)
    paired = len(values) - len(values) % 2
    line = format_string(paired) % (msg, *values[:paired])
    if len(values) % 2:
        line += f"%!(EXTRA {values[-1]})"
    return line


class PrintfLogger(Logger):
    """Logger that renders each message to a line and hands it to a printer."""

    def __init__(self, printer: Printer, log_info: bool) -> None:
        self.printer = printer
        self.log_info = log_info

    def info(self, msg: str, *args: Any) -> None:
        if self.log_info:
            self.printer(_render(msg, format_times(args)))

    def error(self, err: BaseException, msg: str, *args: Any) -> None:
        self.printer(_render(msg, ["error", err, *format_times(args)]))


def printf_logger(printer: Printer) -> PrintfLogger:
    """Wrap a printer into a logger that logs errors only."""
    return PrintfLogger(printer, False)


def verbose_printf_logger(printer: Printer) -> PrintfLogger:
    """Wrap a printer into a logger that logs everything."""
    return PrintfLogger(printer, True)


class _StdoutPrinter:
    def __init__(self, prefix: str) -> None:
        self.prefix = prefix

    def __call__(self, line: str) -> None:
        stamp = datetime.now().strftime("%Y/%m/%d %H:%M:%S")
        sys.stdout.write(f"{self.prefix}{stamp} {line}\n")


DEFAULT_LOGGER: Logger = printf_logger(_StdoutPrinter("cron: "))
DISCARD_LOGGER: Logger = printf_logger(lambda line: None)