"""Cron expression parsing and an in-process, thread-based job scheduler."""

__version__ = "3.0.0"
__all__ = ["chain", "constantdelay", "cron", "logger", "parser", "spec"]