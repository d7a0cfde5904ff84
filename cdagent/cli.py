"""Helpers shared by the command-line entry points: logging, validation, errors, versions."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, NoReturn, Protocol

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

VERSION_FORMAT_TEXT = "text"
VERSION_FORMAT_JSON_COMPACT = "json"
VERSION_FORMAT_JSON_INDENT = "json-indent"
VERSION_FORMAT_YAML = "yaml"

# Level names in order of severity, most severe first.
_ALL_LEVELS = ("panic", "fatal", "error", "warning", "info", "debug", "trace")

_PARSEABLE_LEVELS = {
    "fatal": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": TRACE,
}


def _level_name(levelno: int) -> str:
    if levelno >= logging.CRITICAL:
        return "fatal"
    if levelno >= logging.ERROR:
        return "error"
    if levelno >= logging.WARNING:
        return "warning"
    if levelno >= logging.INFO:
        return "info"
    if levelno >= logging.DEBUG:
        return "debug"
    return "trace"


def string_to_log_level(level: str) -> int:
    """Convert a level name (case-insensitive) to a logging level number."""
    try:
        return _PARSEABLE_LEVELS[level.lower()]
    except KeyError:
        raise ValueError(f"unknown log level: {level}") from None


def available_log_levels() -> str:
    """A comma-separated list of all known level names."""
    return ", ".join(_ALL_LEVELS)


class JSONFormatter(logging.Formatter):
    """Formats records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "level": _level_name(record.levelno),
            "msg": record.getMessage(),
            "time": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
        }
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry)


class TextFormatter(logging.Formatter):
    """Formats records as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        when = datetime.fromtimestamp(record.created, timezone.utc).isoformat()
        line = (
            f'time="{when}" level={_level_name(record.levelno)} '
            f"msg={json.dumps(record.getMessage())}"
        )
        if record.exc_info:
            line += f" error={json.dumps(self.formatException(record.exc_info))}"
        return line


def log_formatter(format_name: str) -> logging.Formatter:
    """Return the formatter for ``text`` or ``json`` (case-insensitive)."""
    name = format_name.lower()
    if name == "text":
        return TextFormatter()
    if name == "json":
        return JSONFormatter()
    raise ValueError(f"invalid format '{format_name}', must be one of text, json")


class _LevelFilter(logging.Filter):
    def __init__(self, below_warning: bool) -> None:
        super().__init__()
        self._below_warning = below_warning

    def filter(self, record: logging.LogRecord) -> bool:
        return (record.levelno < logging.WARNING) == self._below_warning


def init_logging() -> None:
    """Configure the root logger: warnings and above to stderr, the rest to stdout, as JSON."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_cdagent_handler", False):
            root.removeHandler(handler)
    root.setLevel(logging.DEBUG)
    for stream, below_warning in ((sys.stderr, False), (sys.stdout, True)):
        handler = logging.StreamHandler(stream)
        handler.setFormatter(JSONFormatter())
        handler.addFilter(_LevelFilter(below_warning))
        handler._cdagent_handler = True  # type: ignore[attr-defined]
        root.addHandler(handler)


def valid_port(num: int) -> None:
    """Raise ValueError unless ``num`` is a usable port number."""
    if num < 0 or num > 65536:
        raise ValueError(f"{num}: not a valid port number")


def fatal(msg: str, *args: Any) -> NoReturn:
    """Print a fatal message to stderr and exit with status 1."""
    fatal_with_exit_code(1, msg, *args)


def fatal_with_exit_code(code: int, msg: str, *args: Any) -> NoReturn:
    """Print a fatal message to stderr and exit with ``code``."""
    text = msg % args if args else msg
    sys.stderr.write(f"[FATAL]: {text}\n")
    sys.stderr.flush()
    raise SystemExit(code)


class VersionInfo(Protocol):
    def version(self) -> str: ...

    def json(self, indent: bool) -> str: ...

    def yaml(self) -> str: ...


def print_version(version: VersionInfo, format_name: str) -> None:
    """Print version information in the requested format, falling back to text."""
    if format_name == VERSION_FORMAT_TEXT:
        print(version.version())
    elif format_name == VERSION_FORMAT_JSON_COMPACT:
        print(version.json(False))
    elif format_name == VERSION_FORMAT_JSON_INDENT:
        print(version.json(True))
    elif format_name == VERSION_FORMAT_YAML:
        print(version.yaml())
    else:
        print(
            f"Warning: Unknown version format '{format_name}', "
            f"falling back to {VERSION_FORMAT_TEXT}",
            end="",
        )
        print(version.version())