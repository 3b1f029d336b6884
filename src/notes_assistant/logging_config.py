"""Logging configuration for the notes assistant.

This module provides centralized logging setup with support for:
- Console logging via Rich library for terminal output
- File logging with ISO timestamps
- Redaction of provider credentials (OpenAI keys, bearer tokens, Elsevier keys)
- Suppression of chatty third-party loggers
"""

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


OPENAI_KEY_RE = re.compile(r'(sk-[A-Za-z0-9_-]{6})([A-Za-z0-9_-]+)([A-Za-z0-9_-]{4})')
BEARER_RE = re.compile(r'(Bearer\s+)(\S{4})\S+', re.IGNORECASE)
ELSEVIER_KEY_RE = re.compile(r'(X-ELS-APIKey[\'"]?\s*[:=]\s*[\'"]?)([A-Za-z0-9]{4})[A-Za-z0-9]+', re.IGNORECASE)


def redact_secrets(text: str) -> str:
    """Redact credentials that may appear in request or error text.

    Note ids (32 alphanumeric characters) are left alone: they are plain
    identifiers, and logs that mention them need to stay readable.

    Examples:
        >>> redact_secrets("Error with key sk-U10C2abc123xyz0yZg")
        'Error with key sk-U10C2a*************0yZg'
        >>> redact_secrets("headers={'X-ELS-APIKey': 'abcd1234abcd1234'}")
        "headers={'X-ELS-APIKey': 'abcd*************'}"
    """
    text = OPENAI_KEY_RE.sub(r'\1*************\3', text)
    text = BEARER_RE.sub(r'\1\2*************', text)
    text = ELSEVIER_KEY_RE.sub(r'\1\2*************', text)
    return text


class TerminalFormatter(logging.Formatter):
    """Log formatter for terminal output: level char + message (no timestamp)."""

    LEVEL_CHARS = {
        'DEBUG': 'D',
        'INFO': 'I',
        'WARNING': 'W',
        'ERROR': 'E',
        'CRITICAL': 'E',
    }

    def format(self, record: logging.LogRecord) -> str:
        level_char = self.LEVEL_CHARS.get(record.levelname, '?')
        return f"{level_char} {redact_secrets(super().format(record))}"


class FileFormatter(logging.Formatter):
    """Log formatter for file output: ISO timestamp + level + logger + message."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).isoformat()
        message = redact_secrets(super().format(record))
        return f"{timestamp} {record.levelname} {record.name}: {message}"


def _write_session_delimiter(logfile: str) -> None:
    delimiter = f"\n{'=' * 80}\n"
    delimiter += f"Session started: {datetime.now().isoformat()}\n"
    delimiter += f"{'=' * 80}\n"

    with open(logfile, 'a') as f:
        f.write(delimiter)


def _create_console_handler(loglevel: str) -> RichHandler:
    """Create Rich-based console handler for terminal logging.

    Logs go to stderr so that streamed citations and replies on stdout stay clean.
    """
    console = Console(stderr=True)
    handler = RichHandler(
        console=console,
        show_time=False,
        show_level=False,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
    )
    handler.setLevel(getattr(logging, loglevel.upper()))
    handler.setFormatter(TerminalFormatter())
    return handler


def _create_file_handler(logfile: str) -> logging.FileHandler:
    logfile_path = Path(logfile)
    logfile_path.parent.mkdir(parents=True, exist_ok=True)
    _write_session_delimiter(logfile)

    handler = logging.FileHandler(logfile, mode='a')
    handler.setLevel(logging.DEBUG)  # file gets all levels
    handler.setFormatter(FileFormatter())
    return handler


QUIET_LOGGERS = ('llama_index', 'openai', 'httpx', 'httpcore', 'urllib3')


def configure_logging(loglevel: Optional[str] = None, logfile: Optional[str] = None) -> None:
    """Configure logging for the notes assistant.

    Args:
        loglevel: Terminal log level (ERROR, WARNING, INFO, DEBUG). If None, no terminal logging.
        logfile: Path to log file. If None, no file logging.

    Raises:
        ValueError: If loglevel is not a valid log level
    """
    if loglevel is not None and loglevel.upper() not in ('ERROR', 'WARNING', 'INFO', 'DEBUG'):
        raise ValueError(f"Invalid log level: {loglevel}")

    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    if loglevel is None and logfile is None:
        # Keeps Python's lastResort handler from printing to stderr
        root_logger.setLevel(logging.CRITICAL + 1)
        return

    root_logger.setLevel(logging.DEBUG)
    if loglevel is not None:
        root_logger.addHandler(_create_console_handler(loglevel))
    if logfile is not None:
        root_logger.addHandler(_create_file_handler(logfile))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
