#!/usr/bin/env python3
"""
Logger Module

Console logging for the vm-start / vm-clone tools: one stdout stream with
level symbols and ANSI colors, a SUCCESS level for "VM has an address"
style results, and an optional systemd journal copy.

Modules log through children of the "vmdns" logger; at DEBUG level the
console line is prefixed with the emitting component so probe and retry
chatter can be told apart.

Created: 2026-10-18
Author: Manuel Ziel
License: MIT
"""

################################################################################
# IMPORTS & DEPENDENCIES
################################################################################

import os
import sys
import logging
import threading
from typing import Dict, Any, Optional

from . import __syslog_identifier__

################################################################################
# COLORS & SYMBOLS
################################################################################

RED = '\033[0;31m'
GREEN = '\033[0;32m'
YELLOW = '\033[1;33m'
BLUE = '\033[0;34m'
BOLD_RED = '\033[1;31m'
RESET = '\033[0m'

LOG_COLORS = {
    'DEBUG': BLUE,
    'INFO': '',
    'SUCCESS': GREEN,
    'WARNING': YELLOW,
    'ERROR': RED,
    'CRITICAL': BOLD_RED,
}

LOG_SYMBOLS = {
    'DEBUG': 'd',
    'INFO': 'ℹ',
    'SUCCESS': '✓',
    'WARNING': '!',
    'ERROR': '✗',
    'CRITICAL': '✗',
    'BULLET': '*',
    'ARROW': '>',
}

################################################################################
# FORMATTER CLASS - ANSI Color Formatting
################################################################################

class ColoredFormatter(logging.Formatter):
    """Prefixes each line with its level symbol, colors it, tags DEBUG lines with the component."""

    def __init__(self, root_name: str = 'vmdns', use_colors: bool = True) -> None:
        self.root_name = root_name
        self.use_colors = use_colors
        super().__init__('%(message)s')

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()

        if record.levelno <= logging.DEBUG:
            component = self._component(record.name)
            if component:
                message = f"[{component}] {message}"

        symbol = LOG_SYMBOLS.get(record.levelname, '')
        if symbol:
            message = f"{symbol} {message}"

        color = LOG_COLORS.get(record.levelname, '')
        if self.use_colors and color:
            message = f"{color}{message}{RESET}"

        # Copy so the journal handler still sees the plain message
        record = logging.makeLogRecord(record.__dict__)
        record.msg = message
        record.args = None
        return super().format(record)

    def _component(self, name: str) -> str:
        prefix = f"{self.root_name}."
        return name[len(prefix):] if name.startswith(prefix) else ''

################################################################################
# LOGGER MANAGER CLASS
################################################################################

class LoggerManager:
    """Creates the tool loggers once and lets the CLI adjust them after config load."""

    _loggers: Dict[str, logging.Logger] = {}
    _lock = threading.Lock()

    @classmethod
    def get_logger(cls, name: str, level: Optional[int] = None,
                   use_colors: Optional[bool] = None) -> logging.Logger:
        """Get or create logger (thread-safe). level=None means DEBUG if $DEBUG=1, else INFO."""
        with cls._lock:
            if name not in cls._loggers:
                cls._loggers[name] = cls._create_logger(name, level, use_colors)
            return cls._loggers[name]

    @classmethod
    def reconfigure(cls, name: str, level: Optional[int] = None, use_colors: Optional[bool] = None) -> None:
        """Apply the [debug] config section to a logger that already exists."""
        with cls._lock:
            logger = cls._loggers.get(name)
            if logger is None:
                return
            if level is not None:
                logger.setLevel(level)
            for handler in logger.handlers:
                if level is not None:
                    handler.setLevel(level)
                if use_colors is not None and isinstance(handler.formatter, ColoredFormatter):
                    handler.formatter.use_colors = use_colors

    ################################################################################
    # PRIVATE CLASS METHODS - Handler Setup
    ################################################################################

    @classmethod
    def _create_logger(cls, name: str, level: Optional[int], use_colors: Optional[bool]) -> logging.Logger:
        if level is None:
            level = logging.DEBUG if os.getenv('DEBUG', '0') == '1' else logging.INFO
        if use_colors is None:
            use_colors = sys.stdout.isatty()

        logger = logging.getLogger(name)
        logger.setLevel(level)
        logger.propagate = False

        for handler in logger.handlers[:]:
            logger.removeHandler(handler)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(ColoredFormatter(root_name=name, use_colors=use_colors))
        logger.addHandler(console_handler)

        cls._setup_journal_handler(logger, level)
        return logger

    @classmethod
    def _setup_journal_handler(cls, logger: logging.Logger, level: int) -> None:
        """Mirror to the systemd journal when python-systemd is installed."""
        try:
            from systemd import journal
        except ImportError:
            return

        identifier = os.environ.get('SYSLOG_IDENTIFIER') or __syslog_identifier__
        try:
            journal_handler = journal.JournalHandler(SYSLOG_IDENTIFIER=identifier)
        except OSError as e:
            print(f"Warning: Could not setup journal logging: {e}", file=sys.stderr)
            return
        journal_handler.setLevel(level)
        journal_handler.setFormatter(logging.Formatter('%(levelname)s: %(name)s: %(message)s'))
        logger.addHandler(journal_handler)


# SUCCESS sits between INFO (20) and WARNING (30)
SUCCESS_LEVEL = 25
logging.addLevelName(SUCCESS_LEVEL, 'SUCCESS')

def success(self, message: str, *args: Any, **kwargs: Any) -> None:
    """Log a success message."""
    if self.isEnabledFor(SUCCESS_LEVEL):
        self._log(SUCCESS_LEVEL, message, args, **kwargs)

logging.Logger.success = success
