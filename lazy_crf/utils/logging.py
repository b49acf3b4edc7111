"""
Centralized logging utilities for lazy_crf

Provides consistent logging patterns with configurable debug levels:
- [INFO] for general information
- [WARN] for warnings
- [ERROR] for errors
- [DEBUG] for debug information
- [CRF] for crf search decisions
- [SAMPLE] for sample extraction/encoding
- [VMAF] for VMAF calculation messages
- [CLEANUP] for cleanup operations

Usage:
    from lazy_crf.utils.logging import get_logger, set_debug_mode

    set_debug_mode(True)  # Enable debug messages

    logger = get_logger("crf_search")
    logger.info("This is an info message")
    logger.debug("This is a debug message")  # Only shows if debug enabled
    logger.crf("crf 32 -> 43")
"""

import os
import sys
from enum import Enum
from typing import Optional

from tqdm import tqdm

# Global logging configuration
_DEBUG_ENABLED = False
_QUIET_MODE = False
_LOG_LEVEL = "INFO"


class LogLevel(Enum):
    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3


_LEVELS = {
    "DEBUG": LogLevel.DEBUG,
    "INFO": LogLevel.INFO,
    "WARN": LogLevel.WARN,
    "ERROR": LogLevel.ERROR,
}


def _init_debug_mode():
    global _DEBUG_ENABLED
    if os.getenv('DEBUG', '').lower() in ('1', 'true', 'yes'):
        _DEBUG_ENABLED = True

_init_debug_mode()


def set_debug_mode(enabled: bool):
    """Enable or disable debug mode globally"""
    global _DEBUG_ENABLED
    _DEBUG_ENABLED = enabled


def set_quiet_mode(enabled: bool):
    """Enable or disable quiet mode (suppress INFO and DEBUG messages)"""
    global _QUIET_MODE
    _QUIET_MODE = enabled


def set_log_level(level: str):
    """Set the global log level: DEBUG, INFO, WARN, ERROR"""
    global _LOG_LEVEL
    _LOG_LEVEL = level.upper()


def _emit(line: str):
    # Route through tqdm so an active progress bar is not torn
    tqdm.write(line, file=sys.stderr)


class Logger:
    """Centralized logger with consistent formatting and configurable output"""

    def __init__(self, module_name: str = ""):
        self.module_name = module_name
        self.prefix = f"[{module_name}] " if module_name else ""

    def _should_log(self, level: LogLevel) -> bool:
        """Check if message should be logged based on current settings"""
        if _QUIET_MODE and level in (LogLevel.DEBUG, LogLevel.INFO):
            return False
        if level is LogLevel.DEBUG:
            return _DEBUG_ENABLED
        current_level = _LEVELS.get(_LOG_LEVEL, LogLevel.INFO)
        return level.value >= current_level.value

    def _log(self, level: str, message: str):
        log_level = _LEVELS.get(level, LogLevel.INFO)
        if not self._should_log(log_level):
            return
        _emit(f"[{level}] {self.prefix}{message}")

    def _tagged(self, tag: str, message: str, level: LogLevel = LogLevel.INFO, debug_only: bool = False):
        if debug_only and not _DEBUG_ENABLED:
            return
        if self._should_log(level):
            _emit(f"[{tag}] {message}")

    def debug(self, message: str):
        """Log debug message (only if debug mode enabled)"""
        if _DEBUG_ENABLED:
            self._log("DEBUG", message)

    def info(self, message: str):
        self._log("INFO", message)

    def warn(self, message: str):
        self._log("WARN", message)

    def error(self, message: str):
        self._log("ERROR", message)

    # Domain-specific logging methods
    def crf(self, message: str):
        """Log crf search decision"""
        self._tagged("CRF", message, debug_only=True)

    def sample(self, message: str):
        """Log sample extraction/encoding message"""
        self._tagged("SAMPLE", message, LogLevel.DEBUG, debug_only=True)

    def vmaf(self, message: str):
        """Log VMAF calculation message"""
        self._tagged("VMAF", message, LogLevel.DEBUG, debug_only=True)

    def cmd(self, message: str):
        """Log command execution message"""
        self._tagged("CMD", message, LogLevel.DEBUG, debug_only=True)

    def cleanup(self, message: str):
        """Log cleanup operation"""
        self._tagged("CLEANUP", message, LogLevel.DEBUG, debug_only=True)


def get_logger(module_name: str = "") -> Logger:
    """Get a logger instance for a module"""
    return Logger(module_name)


def create_progress_bar(total: Optional[int] = None, desc: str = "", unit: str = "it",
                        position: Optional[int] = None, leave: bool = True) -> tqdm:
    """Create a progress bar with consistent styling"""
    return tqdm(total=total, desc=desc, unit=unit, position=position, leave=leave)
