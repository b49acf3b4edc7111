"""
System utilities for lazy_crf.

This module provides system-level utilities including:
- Process management
- Temporary path tracking and cleanup
- Human-readable size/duration formatting
"""

import os
import shlex
import shutil
import signal
import atexit
import subprocess
import sys
from pathlib import Path
from typing import Optional

from ....utils.logging import get_logger

logger = get_logger("system_utils")


class _TempPaths(set):
    """Set of temp files/directories removed at interpreter exit."""

    def add(self, item):  # type: ignore[override]
        super().add(str(item))

    def discard(self, item):  # type: ignore[override]
        super().discard(str(item))


TEMP_PATHS = _TempPaths()


def remove_path(path: "str | os.PathLike[str]") -> bool:
    """Remove a file or directory tree. Returns True if something was removed."""
    p = Path(path)
    try:
        if p.is_dir():
            shutil.rmtree(p)
            return True
        if p.exists():
            p.unlink()
            return True
    except OSError as e:
        logger.debug(f"Failed to remove {p}: {e}")
    return False


def _cleanup():
    """Cleanup temporary files on exit"""
    for path in list(TEMP_PATHS):
        if remove_path(path):
            logger.cleanup(f"removed {path}")
        TEMP_PATHS.discard(path)


def cleanup_temp_files():
    """Public cleanup function (wrapper around _cleanup)."""
    _cleanup()


atexit.register(_cleanup)
for _sig in (signal.SIGINT, signal.SIGTERM):
    signal.signal(_sig, lambda s, f: sys.exit(1))


def run_command(cmd: list[str], timeout: Optional[int] = 30, capture_output: bool = True,
                text: bool = True, check: bool = False) -> subprocess.CompletedProcess:
    """
    Standardized subprocess command runner with consistent error handling.

    Args:
        cmd: Command as list of strings
        timeout: Timeout in seconds (default: 30, None for no limit)
        capture_output: Whether to capture stdout/stderr (default: True)
        text: Whether to use text mode (default: True)
        check: Whether to raise exception on non-zero exit (default: False)

    Returns:
        CompletedProcess object
    """
    logger.cmd(" ".join(shlex.quote(c) for c in cmd))
    try:
        return subprocess.run(
            cmd,
            capture_output=capture_output,
            text=text,
            timeout=timeout,
            check=check
        )
    except subprocess.TimeoutExpired:
        logger.error(f"Command timed out after {timeout}s: {' '.join(cmd[:3])}...")
        raise
    except subprocess.CalledProcessError as e:
        logger.debug(f"Command failed: {' '.join(cmd[:3])}... (exit code: {e.returncode})")
        raise


def format_size(bytes_size: int) -> str:
    """Convert bytes to human readable format:
    - Bytes: integer no decimal ("500 B", "0 B")
    - >= KB: two decimals ("1.50 KB", "2.00 MB")
    """
    negative = bytes_size < 0
    size = float(abs(bytes_size))
    units = ['B', 'KB', 'MB', 'GB', 'TB', 'PB']
    unit_index = 0
    while unit_index < len(units) - 1 and size >= 1024.0:
        size /= 1024.0
        unit_index += 1
    unit = units[unit_index]
    if unit == 'B':
        formatted = f"{int(size)} {unit}"
    else:
        formatted = f"{size:.2f} {unit}"
    return f"-{formatted}" if negative else formatted


def format_duration(seconds: float) -> str:
    """Format duration in seconds to a human-readable string"""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        return f"{seconds/60:.1f}m"
    else:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        return f"{hours}h {minutes}m"
