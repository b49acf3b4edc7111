"""
Media utilities for lazy_crf.

This module provides media-specific utilities including:
- FFprobe operations for video metadata
- FFmpeg invocation with live -progress reporting
- VMAF computation and score parsing
"""

import re
import shlex
import subprocess
import tempfile
from pathlib import Path
from typing import Callable, Optional

from ....utils.logging import get_logger
from ..system.system_utils import run_command

logger = get_logger("media_utils")

ProgressCallback = Callable[[float], None]

_VMAF_PATTERNS = [
    'VMAF score:',
    'Global VMAF score:',
    'aggregate VMAF:',
    'mean VMAF:'
]


def get_duration_sec(file: Path) -> float:
    """Container duration in seconds, 0.0 when ffprobe cannot tell."""
    cache_key = str(file)
    if cache_key in get_duration_sec._cache:  # type: ignore[attr-defined]
        return get_duration_sec._cache[cache_key]  # type: ignore[attr-defined]

    cmd = [
        "ffprobe", "-v", "error",
        "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1",
        "-i", str(file)
    ]
    try:
        result = subprocess.check_output(cmd, stderr=subprocess.DEVNULL, text=True).strip()
        val = float(result) if result and result.lower() != "n/a" else 0.0
    except (subprocess.CalledProcessError, FileNotFoundError, ValueError):
        val = 0.0

    if val > 0:
        get_duration_sec._cache[cache_key] = val  # type: ignore[attr-defined]
    return val
get_duration_sec._cache = {}  # type: ignore[attr-defined]


def _duration_cache_clear():
    get_duration_sec._cache.clear()  # type: ignore[attr-defined]
get_duration_sec.cache_clear = _duration_cache_clear  # type: ignore[attr-defined]


def parse_progress_seconds(line: str) -> Optional[float]:
    """Parse an ffmpeg -progress line into processed seconds.

    ffmpeg reports out_time_us and (despite the name, also in microseconds)
    out_time_ms; both may be N/A before the first frame.
    """
    if '=' not in line:
        return None
    key, value = line.strip().split('=', 1)
    if key not in ('out_time_us', 'out_time_ms'):
        return None
    try:
        return max(0.0, int(value) / 1_000_000)
    except ValueError:
        return None


def run_ffmpeg_with_progress(cmd: list[str], on_progress: Optional[ProgressCallback] = None) -> tuple[int, str]:
    """Run ffmpeg with ``-progress pipe:1`` and return (returncode, stderr_text).

    stderr is spooled to a temporary file so a chatty ffmpeg cannot block on a
    full pipe while stdout is being consumed.
    """
    full_cmd = cmd[:1] + ["-progress", "pipe:1", "-nostats"] + cmd[1:]
    logger.cmd(" ".join(shlex.quote(c) for c in full_cmd))

    with tempfile.TemporaryFile(mode="w+", encoding="utf-8", errors="replace") as err:
        process = subprocess.Popen(full_cmd, stdout=subprocess.PIPE, stderr=err,
                                   text=True, errors="replace")
        assert process.stdout is not None
        for line in process.stdout:
            seconds = parse_progress_seconds(line)
            if seconds is not None and on_progress is not None:
                on_progress(seconds)
        returncode = process.wait()
        err.seek(0)
        return returncode, err.read()


def last_lines(text: str, count: int = 3) -> str:
    lines = [l.strip() for l in (text or "").splitlines() if l.strip()]
    return " | ".join(lines[-count:]) if lines else "unknown error"


def parse_vmaf_score(text: str) -> Optional[float]:
    """Parse the pooled VMAF score from libvmaf output."""
    parse_source = (text or '').strip()
    direct_match = re.search(r'VMAF score:\s*([0-9]+(?:\.[0-9]+)?)', parse_source)
    if direct_match:
        return float(direct_match.group(1))
    for pattern in _VMAF_PATTERNS:
        for raw_line in reversed(parse_source.splitlines()):
            line = raw_line.strip()
            if pattern in line:
                score_match = re.search(r'(\d+(?:\.\d+)?)\s*$', line)
                if score_match:
                    return float(score_match.group(1))
    return None


def build_vmaf_cmd(reference: Path, distorted: Path, n_threads: int = 0) -> list[str]:
    """ffmpeg/libvmaf command, distorted first and reference second."""
    opts: list[str] = []
    if n_threads and n_threads > 0:
        opts.append(f"n_threads={n_threads}")
    opt_str = f"={':'.join(opts)}" if opts else ""
    # libvmaf needs matching formats; scale the distorted side onto the reference
    filter_graph = (
        f"[0:v]setpts=PTS-STARTPTS[dis];[1:v]setpts=PTS-STARTPTS[ref];"
        f"[dis][ref]scale2ref=flags=bicubic[dis][ref];[dis][ref]libvmaf{opt_str}"
    )
    return [
        "ffmpeg", "-hide_banner", "-loglevel", "info", "-y",
        "-i", str(distorted),
        "-i", str(reference),
        "-lavfi", filter_graph,
        "-f", "null", "-"
    ]


def compute_vmaf_score(reference: Path, distorted: Path, n_threads: int = 0,
                       on_progress: Optional[ProgressCallback] = None) -> tuple[Optional[float], str]:
    """Compute VMAF score between reference (original) and distorted (encoded) video.

    n_threads: 0 lets libvmaf decide (auto). >0 sets explicit thread count.
    Retries once without the thread option if the first invocation fails.

    Returns (score, stderr_text); score is None when ffmpeg failed or the
    output could not be parsed.
    """
    rc, text = run_ffmpeg_with_progress(build_vmaf_cmd(reference, distorted, n_threads), on_progress)
    if rc != 0 and n_threads > 0:
        logger.debug(f"VMAF failed with n_threads={n_threads}, retrying with auto (0)")
        rc, text = run_ffmpeg_with_progress(build_vmaf_cmd(reference, distorted, 0), on_progress)
    if rc != 0:
        logger.debug(f"VMAF computation failed: {last_lines(text)}")
        return None, text

    score = parse_vmaf_score(text)
    if score is None:
        logger.debug("Could not parse VMAF score from output")
    else:
        logger.vmaf(f"{distorted.name}: {score:.2f}")
    return score, text


def get_encoder_list() -> list[str]:
    """Names of the video encoders the local ffmpeg build provides."""
    try:
        result = run_command(['ffmpeg', '-hide_banner', '-encoders'])
    except (OSError, subprocess.SubprocessError):
        return []
    if result.returncode != 0:
        return []

    encoders = []
    for line in result.stdout.split('\n'):
        parts = line.strip().split()
        if len(parts) >= 2 and parts[0].startswith('V') and parts[1] != '=':
            encoders.append(parts[1])
    return encoders
