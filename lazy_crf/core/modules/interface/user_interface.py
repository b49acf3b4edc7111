"""
User interface module for lazy_crf.

This module handles terminal output including:
- The search progress bar
- Per-attempt lines
- Final result and encode hint
"""

import shlex
from typing import Optional

from ....utils.logging import create_progress_bar
from ..system.system_utils import format_duration, format_size


class TqdmProgressReporter:
    """Progress reporter backed by a tqdm bar on a fixed ``total`` scale."""

    def __init__(self, total: int = 1000, desc: str = "crf search"):
        self.bar = create_progress_bar(total=total, desc=desc, unit="", leave=False)
        self.bar.bar_format = "{desc} {percentage:3.0f}%|{bar}| [{elapsed}<{remaining}{postfix}]"

    def set_position(self, position: int):
        position = max(0, min(int(position), int(self.bar.total or 0)))
        if position != self.bar.n:
            self.bar.n = position
            self.bar.refresh()

    def set_message(self, message: str):
        self.bar.set_postfix_str(message.strip().rstrip(','), refresh=True)

    def println(self, line: str):
        self.bar.write(line)

    def finish(self):
        self.bar.n = self.bar.total or self.bar.n
        self.bar.close()


def format_attempt(attempt, min_vmaf: float, max_encoded_percent: float) -> str:
    """One line per probed crf, failing measurements marked with ``!``."""
    result = attempt.result
    vmaf_mark = "!" if result.vmaf < min_vmaf else ""
    percent_mark = "!" if result.predicted_encode_percent > max_encoded_percent else ""
    samples = ", 1 sample" if attempt.samples == 1 else ""
    return (f"- crf {attempt.crf} VMAF {result.vmaf:.2f}{vmaf_mark} "
            f"({result.predicted_encode_percent:.0f}%{percent_mark}{samples})")


def format_result(attempt) -> str:
    result = attempt.result
    return (f"crf {attempt.crf} VMAF {result.vmaf:.2f} "
            f"predicted full encode size {format_size(result.predicted_encode_size)} "
            f"({round(result.predicted_encode_percent):.0f}%) "
            f"taking {format_duration(result.predicted_encode_time)}")


def format_encode_hint(config, crf: int, encoder: str, output: Optional[str] = None) -> str:
    """ffmpeg command line that performs the full encode at ``crf``."""
    out = output or f"{config.input.stem}.av1.mkv"
    cmd = ["ffmpeg", "-i", str(config.input), "-c:v", encoder,
           "-crf", str(crf), "-preset", str(config.preset), out]
    return " ".join(shlex.quote(c) for c in cmd)


def describe_infeasible(attempt, min_vmaf: float, max_encoded_percent: float) -> str:
    """Why the last attempt ended the search."""
    result = attempt.result
    reasons = []
    if result.vmaf < min_vmaf:
        reasons.append(f"VMAF {result.vmaf:.2f} below target {min_vmaf:g}")
    if result.predicted_encode_percent > max_encoded_percent:
        reasons.append(f"predicted size {result.predicted_encode_percent:.0f}% "
                       f"above max {max_encoded_percent:g}%")
    detail = " and ".join(reasons) if reasons else "no acceptable result"
    return f"Failed to find a suitable crf: {detail} at crf {attempt.crf}"
