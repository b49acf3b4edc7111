"""
Sample encoding for lazy_crf.

Measures one crf value without a full encode:
- Evenly spaced sample clips are cut from the input (stream copy)
- Each clip is encoded at the requested crf/preset
- Each encode is scored against its clip with libvmaf
- Full-encode size, percent and duration are predicted from the samples
"""

import subprocess
import tempfile
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from ....utils.logging import get_logger
from ..system.system_utils import TEMP_PATHS, remove_path, run_command
from .media_utils import compute_vmaf_score, get_duration_sec, last_lines, run_ffmpeg_with_progress

logger = get_logger("sample_encoder")

DEFAULT_ENCODER = "libsvtav1"
DEFAULT_SAMPLE_DURATION = 20


class SampleEncodeError(Exception):
    """The sample encode/measure step failed (ffmpeg error, missing output...)."""


@dataclass(frozen=True)
class ProbeResult:
    """Measurements and predictions from one sample-encode run."""
    vmaf: float
    predicted_encode_size: int
    predicted_encode_percent: float
    predicted_encode_time: float  # seconds


class SampleProgress:
    """Thread-safe (position, length) pair shared between a probe and its observer."""

    def __init__(self, length: int = 0):
        self._lock = threading.Lock()
        self._position = 0
        self._length = length

    def set_length(self, length: int):
        with self._lock:
            self._length = max(0, int(length))

    def set_position(self, position: int):
        with self._lock:
            # position is monotonic
            self._position = max(self._position, int(position))

    @property
    def position(self) -> int:
        with self._lock:
            return self._position

    @property
    def length(self) -> int:
        with self._lock:
            return self._length

    def fraction(self) -> float:
        """Completed fraction in [0, 1]."""
        with self._lock:
            if self._length <= 0:
                return 0.0
            return min(1.0, self._position / self._length)


@dataclass(frozen=True)
class _Clip:
    path: Path
    duration: float
    size: int


def sample_starts(duration: float, samples: int, sample_duration: float) -> List[float]:
    """Start offsets for ``samples`` clips spread evenly across the input.

    An empty list means the input is too short to sample and should be used whole.
    """
    if samples * sample_duration >= duration:
        return []
    span = duration - sample_duration
    return [span * (i + 1) / (samples + 1) for i in range(samples)]


class SampleEncoder:
    """ffmpeg/libvmaf backed measurement primitive.

    Extracted sample clips are reused across probes of one search and removed
    on ``close()``.
    """

    def __init__(self, input_file: Path, encoder: str = DEFAULT_ENCODER,
                 sample_duration: int = DEFAULT_SAMPLE_DURATION, vmaf_threads: int = 0,
                 temp_dir: Optional[Path] = None, pix_fmt: Optional[str] = "yuv420p10le"):
        self.input_file = Path(input_file)
        self.encoder = encoder
        self.sample_duration = sample_duration
        self.vmaf_threads = vmaf_threads
        self.pix_fmt = pix_fmt
        self._temp_parent = temp_dir
        self._work_dir: Optional[Path] = None
        self._clips: Dict[Tuple[float, float], _Clip] = {}

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False

    def close(self):
        if self._work_dir is not None:
            remove_path(self._work_dir)
            TEMP_PATHS.discard(self._work_dir)
            self._work_dir = None
        self._clips.clear()

    @property
    def work_dir(self) -> Path:
        if self._work_dir is None:
            parent = str(self._temp_parent) if self._temp_parent else None
            self._work_dir = Path(tempfile.mkdtemp(prefix="lazy_crf_", dir=parent))
            TEMP_PATHS.add(self._work_dir)
        return self._work_dir

    def _extract_clip(self, start: float, duration: float, index: int) -> _Clip:
        key = (round(start, 3), float(duration))
        if key in self._clips:
            return self._clips[key]

        clip_path = self.work_dir / f"{self.input_file.stem}.sample{index}_{int(start)}.mkv"
        cmd = [
            "ffmpeg", "-hide_banner", "-y", "-loglevel", "error",
            "-ss", f"{start:.3f}",
            "-i", str(self.input_file),
            "-t", str(duration),
            "-map", "0:v:0", "-c:v", "copy", "-an",
            str(clip_path)
        ]
        logger.sample(f"extracting {duration}s at {start:.1f}s -> {clip_path.name}")
        result = run_command(cmd, timeout=None)
        if result.returncode != 0 or not clip_path.exists():
            raise SampleEncodeError(
                f"Failed to extract sample {index} from {self.input_file.name}: {last_lines(result.stderr)}"
            )
        clip = _Clip(clip_path, duration, clip_path.stat().st_size)
        self._clips[key] = clip
        return clip

    def _clips_for(self, duration: float, samples: int) -> List[_Clip]:
        starts = sample_starts(duration, samples, self.sample_duration)
        if not starts:
            logger.sample(f"{self.input_file.name} is shorter than {samples}x{self.sample_duration}s, using full input")
            size = self.input_file.stat().st_size
            return [_Clip(self.input_file, duration, size)]
        return [self._extract_clip(start, self.sample_duration, i) for i, start in enumerate(starts)]

    def build_encode_cmd(self, clip: Path, output: Path, crf: int, preset: Union[int, str]) -> list[str]:
        cmd = [
            "ffmpeg", "-hide_banner", "-y", "-loglevel", "error",
            "-i", str(clip),
            "-map", "0:v:0",
            "-c:v", self.encoder,
            "-crf", str(crf),
            "-preset", str(preset),
        ]
        if self.pix_fmt:
            cmd += ["-pix_fmt", self.pix_fmt]
        cmd += ["-an", str(output)]
        return cmd

    def sample(self, input_file: Path, crf: int, preset: Union[int, str], samples: int,
               progress: SampleProgress) -> ProbeResult:
        """Encode and score ``samples`` clips at ``crf``; report progress as it goes.

        Raises:
            SampleEncodeError: ffmpeg failed, could not be started, or the
                input/sample files could not be read
        """
        try:
            return self._sample(input_file, crf, preset, samples, progress)
        except (OSError, subprocess.SubprocessError) as e:
            raise SampleEncodeError(f"Sampling crf {crf} of {self.input_file.name} failed: {e}") from e

    def _sample(self, input_file: Path, crf: int, preset: Union[int, str], samples: int,
                progress: SampleProgress) -> ProbeResult:
        if Path(input_file) != self.input_file:
            raise SampleEncodeError(f"Sample encoder bound to {self.input_file}, got {input_file}")

        duration = get_duration_sec(self.input_file)
        if duration <= 0:
            raise SampleEncodeError(f"Could not determine duration of {self.input_file.name}")
        input_size = self.input_file.stat().st_size

        clips = self._clips_for(duration, samples)
        clip_ms = [int(c.duration * 1000) for c in clips]
        # encode pass + VMAF pass per clip
        progress.set_length(2 * sum(clip_ms))
        done_ms = 0

        scores: List[float] = []
        encoded_bytes = 0
        sample_bytes = 0
        encode_seconds = 0.0
        sample_seconds = 0.0

        for i, clip in enumerate(clips):
            encoded = self.work_dir / f"{self.input_file.stem}.sample{i}.crf{crf}.mkv"

            base = done_ms
            def on_encode(seconds: float, base=base, limit=clip_ms[i]):
                progress.set_position(base + min(limit, int(seconds * 1000)))

            logger.sample(f"encoding sample {i + 1}/{len(clips)} at crf {crf}")
            started = time.monotonic()
            rc, stderr = run_ffmpeg_with_progress(self.build_encode_cmd(clip.path, encoded, crf, preset), on_encode)
            elapsed = time.monotonic() - started
            if rc != 0:
                raise SampleEncodeError(f"Encoding sample {i + 1} at crf {crf} failed: {last_lines(stderr)}")
            if not encoded.exists():
                raise SampleEncodeError(f"Encoding sample {i + 1} at crf {crf} produced no output")
            done_ms += clip_ms[i]
            progress.set_position(done_ms)

            base = done_ms
            def on_vmaf(seconds: float, base=base, limit=clip_ms[i]):
                progress.set_position(base + min(limit, int(seconds * 1000)))

            score, vmaf_stderr = compute_vmaf_score(clip.path, encoded, self.vmaf_threads, on_vmaf)
            if score is None:
                raise SampleEncodeError(f"VMAF failed for sample {i + 1} at crf {crf}: {last_lines(vmaf_stderr)}")
            done_ms += clip_ms[i]
            progress.set_position(done_ms)

            scores.append(score)
            encoded_bytes += encoded.stat().st_size
            sample_bytes += clip.size
            encode_seconds += elapsed
            sample_seconds += clip.duration
            remove_path(encoded)

        if sample_bytes <= 0 or sample_seconds <= 0:
            raise SampleEncodeError(f"Empty samples taken from {self.input_file.name}")

        percent = encoded_bytes * 100.0 / sample_bytes
        return ProbeResult(
            vmaf=sum(scores) / len(scores),
            predicted_encode_size=int(input_size * percent / 100.0),
            predicted_encode_percent=percent,
            predicted_encode_time=encode_seconds / sample_seconds * duration,
        )
