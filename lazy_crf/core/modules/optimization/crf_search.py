"""
CRF search for lazy_crf.

Pseudo binary search over integer crf values using sample encodes, looking
for the highest crf (smallest output) that still delivers ``min_vmaf`` within
``max_encoded_percent`` of the input size:
- Cheap 1-sample probes for the first iterations
- VMAF-linear interpolation between bracketing attempts
- Early acceptance inside a tolerance band that widens every iteration
"""

import concurrent.futures
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Protocol, Union

from ....utils.logging import get_logger
from ..analysis.sample_encoder import ProbeResult, SampleEncodeError, SampleProgress
from ..interface.user_interface import describe_infeasible, format_attempt
from .progress_estimator import BAR_LEN, guess_progress

logger = get_logger("crf_search")

POLL_INTERVAL = 0.1  # seconds between progress polls
DEFAULT_TOLERANCE_STEP = 0.2


class CrfSearchError(Exception):
    """Base class for crf search failures."""


class InvalidSearchConfig(CrfSearchError, ValueError):
    """Search configuration rejected before any probing."""


class NoSuitableCrf(CrfSearchError):
    """No crf in range meets the VMAF target within the size budget."""

    def __init__(self, attempt: "Attempt", reason: str):
        super().__init__(reason)
        self.attempt = attempt
        self.reason = reason


class ProbeFailure(CrfSearchError):
    """The sample encode itself failed."""


class TaskFailure(CrfSearchError):
    """The probe task died with an unexpected error."""


@dataclass(frozen=True)
class SearchConfig:
    input: Path
    preset: Union[int, str]
    min_vmaf: float = 95.0
    max_encoded_percent: float = 80.0
    min_crf: int = 10
    max_crf: int = 55
    samples: int = 3
    tolerance_step: float = DEFAULT_TOLERANCE_STEP
    quick_boundary_run: bool = True

    def __post_init__(self):
        if self.min_crf > self.max_crf:
            raise InvalidSearchConfig(
                f"Invalid crf range: min crf {self.min_crf} > max crf {self.max_crf}"
            )
        if self.samples < 1:
            raise InvalidSearchConfig(f"Invalid samples {self.samples}: need at least 1")


@dataclass(frozen=True)
class Attempt:
    """One completed probe."""
    crf: int
    samples: int
    result: ProbeResult


@dataclass
class SearchOutcome:
    """Final word of a search: the winning attempt, or the one that ended it."""
    success: bool
    attempt: Attempt
    attempts: List[Attempt] = field(default_factory=list)
    reason: Optional[str] = None


class Sampler(Protocol):
    def sample(self, input_file: Path, crf: int, preset: Union[int, str], samples: int,
               progress: SampleProgress) -> ProbeResult:
        ...


class ProgressReporter(Protocol):
    def set_position(self, position: int): ...
    def set_message(self, message: str): ...
    def println(self, line: str): ...
    def finish(self): ...


class _NullReporter:
    def set_position(self, position: int):
        pass

    def set_message(self, message: str):
        pass

    def println(self, line: str):
        pass

    def finish(self):
        pass


def vmaf_lerp_crf(min_vmaf: float, worse_q: Attempt, better_q: Attempt) -> int:
    """Produce a crf value between given attempts using vmaf score linear interpolation."""
    worse_vmaf = worse_q.result.vmaf
    better_vmaf = better_q.result.vmaf
    assert (worse_vmaf <= min_vmaf
            and worse_vmaf < better_vmaf
            and better_q.crf < worse_q.crf), \
        f"invalid vmaf_lerp_crf usage: {worse_q!r}, {better_q!r}"

    vmaf_factor = (min_vmaf - worse_vmaf) / (better_vmaf - worse_vmaf)
    crf_diff = worse_q.crf - better_q.crf
    # half rounds up, crf is never negative
    lerp = math.floor(worse_q.crf - crf_diff * vmaf_factor + 0.5)
    lerp = max(lerp, better_q.crf + 1)
    if crf_diff > 1:
        lerp = min(lerp, worse_q.crf - 1)
    return int(lerp)


def upper_neighbour(attempts: List[Attempt], crf: int) -> Optional[Attempt]:
    """Attempt with the smallest crf strictly above ``crf``."""
    above = [a for a in attempts if a.crf > crf]
    return min(above, key=lambda a: a.crf) if above else None


def lower_neighbour(attempts: List[Attempt], crf: int) -> Optional[Attempt]:
    """Attempt with the largest crf strictly below ``crf``."""
    below = [a for a in attempts if a.crf < crf]
    return max(below, key=lambda a: a.crf) if below else None


class CrfSearch:
    """Adaptive crf search driving one probe at a time.

    Each ``search()`` call owns its attempt history; nothing is shared
    between calls.
    """

    def __init__(self, config: SearchConfig, sampler: Sampler,
                 reporter: Optional[ProgressReporter] = None,
                 poll_interval: float = POLL_INTERVAL, bar_len: int = BAR_LEN):
        self.config = config
        self.sampler = sampler
        self.reporter = reporter or _NullReporter()
        self.poll_interval = poll_interval
        self.bar_len = bar_len
        self.attempts: List[Attempt] = []

    def is_quick_3rd_run(self, run: int, crf: int) -> bool:
        """A 3rd iteration already sitting on a crf bound gets a 1-sample probe."""
        cfg = self.config
        return run == 3 and cfg.quick_boundary_run and crf in (cfg.min_crf, cfg.max_crf)

    def samples_for_run(self, run: int, crf: int) -> int:
        """Sample count for iteration ``run`` probing ``crf``."""
        if run in (1, 2):
            # single sample on the first 2 runs for speed
            return 1
        if self.is_quick_3rd_run(run, crf):
            return 1
        return self.config.samples

    def _probe(self, executor: concurrent.futures.Executor, crf: int, samples: int,
               run: int, quick_3rd_run: bool) -> ProbeResult:
        cfg = self.config
        progress = SampleProgress()
        self.reporter.set_message(f"sampling crf {crf}, ")
        logger.debug(f"run {run}: sampling crf {crf} with {samples} sample(s)")

        future = executor.submit(self.sampler.sample, cfg.input, crf, cfg.preset, samples, progress)
        while True:
            done, _ = concurrent.futures.wait([future], timeout=self.poll_interval)
            if done:
                break
            position = guess_progress(run, progress.fraction(), quick_3rd_run, self.bar_len)
            self.reporter.set_position(int(position))

        try:
            return future.result()
        except SampleEncodeError as e:
            raise ProbeFailure(str(e)) from e
        except Exception as e:
            raise TaskFailure(f"Sample task for crf {crf} failed: {e}") from e

    def _print_attempt(self, attempt: Attempt):
        self.reporter.println(format_attempt(attempt, self.config.min_vmaf, self.config.max_encoded_percent))

    def search(self) -> Attempt:
        """Run the search to completion.

        Returns:
            The accepted attempt.

        Raises:
            NoSuitableCrf: target unreachable within the size budget / crf range
            ProbeFailure: the sample encode failed
            TaskFailure: the probe task died unexpectedly
        """
        cfg = self.config
        min_vmaf = cfg.min_vmaf
        crf = (cfg.min_crf + cfg.max_crf) // 2
        attempts: List[Attempt] = []
        self.attempts = attempts
        quick_3rd_run = False

        with concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="crf-sample") as executor:
            run = 0
            while True:
                run += 1
                # how much we're prepared to go higher than the min-vmaf
                higher_tolerance = run * cfg.tolerance_step
                samples = self.samples_for_run(run, crf)
                if self.is_quick_3rd_run(run, crf):
                    quick_3rd_run = True

                result = self._probe(executor, crf, samples, run, quick_3rd_run)
                attempt = Attempt(crf=crf, samples=samples, result=result)
                attempts.append(attempt)
                logger.crf(f"run {run}: crf {crf} VMAF {result.vmaf:.2f} "
                           f"({result.predicted_encode_percent:.1f}%)")

                if result.vmaf >= min_vmaf:
                    # good
                    if (run > 2
                            and result.predicted_encode_percent < cfg.max_encoded_percent
                            and result.vmaf < min_vmaf + higher_tolerance):
                        return attempt

                    upper = upper_neighbour(attempts, crf)
                    if upper is not None and upper.crf == crf + 1:
                        return attempt
                    elif upper is not None:
                        crf = vmaf_lerp_crf(min_vmaf, upper, attempt)
                    elif crf == cfg.max_crf:
                        return attempt
                    elif run == 1 and crf + 1 < cfg.max_crf:
                        crf = (crf + cfg.max_crf) // 2
                    else:
                        crf = cfg.max_crf
                else:
                    # not good enough
                    if (result.predicted_encode_percent > cfg.max_encoded_percent
                            or crf == cfg.min_crf):
                        self._print_attempt(attempt)
                        raise NoSuitableCrf(attempt, describe_infeasible(
                            attempt, min_vmaf, cfg.max_encoded_percent))

                    lower = lower_neighbour(attempts, crf)
                    if lower is not None and lower.crf + 1 == crf:
                        self._print_attempt(attempt)
                        return lower
                    elif lower is not None:
                        crf = vmaf_lerp_crf(min_vmaf, attempt, lower)
                    elif run == 1 and crf > cfg.min_crf + 1:
                        crf = (cfg.min_crf + crf) // 2
                    else:
                        crf = cfg.min_crf

                logger.crf(f"next crf {crf}")
                self._print_attempt(attempt)


def find_best_crf(config: SearchConfig, sampler: Sampler,
                  reporter: Optional[ProgressReporter] = None, **kwargs) -> SearchOutcome:
    """Run a crf search, reporting infeasibility as an unsuccessful outcome.

    Probe and task failures are not expected outcomes and propagate.
    """
    search = CrfSearch(config, sampler, reporter, **kwargs)
    try:
        best = search.search()
    except NoSuitableCrf as e:
        return SearchOutcome(success=False, attempt=e.attempt,
                             attempts=list(search.attempts), reason=e.reason)
    return SearchOutcome(success=True, attempt=best, attempts=list(search.attempts))
