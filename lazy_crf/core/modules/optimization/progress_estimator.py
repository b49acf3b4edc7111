"""
Overall progress estimation for the crf search progress bar.

The number of probes a search needs is unknown up front, so the estimate
guesses a total in "probe units" (a 1-sample probe is 1 unit, a full probe
is 3) and revises the guess as iterations go by.
"""

BAR_LEN = 1000

FULL_PROBE_UNITS = 3


def guess_total_units(run: int, quick_3rd_run: bool) -> int:
    """Guessed total probe units after ``run`` iterations."""
    if run <= 4:
        # Guess 4 iterations initially
        if quick_3rd_run:
            return 1 + 1 + 1 + 3
        return 1 + 1 + 3 + 3
    # Otherwise guess this iteration is the last
    if quick_3rd_run:
        return 3 + (run - 3) * FULL_PROBE_UNITS
    return 2 + (run - 2) * FULL_PROBE_UNITS


def completed_units(run: int, sample_progress: float, quick_3rd_run: bool) -> float:
    """Probe units done: all earlier iterations plus the current one's share."""
    if run == 1:
        return sample_progress
    if run == 2:
        return 1.0 + sample_progress
    if run == 3 and quick_3rd_run:
        return 2.0 + sample_progress
    if quick_3rd_run:
        return 3.0 + (run - 4) * FULL_PROBE_UNITS + sample_progress * FULL_PROBE_UNITS
    return 2.0 + (run - 3) * FULL_PROBE_UNITS + sample_progress * FULL_PROBE_UNITS


def guess_progress(run: int, sample_progress: float, quick_3rd_run: bool, bar_len: int = BAR_LEN) -> float:
    """Overall search progress in ``[0, bar_len]``.

    Args:
        run: 1-based search iteration
        sample_progress: completed fraction of the current probe
        quick_3rd_run: whether the 3rd iteration was a 1-sample boundary probe
        bar_len: resolution of the progress scale

    Non-decreasing in ``sample_progress`` within one iteration.
    """
    if run < 1:
        raise ValueError(f"run must be >= 1, got {run}")
    sample_progress = min(1.0, max(0.0, sample_progress))
    units = completed_units(run, sample_progress, quick_3rd_run)
    return min(float(bar_len), units * bar_len / guess_total_units(run, quick_3rd_run))
