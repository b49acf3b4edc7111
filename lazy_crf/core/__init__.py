"""Core crf search modules."""

from .main import main
from .modules.optimization.crf_search import (
    CrfSearch, SearchConfig, SearchOutcome, Attempt, find_best_crf
)

__all__ = ["main", "CrfSearch", "SearchConfig", "SearchOutcome", "Attempt", "find_best_crf"]
