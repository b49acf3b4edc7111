"""
Lazy CRF - find the highest crf that still meets a VMAF target using sample encodes.
"""

__version__ = "1.0.0"
__author__ = "Rallade"
__email__ = "rallade@hotmail.com"

from .config import get_config, load_env_file
from .core.modules.optimization.crf_search import (
    Attempt, CrfSearch, SearchConfig, SearchOutcome, find_best_crf,
)

__all__ = [
    "get_config",
    "load_env_file",
    "Attempt",
    "CrfSearch",
    "SearchConfig",
    "SearchOutcome",
    "find_best_crf",
]
