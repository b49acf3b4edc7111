"""
Test package for lazy_crf.

Unit tests live in tests/unit, end-to-end command line tests in
tests/integration. FFmpeg is mocked throughout.
"""

__version__ = "1.0.0"
