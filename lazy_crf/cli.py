"""CLI entry points for lazy-crf package."""

import sys


def main_crf_search():
    """Entry point for lazy-crf command."""
    from lazy_crf.core.main import main
    sys.exit(main())


if __name__ == "__main__":
    main_crf_search()
