"""
Main crf search orchestration module for lazy_crf.

Parses command line arguments, wires the sample encoder and progress bar
into the crf search and prints the outcome:
- encode hint + predictions on success (exit 0)
- the failing attempt and the reason on failure (exit 1)
- configuration errors before any sampling (exit 2)
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from ..config import get_config
from ..utils.logging import get_logger, set_debug_mode, set_quiet_mode
from .modules.analysis.media_utils import get_encoder_list
from .modules.analysis.sample_encoder import SampleEncoder
from .modules.interface.user_interface import (
    TqdmProgressReporter, format_encode_hint, format_result
)
from .modules.optimization.crf_search import (
    CrfSearchError, InvalidSearchConfig, SearchConfig, find_best_crf
)
from .modules.optimization.progress_estimator import BAR_LEN

# Module logger
logger = get_logger("crf_main")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def parse_preset(value: str):
    """Numeric presets (svt-av1) stay ints, named presets (x264/x265) stay strings."""
    return int(value) if value.lstrip('-').isdigit() else value


def build_parser(defaults: Optional[dict] = None) -> argparse.ArgumentParser:
    defaults = defaults if defaults is not None else get_config()
    parser = argparse.ArgumentParser(
        prog="lazy-crf",
        description="Pseudo binary search using sample encodes to find the best crf value "
                    "delivering --min-vmaf and --max-encoded-percent."
    )
    parser.add_argument("-i", "--input", type=Path, required=True, help="Input video file")
    parser.add_argument("--preset", type=parse_preset, required=True,
                        help="Encoder preset. Higher presets mean faster encodes with a quality tradeoff")
    parser.add_argument("--min-vmaf", type=float, default=defaults['min_vmaf'],
                        help="Desired VMAF score (default: %(default)s)")
    parser.add_argument("--max-encoded-percent", type=float, default=defaults['max_encoded_percent'],
                        help="Maximum desired encoded size percentage of the input size (default: %(default)s)")
    parser.add_argument("--min-crf", type=int, default=defaults['min_crf'],
                        help="Minimum (highest quality) crf value to try (default: %(default)s)")
    parser.add_argument("--max-crf", type=int, default=defaults['max_crf'],
                        help="Maximum (lowest quality) crf value to try (default: %(default)s)")
    parser.add_argument("--samples", type=int, default=defaults['samples'],
                        help="Number of samples to use across the input video (default: %(default)s)")
    parser.add_argument("--sample-duration", type=int, default=defaults['sample_duration'],
                        help="Length of each sample in seconds (default: %(default)s)")
    parser.add_argument("--encoder", default=defaults['encoder'],
                        help="ffmpeg video encoder (default: %(default)s)")
    parser.add_argument("--vmaf-threads", type=int, default=defaults['vmaf_threads'],
                        help="libvmaf threads, 0 for auto (default: %(default)s)")
    parser.add_argument("--temp-dir", type=Path, default=None,
                        help="Directory for sample files (default: system temp)")
    parser.add_argument("--debug", action="store_true", default=defaults['debug'],
                        help="Print commands and search decisions")
    parser.add_argument("--quiet", action="store_true", help="Only print warnings, errors and the result")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    set_debug_mode(args.debug)
    set_quiet_mode(args.quiet)

    try:
        config = SearchConfig(
            input=args.input,
            preset=args.preset,
            min_vmaf=args.min_vmaf,
            max_encoded_percent=args.max_encoded_percent,
            min_crf=args.min_crf,
            max_crf=args.max_crf,
            samples=args.samples,
        )
    except InvalidSearchConfig as e:
        logger.error(str(e))
        return EXIT_CONFIG

    if not config.input.is_file():
        logger.error(f"Input not found: {config.input}")
        return EXIT_CONFIG

    encoders = get_encoder_list()
    if encoders and args.encoder not in encoders:
        logger.warn(f"Encoder {args.encoder} not listed by ffmpeg -encoders")

    logger.info(f"Searching crf {config.min_crf}-{config.max_crf} for {config.input.name} "
                f"(VMAF >= {config.min_vmaf:g}, size <= {config.max_encoded_percent:g}%)")

    reporter = TqdmProgressReporter(total=BAR_LEN)
    try:
        with SampleEncoder(config.input, encoder=args.encoder, sample_duration=args.sample_duration,
                           vmaf_threads=args.vmaf_threads, temp_dir=args.temp_dir) as sampler:
            outcome = find_best_crf(config, sampler, reporter)
    except CrfSearchError as e:
        reporter.finish()
        logger.error(str(e))
        return EXIT_FAILED
    reporter.finish()

    if not outcome.success:
        logger.error(outcome.reason or "Failed to find a suitable crf")
        return EXIT_FAILED

    best = outcome.attempt
    print(f"\nEncode with: {format_encode_hint(config, best.crf, args.encoder)}\n", file=sys.stderr)
    print(format_result(best))
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
