"""Command-line entry point for the CZMIL noise filter.

Usage:
    python -m src.noise_filter.cli [-1] [-2] [-3] [-4] [-5] [-6] [-7] [-9]
        [-a THRESHOLD] [-s SHAL_AMP] [-d DEEP_AMP] [--config FILE]
        CZMIL_CPF_FILENAME

The waveform file is found next to the point file by replacing the
``.cpf`` extension with ``.cwf``.  Exit status is 0 on success, 1 when a
file cannot be opened, read or written, and 2 on usage errors.
"""

import argparse
import dataclasses
import logging
import sys
from typing import List, Optional, Sequence

import yaml

from ..common.czmil_io import POINT_EXTENSION, PairedRecordStore, StoreError
from ..common.records import FILTERABLE_CHANNELS
from ..utils.logging import get_logger, set_level
from . import __version__
from .config import FilterConfig
from .driver import FilterDriver

logger = get_logger(__name__)

VERSION = f"CZMIL Noise Filter V{__version__}"

VALUE_OPTIONS = ("-a", "-s", "-d")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="czmil_noise_filter",
        description=(
            "Filter out returns that have digitizer noise or whose starting "
            "waveform amplitude exceeds the user defined threshold"
        ),
    )
    channels = parser.add_argument_group("channels")
    for channel in sorted(FILTERABLE_CHANNELS):
        channels.add_argument(
            f"-{int(channel)}",
            dest="channels",
            action="append_const",
            const=channel,
            help=f"filter channel {int(channel)}",
        )
    parser.add_argument(
        "-a",
        dest="threshold",
        type=int,
        metavar="THRESHOLD",
        help="waveform amplitude second difference change threshold [default = noise filter disabled]",
    )
    parser.add_argument(
        "-s",
        dest="shallow_amplitude",
        type=int,
        metavar="SHAL_AMP",
        help="shallow channel starting amplitude threshold [default = shallow amplitude filter disabled]",
    )
    parser.add_argument(
        "-d",
        dest="deep_amplitude",
        type=int,
        metavar="DEEP_AMP",
        help="deep channel starting amplitude threshold [default = deep amplitude filter disabled]",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="YAML file with channels and thresholds; command line values take precedence",
    )
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="do not draw the progress bar",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="log every updated record")
    parser.add_argument("--version", action="version", version=VERSION)
    parser.add_argument("cpf_file", metavar="CZMIL_CPF_FILENAME", help="CZMIL point (.cpf) file")
    return parser


def join_option_values(argv: Sequence[str]) -> List[str]:
    """Attach the value following ``-a``, ``-s`` or ``-d`` to its option.

    The channel flags ``-1`` … ``-9`` make argparse read a negative
    number such as ``-5`` as an option, so ``-a -5`` becomes ``-a=-5``
    before parsing.
    """
    joined = []
    tokens = iter(argv)
    for token in tokens:
        if token == "--":
            joined.append(token)
            joined.extend(tokens)
            break
        if token in VALUE_OPTIONS:
            value = next(tokens, None)
            joined.append(token if value is None else f"{token}={value}")
        else:
            joined.append(token)
    return joined


def parse_args(
    argv: Optional[Sequence[str]] = None,
    parser: Optional[argparse.ArgumentParser] = None,
) -> argparse.Namespace:
    """Parse command line arguments, accepting negative option values."""
    parser = parser or build_parser()
    argv = sys.argv[1:] if argv is None else argv
    return parser.parse_args(join_option_values(argv))


def config_from_args(args: argparse.Namespace) -> FilterConfig:
    """Merge the optional YAML configuration with command line values."""
    config = FilterConfig.from_yaml(args.config) if args.config else FilterConfig()
    overrides = {}
    if args.channels:
        overrides["channels"] = frozenset(args.channels)
    if args.threshold is not None:
        overrides["noise_threshold"] = args.threshold
    if args.shallow_amplitude is not None:
        overrides["shallow_ceiling"] = args.shallow_amplitude
    if args.deep_amplitude is not None:
        overrides["deep_ceiling"] = args.deep_amplitude
    return dataclasses.replace(config, **overrides).validate()


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parse_args(argv, parser)

    if args.verbose:
        set_level(logging.DEBUG)

    print(f"\n\n {VERSION} \n\n", file=sys.stderr)

    try:
        config = config_from_args(args)
    except (ValueError, FileNotFoundError, yaml.YAMLError) as exc:
        parser.error(str(exc))

    if not args.cpf_file.lower().endswith(POINT_EXTENSION):
        parser.error(f"{args.cpf_file} is not a {POINT_EXTENSION} file")

    try:
        with PairedRecordStore.open(args.cpf_file) as store:
            summary = FilterDriver(show_progress=not args.no_progress).run(store, config)
    except StoreError as exc:
        logger.error(str(exc))
        return 1
    except MemoryError:
        logger.error("Allocating difference buffers: out of memory")
        return 1

    print(f"100% processed, {summary.invalidated} invalidated")
    sys.stdout.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())
