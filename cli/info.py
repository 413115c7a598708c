"""Info command CLI parsing and control flow."""

from __future__ import annotations

import argparse
import logging
import sys

from errors import PixbridgeError
from imaging import ImageRef, ImportParams, load_image_from_file, load_image_from_source
from streams import ReaderSource

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_IMAGE_ERROR = 2


def add_info_subparser(subparsers: argparse._SubParsersAction) -> None:
    info_parser = subparsers.add_parser(
        "info",
        help="Show format, size and colour information for an image",
    )
    info_parser.add_argument(
        "input",
        help="Image file path, or - to read from stdin",
    )
    info_parser.add_argument(
        "--page",
        type=int,
        default=None,
        help="Page/frame to inspect for multi-page images (default: first)",
    )
    info_parser.set_defaults(_cmd=cmd_info)


def open_input(path: str, params: ImportParams | None = None) -> ImageRef:
    """Load ``path``, or stdin when it is "-"."""
    if path == "-":
        return load_image_from_source(ReaderSource(sys.stdin.buffer), params)
    return load_image_from_file(path, params)


def describe(ref: ImageRef) -> list[tuple[str, str]]:
    return [
        ("format", ref.format.value),
        ("size", f"{ref.width}x{ref.height}"),
        ("mode", ref.mode),
        ("bands", str(ref.bands)),
        ("interpretation", ref.interpretation.value),
        ("alpha", "yes" if ref.has_alpha else "no"),
        ("icc profile", f"{len(ref.icc_profile)} bytes" if ref.icc_profile else "none"),
        ("orientation", str(ref.orientation)),
        ("pages", str(ref.pages)),
        ("resolution", f"{ref.res_x:g}x{ref.res_y:g} dpi"),
    ]


def cmd_info(args: argparse.Namespace) -> int:
    if args.page is not None and args.page < 0:
        logger.error("--page must be >= 0")
        return EXIT_USAGE
    params = ImportParams(page=args.page) if args.page is not None else None
    try:
        with open_input(args.input, params) as ref:
            for key, value in describe(ref):
                logger.info("%-15s %s", key + ":", value)
    except FileNotFoundError:
        logger.error("Input not found: %s", args.input)
        return EXIT_USAGE
    except PixbridgeError as e:
        logger.error("Cannot read %s: %s", args.input, e)
        return EXIT_IMAGE_ERROR
    return EXIT_OK
