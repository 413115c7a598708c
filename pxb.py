#!/usr/bin/env python3
"""
Unified CLI for pixbridge.

Usage:
    pxb info <input>                     # Show format, size and colour info
    pxb info - < photo.jpg               # Same, reading stdin
    pxb convert <input> <output>         # Re-encode (format from extension)
    pxb convert in.png out.webp --quality 90 --thumbnail 320
    pxb convert - - --format png < in.jpg > out.png
"""

import argparse
import logging
import sys

from logging_utils import configure_logging, add_logging_args
from cli.info import add_info_subparser
from cli.convert import add_convert_subparser

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pxb",
        description="pixbridge - stream images through Pillow and OpenCV",
    )
    add_logging_args(parser)
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    add_info_subparser(subparsers)
    add_convert_subparser(subparsers)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level, args.verbose, args.quiet)

    cmd = getattr(args, "_cmd", None)
    if cmd is None:
        parser.print_help()
        return 1
    return cmd(args)


if __name__ == "__main__":
    sys.exit(main())
