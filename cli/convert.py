"""Convert command CLI parsing and control flow."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from errors import ImageOperationError, PixbridgeError
from imaging import (
    Angle,
    Color,
    Direction,
    ExportParams,
    ImageType,
    ImportParams,
    Interpretation,
    LabelParams,
    export_to_target,
)
from imaging.steps import (
    AutorotateStep,
    BlurStep,
    ColorspaceStep,
    FlattenStep,
    FlipStep,
    ImageStep,
    LabelStep,
    Pipeline,
    ResizeStep,
    RotateStep,
    ThumbnailStep,
)
from streams import WriterTarget
from .info import EXIT_IMAGE_ERROR, EXIT_OK, EXIT_USAGE, open_input

logger = logging.getLogger(__name__)

FORMAT_CHOICES = tuple(
    t.value for t in ImageType if t not in (ImageType.UNKNOWN, ImageType.SVG, ImageType.PDF, ImageType.MAGICK)
)


def add_convert_subparser(subparsers: argparse._SubParsersAction) -> None:
    convert_parser = subparsers.add_parser(
        "convert",
        help="Transform an image and write it in another format",
    )
    convert_parser.add_argument("input", help="Input file path, or - for stdin")
    convert_parser.add_argument("output", help="Output file path, or - for stdout")
    convert_parser.add_argument(
        "--format",
        choices=FORMAT_CHOICES,
        help="Output format (default: from the output extension, else the input format)",
    )
    convert_parser.add_argument(
        "--quality",
        type=int,
        default=None,
        help="Encoder quality 1-100 (default: format default)",
    )
    convert_parser.add_argument(
        "--strip",
        action="store_true",
        help="Strip ICC profile and EXIF metadata",
    )
    convert_parser.add_argument(
        "--lossless",
        action="store_true",
        help="Lossless encoding where the format supports it",
    )
    convert_parser.add_argument(
        "--shrink",
        type=int,
        choices=(1, 2, 4, 8),
        default=None,
        help="Shrink-on-load factor",
    )

    ops = convert_parser.add_argument_group("operations (applied in this order)")
    ops.add_argument(
        "--autorotate",
        action="store_true",
        help="Apply the EXIF orientation",
    )
    ops.add_argument("--resize", type=float, metavar="SCALE", help="Scale by a factor")
    ops.add_argument("--thumbnail", type=int, metavar="WIDTH", help="Fit inside WIDTHxWIDTH")
    ops.add_argument(
        "--rotate",
        type=int,
        choices=[int(a) for a in Angle],
        help="Rotate clockwise by a right angle",
    )
    ops.add_argument(
        "--flip",
        choices=[d.value for d in Direction],
        help="Mirror the image",
    )
    ops.add_argument(
        "--flatten",
        metavar="R,G,B",
        help="Flatten alpha onto a background colour",
    )
    ops.add_argument(
        "--colorspace",
        choices=[i.value for i in Interpretation],
        help="Convert to a colour space",
    )
    ops.add_argument("--blur", type=float, metavar="SIGMA", help="Gaussian blur")
    ops.add_argument("--label", metavar="TEXT", help="Draw text in the top-left corner")
    convert_parser.set_defaults(_cmd=cmd_convert)


def build_steps(args: argparse.Namespace) -> list[ImageStep]:
    """Translate operation flags into pipeline steps, in a fixed order."""
    steps: list[ImageStep] = []
    if args.autorotate:
        steps.append(AutorotateStep())
    if args.resize is not None:
        steps.append(ResizeStep(scale=args.resize))
    if args.thumbnail is not None:
        steps.append(ThumbnailStep(width=args.thumbnail, height=args.thumbnail))
    if args.rotate is not None:
        steps.append(RotateStep(angle=Angle(args.rotate)))
    if args.flip is not None:
        steps.append(FlipStep(direction=Direction(args.flip)))
    if args.flatten is not None:
        steps.append(FlattenStep(background=Color.parse(args.flatten)))
    if args.colorspace is not None:
        steps.append(ColorspaceStep(interpretation=Interpretation(args.colorspace)))
    if args.blur is not None:
        steps.append(BlurStep(sigma=args.blur))
    if args.label:
        steps.append(LabelStep(params=LabelParams(text=args.label)))
    return steps


def output_format(args: argparse.Namespace) -> ImageType:
    if args.format:
        return ImageType(args.format)
    if args.output != "-":
        return ImageType.from_extension(Path(args.output).suffix)
    return ImageType.UNKNOWN


def cmd_convert(args: argparse.Namespace) -> int:
    try:
        steps = build_steps(args)
        params = ExportParams(
            format=output_format(args),
            quality=args.quality,
            lossless=args.lossless,
            strip_metadata=args.strip,
        )
        import_params = ImportParams(shrink=args.shrink)
    except (ValueError, ValidationError) as e:
        logger.error("Invalid arguments: %s", e)
        return EXIT_USAGE

    try:
        with open_input(args.input, import_params) as ref:
            result = Pipeline(steps=steps).run(ref)
            for step in result.steps:
                logger.debug("%s [%s]", step.name, step.status)
            if args.output == "-":
                written = export_to_target(ref, WriterTarget(sys.stdout.buffer), params)
            else:
                with open(args.output, "wb") as fp:
                    written = export_to_target(ref, WriterTarget(fp), params)
    except FileNotFoundError as e:
        logger.error("File not found: %s", e.filename)
        return EXIT_USAGE
    except ImageOperationError as e:
        logger.error("Invalid operation: %s", e)
        return EXIT_USAGE
    except PixbridgeError as e:
        logger.error("Conversion failed: %s", e)
        return EXIT_IMAGE_ERROR

    logger.info(
        "Converted %s -> %s (%s, %dx%d)",
        args.input, args.output, written.value, *result.final_size,
    )
    return EXIT_OK
