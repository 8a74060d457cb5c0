"""Main module for the image-transform CLI."""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Callable, List, Optional

from . import __version__
from .core.exceptions import ConfigurationError
from .core.factories import LoggerFactory, TransformPipelineFactory
from .core.models import RunConfig
from .core.paths import DEFAULT_FILE_NAME_FORMAT
from .core.profiles import (
    DEFAULT_CONFIG_FILE,
    FlagOptions,
    ProfileResolver,
    parse_data_entries,
)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_PARTIAL_FAILURE = 2

NAME_FORMAT_HELP = """
File name format tokens:
  {name}     source file name without extension
  {ext}      extension of the export format (jpg, png, webp, avif)
  {orgExt}   extension of the source file
  {orgName}  source file name without extension, after --name-remove
  {width}    output width, when the transform resizes
  {height}   output height, when the transform resizes
  {label}    label (or name) of the transform action
  {<key>}    any value given with --data key=value
"""


def bounded_int(minimum: int, maximum: int) -> Callable[[str], int]:
    """argparse type accepting integers in ``[minimum, maximum]``."""

    def _parse(value: str) -> int:
        try:
            number = int(value)
        except ValueError:
            raise argparse.ArgumentTypeError(f"invalid integer value: {value!r}")
        if not minimum <= number <= maximum:
            raise argparse.ArgumentTypeError(
                f"must be between {minimum} and {maximum}, got {number}"
            )
        return number

    return _parse


def positive_int(value: str) -> int:
    return bounded_int(1, sys.maxsize)(value)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="image-transform",
        description="Image Transform - batch and watch-mode image resizing and re-encoding",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Resize one file to 400px wide and export it as WebP into images/
  image-transform transform photo.jpg -w 400 --webp -o images

  # Run a profile from image-transform.config.json
  image-transform transform --profile thumbnails

  # Keep re-running a profile as files change
  image-transform transform --profile thumbnails --watch-initial

  # Show version
  image-transform version
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # -h is --height here, so help is only available as --help
    transform_parser = subparsers.add_parser(
        "transform",
        add_help=False,
        help="Transform images from a file, directory, glob or profile",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=NAME_FORMAT_HELP,
    )
    transform_parser.add_argument(
        "--help", action="help", help="Show this help message and exit"
    )
    transform_parser.add_argument(
        "file", nargs="?", help="Source file, directory or glob pattern"
    )
    transform_parser.add_argument(
        "-c",
        "--config",
        "--config-file",
        dest="config_file",
        default=DEFAULT_CONFIG_FILE,
        help=f"Config file (default: {DEFAULT_CONFIG_FILE})",
    )
    transform_parser.add_argument(
        "-p", "--profile", help="Name of a profile from the config file"
    )
    transform_parser.add_argument(
        "-w", "--width", type=positive_int, help="Output width in pixels"
    )
    transform_parser.add_argument(
        "-h", "--height", type=positive_int, help="Output height in pixels"
    )
    transform_parser.add_argument(
        "--with-enlargement",
        action="store_true",
        help="Allow upscaling images smaller than the requested size",
    )
    transform_parser.add_argument(
        "--name-format",
        default=DEFAULT_FILE_NAME_FORMAT,
        help=f"Output file name format (default: {DEFAULT_FILE_NAME_FORMAT})",
    )
    transform_parser.add_argument(
        "--name-remove", help="Remove this substring from output file names"
    )
    transform_parser.add_argument(
        "--jpg", "--jpeg", dest="jpeg", action="store_true", help="Export JPEG"
    )
    transform_parser.add_argument("--png", action="store_true", help="Export PNG")
    transform_parser.add_argument("--webp", action="store_true", help="Export WebP")
    transform_parser.add_argument("--avif", action="store_true", help="Export AVIF")
    transform_parser.add_argument(
        "--keep-meta", action="store_true", help="Keep EXIF and ICC metadata"
    )
    transform_parser.add_argument("-o", "--out", help="Output directory")
    transform_parser.add_argument(
        "--watch", action="store_true", help="Watch the source for changes"
    )
    transform_parser.add_argument(
        "--watch-initial",
        action="store_true",
        help="Watch, and process existing files once at start",
    )
    transform_parser.add_argument(
        "--concurrency",
        type=bounded_int(1, 10),
        default=1,
        help="Files processed in parallel, 1-10 (default: 1)",
    )
    transform_parser.add_argument(
        "--quality",
        type=bounded_int(1, 100),
        default=None,
        help="Quality for every export format, 1-100",
    )
    transform_parser.add_argument(
        "-d",
        "--data",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Template data for the file name format (repeatable)",
    )
    transform_parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    transform_parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit with code 2 when any file or export fails",
    )

    # Version subcommand
    subparsers.add_parser("version", help="Show version information")

    return parser


def flags_from_args(args: argparse.Namespace) -> FlagOptions:
    return FlagOptions(
        source=args.file,
        width=args.width,
        height=args.height,
        with_enlargement=args.with_enlargement,
        keep_meta=args.keep_meta,
        jpeg=args.jpeg,
        png=args.png,
        webp=args.webp,
        avif=args.avif,
        out=args.out,
        name_format=args.name_format,
        name_remove=args.name_remove,
    )


def run_config_from_args(args: argparse.Namespace, base_dir: Optional[Path] = None) -> RunConfig:
    return RunConfig(
        concurrency=args.concurrency,
        watch=args.watch or args.watch_initial,
        watch_initial=args.watch_initial,
        strict=args.strict,
        debug=args.debug,
        base_dir=base_dir if base_dir is not None else Path.cwd(),
    )


def run_transform(args: argparse.Namespace) -> int:
    """Run the transform command and return the process exit code."""
    run_config = run_config_from_args(args)
    logger = LoggerFactory.create_logger(debug=run_config.debug)

    try:
        data = parse_data_entries(args.data)
        resolver = ProfileResolver(base_dir=run_config.base_dir, logger=logger)
        profile = resolver.resolve(
            profile_name=args.profile,
            config_file=args.config_file,
            flags=flags_from_args(args),
            quality=args.quality,
            data=data,
        )
    except ConfigurationError as exc:
        logger.error(str(exc))
        return EXIT_CONFIG_ERROR

    orchestrator = TransformPipelineFactory.create_pipeline(
        logger=logger, run_config=run_config
    )

    if run_config.watch:
        logger.info("Watching file changes, press Ctrl+C to exit")
        try:
            result = asyncio.run(
                orchestrator.run_watch(profile, initial=run_config.watch_initial)
            )
        except KeyboardInterrupt:
            logger.info("Watch stopped")
            return EXIT_OK
    else:
        result = asyncio.run(orchestrator.run_batch(profile))

    if run_config.strict and result.has_failures:
        return EXIT_PARTIAL_FAILURE
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the image-transform command-line interface."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "transform":
        sys.exit(run_transform(args))

    elif args.command == "version":
        print("Image Transform CLI")
        print(f"Version {__version__}")
        sys.exit(0)

    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
